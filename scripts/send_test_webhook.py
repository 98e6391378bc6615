#!/usr/bin/env python3
"""Send a signed sample event to a webhook endpoint."""

import argparse
import asyncio

from monithq.models.db import Webhook, WebhookEvent
from monithq.storage.database import init_db
from monithq.utils.logging import setup_logging
from monithq.webhooks.delivery import send_webhook


async def main(url: str, event: str, secret: str):
    setup_logging()
    await init_db()

    payload = {
        "site": {"id": "site_test", "name": "Example Site", "url": "https://example.com"},
        "incident": {"id": "inc_test", "status": "INVESTIGATING", "severity": "HIGH"},
    }

    webhook = Webhook(id=0, organization_id="org_test", url=url, secret=secret or None)
    result = await send_webhook(webhook, event, payload)
    print(f"Success: {result.success}  Status: {result.status_code}  Error: {result.error}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Send a test webhook delivery")
    parser.add_argument("url")
    parser.add_argument("--event", choices=[e.value for e in WebhookEvent], default="incident_created")
    parser.add_argument("--secret", default="")
    args = parser.parse_args()
    asyncio.run(main(args.url, args.event, args.secret))
