from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from monithq.models.db import SiteStatus


class StatusResult(Protocol):
    success: bool
    status: SiteStatus


def aggregate(results: Sequence[StatusResult]) -> SiteStatus:
    """Reduce per-region results to one site status.

    Only protocol-successful results vote. The branches are evaluated in order:
    nothing succeeded, all offline, strict majority offline, any offline or
    degraded, otherwise online.
    """
    successful = [r for r in results if r.success]
    total = len(successful)
    if total == 0:
        return SiteStatus.OFFLINE

    offline = sum(1 for r in successful if r.status == SiteStatus.OFFLINE)
    degraded = sum(1 for r in successful if r.status == SiteStatus.DEGRADED)

    if offline == total:
        return SiteStatus.OFFLINE
    if offline > total // 2:
        return SiteStatus.OFFLINE
    if degraded > 0 or offline > 0:
        return SiteStatus.DEGRADED
    return SiteStatus.ONLINE
