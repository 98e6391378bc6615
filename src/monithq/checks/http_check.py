from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import structlog
import httpx

from monithq.checks.validator import validate
from monithq.config import get_settings
from monithq.models.db import AuthType, SiteStatus
from monithq.models.schemas import CheckResult, CheckTarget

logger = structlog.get_logger()

USER_AGENT = "MonitHQ API Monitor/1.0"
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
MAX_TEXT_BODY_CHARS = 1000
API_KEY_HEADER_NAMES = ("x-api-key", "api-key")
REDACTED = "***"


def build_request_headers(
    custom_headers: dict[str, str],
    auth_type: AuthType,
    auth_value: str | None,
) -> dict[str, str]:
    """Merge defaults, caller headers and exactly one auth header."""
    headers = {"User-Agent": USER_AGENT, "Content-Type": "application/json"}
    for name, value in custom_headers.items():
        _pop_header(headers, name)
        headers[name] = value

    if auth_type == AuthType.NONE or not auth_value:
        return headers

    if auth_type == AuthType.BEARER:
        _pop_header(headers, "Authorization")
        headers["Authorization"] = f"Bearer {auth_value}"
    elif auth_type == AuthType.BASIC:
        _pop_header(headers, "Authorization")
        headers["Authorization"] = f"Basic {auth_value}"
    elif auth_type == AuthType.API_KEY:
        name = _declared_api_key_header(custom_headers) or "X-API-Key"
        _pop_header(headers, name)
        headers[name] = auth_value

    return headers


def _declared_api_key_header(custom_headers: dict[str, str]) -> str | None:
    for wanted in API_KEY_HEADER_NAMES:
        for name in custom_headers:
            if name.lower() == wanted:
                return name
    return None


def _pop_header(headers: dict[str, str], name: str) -> None:
    for existing in [k for k in headers if k.lower() == name.lower()]:
        del headers[existing]


def _redact(headers: dict[str, str]) -> dict[str, str]:
    sensitive = {"authorization", *API_KEY_HEADER_NAMES}
    return {k: (REDACTED if k.lower() in sensitive else v) for k, v in headers.items()}


def encode_body(body: Any) -> bytes | None:
    """Serialise a caller-supplied body. Raises ValueError for unserialisable input."""
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    try:
        return json.dumps(body).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ValueError(f"Request body is not JSON serialisable: {e}") from e


def _parse_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            return response.json()
        text = response.text
        return text[:MAX_TEXT_BODY_CHARS] + "..." if len(text) > MAX_TEXT_BODY_CHARS else text
    except ValueError as e:
        logger.warning("response_body_parse_failed", url=str(response.url), error=str(e)[:200])
        return None


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


async def execute(target: CheckTarget) -> CheckResult:
    """Run one timed HTTP/API check. Transport failures resolve to success=False."""
    settings = get_settings()
    timeout = target.timeout or settings.check_timeout_seconds
    method = target.method.upper()
    auth_value = target.auth_value.get_secret_value() if target.auth_value else None
    headers = build_request_headers(target.headers, target.auth_type, auth_value)
    content = encode_body(target.body) if method in BODY_METHODS else None

    start = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await asyncio.wait_for(
                client.request(method, target.url, headers=headers, content=content),
                timeout=timeout,
            )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        elapsed = _elapsed_ms(start)
        logger.warning("api_check_timeout", url=target.url, timeout=timeout)
        return _failure(target, method, headers, elapsed, f"Request timed out after {timeout:g}s")
    except Exception as e:
        elapsed = _elapsed_ms(start)
        logger.warning("api_check_failed", url=target.url, error=str(e)[:200])
        return _failure(target, method, headers, elapsed, str(e) or type(e).__name__)

    elapsed = _elapsed_ms(start)
    body = _parse_body(response)

    status_valid = response.status_code in target.expected_status
    outcome = validate(body, target.validation)
    errors = []
    if not status_valid:
        expected = " or ".join(str(s) for s in target.expected_status)
        errors.append(f"Expected status code {expected}, got {response.status_code}")
    errors.extend(outcome.errors)

    logger.info(
        "api_check_complete",
        url=target.url,
        status_code=response.status_code,
        response_time_ms=elapsed,
        validation_passed=status_valid and outcome.passed,
    )

    return CheckResult(
        success=True,
        response_time_ms=elapsed,
        status_code=response.status_code,
        response_body=body,
        response_headers=dict(response.headers.items()),
        validation_passed=status_valid and outcome.passed,
        validation_errors=errors,
        request_method=method,
        request_headers=_redact(headers),
    )


def _failure(
    target: CheckTarget,
    method: str,
    headers: dict[str, str],
    elapsed: int,
    message: str,
) -> CheckResult:
    return CheckResult(
        success=False,
        response_time_ms=elapsed,
        status_code=None,
        validation_passed=False,
        error_message=message,
        request_method=method,
        request_headers=_redact(headers),
    )


def site_status_from_check(result: CheckResult, degraded_threshold_ms: int | None = None) -> SiteStatus:
    threshold = degraded_threshold_ms or get_settings().degraded_threshold_ms
    if not result.success:
        return SiteStatus.OFFLINE
    if not result.validation_passed:
        return SiteStatus.DEGRADED
    if result.response_time_ms > threshold:
        return SiteStatus.DEGRADED
    return SiteStatus.ONLINE


def format_api_check_for_db(result: CheckResult) -> dict:
    body = result.response_body
    if body is not None and not isinstance(body, (dict, list)):
        body = {"_raw": body}
    return {
        "request_method": result.request_method,
        "request_headers": result.request_headers,
        "response_time": result.response_time_ms,
        "status_code": result.status_code,
        "response_body": body,
        "response_headers": result.response_headers,
        "validation_passed": result.validation_passed,
        "validation_errors": result.validation_errors,
        "error_message": result.error_message,
        "checked_at": result.checked_at,
    }
