from __future__ import annotations

import asyncio
import re
from collections.abc import Mapping

import structlog
import httpx

from monithq.config import get_settings
from monithq.models.db import Grade
from monithq.models.schemas import SecurityCheckResult

logger = structlog.get_logger()

USER_AGENT = "MonitHQ Security Scanner/1.0"

ONE_YEAR_SECONDS = 31536000

WEIGHTS = {
    "hsts": 25,
    "csp": 25,
    "x_frame_options": 15,
    "x_content_type_options": 15,
    "x_xss_protection": 10,
    "referrer_policy": 5,
    "permissions_policy": 5,
}
HSTS_MAX_AGE_BONUS = 5
HSTS_SUBDOMAINS_BONUS = 5
CSP_UNSAFE_PENALTY = 10

SECURE_REFERRER_POLICIES = frozenset({
    "no-referrer",
    "same-origin",
    "strict-origin",
    "strict-origin-when-cross-origin",
})

DEFAULT_GRADE_BANDS: list[tuple[int, int, Grade]] = [
    (95, 100, Grade.A_PLUS),
    (85, 94, Grade.A),
    (70, 84, Grade.B),
    (50, 69, Grade.C),
    (30, 49, Grade.D),
    (0, 29, Grade.F),
]

RECOMMENDATIONS = {
    "no_hsts": "Add Strict-Transport-Security: max-age=31536000; includeSubDomains",
    "weak_hsts": "Increase the HSTS max-age to at least 31536000 seconds (one year)",
    "hsts_subdomains": "Add includeSubDomains to the HSTS header to protect all subdomains",
    "no_csp": "Add a Content-Security-Policy header that restricts script and resource origins",
    "weak_csp": "Remove 'unsafe-inline' and 'unsafe-eval' from the CSP; use nonces or hashes instead",
    "csp_wildcard": "Replace wildcard (*) CSP sources with explicit origins, nonces or hashes",
    "no_x_frame_options": "Add X-Frame-Options: DENY (or SAMEORIGIN) to prevent clickjacking",
    "invalid_x_frame": "Set X-Frame-Options to DENY or SAMEORIGIN",
    "no_x_content_type": "Add X-Content-Type-Options: nosniff",
    "no_x_xss_protection": "Add X-XSS-Protection: 1; mode=block",
    "no_referrer_policy": "Add Referrer-Policy: strict-origin-when-cross-origin",
    "weak_referrer_policy": "Use a stricter Referrer-Policy such as strict-origin-when-cross-origin or no-referrer",
    "no_permissions_policy": "Add a Permissions-Policy header to restrict browser features such as camera and geolocation",
    "connection_failed": "Ensure the site is reachable over HTTP(S) so its security headers can be inspected",
}

_UNSAFE_CSP = re.compile(r"unsafe-inline|unsafe-eval", re.IGNORECASE)
_CSP_HASH_OR_NONCE = re.compile(r"nonce-|sha256-|sha384-|sha512-", re.IGNORECASE)
_HSTS_MAX_AGE = re.compile(r"max-age=\"?(\d+)", re.IGNORECASE)
_VALID_X_FRAME = re.compile(r"^\s*(DENY|SAMEORIGIN)\s*$", re.IGNORECASE)


def grade_bands() -> list[tuple[int, int, Grade]]:
    configured = get_settings().load_yaml_config().get("security", {}).get("grades")
    if not configured:
        return DEFAULT_GRADE_BANDS
    return [(int(b["min"]), int(b["max"]), Grade(b["label"])) for b in configured]


def grade_for_score(score: int) -> Grade:
    """First band whose [min, max] contains the score wins."""
    for low, high, grade in grade_bands():
        if low <= score <= high:
            return grade
    return Grade.F


def analyze_headers(headers: Mapping[str, str]) -> SecurityCheckResult:
    """Score a set of response headers. Header names are matched case-insensitively."""
    h = {k.lower(): v for k, v in headers.items()}
    issues: list[str] = []
    recommendations: list[str] = []
    fields: dict = {}
    score = 0

    hsts = h.get("strict-transport-security")
    if hsts:
        fields["has_hsts"] = True
        score += WEIGHTS["hsts"]
        match = _HSTS_MAX_AGE.search(hsts)
        max_age = int(match.group(1)) if match else None
        fields["hsts_max_age"] = max_age
        if max_age is None or max_age < ONE_YEAR_SECONDS:
            issues.append("HSTS max-age is less than 1 year")
            recommendations.append(RECOMMENDATIONS["weak_hsts"])
        else:
            score += HSTS_MAX_AGE_BONUS
        fields["hsts_includes_subdomains"] = "includesubdomains" in hsts.lower()
        if fields["hsts_includes_subdomains"]:
            score += HSTS_SUBDOMAINS_BONUS
        else:
            recommendations.append(RECOMMENDATIONS["hsts_subdomains"])
    else:
        issues.append("Missing HSTS header")
        recommendations.append(RECOMMENDATIONS["no_hsts"])

    csp = h.get("content-security-policy")
    if csp:
        fields["has_csp"] = True
        fields["csp_policy"] = csp
        score += WEIGHTS["csp"]
        if _UNSAFE_CSP.search(csp):
            score -= CSP_UNSAFE_PENALTY
            issues.append("CSP contains unsafe directives (unsafe-inline or unsafe-eval)")
            recommendations.append(RECOMMENDATIONS["weak_csp"])
        if "*" in csp and not _CSP_HASH_OR_NONCE.search(csp):
            issues.append("CSP uses wildcard (*) without nonces or hashes")
            recommendations.append(RECOMMENDATIONS["csp_wildcard"])
    else:
        issues.append("Missing Content-Security-Policy header")
        recommendations.append(RECOMMENDATIONS["no_csp"])

    x_frame = h.get("x-frame-options")
    if x_frame:
        fields["has_x_frame_options"] = True
        fields["x_frame_options"] = x_frame
        if _VALID_X_FRAME.match(x_frame):
            score += WEIGHTS["x_frame_options"]
        else:
            issues.append("X-Frame-Options has invalid value")
            recommendations.append(RECOMMENDATIONS["invalid_x_frame"])
    else:
        issues.append("Missing X-Frame-Options header")
        recommendations.append(RECOMMENDATIONS["no_x_frame_options"])

    x_content_type = h.get("x-content-type-options")
    if x_content_type and "nosniff" in x_content_type.lower():
        fields["has_x_content_type"] = True
        score += WEIGHTS["x_content_type_options"]
    else:
        issues.append("Missing or invalid X-Content-Type-Options header")
        recommendations.append(RECOMMENDATIONS["no_x_content_type"])

    x_xss = h.get("x-xss-protection")
    if x_xss and "1" in x_xss:
        fields["has_x_xss_protection"] = True
        score += WEIGHTS["x_xss_protection"]
    else:
        issues.append("Missing or disabled X-XSS-Protection header")
        recommendations.append(RECOMMENDATIONS["no_x_xss_protection"])

    referrer = h.get("referrer-policy")
    if referrer:
        fields["has_referrer_policy"] = True
        fields["referrer_policy"] = referrer
        score += WEIGHTS["referrer_policy"]
        # A policy may list comma-separated fallbacks; any secure token counts
        tokens = {t.strip().lower() for t in referrer.split(",")}
        if not tokens & SECURE_REFERRER_POLICIES:
            issues.append("Referrer-Policy is not secure")
            recommendations.append(RECOMMENDATIONS["weak_referrer_policy"])
    else:
        issues.append("Missing Referrer-Policy header")
        recommendations.append(RECOMMENDATIONS["no_referrer_policy"])

    if h.get("permissions-policy") or h.get("feature-policy"):
        fields["has_permissions_policy"] = True
        score += WEIGHTS["permissions_policy"]
    else:
        recommendations.append(RECOMMENDATIONS["no_permissions_policy"])

    score = max(0, min(100, score))

    return SecurityCheckResult(
        success=True,
        security_score=score,
        grade=grade_for_score(score),
        issues=issues,
        recommendations=recommendations,
        **fields,
    )


async def check_security_headers(url: str, timeout: float | None = None) -> SecurityCheckResult:
    """HEAD the URL and analyse its security headers. Never raises."""
    timeout = timeout or get_settings().security_timeout_seconds
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            response = await asyncio.wait_for(client.head(url), timeout=timeout)
    except Exception as e:
        message = f"Request timed out after {timeout:g}s" if isinstance(
            e, (asyncio.TimeoutError, httpx.TimeoutException)
        ) else (str(e) or type(e).__name__)
        logger.warning("security_check_failed", url=url, error=message[:200])
        return SecurityCheckResult(
            success=False,
            error_message=message,
            security_score=0,
            grade=Grade.F,
            issues=["Failed to fetch security headers"],
            recommendations=[RECOMMENDATIONS["connection_failed"]],
        )

    result = analyze_headers(response.headers)
    logger.info(
        "security_check_complete",
        url=url,
        score=result.security_score,
        grade=result.grade.value,
        issues=len(result.issues),
    )
    return result


def format_security_check_for_db(result: SecurityCheckResult) -> dict:
    return result.model_dump(exclude={"success", "error_message"}, mode="json")
