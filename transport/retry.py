"""
Retry/backoff and rate-limit-aware HTTP request helper.
This module centralizes request retry logic so the REST and GraphQL clients share it.
"""

import email.utils
import logging
import os
import random
import time
from datetime import datetime, timezone
from collections.abc import Mapping
from typing import Any, Dict, Optional, Tuple

import requests

from errors import GatewayError

logger = logging.getLogger(__name__)

# retry/backoff defaults from environment
DEFAULT_MAX_RETRIES = int(os.getenv("CHANGELOG_MAX_RETRIES", "3"))
DEFAULT_BACKOFF_BASE = float(os.getenv("CHANGELOG_BACKOFF_BASE", "0.5"))
_env_jitter = os.getenv("CHANGELOG_BACKOFF_JITTER")
DEFAULT_BACKOFF_JITTER = float(_env_jitter) if _env_jitter is not None and _env_jitter != "" else None
DEFAULT_MAX_BACKOFF = float(os.getenv("CHANGELOG_MAX_BACKOFF", "120.0"))

# a single server-requested wait is never honoured beyond this
MAX_SINGLE_WAIT = 300.0

RETRYABLE_STATUSES = (429, 502, 503, 504)

# runtime-overrides
_runtime_max_retries: Optional[int] = None
_runtime_backoff_base: Optional[float] = None
_runtime_backoff_jitter: Optional[float] = None
_runtime_max_backoff: Optional[float] = None


def configure_retry(
    max_retries: Optional[int] = None, backoff_base: Optional[float] = None, backoff_jitter: Optional[float] = None, max_backoff: Optional[float] = None
):
    """Configure retry/backoff defaults at runtime (e.g. from CLI)."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff
    if max_retries is not None:
        if int(max_retries) < 1:
            raise ValueError("max_retries must be at least 1")
        _runtime_max_retries = int(max_retries)
    if backoff_base is not None:
        _runtime_backoff_base = float(backoff_base)
    if backoff_jitter is not None:
        _runtime_backoff_jitter = float(backoff_jitter)
    if max_backoff is not None:
        _runtime_max_backoff = float(max_backoff)


def reset_retry():
    """Drop runtime overrides and fall back to the environment defaults."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff
    _runtime_max_retries = None
    _runtime_backoff_base = None
    _runtime_backoff_jitter = None
    _runtime_max_backoff = None


def _parse_retry_after(raw_ra: Optional[str]) -> Optional[float]:
    if not raw_ra or not isinstance(raw_ra, str):
        return None
    try:
        return max(0.0, float(raw_ra))
    except ValueError:
        pass
    try:
        dt = email.utils.parsedate_to_datetime(raw_ra)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _header_number(headers, key: str, cast):
    val = headers.get(key)
    if val is None:
        return None
    try:
        return cast(val)
    except (TypeError, ValueError):
        return None


def _parse_rate_headers(resp) -> Tuple[Optional[float], Optional[int], Optional[float]]:
    headers = getattr(resp, "headers", None)
    if not isinstance(headers, Mapping):
        headers = {}
    ra = _parse_retry_after(headers.get("Retry-After"))
    rl_remaining = _header_number(headers, "X-RateLimit-Remaining", int)
    rl_reset = _header_number(headers, "X-RateLimit-Reset", float)
    return ra, rl_remaining, rl_reset


def _resolve_backoff_params(backoff_base: Optional[float], backoff_jitter: Optional[float], max_backoff: Optional[float]) -> Tuple[float, float, float]:
    if backoff_base is not None:
        base = float(backoff_base)
    elif _runtime_backoff_base is not None:
        base = float(_runtime_backoff_base)
    else:
        base = float(DEFAULT_BACKOFF_BASE)

    if backoff_jitter is not None:
        jitter = float(backoff_jitter)
    elif _runtime_backoff_jitter is not None:
        jitter = float(_runtime_backoff_jitter)
    elif DEFAULT_BACKOFF_JITTER is not None:
        jitter = float(DEFAULT_BACKOFF_JITTER)
    else:
        jitter = base

    if max_backoff is not None:
        cap = float(max_backoff)
    elif _runtime_max_backoff is not None:
        cap = float(_runtime_max_backoff)
    else:
        cap = float(DEFAULT_MAX_BACKOFF)

    return base, jitter, cap


def _resolve_max_retries(max_retries: Optional[int]) -> int:
    if max_retries is not None:
        return max(1, int(max_retries))
    if _runtime_max_retries is not None:
        return _runtime_max_retries
    return max(1, DEFAULT_MAX_RETRIES)


def _should_retry_response(status_code: int, ra: Optional[float], rl_remaining: Optional[int]) -> bool:
    if status_code in RETRYABLE_STATUSES:
        return True
    if 200 <= status_code < 300:
        return False
    if ra is not None:
        return True
    if rl_remaining is not None and rl_remaining <= 0:
        return True
    return False


def _compute_wait_seconds(ra: Optional[float], rl_reset: Optional[float], backoff: float, jitter: float) -> float:
    if ra is not None:
        return min(ra + random.uniform(0, jitter), MAX_SINGLE_WAIT)
    if rl_reset:
        wait = max(0.0, rl_reset - time.time())
        return min(wait + random.uniform(0, jitter), MAX_SINGLE_WAIT)
    return min(backoff + random.uniform(0, jitter), MAX_SINGLE_WAIT)


def _parse_body(resp) -> Any:
    if getattr(resp, "status_code", 0) == 204 or not getattr(resp, "content", b"x"):
        return None
    try:
        return resp.json()
    except ValueError:
        return getattr(resp, "text", None)


def _failure_message(resp) -> str:
    body = _parse_body(resp)
    if isinstance(body, dict):
        messages = body.get("errorMessages") or [e.get("message") for e in body.get("errors", []) if isinstance(e, dict)]
        if messages:
            return "; ".join(str(m) for m in messages if m)
    reason = getattr(resp, "reason", "")
    reason = reason if isinstance(reason, str) else ""
    return f"HTTP {resp.status_code} {reason}".strip()


def perform_request_with_retries(
    session: requests.Session,
    method: str,
    url: str,
    service: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    json_body: Any = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_jitter: Optional[float] = None,
    max_backoff: Optional[float] = None,
) -> Dict[str, Any]:
    """Perform an HTTP request, retrying transient failures with exponential backoff.

    Returns a dict with the parsed 'body' and the HTTP 'status' of a 2xx response.
    Raises GatewayError for non-retryable responses or once the retry budget is spent.
    """
    base, jitter, cap = _resolve_backoff_params(backoff_base, backoff_jitter, max_backoff)
    attempts = _resolve_max_retries(max_retries)
    backoff = base
    last_error: Optional[GatewayError] = None

    for attempt in range(1, attempts + 1):
        logger.debug("%s %s (attempt %d/%d)", method, url, attempt, attempts)
        try:
            resp = session.request(method, url, headers=headers or {}, params=params or None, json=json_body, timeout=timeout)
        except requests.RequestException as ex:
            last_error = GatewayError(service, f"request failed: {ex}", url=url, status=0)
            last_error.__cause__ = ex
            wait = min(backoff + random.uniform(0, jitter), cap)
        else:
            status = resp.status_code
            if 200 <= status < 300:
                return {"body": _parse_body(resp), "status": status}
            ra, rl_remaining, rl_reset = _parse_rate_headers(resp)
            if not _should_retry_response(status, ra, rl_remaining):
                raise GatewayError(service, _failure_message(resp), url=url, status=status)
            last_error = GatewayError(service, _failure_message(resp), url=url, status=status)
            wait = _compute_wait_seconds(ra, rl_reset, backoff, jitter)

        backoff = min(backoff * 2, cap)
        if attempt < attempts:
            logger.warning("Retrying %s %s in %.2fs after: %s", method, url, wait, last_error)
            time.sleep(wait)

    raise last_error from last_error.__cause__


__all__ = ["configure_retry", "reset_retry", "perform_request_with_retries", "RETRYABLE_STATUSES"]
