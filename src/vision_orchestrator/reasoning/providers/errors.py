"""Map provider failures onto the retry taxonomy.

Structured signals win: an HTTP status code, a ``Retry-After`` header, an
SDK exception's ``status_code``. Only when none exists do we fall back to
reading the error text, and everything in the "heuristic" section below
is exactly that: best-effort wording matches that can misfire.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping

import aiohttp

from ...exceptions import (
    ImageValidationError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTransientError,
)

DEFAULT_RETRY_AFTER_SECONDS = 3600

_AUTH_STATUSES = {401, 403}
_VALIDATION_STATUSES = {400, 413, 415, 422}


def parse_retry_after_header(
    value: str | None, now: datetime | None = None
) -> float | None:
    """Seconds to wait from a ``Retry-After`` header (delta or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def _header(headers: Mapping[str, Any] | None, name: str) -> str | None:
    if not headers:
        return None
    for key, value in headers.items():
        if str(key).lower() == name.lower():
            return str(value)
    return None


def error_for_status(
    status: int,
    message: str = "",
    headers: Mapping[str, Any] | None = None,
) -> ProviderError:
    """Typed error for an HTTP status plus optional response headers."""
    text = message or f"HTTP {status}"
    if status in _AUTH_STATUSES:
        return ProviderAuthError(text, status=status)
    if status == 429 or status == 402:
        retry_after = parse_retry_after_header(_header(headers, "retry-after"))
        if retry_after is None:
            retry_after = retry_after_from_text(text)
        return ProviderRateLimitError(text, status=status, retry_after=retry_after)
    if status in _VALIDATION_STATUSES:
        # Some services report spent quota as a 400 with a quota message
        if _mentions_rate_limit(text):
            return ProviderRateLimitError(
                text, status=status, retry_after=retry_after_from_text(text)
            )
        return ImageValidationError(text, status=status)
    return ProviderTransientError(text, status=status)


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and 100 <= value < 600:
            return value
    return None


def classify_exception(exc: BaseException) -> ProviderError:
    """Turn anything an adapter raised into a ProviderError subclass."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return ProviderTransientError("Provider call timed out")
    if isinstance(exc, aiohttp.ClientResponseError):
        return error_for_status(exc.status, exc.message, exc.headers)
    status = _status_of(exc)
    if status is not None:
        response = getattr(exc, "response", None)
        headers = getattr(response, "headers", None)
        return error_for_status(status, str(exc), headers)
    if isinstance(exc, (aiohttp.ClientError, ConnectionError)):
        return ProviderTransientError(f"Network error: {exc}")
    return classify_message(str(exc))


# ── Heuristic text parsing (last resort) ───────────────

_RETRY_AFTER_PATTERNS = [
    re.compile(r"retry after (\d+(?:\.\d+)?) ?seconds?", re.IGNORECASE),
    re.compile(r"retry in (\d+(?:\.\d+)?) ?s\b", re.IGNORECASE),
    re.compile(r"try again in (\d+(?:\.\d+)?) ?(?:s\b|seconds?)", re.IGNORECASE),
]
_RATE_LIMIT_WORDS = (
    "rate limit",
    "rate_limit",
    "quota",
    "too many requests",
    "resource_exhausted",
)
_AUTH_WORDS = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "invalid_api_key",
    "authentication",
)
_VALIDATION_WORDS = (
    "image too large",
    "too large",
    "unsupported image",
    "unsupported format",
    "invalid image",
)


def _mentions_rate_limit(text: str) -> bool:
    lowered = text.lower()
    return "429" in lowered or any(w in lowered for w in _RATE_LIMIT_WORDS)


def retry_after_from_text(text: str) -> float | None:
    """Heuristic: pull a retry hint such as 'retry after 30 seconds'."""
    for pattern in _RETRY_AFTER_PATTERNS:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def classify_message(message: str) -> ProviderError:
    """Heuristic: classify an error that carries nothing but text."""
    lowered = message.lower()
    if _mentions_rate_limit(lowered):
        return ProviderRateLimitError(
            message, retry_after=retry_after_from_text(message)
        )
    if "401" in lowered or "403" in lowered or any(w in lowered for w in _AUTH_WORDS):
        return ProviderAuthError(message)
    if any(w in lowered for w in _VALIDATION_WORDS):
        return ImageValidationError(message)
    return ProviderTransientError(message or "Unknown provider failure")
