from __future__ import annotations
import asyncio
import errno
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx
from sqlalchemy.exc import SQLAlchemyError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    API_KEY_MISSING = "API_KEY_MISSING"
    BILLING_ISSUE = "BILLING_ISSUE"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    GENERATION_FAILED = "GENERATION_FAILED"
    PARSING_ERROR = "PARSING_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE: Dict[ErrorKind, bool] = {
    ErrorKind.API_KEY_MISSING: False,
    ErrorKind.BILLING_ISSUE: False,
    ErrorKind.RATE_LIMIT: True,
    ErrorKind.NETWORK_ERROR: True,
    ErrorKind.GENERATION_FAILED: True,
    ErrorKind.PARSING_ERROR: True,
    ErrorKind.DATABASE_ERROR: True,
    ErrorKind.UNKNOWN_ERROR: True,
}


class ValidationError(ValueError):
    """Invalid input to a store operation (bad level, empty word)."""


class GenerationError(Exception):
    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        retryable: Optional[bool] = None,
        original: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.retryable = RETRYABLE[kind] if retryable is None else retryable
        self.original = original

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self), "type": self.kind.value, "retryable": self.retryable}


_CREDENTIAL_PHRASES = ("api key", "api_key", "apikey", "authentication", "unauthorized", "unauthenticated", "permission denied")
_BILLING_PHRASES = ("quota", "billing", "payment", "insufficient funds")
_RATE_LIMIT_PHRASES = ("rate limit", "ratelimit", "rate-limit", "too many requests")
_NETWORK_PHRASES = ("network", "connection", "timeout", "timed out", "unreachable")
_NETWORK_CODES = ("ECONNRESET", "ENOTFOUND", "ETIMEDOUT", "ECONNREFUSED", "ECONNABORTED", "EPIPE", "EHOSTUNREACH")
_GENERATION_PHRASES = ("no image data returned", "no audio content", "generation failed", "no paragraphs")
_PARSING_PHRASES = ("json", "parse")
_DATABASE_PHRASES = ("database", "sqlite", "postgres", "mongodb")


def _status_code(err: BaseException) -> Optional[int]:
    if isinstance(err, httpx.HTTPStatusError):
        return err.response.status_code
    for attr in ("status_code", "status", "code"):
        value = getattr(err, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and 100 <= value < 600:
            return value
    return None


def _error_code(err: BaseException) -> Optional[str]:
    code = getattr(err, "code", None)
    if isinstance(code, str):
        return code.upper()
    if isinstance(err, OSError) and err.errno is not None:
        return errno.errorcode.get(err.errno)
    return None


def _message(err: BaseException) -> str:
    parts = [str(err) or type(err).__name__]
    if isinstance(err, httpx.HTTPStatusError):
        try:
            parts.append(err.response.text)
        except Exception:
            pass
    return " ".join(parts).lower()


def _has(message: str, phrases) -> bool:
    return any(p in message for p in phrases)


def classify(err: BaseException) -> GenerationError:
    """Map an arbitrary failure onto the closed set of error kinds.

    Checked in priority order: credentials, quota/billing, rate limit,
    network, generation, parsing, database. Anything else is assumed
    transient.
    """
    if isinstance(err, GenerationError):
        return err

    message = _message(err)
    status = _status_code(err)
    code = _error_code(err)

    if _has(message, _CREDENTIAL_PHRASES) or status in (401, 403):
        return GenerationError("API key is missing or invalid", ErrorKind.API_KEY_MISSING, original=err)

    if _has(message, _BILLING_PHRASES) or status == 402:
        return GenerationError("API quota exceeded or billing issue", ErrorKind.BILLING_ISSUE, original=err)

    if _has(message, _RATE_LIMIT_PHRASES) or status == 429:
        return GenerationError("Rate limit exceeded, please try again later", ErrorKind.RATE_LIMIT, original=err)

    if (
        isinstance(err, (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError))
        or code in _NETWORK_CODES
        or status in (502, 503, 504)
        or _has(message, _NETWORK_PHRASES)
    ):
        return GenerationError("Network connection error", ErrorKind.NETWORK_ERROR, original=err)

    if _has(message, _GENERATION_PHRASES):
        return GenerationError("Content generation failed", ErrorKind.GENERATION_FAILED, original=err)

    if isinstance(err, json.JSONDecodeError) or _has(message, _PARSING_PHRASES):
        return GenerationError("Failed to parse generated content", ErrorKind.PARSING_ERROR, original=err)

    if isinstance(err, SQLAlchemyError) or _has(message, _DATABASE_PHRASES):
        return GenerationError("Database error", ErrorKind.DATABASE_ERROR, original=err)

    return GenerationError(str(err) or "Unknown error occurred", ErrorKind.UNKNOWN_ERROR, original=err)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 1,
    delay_ms: int = 1000,
) -> T:
    """Run ``operation``, retrying retryable failures up to ``max_retries`` times.

    Terminal failures are raised on the first attempt. Whatever is raised is
    already classified.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            classified = classify(exc)
            if not classified.retryable or attempt >= max_retries:
                if classified is exc:
                    raise
                raise classified from exc
            attempt += 1
            logger.warning(
                "Retrying after %s (attempt %d of %d): %s",
                classified.kind.value, attempt, max_retries, exc,
            )
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
