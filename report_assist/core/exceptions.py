"""Core exceptions and the failure taxonomy used across the generation layer.

Every failure surfaced by the generation client is a ``GenerationError``
carrying one ``ErrorKind`` and a ``retryable`` flag. ``classify`` turns any raw
failure (SDK exception, transport exception, plain mapping) into one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception for configuration-related errors (e.g., unreadable prompt templates)."""


class ErrorKind(str, Enum):
    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    TIMEOUT = "timeout"
    NETWORK = "network"
    STREAM_ERROR = "stream_error"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self not in (ErrorKind.INVALID_REQUEST, ErrorKind.AUTHENTICATION)


class GenerationError(Exception):
    """A classified generation failure.

    Attributes are fixed at construction. ``retryable`` defaults to the kind's
    default when not given explicitly.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        retryable: bool | None = None,
        cause: Any = None,
    ):
        super().__init__(message)
        self._message = message
        self._kind = kind
        self._retryable = kind.retryable if retryable is None else retryable
        self._cause = cause

    @property
    def message(self) -> str:
        return self._message

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def cause(self) -> Any:
        return self._cause

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "kind": self.kind.value, "retryable": self.retryable}

    def __repr__(self) -> str:
        return f"GenerationError(message={self.message!r}, kind={self.kind.value}, retryable={self.retryable})"


UNKNOWN_MESSAGE = "Unknown error occurred"
STREAM_ERROR_MARKER = "stream_error"

_TIMEOUT_TYPES = (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)


def _network_types() -> tuple[type[BaseException], ...]:
    # Imported on use so loading this module does not load the provider SDK
    from openai import APIConnectionError

    return (ConnectionError, httpx.NetworkError, APIConnectionError)


def _lookup(raw: Any, name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw.get(name)
    return getattr(raw, name, None)


def _status_of(raw: Any) -> int | None:
    """Status code from ``status_code``/``status``, or from an attached HTTP response."""
    for candidate in (_lookup(raw, "status_code"), _lookup(raw, "status")):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    if isinstance(raw, httpx.HTTPStatusError):
        return raw.response.status_code
    return None


def _message_of(raw: Any) -> str:
    if isinstance(raw, BaseException):
        text = str(raw) or _lookup(raw, "message")
    else:
        text = _lookup(raw, "message")
        if text is None and isinstance(raw, str):
            text = raw
    if isinstance(text, str) and text.strip():
        return text
    return UNKNOWN_MESSAGE


def classify(raw: Any) -> GenerationError:
    """Map a raw failure to a ``GenerationError``. Never raises."""
    if isinstance(raw, GenerationError):
        return raw
    if isinstance(raw, BaseException) and not isinstance(raw, Exception):
        # Cancellation and interpreter exit must never lead to another attempt
        return GenerationError(_message_of(raw), ErrorKind.UNKNOWN, retryable=False, cause=raw)

    try:
        status = _status_of(raw)
        message = _message_of(raw)
        lowered = message.lower()
        cause = raw

        if status in (401, 403):
            return GenerationError(message, ErrorKind.AUTHENTICATION, cause=cause)
        if status == 429:
            return GenerationError(message, ErrorKind.RATE_LIMIT, cause=cause)
        if status is not None and status >= 500:
            return GenerationError(message, ErrorKind.SERVER, cause=cause)
        if (
            status == 408
            or isinstance(raw, _TIMEOUT_TYPES)
            or "timeout" in lowered
            or "timed out" in lowered
        ):
            return GenerationError(message, ErrorKind.TIMEOUT, cause=cause)
        if status == 400:
            return GenerationError(message, ErrorKind.INVALID_REQUEST, cause=cause)
        if isinstance(raw, _network_types()) or "network" in lowered or "connection" in lowered:
            return GenerationError(message, ErrorKind.NETWORK, cause=cause)
        if _lookup(raw, "type") == STREAM_ERROR_MARKER:
            return GenerationError(message, ErrorKind.STREAM_ERROR, cause=cause)
        return GenerationError(message, ErrorKind.UNKNOWN, cause=cause)
    except Exception:
        # Objects with hostile attribute access still get a result
        logger.debug("Failed to inspect raw error of type %s", type(raw).__name__, exc_info=True)
        return GenerationError(UNKNOWN_MESSAGE, ErrorKind.UNKNOWN, cause=raw)
