"""
Error Types
===========
A single exception type tagged with one of a small, fixed set of kinds.

Callers branch on ``exc.kind`` instead of catching a subclass per failure:

    try:
        token = manager.ensure_valid_token()
    except ConnectSessionError as exc:
        if exc.kind is ErrorKind.INVALID_CREDENTIALS:
            ...

Kinds:
    - ``INVALID_CREDENTIALS``    — wrong identifier / secret, never retried
    - ``AUTHENTICATION_FAILURE`` — handshake broke or every recovery path failed
    - ``CONNECTION_FAILURE``     — timeout / network error, safe to retry
    - ``RATE_LIMITED``           — HTTP 429, surfaced as-is
    - ``REQUEST_FAILED``         — any other non-2xx, status + body preserved
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    AUTHENTICATION_FAILURE = "authentication_failure"
    CONNECTION_FAILURE = "connection_failure"
    RATE_LIMITED = "rate_limited"
    REQUEST_FAILED = "request_failed"


_RETRYABLE_KINDS = frozenset({ErrorKind.CONNECTION_FAILURE, ErrorKind.RATE_LIMITED})


class ConnectSessionError(Exception):
    """Base (and only) exception raised by the session subsystem."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after
        if cause is not None:
            self.__cause__ = cause

    @property
    def retryable(self) -> bool:
        """True if the caller may retry the same operation later."""
        return self.kind in _RETRYABLE_KINDS

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.kind.value}: {self.message} (HTTP {self.status_code})"
        return f"{self.kind.value}: {self.message}"

    # ── Constructors ──────────────────────────────────────────────

    @classmethod
    def invalid_credentials(cls, message: str) -> "ConnectSessionError":
        return cls(ErrorKind.INVALID_CREDENTIALS, message)

    @classmethod
    def authentication_failure(
        cls,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ) -> "ConnectSessionError":
        return cls(
            ErrorKind.AUTHENTICATION_FAILURE,
            message,
            cause=cause,
            status_code=status_code,
        )

    @classmethod
    def connection_failure(
        cls, message: str, *, cause: Optional[BaseException] = None
    ) -> "ConnectSessionError":
        return cls(ErrorKind.CONNECTION_FAILURE, message, cause=cause)

    @classmethod
    def rate_limited(
        cls, message: str, *, retry_after: Optional[float] = None
    ) -> "ConnectSessionError":
        return cls(
            ErrorKind.RATE_LIMITED,
            message,
            status_code=429,
            retry_after=retry_after,
        )

    @classmethod
    def request_failed(
        cls, status_code: int, body: str, message: str = ""
    ) -> "ConnectSessionError":
        return cls(
            ErrorKind.REQUEST_FAILED,
            message or f"API request failed: {status_code}",
            status_code=status_code,
            body=body,
        )
