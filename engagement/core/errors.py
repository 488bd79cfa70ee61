"""Error taxonomy for the engagement pipeline.

  ValidationError   bad caller input, raised before any I/O
  TransportError    raised by the HTTP transport, tagged with a kind
  UpstreamError     the remote activity source failed for one subject
  CacheReadError    cache backend failed on get / scan
  CacheWriteError   cache backend failed on set / delete

Cache errors are absorbed by the cache-aside layer on the read and write
paths and surface only from explicit invalidation.  Upstream errors always
reach the caller of a single-subject operation.
"""

from __future__ import annotations

from enum import Enum


class EngagementError(Exception):
    """Base class for everything this package raises on purpose."""


class ValidationError(EngagementError):
    pass


class TransportErrorKind(str, Enum):
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    CONNECTION = "connection"
    MALFORMED_RESPONSE = "malformed_response"


class TransportError(EngagementError):
    def __init__(
        self, kind: TransportErrorKind, message: str, *, status: int | None = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.message = message


class UpstreamError(EngagementError):
    """The activity source returned a non-success outcome or timed out."""

    def __init__(
        self,
        kind: TransportErrorKind,
        message: str,
        *,
        status: int | None = None,
        subject_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.message = message
        self.subject_id = subject_id

    @classmethod
    def from_transport(cls, exc: TransportError, subject_id: str) -> UpstreamError:
        return cls(exc.kind, exc.message, status=exc.status, subject_id=subject_id)

    def __str__(self) -> str:
        status = f" status={self.status}" if self.status is not None else ""
        return f"{self.kind.value}{status}: {self.message}"


class CacheError(EngagementError):
    pass


class CacheReadError(CacheError):
    pass


class CacheWriteError(CacheError):
    pass
