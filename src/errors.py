"""Tagged failure types for the sermon pipeline.

Every failure that leaves the pipeline carries an :class:`ErrorKind` so the
worker and the API can decide what to do with it without inspecting class
names.
"""

from __future__ import annotations

import errno
import socket
from enum import Enum

import httpx
import redis.exceptions


class ErrorKind(str, Enum):
    """Classification carried on every pipeline failure."""

    RETRYABLE_NETWORK = "retryable-network"
    MISSING_DELIMITER = "missing-delimiter"
    PROVIDER_TERMINAL_FAILURE = "provider-terminal-failure"
    LEASE_TIMEOUT = "lease-timeout"
    INVALID_INPUT = "invalid-input"
    INVALID_TRANSCRIPT = "invalid-transcript"
    CANCELLED = "cancelled"
    INTERNAL = "internal"

    @property
    def retryable(self) -> bool:
        """Whether re-running the whole item could plausibly succeed."""
        return self not in (
            ErrorKind.MISSING_DELIMITER,
            ErrorKind.INVALID_INPUT,
            ErrorKind.INVALID_TRANSCRIPT,
        )


class SermonProcessingError(Exception):
    """Base class for failures raised by the sermon pipeline."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class MissingDelimiterError(SermonProcessingError):
    """The title/body separator is absent from the extracted text."""

    kind = ErrorKind.MISSING_DELIMITER


class ProviderTerminalError(SermonProcessingError):
    """The transcription job ended in ``failed`` or ``canceled``."""

    kind = ErrorKind.PROVIDER_TERMINAL_FAILURE

    def __init__(self, status: str, provider_error: object = None) -> None:
        super().__init__(
            f"Transcription prediction failed with status: {status}. Error: {provider_error}"
        )
        self.status = status
        self.provider_error = provider_error


class LeaseTimeoutError(SermonProcessingError):
    """The task lease could not be renewed before it expired."""

    kind = ErrorKind.LEASE_TIMEOUT


class InvalidInputError(SermonProcessingError):
    """The submitted document or request cannot be processed."""

    kind = ErrorKind.INVALID_INPUT


class InvalidTranscriptError(SermonProcessingError):
    """The provider returned a transcript without a segment structure."""

    kind = ErrorKind.INVALID_TRANSCRIPT


class TranscriptionCancelledError(SermonProcessingError):
    """Waiting on the transcription job was stopped by a shutdown signal."""

    kind = ErrorKind.CANCELLED


class ArtifactNotFoundError(SermonProcessingError):
    """No artifact is stored under the requested key."""

    kind = ErrorKind.INVALID_INPUT


# Node-style codes some clients attach as ``exc.code``.
RETRYABLE_ERROR_CODES = frozenset(
    {"ECONNRESET", "ETIMEDOUT", "ECONNREFUSED", "ENOTFOUND", "EAI_AGAIN"}
)
RETRYABLE_ERRNOS = frozenset({errno.ECONNRESET, errno.ETIMEDOUT, errno.ECONNREFUSED})


def is_retryable_error(exc: BaseException) -> bool:
    """Return True for transient network failures worth retrying.

    Covers connection reset/refused, timeouts and DNS resolution failures,
    whether they surface as httpx transport errors, builtin OS errors, or
    objects carrying a Node-style ``code`` attribute.
    """
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exc, (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)):
        return True
    if isinstance(exc, (ConnectionError, TimeoutError, socket.gaierror)):
        return True
    if isinstance(exc, OSError) and exc.errno in RETRYABLE_ERRNOS:
        return True
    code = getattr(exc, "code", None)
    return isinstance(code, str) and code in RETRYABLE_ERROR_CODES


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception onto an :class:`ErrorKind`."""
    if isinstance(exc, SermonProcessingError):
        return exc.kind
    if is_retryable_error(exc):
        return ErrorKind.RETRYABLE_NETWORK
    return ErrorKind.INTERNAL
