"""Failure taxonomy and the retryable-vs-fatal classification policy.

Every failure raised by an external call (LLM provider, SMTP relay) is
funnelled through classify() before the retry engine decides whether to try
again. The decision table is ordered; the first matching row wins:

1. message contains "timed out"             -> TIMEOUT, retryable
2. network code (refused/reset/timeout/socket) -> NETWORK, retryable
3. transient SMTP reply (421/450/451/452)    -> SERVER_FAULT, retryable
4. HTTP 408/429/500/502/503/504              -> RATE_LIMITED (429) or SERVER_FAULT, retryable
5. any other HTTP 4xx                        -> VALIDATION_FAULT, fatal
6. anything else                             -> UNKNOWN, fatal
"""

from __future__ import annotations

import errno
import socket
from enum import Enum

import aiosmtplib
import litellm


class ErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    SERVER_FAULT = "server_fault"
    VALIDATION_FAULT = "validation_fault"
    UNKNOWN = "unknown"


class NetworkCode(str, Enum):
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    TIMEOUT = "timeout"
    SOCKET_ERROR = "socket_error"


RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
RETRYABLE_SMTP_CODES = frozenset({421, 450, 451, 452})

_ERRNO_CODES = {
    errno.ECONNREFUSED: NetworkCode.CONNECTION_REFUSED,
    errno.ECONNRESET: NetworkCode.CONNECTION_RESET,
    errno.ETIMEDOUT: NetworkCode.TIMEOUT,
}


class ClassifiedError(Exception):
    """A failure annotated with its kind and a retryability decision.

    The original message is kept for logging; HTTP responses expose only
    the kind.
    """

    def __init__(
        self,
        kind: ErrorKind,
        retryable: bool,
        original_message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(original_message)
        self.kind = kind
        self.retryable = retryable
        self.original_message = original_message
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(kind={self.kind.value!r}, retryable={self.retryable}, "
            f"original_message={self.original_message!r})"
        )

    @classmethod
    def validation(cls, message: str) -> ClassifiedError:
        return cls(ErrorKind.VALIDATION_FAULT, retryable=False, original_message=message)

    @classmethod
    def timeout(cls, message: str) -> ClassifiedError:
        return cls(ErrorKind.TIMEOUT, retryable=True, original_message=message)


class ServiceUnavailableError(RuntimeError):
    """A collaborator (LLM key, SMTP relay) is not configured."""


def _message_of(error: BaseException) -> str:
    message = str(error)
    if not message:
        message = type(error).__name__
    return message


def network_code(error: BaseException) -> NetworkCode | None:
    """Map a low-level transport failure to a NetworkCode, if it is one."""
    if isinstance(error, (aiosmtplib.SMTPConnectTimeoutError, aiosmtplib.SMTPTimeoutError)):
        return NetworkCode.TIMEOUT
    if isinstance(error, (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected)):
        return NetworkCode.SOCKET_ERROR
    if isinstance(error, litellm.APIConnectionError):
        return NetworkCode.SOCKET_ERROR

    code = getattr(error, "errno", None)
    if code in _ERRNO_CODES:
        return _ERRNO_CODES[code]

    if isinstance(error, ConnectionRefusedError):
        return NetworkCode.CONNECTION_REFUSED
    if isinstance(error, ConnectionResetError):
        return NetworkCode.CONNECTION_RESET
    if isinstance(error, (TimeoutError, socket.timeout)):
        return NetworkCode.TIMEOUT
    if isinstance(error, OSError):
        return NetworkCode.SOCKET_ERROR
    return None


def status_code(error: BaseException) -> int | None:
    """Extract an HTTP status from provider SDK or httpx exceptions."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def smtp_code(error: BaseException) -> int | None:
    if isinstance(error, aiosmtplib.SMTPResponseException):
        return error.code
    return None


def classify(error: BaseException) -> ClassifiedError:
    """Classify a raw failure. Pure and deterministic."""
    if isinstance(error, ClassifiedError):
        return error

    message = _message_of(error)
    status = status_code(error)

    if "timed out" in message:
        return ClassifiedError(ErrorKind.TIMEOUT, True, message, status)

    if network_code(error) is not None:
        return ClassifiedError(ErrorKind.NETWORK, True, message, status)

    if smtp_code(error) in RETRYABLE_SMTP_CODES:
        return ClassifiedError(ErrorKind.SERVER_FAULT, True, message, status)

    if status in RETRYABLE_STATUS_CODES:
        kind = ErrorKind.RATE_LIMITED if status == 429 else ErrorKind.SERVER_FAULT
        return ClassifiedError(kind, True, message, status)

    if status is not None and 400 <= status <= 499:
        return ClassifiedError(ErrorKind.VALIDATION_FAULT, False, message, status)

    return ClassifiedError(ErrorKind.UNKNOWN, False, message, status)
