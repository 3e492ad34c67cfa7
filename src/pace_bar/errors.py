"""Error taxonomy for the refresh engine and its retry classification.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Sequence

CREDENTIAL_RETRY_DELAY = 2.0
NETWORK_RETRY_DELAY = 3.0

LOGIN_HINT = "Run 'claude' in Terminal to log in"


class CredentialErrorKind(enum.Enum):
    NOT_LOGGED_IN = "not_logged_in"
    ACCESS_DENIED = "access_denied"
    INTERACTION_BLOCKED = "interaction_blocked"
    MALFORMED_CREDENTIAL = "malformed_credential"
    LOOKUP_FAILED = "lookup_failed"


class TransportErrorKind(enum.Enum):
    NO_CONNECTIVITY = "no_connectivity"
    DNS_FAILURE = "dns_failure"
    HOST_UNREACHABLE = "host_unreachable"
    CONNECT_FAILED = "connect_failed"
    CONNECTION_LOST = "connection_lost"
    TIMEOUT = "timeout"
    TLS_FAILURE = "tls_failure"
    INVALID_RESPONSE = "invalid_response"
    BAD_URL = "bad_url"
    OTHER = "other"


RETRYABLE_CREDENTIAL_KINDS = frozenset({
    CredentialErrorKind.NOT_LOGGED_IN,  # keychain may lag behind login after boot
    CredentialErrorKind.INTERACTION_BLOCKED,
    CredentialErrorKind.MALFORMED_CREDENTIAL,
    CredentialErrorKind.LOOKUP_FAILED,
})

RETRYABLE_TRANSPORT_KINDS = frozenset({
    TransportErrorKind.NO_CONNECTIVITY,
    TransportErrorKind.DNS_FAILURE,
    TransportErrorKind.HOST_UNREACHABLE,
    TransportErrorKind.CONNECT_FAILED,
    TransportErrorKind.CONNECTION_LOST,
    TransportErrorKind.TIMEOUT,
    TransportErrorKind.TLS_FAILURE,
})

_TRANSPORT_MESSAGES = {
    TransportErrorKind.NO_CONNECTIVITY: "No internet connection",
    TransportErrorKind.DNS_FAILURE: "Could not resolve the API host",
    TransportErrorKind.HOST_UNREACHABLE: "API host is unreachable",
    TransportErrorKind.CONNECT_FAILED: "Could not connect to the API",
    TransportErrorKind.CONNECTION_LOST: "Network connection was lost",
    TransportErrorKind.TIMEOUT: "Request timed out",
    TransportErrorKind.TLS_FAILURE: "Secure connection failed",
    TransportErrorKind.INVALID_RESPONSE: "Invalid response from API",
    TransportErrorKind.BAD_URL: "Invalid API URL",
    TransportErrorKind.OTHER: "Network error",
}


class PaceBarError(Exception):
    """Base class for every failure the refresh engine classifies."""


class CredentialError(PaceBarError):
    def __init__(
        self,
        kind: CredentialErrorKind,
        detail: str | None = None,
        available_keys: Sequence[str] = (),
    ) -> None:
        self.kind = kind
        self.detail = detail
        self.available_keys = tuple(available_keys)
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)


class TransportError(PaceBarError):
    def __init__(self, kind: TransportErrorKind, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)


class ApiError(PaceBarError):
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")

    @property
    def auth_expired(self) -> bool:
        return self.status_code == 401


@dataclass(frozen=True)
class ErrorDescriptor:
    """What the presentation layer needs to show a failed refresh."""

    category: str
    message: str
    hint: str | None = None
    status_code: int | None = None
    kind: str | None = None

    @property
    def needs_login(self) -> bool:
        if self.category == "api":
            return self.status_code == 401
        return self.category == "credential" and self.kind in (
            CredentialErrorKind.NOT_LOGGED_IN.value,
            CredentialErrorKind.MALFORMED_CREDENTIAL.value,
        )


def is_retryable(error: BaseException) -> bool:
    """Return True if *error* may clear up on its own (unlock, reconnect)."""
    if isinstance(error, CredentialError):
        return error.kind in RETRYABLE_CREDENTIAL_KINDS
    if isinstance(error, TransportError):
        return error.kind in RETRYABLE_TRANSPORT_KINDS
    return False


def retry_delay(error: BaseException) -> float:
    """Back-off before the next attempt, in seconds."""
    if isinstance(error, CredentialError):
        return CREDENTIAL_RETRY_DELAY
    return NETWORK_RETRY_DELAY


def _describe_credential(error: CredentialError) -> ErrorDescriptor:
    kind = error.kind
    hint = None
    if kind is CredentialErrorKind.NOT_LOGGED_IN:
        message = "Not logged in to Claude Code"
        hint = LOGIN_HINT
    elif kind is CredentialErrorKind.ACCESS_DENIED:
        message = "Keychain access denied. Please allow access in System Settings."
    elif kind is CredentialErrorKind.INTERACTION_BLOCKED:
        message = "Keychain interaction not allowed. Try unlocking your Mac."
    elif kind is CredentialErrorKind.MALFORMED_CREDENTIAL:
        if error.available_keys:
            keys = ", ".join(error.available_keys)
            message = f"No OAuth token in credentials. Found keys: {keys}"
        else:
            message = "Invalid credential format"
        hint = LOGIN_HINT
    else:
        detail = (error.detail or "unknown error").strip()
        message = f"Keychain access failed: {detail}"
    return ErrorDescriptor("credential", message, hint=hint, kind=kind.value)


def describe(error: BaseException) -> ErrorDescriptor:
    """Turn a classified failure into a human-readable descriptor.

    Never includes token or credential contents; credential errors only
    carry key names.
    """
    if isinstance(error, CredentialError):
        return _describe_credential(error)
    if isinstance(error, TransportError):
        return ErrorDescriptor(
            "transport", _TRANSPORT_MESSAGES[error.kind], kind=error.kind.value,
        )
    if isinstance(error, ApiError):
        if error.auth_expired:
            return ErrorDescriptor(
                "api",
                "Authentication expired. Run 'claude' to re-authenticate.",
                hint=LOGIN_HINT,
                status_code=error.status_code,
            )
        return ErrorDescriptor(
            "api", f"API error (code: {error.status_code})",
            status_code=error.status_code,
        )
    return ErrorDescriptor("unexpected", f"{type(error).__name__}: {error}")
