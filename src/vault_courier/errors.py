"""Error taxonomy shared by every component that talks to Vault.

Pattern: One Taxonomy, Preserved Status
----------------------------------------
Vault answers with a handful of documented status codes and an open-ended set
of undocumented ones.  Rather than an exception class per endpoint, every
failure collapses into a small set of *kinds* (``PermissionDenied``,
``BadRequest``, ``OperationFailed`` ...).  Callers pattern-match on the kind
while ``status_code`` and ``errors`` keep the wire-level detail for logging.
"""

from __future__ import annotations

from typing import Any


class VaultClientError(Exception):
    """Base class for all errors raised by ``vault_courier``."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors: list[str] = list(errors or [])


class ClientIsNotLoggedIn(VaultClientError):
    """Raised when an operation needs a session token and none is held."""

    def __init__(self, message: str = "Vault client has not authenticated") -> None:
        super().__init__(message)


class InvalidState(VaultClientError):
    """Raised when a state transition is requested from an incompatible state."""

    def __init__(self, state: str) -> None:
        super().__init__(f"Invalid state: {state}")


class InvalidArgument(VaultClientError):
    """Raised when caller-supplied parameters break a protocol invariant."""


class PermissionDenied(VaultClientError):
    """Raised when Vault rejects credentials or a wrapping token."""

    def __init__(
        self,
        message: str = "Permission denied",
        *,
        status_code: int | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, errors=errors)


class DecodingFailed(VaultClientError):
    """Raised when a response body does not have the expected shape."""

    def __init__(self, message: str = "Decoding failed") -> None:
        super().__init__(message)


class BadRequest(VaultClientError):
    """Raised on a 400 response; ``errors`` holds Vault's literal messages."""

    def __init__(self, errors: list[str] | None = None) -> None:
        errors = list(errors or [])
        detail = f": {', '.join(errors)}" if errors else ""
        super().__init__(
            f"Vault returned a bad request{detail}", status_code=400, errors=errors
        )


class OperationFailed(VaultClientError):
    """Raised on any unexpected status code, which is kept in ``status_code``."""

    def __init__(self, status_code: int, errors: list[str] | None = None) -> None:
        super().__init__(
            f"operation failed with {status_code}",
            status_code=status_code,
            errors=errors,
        )


class TransportError(VaultClientError):
    """Raised when the HTTP request itself fails (connection, timeout, TLS)."""


def payload_errors(payload: Any) -> list[str]:
    """Extract Vault's ``errors`` list from a decoded response body."""
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list):
            return [str(e) for e in errors]
    return []


def error_for_status(status_code: int, payload: Any = None) -> VaultClientError:
    """Map a non-2xx Vault response to an error kind."""
    errors = payload_errors(payload)
    if status_code == 400:
        return BadRequest(errors)
    if status_code in (401, 403):
        return PermissionDenied(status_code=status_code, errors=errors)
    return OperationFailed(status_code, errors)


def rejection_for_status(status_code: int, payload: Any = None) -> VaultClientError:
    """Like ``error_for_status`` but every 4xx is a ``PermissionDenied``.

    Used by login and unwrap, where any client error means the credential or
    envelope was refused.
    """
    if 400 <= status_code < 500:
        return PermissionDenied(status_code=status_code, errors=payload_errors(payload))
    return OperationFailed(status_code, payload_errors(payload))
