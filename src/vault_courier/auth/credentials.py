"""Immutable credential value types and the authentication state.

Pattern: State as a Sum Type
-----------------------------
A client is in exactly one of three authentication states:

  - ``Wrapped``    holds AppRole credentials whose ``secret_id`` is still a
                   single-use wrapping token.
  - ``Unwrapped``  holds a usable ``secret_id`` that has not yet been
                   exchanged for a session token.
  - ``Authorized`` holds the live session token.

Each state is its own frozen dataclass and ``AuthenticationState`` is their
union, so "half wrapped, half authorized" cannot be represented.  Moving
between states means building a new value, never mutating the old one.
"""

from __future__ import annotations

import dataclasses
import datetime
import re
from typing import Any

from vault_courier.errors import DecodingFailed

_SUB_MICROSECONDS = re.compile(r"(\.\d{6})\d+")


def redact(token: str | None) -> str:
    """Return a loggable form of *token* that keeps only a short prefix."""
    if not token:
        return "<none>"
    return f"{token[:4]}***"


def parse_timestamp(raw: Any) -> datetime.datetime:
    """Parse an RFC 3339 timestamp as returned by Vault.

    Vault emits nanoseconds; anything past microseconds is dropped.
    """
    if not isinstance(raw, str):
        raise DecodingFailed(f"expected timestamp string, got {raw!r}")
    try:
        return datetime.datetime.fromisoformat(_SUB_MICROSECONDS.sub(r"\1", raw))
    except ValueError as exc:
        raise DecodingFailed(f"invalid timestamp {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class AppRoleCredentials:
    """RoleID / SecretID pair used for AppRole login.

    Attributes:
        role_id:   Long-lived role identifier.
        secret_id: Short-lived secret, or a wrapping token that releases it.
    """

    role_id: str
    secret_id: str = dataclasses.field(repr=False)


@dataclasses.dataclass(frozen=True)
class WrappedToken:
    """A single-use response-wrapping envelope.

    Attributes:
        token:            Wrapping token; the bearer credential for exactly
                          one unwrap call.
        accessor:         Accessor of the wrapping token.
        time_to_live:     How long the envelope stays valid.
        created_at:       When Vault created the envelope.
        creation_path:    API path whose response was wrapped.
        wrapped_accessor: Accessor of a wrapped token, if the payload is one.
        request_id:       Vault request ID of the wrapping call.
    """

    token: str = dataclasses.field(repr=False)
    accessor: str
    time_to_live: datetime.timedelta
    created_at: datetime.datetime
    creation_path: str
    wrapped_accessor: str | None = None
    request_id: str | None = None

    @property
    def expires_at(self) -> datetime.datetime:
        return self.created_at + self.time_to_live

    @classmethod
    def from_response(cls, body: dict[str, Any]) -> WrappedToken:
        wrap_info = body.get("wrap_info")
        if not isinstance(wrap_info, dict):
            raise DecodingFailed("response has no wrap_info")
        try:
            return cls(
                token=wrap_info["token"],
                accessor=wrap_info["accessor"],
                time_to_live=datetime.timedelta(seconds=int(wrap_info["ttl"])),
                created_at=parse_timestamp(wrap_info["creation_time"]),
                creation_path=wrap_info["creation_path"],
                wrapped_accessor=wrap_info.get("wrapped_accessor") or None,
                request_id=body.get("request_id"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodingFailed(f"malformed wrap_info: {exc}") from exc


@dataclasses.dataclass(frozen=True)
class WrappedTokenInfo:
    """Metadata of an unconsumed wrapping envelope; never its payload."""

    time_to_live: datetime.timedelta
    created_at: datetime.datetime
    creation_path: str
    request_id: str | None = None

    @classmethod
    def from_response(cls, body: dict[str, Any]) -> WrappedTokenInfo:
        data = body.get("data")
        if not isinstance(data, dict):
            raise DecodingFailed("lookup response has no data")
        try:
            return cls(
                time_to_live=datetime.timedelta(seconds=int(data["creation_ttl"])),
                created_at=parse_timestamp(data["creation_time"]),
                creation_path=data["creation_path"],
                request_id=body.get("request_id"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodingFailed(f"malformed lookup data: {exc}") from exc


@dataclasses.dataclass(frozen=True)
class AuthResponse:
    """The ``auth`` block of a login response.

    Only ``client_token`` feeds the session store; the rest is kept so callers
    can inspect policies, lease duration and renewability.
    """

    client_token: str = dataclasses.field(repr=False)
    accessor: str | None
    token_policies: tuple[str, ...]
    policies: tuple[str, ...]
    metadata: dict[str, str]
    lease_duration: datetime.timedelta
    renewable: bool
    entity_id: str | None
    token_type: str | None
    orphan: bool
    num_uses: int
    request_id: str | None = None

    @classmethod
    def from_auth(cls, auth: Any, request_id: str | None = None) -> AuthResponse:
        if not isinstance(auth, dict) or not auth.get("client_token"):
            raise DecodingFailed("auth block has no client_token")
        try:
            return cls(
                client_token=auth["client_token"],
                accessor=auth.get("accessor"),
                token_policies=tuple(auth.get("token_policies") or ()),
                policies=tuple(auth.get("policies") or ()),
                metadata=dict(auth.get("metadata") or {}),
                lease_duration=datetime.timedelta(seconds=int(auth.get("lease_duration", 0))),
                renewable=bool(auth.get("renewable", False)),
                entity_id=auth.get("entity_id") or None,
                token_type=auth.get("token_type"),
                orphan=bool(auth.get("orphan", False)),
                num_uses=int(auth.get("num_uses", 0)),
                request_id=request_id,
            )
        except (TypeError, ValueError) as exc:
            raise DecodingFailed(f"malformed auth block: {exc}") from exc


@dataclasses.dataclass(frozen=True)
class UnwrappedResponse:
    """Payload released by an unwrap; exactly one of ``data``/``auth`` is set."""

    request_id: str | None
    data: dict[str, Any] | None
    auth: AuthResponse | None


@dataclasses.dataclass(frozen=True)
class SecretIDResponse:
    """A freshly generated AppRole SecretID."""

    secret_id: str = dataclasses.field(repr=False)
    secret_id_accessor: str
    time_to_live: datetime.timedelta
    num_uses: int
    request_id: str | None = None

    @classmethod
    def from_data(cls, data: Any, request_id: str | None = None) -> SecretIDResponse:
        if not isinstance(data, dict):
            raise DecodingFailed("secret-id response has no data")
        try:
            return cls(
                secret_id=data["secret_id"],
                secret_id_accessor=data["secret_id_accessor"],
                time_to_live=datetime.timedelta(seconds=int(data.get("secret_id_ttl", 0))),
                num_uses=int(data.get("secret_id_num_uses", 0)),
                request_id=request_id,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodingFailed(f"malformed secret-id data: {exc}") from exc


@dataclasses.dataclass(frozen=True)
class TokenLookup:
    """Properties of a token as reported by ``auth/token/lookup``."""

    token_id: str = dataclasses.field(repr=False)
    accessor: str | None
    created_at: datetime.datetime
    creation_ttl: datetime.timedelta
    time_to_live: datetime.timedelta
    explicit_max_ttl: datetime.timedelta
    expires_at: datetime.datetime | None
    display_name: str | None
    policies: tuple[str, ...]
    metadata: dict[str, str]
    renewable: bool
    token_type: str | None
    orphan: bool
    num_uses: int
    path: str | None
    request_id: str | None = None

    @classmethod
    def from_response(cls, body: dict[str, Any]) -> TokenLookup:
        data = body.get("data")
        if not isinstance(data, dict):
            raise DecodingFailed("token lookup response has no data")
        try:
            expire_time = data.get("expire_time")
            return cls(
                token_id=data["id"],
                accessor=data.get("accessor"),
                created_at=datetime.datetime.fromtimestamp(
                    int(data["creation_time"]), datetime.UTC
                ),
                creation_ttl=datetime.timedelta(seconds=int(data.get("creation_ttl", 0))),
                time_to_live=datetime.timedelta(seconds=int(data.get("ttl", 0))),
                explicit_max_ttl=datetime.timedelta(
                    seconds=int(data.get("explicit_max_ttl") or 0)
                ),
                expires_at=parse_timestamp(expire_time) if expire_time else None,
                display_name=data.get("display_name"),
                policies=tuple(data.get("policies") or ()),
                metadata=dict(data.get("meta") or {}),
                renewable=bool(data.get("renewable", False)),
                token_type=data.get("type"),
                orphan=bool(data.get("orphan", False)),
                num_uses=int(data.get("num_uses", 0)),
                path=data.get("path"),
                request_id=body.get("request_id"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodingFailed(f"malformed token lookup data: {exc}") from exc


# -- authentication state ----------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Wrapped:
    credentials: AppRoleCredentials


@dataclasses.dataclass(frozen=True)
class Unwrapped:
    credentials: AppRoleCredentials


@dataclasses.dataclass(frozen=True)
class Authorized:
    session_token: str = dataclasses.field(repr=False)


AuthenticationState = Wrapped | Unwrapped | Authorized
