"""Database credential leases from Vault's database secrets engine.

Pattern: Credential Brokering
------------------------------
No component holds long-lived database passwords.  Each read goes through
the database engine under the current session token:

  - A *static* role maps to one persistent database user whose password
    Vault rotates on a schedule, independent of our reads.
  - A *dynamic* role mints a brand-new user for every read; Vault drops it
    once ``time_to_live`` elapses or its use count runs out.

Every lease carries its TTL and the moment it was issued, so callers can
tell how long a credential is good for and must not cache it past that.

Broker errors on these reads collapse to ``None``; a missing session token is
still a ``ClientIsNotLoggedIn`` raised before any request is made.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from typing import Any

from vault_courier.auth.credentials import parse_timestamp
from vault_courier.auth.session import SessionTokenStore
from vault_courier.errors import ClientIsNotLoggedIn, DecodingFailed, payload_errors
from vault_courier.vault.transport import VaultResponse, VaultTransport

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_MOUNT = "database"


@dataclasses.dataclass(frozen=True)
class RotationPeriod:
    """Password rotated every ``period``."""

    period: datetime.timedelta


@dataclasses.dataclass(frozen=True)
class RotationSchedule:
    """Password rotated on a cron ``schedule`` within an optional window."""

    schedule: str
    window: datetime.timedelta | None = None


@dataclasses.dataclass(frozen=True)
class SecretLease:
    """A username/password pair with an explicit expiry horizon.

    Attributes:
        username:     Database user name.
        password:     Database password.
        time_to_live: Remaining validity reported by Vault at read time.
        request_id:   Vault request ID of the read.
        issued_at:    UTC time the lease was read.
    """

    username: str
    password: str = dataclasses.field(repr=False)
    time_to_live: datetime.timedelta
    request_id: str | None = None
    issued_at: datetime.datetime = dataclasses.field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC)
    )

    @property
    def expires_at(self) -> datetime.datetime:
        return self.issued_at + self.time_to_live

    @property
    def expires_in(self) -> datetime.timedelta:
        remaining = self.expires_at - datetime.datetime.now(datetime.UTC)
        return max(remaining, datetime.timedelta(0))

    @property
    def is_expired(self) -> bool:
        return datetime.datetime.now(datetime.UTC) >= self.expires_at


@dataclasses.dataclass(frozen=True)
class StaticSecretLease(SecretLease):
    """Current password of a static role; Vault rotates it on its own."""

    last_rotated_at: datetime.datetime | None = None
    rotation: RotationPeriod | RotationSchedule | None = None


@dataclasses.dataclass(frozen=True)
class DynamicSecretLease(SecretLease):
    """Disposable credentials minted for this read only."""

    lease_id: str | None = None
    lease_duration: datetime.timedelta | None = None
    renewable: bool = False
    number_of_uses: int | None = None


class SecretLeaseClient:
    """Reads static and dynamic database credentials."""

    def __init__(self, transport: VaultTransport, store: SessionTokenStore) -> None:
        self._transport = transport
        self._store = store

    async def read_static(
        self,
        role_name: str,
        engine_path: str = DEFAULT_DATABASE_MOUNT,
    ) -> StaticSecretLease | None:
        """Return the current rotated credential of *role_name*, or ``None``."""
        response = await self._read(engine_path, "static-creds", role_name)
        if response is None:
            return None

        body, data = _split(response)
        try:
            rotation: RotationPeriod | RotationSchedule | None = None
            if data.get("rotation_period"):
                rotation = RotationPeriod(
                    datetime.timedelta(seconds=int(data["rotation_period"]))
                )
            elif data.get("rotation_schedule"):
                window = data.get("rotation_window")
                rotation = RotationSchedule(
                    schedule=data["rotation_schedule"],
                    window=datetime.timedelta(seconds=int(window)) if window else None,
                )
            last_rotation = data.get("last_vault_rotation")
            lease = StaticSecretLease(
                username=data["username"],
                password=data["password"],
                time_to_live=datetime.timedelta(seconds=int(data.get("ttl", 0))),
                request_id=body.get("request_id"),
                last_rotated_at=parse_timestamp(last_rotation) if last_rotation else None,
                rotation=rotation,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodingFailed(f"malformed static credentials: {exc}") from exc

        logger.info(
            "Read static credentials for role=%s at %s, ttl=%s",
            role_name,
            engine_path,
            lease.time_to_live,
        )
        return lease

    async def read_dynamic(
        self,
        role_name: str,
        engine_path: str = DEFAULT_DATABASE_MOUNT,
    ) -> DynamicSecretLease | None:
        """Mint fresh credentials for *role_name*, or return ``None``.

        The result self-expires after ``time_to_live``; treat it as
        disposable.
        """
        response = await self._read(engine_path, "creds", role_name)
        if response is None:
            return None

        body, data = _split(response)
        try:
            lease_duration = body.get("lease_duration")
            ttl = data.get("ttl", lease_duration)
            num_uses = data.get("num_uses")
            lease = DynamicSecretLease(
                username=data["username"],
                password=data["password"],
                time_to_live=datetime.timedelta(seconds=int(ttl or 0)),
                request_id=body.get("request_id"),
                lease_id=body.get("lease_id") or None,
                lease_duration=(
                    datetime.timedelta(seconds=int(lease_duration))
                    if lease_duration is not None
                    else None
                ),
                renewable=bool(body.get("renewable", False)),
                number_of_uses=int(num_uses) if num_uses is not None else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodingFailed(f"malformed dynamic credentials: {exc}") from exc

        logger.info(
            "Issued dynamic credentials for role=%s at %s, expires in %ss",
            role_name,
            engine_path,
            int(lease.time_to_live.total_seconds()),
        )
        return lease

    # -- private helpers -----------------------------------------------------

    async def _read(
        self, engine_path: str, kind: str, role_name: str
    ) -> VaultResponse | None:
        token = self._store.read()
        if token is None:
            raise ClientIsNotLoggedIn()

        response = await self._transport.request(
            "get",
            f"{engine_path.strip('/')}/{kind}/{role_name}",
            token=token,
        )
        if response.status_code != 200:
            errors = payload_errors(response.body)
            logger.debug(
                "Reading %s/%s/%s failed with %s: %s",
                engine_path,
                kind,
                role_name,
                response.status_code,
                ", ".join(errors),
            )
            return None
        return response


def _split(response: VaultResponse) -> tuple[dict[str, Any], dict[str, Any]]:
    body = response.body if isinstance(response.body, dict) else {}
    data = body.get("data")
    if not isinstance(data, dict):
        raise DecodingFailed("credentials response has no data")
    return body, data
