"""``VaultClient``: one object wiring transport, token store and auth flow.

A typical application bootstraps from AppRole credentials whose SecretID was
delivered wrapped::

    client = VaultClient(
        VaultSettings.load("config/settings.yaml"),
        approle=AppRoleCredentials(role_id=role_id, secret_id=wrapping_token),
        wrapped=True,
    )
    async with client:
        if not await client.authenticate():
            raise SystemExit("could not log in to Vault")
        lease = await client.read_dynamic_credentials("migrator")

Every component borrows the session token from the client's single
``SessionTokenStore`` for the length of one call.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from typing import Any

from vault_courier.auth.approle import AppRoleClient
from vault_courier.auth.authenticator import Authenticator, TokenAuthenticator
from vault_courier.auth.credentials import (
    AppRoleCredentials,
    AuthenticationState,
    Authorized,
    Unwrapped,
    Wrapped,
    WrappedToken,
)
from vault_courier.auth.session import SessionTokenStore
from vault_courier.auth.state_machine import AuthenticationStateMachine
from vault_courier.auth.token import TokenClient
from vault_courier.errors import ClientIsNotLoggedIn, InvalidArgument, VaultClientError
from vault_courier.settings import VaultSettings
from vault_courier.vault.kv import KeyValueClient
from vault_courier.vault.leases import (
    DynamicSecretLease,
    SecretLeaseClient,
    StaticSecretLease,
)
from vault_courier.vault.transport import VaultTransport
from vault_courier.vault.wrapping import ResponseWrappingClient

logger = logging.getLogger(__name__)


class VaultClient:
    """Authenticated access to Vault for one application identity.

    Pass either *approle* credentials (with ``wrapped=True`` when the
    SecretID is a wrapping token) or an existing *token*.  Nothing is sent
    until ``authenticate()`` is awaited.
    """

    def __init__(
        self,
        settings: VaultSettings | None = None,
        *,
        approle: AppRoleCredentials | None = None,
        wrapped: bool = False,
        token: str | None = None,
        transport: VaultTransport | None = None,
    ) -> None:
        if approle is not None and token is not None:
            raise InvalidArgument("Pass either AppRole credentials or a token, not both")

        self._settings = settings or VaultSettings()
        self._transport = transport or VaultTransport(
            self._settings.address,
            namespace=self._settings.namespace,
            timeout=self._settings.timeout,
            verify=self._settings.verify,
        )
        self._store = SessionTokenStore()
        self._wrapping = ResponseWrappingClient(self._transport, self._store)
        self._leases = SecretLeaseClient(self._transport, self._store)
        self._tokens = TokenClient(self._transport, self._store)

        self._pending: Authenticator | None = None
        self._machine: AuthenticationStateMachine | None = None
        if approle is not None:
            initial = Wrapped(approle) if wrapped else Unwrapped(approle)
            self._machine = self._make_machine(initial)
        elif token is not None:
            self._pending = TokenAuthenticator(token)

    # -- authentication ------------------------------------------------------

    @property
    def settings(self) -> VaultSettings:
        return self._settings

    @property
    def state(self) -> AuthenticationState | None:
        """Current authentication state, ``None`` before any credentials."""
        return self._machine.state if self._machine is not None else None

    async def authenticate(self) -> bool:
        """Log in with the credentials given at construction.

        Returns ``True`` once authorized; repeated calls are free.  Failures
        are logged and reported as ``False``.
        """
        if self._machine is not None:
            return await self._machine.authenticate()
        if self._pending is None:
            logger.debug("authenticate() called on a client without credentials")
            return False
        try:
            await self.login(self._pending)
        except VaultClientError as exc:
            logger.debug("Authentication via %s failed: %s", self._pending.method, exc)
            return False
        return True

    async def login(self, authenticator: Authenticator) -> None:
        """Log in with *authenticator*, replacing any current session.

        Errors propagate to the caller.
        """
        if self._machine is None:
            token = await authenticator.authenticate()
            self._machine = self._make_machine(Authorized(token))
            logger.info("Login authorized via %s", authenticator.method)
        else:
            await self._machine.authorize(authenticator)

    def session_token(self) -> str:
        """Return the session token or raise ``ClientIsNotLoggedIn``."""
        token = self._store.read()
        if token is None:
            raise ClientIsNotLoggedIn()
        return token

    def reset_session(self) -> None:
        """Forget the session token and the credentials it came from.

        Afterwards ``state`` is ``None`` and ``authenticate()`` returns
        ``False``; use ``login()`` to authenticate again.  The token is not
        revoked, see ``logout()``.
        """
        self._store.replace(None)
        self._machine = None
        self._pending = None
        logger.info("Session reset")

    async def logout(self) -> None:
        """Revoke the session token, then forget it as ``reset_session()`` does.

        If the revocation fails the error propagates and the session is kept,
        so the call can be retried.
        """
        await self._tokens.revoke_self()
        self.reset_session()

    # -- components ----------------------------------------------------------

    @property
    def wrapping(self) -> ResponseWrappingClient:
        return self._wrapping

    @property
    def leases(self) -> SecretLeaseClient:
        return self._leases

    @property
    def tokens(self) -> TokenClient:
        return self._tokens

    def approle(self, mount_path: str | None = None) -> AppRoleClient:
        return AppRoleClient(
            self._transport,
            self._store,
            mount_path=mount_path or self._settings.approle_mount,
        )

    def kv(self, mount_path: str | None = None) -> KeyValueClient:
        return KeyValueClient(
            self._transport,
            self._store,
            mount_path=mount_path or self._settings.kv_mount,
        )

    async def wrap_secrets(
        self,
        secrets: Mapping[str, str],
        wrap_ttl: str | int | datetime.timedelta | None = None,
    ) -> WrappedToken:
        """Wrap *secrets*; *wrap_ttl* defaults to the configured ``wrap_ttl``."""
        if wrap_ttl is None:
            wrap_ttl = self._settings.wrap_ttl
        return await self._wrapping.wrap(secrets, wrap_ttl)

    async def read_static_credentials(
        self, role_name: str, engine_path: str | None = None
    ) -> StaticSecretLease | None:
        return await self._leases.read_static(
            role_name, engine_path or self._settings.database_mount
        )

    async def read_dynamic_credentials(
        self, role_name: str, engine_path: str | None = None
    ) -> DynamicSecretLease | None:
        return await self._leases.read_dynamic(
            role_name, engine_path or self._settings.database_mount
        )

    # -- lifecycle -----------------------------------------------------------

    def close(self) -> None:
        self._transport.close()

    async def __aenter__(self) -> VaultClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    # -- private helpers -----------------------------------------------------

    def _make_machine(self, state: AuthenticationState) -> AuthenticationStateMachine:
        return AuthenticationStateMachine(
            state,
            transport=self._transport,
            store=self._store,
            wrapping=self._wrapping,
            approle_mount=self._settings.approle_mount,
        )
