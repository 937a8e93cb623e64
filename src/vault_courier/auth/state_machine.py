"""Drives AppRole credentials from wrapped, to unwrapped, to authorized.

Pattern: Forward-Only Pipeline
-------------------------------
::

    Wrapped --unwrap--> Unwrapped --login--> Authorized

``authenticate()`` advances as far as it can and reports the outcome as a
boolean.  A failed step leaves the machine exactly where that step started,
so a retry loop can call ``authenticate()`` again (perhaps after swapping in
a fresh wrapped secret) without rebuilding the client.  Once ``Authorized``,
further calls are free no-ops, which makes it safe to call before every
privileged operation.

Unwrapping is at-most-once on the broker, so two concurrent attempts would
lock each other out.  An ``asyncio.Lock`` makes ``authenticate()``
single-flight per machine.  That lock spans the network calls; the session
store's own lock never does.

An unwrap request cannot be recalled once it has been sent.  It therefore
runs in a task owned by the machine: a cancelled caller stops waiting and
the state stays ``Wrapped``, while the task keeps the released SecretID for
the next ``authenticate()`` to pick up instead of sending a second unwrap.
"""

from __future__ import annotations

import asyncio
import logging

from vault_courier.auth.authenticator import (
    DEFAULT_APPROLE_MOUNT,
    AppRoleAuthenticator,
    Authenticator,
)
from vault_courier.auth.credentials import (
    AppRoleCredentials,
    AuthenticationState,
    Authorized,
    Unwrapped,
    Wrapped,
    redact,
)
from vault_courier.auth.session import SessionTokenStore
from vault_courier.errors import DecodingFailed, InvalidState, VaultClientError
from vault_courier.vault.transport import VaultTransport
from vault_courier.vault.wrapping import ResponseWrappingClient

logger = logging.getLogger(__name__)


class AuthenticationStateMachine:
    """Owns the ``AuthenticationState`` of one client."""

    def __init__(
        self,
        state: AuthenticationState,
        *,
        transport: VaultTransport,
        store: SessionTokenStore,
        wrapping: ResponseWrappingClient,
        approle_mount: str = DEFAULT_APPROLE_MOUNT,
    ) -> None:
        self._state = state
        self._transport = transport
        self._store = store
        self._wrapping = wrapping
        self._approle_mount = approle_mount
        self._flight = asyncio.Lock()
        self._unwrap_task: asyncio.Task[str] | None = None
        if isinstance(state, Authorized):
            store.replace(state.session_token)

    @property
    def state(self) -> AuthenticationState:
        return self._state

    @property
    def is_authorized(self) -> bool:
        return isinstance(self._state, Authorized) and self._store.is_authenticated

    async def authenticate(self) -> bool:
        """Advance to ``Authorized``; return whether the client is logged in.

        Broker and decoding failures are logged at debug level and reported
        as ``False``.  Cancellation propagates and leaves the state untouched.
        """
        async with self._flight:
            while True:
                state = self._state
                if isinstance(state, Authorized):
                    if self._store.read() is None:
                        logger.debug("Session was reset; authenticate again with login()")
                        return False
                    return True
                try:
                    if isinstance(state, Wrapped):
                        await self._unwrap(state)
                    else:
                        await self._login(state)
                except VaultClientError as exc:
                    logger.debug(
                        "Authentication failed in state %s: %s",
                        type(state).__name__,
                        exc,
                    )
                    return False

    async def unwrap(self) -> Unwrapped:
        """Perform only the ``Wrapped -> Unwrapped`` step.

        Raises ``InvalidState`` unless the machine is ``Wrapped``; broker
        errors propagate.
        """
        async with self._flight:
            state = self._state
            if not isinstance(state, Wrapped):
                raise InvalidState(
                    f"cannot unwrap while {type(state).__name__.lower()}"
                )
            return await self._unwrap(state)

    async def authorize(self, authenticator: Authenticator) -> None:
        """Log in with *authenticator* and jump straight to ``Authorized``.

        Errors propagate; the state changes only after the login succeeds.
        """
        async with self._flight:
            token = await authenticator.authenticate()
            self._set_authorized(token)
            logger.info("Login authorized via %s", authenticator.method)

    # -- private helpers -----------------------------------------------------

    async def _unwrap(self, state: Wrapped) -> Unwrapped:
        credentials = state.credentials
        task = self._unwrap_task
        if task is None:
            task = asyncio.create_task(self._fetch_secret_id(credentials))
            self._unwrap_task = task
        try:
            secret_id = await asyncio.shield(task)
        finally:
            if task.done():
                self._unwrap_task = None

        unwrapped = Unwrapped(
            AppRoleCredentials(role_id=credentials.role_id, secret_id=secret_id)
        )
        self._state = unwrapped
        logger.debug("SecretID for role_id=%s unwrapped", credentials.role_id)
        return unwrapped

    async def _fetch_secret_id(self, credentials: AppRoleCredentials) -> str:
        response = await self._wrapping.unwrap(None, bearer=credentials.secret_id)
        secret_id = (response.data or {}).get("secret_id")
        if not isinstance(secret_id, str) or not secret_id:
            raise DecodingFailed("Unwrapped payload has no secret_id")
        return secret_id

    async def _login(self, state: Unwrapped) -> None:
        authenticator = AppRoleAuthenticator(
            self._transport, state.credentials, mount_path=self._approle_mount
        )
        token = await authenticator.authenticate()
        self._set_authorized(token)
        logger.info("Login authorized for role_id=%s", state.credentials.role_id)

    def _set_authorized(self, token: str) -> None:
        self._store.replace(token)
        self._state = Authorized(token)
        logger.debug("Authorized with session token %s", redact(token))
