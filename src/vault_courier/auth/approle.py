"""AppRole role-id and secret-id delivery.

These are the trusted-broker side of the AppRole flow: a provisioning process
holding a session token fetches a RoleID and a (usually wrapped) SecretID and
hands them to the application, which then logs in through
``AuthenticationStateMachine``.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any

from vault_courier.auth.authenticator import DEFAULT_APPROLE_MOUNT, AppRoleAuthenticator
from vault_courier.auth.credentials import (
    AppRoleCredentials,
    AuthResponse,
    SecretIDResponse,
    WrappedToken,
)
from vault_courier.auth.session import SessionTokenStore
from vault_courier.durations import format_duration
from vault_courier.errors import ClientIsNotLoggedIn, DecodingFailed, error_for_status
from vault_courier.vault.transport import VaultResponse, VaultTransport

logger = logging.getLogger(__name__)

Duration = str | int | datetime.timedelta


class AppRoleClient:
    """Client for ``auth/{mount}/role/{name}/...`` endpoints."""

    def __init__(
        self,
        transport: VaultTransport,
        store: SessionTokenStore,
        mount_path: str = DEFAULT_APPROLE_MOUNT,
    ) -> None:
        self._transport = transport
        self._store = store
        self._mount_path = mount_path.strip("/") or DEFAULT_APPROLE_MOUNT

    async def role_id(self, name: str) -> str:
        """Return the RoleID of role *name*."""
        response = await self._call("get", f"role/{name}/role-id")
        data = (response.body or {}).get("data") or {}
        role_id = data.get("role_id")
        if not role_id:
            raise DecodingFailed("role-id response has no role_id")
        return role_id

    async def wrap_role_id(self, name: str, wrap_ttl: Duration) -> WrappedToken:
        """Return the RoleID of role *name* inside a wrapping envelope."""
        response = await self._call("get", f"role/{name}/role-id", wrap_ttl=wrap_ttl)
        return WrappedToken.from_response(response.body or {})

    async def generate_secret_id(
        self,
        name: str,
        *,
        metadata: dict[str, str] | None = None,
        cidr_list: list[str] | None = None,
        token_bound_cidrs: list[str] | None = None,
        num_uses: int | None = None,
        ttl: Duration | None = None,
        wrap_ttl: Duration | None = None,
    ) -> SecretIDResponse | WrappedToken:
        """Generate a SecretID for role *name*.

        With *wrap_ttl* the SecretID comes back wrapped and a ``WrappedToken``
        is returned; the application recovers the value with
        ``ResponseWrappingClient.unwrap_secret_id`` or by authenticating from
        a ``Wrapped`` state.
        """
        params: dict[str, Any] = {}
        if metadata is not None:
            params["metadata"] = metadata
        if cidr_list is not None:
            params["cidr_list"] = cidr_list
        if token_bound_cidrs is not None:
            params["token_bound_cidrs"] = token_bound_cidrs
        if num_uses is not None:
            params["num_uses"] = num_uses
        if ttl is not None:
            params["ttl"] = format_duration(ttl)

        response = await self._call(
            "post", f"role/{name}/secret-id", json=params, wrap_ttl=wrap_ttl
        )
        body = response.body or {}
        if body.get("wrap_info"):
            wrapped = WrappedToken.from_response(body)
            logger.info("Generated wrapped SecretID for role %s, ttl=%s", name, wrapped.time_to_live)
            return wrapped
        logger.info("Generated SecretID for role %s", name)
        return SecretIDResponse.from_data(body.get("data"), response.request_id)

    async def login_token(self, credentials: AppRoleCredentials) -> AuthResponse:
        """Log in with *credentials* and return the auth block.

        Does not touch the session store.
        """
        authenticator = AppRoleAuthenticator(
            self._transport, credentials, mount_path=self._mount_path
        )
        return await authenticator.login()

    # -- private helpers -----------------------------------------------------

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        wrap_ttl: Duration | None = None,
    ) -> VaultResponse:
        token = self._store.read()
        if token is None:
            raise ClientIsNotLoggedIn()
        response = await self._transport.request(
            method,
            f"auth/{self._mount_path}/{path}",
            token=token,
            json=json,
            wrap_ttl=wrap_ttl,
        )
        if response.status_code != 200:
            error = error_for_status(response.status_code, response.body)
            logger.debug("AppRole %s %s failed with Vault error: %s", method, path, error)
            raise error
        return response
