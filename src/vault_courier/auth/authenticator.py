"""Login mechanisms that turn credentials into a Vault session token.

Pattern: One Strategy per Auth Method
--------------------------------------
Each auth method is an ``Authenticator`` subclass with a single capability,
``authenticate() -> token``.  The client picks one at construction time and
never switches on the method name afterwards, so adding LDAP or JWT later
means adding a class, not editing a growing ``if`` chain.

Authenticators never write to the session store and never retry.  Recording
the token is the state machine's job; retry policy belongs to the caller.
"""

from __future__ import annotations

import abc
import logging

from vault_courier.auth.credentials import AppRoleCredentials, AuthResponse, redact
from vault_courier.errors import InvalidArgument, rejection_for_status
from vault_courier.vault.transport import VaultTransport

logger = logging.getLogger(__name__)

DEFAULT_APPROLE_MOUNT = "approle"


class Authenticator(abc.ABC):
    """A login mechanism producing a bearer session token."""

    method: str = "unknown"

    @abc.abstractmethod
    async def authenticate(self) -> str:
        """Log in and return the session token.

        Raises ``VaultClientError`` subclasses on failure.
        """


class TokenAuthenticator(Authenticator):
    """Adopts an existing token; the caller vouches for it, no call is made."""

    method = "token"

    def __init__(self, token: str) -> None:
        if not token:
            raise InvalidArgument("Token authenticator needs a non-empty token")
        self._token = token

    async def authenticate(self) -> str:
        logger.debug("Adopting existing token %s", redact(self._token))
        return self._token


class AppRoleAuthenticator(Authenticator):
    """Exchanges a RoleID/SecretID pair for a session token."""

    method = "approle"

    def __init__(
        self,
        transport: VaultTransport,
        credentials: AppRoleCredentials,
        mount_path: str = DEFAULT_APPROLE_MOUNT,
    ) -> None:
        self._transport = transport
        self._credentials = credentials
        self._mount_path = mount_path.strip("/") or DEFAULT_APPROLE_MOUNT

    @property
    def mount_path(self) -> str:
        return self._mount_path

    async def login(self) -> AuthResponse:
        """Perform the login and return the full ``auth`` block."""
        response = await self._transport.request(
            "post",
            f"auth/{self._mount_path}/login",
            json={
                "role_id": self._credentials.role_id,
                "secret_id": self._credentials.secret_id,
            },
        )
        if response.status_code != 200:
            error = rejection_for_status(response.status_code, response.body)
            logger.debug(
                "AppRole login at %s failed for role_id=%s: %s",
                self._mount_path,
                self._credentials.role_id,
                error,
            )
            raise error

        body = response.body if isinstance(response.body, dict) else {}
        auth = AuthResponse.from_auth(body.get("auth"), response.request_id)
        logger.info(
            "AppRole login at %s succeeded, policies=%s, lease_duration=%s",
            self._mount_path,
            list(auth.token_policies),
            auth.lease_duration,
        )
        return auth

    async def authenticate(self) -> str:
        auth = await self.login()
        return auth.client_token
