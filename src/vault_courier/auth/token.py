"""Lifecycle of the session token: lookup, renewal and revocation.

Every call here is made with the token held by the ``SessionTokenStore``.
Renewal keeps the same token, so the store is never written; revoking the
session token is left to ``VaultClient.logout()``, which also clears it.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any

from vault_courier.auth.credentials import AuthResponse, TokenLookup, redact
from vault_courier.auth.session import SessionTokenStore
from vault_courier.durations import format_duration
from vault_courier.errors import ClientIsNotLoggedIn, error_for_status
from vault_courier.vault.transport import VaultResponse, VaultTransport

logger = logging.getLogger(__name__)

Duration = str | int | datetime.timedelta


class TokenClient:
    """Client for the ``auth/token/*`` endpoints."""

    def __init__(self, transport: VaultTransport, store: SessionTokenStore) -> None:
        self._transport = transport
        self._store = store

    async def lookup_self(self) -> TokenLookup:
        """Return the properties of the session token."""
        response = await self._call("get", "lookup-self")
        return TokenLookup.from_response(response.body or {})

    async def lookup(self, token: str) -> TokenLookup:
        """Return the properties of *token*."""
        response = await self._call("post", "lookup", json={"token": token})
        return TokenLookup.from_response(response.body or {})

    async def renew_self(self, increment: Duration | None = None) -> AuthResponse:
        """Extend the lease of the session token.

        Vault may grant less than *increment* (periodic tokens, max TTL).
        """
        response = await self._call("post", "renew-self", json=_increment(increment))
        auth = _auth(response)
        logger.info("Session token renewed, lease_duration=%s", auth.lease_duration)
        return auth

    async def renew(self, token: str, increment: Duration | None = None) -> AuthResponse:
        body = {"token": token, **_increment(increment)}
        response = await self._call("post", "renew", json=body)
        auth = _auth(response)
        logger.info("Token %s renewed, lease_duration=%s", redact(token), auth.lease_duration)
        return auth

    async def revoke_self(self) -> None:
        """Revoke the session token, its children and their leases."""
        await self._call("post", "revoke-self")
        logger.info("Session token revoked")

    async def revoke_accessor(self, accessor: str) -> None:
        """Revoke the token behind *accessor* without knowing its ID."""
        await self._call("post", "revoke-accessor", json={"accessor": accessor})
        logger.info("Token with accessor %s revoked", accessor)

    # -- private helpers -----------------------------------------------------

    async def _call(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> VaultResponse:
        token = self._store.read()
        if token is None:
            raise ClientIsNotLoggedIn()
        response = await self._transport.request(
            method, f"auth/token/{path}", token=token, json=json
        )
        if not response.ok:
            error = error_for_status(response.status_code, response.body)
            logger.debug("Token %s failed with Vault error: %s", path, error)
            raise error
        return response


def _increment(increment: Duration | None) -> dict[str, str]:
    if increment is None:
        return {}
    return {"increment": format_duration(increment)}


def _auth(response: VaultResponse) -> AuthResponse:
    body = response.body if isinstance(response.body, dict) else {}
    return AuthResponse.from_auth(body.get("auth"), response.request_id)
