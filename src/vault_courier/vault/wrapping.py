"""Response wrapping: single-use envelopes around sensitive payloads.

Pattern: Anti-Replay Envelope
------------------------------
Bootstrap secrets (an AppRole SecretID, a role ID, an arbitrary key/value
map) are never handed over in the clear.  Vault stores the payload and
returns a *wrapping token*; whoever presents that token to
``sys/wrapping/unwrap`` first receives the payload, and every later attempt
fails.  A failed unwrap of a token you have never used is therefore evidence
that someone else read the secret.

Two rules are enforced here, before any request is sent:

  - ``wrap``, ``rewrap`` and ``lookup`` need a session token.
  - ``unwrap`` refuses a call where the wrapping token equals the bearer
    token, so a party holding only the bearer cannot self-serve.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from typing import Any

from vault_courier.auth.credentials import (
    AuthResponse,
    SecretIDResponse,
    UnwrappedResponse,
    WrappedToken,
    WrappedTokenInfo,
    redact,
)
from vault_courier.auth.session import SessionTokenStore
from vault_courier.errors import (
    ClientIsNotLoggedIn,
    DecodingFailed,
    InvalidArgument,
    error_for_status,
    rejection_for_status,
)
from vault_courier.vault.transport import VaultTransport

logger = logging.getLogger(__name__)


class ResponseWrappingClient:
    """Client for the ``sys/wrapping/*`` endpoints."""

    def __init__(self, transport: VaultTransport, store: SessionTokenStore) -> None:
        self._transport = transport
        self._store = store

    async def wrap(
        self,
        secrets: Mapping[str, str],
        wrap_ttl: str | int | datetime.timedelta,
    ) -> WrappedToken:
        """Box *secrets* behind a one-time token valid for *wrap_ttl*."""
        session_token = self._session_token()
        response = await self._transport.request(
            "post",
            "sys/wrapping/wrap",
            token=session_token,
            json=dict(secrets),
            wrap_ttl=wrap_ttl,
        )
        if response.status_code != 200:
            error = error_for_status(response.status_code, response.body)
            logger.debug("wrap failed with Vault error: %s", error)
            raise error

        wrapped = WrappedToken.from_response(response.body or {})
        logger.info(
            "Wrapped %d secret(s), accessor=%s, ttl=%s",
            len(secrets),
            wrapped.accessor,
            wrapped.time_to_live,
        )
        return wrapped

    async def unwrap(
        self,
        token: str | None,
        *,
        bearer: str | None = None,
    ) -> UnwrappedResponse:
        """Exchange a wrapping token for its payload.

        *bearer* is the ``X-Vault-Token`` of the call and defaults to the
        session token.  Pass the wrapping token itself as *bearer* (and
        ``None`` as *token*) to unwrap without a session.  Using the same
        value for both raises ``InvalidArgument``.
        """
        if bearer is None:
            bearer = self._store.read()
        if bearer is None and token is None:
            raise ClientIsNotLoggedIn()
        if bearer == token:
            raise InvalidArgument(
                "Wrapping token and client token cannot be the same"
            )

        body = {"token": token} if token is not None else {}
        response = await self._transport.request(
            "post",
            "sys/wrapping/unwrap",
            token=bearer,
            json=body,
        )
        if response.status_code != 200:
            error = rejection_for_status(response.status_code, response.body)
            logger.debug(
                "unwrap of %s failed with Vault error: %s",
                redact(token or bearer),
                error,
            )
            raise error

        payload: dict[str, Any] = response.body or {}
        data = payload.get("data")
        auth = payload.get("auth")
        if data is None and auth is None:
            raise DecodingFailed("Unwrap response contained neither data nor auth")

        logger.debug("Response unwrapped, request_id=%s", response.request_id)
        return UnwrappedResponse(
            request_id=response.request_id,
            data=data if isinstance(data, dict) else None,
            auth=AuthResponse.from_auth(auth, response.request_id) if auth else None,
        )

    async def rewrap(self, token: str) -> WrappedToken:
        """Replace *token* with a fresh envelope holding the same payload.

        The new token inherits the original creation TTL; the old one is
        invalidated.
        """
        session_token = self._session_token()
        response = await self._transport.request(
            "post",
            "sys/wrapping/rewrap",
            token=session_token,
            json={"token": token},
        )
        if response.status_code != 200:
            error = error_for_status(response.status_code, response.body)
            logger.debug("rewrap failed with Vault error: %s", error)
            raise error
        return WrappedToken.from_response(response.body or {})

    async def lookup(self, token: str) -> WrappedTokenInfo:
        """Return the metadata of an envelope without consuming it."""
        session_token = self._session_token()
        response = await self._transport.request(
            "post",
            "sys/wrapping/lookup",
            token=session_token,
            json={"token": token},
        )
        if response.status_code != 200:
            error = error_for_status(response.status_code, response.body)
            logger.debug("wrapping lookup failed with Vault error: %s", error)
            raise error
        return WrappedTokenInfo.from_response(response.body or {})

    async def unwrap_secret_id(self, wrapping_token: str) -> SecretIDResponse:
        """Unwrap an envelope produced by a wrapped AppRole secret-id request."""
        unwrapped = await self.unwrap(None, bearer=wrapping_token)
        if unwrapped.data is None:
            raise DecodingFailed("Unwrap response did not contain any data")
        return SecretIDResponse.from_data(unwrapped.data, unwrapped.request_id)

    # -- private helpers -----------------------------------------------------

    def _session_token(self) -> str:
        token = self._store.read()
        if token is None:
            raise ClientIsNotLoggedIn()
        return token
