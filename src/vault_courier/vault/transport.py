"""HTTP transport to Vault built on hvac's request adapter.

hvac's ``RawAdapter`` already knows how to talk to Vault (base URL handling,
TLS verification, timeouts, a pooled ``requests`` session).  It is
synchronous, so each request runs in the event loop's default executor; the
public API stays ``async`` and a cancelled caller stops waiting immediately.

The transport never holds a token of its own.  Callers pass the bearer
credential for each request explicitly, which keeps the session token owned
by ``SessionTokenStore`` alone.
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
from typing import Any

import hvac.adapters
import requests

from vault_courier.durations import format_duration
from vault_courier.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = "http://127.0.0.1:8200"


@dataclasses.dataclass(frozen=True)
class VaultResponse:
    """Status code and decoded JSON body of one Vault call."""

    status_code: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def request_id(self) -> str | None:
        if isinstance(self.body, dict):
            return self.body.get("request_id")
        return None


class VaultTransport:
    """Sends requests to ``{address}/v1/...`` with per-call credentials."""

    def __init__(
        self,
        address: str = DEFAULT_ADDRESS,
        *,
        namespace: str | None = None,
        timeout: float = 30,
        verify: bool | str = True,
        adapter: hvac.adapters.Adapter | None = None,
    ) -> None:
        self._address = address.rstrip("/")
        self._namespace = namespace.strip("/") if namespace else None
        self._adapter = adapter or hvac.adapters.RawAdapter(
            base_uri=self._address,
            timeout=timeout,
            verify=verify,
        )

    @property
    def address(self) -> str:
        return self._address

    @property
    def namespace(self) -> str | None:
        return self._namespace

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: dict[str, Any] | None = None,
        wrap_ttl: Any = None,
    ) -> VaultResponse:
        """Send one request and return its status and body.

        Non-2xx responses are returned, not raised: each caller decides what
        a given status means for its operation.
        """
        headers: dict[str, str] = {}
        if token is not None:
            headers["X-Vault-Token"] = token
        if self._namespace:
            headers["X-Vault-Namespace"] = self._namespace
        if wrap_ttl is not None:
            headers["X-Vault-Wrap-TTL"] = format_duration(wrap_ttl)

        kwargs: dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json

        url = f"/v1/{path.strip('/')}"
        call = functools.partial(
            self._adapter.request,
            method,
            url,
            headers=headers,
            raise_exception=False,
            **kwargs,
        )
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(None, call)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"{method.upper()} {url} failed: {exc}") from exc

        logger.debug("%s %s -> %s", method.upper(), url, response.status_code)
        return VaultResponse(status_code=response.status_code, body=self._decode(response))

    def close(self) -> None:
        """Release the pooled HTTP session."""
        self._adapter.close()

    # -- private helpers -----------------------------------------------------

    @staticmethod
    def _decode(response: Any) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None
