"""Key/value (version 2) secret reads and writes under the session token."""

from __future__ import annotations

import logging
from typing import Any

from vault_courier.auth.session import SessionTokenStore
from vault_courier.errors import ClientIsNotLoggedIn, DecodingFailed, error_for_status
from vault_courier.vault.transport import VaultResponse, VaultTransport

logger = logging.getLogger(__name__)

DEFAULT_KV_MOUNT = "secret"


class KeyValueClient:
    """Client for a KV v2 mount."""

    def __init__(
        self,
        transport: VaultTransport,
        store: SessionTokenStore,
        mount_path: str = DEFAULT_KV_MOUNT,
    ) -> None:
        self._transport = transport
        self._store = store
        self._mount_path = mount_path.strip("/") or DEFAULT_KV_MOUNT

    async def read(self, path: str, version: int | None = None) -> dict[str, Any]:
        """Return the secret stored at *path* (latest version by default)."""
        suffix = f"?version={version}" if version is not None else ""
        response = await self._call("get", f"data/{path.strip('/')}{suffix}")
        data = (response.body or {}).get("data")
        if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
            raise DecodingFailed(f"KV response for {path} has no data")
        return data["data"]

    async def write(self, path: str, secret: dict[str, Any]) -> int:
        """Store *secret* at *path* and return the new version number."""
        response = await self._call(
            "post", f"data/{path.strip('/')}", json={"data": secret}
        )
        data = (response.body or {}).get("data") or {}
        try:
            version = int(data["version"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodingFailed(f"KV write response for {path} has no version") from exc
        logger.info("Wrote version %d of %s/%s", version, self._mount_path, path)
        return version

    async def delete(self, path: str) -> None:
        """Soft-delete the latest version of *path*."""
        await self._call("delete", f"data/{path.strip('/')}")
        logger.info("Deleted latest version of %s/%s", self._mount_path, path)

    # -- private helpers -----------------------------------------------------

    async def _call(
        self, method: str, path: str, *, json: dict[str, Any] | None = None
    ) -> VaultResponse:
        token = self._store.read()
        if token is None:
            raise ClientIsNotLoggedIn()
        response = await self._transport.request(
            method, f"{self._mount_path}/{path}", token=token, json=json
        )
        if not response.ok:
            error = error_for_status(response.status_code, response.body)
            logger.debug("KV %s %s failed with Vault error: %s", method, path, error)
            raise error
        return response
