"""Shared fixtures for tests.

``FakeVault`` stands in for hvac's request adapter.  It speaks just enough of
Vault's HTTP API for the client under test, including the at-most-once
semantics of ``sys/wrapping/unwrap``.
"""

from __future__ import annotations

import itertools
import json as jsonlib
import threading
from typing import Any

import pytest

from vault_courier.auth.session import SessionTokenStore
from vault_courier.client import VaultClient
from vault_courier.vault.transport import VaultTransport

CREATION_TIME = "2025-06-01T12:00:00.123456789Z"
TOKEN_CREATION_EPOCH = 1748779200


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int, body: Any = None) -> None:
        self.status_code = status_code
        self._body = body
        self.content = b"" if body is None else jsonlib.dumps(body).encode()

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no body")
        return self._body


def error(status_code: int, *messages: str) -> FakeResponse:
    return FakeResponse(status_code, {"errors": list(messages)})


class FakeVault:
    """In-memory Vault answering the adapter's ``request`` calls."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.session_tokens: set[str] = {"root-token"}
        self.approles: dict[str, set[str]] = {}
        self.role_ids: dict[str, str] = {}
        self.dynamic_creds: dict[str, dict[str, Any]] = {}
        self.static_creds: dict[str, dict[str, Any]] = {}
        self.kv: dict[str, list[dict[str, Any]]] = {}
        self.overrides: dict[tuple[str, str], FakeResponse] = {}
        self.gate: threading.Event | None = None
        self._envelopes: dict[str, dict[str, Any]] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self.closed = False

    # -- seeding helpers -----------------------------------------------------

    def add_approle(self, role_id: str, secret_id: str, token: str) -> None:
        self.approles.setdefault(role_id, set()).add(secret_id)
        self.role_ids[f"{role_id}:{secret_id}"] = token

    def seal(self, data: dict[str, Any], ttl: int = 300, path: str = "sys/wrapping/wrap") -> str:
        """Create a wrapping envelope around *data* and return its token."""
        with self._lock:
            token = f"wrap-tok-{next(self._counter)}"
            self._envelopes[token] = {"data": data, "ttl": ttl, "path": path}
        return token

    def requests_to(self, path: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["url"] == f"/v1/{path}"]

    # -- adapter interface ---------------------------------------------------

    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        raise_exception: bool = True,
        **kwargs: Any,
    ) -> FakeResponse:
        headers = dict(headers or {})
        body = kwargs.get("json")
        with self._lock:
            self.calls.append({"method": method, "url": url, "headers": headers, "json": body})
        if self.gate is not None:
            self.gate.wait(5)

        override = self.overrides.get((method, url))
        if override is not None:
            return override
        with self._lock:
            return self._route(method, url, headers, body or {})

    def close(self) -> None:
        self.closed = True

    # -- routing -------------------------------------------------------------

    def _route(self, method: str, url: str, headers: dict[str, str], body: dict[str, Any]) -> FakeResponse:
        path = url.removeprefix("/v1/")
        token = headers.get("X-Vault-Token")

        if method == "post" and path.startswith("auth/") and path.endswith("/login"):
            return self._login(body)
        if method == "post" and path == "sys/wrapping/unwrap":
            return self._unwrap(token, body)

        if token not in self.session_tokens:
            return error(403, "permission denied")

        if method == "post" and path == "sys/wrapping/wrap":
            ttl = int(headers.get("X-Vault-Wrap-TTL", "300s").rstrip("s"))
            return self._wrap_info(self._new_envelope(body, ttl, path), body_ttl=ttl)
        if method == "post" and path == "sys/wrapping/rewrap":
            old = self._envelopes.pop(body.get("token"), None)
            if old is None:
                return error(400, "wrapping token is not valid or does not exist")
            new = self._new_envelope(old["data"], old["ttl"], old["path"])
            return self._wrap_info(new, body_ttl=old["ttl"])
        if method == "post" and path == "sys/wrapping/lookup":
            envelope = self._envelopes.get(body.get("token"))
            if envelope is None:
                return error(400, "wrapping token is not valid or does not exist")
            return FakeResponse(200, {
                "request_id": "req-lookup",
                "data": {
                    "creation_ttl": envelope["ttl"],
                    "creation_time": CREATION_TIME,
                    "creation_path": envelope["path"],
                },
            })
        if path.startswith("auth/token/"):
            return self._token(method, path.removeprefix("auth/token/"), token, body)
        if path.startswith("auth/approle/role/"):
            return self._approle_role(method, path, headers, body)
        if method == "get" and "/creds/" in path:
            role = path.rsplit("/", 1)[1]
            data = self.dynamic_creds.get(role)
            if data is None:
                return error(400, f"unknown role: {role}")
            return FakeResponse(200, {
                "request_id": "req-dyn",
                "lease_id": f"database/creds/{role}/abcd",
                "lease_duration": data.get("ttl", 3600),
                "renewable": True,
                "data": data,
            })
        if method == "get" and "/static-creds/" in path:
            role = path.rsplit("/", 1)[1]
            data = self.static_creds.get(role)
            if data is None:
                return error(400, f"unknown role: {role}")
            return FakeResponse(200, {"request_id": "req-static", "data": data})
        if path.startswith("secret/data/"):
            return self._kv(method, path.removeprefix("secret/data/"), body)
        return error(404)

    def _login(self, body: dict[str, Any]) -> FakeResponse:
        role_id, secret_id = body.get("role_id"), body.get("secret_id")
        if secret_id not in self.approles.get(role_id, set()):
            return error(400, "invalid role or secret ID")
        token = self.role_ids[f"{role_id}:{secret_id}"]
        self.session_tokens.add(token)
        return FakeResponse(200, {
            "request_id": "req-login",
            "auth": {
                "client_token": token,
                "accessor": "acc-1",
                "policies": ["default", "migrator"],
                "token_policies": ["default", "migrator"],
                "metadata": {"role_name": "migrator"},
                "lease_duration": 1200,
                "renewable": True,
                "entity_id": "entity-1",
                "token_type": "service",
                "orphan": True,
                "num_uses": 0,
            },
        })

    def _unwrap(self, token: str | None, body: dict[str, Any]) -> FakeResponse:
        wrapping_token = body.get("token") or token
        if body.get("token") and token not in self.session_tokens:
            return error(403, "permission denied")
        envelope = self._envelopes.pop(wrapping_token, None)
        if envelope is None:
            return error(400, "wrapping token is not valid or does not exist")
        data = envelope["data"]
        if "client_token" in data:
            return FakeResponse(200, {"request_id": "req-unwrap", "data": None, "auth": data})
        return FakeResponse(200, {"request_id": "req-unwrap", "data": data, "auth": None})

    def _token(self, method: str, action: str, token: str, body: dict[str, Any]) -> FakeResponse:
        if action == "lookup-self" and method == "get":
            return self._token_lookup(token)
        if action == "lookup":
            if body.get("token") not in self.session_tokens:
                return error(403, "bad token")
            return self._token_lookup(body["token"])
        if action in ("renew-self", "renew"):
            target = token if action == "renew-self" else body.get("token")
            if target not in self.session_tokens:
                return error(403, "bad token")
            if target == "root-token":
                return error(400, "lease is not renewable")
            increment = int(body.get("increment", "3600s").rstrip("s"))
            return FakeResponse(200, {
                "request_id": "req-renew",
                "auth": {
                    "client_token": target,
                    "accessor": f"acc-{target}",
                    "policies": ["default", "migrator"],
                    "token_policies": ["default", "migrator"],
                    "lease_duration": increment,
                    "renewable": True,
                },
            })
        if action == "revoke-self":
            self.session_tokens.discard(token)
            return FakeResponse(204)
        if action == "revoke-accessor":
            for candidate in list(self.session_tokens):
                if f"acc-{candidate}" == body.get("accessor"):
                    self.session_tokens.discard(candidate)
                    return FakeResponse(204)
            return error(400, "invalid accessor")
        return error(405)

    @staticmethod
    def _token_lookup(token: str) -> FakeResponse:
        root = token == "root-token"
        return FakeResponse(200, {
            "request_id": "req-lookup-token",
            "data": {
                "id": token,
                "accessor": f"acc-{token}",
                "creation_time": TOKEN_CREATION_EPOCH,
                "creation_ttl": 0 if root else 3600,
                "ttl": 0 if root else 3599,
                "explicit_max_ttl": 0,
                "expire_time": None if root else "2025-06-01T13:00:00.123456789Z",
                "display_name": "root" if root else "approle",
                "policies": ["root"] if root else ["default", "migrator"],
                "meta": None if root else {"role_name": "migrator"},
                "renewable": not root,
                "type": "service",
                "orphan": True,
                "num_uses": 0,
                "path": "auth/token/root" if root else "auth/approle/login",
            },
        })

    def _approle_role(self, method: str, path: str, headers: dict[str, str], body: dict[str, Any]) -> FakeResponse:
        name, _, action = path.removeprefix("auth/approle/role/").partition("/")
        wrap_ttl = headers.get("X-Vault-Wrap-TTL")
        if action == "role-id":
            data = {"role_id": f"{name}-role-id"}
        elif action == "secret-id" and method == "post":
            data = {
                "secret_id": f"{name}-secret-{next(self._counter)}",
                "secret_id_accessor": "sid-acc",
                "secret_id_ttl": 600,
                "secret_id_num_uses": body.get("num_uses", 0),
            }
            self.add_approle(f"{name}-role-id", data["secret_id"], f"sess-{name}")
        else:
            return error(405)
        if wrap_ttl:
            ttl = int(wrap_ttl.rstrip("s"))
            return self._wrap_info(self._new_envelope(data, ttl, path), body_ttl=ttl)
        return FakeResponse(200, {"request_id": "req-approle", "data": data})

    def _kv(self, method: str, path: str, body: dict[str, Any]) -> FakeResponse:
        versions = self.kv.setdefault(path, [])
        if method == "post":
            versions.append(body["data"])
            return FakeResponse(200, {"data": {"version": len(versions)}})
        if method == "delete":
            return FakeResponse(204)
        if not versions:
            return error(404)
        return FakeResponse(200, {"data": {"data": versions[-1], "metadata": {"version": len(versions)}}})

    def _new_envelope(self, data: dict[str, Any], ttl: int, path: str) -> str:
        token = f"wrap-tok-{next(self._counter)}"
        self._envelopes[token] = {"data": data, "ttl": ttl, "path": path}
        return token

    @staticmethod
    def _wrap_info(token: str, body_ttl: int) -> FakeResponse:
        return FakeResponse(200, {
            "request_id": "req-wrap",
            "wrap_info": {
                "token": token,
                "accessor": f"acc-{token}",
                "ttl": body_ttl,
                "creation_time": CREATION_TIME,
                "creation_path": "sys/wrapping/wrap",
            },
        })


@pytest.fixture
def vault() -> FakeVault:
    return FakeVault()


@pytest.fixture
def transport(vault: FakeVault) -> VaultTransport:
    return VaultTransport("http://vault.test:8200", adapter=vault)


@pytest.fixture
def store() -> SessionTokenStore:
    return SessionTokenStore()


@pytest.fixture
def root_store() -> SessionTokenStore:
    return SessionTokenStore("root-token")


@pytest.fixture
def token_client(transport: VaultTransport) -> VaultClient:
    return VaultClient(token="root-token", transport=transport)
