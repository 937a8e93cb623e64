"""Client settings loaded from a YAML file and the environment.

The YAML file carries a single ``vault:`` block::

    vault:
      address: https://vault.example.com:8200
      namespace: team-a
      timeout: 10
      verify: true
      approle_mount: approle
      database_mount: database
      kv_mount: secret
      wrap_ttl: 5m

The usual ``VAULT_*`` environment variables override file values, so the
same file works across environments.
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
import re
from collections.abc import Mapping
from typing import Any

import yaml

from vault_courier.durations import parse_duration
from vault_courier.vault.transport import DEFAULT_ADDRESS

_MOUNT_PATH = re.compile(
    r"^(?!sys/|auth/|identity/|cubbyhole/)(?!/)(?!.*//)[a-z0-9_-]+(/[a-z0-9_-]+)*/?$"
)

_TRUE = {"1", "true", "yes", "on"}

_RESERVED_NAMESPACES = {".", "..", "root", "sys", "audit", "auth", "cubbyhole", "identity"}


class SettingsError(Exception):
    """Raised when the settings file or environment is malformed."""


def is_valid_mount_path(path: str) -> bool:
    """Return whether *path* is usable as a Vault mount path.

    Lowercase letters, digits, ``_`` and ``-`` separated by single slashes,
    no leading slash, and none of the reserved ``sys/``, ``auth/``,
    ``identity/`` or ``cubbyhole/`` prefixes.
    """
    return bool(path) and _MOUNT_PATH.match(path) is not None


def is_valid_namespace(namespace: str) -> bool:
    """Return whether *namespace* is a usable Vault namespace path.

    Each ``/``-separated name must be non-empty, free of spaces and not one
    of the reserved names (``root``, ``sys``, ``auth`` and so on).  No
    trailing slash.
    """
    if not namespace or namespace.endswith("/"):
        return False
    return all(
        name and " " not in name and name not in _RESERVED_NAMESPACES
        for name in namespace.split("/")
    )


@dataclasses.dataclass(frozen=True)
class VaultSettings:
    """Connection and mount settings for a ``VaultClient``."""

    address: str = DEFAULT_ADDRESS
    namespace: str | None = None
    timeout: float = 30
    verify: bool | str = True
    approle_mount: str = "approle"
    database_mount: str = "database"
    kv_mount: str = "secret"
    wrap_ttl: str = "5m"

    def __post_init__(self) -> None:
        if self.namespace is not None and not is_valid_namespace(self.namespace):
            raise SettingsError(f"Invalid namespace: {self.namespace!r}")
        for name in ("approle_mount", "database_mount", "kv_mount"):
            value = getattr(self, name)
            if not is_valid_mount_path(value):
                raise SettingsError(f"Invalid mount path for {name}: {value!r}")
        try:
            parse_duration(self.wrap_ttl)
        except ValueError as exc:
            raise SettingsError(f"Invalid wrap_ttl: {self.wrap_ttl!r}") from exc

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> VaultSettings:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise SettingsError(f"Unknown vault settings: {sorted(unknown)}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: str | pathlib.Path) -> VaultSettings:
        """Read the ``vault:`` block of the YAML file at *path*."""
        path = pathlib.Path(path)
        if not path.exists():
            raise SettingsError(f"Settings file not found: {path}")
        with open(path) as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise SettingsError("Settings file must contain a mapping")
        block = data.get("vault", {})
        if not isinstance(block, dict):
            raise SettingsError("'vault' must be a mapping")
        return cls.from_mapping(block)

    @staticmethod
    def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
        """Collect settings from ``VAULT_*`` environment variables."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        if env.get("VAULT_ADDR"):
            overrides["address"] = env["VAULT_ADDR"]
        if env.get("VAULT_NAMESPACE"):
            overrides["namespace"] = env["VAULT_NAMESPACE"]
        if env.get("VAULT_CLIENT_TIMEOUT"):
            try:
                overrides["timeout"] = float(env["VAULT_CLIENT_TIMEOUT"])
            except ValueError as exc:
                raise SettingsError("VAULT_CLIENT_TIMEOUT must be a number") from exc
        if env.get("VAULT_CACERT"):
            overrides["verify"] = env["VAULT_CACERT"]
        if env.get("VAULT_SKIP_VERIFY", "").lower() in _TRUE:
            overrides["verify"] = False
        return overrides

    @classmethod
    def load(
        cls,
        path: str | pathlib.Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> VaultSettings:
        """File settings (if *path* is given) overridden by the environment."""
        base = cls.from_yaml(path) if path is not None else cls()
        overrides = cls.env_overrides(environ)
        return dataclasses.replace(base, **overrides) if overrides else base
