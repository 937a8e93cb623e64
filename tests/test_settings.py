"""Tests for settings loading from YAML and the environment."""

from __future__ import annotations

import pathlib

import pytest

from vault_courier.settings import (
    SettingsError,
    VaultSettings,
    is_valid_mount_path,
    is_valid_namespace,
)


def _write(tmp_path: pathlib.Path, text: str) -> pathlib.Path:
    path = tmp_path / "settings.yaml"
    path.write_text(text)
    return path


def test_defaults() -> None:
    settings = VaultSettings()
    assert settings.address == "http://127.0.0.1:8200"
    assert settings.approle_mount == "approle"
    assert settings.database_mount == "database"
    assert settings.verify is True


def test_from_yaml(tmp_path: pathlib.Path) -> None:
    path = _write(tmp_path, """
vault:
  address: https://vault.example.com:8200
  namespace: team-a
  timeout: 10
  database_mount: postgres
  wrap_ttl: 2m
""")
    settings = VaultSettings.from_yaml(path)
    assert settings.address == "https://vault.example.com:8200"
    assert settings.namespace == "team-a"
    assert settings.timeout == 10
    assert settings.database_mount == "postgres"
    assert settings.wrap_ttl == "2m"


def test_empty_file_gives_defaults(tmp_path: pathlib.Path) -> None:
    assert VaultSettings.from_yaml(_write(tmp_path, "")) == VaultSettings()


def test_missing_file(tmp_path: pathlib.Path) -> None:
    with pytest.raises(SettingsError, match="not found"):
        VaultSettings.from_yaml(tmp_path / "absent.yaml")


def test_unknown_key_rejected(tmp_path: pathlib.Path) -> None:
    path = _write(tmp_path, "vault:\n  adress: http://typo\n")
    with pytest.raises(SettingsError, match="adress"):
        VaultSettings.from_yaml(path)


def test_vault_block_must_be_mapping(tmp_path: pathlib.Path) -> None:
    with pytest.raises(SettingsError):
        VaultSettings.from_yaml(_write(tmp_path, "vault: [1, 2]\n"))


@pytest.mark.parametrize("field", ["approle_mount", "database_mount", "kv_mount"])
def test_invalid_mount_rejected(field: str) -> None:
    with pytest.raises(SettingsError, match=field):
        VaultSettings(**{field: "sys/evil"})


def test_invalid_wrap_ttl_rejected() -> None:
    with pytest.raises(SettingsError, match="wrap_ttl"):
        VaultSettings(wrap_ttl="forever")


@pytest.mark.parametrize(
    "path, valid",
    [
        ("database", True),
        ("team-a/postgres", True),
        ("kv_v2/", True),
        ("", False),
        ("/database", False),
        ("a//b", False),
        ("Database", False),
        ("auth/approle", False),
        ("cubbyhole/x", False),
    ],
)
def test_is_valid_mount_path(path: str, valid: bool) -> None:
    assert is_valid_mount_path(path) is valid


def test_env_overrides() -> None:
    overrides = VaultSettings.env_overrides({
        "VAULT_ADDR": "https://vault.prod:8200",
        "VAULT_NAMESPACE": "ops",
        "VAULT_CLIENT_TIMEOUT": "5",
        "VAULT_CACERT": "/etc/ca.pem",
    })
    assert overrides == {
        "address": "https://vault.prod:8200",
        "namespace": "ops",
        "timeout": 5.0,
        "verify": "/etc/ca.pem",
    }


def test_skip_verify_wins_over_cacert() -> None:
    overrides = VaultSettings.env_overrides({"VAULT_CACERT": "/ca.pem", "VAULT_SKIP_VERIFY": "true"})
    assert overrides["verify"] is False


def test_bad_timeout() -> None:
    with pytest.raises(SettingsError):
        VaultSettings.env_overrides({"VAULT_CLIENT_TIMEOUT": "soon"})


def test_load_merges_file_and_environment(tmp_path: pathlib.Path) -> None:
    path = _write(tmp_path, "vault:\n  address: http://file:8200\n  kv_mount: team-kv\n")
    settings = VaultSettings.load(path, environ={"VAULT_ADDR": "http://env:8200"})
    assert settings.address == "http://env:8200"
    assert settings.kv_mount == "team-kv"


def test_load_without_file_uses_environment() -> None:
    settings = VaultSettings.load(environ={})
    assert settings == VaultSettings()


@pytest.mark.parametrize(
    "namespace, valid",
    [
        ("team-a", True),
        ("org/team-a", True),
        ("", False),
        ("team-a/", False),
        ("team a", False),
        ("root", False),
        ("org/sys", False),
        ("org//team", False),
        ("..", False),
    ],
)
def test_is_valid_namespace(namespace: str, valid: bool) -> None:
    assert is_valid_namespace(namespace) is valid


def test_invalid_namespace_rejected(tmp_path: pathlib.Path) -> None:
    with pytest.raises(SettingsError, match="namespace"):
        VaultSettings.from_yaml(_write(tmp_path, "vault:\n  namespace: team-a/\n"))


def test_invalid_namespace_from_environment() -> None:
    with pytest.raises(SettingsError, match="namespace"):
        VaultSettings.load(environ={"VAULT_NAMESPACE": "cubbyhole"})
