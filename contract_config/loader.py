"""
Configuration Loader (``contract_config.loader``).

Responsibility
--------------
Parses a YAML configuration document into the frozen ``EngineConfig``
schema, applies the deployment overrides taken from the environment, and
validates every field.  Callers go through
``contract_config.get_active_config()``.

Invariants enforced
-------------------
* Environment variables are read HERE and nowhere else, and only the
  variables listed in ``ENV_OVERRIDES``.
* Every validation failure raises ``ConfigValidationError`` naming the
  offending key; there are no silent fallbacks for malformed values.
* ``compute_checksum`` is deterministic: the same document always yields
  the same checksum.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ConfigValidationError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from contract_config.schema import (
    AdminConfig,
    AdminKey,
    DatabaseConfig,
    EngineConfig,
    LoggingConfig,
    NotificationsConfig,
    SigningConfig,
)

MIN_TOKEN_LENGTH = 40
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# environment variable -> (section, key)
ENV_OVERRIDES = {
    "CONTRACT_DATABASE_URL": ("database", "url"),
    "CONTRACT_ADMIN_API_KEYS": ("admin", "api_keys"),
    "CONTRACT_SIGNING_BASE_URL": ("signing", "signing_base_url"),
    "CONTRACT_LOG_LEVEL": ("logging", "level"),
}


class ConfigValidationError(ValueError):
    """A configuration value is missing or invalid."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigValidationError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: Mapping[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigValidationError(name, "must be a mapping")
    return dict(value)


def _str(section: str, data: Mapping[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ConfigValidationError(f"{section}.{key}", "must be a string")
    return value


def _int(section: str, data: Mapping[str, Any], key: str, default: int, minimum: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"{section}.{key}", "must be an integer")
    if value < minimum:
        raise ConfigValidationError(f"{section}.{key}", f"must be >= {minimum}")
    return value


def _bool(section: str, data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigValidationError(f"{section}.{key}", "must be true or false")
    return value


def parse_admin_keys(value: Any) -> tuple[AdminKey, ...]:
    """
    Parse admin keys.

    Accepts a list of ``{actor, key}`` mappings (YAML) or a comma-separated
    string of ``actor:key`` / bare ``key`` entries (environment).  A bare
    key authenticates as actor ``admin``.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        entries = []
        for raw in value.split(","):
            raw = raw.strip()
            if not raw:
                continue
            actor, sep, key = raw.partition(":")
            entries.append({"actor": actor, "key": key} if sep else {"actor": "admin", "key": raw})
        value = entries
    if not isinstance(value, list):
        raise ConfigValidationError("admin.api_keys", "must be a list")

    keys = []
    for i, entry in enumerate(value):
        if not isinstance(entry, Mapping):
            raise ConfigValidationError(f"admin.api_keys[{i}]", "must be a mapping")
        actor = str(entry.get("actor") or "").strip()
        key = str(entry.get("key") or "").strip()
        if not actor or not key:
            raise ConfigValidationError(f"admin.api_keys[{i}]", "actor and key are required")
        keys.append(AdminKey(actor=actor, key=key))
    return tuple(keys)


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with the recognised environment overrides applied."""
    merged = {k: dict(v) if isinstance(v, Mapping) else v for k, v in data.items()}
    for var, (section, key) in ENV_OVERRIDES.items():
        if var in environ and environ[var] != "":
            if not isinstance(merged.get(section), dict):
                merged[section] = {}
            merged[section][key] = environ[var]
    return merged


def parse_config(data: Mapping[str, Any], checksum: str = "") -> EngineConfig:
    """Build and validate an EngineConfig from a parsed document."""
    config_id = data.get("config_id", "default")
    if not isinstance(config_id, str) or not config_id:
        raise ConfigValidationError("config_id", "must be a non-empty string")
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise ConfigValidationError("version", "must be an integer")

    db = _section(data, "database")
    database = DatabaseConfig(
        url=_str("database", db, "url", DatabaseConfig.url),
        echo=_bool("database", db, "echo", DatabaseConfig.echo),
        pool_size=_int("database", db, "pool_size", DatabaseConfig.pool_size, 1),
        max_overflow=_int("database", db, "max_overflow", DatabaseConfig.max_overflow, 0),
    )
    if not database.url.strip():
        raise ConfigValidationError("database.url", "must not be empty")

    sg = _section(data, "signing")
    signing = SigningConfig(
        token_length=_int("signing", sg, "token_length", SigningConfig.token_length, MIN_TOKEN_LENGTH),
        token_ttl_days=_int("signing", sg, "token_ttl_days", SigningConfig.token_ttl_days, 1),
        contract_number_prefix=_str(
            "signing", sg, "contract_number_prefix", SigningConfig.contract_number_prefix
        ),
        signing_base_url=_str("signing", sg, "signing_base_url", SigningConfig.signing_base_url),
    )
    if not signing.contract_number_prefix.isalnum():
        raise ConfigValidationError("signing.contract_number_prefix", "must be alphanumeric")

    nt = _section(data, "notifications")
    notifications = NotificationsConfig(
        enabled=_bool("notifications", nt, "enabled", NotificationsConfig.enabled),
        sender_name=_str("notifications", nt, "sender_name", NotificationsConfig.sender_name),
        sender_address=_str(
            "notifications", nt, "sender_address", NotificationsConfig.sender_address
        ),
    )

    ad = _section(data, "admin")
    admin = AdminConfig(
        api_keys=parse_admin_keys(ad.get("api_keys")),
        header_name=_str("admin", ad, "header_name", AdminConfig.header_name),
    )
    if not admin.header_name.strip():
        raise ConfigValidationError("admin.header_name", "must not be empty")

    lg = _section(data, "logging")
    level = _str("logging", lg, "level", LoggingConfig.level).upper()
    if level not in LOG_LEVELS:
        raise ConfigValidationError("logging.level", f"must be one of {', '.join(LOG_LEVELS)}")

    return EngineConfig(
        config_id=config_id,
        version=version,
        database=database,
        signing=signing,
        notifications=notifications,
        admin=admin,
        logging=LoggingConfig(level=level),
        checksum=checksum,
    )


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> EngineConfig:
    """Load, override and validate the configuration at ``path``."""
    document = load_yaml_file(path)
    checksum = compute_checksum(document)
    return parse_config(apply_env_overrides(document, environ or {}), checksum=checksum)
