"""
contract_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables.  Returns a frozen ``EngineConfig``
    that the caller builds its collaborators from (see ``bridges``).

Architecture position:
    Configuration -- sits above ``contract_kernel`` and below
    ``contract_api`` / ``scripts``.  The kernel MUST NEVER import from
    ``contract_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigValidationError`` (a ``ValueError``) -- invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``contract_config_loaded`` log entry with the config id, version,
    checksum and the non-secret settings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from contract_config.loader import ConfigValidationError, load_config
from contract_config.schema import EngineConfig

_logger = logging.getLogger("contract_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "CONTRACT_CONFIG_PATH"

__all__ = ["ConfigValidationError", "EngineConfig", "get_active_config"]


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Configuration file.  Defaults to ``$CONTRACT_CONFIG_PATH`` or
            the shipped ``sets/default.yaml``.
        environ: Environment mapping for deployment overrides.  Defaults to
            ``os.environ``; tests pass an explicit dict.
    """
    env = os.environ if environ is None else environ
    config_path = Path(path or env.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)

    config = load_config(config_path, env)

    _logger.info(
        "contract_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(config_path),
            "database_dialect": config.database.url.split(":", 1)[0],
            "token_ttl_days": config.signing.token_ttl_days,
            "notifications_enabled": config.notifications.enabled,
            "admin_key_count": len(config.admin.api_keys),
        },
    )
    return config
