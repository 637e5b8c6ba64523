"""
EngineConfig schema.

The frozen configuration struct built once at process start by
``contract_config.get_active_config()`` and passed by reference to the
engine initializer, the token issuer, the notification dispatcher and the
API factory.  Nothing downstream reads files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///contracts.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10


@dataclass(frozen=True)
class SigningConfig:
    """Token issuance and link settings."""

    token_length: int = 40
    token_ttl_days: int = 90
    contract_number_prefix: str = "CTR"
    signing_base_url: str = "http://localhost:8000"


@dataclass(frozen=True)
class NotificationsConfig:
    enabled: bool = True
    sender_name: str = "Contracts"
    sender_address: str = "contracts@localhost"


@dataclass(frozen=True)
class AdminKey:
    """An admin API key and the actor name it authenticates as."""

    actor: str
    key: str

    def __repr__(self) -> str:
        return f"AdminKey(actor={self.actor!r}, key='***')"


@dataclass(frozen=True)
class AdminConfig:
    api_keys: tuple[AdminKey, ...] = ()
    header_name: str = "X-Admin-Key"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class EngineConfig:
    """
    The complete runtime configuration.

    ``checksum`` identifies the source document (before environment
    overrides, so secrets never influence it).
    """

    config_id: str
    version: int
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    signing: SigningConfig = field(default_factory=SigningConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
