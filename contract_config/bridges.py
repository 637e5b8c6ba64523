"""
Config -> Kernel Bridges.

Functions that turn an EngineConfig into kernel objects.  They live here
because the kernel must never import contract_config.

Usage:
    config = get_active_config()
    init_engine(config)
    issuer = build_token_issuer(config)
    dispatcher = build_notification_dispatcher(config)
"""

from __future__ import annotations

from datetime import timedelta

from contract_config.schema import EngineConfig
from contract_kernel.db.engine import init_engine_from_url
from contract_kernel.domain.clock import Clock, SystemClock
from contract_kernel.domain.tokens import SigningPolicy, TokenIssuer
from contract_kernel.logging_config import configure_logging
from contract_kernel.services.notification_service import LoggingNotificationDispatcher


def build_signing_policy(config: EngineConfig) -> SigningPolicy:
    return SigningPolicy(
        token_length=config.signing.token_length,
        token_ttl=timedelta(days=config.signing.token_ttl_days),
        contract_number_prefix=config.signing.contract_number_prefix,
        signing_base_url=config.signing.signing_base_url,
    )


def build_token_issuer(config: EngineConfig, clock: Clock | None = None) -> TokenIssuer:
    return TokenIssuer(build_signing_policy(config), clock or SystemClock())


def build_notification_dispatcher(config: EngineConfig) -> LoggingNotificationDispatcher:
    return LoggingNotificationDispatcher(
        enabled=config.notifications.enabled,
        sender_name=config.notifications.sender_name,
        sender_address=config.notifications.sender_address,
    )


def init_engine(config: EngineConfig):
    """Configure logging at the configured level and initialize the engine."""
    configure_logging(level=config.logging.level)
    return init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
