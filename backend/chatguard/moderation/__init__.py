"""Moderation package integration helpers exposed to the application."""

from chatguard.moderation.domain.container import (
    configure,
    configure_postgres,
    get_moderation_config,
    get_moderation_service,
)

__all__ = ["configure", "configure_postgres", "get_moderation_config", "get_moderation_service"]
