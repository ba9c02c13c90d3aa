#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure for the services in this repository.

COMPONENTS:
    - config/: Modular dataclass configuration loaded from the environment
    - config_manager.py: Per-service settings and endpoint discovery
    - logger.py: Service logger setup (console / structured JSON)
    - postgres_client.py: asyncpg pool wrapper
    - nats_client.py: NATS JetStream event bus

USAGE:
    from core.config_manager import ConfigManager

    # Initialize configuration for a service
    config = ConfigManager("campaign_progress_service")
"""

from .config_manager import ConfigManager, Environment, ServiceSettings

# Export public API
__all__ = [
    "ConfigManager",
    "Environment",
    "ServiceSettings",
]

__version__ = "2.0.0"
