#!/usr/bin/env python3
"""
Centralized configuration access for microservices

Wraps the modular settings in core.config and adds per-service settings and
endpoint discovery. Discovery resolves host/port from environment variables
and falls back to the supplied defaults.

Usage:
    from core.config_manager import ConfigManager

    config = ConfigManager("campaign_progress_service")
    host, port = config.discover_service(
        service_name="postgres_service",
        default_host="localhost",
        default_port=5432,
        env_host_key="POSTGRES_HOST",
        env_port_key="POSTGRES_PORT",
    )
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Deployment environment"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class ServiceSettings:
    """Per-service runtime settings"""
    service_name: str
    service_port: int = 8260
    log_level: str = "INFO"
    debug: bool = False
    environment: Environment = Environment.DEVELOPMENT


def _environment() -> Environment:
    raw = (os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")).lower()
    aliases = {"dev": "development", "test": "testing", "prod": "production"}
    try:
        return Environment(aliases.get(raw, raw))
    except ValueError:
        return Environment.DEVELOPMENT


class ConfigManager:
    """Configuration manager for a single service"""

    def __init__(self, service_name: str, settings: Optional[Settings] = None):
        self.service_name = service_name
        self.settings = settings or get_settings()
        self.environment = _environment()

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve host and port for a dependency.

        Priority: environment variables → defaults.
        """
        host = os.getenv(env_host_key) if env_host_key else None
        port_raw = os.getenv(env_port_key) if env_port_key else None

        port = default_port
        if port_raw:
            try:
                port = int(port_raw)
            except ValueError:
                logger.warning(f"Invalid port '{port_raw}' for {service_name}, using {default_port}")

        resolved = (host or default_host, port)
        logger.debug(f"Discovered {service_name} at {resolved[0]}:{resolved[1]}")
        return resolved

    def get_service_config(self) -> ServiceSettings:
        """Get settings for this service"""
        port_raw = os.getenv("SERVICE_PORT", "8260")
        try:
            port = int(port_raw)
        except ValueError:
            port = 8260
        return ServiceSettings(
            service_name=self.service_name,
            service_port=port,
            log_level=self.settings.logging.log_level,
            debug=self.environment == Environment.DEVELOPMENT,
            environment=self.environment,
        )


__all__ = ["ConfigManager", "Environment", "ServiceSettings"]
