#!/usr/bin/env python3
"""Modular configuration system for the campaign progress service

Configuration hierarchy:
- infra_config: Infrastructure services (PostgreSQL, NATS)
- progress_config: Progress engine tunables (acceptance gating, batch size, monitor)
- logging_config: Logging configuration
"""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .progress_config import AcceptanceGate, ProgressConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)


@dataclass
class Settings:
    """Aggregated settings for the service"""
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infra: InfraConfig = field(default_factory=InfraConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            logging=LoggingConfig.from_env(),
            infra=InfraConfig.from_env(),
            progress=ProgressConfig.from_env(),
        )


# Create global settings instance
settings = Settings.from_env()

def get_settings() -> Settings:
    """Get global settings instance"""
    return settings

def reload_settings() -> Settings:
    """Reload settings from environment"""
    global settings
    settings = Settings.from_env()
    return settings

__all__ = [
    'Settings',
    'get_settings',
    'reload_settings',
    'settings',
    'LoggingConfig',
    'InfraConfig',
    'ProgressConfig',
    'AcceptanceGate',
]
