#!/usr/bin/env python3
"""Logging configuration"""
import os
from dataclasses import dataclass, field
from typing import List

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _list(val: str) -> List[str]:
    return [item.strip() for item in val.split(",") if item.strip()]


DEFAULT_QUIET_LOGGERS = "nats,asyncpg,uvicorn.access"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: str = ""
    enable_console: bool = True
    enable_structured: bool = False

    # Per-campaign coordinator tracing (state transitions, coalesced triggers)
    engine_log_level: str = ""

    # Chatty client libraries pinned to WARNING
    quiet_loggers: List[str] = field(default_factory=lambda: _list(DEFAULT_QUIET_LOGGERS))

    # Service identity for logging
    service_name: str = "campaign_progress_service"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        """Load logging config from environment variables"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if env == "development" else "INFO"),
            log_format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.getenv("LOG_FILE", ""),
            enable_console=True,
            enable_structured=_bool(os.getenv("ENABLE_STRUCTURED_LOGGING", "false")),
            engine_log_level=os.getenv("PROGRESS_ENGINE_LOG_LEVEL", ""),
            quiet_loggers=_list(os.getenv("QUIET_LOGGERS", DEFAULT_QUIET_LOGGERS)),
            service_name=os.getenv("SERVICE_NAME", "campaign_progress_service"),
            environment=env,
        )
