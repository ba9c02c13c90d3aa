#!/usr/bin/env python3
"""
Service logger setup

Configures the root handler for a microservice process. Modules keep using
``logging.getLogger(__name__)``; this only decides where records go and how
they are rendered.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from core.config import LoggingConfig, get_settings

ENGINE_LOGGER = "microservices.campaign_progress_service"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record"""

    def __init__(self, service_name: str, environment: str):
        super().__init__()
        self.service_name = service_name
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service_name,
            "environment": self.environment,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure process logging and return the service logger.

    Args:
        service_name: Logger name and ``service`` field in structured output
        level: Overrides the configured level
        config: Logging config (defaults to global settings)
    """
    config = config or get_settings().logging
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)

    if config.enable_structured:
        formatter: logging.Formatter = StructuredFormatter(service_name, config.environment)
    else:
        formatter = logging.Formatter(config.log_format)

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.enable_console:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        root.addHandler(console)

    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    if config.engine_log_level:
        engine_level = getattr(logging, config.engine_log_level.upper(), None)
        if isinstance(engine_level, int):
            logging.getLogger(ENGINE_LOGGER).setLevel(engine_level)

    return logging.getLogger(service_name)


__all__ = ["ENGINE_LOGGER", "setup_service_logger", "StructuredFormatter"]
