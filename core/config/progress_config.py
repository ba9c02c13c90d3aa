#!/usr/bin/env python3
"""Campaign progress engine configuration

Tunables for the calculation and consistency engine. Business rules that
product has not settled (acceptance gating) are exposed here rather than
hard-coded.
"""
import os
from dataclasses import dataclass
from enum import Enum

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


class AcceptanceGate(str, Enum):
    """Which campaign kinds drop transactions registered before acceptance"""
    ALL = "all"
    COMPOSITE_ONLY = "composite_only"
    DISABLED = "disabled"


@dataclass
class ProgressConfig:
    """Progress engine settings"""

    # Acceptance gating (transactions registered before accepted_at are ignored)
    acceptance_gate: AcceptanceGate = AcceptanceGate.ALL

    # Batch re-derivation
    recalculate_concurrency: int = 8

    # Periodic reconciliation
    monitor_enabled: bool = False
    monitor_interval_minutes: int = 5

    # Fan accepted snapshots out to NATS
    publish_events: bool = True

    @classmethod
    def from_env(cls) -> 'ProgressConfig':
        """Load progress engine config from environment variables"""
        gate = os.getenv("PROGRESS_ACCEPTANCE_GATE", AcceptanceGate.ALL.value).lower()
        try:
            acceptance_gate = AcceptanceGate(gate)
        except ValueError:
            acceptance_gate = AcceptanceGate.ALL
        return cls(
            acceptance_gate=acceptance_gate,
            recalculate_concurrency=max(1, _int(os.getenv("PROGRESS_RECALCULATE_CONCURRENCY", "8"), 8)),
            monitor_enabled=_bool(os.getenv("PROGRESS_MONITOR_ENABLED", "false")),
            monitor_interval_minutes=max(1, _int(os.getenv("PROGRESS_MONITOR_INTERVAL_MINUTES", "5"), 5)),
            publish_events=_bool(os.getenv("PROGRESS_PUBLISH_EVENTS", "true")),
        )
