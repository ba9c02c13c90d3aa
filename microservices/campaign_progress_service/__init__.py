"""
Campaign Progress Service

Sales campaign progress engine providing:
- Simple and composite (multi-criteria) progress calculation
- Change coordination with coalesced, generation-ordered recomputation
- Real-time snapshot subscriptions and NATS progress events
- Status reconciliation (active/completed/cancelled) and drift correction

Port: 8260
"""

__version__ = "1.0.0"
__service__ = "campaign_progress_service"
