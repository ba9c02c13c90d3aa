"""
Campaign Progress Service Routes Registry

Defines service metadata and routes exposed by the progress engine.
"""

API_PREFIX = "/api/v1/campaign-progress"

SERVICE_METADATA = {
    "service_name": "campaign_progress_service",
    "version": "1.0.0",
    "tags": ['campaign', 'progress', 'v1'],
    "capabilities": ['progress_calculation', 'status_reconciliation', 'progress_events'],
}

ROUTES = [
    {"path": "/health", "methods": ["GET"], "description": "Health check"},
    {"path": "/health/ready", "methods": ["GET"], "description": "Readiness check"},
    {"path": "/health/live", "methods": ["GET"], "description": "Liveness check"},
    {"path": f"{API_PREFIX}/health", "methods": ["GET"], "description": "Service health check (API v1)"},
    {"path": f"{API_PREFIX}/recalculate", "methods": ["POST"], "description": "Re-derive progress of all active campaigns"},
    {"path": f"{API_PREFIX}/reconcile", "methods": ["POST"], "description": "Reconcile stored progress of all campaigns"},
    {"path": f"{API_PREFIX}/{{campaign_id}}", "methods": ["GET"], "description": "Compute campaign progress"},
    {"path": f"{API_PREFIX}/{{campaign_id}}/latest", "methods": ["GET"], "description": "Last published snapshot"},
    {"path": f"{API_PREFIX}/{{campaign_id}}/retry", "methods": ["POST"], "description": "Retry stalled recomputation"},
    {"path": f"{API_PREFIX}/{{campaign_id}}/reconcile", "methods": ["POST"], "description": "Reconcile one campaign"},
]


def get_route_summary():
    """Get route metadata for startup logs and discovery tags"""
    return {
        "route_count": str(len(ROUTES)),
        "routes": ",".join([r["path"] for r in ROUTES]),
        "api_version": "v1",
        "base_path": API_PREFIX,
    }


__all__ = ["API_PREFIX", "SERVICE_METADATA", "ROUTES", "get_route_summary"]
