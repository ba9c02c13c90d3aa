"""
Campaign Progress Service Main Application

FastAPI application exposing the campaign progress engine.
Port: 8260
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Body, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from core.config_manager import ConfigManager
from core.logger import setup_service_logger

from .factory import CampaignProgressServiceFactory
from .models import (
    ErrorResponse,
    HealthResponse,
    LivenessResponse,
    ProgressOutcome,
    ProgressSnapshot,
    ReadinessResponse,
    RecalculateRequest,
    RecalculationReport,
    ReconcileRequest,
    ReconciliationReport,
    ReconciliationResult,
)
from .progress_service import CampaignProgressService
from .protocols import (
    CampaignNotFoundError,
    CampaignProgressError,
    UpstreamUnavailableError,
)
from .routes_registry import API_PREFIX, SERVICE_METADATA, get_route_summary

# Service configuration
SERVICE_NAME = SERVICE_METADATA["service_name"]
SERVICE_VERSION = SERVICE_METADATA["version"]

config_manager = ConfigManager(SERVICE_NAME)
config = config_manager.get_service_config()
SERVICE_PORT = config.service_port

# Setup logger
setup_service_logger(SERVICE_NAME, level=config.log_level)
logger = logging.getLogger(__name__)

# Track startup time for uptime calculation
startup_time = time.time()

# Global factory instance
factory: Optional[CampaignProgressServiceFactory] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global factory

    logger.info(f"Starting {SERVICE_NAME} on port {SERVICE_PORT}")

    factory = CampaignProgressServiceFactory(config_manager)
    try:
        await factory.initialize()
    except Exception as e:
        logger.error(f"Failed to initialize {SERVICE_NAME}: {e}")
        raise

    route_summary = get_route_summary()
    logger.info(f"Serving {route_summary['route_count']} routes under {route_summary['base_path']}")

    yield

    # Cleanup
    logger.info(f"Shutting down {SERVICE_NAME}")
    await factory.close()
    factory = None


# Create FastAPI application
app = FastAPI(
    title="Campaign Progress Service",
    description="Derives sales campaign progress from linked policies and keeps it consistent as data changes",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ====================
# Exception Handlers
# ====================


@app.exception_handler(CampaignNotFoundError)
async def campaign_not_found_handler(request: Request, exc: CampaignNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(detail=exc.message, error_code=exc.error_code).model_dump(mode="json"),
    )


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=ErrorResponse(detail=exc.message, error_code=exc.error_code).model_dump(mode="json"),
    )


@app.exception_handler(CampaignProgressError)
async def campaign_progress_error_handler(request: Request, exc: CampaignProgressError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(detail=exc.message, error_code=exc.error_code).model_dump(mode="json"),
    )


# ====================
# Dependencies
# ====================


def get_service() -> CampaignProgressService:
    """Get campaign progress service from factory"""
    if not factory:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return factory.service


# ====================
# Health Endpoints
# ====================


@app.get(f"{API_PREFIX}/health", response_model=HealthResponse, tags=["Health"])
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    dependencies = {}

    if factory:
        try:
            db_healthy = await factory.repository.health_check()
            dependencies["postgres"] = "healthy" if db_healthy else "unhealthy"
        except Exception:
            dependencies["postgres"] = "unhealthy"

        if factory.nats_client:
            connected = getattr(factory.nats_client, "is_connected", False)
            dependencies["nats"] = "healthy" if connected else "unhealthy"
        else:
            dependencies["nats"] = "not_configured"

    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        port=SERVICE_PORT,
        version=SERVICE_VERSION,
        dependencies=dependencies,
    )


@app.get("/health/ready", response_model=ReadinessResponse, tags=["Health"])
async def readiness_check():
    """Readiness check endpoint"""
    checks = {}
    details = {}

    if factory:
        try:
            db_healthy = await factory.repository.health_check()
            checks["database"] = db_healthy
            details["database"] = "Connected" if db_healthy else "Connection failed"
        except Exception as e:
            checks["database"] = False
            details["database"] = str(e)

        if factory.nats_client:
            connected = bool(getattr(factory.nats_client, "is_connected", False))
            checks["nats"] = connected
            details["nats"] = "Connected" if connected else "Disconnected"
        else:
            checks["nats"] = True  # Optional
            details["nats"] = "Not configured (optional)"
    else:
        checks["factory"] = False
        details["factory"] = "Factory not initialized"

    ready = all(checks.get(k, False) for k in ["database"])

    return ReadinessResponse(
        ready=ready,
        checks=checks,
        details=details,
    )


@app.get("/health/live", response_model=LivenessResponse, tags=["Health"])
async def liveness_check():
    """Liveness check endpoint"""
    return LivenessResponse(
        alive=True,
        uptime_seconds=time.time() - startup_time,
    )


# ====================
# Batch Operations
# ====================


@app.post(f"{API_PREFIX}/recalculate", response_model=RecalculationReport, tags=["Progress"])
async def recalculate_all(request: Optional[RecalculateRequest] = Body(None)):
    """Re-derive progress for every active campaign (optionally one broker's)"""
    service = get_service()
    user_id = request.user_id if request else None
    return await service.recalculate_all(user_id=user_id)


@app.post(f"{API_PREFIX}/reconcile", response_model=ReconciliationReport, tags=["Reconciliation"])
async def reconcile_all(request: Optional[ReconcileRequest] = Body(None)):
    """Validate stored progress of every active/completed campaign and correct drift"""
    service = get_service()
    user_id = request.user_id if request else None
    return await service.reconcile_all(user_id=user_id)


# ====================
# Per-Campaign Operations
# ====================


@app.get(f"{API_PREFIX}/{{campaign_id}}", response_model=ProgressSnapshot, tags=["Progress"])
async def get_progress(campaign_id: str):
    """Compute a campaign's progress now"""
    service = get_service()
    result = await service.compute_progress(campaign_id)

    if result.outcome == ProgressOutcome.NOT_FOUND:
        raise CampaignNotFoundError(campaign_id)
    if result.outcome == ProgressOutcome.UPSTREAM_UNAVAILABLE:
        raise UpstreamUnavailableError(result.error or "Persistence layer unavailable")
    return result.snapshot


@app.get(f"{API_PREFIX}/{{campaign_id}}/latest", response_model=ProgressSnapshot, tags=["Progress"])
async def get_latest_progress(campaign_id: str):
    """Last published snapshot, without recomputing"""
    service = get_service()
    snapshot = service.latest_snapshot(campaign_id)
    if snapshot is None:
        raise CampaignNotFoundError(campaign_id)
    return snapshot


@app.post(f"{API_PREFIX}/{{campaign_id}}/retry", tags=["Progress"])
async def retry_campaign(campaign_id: str):
    """Restart recomputation left pending by an upstream failure"""
    service = get_service()
    restarted = service.retry(campaign_id)
    return {
        "campaign_id": campaign_id,
        "restarted": restarted > 0,
        "state": service.state_of(campaign_id).value,
    }


@app.post(f"{API_PREFIX}/{{campaign_id}}/reconcile", response_model=ReconciliationResult, tags=["Reconciliation"])
async def reconcile_campaign(campaign_id: str):
    """Validate one campaign's stored progress and correct drift"""
    service = get_service()
    result = await service.reconcile_campaign(campaign_id)

    if result.outcome == ProgressOutcome.NOT_FOUND:
        raise CampaignNotFoundError(campaign_id)
    if result.outcome == ProgressOutcome.UPSTREAM_UNAVAILABLE:
        raise UpstreamUnavailableError(result.error or "Persistence layer unavailable")
    return result


# ====================
# Main Entry Point
# ====================


def main():
    """Run the service"""
    import uvicorn

    uvicorn.run(
        "microservices.campaign_progress_service.main:app",
        host="0.0.0.0",
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
