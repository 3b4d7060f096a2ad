"""Health check endpoints."""

from fastapi import APIRouter, Depends, Response

from noirrelay import __version__
from noirrelay.api.routes.relay import get_upstream_connector
from noirrelay.relay import SessionRegistry, UpstreamConnector
from noirrelay.relay.registry import get_session_registry

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(
    connector: UpstreamConnector = Depends(get_upstream_connector),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Readiness probe; relaying is impossible without an upstream key."""
    if not connector.configured:
        return Response(status_code=503, content="Upstream API key not configured")

    return {"status": "ready", "sessions": registry.get_stats()}


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness probe."""
    return {"status": "alive"}
