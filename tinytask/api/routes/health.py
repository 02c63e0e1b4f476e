"""
Health and metrics routes.
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from tinytask.dependencies.services import get_db
from tinytask.monitoring import get_metrics, get_health_info

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Health check with store status; 503 when the store is unreachable."""
    health_info = get_health_info(get_db())
    if health_info.get("status") == "unhealthy":
        return JSONResponse(content=health_info, status_code=503)
    return health_info


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)
