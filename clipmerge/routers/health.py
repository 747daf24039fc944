"""
Health check endpoints for the merge service.
"""

from fastapi import APIRouter, Request

from clipmerge.schemas.responses import HealthResponse, ReadinessResponse

router = APIRouter()

SERVICE_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version=SERVICE_VERSION,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request):
    """
    Readiness check endpoint.

    Reports the FFmpeg capability probed at startup. Merges cannot run
    until FFmpeg is available.
    """
    capability = getattr(request.app.state, "engine_capability", None)
    pipeline = getattr(request.app.state, "pipeline", None)

    if capability is None:
        return ReadinessResponse(ready=False, ffmpeg="unknown", error="Engine not probed yet")

    return ReadinessResponse(
        ready=capability.available and pipeline is not None,
        ffmpeg="available" if capability.available else "unavailable",
        ffmpeg_path=capability.path,
        ffmpeg_version=capability.version,
        error=capability.error,
    )
