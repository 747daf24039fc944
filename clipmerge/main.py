"""
FastAPI application entry point for ClipMerge.

ClipMerge stitches trimmed ranges of uploaded videos into a single MP4:
1. Source file resolution across deployment layouts
2. One-pass FFmpeg trim + normalize + concat
3. Thumbnail, upload to S3 and result persistence
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from clipmerge.config import build_pipeline_config, get_settings
from clipmerge.errors import ConfigurationError
from clipmerge.routers import health
from clipmerge.services.directory_provisioner import DirectoryProvisioner
from clipmerge.services.engine_probe import probe_engine
from clipmerge.services.merge_pipeline import ClipMergePipeline, build_pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def get_pipeline(app: FastAPI) -> ClipMergePipeline:
    """
    Get the pipeline created at startup.

    Entry point for code that mounts its own merge routes on this app.
    """
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is None:
        raise RuntimeError("Merge pipeline not initialized")
    return pipeline


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown events.
    Probes FFmpeg and wires the merge pipeline on startup.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info(f"Starting {settings.app_name} ({settings.environment})...")

    config = build_pipeline_config(settings)
    logger.info(f"Project root: {config.project_root}")
    logger.info(f"Upload search paths: {list(config.uploads_base_dirs)}")

    # Probe once; a missing engine does not stop the service from starting
    loop = asyncio.get_event_loop()
    capability = await loop.run_in_executor(
        None,
        lambda: probe_engine(
            config.engine_path,
            timeout=settings.probe_timeout_seconds,
            is_production=config.is_production,
        ),
    )

    provisioner = DirectoryProvisioner(config.project_root, app_root=config.app_root)
    try:
        temp_dir = provisioner.safe_temp_dir(config.temp_dir)
        output_dir = provisioner.safe_output_dir(config.output_dir)
    except ConfigurationError as e:
        # Jobs fail with the same error until PROJECT_ROOT is fixed
        logger.error(f"Work directories not created: {e}")
    else:
        await provisioner.ensure_exists(temp_dir, "temp")
        await provisioner.ensure_exists(output_dir, "output")
        logger.info(f"Temp directory: {temp_dir}, output directory: {output_dir}")

    pipeline = build_pipeline(settings=settings, config=config, capability=capability)
    logger.info(f"Max concurrent merges: {settings.max_concurrent_merges}")

    # Store in app state for dependency injection
    app.state.settings = settings
    app.state.pipeline_config = config
    app.state.engine_capability = capability
    app.state.pipeline = pipeline

    logger.info(f"{settings.app_name} ready to accept merge jobs.")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    app.state.pipeline = None
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="ClipMerge",
    description="""
ClipMerge - clip stitching service.

## Features
- Resolves stored source videos across deployment layouts
- Trims and concatenates clips in one FFmpeg pass (H.264/AAC, fast start)
- Uploads the merged video and thumbnail to S3
- Persists a merge result with per-clip provenance

## Health
- `GET /health` liveness
- `GET /health/ready` FFmpeg availability
    """,
    version=health.SERVICE_VERSION,
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router, tags=["Health"])


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    settings = get_settings()
    return {
        "service": settings.app_name,
        "version": health.SERVICE_VERSION,
        "status": "running",
        "environment": settings.environment,
        "storage_backend": settings.storage_backend,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clipmerge.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
    )
