"""
Configuration module using Pydantic Settings for environment variable management.

Only deployment-specific values are exposed as environment variables. Encoding
and thumbnail parameters are hardcoded so every deployment produces the same
output.
"""

import os
import shutil
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings

# Container layout used by the production image
APP_ROOT = "/app"

# Root of the installed package checkout (parent of clipmerge/)
PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Application settings.

    Only essential configuration is loaded from environment variables.
    All encoding settings are hardcoded for consistency.
    """

    # ============================================================
    # ENVIRONMENT VARIABLES (minimal set)
    # ============================================================

    # Application
    app_name: str = "clipmerge"
    environment: Literal["development", "production"] = "development"
    log_level: str = "INFO"

    # Filesystem layout
    uploads_dir: Optional[str] = None  # Where the upload pipeline stores source videos
    temp_dir: Optional[str] = None  # Per-job workspaces are created below this
    output_dir: Optional[str] = None  # Merged outputs before upload
    project_root: Optional[str] = None  # Defaults to cwd (or /app in production)
    job_log_dir: Optional[str] = None  # Per-job log files are disabled when unset

    # External binaries
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None

    # Storage
    storage_backend: Literal["s3", "local"] = "s3"
    aws_region: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    s3_bucket: str = "clipmerge-media"
    local_storage_dir: str = "storage"

    # Performance tuning
    max_concurrent_merges: int = 2  # Max FFmpeg merge processes at once

    # ============================================================
    # HARDCODED SETTINGS (not configurable via env vars)
    # ============================================================

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def merge_timeout_seconds(self) -> int:
        return 30 * 60

    @property
    def probe_timeout_seconds(self) -> int:
        return 10

    # Rendering Configuration
    @property
    def ffmpeg_preset(self) -> str:
        return "medium"  # More reliable than "fast" on small instances

    @property
    def ffmpeg_crf(self) -> int:
        return 23

    @property
    def ffmpeg_threads(self) -> int:
        return 1

    @property
    def audio_bitrate(self) -> str:
        return "128k"

    @property
    def target_output_width(self) -> int:
        return 1280

    @property
    def target_output_height(self) -> int:
        return 720

    @property
    def target_fps(self) -> int:
        return 30

    # Thumbnail Configuration
    @property
    def thumbnail_width(self) -> int:
        return 320

    @property
    def thumbnail_height(self) -> int:
        return 180

    @property
    def thumbnail_position(self) -> float:
        return 0.5  # Fraction of the merged duration

    # Storage Configuration
    @property
    def signed_url_ttl_seconds(self) -> int:
        return 86400

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@dataclass(frozen=True)
class PipelineConfig:
    """Environment-derived paths and binaries, resolved once at startup."""

    environment: str
    engine_path: str
    probe_path: str
    uploads_base_dirs: tuple[str, ...]
    temp_dir: Optional[str]
    output_dir: Optional[str]
    project_root: str
    app_root: str = APP_ROOT

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _resolve_project_root(settings: Settings) -> str:
    if settings.project_root:
        return os.path.abspath(settings.project_root)
    cwd = os.getcwd()
    if settings.is_production and cwd == APP_ROOT:
        return APP_ROOT
    return cwd


def _resolve_engine_path(settings: Settings) -> str:
    if settings.is_production:
        # System FFmpeg installed in the image
        return settings.ffmpeg_path or "/usr/bin/ffmpeg"
    return settings.ffmpeg_path or shutil.which("ffmpeg") or "ffmpeg"


def _resolve_probe_path(settings: Settings) -> str:
    if settings.ffprobe_path:
        return settings.ffprobe_path
    if settings.is_production:
        return "/usr/bin/ffprobe"
    return shutil.which("ffprobe") or "ffprobe"


def build_upload_bases(settings: Settings, cwd: Optional[str] = None) -> tuple[str, ...]:
    """
    Build the ordered list of directories where source uploads may live.

    Stored video paths have varied across deployments (absolute container
    paths, relative paths, bare filenames), so the resolver probes these in
    order and takes the first hit.
    """
    cwd = cwd or os.getcwd()
    bases = [
        settings.uploads_dir,
        f"{APP_ROOT}/backend/uploads" if settings.is_production else "./backend/uploads",
        f"{APP_ROOT}/uploads",
        f"{APP_ROOT}/backend/uploads",
        os.path.join(cwd, "backend", "uploads"),
        os.path.join(cwd, "uploads"),
        str(PACKAGE_ROOT.parent / "backend" / "uploads"),
        str(PACKAGE_ROOT.parent / "uploads"),
        str(PACKAGE_ROOT / "uploads"),
    ]
    return tuple(base for base in bases if base)


def build_pipeline_config(settings: Optional[Settings] = None) -> PipelineConfig:
    """Resolve every environment-dependent value the pipeline needs."""
    settings = settings or get_settings()
    return PipelineConfig(
        environment=settings.environment,
        engine_path=_resolve_engine_path(settings),
        probe_path=_resolve_probe_path(settings),
        uploads_base_dirs=build_upload_bases(settings),
        temp_dir=settings.temp_dir,
        output_dir=settings.output_dir,
        project_root=_resolve_project_root(settings),
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
