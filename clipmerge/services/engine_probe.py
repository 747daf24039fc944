"""
Engine Capability Probe - Checks once at startup that FFmpeg can be executed.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class EngineCapability:
    """Outcome of running `ffmpeg -version`."""

    available: bool
    path: str
    version: Optional[str] = None
    error: Optional[str] = None


def probe_engine(ffmpeg_path: str, timeout: float = 10, is_production: bool = False) -> EngineCapability:
    """
    Run `ffmpeg -version` and report whether the engine is usable.

    Args:
        ffmpeg_path: Binary to execute
        timeout: Seconds to wait before giving up
        is_production: Log an unavailable engine at ERROR instead of WARNING

    Returns:
        EngineCapability; never raises
    """
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        return _unavailable(ffmpeg_path, f"FFmpeg not found at {ffmpeg_path}", is_production)
    except subprocess.TimeoutExpired:
        return _unavailable(ffmpeg_path, f"FFmpeg did not respond within {timeout}s", is_production)
    except OSError as e:
        return _unavailable(ffmpeg_path, f"FFmpeg could not be executed: {e}", is_production)

    if result.returncode != 0:
        stderr = result.stderr.decode(errors="replace").strip()[-500:] if result.stderr else ""
        return _unavailable(
            ffmpeg_path,
            f"FFmpeg exited with code {result.returncode}: {stderr}",
            is_production,
        )

    output = result.stdout.decode(errors="replace") if result.stdout else ""
    version = output.splitlines()[0].strip() if output.strip() else None
    logger.info(f"FFmpeg available at {ffmpeg_path}: {version}")

    return EngineCapability(available=True, path=ffmpeg_path, version=version)


def _unavailable(ffmpeg_path: str, error: str, is_production: bool) -> EngineCapability:
    if is_production:
        logger.error(f"FFmpeg unavailable, merges will fail: {error}")
    else:
        logger.warning(f"FFmpeg unavailable, merges will fail: {error}")
    return EngineCapability(available=False, path=ffmpeg_path, error=error)
