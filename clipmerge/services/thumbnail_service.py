"""
Thumbnail Generator - Grabs a single frame from the merged video.
"""

import asyncio
import logging
import os
import subprocess

logger = logging.getLogger(__name__)


class ThumbnailGenerator:
    """Creates a JPEG thumbnail at a fixed fraction of the video's duration."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        width: int = 320,
        height: int = 180,
        position: float = 0.5,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.width = width
        self.height = height
        self.position = position

    async def generate(self, video_path: str, output_path: str) -> str:
        """
        Write a thumbnail for video_path.

        Args:
            video_path: Merged MP4
            output_path: Destination JPEG

        Returns:
            output_path

        Raises:
            ThumbnailError: If probing or frame extraction fails
        """
        duration = await self._get_duration(video_path)
        timestamp = max(duration * self.position, 0.0)

        cmd = [
            self.ffmpeg_path,
            "-y",
            "-ss", f"{timestamp:.3f}",
            "-i", video_path,
            "-frames:v", "1",
            "-vf", f"scale={self.width}:{self.height}",
            "-q:v", "2",
            output_path,
        ]

        logger.debug(f"Generating thumbnail at {timestamp:.2f}s: {output_path}")

        loop = asyncio.get_event_loop()
        result = await loop.run_in_executor(
            None,
            lambda: subprocess.run(cmd, capture_output=True)
        )

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="replace")[-500:] if result.stderr else "Unknown error"
            raise ThumbnailError(f"Thumbnail extraction failed: {error_msg}")

        if not os.path.isfile(output_path):
            raise ThumbnailError(f"Thumbnail not created: {output_path}")

        return output_path

    async def _get_duration(self, video_path: str) -> float:
        """Get video duration in seconds using ffprobe."""
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            video_path,
        ]

        loop = asyncio.get_event_loop()
        result = await loop.run_in_executor(
            None,
            lambda: subprocess.run(cmd, capture_output=True)
        )

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="replace")[-500:] if result.stderr else "Unknown error"
            raise ThumbnailError(f"ffprobe failed: {error_msg}")

        try:
            return float(result.stdout.decode().strip())
        except ValueError:
            raise ThumbnailError(f"Could not parse duration for {video_path}")


class ThumbnailError(Exception):
    """Exception raised when thumbnail generation fails."""
    pass
