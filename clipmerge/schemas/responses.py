"""
Response schemas for the clip merge API.
"""

from typing import Optional

from pydantic import BaseModel, Field

from clipmerge.models import MergeResult


class MergeClipsResponse(BaseModel):
    """
    Playable artifact reference returned for a finished merge.

    Built by the calling API from the MergeResult that run_merge_job returns.
    """

    video_id: str = Field(..., description="ID of the stored merge result")
    video_url: str = Field(..., description="Storage URL of the merged MP4")
    thumbnail_url: str = Field("", description="Thumbnail URL, may be empty")
    duration: float = Field(..., ge=0, description="Merged duration in seconds")
    job_id: str = Field(..., description="Job ID, for log correlation")

    @classmethod
    def from_result(cls, result: MergeResult) -> "MergeClipsResponse":
        return cls(
            video_id=result.id or "",
            video_url=result.storage_url,
            thumbnail_url=result.thumbnail_url,
            duration=result.duration,
            job_id=result.job_id,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool = Field(..., description="Whether the service can run merges")
    ffmpeg: str = Field(..., description="FFmpeg status: available or unavailable")
    ffmpeg_path: Optional[str] = Field(None, description="FFmpeg binary that was probed")
    ffmpeg_version: Optional[str] = Field(None, description="First line of `ffmpeg -version`")
    error: Optional[str] = Field(None, description="Why FFmpeg is unavailable")
