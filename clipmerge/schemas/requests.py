"""
Request schemas for the clip merge API.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from clipmerge.models import ClipRequest, JobOptions


class ClipInput(BaseModel):
    """One clip to include in the merged video."""

    video_id: str = Field(..., min_length=1, description="ID of the uploaded source video")
    start_time: float = Field(..., ge=0, description="Clip start in seconds")
    end_time: float = Field(..., gt=0, description="Clip end in seconds")
    title: Optional[str] = Field(None, description="Optional clip title, defaults to the video title")

    @model_validator(mode='after')
    def validate_time_range(self) -> 'ClipInput':
        """Ensure the clip has a positive duration."""
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must be greater than "
                f"start_time ({self.start_time})"
            )
        return self

    def to_clip_request(self) -> ClipRequest:
        return ClipRequest(
            video_id=self.video_id,
            start_time=self.start_time,
            end_time=self.end_time,
            title=self.title,
        )


class MergeClipsRequest(BaseModel):
    """
    Request body for merging clips into one video.

    This service mounts no merge route; the authenticated API in front of it
    validates its body with this model and passes to_clip_requests() and
    to_job_options() to ClipMergePipeline.run_merge_job.
    """

    clips: list[ClipInput] = Field(..., min_length=1, description="Clips in output order")
    title: Optional[str] = Field(None, max_length=200, description="Title of the merged video")
    description: Optional[str] = Field(None, max_length=2000, description="Description of the merged video")

    class Config:
        json_schema_extra = {
            "example": {
                "clips": [
                    {"video_id": "v1", "start_time": 0, "end_time": 5},
                    {"video_id": "v2", "start_time": 10, "end_time": 18},
                ],
                "title": "Highlights",
            }
        }

    def to_clip_requests(self) -> list[ClipRequest]:
        return [clip.to_clip_request() for clip in self.clips]

    def to_job_options(self) -> JobOptions:
        return JobOptions(title=self.title, description=self.description)
