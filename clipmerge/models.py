"""
Domain models for clip merge jobs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class ClipRequest:
    """A (source video, start, end) triple requested for a merge."""

    video_id: str
    start_time: float
    end_time: float
    title: Optional[str] = None


@dataclass
class SourceVideo:
    """A video stored by the upload pipeline. Read only here."""

    id: str
    owner_user_id: str
    title: str
    video_url: str  # Stored path, format varies across deployments
    thumbnail_url: str = ""
    duration: float = 0.0


@dataclass
class ResolvedClip:
    """A clip whose source file has been located on local disk."""

    absolute_file_path: str
    start_time: float
    end_time: float
    source_video_id: str
    title: str
    thumbnail: str
    original_video_title: str

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class MergeOwner:
    """The authenticated user the merge runs for."""

    id: str
    email: str = ""
    name: str = ""


@dataclass
class JobOptions:
    """Caller-supplied metadata for the merged video."""

    title: Optional[str] = None
    description: Optional[str] = None


@dataclass
class MergeJob:
    """In-memory state for one merge invocation."""

    job_id: str
    temp_dir: str
    output_dir: str
    owner: MergeOwner
    options: JobOptions
    started_at: float  # time.monotonic() at job entry
    clips: list[ResolvedClip] = field(default_factory=list)
    total_duration: float = 0.0

    @property
    def output_filename(self) -> str:
        return f"merged_{self.job_id}.mp4"


@dataclass
class SourceClipSummary:
    """The subset of a resolved clip stored with the merge result."""

    video_id: str
    title: str
    start_time: float
    end_time: float
    duration: float
    thumbnail: str
    original_video_title: str

    @classmethod
    def from_resolved(cls, clip: ResolvedClip) -> "SourceClipSummary":
        return cls(
            video_id=clip.source_video_id,
            title=clip.title,
            start_time=clip.start_time,
            end_time=clip.end_time,
            duration=clip.duration,
            thumbnail=clip.thumbnail,
            original_video_title=clip.original_video_title,
        )


@dataclass
class MergeStats:
    total_clips: int
    total_duration: float
    processing_time_ms: int
    merge_date: datetime


@dataclass
class MergeResult:
    """Persisted record of a finished merge. Immutable once created."""

    owner_user_id: str
    title: str
    description: str
    job_id: str
    duration: float
    storage_url: str
    storage_key: str
    thumbnail_url: str
    owner_email: str
    owner_name: str
    source_clips: list[SourceClipSummary]
    stats: MergeStats
    id: Optional[str] = None
