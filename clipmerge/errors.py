"""
Exception classes for the clip merge pipeline.

Every fatal error carries the job id once the orchestrator has tagged it, so a
single message is enough to find all log lines for the failing job.
"""

from typing import Optional


class MergePipelineError(Exception):
    """Base exception for all merge pipeline errors."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        self.message = message
        self.job_id = job_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.job_id:
            return f"[{self.job_id}] {self.message}"
        return self.message


class ConfigurationError(MergePipelineError):
    """Raised when the job workspace cannot be placed or created safely."""


class InvalidMergeRequestError(MergePipelineError):
    """Raised when a merge is requested with nothing to merge."""


class FileResolutionError(MergePipelineError):
    """Raised when no candidate location holds a stored video file."""

    def __init__(self, stored_reference: str, filename: str, checked_paths: list[str]):
        self.stored_reference = stored_reference
        self.filename = filename
        self.checked_paths = list(checked_paths)
        tried = "\n".join(self.checked_paths)
        super().__init__(
            f"Could not resolve path for: {stored_reference}\n"
            f"Filename: {filename}\n"
            f"Tried {len(self.checked_paths)} paths:\n{tried}"
        )


class ClipNotFoundError(MergePipelineError):
    """Raised when a requested clip's source video record does not exist."""

    def __init__(self, video_id: str):
        self.video_id = video_id
        super().__init__(f"Video not found: {video_id}")


class SourceFileMissingError(MergePipelineError):
    """Raised when a source video record exists but its file does not."""

    def __init__(self, path: str, video_id: Optional[str] = None, reason: str = "File not found"):
        self.path = path
        self.video_id = video_id
        super().__init__(f"{reason}: {path}")


class MergeError(MergePipelineError):
    """Raised when FFmpeg reports a failed merge."""

    def __init__(self, message: str, diagnostics: str = "", job_id: Optional[str] = None):
        self.diagnostics = diagnostics
        super().__init__(message, job_id=job_id)


class MergeTimeoutError(MergeError):
    """Raised when FFmpeg exceeds the hard time budget and is killed."""

    def __init__(self, timeout_seconds: float, diagnostics: str = "", job_id: Optional[str] = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Merge timed out after {timeout_seconds:.0f}s, FFmpeg was killed",
            diagnostics=diagnostics,
            job_id=job_id,
        )


class StorageError(MergePipelineError):
    """Raised when the merged video cannot be uploaded to durable storage."""


class PersistenceError(MergePipelineError):
    """Raised when the merge result cannot be saved after a successful upload."""

    def __init__(self, message: str, orphaned_key: Optional[str] = None):
        self.orphaned_key = orphaned_key
        super().__init__(message)


class ResultNotFoundError(MergePipelineError):
    """Raised when a playback URL is requested for an unknown merge result."""

    def __init__(self, result_id: str):
        self.result_id = result_id
        super().__init__(f"Merged video not found: {result_id}")


class MergeJobError(MergePipelineError):
    """Wraps unexpected failures so callers always see one pipeline error."""


class CleanupWarning(UserWarning):
    """A temp file or directory could not be removed after a job."""

    def __init__(self, path: str, error: str):
        self.path = path
        self.error = error
        super().__init__(f"Failed to clean up {path}: {error}")
