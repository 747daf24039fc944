"""
Post-Merge Finisher - Thumbnail, upload, persistence and cleanup for a merged video.
"""

import asyncio
import contextvars
import logging
import os
import shutil
import time
from datetime import datetime, timezone
from typing import Optional

from clipmerge.errors import CleanupWarning, PersistenceError, StorageError
from clipmerge.models import MergeJob, MergeResult, MergeStats, SourceClipSummary
from clipmerge.services.record_stores import MergeResultStore
from clipmerge.services.thumbnail_service import ThumbnailGenerator

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"
THUMBNAIL_CONTENT_TYPE = "image/jpeg"


def video_storage_key(owner_id: str, job_id: str) -> str:
    return f"merged-videos/{owner_id}/merged_{job_id}.mp4"


def thumbnail_storage_key(owner_id: str, job_id: str) -> str:
    return f"merged-videos/{owner_id}/thumbs/thumb_{job_id}.jpg"


def default_title(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Merged Video {now.month}/{now.day}/{now.year}"


class PostMergeFinisher:
    """
    Turns a merged file on disk into a persisted MergeResult.

    Only the video upload and the result persistence are fatal. Thumbnail
    problems fall back to the first clip's thumbnail.
    """

    def __init__(self, storage, result_store: MergeResultStore, thumbnail_generator: ThumbnailGenerator):
        """
        Args:
            storage: S3StorageService or LocalStorageService
            result_store: Where finished results are persisted
            thumbnail_generator: Frame grabber for the merged video
        """
        self.storage = storage
        self.result_store = result_store
        self.thumbnail_generator = thumbnail_generator

    async def finish(self, job: MergeJob, output_path: str) -> MergeResult:
        """
        Upload the merged video and persist its result record.

        Args:
            job: The running job (clips and total_duration populated)
            output_path: Merged MP4 produced by the engine

        Returns:
            The stored MergeResult (with id)

        Raises:
            StorageError: Video upload failed
            PersistenceError: Result could not be saved; the uploaded object is orphaned
        """
        job_id = job.job_id
        owner_id = job.owner.id

        thumbnail_url = await self._create_thumbnail(job, output_path)

        video_key = video_storage_key(owner_id, job_id)
        try:
            video_url = await self.storage.upload(output_path, video_key, VIDEO_CONTENT_TYPE)
        except Exception as e:
            logger.error(f"[{job_id}] Video upload failed: {e}")
            raise StorageError(f"Failed to upload merged video to {video_key}: {e}", job_id=job_id) from e

        logger.info(f"[{job_id}] Merged video uploaded: {video_url}")

        result = MergeResult(
            owner_user_id=owner_id,
            title=job.options.title or default_title(),
            description=job.options.description or "",
            job_id=job_id,
            duration=job.total_duration,
            storage_url=video_url,
            storage_key=video_key,
            thumbnail_url=thumbnail_url,
            owner_email=job.owner.email,
            owner_name=job.owner.name,
            source_clips=[SourceClipSummary.from_resolved(clip) for clip in job.clips],
            stats=MergeStats(
                total_clips=len(job.clips),
                total_duration=job.total_duration,
                processing_time_ms=int((time.monotonic() - job.started_at) * 1000),
                merge_date=datetime.now(timezone.utc),
            ),
        )

        try:
            stored = await self.result_store.create(result)
        except Exception as e:
            logger.error(f"[{job_id}] Failed to save merge result, orphaned object: {video_key}")
            raise PersistenceError(
                f"Failed to save merge result, uploaded video orphaned at {video_key}: {e}",
                orphaned_key=video_key,
            ) from e

        logger.info(f"[{job_id}] Merge result saved: {stored.id}")
        return stored

    async def _create_thumbnail(self, job: MergeJob, output_path: str) -> str:
        """Generate and upload a thumbnail, falling back on any failure."""
        fallback = job.clips[0].thumbnail if job.clips else ""
        thumbnail_path = os.path.join(job.temp_dir, f"thumb_{job.job_id}.jpg")

        try:
            await self.thumbnail_generator.generate(output_path, thumbnail_path)
        except Exception as e:
            logger.warning(f"[{job.job_id}] Thumbnail generation failed, using fallback: {e}")
            return fallback

        key = thumbnail_storage_key(job.owner.id, job.job_id)
        try:
            url = await self.storage.upload(thumbnail_path, key, THUMBNAIL_CONTENT_TYPE)
        except Exception as e:
            logger.warning(f"[{job.job_id}] Thumbnail upload failed, using fallback: {e}")
            return fallback

        logger.info(f"[{job.job_id}] Thumbnail uploaded: {url}")
        return url

    async def cleanup(self, job: MergeJob, output_path: Optional[str] = None) -> list[CleanupWarning]:
        """
        Remove the job's temp workspace and merged file.

        Safe to call more than once and on partially created jobs. Failures are
        logged and returned, never raised.
        """
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, contextvars.copy_context().run, _cleanup_paths, job.job_id, job.temp_dir, output_path
        )


def _cleanup_paths(job_id: str, temp_dir: Optional[str], output_path: Optional[str]) -> list[CleanupWarning]:
    cleanup_warnings: list[CleanupWarning] = []

    if temp_dir and os.path.exists(temp_dir):
        try:
            shutil.rmtree(temp_dir)
            logger.debug(f"[{job_id}] Cleaned up temp dir: {temp_dir}")
        except OSError as e:
            cleanup_warnings.append(CleanupWarning(temp_dir, str(e)))

    if output_path and os.path.exists(output_path):
        try:
            os.remove(output_path)
            logger.debug(f"[{job_id}] Cleaned up output file: {output_path}")
        except OSError as e:
            cleanup_warnings.append(CleanupWarning(output_path, str(e)))

    for warning in cleanup_warnings:
        logger.warning(f"[{job_id}] {warning}")

    return cleanup_warnings
