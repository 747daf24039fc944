"""
Clip Resolution Stage - Turns clip requests into clips backed by local files.
"""

import asyncio
import logging
import os
from dataclasses import dataclass

from clipmerge.errors import FileResolutionError, SourceFileMissingError, ClipNotFoundError
from clipmerge.models import ClipRequest, ResolvedClip
from clipmerge.services.path_resolver import PathResolver
from clipmerge.services.record_stores import SourceVideoStore

logger = logging.getLogger(__name__)


@dataclass
class ClipResolution:
    """Resolved clips in request order plus their summed duration."""

    clips: list[ResolvedClip]
    total_duration: float


class ClipResolver:
    """
    Loads each requested clip's source video and locates its file.

    Lookups run concurrently. The stage only succeeds if every clip resolves;
    the first failure cancels the remaining lookups.
    """

    def __init__(self, source_store: SourceVideoStore, path_resolver: PathResolver):
        self.source_store = source_store
        self.path_resolver = path_resolver

    async def resolve_clips(self, requests: list[ClipRequest], job_id: str = "") -> ClipResolution:
        """
        Resolve all clip requests.

        Args:
            requests: Clips in the order they should appear in the output
            job_id: Job id for log correlation

        Returns:
            ClipResolution with clips in request order

        Raises:
            ClipNotFoundError: A video id has no record
            SourceFileMissingError: A record's file cannot be found or is empty
        """
        tasks = [
            asyncio.ensure_future(self._resolve_single(request, i, len(requests), job_id))
            for i, request in enumerate(requests)
        ]

        try:
            clips = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # Let cancelled lookups finish unwinding before the error propagates
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        total_duration = sum(clip.duration for clip in clips)
        logger.info(f"[{job_id}] Resolved {len(clips)} clips, total duration {total_duration:.2f}s")

        return ClipResolution(clips=list(clips), total_duration=total_duration)

    async def _resolve_single(self, request: ClipRequest, idx: int, total: int, job_id: str) -> ResolvedClip:
        video = await self.source_store.find_by_id(request.video_id)
        if video is None:
            logger.error(f"[{job_id}] [{idx + 1}/{total}] Video not found: {request.video_id}")
            raise ClipNotFoundError(str(request.video_id))

        try:
            resolved_path = await self.path_resolver.resolve(video.video_url)
        except FileResolutionError as e:
            raise SourceFileMissingError(video.video_url, video_id=str(video.id)) from e

        loop = asyncio.get_event_loop()
        size = await loop.run_in_executor(None, _file_size, resolved_path)
        if size is None:
            raise SourceFileMissingError(resolved_path, video_id=str(video.id))
        if size == 0:
            raise SourceFileMissingError(resolved_path, video_id=str(video.id), reason="File is empty")

        logger.info(
            f"[{job_id}] [{idx + 1}/{total}] Clip {video.id}: "
            f"{request.start_time:.2f}s-{request.end_time:.2f}s from {resolved_path}"
        )

        return ResolvedClip(
            absolute_file_path=resolved_path,
            start_time=request.start_time,
            end_time=request.end_time,
            source_video_id=str(request.video_id),
            title=request.title or video.title,
            thumbnail=video.thumbnail_url,
            original_video_title=video.title,
        )


def _file_size(path: str):
    try:
        return os.path.getsize(path)
    except OSError:
        return None
