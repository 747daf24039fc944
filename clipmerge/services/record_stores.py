"""
Record stores consumed by the merge pipeline.

The pipeline only depends on the abstract contracts below. The in-memory
implementations back local development and tests; production wires in
database-backed implementations owned by the upload service.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

from clipmerge.models import MergeResult, SourceVideo

logger = logging.getLogger(__name__)


class SourceVideoStore(ABC):
    """Read access to uploaded source videos."""

    @abstractmethod
    async def find_by_id(self, video_id: str) -> Optional[SourceVideo]:
        """Return the video record, or None if no such video exists."""


class MergeResultStore(ABC):
    """Write-once storage for finished merges."""

    @abstractmethod
    async def create(self, result: MergeResult) -> MergeResult:
        """Persist a result and return it with its assigned id."""

    @abstractmethod
    async def find_by_id(self, result_id: str) -> Optional[MergeResult]:
        """Return a stored result, or None."""


class InMemorySourceVideoStore(SourceVideoStore):
    """Dictionary-backed source video store."""

    def __init__(self, videos: Optional[list[SourceVideo]] = None):
        self._videos: dict[str, SourceVideo] = {}
        for video in videos or []:
            self.add(video)

    def add(self, video: SourceVideo) -> None:
        self._videos[str(video.id)] = video

    async def find_by_id(self, video_id: str) -> Optional[SourceVideo]:
        return self._videos.get(str(video_id))


class InMemoryMergeResultStore(MergeResultStore):
    """Dictionary-backed merge result store."""

    def __init__(self):
        self._results: dict[str, MergeResult] = {}
        self._lock = asyncio.Lock()

    async def create(self, result: MergeResult) -> MergeResult:
        async with self._lock:
            stored = replace(result, id=uuid.uuid4().hex)
            self._results[stored.id] = stored
        logger.debug(f"Stored merge result {stored.id} for job {stored.job_id}")
        return stored

    async def find_by_id(self, result_id: str) -> Optional[MergeResult]:
        return self._results.get(result_id)

    def __len__(self) -> int:
        return len(self._results)
