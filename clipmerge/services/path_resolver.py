"""
Path Resolver - Locates stored source videos on the local filesystem.

Stored video paths are not trusted to match the current deployment layout.
The resolver probes an explicit, ordered list of candidate locations and
returns the first file that exists.
"""

import asyncio
import contextvars
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from clipmerge.errors import FileResolutionError

logger = logging.getLogger(__name__)

# Stored references with these prefixes are relative to the application root
RELATIVE_UPLOAD_PREFIXES = ("backend/uploads/", "uploads/")


class PathResolver:
    """
    Resolves stored video references to absolute file paths.

    Resolution is deterministic: for the same reference and the same files on
    disk the same path is returned, because candidates are checked in a fixed
    order and the first existing one wins.
    """

    def __init__(self, candidate_bases: Iterable[str], app_root: Optional[str] = None):
        """
        Args:
            candidate_bases: Upload directories in priority order
            app_root: Root that "uploads/..." style references are relative to
        """
        self.candidate_bases = [base for base in candidate_bases if base]
        self.app_root = app_root or os.getcwd()

    def candidate_paths(self, stored_reference: str) -> list[str]:
        """
        Build the de-duplicated, ordered list of paths to check.

        Args:
            stored_reference: Path string as stored on the video record

        Returns:
            Normalized candidate paths, first-seen order preserved
        """
        normalized = stored_reference.replace("\\", "/")
        filename = os.path.basename(normalized)
        segments = [part for part in normalized.split("/") if part]

        candidates: list[str] = []

        if os.path.isabs(normalized):
            candidates.append(normalized)

        if normalized.startswith(RELATIVE_UPLOAD_PREFIXES):
            candidates.append(os.path.join(self.app_root, normalized))

        for base in self.candidate_bases:
            candidates.append(os.path.join(base, filename))
            if len(segments) > 1:
                candidates.append(os.path.join(base, segments[-1]))

        unique: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            path = os.path.normpath(candidate)
            if path not in seen:
                seen.add(path)
                unique.append(path)
        return unique

    def find(self, stored_reference: str) -> str:
        """
        Return the first candidate that exists as a file.

        Raises:
            FileResolutionError: If no candidate exists
        """
        filename = os.path.basename(stored_reference.replace("\\", "/"))
        candidates = self.candidate_paths(stored_reference)

        logger.debug(f"Resolving {stored_reference} ({filename}) against {len(candidates)} candidates")

        for path in candidates:
            if os.path.isfile(path):
                logger.info(f"Resolved {stored_reference} -> {path}")
                return path

        self._log_resolution_failure(stored_reference, filename, candidates)
        raise FileResolutionError(stored_reference, filename, candidates)

    async def resolve(self, stored_reference: str) -> str:
        """Async wrapper around find(); filesystem checks run off the event loop."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, contextvars.copy_context().run, self.find, stored_reference)

    def _log_resolution_failure(self, stored_reference: str, filename: str, candidates: list[str]) -> None:
        """Log enough context to diagnose a misconfigured uploads location."""
        logger.error(
            f"Could not resolve {stored_reference}: cwd={os.getcwd()}, "
            f"filename={filename}, bases={self.candidate_bases}, checked={candidates}"
        )

        stem = Path(filename).stem
        for base in self.candidate_bases:
            if not os.path.isdir(base):
                continue
            try:
                contents = os.listdir(base)
            except OSError as e:
                logger.warning(f"Could not read {base}: {e}")
                continue
            near_misses = [
                name for name in contents
                if stem and (stem in Path(name).stem or Path(name).stem in stem)
            ]
            if near_misses:
                logger.warning(f"Possible matches for {filename} in {base}: {near_misses}")
