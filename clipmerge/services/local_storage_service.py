"""
Local Storage Service - Stores merged videos on the local filesystem.

Drop-in replacement for S3StorageService in local-only deployments. Object
keys map to paths below the storage directory.
"""

import asyncio
import logging
import os
import shutil

logger = logging.getLogger(__name__)


class LocalStorageService:
    """
    Filesystem-backed object storage.

    Output structure:
        {base_dir}/merged-videos/{owner_id}/
        ├── merged_{job_id}.mp4
        └── thumbs/thumb_{job_id}.jpg
    """

    def __init__(self, base_dir: str):
        self.base_dir = os.path.abspath(base_dir)
        os.makedirs(self.base_dir, exist_ok=True)
        logger.info(f"Local storage directory: {self.base_dir}")

    def path_for(self, key: str) -> str:
        """Map an object key to a path, refusing keys that escape base_dir."""
        path = os.path.normpath(os.path.join(self.base_dir, key))
        if path != self.base_dir and not path.startswith(self.base_dir + os.sep):
            raise LocalStorageError(f"Key escapes storage directory: {key}")
        return path

    async def upload(self, local_path: str, key: str, content_type: str) -> str:
        """
        Copy a file into storage.

        Returns:
            Absolute path of the stored copy (used as its URL)
        """
        if not os.path.isfile(local_path):
            raise LocalStorageError(f"File not found: {local_path}")

        output_path = self.path_for(key)
        file_size = os.path.getsize(local_path)

        def _copy():
            os.makedirs(os.path.dirname(output_path), exist_ok=True)
            shutil.copy2(local_path, output_path)

        # Copy file (use thread pool for blocking IO)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, _copy)
        except OSError as e:
            raise LocalStorageError(f"Copy to {output_path} failed: {e}") from e

        logger.info(f"Stored {content_type} file: {output_path} ({file_size / 1024 / 1024:.1f} MB)")
        return output_path

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise LocalStorageError(f"Delete of {path} failed: {e}") from e
        logger.info(f"Deleted {path}")

    async def exists(self, key: str) -> bool:
        return os.path.isfile(self.path_for(key))

    async def signed_url(self, key: str, expires_in: int = 3600) -> str:
        """Local files need no signing; returns the stored path."""
        path = self.path_for(key)
        if not os.path.isfile(path):
            raise LocalStorageError(f"File not found: {path}")
        return path


class LocalStorageError(Exception):
    """Exception raised when local storage operation fails."""
    pass
