"""
Directory Provisioner - Computes and creates safe job workspaces.

Environment overrides for temp/output directories are never trusted blindly:
anything that points at a system root, or outside the project, is replaced
with a project-relative default.
"""

import asyncio
import logging
import os
from typing import Optional

from clipmerge.config import APP_ROOT
from clipmerge.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Paths that must never be used as a temp or output directory
DANGEROUS_ROOT_PATHS = (
    "/output",
    "/tmp",
    "/var/tmp",
    "/var/output",
    "/root",
    "/home",
    "/usr",
    "/bin",
    "/sbin",
    "/etc",
    "/lib",
    "/opt",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
)

DEFAULT_TEMP_DIRNAME = "tmp"
DEFAULT_OUTPUT_DIRNAME = "output"


def _is_within(path: str, root: str) -> bool:
    path = os.path.normpath(path)
    root = os.path.normpath(root)
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


class DirectoryProvisioner:
    """Resolves temp/output directories and guarantees they exist."""

    def __init__(self, project_root: str, app_root: str = APP_ROOT):
        self.project_root = os.path.normpath(os.path.abspath(project_root))
        self.app_root = app_root

    def is_dangerous(self, path: str) -> bool:
        """
        True if path is a denylisted root, or lies below one outside the project.

        A project checked out under e.g. /home/user is still allowed to keep
        its own tmp/ and output/ directories.
        """
        normalized = os.path.normpath(path)
        if normalized == "/" or normalized in DANGEROUS_ROOT_PATHS:
            return True
        if self.project_root != "/" and _is_within(normalized, self.project_root):
            return False
        return any(_is_within(normalized, root) for root in DANGEROUS_ROOT_PATHS)

    def ensure_safe_path(self, input_path: Optional[str], fallback: str, kind: str = "unknown") -> str:
        """
        Validate a configured directory, substituting a safe default if needed.

        Args:
            input_path: Configured path (may be None, relative or absolute)
            fallback: Directory name relative to the project root
            kind: Label used in log messages ("temp", "output", ...)

        Returns:
            Absolute safe path

        Raises:
            ConfigurationError: The project-relative default is itself unsafe
        """
        safe_fallback = os.path.join(self.project_root, fallback)
        if self.is_dangerous(safe_fallback):
            raise ConfigurationError(
                f"No safe {kind} directory: default {safe_fallback} is a system path "
                f"(project root {self.project_root})"
            )

        if not input_path:
            logger.debug(f"No {kind} path configured, using {safe_fallback}")
            return safe_fallback

        if os.path.isabs(input_path):
            resolved = os.path.normpath(input_path)
        else:
            resolved = os.path.normpath(os.path.join(self.project_root, input_path))

        if self.is_dangerous(resolved):
            logger.warning(f"Dangerous {kind} path {input_path}, using safe fallback {safe_fallback}")
            return safe_fallback

        if not _is_within(resolved, self.project_root):
            logger.warning(
                f"{kind} path {input_path} resolves outside project root {self.project_root}, "
                f"using safe fallback {safe_fallback}"
            )
            return safe_fallback

        return resolved

    def safe_temp_dir(self, override: Optional[str], job_id: Optional[str] = None) -> str:
        base = self.ensure_safe_path(override, DEFAULT_TEMP_DIRNAME, "temp")
        return os.path.join(base, job_id) if job_id else base

    def safe_output_dir(self, override: Optional[str]) -> str:
        return self.ensure_safe_path(override, DEFAULT_OUTPUT_DIRNAME, "output")

    def is_path_safe(self, path: Optional[str]) -> bool:
        if not path:
            return False
        resolved = os.path.abspath(path)
        return not self.is_dangerous(resolved) and _is_within(resolved, self.project_root)

    def enforce_anchored(self, path: str, fallback: str, job_id: str) -> str:
        """
        Second, independent check that a computed path stays under a known root.

        Args:
            path: Path produced by safe_temp_dir/safe_output_dir
            fallback: cwd-relative path to force when the check fails
            job_id: Job id for log correlation

        Returns:
            path, or the cwd-relative fallback

        Raises:
            ConfigurationError: The cwd-relative fallback is unsafe as well
        """
        anchored = _is_within(path, self.project_root) or _is_within(path, self.app_root)
        if anchored and not self.is_dangerous(path):
            return path

        forced = os.path.normpath(os.path.join(os.getcwd(), fallback))
        if self.is_dangerous(forced):
            logger.error(f"[{job_id}] CRITICAL: {path} is not under a known root and fallback {forced} is unsafe")
            raise ConfigurationError(f"No safe directory for {path}: fallback {forced} is a system path", job_id=job_id)

        logger.error(f"[{job_id}] CRITICAL: {path} is not under a known root, forcing {forced}")
        return forced

    async def ensure_exists(self, path: str, kind: str = "directory") -> bool:
        """
        Create a directory tree if it is missing.

        Returns:
            True on success, False if the directory could not be created
        """
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, lambda: os.makedirs(path, exist_ok=True))
            logger.debug(f"{kind} directory ensured: {path}")
            return True
        except OSError as e:
            logger.error(f"Failed to create {kind} directory {path}: {e}")
            return False
