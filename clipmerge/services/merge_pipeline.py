"""
Clip Merge Pipeline - Orchestrates one merge job end to end.

Flow:
1. Provision a job-scoped temp workspace and the output directory
2. Resolve every requested clip to a local file (concurrently)
3. Merge the clips with a single FFmpeg process
4. Thumbnail, upload and persist the result
5. Clean up the workspace, whatever happened
"""

import asyncio
import contextvars
import logging
import os
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from clipmerge.config import PipelineConfig, Settings, build_pipeline_config, get_settings
from clipmerge.errors import (
    ConfigurationError,
    InvalidMergeRequestError,
    MergeJobError,
    MergePipelineError,
    ResultNotFoundError,
)
from clipmerge.models import ClipRequest, JobOptions, MergeJob, MergeOwner, MergeResult
from clipmerge.services.clip_resolver import ClipResolver
from clipmerge.services.directory_provisioner import (
    DEFAULT_OUTPUT_DIRNAME,
    DEFAULT_TEMP_DIRNAME,
    DirectoryProvisioner,
)
from clipmerge.services.engine_probe import EngineCapability, probe_engine
from clipmerge.services.finisher import PostMergeFinisher
from clipmerge.services.local_storage_service import LocalStorageService
from clipmerge.services.merge_engine import MergeEngine
from clipmerge.services.path_resolver import PathResolver
from clipmerge.services.record_stores import (
    InMemoryMergeResultStore,
    InMemorySourceVideoStore,
    MergeResultStore,
    SourceVideoStore,
)
from clipmerge.services.s3_storage_service import S3StorageService
from clipmerge.services.thumbnail_service import ThumbnailGenerator

logger = logging.getLogger(__name__)

# Every module logger in the package is a child of this one
PACKAGE_LOGGER = "clipmerge"

# Id of the job the current task (or executor call) is working on
current_job_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("clipmerge_job_id", default=None)


class JobLogFilter(logging.Filter):
    """Accepts only records emitted while working on one job."""

    def __init__(self, job_id: str):
        super().__init__()
        self.job_id = job_id

    def filter(self, record: logging.LogRecord) -> bool:
        return current_job_id.get() == self.job_id


class ClipMergePipeline:
    """
    Runs clip merge jobs.

    Jobs are isolated by a uuid4 job id: it names the temp workspace and the
    output file, and prefixes every log line and error. At most
    max_concurrent_merges jobs run at once; the rest wait their turn.
    """

    def __init__(
        self,
        config: PipelineConfig,
        source_store: SourceVideoStore,
        result_store: MergeResultStore,
        storage,
        engine: MergeEngine,
        thumbnail_generator: ThumbnailGenerator,
        max_concurrent_merges: int = 2,
        job_log_dir: Optional[str] = None,
        signed_url_ttl_seconds: int = 86400,
    ):
        self.config = config
        self.source_store = source_store
        self.result_store = result_store
        self.storage = storage
        self.engine = engine
        self.job_log_dir = job_log_dir
        self.signed_url_ttl_seconds = signed_url_ttl_seconds

        self.provisioner = DirectoryProvisioner(config.project_root, app_root=config.app_root)
        self.path_resolver = PathResolver(
            config.uploads_base_dirs,
            app_root=config.app_root if config.is_production else os.getcwd(),
        )
        self.clip_resolver = ClipResolver(source_store, self.path_resolver)
        self.finisher = PostMergeFinisher(storage, result_store, thumbnail_generator)

        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_merges))

    async def run_merge_job(
        self,
        clip_requests: list[ClipRequest],
        owner: MergeOwner,
        options: Optional[JobOptions] = None,
    ) -> MergeResult:
        """
        Merge the requested clips into one stored video.

        Args:
            clip_requests: Clips in output order, already validated
            owner: Authenticated user the result belongs to
            options: Optional title/description

        Returns:
            The persisted MergeResult

        Raises:
            MergePipelineError: Any failure, tagged with the job id
        """
        job_id = str(uuid.uuid4())
        options = options or JobOptions()

        if not clip_requests:
            raise InvalidMergeRequestError("No clips provided for merge", job_id=job_id)

        if self._semaphore.locked():
            logger.info(f"[{job_id}] Waiting for a free merge slot")

        async with self._semaphore:
            return await self._run_job(job_id, clip_requests, owner, options)

    async def _run_job(
        self,
        job_id: str,
        clip_requests: list[ClipRequest],
        owner: MergeOwner,
        options: JobOptions,
    ) -> MergeResult:
        started_at = time.monotonic()
        job_token = current_job_id.set(job_id)
        job_log_handler = self._setup_job_logging(job_id)
        job: Optional[MergeJob] = None
        output_path: Optional[str] = None

        try:
            logger.info(f"[{job_id}] Starting merge job: {len(clip_requests)} clips for user {owner.id}")

            job = self._create_job(job_id, owner, options, started_at)
            await self._provision(job)
            output_path = os.path.join(job.output_dir, job.output_filename)

            resolution = await self.clip_resolver.resolve_clips(clip_requests, job_id)
            job.clips = resolution.clips
            job.total_duration = resolution.total_duration

            await self.engine.merge(job.clips, output_path, job_id, job.temp_dir)

            result = await self.finisher.finish(job, output_path)

            elapsed = time.monotonic() - started_at
            logger.info(
                f"[{job_id}] Merge job completed in {elapsed:.1f}s: "
                f"{len(job.clips)} clips, {job.total_duration:.2f}s, result {result.id}"
            )
            return result

        except MergePipelineError as e:
            e.job_id = job_id
            logger.error(f"[{job_id}] Merge job failed: {e.message}")
            raise

        except Exception as e:
            logger.exception(f"[{job_id}] Merge job failed unexpectedly: {e}")
            raise MergeJobError(f"Unexpected error during merge: {e}", job_id=job_id) from e

        finally:
            if job is not None:
                await self.finisher.cleanup(job, output_path)
            self._cleanup_job_logging(job_log_handler)
            current_job_id.reset(job_token)

    def _create_job(self, job_id: str, owner: MergeOwner, options: JobOptions, started_at: float) -> MergeJob:
        """Compute safe workspace paths for the job."""
        temp_dir = self.provisioner.safe_temp_dir(self.config.temp_dir, job_id)
        output_dir = self.provisioner.safe_output_dir(self.config.output_dir)

        temp_dir = self.provisioner.enforce_anchored(
            temp_dir, os.path.join(DEFAULT_TEMP_DIRNAME, job_id), job_id
        )
        output_dir = self.provisioner.enforce_anchored(output_dir, DEFAULT_OUTPUT_DIRNAME, job_id)

        logger.info(f"[{job_id}] Temp dir: {temp_dir}, output dir: {output_dir}")

        return MergeJob(
            job_id=job_id,
            temp_dir=temp_dir,
            output_dir=output_dir,
            owner=owner,
            options=options,
            started_at=started_at,
        )

    async def _provision(self, job: MergeJob) -> None:
        if not await self.provisioner.ensure_exists(job.temp_dir, "temp"):
            raise ConfigurationError(f"Could not create temp directory: {job.temp_dir}")
        if not await self.provisioner.ensure_exists(job.output_dir, "output"):
            raise ConfigurationError(f"Could not create output directory: {job.output_dir}")

    async def get_playback_url(self, result_id: str, expires_in: Optional[int] = None) -> str:
        """
        Return a time-limited URL for a stored merge result.

        Raises:
            ResultNotFoundError: No result with that id
        """
        result = await self.result_store.find_by_id(result_id)
        if result is None:
            raise ResultNotFoundError(result_id)

        return await self.storage.signed_url(
            result.storage_key,
            expires_in or self.signed_url_ttl_seconds,
        )

    def _setup_job_logging(self, job_id: str) -> Optional[logging.FileHandler]:
        """
        Set up job-specific file logging.

        Attaches a file handler to the package logger. Its filter keeps only
        records emitted in this job's context, so concurrent jobs never
        share lines. Output goes to {job_log_dir}/job_{job_id}_{timestamp}.log.

        Returns:
            The file handler (to be removed later) or None if disabled or setup fails
        """
        if not self.job_log_dir:
            return None

        try:
            logs_dir = Path(self.job_log_dir)
            logs_dir.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_filename = logs_dir / f"job_{job_id}_{timestamp}.log"

            file_handler = logging.FileHandler(log_filename, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.addFilter(JobLogFilter(job_id))
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ))

            logging.getLogger(PACKAGE_LOGGER).addHandler(file_handler)

            logger.info(f"[{job_id}] Job logging initialized: {log_filename}")
            return file_handler

        except OSError as e:
            logger.warning(f"[{job_id}] Failed to setup job logging: {e}")
            return None

    def _cleanup_job_logging(self, file_handler: Optional[logging.FileHandler]) -> None:
        """Remove the job-specific file handler."""
        if file_handler is None:
            return

        logging.getLogger(PACKAGE_LOGGER).removeHandler(file_handler)
        file_handler.close()


def build_storage(settings: Settings, project_root: str):
    """Create the storage backend selected by STORAGE_BACKEND."""
    if settings.storage_backend == "local":
        base_dir = settings.local_storage_dir
        if not os.path.isabs(base_dir):
            base_dir = os.path.join(project_root, base_dir)
        return LocalStorageService(base_dir)
    return S3StorageService(settings=settings)


def build_pipeline(
    settings: Optional[Settings] = None,
    config: Optional[PipelineConfig] = None,
    capability: Optional[EngineCapability] = None,
    source_store: Optional[SourceVideoStore] = None,
    result_store: Optional[MergeResultStore] = None,
    storage=None,
) -> ClipMergePipeline:
    """
    Wire a ClipMergePipeline from settings.

    Anything not supplied is built from configuration; the record stores
    default to the in-memory implementations.
    """
    settings = settings or get_settings()
    config = config or build_pipeline_config(settings)

    if capability is None:
        capability = probe_engine(
            config.engine_path,
            timeout=settings.probe_timeout_seconds,
            is_production=config.is_production,
        )

    engine = MergeEngine(
        ffmpeg_path=config.engine_path,
        capability=capability,
        timeout_seconds=settings.merge_timeout_seconds,
        preset=settings.ffmpeg_preset,
        crf=settings.ffmpeg_crf,
        threads=settings.ffmpeg_threads,
        width=settings.target_output_width,
        height=settings.target_output_height,
        fps=settings.target_fps,
        audio_bitrate=settings.audio_bitrate,
    )

    thumbnail_generator = ThumbnailGenerator(
        ffmpeg_path=config.engine_path,
        ffprobe_path=config.probe_path,
        width=settings.thumbnail_width,
        height=settings.thumbnail_height,
        position=settings.thumbnail_position,
    )

    return ClipMergePipeline(
        config=config,
        source_store=source_store or InMemorySourceVideoStore(),
        result_store=result_store or InMemoryMergeResultStore(),
        storage=storage or build_storage(settings, config.project_root),
        engine=engine,
        thumbnail_generator=thumbnail_generator,
        max_concurrent_merges=settings.max_concurrent_merges,
        job_log_dir=settings.job_log_dir,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )
