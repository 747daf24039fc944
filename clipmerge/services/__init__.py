"""
Services for the merge worker.

Includes:
- Source resolution (path resolver, clip resolver)
- Workspace provisioning
- FFmpeg merge engine, capability probe and thumbnails
- Storage backends (S3, local) and the post-merge finisher
- The job orchestrator
"""

from clipmerge.services.clip_resolver import ClipResolver
from clipmerge.services.directory_provisioner import DirectoryProvisioner
from clipmerge.services.engine_probe import EngineCapability, probe_engine
from clipmerge.services.finisher import PostMergeFinisher
from clipmerge.services.local_storage_service import LocalStorageService
from clipmerge.services.merge_engine import MergeEngine
from clipmerge.services.merge_pipeline import ClipMergePipeline, build_pipeline
from clipmerge.services.path_resolver import PathResolver
from clipmerge.services.record_stores import (
    InMemoryMergeResultStore,
    InMemorySourceVideoStore,
    MergeResultStore,
    SourceVideoStore,
)
from clipmerge.services.s3_storage_service import S3StorageService
from clipmerge.services.thumbnail_service import ThumbnailGenerator

__all__ = [
    # Resolution
    "PathResolver",
    "ClipResolver",
    "DirectoryProvisioner",
    # Engine
    "EngineCapability",
    "probe_engine",
    "MergeEngine",
    "ThumbnailGenerator",
    # Storage
    "S3StorageService",
    "LocalStorageService",
    "SourceVideoStore",
    "MergeResultStore",
    "InMemorySourceVideoStore",
    "InMemoryMergeResultStore",
    # Orchestration
    "PostMergeFinisher",
    "ClipMergePipeline",
    "build_pipeline",
]
