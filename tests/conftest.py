"""
Pytest configuration and fixtures.
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from clipmerge.config import PipelineConfig
from clipmerge.models import SourceVideo
from clipmerge.services.engine_probe import EngineCapability
from clipmerge.services.merge_pipeline import ClipMergePipeline
from clipmerge.services.record_stores import InMemoryMergeResultStore, InMemorySourceVideoStore
from tests.fakes import FakeMergeEngine, FakeStorage, FakeThumbnailGenerator


@pytest.fixture
def uploads_dir(tmp_path):
    """Directory where source uploads live."""
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def pipeline_config(tmp_path, uploads_dir):
    """Development config rooted in a temporary project directory."""
    return PipelineConfig(
        environment="development",
        engine_path="ffmpeg",
        probe_path="ffprobe",
        uploads_base_dirs=(str(uploads_dir),),
        temp_dir=None,
        output_dir=None,
        project_root=str(tmp_path),
    )


@pytest.fixture
def source_store(uploads_dir):
    """Store with two uploaded videos whose files exist on disk."""
    store = InMemorySourceVideoStore()
    for video_id, title in (("v1", "Intro"), ("v2", "Demo")):
        filename = f"{video_id}.mp4"
        (uploads_dir / filename).write_bytes(b"\x00" * 64)
        store.add(SourceVideo(
            id=video_id,
            owner_user_id="u1",
            title=title,
            video_url=f"uploads/{filename}",
            thumbnail_url=f"https://cdn.example/{video_id}.jpg",
            duration=60.0,
        ))
    return store


@pytest.fixture
def fake_engine():
    return FakeMergeEngine()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_thumbnails():
    return FakeThumbnailGenerator()


@pytest.fixture
def make_pipeline(pipeline_config, source_store, fake_engine, fake_storage, fake_thumbnails):
    """Factory for a pipeline wired with fakes; keyword overrides replace any part."""

    def _make(**overrides):
        parts = {
            "config": pipeline_config,
            "source_store": source_store,
            "result_store": InMemoryMergeResultStore(),
            "storage": fake_storage,
            "engine": fake_engine,
            "thumbnail_generator": fake_thumbnails,
        }
        parts.update(overrides)
        return ClipMergePipeline(**parts)

    return _make


@pytest.fixture
def available_engine():
    return EngineCapability(available=True, path="ffmpeg", version="ffmpeg version 6.1")
