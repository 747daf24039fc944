"""
Tests for the post-merge finisher.
"""

import asyncio
import os
import time

import pytest

from clipmerge.errors import PersistenceError, StorageError
from clipmerge.models import JobOptions, MergeJob, MergeOwner, ResolvedClip
from clipmerge.services.finisher import PostMergeFinisher, default_title
from clipmerge.services.record_stores import InMemoryMergeResultStore

from tests.fakes import FakeStorage, FakeThumbnailGenerator


class FailingResultStore(InMemoryMergeResultStore):
    async def create(self, result):
        raise RuntimeError("database is down")


@pytest.fixture
def job(tmp_path):
    temp_dir = tmp_path / "tmp" / "job-1"
    output_dir = tmp_path / "output"
    temp_dir.mkdir(parents=True)
    output_dir.mkdir()
    clips = [
        ResolvedClip("/u/v1.mp4", 0, 5, "v1", "Intro", "https://cdn.example/v1.jpg", "Intro"),
        ResolvedClip("/u/v2.mp4", 10, 18, "v2", "Demo", "https://cdn.example/v2.jpg", "Demo"),
    ]
    return MergeJob(
        job_id="job-1",
        temp_dir=str(temp_dir),
        output_dir=str(output_dir),
        owner=MergeOwner("u1", "user@example.com", "User One"),
        options=JobOptions(title="Highlights"),
        started_at=time.monotonic(),
        clips=clips,
        total_duration=13.0,
    )


@pytest.fixture
def merged_file(job):
    path = os.path.join(job.output_dir, job.output_filename)
    with open(path, "wb") as f:
        f.write(b"merged")
    return path


class TestFinish:
    """Tests for PostMergeFinisher.finish."""

    def test_uploads_and_persists(self, job, merged_file):
        """Test the video and thumbnail are uploaded and the result stored."""
        storage = FakeStorage()
        store = InMemoryMergeResultStore()
        finisher = PostMergeFinisher(storage, store, FakeThumbnailGenerator())

        result = asyncio.run(finisher.finish(job, merged_file))

        assert [upload["key"] for upload in storage.uploads] == [
            "merged-videos/u1/thumbs/thumb_job-1.jpg",
            "merged-videos/u1/merged_job-1.mp4",
        ]
        assert [upload["content_type"] for upload in storage.uploads] == ["image/jpeg", "video/mp4"]
        assert result.id is not None
        assert asyncio.run(store.find_by_id(result.id)) == result
        assert result.title == "Highlights"
        assert result.description == ""
        assert result.duration == 13.0
        assert result.storage_key == "merged-videos/u1/merged_job-1.mp4"
        assert result.storage_url == "https://bucket.example/merged-videos/u1/merged_job-1.mp4"
        assert result.thumbnail_url == "https://bucket.example/merged-videos/u1/thumbs/thumb_job-1.jpg"
        assert result.owner_email == "user@example.com"
        assert [clip.video_id for clip in result.source_clips] == ["v1", "v2"]
        assert result.source_clips[1].duration == 8
        assert result.stats.total_clips == 2
        assert result.stats.processing_time_ms >= 0

    def test_thumbnail_written_in_temp_dir(self, job, merged_file):
        thumbnails = FakeThumbnailGenerator()
        finisher = PostMergeFinisher(FakeStorage(), InMemoryMergeResultStore(), thumbnails)

        asyncio.run(finisher.finish(job, merged_file))

        assert thumbnails.calls == [(merged_file, os.path.join(job.temp_dir, "thumb_job-1.jpg"))]

    def test_thumbnail_failure_falls_back(self, job, merged_file):
        """Test a failed thumbnail uses the first clip's thumbnail."""
        storage = FakeStorage()
        finisher = PostMergeFinisher(storage, InMemoryMergeResultStore(), FakeThumbnailGenerator(fail=True))

        result = asyncio.run(finisher.finish(job, merged_file))

        assert result.thumbnail_url == "https://cdn.example/v1.jpg"
        assert [upload["key"] for upload in storage.uploads] == ["merged-videos/u1/merged_job-1.mp4"]

    def test_thumbnail_upload_failure_falls_back(self, job, merged_file):
        storage = FakeStorage(fail_keys=["thumbs/"])
        finisher = PostMergeFinisher(storage, InMemoryMergeResultStore(), FakeThumbnailGenerator())

        result = asyncio.run(finisher.finish(job, merged_file))

        assert result.thumbnail_url == "https://cdn.example/v1.jpg"

    def test_video_upload_failure_is_fatal(self, job, merged_file):
        """Test a failed video upload raises StorageError and stores nothing."""
        store = InMemoryMergeResultStore()
        finisher = PostMergeFinisher(FakeStorage(fail_keys=["merged_"]), store, FakeThumbnailGenerator())

        with pytest.raises(StorageError):
            asyncio.run(finisher.finish(job, merged_file))

        assert len(store) == 0

    def test_persistence_failure_names_orphan(self, job, merged_file):
        """Test a store failure reports the uploaded key."""
        finisher = PostMergeFinisher(FakeStorage(), FailingResultStore(), FakeThumbnailGenerator())

        with pytest.raises(PersistenceError) as exc_info:
            asyncio.run(finisher.finish(job, merged_file))

        assert exc_info.value.orphaned_key == "merged-videos/u1/merged_job-1.mp4"

    def test_default_title(self, job, merged_file):
        job.options = JobOptions()
        finisher = PostMergeFinisher(FakeStorage(), InMemoryMergeResultStore(), FakeThumbnailGenerator())

        result = asyncio.run(finisher.finish(job, merged_file))

        assert result.title.startswith("Merged Video ")


class TestCleanup:
    """Tests for PostMergeFinisher.cleanup."""

    def test_removes_temp_and_output(self, job, merged_file):
        finisher = PostMergeFinisher(FakeStorage(), InMemoryMergeResultStore(), FakeThumbnailGenerator())

        cleanup_warnings = asyncio.run(finisher.cleanup(job, merged_file))

        assert cleanup_warnings == []
        assert not os.path.exists(job.temp_dir)
        assert not os.path.exists(merged_file)

    def test_idempotent(self, job, merged_file):
        """Test cleaning up twice is harmless."""
        finisher = PostMergeFinisher(FakeStorage(), InMemoryMergeResultStore(), FakeThumbnailGenerator())

        asyncio.run(finisher.cleanup(job, merged_file))
        assert asyncio.run(finisher.cleanup(job, merged_file)) == []

    def test_failures_returned_not_raised(self, job, merged_file, mocker):
        """Test removal errors become CleanupWarnings."""
        mocker.patch("clipmerge.services.finisher.shutil.rmtree", side_effect=PermissionError("busy"))
        finisher = PostMergeFinisher(FakeStorage(), InMemoryMergeResultStore(), FakeThumbnailGenerator())

        cleanup_warnings = asyncio.run(finisher.cleanup(job, merged_file))

        assert len(cleanup_warnings) == 1
        assert cleanup_warnings[0].path == job.temp_dir
        assert "busy" in str(cleanup_warnings[0])


def test_default_title_format():
    from datetime import datetime

    assert default_title(datetime(2024, 3, 7)) == "Merged Video 3/7/2024"
