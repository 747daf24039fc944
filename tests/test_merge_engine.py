"""
Tests for the FFmpeg merge engine.

FFmpeg itself is never executed: subprocess.Popen is replaced with a fake
that replays progress output and writes the output file.
"""

import asyncio
import io
import os
import threading

import pytest

from clipmerge.errors import MergeError, MergeTimeoutError
from clipmerge.models import ResolvedClip
from clipmerge.services import merge_engine
from clipmerge.services.engine_probe import EngineCapability
from clipmerge.services.merge_engine import MergeEngine


def make_clip(path, start, end, video_id="v1"):
    return ResolvedClip(
        absolute_file_path=path,
        start_time=start,
        end_time=end,
        source_video_id=video_id,
        title=video_id,
        thumbnail="",
        original_video_title=video_id,
    )


def fake_popen(returncode=0, progress=(), stderr_text="", write_output=True, hang=False):
    """Build a Popen replacement class with the given behavior."""

    class FakePopen:
        instances = []

        def __init__(self, cmd, stdout=None, stderr=None, text=None):
            self.cmd = cmd
            self.killed = threading.Event()
            self.returncode = None
            FakePopen.instances.append(self)

            if stderr is not None and stderr_text:
                stderr.write(stderr_text)
                stderr.flush()
            if write_output:
                with open(cmd[-1], "wb") as f:
                    f.write(b"\x00" * 128)

            self.stdout = self._hang() if hang else io.StringIO("".join(progress))

        def _hang(self):
            yield "progress=continue\n"
            self.killed.wait(5)

        def poll(self):
            return self.returncode

        def wait(self):
            if self.returncode is None:
                self.returncode = -9 if self.killed.is_set() else returncode
            return self.returncode

        def kill(self):
            self.killed.set()

    return FakePopen


@pytest.fixture
def engine(available_engine):
    return MergeEngine("ffmpeg", available_engine)


@pytest.fixture
def clips(tmp_path):
    first = tmp_path / "a.mp4"
    second = tmp_path / "b.mp4"
    first.write_bytes(b"a")
    second.write_bytes(b"b")
    return [make_clip(str(first), 0, 5, "v1"), make_clip(str(second), 10, 18, "v2")]


class TestBuildCommand:
    """Tests for FFmpeg argument construction."""

    def test_inputs_seeked_in_order(self, engine, clips):
        """Test each clip is an input with -ss/-to before -i."""
        cmd = engine.build_command(clips, "/out/merged.mp4")

        first_input = cmd.index("-i")
        assert cmd[first_input - 4:first_input + 2] == ["-ss", "0.000", "-to", "5.000", "-i", clips[0].absolute_file_path]
        second_input = cmd.index("-i", first_input + 1)
        assert cmd[second_input - 4:second_input + 2] == ["-ss", "10.000", "-to", "18.000", "-i", clips[1].absolute_file_path]

    def test_filter_graph_concatenates_all_inputs(self, engine, clips):
        """Test the filter normalizes every input and concatenates in order."""
        cmd = engine.build_command(clips, "/out/merged.mp4")
        graph = cmd[cmd.index("-filter_complex") + 1]

        assert "[0:v]scale=1280:720" in graph
        assert "[1:a]aresample=44100" in graph
        assert "setsar=1" in graph
        assert "fps=30" in graph
        assert graph.endswith("[v0][a0][v1][a1]concat=n=2:v=1:a=1:unsafe=1[outv][outa]")

    def test_encoding_policy(self, engine, clips):
        """Test the fixed encoding flags are present."""
        cmd = engine.build_command(clips, "/out/merged.mp4")

        def value(flag):
            return cmd[cmd.index(flag) + 1]

        assert value("-c:v") == "libx264"
        assert value("-preset") == "medium"
        assert value("-crf") == "23"
        assert value("-pix_fmt") == "yuv420p"
        assert value("-c:a") == "aac"
        assert value("-b:a") == "128k"
        assert value("-threads") == "1"
        assert value("-max_muxing_queue_size") == "9999"
        assert value("-movflags") == "+faststart"
        assert value("-progress") == "pipe:1"
        assert "-y" in cmd
        assert cmd[-1] == "/out/merged.mp4"

    def test_single_clip(self, engine, clips):
        graph = engine.build_filter_graph(1)
        assert graph.endswith("[v0][a0]concat=n=1:v=1:a=1:unsafe=1[outv][outa]")


class TestMerge:
    """Tests for running the merge."""

    def test_success(self, engine, clips, tmp_path, mocker, caplog):
        """Test a clean exit returns an outcome for the written file."""
        caplog.set_level("INFO")
        popen = fake_popen(progress=["out_time_us=6500000\n", "progress=continue\n", "progress=end\n"])
        mocker.patch.object(merge_engine.subprocess, "Popen", popen)
        output_path = str(tmp_path / "merged.mp4")

        outcome = asyncio.run(engine.merge(clips, output_path, "job-1", str(tmp_path)))

        assert outcome.output_path == output_path
        assert outcome.file_size_bytes == 128
        assert outcome.duration == pytest.approx(13.0)
        assert outcome.log_path == str(tmp_path / "ffmpeg_job-1.log")
        assert len(popen.instances) == 1
        assert "FFmpeg progress: 50%" in caplog.text

    def test_nonzero_exit_carries_diagnostics(self, engine, clips, tmp_path, mocker):
        """Test a failed run raises MergeError with the stderr tail."""
        popen = fake_popen(returncode=1, stderr_text="Invalid data found when processing input\n", write_output=False)
        mocker.patch.object(merge_engine.subprocess, "Popen", popen)

        with pytest.raises(MergeError) as exc_info:
            asyncio.run(engine.merge(clips, str(tmp_path / "merged.mp4"), "job-1", str(tmp_path)))

        assert not isinstance(exc_info.value, MergeTimeoutError)
        assert "code 1" in str(exc_info.value)
        assert "Invalid data found" in exc_info.value.diagnostics
        assert os.path.isfile(tmp_path / "ffmpeg_job-1.log")

    def test_missing_output(self, engine, clips, tmp_path, mocker):
        """Test a clean exit without an output file is still a failure."""
        mocker.patch.object(merge_engine.subprocess, "Popen", fake_popen(write_output=False))

        with pytest.raises(MergeError, match="not created"):
            asyncio.run(engine.merge(clips, str(tmp_path / "merged.mp4"), "job-1", str(tmp_path)))

    def test_timeout_kills_process(self, available_engine, clips, tmp_path, mocker):
        """Test exceeding the budget kills FFmpeg and raises MergeTimeoutError."""
        popen = fake_popen(hang=True, write_output=False)
        mocker.patch.object(merge_engine.subprocess, "Popen", popen)
        engine = MergeEngine("ffmpeg", available_engine, timeout_seconds=0.1)

        with pytest.raises(MergeTimeoutError) as exc_info:
            asyncio.run(engine.merge(clips, str(tmp_path / "merged.mp4"), "job-1", str(tmp_path)))

        assert exc_info.value.timeout_seconds == 0.1
        assert popen.instances[0].killed.is_set()

    def test_cancel_kills_process(self, engine, clips, tmp_path, mocker):
        """Test cancelling the awaiting task kills FFmpeg."""
        popen = fake_popen(hang=True, write_output=False)
        mocker.patch.object(merge_engine.subprocess, "Popen", popen)

        async def run():
            task = asyncio.ensure_future(engine.merge(clips, str(tmp_path / "merged.mp4"), "job-1", str(tmp_path)))
            while not popen.instances:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())
        assert popen.instances[0].killed.is_set()

    def test_unavailable_engine_never_spawns(self, clips, tmp_path, mocker):
        """Test a failed capability probe short-circuits the merge."""
        popen = mocker.patch.object(merge_engine.subprocess, "Popen")
        capability = EngineCapability(available=False, path="/usr/bin/ffmpeg", error="FFmpeg not found")
        engine = MergeEngine("/usr/bin/ffmpeg", capability)

        with pytest.raises(MergeError, match="not available"):
            asyncio.run(engine.merge(clips, str(tmp_path / "merged.mp4"), "job-1", str(tmp_path)))

        popen.assert_not_called()


class TestTimeoutRace:
    """Tests for the timer firing around process exit."""

    def make_run(self, tmp_path):
        return merge_engine._FFmpegRun(["ffmpeg"], str(tmp_path / "ffmpeg.log"), 1.0, 10.0, "job-1")

    def test_timer_after_exit_is_not_a_timeout(self, tmp_path, mocker):
        """Test a process that already exited is neither killed nor flagged."""
        run = self.make_run(tmp_path)
        run.process = mocker.Mock()
        run.process.poll.return_value = 0

        run._on_timeout()

        assert run.timed_out is False
        run.process.kill.assert_not_called()

    def test_timer_while_running_kills(self, tmp_path, mocker):
        run = self.make_run(tmp_path)
        run.process = mocker.Mock()
        run.process.poll.return_value = None

        run._on_timeout()

        assert run.timed_out is True
        run.process.kill.assert_called_once()

    def test_cancel_is_not_a_timeout(self, tmp_path, mocker):
        run = self.make_run(tmp_path)
        run.process = mocker.Mock()
        run.process.poll.return_value = None

        run.kill()

        assert run.timed_out is False
        run.process.kill.assert_called_once()
