"""
Merge Engine - Trims and concatenates resolved clips into one MP4 with FFmpeg.

A single FFmpeg process does all the work: each clip is an input seeked with
-ss/-to, normalized to a common size, frame rate and audio layout, then joined
with the concat filter in request order.
"""

import asyncio
import contextvars
import logging
import os
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Optional

from clipmerge.errors import MergeError, MergeTimeoutError
from clipmerge.models import ResolvedClip
from clipmerge.services.engine_probe import EngineCapability

logger = logging.getLogger(__name__)

DIAGNOSTIC_TAIL_LINES = 30


@dataclass
class MergeOutcome:
    """Result of a successful merge."""

    output_path: str
    file_size_bytes: int
    duration: float  # Summed clip duration in seconds
    elapsed_seconds: float
    log_path: str


class MergeEngine:
    """
    Runs the FFmpeg merge for one job.

    Features:
    - Input-stage seeking per clip
    - Size/fps/audio normalization so mixed sources concatenate cleanly
    - Hard timeout that kills FFmpeg
    - Progress parsing from -progress pipe:1 (logged only)
    """

    def __init__(
        self,
        ffmpeg_path: str,
        capability: EngineCapability,
        timeout_seconds: float = 30 * 60,
        preset: str = "medium",
        crf: int = 23,
        threads: int = 1,
        width: int = 1280,
        height: int = 720,
        fps: int = 30,
        audio_bitrate: str = "128k",
    ):
        self.ffmpeg_path = ffmpeg_path
        self.capability = capability
        self.timeout_seconds = timeout_seconds
        self.preset = preset
        self.crf = crf
        self.threads = threads
        self.width = width
        self.height = height
        self.fps = fps
        self.audio_bitrate = audio_bitrate

    def build_filter_graph(self, clip_count: int) -> str:
        """Normalize every input and concatenate them in order."""
        w, h = self.width, self.height
        parts = []
        for i in range(clip_count):
            parts.append(
                f"[{i}:v]scale={w}:{h}:force_original_aspect_ratio=decrease,"
                f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={self.fps},format=yuv420p[v{i}]"
            )
            parts.append(
                f"[{i}:a]aresample=44100,"
                f"aformat=sample_fmts=fltp:channel_layouts=stereo[a{i}]"
            )

        concat_inputs = "".join(f"[v{i}][a{i}]" for i in range(clip_count))
        parts.append(f"{concat_inputs}concat=n={clip_count}:v=1:a=1:unsafe=1[outv][outa]")
        return ";".join(parts)

    def build_command(self, clips: list[ResolvedClip], output_path: str) -> list[str]:
        """
        Build the full FFmpeg argument list.

        Args:
            clips: Resolved clips in output order
            output_path: Destination MP4

        Returns:
            Argument list suitable for subprocess
        """
        cmd = [self.ffmpeg_path, "-y", "-hide_banner", "-nostats"]

        for clip in clips:
            cmd.extend([
                "-ss", f"{clip.start_time:.3f}",
                "-to", f"{clip.end_time:.3f}",
                "-i", clip.absolute_file_path,
            ])

        cmd.extend([
            "-filter_complex", self.build_filter_graph(len(clips)),
            "-map", "[outv]",
            "-map", "[outa]",
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-threads", str(self.threads),
            "-max_muxing_queue_size", "9999",
            "-movflags", "+faststart",
            "-progress", "pipe:1",
            output_path,
        ])
        return cmd

    async def merge(
        self,
        clips: list[ResolvedClip],
        output_path: str,
        job_id: str,
        log_dir: str,
    ) -> MergeOutcome:
        """
        Merge clips into output_path.

        Args:
            clips: Resolved clips in output order (at least one)
            output_path: Destination MP4
            job_id: Job id for logs and the diagnostics file name
            log_dir: Directory for ffmpeg_<job_id>.log (the job's temp dir)

        Returns:
            MergeOutcome for the written file

        Raises:
            MergeError: FFmpeg unavailable, failed, or produced no output
            MergeTimeoutError: FFmpeg exceeded the time budget and was killed
        """
        if not self.capability.available:
            raise MergeError(
                f"FFmpeg is not available: {self.capability.error or self.capability.path}",
                job_id=job_id,
            )
        if not clips:
            raise MergeError("No clips to merge", job_id=job_id)

        total_duration = sum(clip.duration for clip in clips)
        cmd = self.build_command(clips, output_path)
        log_path = os.path.join(log_dir, f"ffmpeg_{job_id}.log")

        logger.info(
            f"[{job_id}] Starting FFmpeg merge of {len(clips)} clips "
            f"({total_duration:.2f}s) -> {output_path}"
        )
        logger.debug(f"[{job_id}] FFmpeg command: {' '.join(cmd)}")

        run = _FFmpegRun(cmd, log_path, self.timeout_seconds, total_duration, job_id)
        started = time.monotonic()

        # Use run_in_executor for Windows compatibility
        loop = asyncio.get_event_loop()
        try:
            returncode = await loop.run_in_executor(None, contextvars.copy_context().run, run.execute)
        except asyncio.CancelledError:
            logger.warning(f"[{job_id}] Merge cancelled, killing FFmpeg")
            run.kill()
            raise
        except OSError as e:
            raise MergeError(f"Could not start FFmpeg at {self.ffmpeg_path}: {e}", job_id=job_id) from e

        elapsed = time.monotonic() - started

        if run.timed_out:
            diagnostics = _read_log_tail(log_path)
            logger.error(f"[{job_id}] FFmpeg killed after {self.timeout_seconds:.0f}s timeout")
            raise MergeTimeoutError(self.timeout_seconds, diagnostics=diagnostics, job_id=job_id)

        if returncode != 0:
            diagnostics = _read_log_tail(log_path)
            logger.error(f"[{job_id}] FFmpeg exited with code {returncode}:\n{diagnostics}")
            raise MergeError(
                f"FFmpeg process exited with code {returncode}",
                diagnostics=diagnostics,
                job_id=job_id,
            )

        if not os.path.isfile(output_path):
            raise MergeError(f"Merge failed: output file not created: {output_path}", job_id=job_id)

        file_size = os.path.getsize(output_path)
        if file_size == 0:
            raise MergeError(f"Merge failed: output file is empty: {output_path}", job_id=job_id)

        logger.info(
            f"[{job_id}] Merge complete in {elapsed:.1f}s: "
            f"{output_path} ({file_size / 1024 / 1024:.1f} MB)"
        )

        return MergeOutcome(
            output_path=output_path,
            file_size_bytes=file_size,
            duration=total_duration,
            elapsed_seconds=elapsed,
            log_path=log_path,
        )


class _FFmpegRun:
    """One blocking FFmpeg execution, driven from an executor thread."""

    def __init__(self, cmd: list[str], log_path: str, timeout_seconds: float, total_duration: float, job_id: str):
        self.cmd = cmd
        self.log_path = log_path
        self.timeout_seconds = timeout_seconds
        self.total_duration = total_duration
        self.job_id = job_id
        self.process: Optional[subprocess.Popen] = None
        self.timed_out = False
        self._killed = False
        self._lock = threading.Lock()
        self._last_logged_percent = -1

    def execute(self) -> int:
        os.makedirs(os.path.dirname(self.log_path) or ".", exist_ok=True)

        with open(self.log_path, "w", encoding="utf-8", errors="replace") as log_file:
            with self._lock:
                if self._killed:
                    return -9
                self.process = subprocess.Popen(
                    self.cmd,
                    stdout=subprocess.PIPE,
                    stderr=log_file,
                    text=True,
                )

            timer = threading.Timer(self.timeout_seconds, self._on_timeout)
            timer.daemon = True
            timer.start()
            try:
                for line in self.process.stdout:
                    self._handle_progress_line(line)
                return self.process.wait()
            finally:
                timer.cancel()

    def kill(self, timed_out: bool = False) -> None:
        with self._lock:
            self._killed = True
            if self.process is not None and self.process.poll() is None:
                if timed_out:
                    self.timed_out = True
                self.process.kill()

    def _on_timeout(self) -> None:
        # A process that already exited finished inside the budget
        self.kill(timed_out=True)

    def _handle_progress_line(self, line: str) -> None:
        key, _, value = line.strip().partition("=")
        # out_time_ms is reported in microseconds as well
        if key not in ("out_time_us", "out_time_ms") or not value.isdigit():
            if key == "progress" and value == "end":
                logger.info(f"[{self.job_id}] FFmpeg progress: 100%")
            return

        if self.total_duration <= 0:
            return

        seconds = int(value) / 1_000_000
        percent = min(int(seconds / self.total_duration * 100), 99)
        if percent // 10 > self._last_logged_percent // 10:
            self._last_logged_percent = percent
            logger.info(f"[{self.job_id}] FFmpeg progress: {percent}%")


def _read_log_tail(log_path: str, lines: int = DIAGNOSTIC_TAIL_LINES) -> str:
    try:
        with open(log_path, "r", encoding="utf-8", errors="replace") as f:
            return "".join(deque(f, maxlen=lines)).strip()
    except OSError:
        return ""
