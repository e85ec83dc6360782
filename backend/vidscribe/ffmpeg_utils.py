# backend/vidscribe/ffmpeg_utils.py
"""
ffprobe / ffmpeg wrappers that turn a transcode into percentage events.

ffmpeg is run with ``-progress pipe:1`` so it prints ``key=value`` lines on
stdout. Every ``progress=continue`` checkpoint becomes a ``processing``
event capped at 99 percent; ``progress=end`` is the only way to reach 100.
"""
import asyncio
import codecs
import logging
import math
from collections import deque
from typing import Callable, Dict, List, Optional

from .config import FFMPEG_BINARY, FFPROBE_BINARY, FRAME_COUNT_FALLBACK, FRAME_COUNT_TIMEOUT
from .exceptions import ProcessFailure, ToolUnavailable
from .models import ProgressEvent, PROCESSING, COMPLETE, ERROR

logger = logging.getLogger(__name__)

AUDIO_SAMPLE_RATE = 16000
READ_CHUNK = 4096


def parse_frame_count(output: str, fallback: int = FRAME_COUNT_FALLBACK) -> int:
    """Read ffprobe's ``nb_read_frames`` csv output, falling back on anything odd."""
    for line in output.splitlines():
        value = line.strip().rstrip(",")
        if not value:
            continue
        try:
            frames = int(value)
        except ValueError:
            return fallback
        return frames if frames > 0 else fallback
    return fallback


class CheckpointParser:
    """Incremental parser for ffmpeg's ``-progress`` output."""

    def __init__(self, total_frames: int):
        self.total_frames = total_frames
        self.current_frame = 0
        self.finished = False
        self.values: Dict[str, str] = {}
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed_bytes(self, chunk: bytes) -> List[ProgressEvent]:
        """Like feed, but keeps multi-byte characters split across reads intact."""
        return self.feed(self._decoder.decode(chunk))

    def feed(self, data: str) -> List[ProgressEvent]:
        self._buffer += data
        *lines, self._buffer = self._buffer.split("\n")
        return [e for e in (self._parse_line(line) for line in lines) if e is not None]

    def flush(self) -> List[ProgressEvent]:
        line, self._buffer = self._buffer + self._decoder.decode(b"", final=True), ""
        event = self._parse_line(line)
        return [event] if event is not None else []

    def percent(self) -> int:
        if self.total_frames <= 0:
            return 0
        value = math.floor(self.current_frame / self.total_frames * 100 + 0.5)
        return max(0, min(value, 99))

    def _parse_line(self, line: str) -> Optional[ProgressEvent]:
        # anything after progress=end is ignored
        if self.finished:
            return None
        key, sep, value = line.strip().partition("=")
        if not sep:
            return None
        key, value = key.strip(), value.strip()
        self.values[key] = value

        if key == "frame":
            try:
                self.current_frame = int(value)
            except ValueError:
                pass
        elif key == "progress":
            if value == "continue":
                return ProgressEvent(frame_count=self.current_frame, percent=self.percent(), phase=PROCESSING)
            if value == "end":
                self.finished = True
                return ProgressEvent(frame_count=self.current_frame, percent=100, phase=COMPLETE)
        return None


class ProgressEstimator:
    def __init__(
        self,
        ffmpeg: str = FFMPEG_BINARY,
        ffprobe: str = FFPROBE_BINARY,
        fallback_frames: int = FRAME_COUNT_FALLBACK,
        count_timeout: float = FRAME_COUNT_TIMEOUT,
    ):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.fallback_frames = fallback_frames
        self.count_timeout = count_timeout

    def build_count_command(self, path: str) -> List[str]:
        return [
            self.ffprobe, "-v", "error",
            "-select_streams", "v:0",
            "-count_frames",
            "-show_entries", "stream=nb_read_frames",
            "-of", "csv=p=0",
            path,
        ]

    def build_transcode_command(self, input_path: str, output_path: str) -> List[str]:
        return [
            self.ffmpeg, "-y",
            "-progress", "pipe:1",
            "-nostats",
            "-i", input_path,
            "-vn",
            "-acodec", "pcm_s16le",
            "-ar", str(AUDIO_SAMPLE_RATE),
            "-ac", "1",
            output_path,
        ]

    async def count_frames(self, path: str) -> int:
        """Best-effort total frame count. Never raises; uses the fallback instead."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_count_command(path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("ffprobe unavailable (%s), using %d frames", e, self.fallback_frames)
            return self.fallback_frames

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.count_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("ffprobe timed out after %.1fs, using %d frames", self.count_timeout, self.fallback_frames)
            return self.fallback_frames

        if proc.returncode != 0:
            logger.warning("ffprobe exited with %s: %s", proc.returncode, stderr.decode(errors="replace").strip())
            return self.fallback_frames
        return parse_frame_count(stdout.decode(errors="replace"), self.fallback_frames)

    async def transcode(
        self,
        input_path: str,
        output_path: str,
        total_frames: int,
        on_progress: Callable[[ProgressEvent], None],
    ) -> str:
        """Extract 16 kHz mono PCM audio, reporting checkpoints through ``on_progress``.

        Raises:
            ToolUnavailable: ffmpeg is not installed
            ProcessFailure: ffmpeg could not start or exited non-zero
        """
        cmd = self.build_transcode_command(input_path, output_path)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            on_progress(ProgressEvent(phase=ERROR, message=f"{self.ffmpeg} not found"))
            raise ToolUnavailable(self.ffmpeg) from e
        except OSError as e:
            on_progress(ProgressEvent(phase=ERROR, message=str(e)))
            raise ProcessFailure(f"Could not start {self.ffmpeg}: {e}") from e

        parser = CheckpointParser(total_frames)
        stderr_tail: deque = deque(maxlen=20)
        stderr_task = asyncio.create_task(self._drain_stderr(proc.stderr, stderr_tail))
        try:
            while True:
                chunk = await proc.stdout.read(READ_CHUNK)
                if not chunk:
                    break
                for event in parser.feed_bytes(chunk):
                    on_progress(event)
            for event in parser.flush():
                on_progress(event)
            returncode = await proc.wait()
            await stderr_task
        except BaseException:
            # cancellation or a failing callback must not leave ffmpeg running
            stderr_task.cancel()
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if returncode != 0:
            detail = stderr_tail[-1] if stderr_tail else "no output"
            message = f"ffmpeg failed with code {returncode}: {detail}"
            on_progress(ProgressEvent(frame_count=parser.current_frame, phase=ERROR, message=message))
            raise ProcessFailure(message, returncode=returncode)
        return output_path

    async def _drain_stderr(self, stream, tail: deque):
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode(errors="replace").rstrip()
            if text:
                tail.append(text)
                logger.debug("ffmpeg stderr: %s", text)
