"""
Shared fixtures: fake ffmpeg/ffprobe binaries, recognition doubles and
sample Deepgram payloads.
"""
import io
import os
import stat

import pytest
from fastapi import UploadFile

from vidscribe.ffmpeg_utils import ProgressEstimator
from vidscribe.registry import JobRegistry
from vidscribe.worker import TranscriptionPipeline


FFMPEG_OK = """#!/bin/sh
for last; do :; done
printf 'frame=50\\nfps=25.0\\nprogress=continue\\n'
printf 'frame=100\\nprogress=continue\\n'
printf 'frame=100\\nprogress=end\\n'
printf 'RIFF0000WAVEfake' > "$last"
exit 0
"""

FFMPEG_FAIL = """#!/bin/sh
printf 'frame=10\\nprogress=continue\\n'
echo "Invalid data found when processing input" >&2
exit 1
"""

FFMPEG_HANG = """#!/bin/sh
for last; do :; done
echo $$ > "$last.pid"
printf 'frame=1\\nprogress=continue\\n'
exec sleep 30
"""

FFPROBE_OK = """#!/bin/sh
echo 250
"""

FFPROBE_SLOW = """#!/bin/sh
exec sleep 5
echo 250
"""


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRecognizer:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def transcribe(self, audio: bytes):
        self.calls.append(audio)
        if self.error is not None:
            raise self.error
        return self.result


def write_script(directory, name: str, body: str) -> str:
    path = os.path.join(str(directory), name)
    with open(path, "w") as f:
        f.write(body)
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_upload(data: bytes = b"\x00\x00\x00\x18ftypmp42", filename: str = "interview.mp4") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=filename)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> JobRegistry:
    return JobRegistry(retention=2.0, clock=clock)


@pytest.fixture
def tools(tmp_path):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return {
        "ffmpeg_ok": write_script(bin_dir, "ffmpeg-ok", FFMPEG_OK),
        "ffmpeg_fail": write_script(bin_dir, "ffmpeg-fail", FFMPEG_FAIL),
        "ffmpeg_hang": write_script(bin_dir, "ffmpeg-hang", FFMPEG_HANG),
        "ffprobe_ok": write_script(bin_dir, "ffprobe-ok", FFPROBE_OK),
        "ffprobe_slow": write_script(bin_dir, "ffprobe-slow", FFPROBE_SLOW),
        "missing": str(bin_dir / "not-installed"),
    }


@pytest.fixture
def two_speaker_result() -> dict:
    return {
        "metadata": {"request_id": "abc", "duration": 10.0},
        "results": {
            "channels": [
                {
                    "alternatives": [
                        {
                            "transcript": "Hi there, how are you? I'm doing well.",
                            "words": [
                                {"word": "hi", "punctuated_word": "Hi", "start": 0.5, "end": 0.8, "speaker": 0},
                                {"word": "there", "punctuated_word": "there,", "start": 0.8, "end": 1.1, "speaker": 0},
                            ],
                        }
                    ]
                }
            ],
            "utterances": [
                {"start": 0.5, "end": 3.2, "channel": 0, "speaker": 0,
                 "transcript": "Hi there, how are you?"},
                {"start": 4.0, "end": 9.7, "channel": 0, "speaker": 1,
                 "transcript": "I'm doing well."},
            ],
        },
    }


@pytest.fixture
def pipeline_factory(registry, tmp_path, tools):
    def build(recognizer, ffmpeg=None, ffprobe=None):
        estimator = ProgressEstimator(
            ffmpeg=ffmpeg or tools["ffmpeg_ok"],
            ffprobe=ffprobe or tools["missing"],
            fallback_frames=1000,
            count_timeout=2.0,
        )
        return TranscriptionPipeline(
            registry,
            estimator=estimator,
            recognizer=recognizer,
            storage_dir=str(tmp_path / "storage"),
        )
    return build
