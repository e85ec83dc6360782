# backend/vidscribe/segmenter.py
"""
Turn a recognition result into readable, timestamped transcript text.

Three modes, tried in order:

- ``speaker``: one ``[mm:ss - mm:ss] Speaker N: text`` line per utterance
- ``segment``: words grouped into windows of at most ``SEGMENT_SECONDS``,
  one ``[mm:ss] text`` line each
- ``plain``: the transcript string untouched

A turn whose text ends in a comma was probably cut mid-sentence, so it is
joined with the next turn when both share a speaker (or are both fixed
segments). When there is nothing to join it with, `` (continued)`` is
appended instead.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

SPEAKER_MODE = "speaker"
SEGMENT_MODE = "segment"
PLAIN_MODE = "plain"

SEGMENT_SECONDS = 4.0
CONTINUED_MARKER = " (continued)"

_SPEAKER_PREFIX = re.compile(r"^speaker[_-]?", re.IGNORECASE)


@dataclass
class Turn:
    start: float
    end: float
    words: List[str] = field(default_factory=list)
    speaker_key: Any = None
    label: str = ""
    mode: str = SPEAKER_MODE

    @property
    def text(self) -> str:
        return " ".join(self.words)


def format_timestamp(value: Any) -> str:
    """Seconds as zero-padded ``mm:ss``; fractions are dropped, bad input is 00:00."""
    if not _is_number(value):
        return "00:00"
    total = int(max(0.0, float(value)))
    return f"{total // 60:02d}:{total % 60:02d}"


def speaker_label(speaker: Any) -> str:
    if _is_number(speaker):
        return f"Speaker {int(speaker) + 1}"
    if isinstance(speaker, str):
        name = _SPEAKER_PREFIX.sub("", speaker.strip()).strip()
        return name.title() if name else "Speaker"
    return "Speaker"


def segment(transcript: Optional[str], raw_result: Any) -> Tuple[str, str]:
    """Return ``(text, mode)`` for a transcript and its raw recognition payload."""
    results = _results(raw_result)

    turns = _speaker_turns(results.get("utterances"))
    if turns:
        lines = [
            f"[{format_timestamp(t.start)} - {format_timestamp(t.end)}] {t.label}: {t.text}"
            for t in _coalesce(turns)
        ]
        return "\n".join(lines), SPEAKER_MODE

    turns = _fixed_segments(_first_alternative(results).get("words"))
    if turns:
        lines = [f"[{format_timestamp(t.start)}] {t.text}" for t in _coalesce(turns)]
        return "\n".join(lines), SEGMENT_MODE

    return transcript or "", PLAIN_MODE


def _speaker_turns(utterances: Any) -> List[Turn]:
    if not isinstance(utterances, list):
        return []
    turns = []
    for entry in utterances:
        if not isinstance(entry, dict):
            continue
        start, end = entry.get("start"), entry.get("end")
        text = entry.get("transcript")
        if not (_is_number(start) and _is_number(end)):
            continue
        if not isinstance(text, str) or not text.strip():
            continue
        speaker = entry.get("speaker")
        label = speaker_label(speaker)
        channel = entry.get("channel")
        turns.append(Turn(
            start=float(start),
            end=float(end),
            words=text.split(),
            speaker_key=(channel if channel is not None else 0, speaker),
            label=label,
            mode=SPEAKER_MODE,
        ))
    return turns


def _fixed_segments(words: Any) -> List[Turn]:
    if not isinstance(words, list):
        return []
    timed = []
    for entry in words:
        if not isinstance(entry, dict) or not _is_number(entry.get("start")):
            continue
        display = entry.get("punctuated_word") or entry.get("word")
        if not isinstance(display, str) or not display.strip():
            continue
        end = entry.get("end")
        start = float(entry["start"])
        timed.append((start, float(end) if _is_number(end) else start, display.strip()))

    segments: List[Turn] = []
    current = None
    for i, (start, end, display) in enumerate(timed):
        if current is None:
            current = Turn(start=start, end=end, speaker_key=SEGMENT_MODE, mode=SEGMENT_MODE)
        current.words.append(display)
        current.end = max(current.end, end)

        following = timed[i + 1] if i + 1 < len(timed) else None
        if following is None or following[0] - current.start >= SEGMENT_SECONDS:
            segments.append(current)
            current = None
    return segments


def _coalesce(turns: List[Turn]) -> List[Turn]:
    merged: List[Turn] = []
    for turn in turns:
        prev = merged[-1] if merged else None
        if prev is not None and prev.text.endswith(",") and prev.speaker_key == turn.speaker_key:
            prev.words.extend(turn.words)
            prev.end = max(prev.end, turn.end)
        else:
            merged.append(Turn(turn.start, turn.end, list(turn.words), turn.speaker_key, turn.label, turn.mode))
    for turn in merged:
        if turn.text.endswith(","):
            turn.words.append(CONTINUED_MARKER.strip())
    return merged


def _results(raw_result: Any) -> dict:
    if not isinstance(raw_result, dict):
        return {}
    results = raw_result.get("results")
    return results if isinstance(results, dict) else raw_result


def _first_alternative(results: dict) -> dict:
    try:
        alt = results["channels"][0]["alternatives"][0]
    except (KeyError, IndexError, TypeError):
        return {}
    return alt if isinstance(alt, dict) else {}


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
