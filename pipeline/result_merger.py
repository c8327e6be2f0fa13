"""
Folds per-window segments into one ordered transcript.

Overlapping windows transcribe the same audio twice, so the joined text
is cleaned with a fixed sequence of regex passes. The passes are lossy
heuristics aimed at the duplication that sliding windows produce: they
will also collapse repetition the speaker really said ("好的好的" becomes
"好的"), and a long phrase repeated with a small transcription difference
is left alone.
"""

import re
from dataclasses import dataclass
from typing import Callable, Iterable

from pipeline.models import Segment

PUNCTUATION = "，。！？；：、"

_WHITESPACE_RE = re.compile(r"\s+")
_STUTTER_RE = re.compile(r"(.)\1{2,}")
_PHRASE_RE = re.compile(r"(.{2,})\1+")
_PUNCTUATION_RE = re.compile("([" + re.escape(PUNCTUATION) + r"])\1+")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def collapse_stutter(text: str) -> str:
    """Any character repeated 3+ times in a row is cut back to 2."""
    return _STUTTER_RE.sub(r"\1\1", text)


def collapse_phrases(text: str) -> str:
    """A substring of 2+ characters immediately repeated is kept once."""
    return _PHRASE_RE.sub(r"\1", text)


def collapse_punctuation(text: str) -> str:
    """A run of 2+ identical marks from PUNCTUATION becomes one mark."""
    return _PUNCTUATION_RE.sub(r"\1", text)


DEFAULT_PASSES: tuple[Callable[[str], str], ...] = (
    normalize_whitespace,
    collapse_stutter,
    collapse_phrases,
    collapse_punctuation,
)

# linear-time subset, cheap enough to re-run on the whole transcript per chunk
PREVIEW_PASSES: tuple[Callable[[str], str], ...] = (
    normalize_whitespace,
    collapse_stutter,
    collapse_punctuation,
)


@dataclass(frozen=True)
class MergedTranscript:
    text: str
    segments: list[Segment]


class ResultMerger:
    def __init__(
        self,
        passes: Iterable[Callable[[str], str]] = DEFAULT_PASSES,
        preview_passes: Iterable[Callable[[str], str]] = PREVIEW_PASSES,
    ):
        self.passes = tuple(passes)
        self.preview_passes = tuple(preview_passes)

    def order(self, segments: Iterable[Segment]) -> list[Segment]:
        # sorted() is stable, so equal start times keep arrival order
        return sorted(segments, key=lambda s: s.start_time)

    def join(self, segments: Iterable[Segment]) -> str:
        return " ".join(text for text in (s.text.strip() for s in segments) if text)

    def clean(self, text: str) -> str:
        for transform in self.passes:
            text = transform(text)
        return text

    def merge(self, segments: Iterable[Segment]) -> MergedTranscript:
        ordered = self.order(segments)
        return MergedTranscript(text=self.clean(self.join(ordered)), segments=ordered)

    def preview(self, segments: Iterable[Segment]) -> str:
        """
        Running text for progress updates. Skips the phrase pass, whose
        cost grows quadratically with the transcript; merge() still
        applies it to the final result.
        """
        text = self.join(self.order(segments))
        for transform in self.preview_passes:
            text = transform(text)
        return text
