import uuid
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from sources.media_source import MediaSource


@dataclass(frozen=True)
class Segment:
    text: str
    start_time: float   # seconds
    end_time: float     # seconds

    def shifted(self, offset_seconds: float) -> "Segment":
        return Segment(
            text=self.text,
            start_time=self.start_time + offset_seconds,
            end_time=self.end_time + offset_seconds,
        )

    def to_dict(self) -> dict:
        return {"text": self.text, "start": self.start_time, "end": self.end_time}


@dataclass(frozen=True, eq=False)
class Chunk:
    index: int
    start_sample: int       # absolute offset into the parent buffer
    end_sample: int         # exclusive
    samples: np.ndarray     # view over the parent buffer

    def __len__(self) -> int:
        return self.end_sample - self.start_sample


class JobState(str, Enum):
    PENDING = "pending"
    ACQUIRING = "acquiring"
    DECODING = "decoding"
    TRANSCRIBING = "transcribing"
    MERGING = "merging"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


@dataclass
class TranscriptionJob:
    id: str
    source: MediaSource
    language: str | None = None
    status: JobState = JobState.PENDING
    attempt: int = 0
    segments: list[Segment] = field(default_factory=list)

    @classmethod
    def create(cls, source: MediaSource, language: str | None = None) -> "TranscriptionJob":
        return cls(id=uuid.uuid4().hex, source=source, language=language)


@dataclass
class TranscriptionResult:
    success: bool
    text: str | None = None
    segments: list[Segment] = field(default_factory=list)
    error: str | None = None
    cancelled: bool = False

    @classmethod
    def succeeded(cls, text: str, segments: list[Segment]) -> "TranscriptionResult":
        return cls(success=True, text=text, segments=list(segments))

    @classmethod
    def failed(cls, error: str) -> "TranscriptionResult":
        return cls(success=False, error=error)

    @classmethod
    def was_cancelled(cls) -> "TranscriptionResult":
        return cls(success=False, error="Transcription cancelled", cancelled=True)

    def to_dict(self) -> dict:
        if self.success:
            return {
                "success": True,
                "text": self.text or "",
                "segments": [s.to_dict() for s in self.segments],
            }

        payload = {"success": False, "error": self.error or "Transcription failed"}
        if self.cancelled:
            payload["cancelled"] = True
        return payload
