"""
Progress events produced by the orchestrator and the channels that carry them.

The orchestrator pushes immutable ProgressEvent values into a ProgressSink.
ProgressChannel is the default sink: an append-only, thread-safe log that
consumers can either iterate (blocking until the job closes the channel)
or poll with an offset.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Condition
from typing import Iterator

from pipeline.models import TranscriptionResult

STATUS_INITIALIZING = "initializing"
STATUS_DOWNLOADING = "downloading"
STATUS_CONVERTING = "converting"
STATUS_TRANSCRIBING = "transcribing"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class ProgressInfo:
    percent: float          # 0..100, non-decreasing within one attempt
    current_time: float     # seconds of input covered so far
    total_duration: float   # seconds
    running_text: str = ""

    def to_dict(self) -> dict:
        return {
            "percent": self.percent,
            "currentTime": self.current_time,
            "totalDuration": self.total_duration,
            "text": self.running_text,
        }


@dataclass(frozen=True)
class ProgressEvent:
    status: str
    message: str
    progress: ProgressInfo | None = None
    attempt: int = 1
    # only set on the terminal "completed" event
    result: TranscriptionResult | None = None

    def to_dict(self) -> dict:
        payload: dict = {"status": self.status, "message": self.message, "attempt": self.attempt}
        if self.progress is not None:
            payload["progress"] = self.progress.to_dict()
        if self.result is not None:
            payload["result"] = self.result.to_dict()
        return payload


class ProgressSink(ABC):
    @abstractmethod
    def publish(self, event: ProgressEvent) -> None:
        pass


class ProgressChannel(ProgressSink):
    def __init__(self):
        self._events: list[ProgressEvent] = []
        self._closed = False
        self._cond = Condition()

    def publish(self, event: ProgressEvent) -> None:
        with self._cond:
            if self._closed:
                raise RuntimeError("Cannot publish to a closed progress channel")
            self._events.append(event)
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def events(self, after: int = 0) -> list[ProgressEvent]:
        with self._cond:
            return list(self._events[max(0, after):])

    def wait_for_events(self, after: int = 0, timeout: float | None = None) -> list[ProgressEvent]:
        """Block until events past `after` exist, the channel closes, or the timeout expires."""
        with self._cond:
            self._cond.wait_for(lambda: len(self._events) > after or self._closed, timeout=timeout)
            return list(self._events[max(0, after):])

    def __iter__(self) -> Iterator[ProgressEvent]:
        seen = 0
        while True:
            with self._cond:
                self._cond.wait_for(lambda: len(self._events) > seen or self._closed)
                batch = self._events[seen:]
                finished = self._closed and not batch

            if finished:
                return

            seen += len(batch)
            yield from batch

    def __len__(self) -> int:
        with self._cond:
            return len(self._events)
