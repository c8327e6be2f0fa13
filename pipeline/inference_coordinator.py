"""
Owns the shared InferenceEngine handle.

The engine is expensive to load and not safe for concurrent use, so the
coordinator loads it lazily with single-flight semantics (concurrent
callers share one load) and serialises every inference call behind one
lock, across all jobs in the process.
"""

import logging
from concurrent.futures import Future
from threading import Lock
from typing import Callable

from pipeline.errors import InferenceError, ModelInitError
from pipeline.inference_engine import InferenceEngine, TranscribeOptions
from pipeline.models import Chunk, Segment
from sources.audio_buffer import SAMPLE_RATE

logger = logging.getLogger(__name__)


class InferenceCoordinator:
    def __init__(
        self,
        engine_factory: Callable[[], InferenceEngine],
        options: TranscribeOptions | None = None,
    ):
        self.engine_factory = engine_factory
        self.options = options or TranscribeOptions()

        self._engine: InferenceEngine | None = None
        self._init_future: Future | None = None
        self._state_lock = Lock()
        self._inference_lock = Lock()

    @property
    def is_ready(self) -> bool:
        with self._state_lock:
            return self._engine is not None

    def ensure_ready(self) -> InferenceEngine:
        with self._state_lock:
            if self._engine is not None:
                return self._engine

            owner = self._init_future is None
            if owner:
                self._init_future = Future()
            future = self._init_future

        if not owner:
            logger.debug("Waiting for in-flight engine initialization")
            return future.result()

        try:
            engine = self.engine_factory()
        except BaseException as exc:
            if isinstance(exc, ModelInitError):
                error = exc
            elif isinstance(exc, Exception):
                error = ModelInitError(f"Model failed to load: {exc}")
            else:
                # KeyboardInterrupt / SystemExit: waiters fail, the owner re-raises as is
                error = ModelInitError("Model initialization was interrupted")

            with self._state_lock:
                self._engine = None
                self._init_future = None
            future.set_exception(error)
            logger.error("Engine initialization failed: %s", error)
            if error is exc or not isinstance(exc, Exception):
                raise
            raise error from exc

        with self._state_lock:
            self._engine = engine
            self._init_future = None
        future.set_result(engine)
        return engine

    def reset(self) -> None:
        """Drop the cached engine so the next call loads a fresh one."""
        with self._state_lock:
            had_engine = self._engine is not None
            self._engine = None

        if had_engine:
            logger.info("Inference engine handle reset")

    def run_chunk(self, chunk: Chunk, language: str | None = None) -> list[Segment]:
        engine = self.ensure_ready()
        options = self.options
        if language is not None:
            options = TranscribeOptions(
                language=language,
                return_timestamps=True,
                beam_size=options.beam_size,
                task=options.task,
            )

        with self._inference_lock:
            logger.debug(
                "Transcribing chunk %d [%d, %d)", chunk.index, chunk.start_sample, chunk.end_sample
            )
            try:
                segments = engine.transcribe_chunk(chunk.samples, options)
            except InferenceError:
                raise
            except Exception as exc:
                raise InferenceError(f"Chunk {chunk.index} failed: {exc}") from exc

        offset_seconds = chunk.start_sample / float(SAMPLE_RATE)
        return [segment.shifted(offset_seconds) for segment in segments]
