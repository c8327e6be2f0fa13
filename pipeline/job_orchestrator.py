"""
End-to-end driver for one transcription job.

An attempt walks Pending -> Acquiring -> Decoding -> Transcribing ->
Merging -> Completed. Model and inference failures are retried up to
`max_attempts` times with a fixed delay, resetting the shared engine
handle in between; acquisition and decode failures end the job at once.
Progress is pushed into a ProgressSink, and run() always returns a
TranscriptionResult for collaborator failures instead of raising.
"""

import logging
import math
import os
from threading import Event

from pipeline.chunk_scheduler import ChunkScheduler
from pipeline.errors import (
    AcquisitionError,
    DecodeError,
    InferenceError,
    JobCancelledError,
    ModelInitError,
)
from pipeline.events import (
    STATUS_COMPLETED,
    STATUS_CONVERTING,
    STATUS_DOWNLOADING,
    STATUS_ERROR,
    STATUS_INITIALIZING,
    STATUS_TRANSCRIBING,
    ProgressEvent,
    ProgressInfo,
    ProgressSink,
)
from pipeline.inference_coordinator import InferenceCoordinator
from pipeline.models import JobState, TranscriptionJob, TranscriptionResult
from pipeline.result_merger import ResultMerger
from sources.acquisition import Acquirer
from sources.audio_buffer import AudioBuffer
from sources.decoder import AudioDecoder
from sources.media_source import FileSource, UrlSource

logger = logging.getLogger(__name__)


class JobOrchestrator:
    def __init__(
        self,
        coordinator: InferenceCoordinator,
        acquirer: Acquirer,
        decoder: AudioDecoder,
        scheduler: ChunkScheduler | None = None,
        merger: ResultMerger | None = None,
        max_attempts: int = 3,
        retry_delay_seconds: float = 1.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.coordinator = coordinator
        self.acquirer = acquirer
        self.decoder = decoder
        self.scheduler = scheduler or ChunkScheduler()
        self.merger = merger or ResultMerger()
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds

    def run(
        self,
        job: TranscriptionJob,
        sink: ProgressSink,
        cancel_event: Event | None = None,
    ) -> TranscriptionResult:
        cancel_event = cancel_event or Event()
        logger.info("Job %s started for %s", job.id, job.source.describe())

        try:
            while True:
                job.attempt += 1
                job.segments = []
                job.status = JobState.PENDING

                try:
                    result = self._run_attempt(job, sink, cancel_event)
                    logger.info("Job %s completed on attempt %d", job.id, job.attempt)
                    return result

                except JobCancelledError:
                    return self._cancelled(job)

                except (AcquisitionError, DecodeError) as exc:
                    # structurally invalid input, another attempt cannot help
                    return self._fail(job, sink, str(exc))

                except (ModelInitError, InferenceError) as exc:
                    job.segments = []
                    self.coordinator.reset()

                    if job.attempt >= self.max_attempts:
                        return self._fail(
                            job,
                            sink,
                            str(exc),
                            message=f"Transcription failed after {job.attempt} attempts: {exc}",
                        )

                    logger.warning(
                        "Job %s attempt %d/%d failed: %s",
                        job.id,
                        job.attempt,
                        self.max_attempts,
                        exc,
                    )
                    self._publish(
                        sink,
                        job,
                        ProgressEvent(
                            status=STATUS_ERROR,
                            message=(
                                f"Transcription failed: {exc} "
                                f"(attempt {job.attempt}/{self.max_attempts}, retrying)"
                            ),
                            attempt=job.attempt,
                        ),
                    )

                    if cancel_event.wait(self.retry_delay_seconds):
                        return self._cancelled(job)
        finally:
            self._release_source(job)

    def _run_attempt(
        self,
        job: TranscriptionJob,
        sink: ProgressSink,
        cancel_event: Event,
    ) -> TranscriptionResult:
        local_path: str | None = None
        downloaded = False

        try:
            self._check_cancelled(cancel_event)

            if isinstance(job.source, UrlSource):
                job.status = JobState.ACQUIRING
                self._publish(sink, job, ProgressEvent(STATUS_DOWNLOADING, "Downloading audio...", attempt=job.attempt))
                local_path = self.acquirer.download_to_local_file(job.source.url)
                downloaded = True
                self._check_cancelled(cancel_event)
            else:
                local_path = job.source.path

            job.status = JobState.DECODING
            self._publish(sink, job, ProgressEvent(STATUS_CONVERTING, "Converting audio format...", attempt=job.attempt))
            buffer = self.decoder.decode_to_canonical_pcm(local_path)
            self._check_cancelled(cancel_event)

            job.status = JobState.TRANSCRIBING
            self._transcribe(job, buffer, sink, cancel_event)
            self._check_cancelled(cancel_event)

            job.status = JobState.MERGING
            merged = self.merger.merge(job.segments)
            result = TranscriptionResult.succeeded(merged.text, merged.segments)

            job.status = JobState.COMPLETED
            duration = buffer.duration_seconds
            self._publish(
                sink,
                job,
                ProgressEvent(
                    status=STATUS_COMPLETED,
                    message="Transcription complete",
                    progress=ProgressInfo(
                        percent=100.0,
                        current_time=duration,
                        total_duration=duration,
                        running_text=merged.text,
                    ),
                    attempt=job.attempt,
                    result=result,
                ),
            )
            return result
        finally:
            if downloaded and local_path:
                self.acquirer.cleanup(local_path)

    def _transcribe(
        self,
        job: TranscriptionJob,
        buffer: AudioBuffer,
        sink: ProgressSink,
        cancel_event: Event,
    ) -> None:
        total_samples = len(buffer)
        if total_samples == 0:
            logger.info("Job %s has empty audio, nothing to transcribe", job.id)
            return

        if not self.coordinator.is_ready:
            self._publish(sink, job, ProgressEvent(STATUS_INITIALIZING, "Initializing model...", attempt=job.attempt))
            self.coordinator.ensure_ready()
            self._check_cancelled(cancel_event)

        total_duration = buffer.duration_seconds
        self._publish(
            sink,
            job,
            ProgressEvent(
                status=STATUS_TRANSCRIBING,
                message="Starting transcription...",
                progress=ProgressInfo(percent=0.0, current_time=0.0, total_duration=total_duration),
                attempt=job.attempt,
            ),
        )

        for chunk in self.scheduler.schedule(buffer):
            self._check_cancelled(cancel_event)

            segments = self.coordinator.run_chunk(chunk, language=job.language)
            job.segments.extend(segments)

            processed = chunk.end_sample
            self._publish(
                sink,
                job,
                ProgressEvent(
                    status=STATUS_TRANSCRIBING,
                    message="Transcribing audio...",
                    progress=ProgressInfo(
                        percent=self._percent(processed, total_samples),
                        current_time=processed / float(buffer.sample_rate),
                        total_duration=total_duration,
                        running_text=self.merger.preview(job.segments),
                    ),
                    attempt=job.attempt,
                ),
            )

    @staticmethod
    def _percent(processed: int, total: int) -> float:
        percent = min(100.0, processed / float(total) * 100.0)
        # floor to 2 decimals so rounding can never report 100 early
        return math.floor(percent * 100) / 100.0

    def _publish(self, sink: ProgressSink, job: TranscriptionJob, event: ProgressEvent) -> None:
        logger.debug("Job %s: %s - %s", job.id, event.status, event.message)
        sink.publish(event)

    def _check_cancelled(self, cancel_event: Event) -> None:
        if cancel_event.is_set():
            raise JobCancelledError("Transcription cancelled")

    def _fail(
        self,
        job: TranscriptionJob,
        sink: ProgressSink,
        error: str,
        message: str | None = None,
    ) -> TranscriptionResult:
        job.status = JobState.FAILED
        job.segments = []
        logger.error("Job %s failed on attempt %d: %s", job.id, job.attempt, error)
        self._publish(
            sink,
            job,
            ProgressEvent(
                status=STATUS_ERROR,
                message=message or f"Transcription failed: {error}",
                attempt=job.attempt,
            ),
        )
        return TranscriptionResult.failed(error)

    def _cancelled(self, job: TranscriptionJob) -> TranscriptionResult:
        job.status = JobState.CANCELLED
        job.segments = []
        logger.info("Job %s cancelled during attempt %d", job.id, job.attempt)
        return TranscriptionResult.was_cancelled()

    def _release_source(self, job: TranscriptionJob) -> None:
        source = job.source
        if isinstance(source, FileSource) and source.temporary:
            try:
                if os.path.exists(source.path):
                    os.remove(source.path)
            except OSError as exc:
                logger.warning("Failed to remove temporary input %s: %s", source.path, exc)
