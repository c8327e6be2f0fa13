from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Event, Lock, Thread
from typing import Iterator
import logging

from pipeline.events import ProgressChannel, ProgressEvent
from pipeline.job_orchestrator import JobOrchestrator
from pipeline.models import JobState, TranscriptionJob, TranscriptionResult
from sources.media_source import MediaSource

logger = logging.getLogger(__name__)


@dataclass
class JobInfo:
    job_id: str
    state: str
    source_type: str
    source: str
    attempt: int
    submitted_at: str
    finished_at: str | None = None
    result: TranscriptionResult | None = None


@dataclass
class _JobRecord:
    job: TranscriptionJob
    channel: ProgressChannel
    cancel_event: Event
    submitted_at: str
    thread: Thread | None = None
    finished_at: str | None = None
    result: TranscriptionResult | None = None
    done: Event = field(default_factory=Event)


class JobNotFoundError(Exception):
    pass


class JobManager:
    """
    Runs transcription jobs on background threads. Every job goes through
    the same orchestrator, so inference is serialised by its shared
    coordinator while downloads and decoding of different jobs overlap.
    """

    def __init__(self, orchestrator: JobOrchestrator, history_limit: int = 100):
        self.orchestrator = orchestrator
        self.history_limit = history_limit

        self._jobs: dict[str, _JobRecord] = {}
        self._lock = Lock()

    def submit(self, source: MediaSource, language: str | None = None) -> JobInfo:
        job = TranscriptionJob.create(source, language=language)
        record = _JobRecord(
            job=job,
            channel=ProgressChannel(),
            cancel_event=Event(),
            submitted_at=self._utc_now_iso(),
        )
        record.thread = Thread(
            target=self._run_job,
            args=(record,),
            name=f"transcribe-{job.id[:8]}",
            daemon=True,
        )

        with self._lock:
            self._jobs[job.id] = record
            self._evict_finished()
            info = self._snapshot(record)

        record.thread.start()
        logger.info("Submitted job %s (%s)", job.id, source.describe())
        return info

    def get(self, job_id: str) -> JobInfo:
        with self._lock:
            return self._snapshot(self._record(job_id))

    def list_jobs(self) -> list[JobInfo]:
        with self._lock:
            return [self._snapshot(r) for r in self._jobs.values()]

    def events(self, job_id: str, after: int = 0) -> list[ProgressEvent]:
        with self._lock:
            record = self._record(job_id)
        return record.channel.events(after=after)

    def stream(self, job_id: str) -> Iterator[ProgressEvent]:
        with self._lock:
            record = self._record(job_id)
        return iter(record.channel)

    def wait(self, job_id: str, timeout: float | None = None) -> JobInfo:
        with self._lock:
            record = self._record(job_id)
        record.done.wait(timeout)
        return self.get(job_id)

    def cancel(self, job_id: str) -> bool:
        with self._lock:
            record = self._record(job_id)
            if record.done.is_set():
                return False
            record.cancel_event.set()

        logger.info("Cancellation requested for job %s", job_id)
        return True

    def shutdown(self, timeout: float = 5.0) -> None:
        with self._lock:
            records = list(self._jobs.values())

        for record in records:
            record.cancel_event.set()

        for record in records:
            if record.thread is not None and record.thread.is_alive():
                record.thread.join(timeout=timeout)

    def _run_job(self, record: _JobRecord) -> None:
        result = TranscriptionResult.failed("Job did not finish")
        try:
            result = self.orchestrator.run(record.job, record.channel, record.cancel_event)
        except Exception as exc:
            logger.exception("Job %s crashed", record.job.id)
            record.job.status = JobState.FAILED
            result = TranscriptionResult.failed(f"Internal error: {exc}")
        finally:
            # result is visible before consumers see the channel close
            with self._lock:
                record.result = result
                record.finished_at = self._utc_now_iso()
            record.channel.close()
            record.done.set()

    def _record(self, job_id: str) -> _JobRecord:
        record = self._jobs.get(job_id)
        if record is None:
            raise JobNotFoundError(f"Unknown job: {job_id}")
        return record

    def _evict_finished(self) -> None:
        overflow = len(self._jobs) - self.history_limit
        if overflow <= 0:
            return

        finished = [job_id for job_id, r in self._jobs.items() if r.done.is_set()]
        for job_id in finished[:overflow]:
            del self._jobs[job_id]

    def _snapshot(self, record: _JobRecord) -> JobInfo:
        job = record.job
        return JobInfo(
            job_id=job.id,
            state=job.status.value,
            source_type=job.source.source_type,
            source=job.source.describe(),
            attempt=job.attempt,
            submitted_at=record.submitted_at,
            finished_at=record.finished_at,
            result=record.result,
        )

    def _utc_now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()
