from contextlib import asynccontextmanager
import json
import logging
import os
import shutil
import sys
import uuid
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from dotenv import load_dotenv

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

load_dotenv(Path(ROOT_DIR) / ".env")

from backend import config
from backend.schemas import (
    CancelResponse,
    ErrorResponse,
    JobRequest,
    JobResponse,
    ProgressEventResponse,
)
from backend.services.job_manager import JobManager, JobNotFoundError
from pipeline.chunk_scheduler import ChunkScheduler
from pipeline.inference_coordinator import InferenceCoordinator
from pipeline.inference_engine import TranscribeOptions
from pipeline.job_orchestrator import JobOrchestrator
from pipeline.whisper_engine import WhisperEngine
from sources.ffmpeg_decoder import FfmpegDecoder
from sources.media_source import FileSource, source_from_request
from sources.ytdlp_downloader import YtDlpDownloader

logger = logging.getLogger(__name__)


def build_job_manager() -> JobManager:
    coordinator = InferenceCoordinator(
        engine_factory=lambda: WhisperEngine(
            model_name=config.WHISPER_MODEL,
            device=config.WHISPER_DEVICE,
        ),
        options=TranscribeOptions(
            language=config.WHISPER_LANGUAGE,
            beam_size=config.WHISPER_BEAM_SIZE,
        ),
    )

    orchestrator = JobOrchestrator(
        coordinator=coordinator,
        acquirer=YtDlpDownloader(
            temp_dir=config.TEMP_DOWNLOAD_DIR,
            proxy=config.DOWNLOAD_PROXY,
        ),
        decoder=FfmpegDecoder(temp_dir=config.TEMP_DECODE_DIR),
        scheduler=ChunkScheduler(
            chunk_seconds=config.CHUNK_SECONDS,
            overlap_seconds=config.OVERLAP_SECONDS,
        ),
        max_attempts=config.MAX_ATTEMPTS,
        retry_delay_seconds=config.RETRY_DELAY_SECONDS,
    )

    return JobManager(orchestrator=orchestrator, history_limit=config.JOB_HISTORY_LIMIT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(config.DATA_DIR, exist_ok=True)
    os.makedirs(config.TEMP_UPLOAD_DIR, exist_ok=True)

    job_manager = build_job_manager()
    app.state.job_manager = job_manager

    try:
        yield
    finally:
        job_manager.shutdown()


app = FastAPI(title="Transcription API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|[0-9]{1,3}(?:\.[0-9]{1,3}){3})(:[0-9]+)?$",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _not_found(exc: JobNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "JOB_NOT_FOUND", "message": str(exc)},
    )


@app.get("/api/health")
def health() -> dict[str, bool]:
    return {"ok": True}


@app.post(
    "/api/jobs",
    response_model=JobResponse,
    responses={400: {"model": ErrorResponse}},
)
def submit_job(payload: JobRequest) -> JobResponse:
    try:
        source = source_from_request(payload.source_type, path=payload.path, url=payload.url)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_REQUEST", "message": str(exc)},
        ) from exc

    info = app.state.job_manager.submit(source, language=payload.language)
    return JobResponse.from_info(info)


@app.post(
    "/api/jobs/upload",
    response_model=JobResponse,
    responses={400: {"model": ErrorResponse}},
)
def submit_upload(file: UploadFile = File(...), language: str | None = Query(default=None, max_length=32)) -> JobResponse:
    if not file.filename:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_UPLOAD", "message": "Uploaded file must have a filename"},
        )

    os.makedirs(config.TEMP_UPLOAD_DIR, exist_ok=True)
    suffix = os.path.splitext(file.filename)[1] or ".bin"
    temp_path = os.path.join(config.TEMP_UPLOAD_DIR, f"upload_{uuid.uuid4().hex}{suffix}")

    with open(temp_path, "wb") as out:
        shutil.copyfileobj(file.file, out)

    if os.path.getsize(temp_path) == 0:
        os.remove(temp_path)
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_UPLOAD", "message": "Uploaded file is empty"},
        )

    # the orchestrator deletes temporary sources when the job ends
    info = app.state.job_manager.submit(FileSource(path=temp_path, temporary=True), language=language)
    return JobResponse.from_info(info)


@app.get("/api/jobs", response_model=list[JobResponse])
def list_jobs() -> list[JobResponse]:
    return [JobResponse.from_info(info) for info in app.state.job_manager.list_jobs()]


@app.get(
    "/api/jobs/{job_id}",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_job(job_id: str) -> JobResponse:
    try:
        return JobResponse.from_info(app.state.job_manager.get(job_id))
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc


@app.get(
    "/api/jobs/{job_id}/events",
    response_model=list[ProgressEventResponse],
    responses={404: {"model": ErrorResponse}},
)
def get_job_events(job_id: str, after: int = Query(default=0, ge=0)) -> list[ProgressEventResponse]:
    try:
        events = app.state.job_manager.events(job_id, after=after)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    return [ProgressEventResponse.from_event(e) for e in events]


@app.get(
    "/api/jobs/{job_id}/stream",
    responses={404: {"model": ErrorResponse}},
)
def stream_job_events(job_id: str) -> StreamingResponse:
    try:
        events = app.state.job_manager.stream(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc

    def _lines():
        for event in events:
            yield json.dumps(event.to_dict(), ensure_ascii=False) + "\n"

    return StreamingResponse(_lines(), media_type="application/x-ndjson")


@app.post(
    "/api/jobs/{job_id}/cancel",
    response_model=CancelResponse,
    responses={404: {"model": ErrorResponse}},
)
def cancel_job(job_id: str) -> CancelResponse:
    try:
        cancelled = app.state.job_manager.cancel(job_id)
        info = app.state.job_manager.get(job_id)
    except JobNotFoundError as exc:
        raise _not_found(exc) from exc
    return CancelResponse(cancelled=cancelled, job=JobResponse.from_info(info))
