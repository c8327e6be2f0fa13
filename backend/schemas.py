from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from backend.services.job_manager import JobInfo
from pipeline.events import ProgressEvent


class ErrorResponse(BaseModel):
    code: str
    message: str


class JobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_type: Literal["file", "url"] = Field(alias="sourceType")
    path: str | None = None
    url: str | None = None
    language: str | None = Field(default=None, max_length=32)


class SegmentItem(BaseModel):
    text: str
    start: float
    end: float


class ResultResponse(BaseModel):
    success: bool
    text: str | None = None
    segments: list[SegmentItem] | None = None
    error: str | None = None
    cancelled: bool | None = None


class JobResponse(BaseModel):
    job_id: str
    state: Literal[
        "pending",
        "acquiring",
        "decoding",
        "transcribing",
        "merging",
        "completed",
        "failed",
        "cancelled",
    ]
    source_type: Literal["file", "url"]
    source: str
    attempt: int
    submitted_at: str
    finished_at: str | None
    result: ResultResponse | None = None

    @classmethod
    def from_info(cls, info: JobInfo) -> "JobResponse":
        return cls(
            job_id=info.job_id,
            state=info.state,
            source_type=info.source_type,
            source=info.source,
            attempt=info.attempt,
            submitted_at=info.submitted_at,
            finished_at=info.finished_at,
            result=ResultResponse(**info.result.to_dict()) if info.result is not None else None,
        )


class ProgressItem(BaseModel):
    percent: float = Field(ge=0, le=100)
    currentTime: float
    totalDuration: float
    text: str


class ProgressEventResponse(BaseModel):
    status: Literal["initializing", "downloading", "converting", "transcribing", "completed", "error"]
    message: str
    attempt: int
    progress: ProgressItem | None = None
    result: ResultResponse | None = None

    @classmethod
    def from_event(cls, event: ProgressEvent) -> "ProgressEventResponse":
        return cls(**event.to_dict())


class CancelResponse(BaseModel):
    cancelled: bool
    job: JobResponse
