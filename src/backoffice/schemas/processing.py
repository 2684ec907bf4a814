# This project was developed with assistance from AI tools.
"""Processing stage, job and worker-callback schemas."""

from datetime import datetime

from db.enums import JobKind, JobStatus, ProcessingStage, RequiredDocumentStatus
from pydantic import BaseModel, ConfigDict, Field


class StepStatus(BaseModel):
    """Completion of one processing step."""

    completed: bool
    completed_at: datetime | None = None


class RequiredDocumentState(BaseModel):
    status: RequiredDocumentStatus
    updated_at: datetime | None = None


class DocumentsStatus(BaseModel):
    required: dict[str, RequiredDocumentState]
    all_accepted: bool


class ProcessingStatusResponse(BaseModel):
    """Processing progress snapshot for an application."""

    application_id: int
    stage: ProcessingStage
    ocr: StepStatus
    banking: StepStatus
    documents: DocumentsStatus
    credit_summary: StepStatus


class JobResponse(BaseModel):
    """A processing job row (OCR, banking analysis or credit summary)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    application_id: int
    document_id: int | None = None
    status: JobStatus
    retry_count: int = 0
    max_retries: int = 0
    last_retry_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None


class DocumentUploadedRequest(BaseModel):
    application_id: int
    category: str = Field(description="Document type as uploaded; legacy names are accepted.")


class DocumentUploadedResponse(BaseModel):
    ocr_job: JobResponse | None = None
    banking_job: JobResponse | None = None


class JobFailedRequest(BaseModel):
    error_message: str | None = None


class BankingCompletedRequest(BaseModel):
    statement_months_detected: int | None = None


class JobUpdateResponse(BaseModel):
    job: JobResponse
    stage: ProcessingStage | None = None


class StageResponse(BaseModel):
    application_id: int
    stage: ProcessingStage


class RetryJobRequest(BaseModel):
    force: bool = False
    reason: str | None = None


class RetryJobResponse(BaseModel):
    job_kind: JobKind
    job: JobResponse
    stage: ProcessingStage
    forced: bool
    next_retry_at: datetime | None = None
