# This project was developed with assistance from AI tools.
"""Internal processing endpoints: upload hooks, worker callbacks, status and retries.

Processing errors raised by the services are rendered by the app-level
handler in ``main.py``.
"""

from db import get_db
from db.enums import JobKind
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.processing import (
    BankingCompletedRequest,
    DocumentUploadedRequest,
    DocumentUploadedResponse,
    JobFailedRequest,
    JobResponse,
    JobUpdateResponse,
    ProcessingStatusResponse,
    RetryJobRequest,
    RetryJobResponse,
    StageResponse,
)
from ..services.orchestrator import JobOrchestrator, JobUpdateResult, get_orchestrator
from ..services.processing_status import get_processing_status
from ..services.stage_engine import ProcessingStageEngine, get_stage_engine

router = APIRouter()


def _job_update(result: JobUpdateResult) -> JobUpdateResponse:
    return JobUpdateResponse(job=JobResponse.model_validate(result.job), stage=result.stage)


@router.post("/documents/{document_id}/uploaded", response_model=DocumentUploadedResponse)
async def document_uploaded(
    document_id: int,
    body: DocumentUploadedRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> DocumentUploadedResponse:
    """Create the OCR or banking analysis job for a freshly uploaded document."""
    result = await orchestrator.on_document_uploaded(body.application_id, document_id, body.category)
    return DocumentUploadedResponse(
        ocr_job=JobResponse.model_validate(result.ocr_job) if result.ocr_job else None,
        banking_job=JobResponse.model_validate(result.banking_job) if result.banking_job else None,
    )


@router.post("/ocr/{document_id}/complete", response_model=JobUpdateResponse)
async def ocr_completed(
    document_id: int,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> JobUpdateResponse:
    return _job_update(await orchestrator.mark_ocr_completed(document_id))


@router.post("/ocr/{document_id}/fail", response_model=JobUpdateResponse)
async def ocr_failed(
    document_id: int,
    body: JobFailedRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> JobUpdateResponse:
    return _job_update(await orchestrator.mark_ocr_failed(document_id, body.error_message))


@router.post("/banking/{application_id}/complete", response_model=JobUpdateResponse)
async def banking_completed(
    application_id: int,
    body: BankingCompletedRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> JobUpdateResponse:
    return _job_update(
        await orchestrator.mark_banking_completed(application_id, body.statement_months_detected)
    )


@router.post("/banking/{application_id}/fail", response_model=JobUpdateResponse)
async def banking_failed(
    application_id: int,
    body: JobFailedRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> JobUpdateResponse:
    return _job_update(await orchestrator.mark_banking_failed(application_id, body.error_message))


@router.post("/credit-summary/{application_id}/complete", response_model=StageResponse)
async def credit_summary_completed(
    application_id: int,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> StageResponse:
    stage = await orchestrator.mark_credit_summary_completed(application_id)
    return StageResponse(application_id=application_id, stage=stage)


@router.post("/applications/{application_id}/advance", response_model=StageResponse)
async def advance_stage(
    application_id: int,
    engine: ProcessingStageEngine = Depends(get_stage_engine),
) -> StageResponse:
    """Recompute the application's stage from current data."""
    stage = await engine.advance(application_id)
    return StageResponse(application_id=application_id, stage=stage)


@router.get("/applications/{application_id}/status", response_model=ProcessingStatusResponse)
async def processing_status(
    application_id: int,
    session: AsyncSession = Depends(get_db),
) -> ProcessingStatusResponse:
    return await get_processing_status(session, application_id)


@router.post("/jobs/{job_kind}/{job_id}/retry", response_model=RetryJobResponse)
async def retry_job(
    job_kind: JobKind,
    job_id: int,
    body: RetryJobRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> RetryJobResponse:
    """Re-queue a failed job. ``force`` bypasses the breaker and retry policy."""
    result = await orchestrator.retry_job(job_kind, job_id, force=body.force, reason=body.reason)
    return RetryJobResponse(
        job_kind=result.job_kind,
        job=JobResponse.model_validate(result.job),
        stage=result.stage,
        forced=result.forced,
        next_retry_at=result.next_retry_at,
    )
