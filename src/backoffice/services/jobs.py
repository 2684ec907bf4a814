# This project was developed with assistance from AI tools.
"""Processing job repositories and row-lock helpers.

All functions run inside the caller's transaction. Inserts use
``ON CONFLICT DO NOTHING`` on the table's uniqueness key, so a racing
second insert degrades to reading the first caller's row.
"""

import logging
from datetime import datetime

from db import (
    Application,
    BankingAnalysisJob,
    CreditSummaryJob,
    Document,
    DocumentProcessingJob,
    JobKind,
    JobStatus,
)
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import DocumentMismatchError, NotFoundError
from .requirements import BANK_STATEMENT_ALIASES

logger = logging.getLogger(__name__)

OCR_JOB_TYPE = "ocr"

JobRow = DocumentProcessingJob | BankingAnalysisJob | CreditSummaryJob

JOB_MODELS: dict[JobKind, type] = {
    JobKind.OCR: DocumentProcessingJob,
    JobKind.BANKING: BankingAnalysisJob,
    JobKind.CREDIT_SUMMARY: CreditSummaryJob,
}

# Application columns stamped when a job family completes.
COMPLETION_COLUMNS: dict[JobKind, str] = {
    JobKind.OCR: "ocr_completed_at",
    JobKind.BANKING: "banking_completed_at",
    JobKind.CREDIT_SUMMARY: "credit_summary_completed_at",
}


# ---------------------------------------------------------------------------
# Row locks
# ---------------------------------------------------------------------------


async def lock_application(session: AsyncSession, application_id: int) -> Application:
    """Lock the application row FOR UPDATE and return it with fresh values."""
    stmt = (
        select(Application)
        .where(Application.id == application_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError(f"Application {application_id} not found")
    return application


async def lock_document(
    session: AsyncSession,
    document_id: int,
    application_id: int | None = None,
) -> Document:
    """Lock the document row FOR UPDATE.

    Raises:
        NotFoundError: document does not exist.
        DocumentMismatchError: document belongs to a different application.
    """
    stmt = (
        select(Document)
        .where(Document.id == document_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")
    if application_id is not None and document.application_id != application_id:
        raise DocumentMismatchError(
            f"Document {document_id} does not belong to application {application_id}"
        )
    return document


# ---------------------------------------------------------------------------
# OCR jobs
# ---------------------------------------------------------------------------


async def get_ocr_job(
    session: AsyncSession,
    document_id: int,
    *,
    for_update: bool = False,
) -> DocumentProcessingJob | None:
    stmt = select(DocumentProcessingJob).where(
        DocumentProcessingJob.document_id == document_id,
        DocumentProcessingJob.job_type == OCR_JOB_TYPE,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def insert_ocr_job(
    session: AsyncSession,
    application_id: int,
    document_id: int,
    *,
    max_retries: int,
) -> None:
    stmt = (
        pg_insert(DocumentProcessingJob)
        .values(
            application_id=application_id,
            document_id=document_id,
            job_type=OCR_JOB_TYPE,
            status=JobStatus.PENDING,
            max_retries=max_retries,
        )
        .on_conflict_do_nothing(index_elements=["document_id", "job_type"])
    )
    await session.execute(stmt)


async def count_pending_ocr_jobs(session: AsyncSession, application_id: int) -> int:
    stmt = select(func.count(DocumentProcessingJob.id)).where(
        DocumentProcessingJob.application_id == application_id,
        DocumentProcessingJob.status == JobStatus.PENDING,
    )
    result = await session.execute(stmt)
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Banking analysis jobs
# ---------------------------------------------------------------------------


async def get_banking_job(
    session: AsyncSession,
    application_id: int,
    *,
    for_update: bool = False,
) -> BankingAnalysisJob | None:
    stmt = select(BankingAnalysisJob).where(BankingAnalysisJob.application_id == application_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def insert_banking_job(
    session: AsyncSession,
    application_id: int,
    *,
    max_retries: int,
) -> None:
    stmt = (
        pg_insert(BankingAnalysisJob)
        .values(
            application_id=application_id,
            status=JobStatus.PENDING,
            max_retries=max_retries,
        )
        .on_conflict_do_nothing(index_elements=["application_id"])
    )
    await session.execute(stmt)


async def count_pending_banking_jobs(session: AsyncSession, application_id: int) -> int:
    stmt = select(func.count(BankingAnalysisJob.id)).where(
        BankingAnalysisJob.application_id == application_id,
        BankingAnalysisJob.status == JobStatus.PENDING,
    )
    result = await session.execute(stmt)
    return result.scalar_one()


async def list_bank_statement_documents(
    session: AsyncSession,
    application_id: int,
) -> list[Document]:
    """Documents of the application filed under any bank-statement name."""
    stmt = (
        select(Document)
        .where(
            Document.application_id == application_id,
            func.lower(func.trim(Document.document_type)).in_(BANK_STATEMENT_ALIASES),
        )
        .order_by(Document.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Credit summary jobs
# ---------------------------------------------------------------------------


async def get_credit_summary_job(
    session: AsyncSession,
    application_id: int,
    *,
    for_update: bool = False,
) -> CreditSummaryJob | None:
    stmt = select(CreditSummaryJob).where(CreditSummaryJob.application_id == application_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def insert_credit_summary_job(
    session: AsyncSession,
    application_id: int,
    *,
    max_retries: int,
) -> None:
    stmt = (
        pg_insert(CreditSummaryJob)
        .values(
            application_id=application_id,
            status=JobStatus.PENDING,
            max_retries=max_retries,
        )
        .on_conflict_do_nothing(index_elements=["application_id"])
    )
    await session.execute(stmt)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


async def get_job_for_update(session: AsyncSession, kind: JobKind, job_id: int) -> JobRow:
    """Lock any job row by kind and id."""
    model = JOB_MODELS[kind]
    stmt = (
        select(model)
        .where(model.id == job_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFoundError(f"{kind.value} job {job_id} not found")
    return job


async def stamp_completed(session: AsyncSession, application_id: int, kind: JobKind) -> None:
    """Set the application's completion timestamp for ``kind`` unless already set."""
    column = getattr(Application, COMPLETION_COLUMNS[kind])
    stmt = (
        update(Application)
        .where(Application.id == application_id)
        .values({column: func.coalesce(column, func.now())})
    )
    await session.execute(stmt)


def mark_job_completed(job: JobRow, now: datetime) -> None:
    job.status = JobStatus.COMPLETED
    job.completed_at = now
    job.error_message = None


def mark_job_failed(job: JobRow, now: datetime, error_message: str | None) -> None:
    job.status = JobStatus.FAILED
    job.completed_at = now
    job.error_message = error_message


def requeue_job(job: JobRow, now: datetime) -> None:
    """Flip a job back to pending and count the retry."""
    job.status = JobStatus.PENDING
    job.retry_count = (job.retry_count or 0) + 1
    job.last_retry_at = now
    job.started_at = None
    job.completed_at = None
    job.error_message = None
