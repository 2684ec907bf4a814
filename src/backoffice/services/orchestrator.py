# This project was developed with assistance from AI tools.
"""Processing job orchestration.

Creates OCR and banking-analysis jobs when documents are uploaded, applies
worker completion/failure callbacks, re-queues failed jobs on staff request
and records required-document reviews. Every operation runs in its own
transaction and ends by recomputing the application's stage in that same
transaction, so a job row never commits without the matching stage.

Job creation holds a row lock on the document (OCR) or application
(banking) for the whole transaction; the tables' unique constraints back
this up, so concurrent uploads never produce duplicate jobs.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from db import (
    BankingAnalysisJob,
    DocumentProcessingJob,
    DocumentStatus,
    JobKind,
    JobStatus,
    ProcessingStage,
    RequiredDocumentStatus,
)
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, settings
from . import jobs, required_documents
from .audit import JOB_RETRIED, write_audit_event
from .circuit_breaker import (
    BANKING_JOB_CREATION,
    CREDIT_SUMMARY_GENERATION,
    OCR_JOB_CREATION,
    CircuitBreaker,
    CircuitBreakerRegistry,
)
from .credit_summary import commit_and_settle
from .errors import CircuitOpenError, InvalidStateError, NotFoundError, RetryDisabledError
from .requirements import is_bank_statement
from .retry_policy import assert_retry_allowed, is_retry_eligible, next_retry_at
from .stage_engine import ProcessingStageEngine

logger = logging.getLogger(__name__)

RETRY_BREAKERS: dict[JobKind, str] = {
    JobKind.OCR: OCR_JOB_CREATION,
    JobKind.BANKING: BANKING_JOB_CREATION,
    JobKind.CREDIT_SUMMARY: CREDIT_SUMMARY_GENERATION,
}

_ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


@dataclass
class UploadProcessingResult:
    """Jobs touched by a document upload. Both are None below the bank-statement batch gate."""

    ocr_job: DocumentProcessingJob | None = None
    banking_job: BankingAnalysisJob | None = None


@dataclass
class JobUpdateResult:
    job: jobs.JobRow
    stage: ProcessingStage | None = None


@dataclass
class RetryResult:
    job_kind: JobKind
    job: jobs.JobRow
    stage: ProcessingStage
    forced: bool
    next_retry_at: datetime | None


class JobOrchestrator:
    def __init__(
        self,
        session_factory,
        engine: ProcessingStageEngine,
        breakers: CircuitBreakerRegistry,
        config: Settings = settings,
    ):
        self._session_factory = session_factory
        self._engine = engine
        self._breakers = breakers
        self._config = config

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def on_document_uploaded(
        self,
        application_id: int,
        document_id: int,
        category: str,
    ) -> UploadProcessingResult:
        """Create the processing job an upload calls for.

        Bank statements feed the application-level banking analysis job;
        every other category gets a per-document OCR job.
        """
        if is_bank_statement(category):
            return UploadProcessingResult(banking_job=await self.create_banking_job(application_id))
        return UploadProcessingResult(ocr_job=await self.create_ocr_job(application_id, document_id))

    async def create_ocr_job(self, application_id: int, document_id: int) -> DocumentProcessingJob:
        """Create (or reuse) the document's OCR job; re-queue it if it failed and may retry."""
        breaker = self._breaker(OCR_JOB_CREATION)
        try:
            async with self._session_factory() as session:
                job = await self._create_ocr_job(session, application_id, document_id)
                await commit_and_settle(session)
        except BaseException:
            breaker.record_failure()
            raise
        breaker.record_success()
        return job

    async def _create_ocr_job(
        self,
        session: AsyncSession,
        application_id: int,
        document_id: int,
    ) -> DocumentProcessingJob:
        await jobs.lock_document(session, document_id, application_id)
        job = await jobs.get_ocr_job(session, document_id, for_update=True)

        if job is None:
            await jobs.insert_ocr_job(
                session, application_id, document_id, max_retries=self._config.OCR_MAX_RETRIES,
            )
            job = await jobs.get_ocr_job(session, document_id)
            if job is None:
                raise RuntimeError(f"OCR job for document {document_id} not created")
            logger.info("Created OCR job %s for document %s", job.id, document_id)
        elif job.status == JobStatus.FAILED:
            now = datetime.now(UTC)
            interval = timedelta(seconds=self._config.OCR_RETRY_MIN_INTERVAL_SECONDS)
            if is_retry_eligible(job, now, interval):
                jobs.requeue_job(job, now)
                await session.flush()
                logger.info(
                    "Re-queued failed OCR job %s for document %s (retry %d/%d)",
                    job.id,
                    document_id,
                    job.retry_count,
                    job.max_retries,
                )
            else:
                logger.warning(
                    "OCR job %s for document %s stays failed (retries %d/%d, last retry %s)",
                    job.id,
                    document_id,
                    job.retry_count,
                    job.max_retries,
                    job.last_retry_at,
                )

        await self._engine.advance(application_id, session=session)
        return job

    async def create_banking_job(self, application_id: int) -> BankingAnalysisJob | None:
        """Create (or reuse) the application's banking analysis job once the batch is complete.

        Returns None while fewer than ``BANK_STATEMENT_BATCH_SIZE`` bank
        statements exist or any of them is no longer in ``uploaded`` status.
        """
        breaker = self._breaker(BANKING_JOB_CREATION)
        try:
            async with self._session_factory() as session:
                job = await self._create_banking_job(session, application_id)
                await commit_and_settle(session)
        except BaseException:
            breaker.record_failure()
            raise
        breaker.record_success()
        return job

    async def _create_banking_job(
        self,
        session: AsyncSession,
        application_id: int,
    ) -> BankingAnalysisJob | None:
        await jobs.lock_application(session, application_id)
        job = await jobs.get_banking_job(session, application_id)

        if job is None:
            statements = await jobs.list_bank_statement_documents(session, application_id)
            all_uploaded = all(d.status == DocumentStatus.UPLOADED.value for d in statements)
            if len(statements) >= self._config.BANK_STATEMENT_BATCH_SIZE and all_uploaded:
                await jobs.insert_banking_job(
                    session, application_id, max_retries=self._config.BANKING_MAX_RETRIES,
                )
                job = await jobs.get_banking_job(session, application_id)
                if job is None:
                    raise RuntimeError(f"Banking job for application {application_id} not created")
                logger.info(
                    "Created banking analysis job %s for application %s (%d statements)",
                    job.id,
                    application_id,
                    len(statements),
                )
            else:
                logger.info(
                    "Banking analysis for application %s waiting on statements "
                    "(%d of %d, all uploaded=%s)",
                    application_id,
                    len(statements),
                    self._config.BANK_STATEMENT_BATCH_SIZE,
                    all_uploaded,
                )

        await self._engine.advance(application_id, session=session)
        return job

    # ------------------------------------------------------------------
    # Worker callbacks
    # ------------------------------------------------------------------

    async def mark_ocr_completed(self, document_id: int) -> JobUpdateResult:
        async with self._session_factory() as session:
            job = await jobs.get_ocr_job(session, document_id, for_update=True)
            if job is None:
                raise NotFoundError(f"OCR job for document {document_id} not found")
            if job.status != JobStatus.COMPLETED:
                jobs.mark_job_completed(job, datetime.now(UTC))
            await session.flush()
            await jobs.stamp_completed(session, job.application_id, JobKind.OCR)
            stage = await self._engine.advance(job.application_id, session=session)
            await commit_and_settle(session)
        logger.info("OCR job %s completed (document %s)", job.id, document_id)
        return JobUpdateResult(job=job, stage=stage)

    async def mark_ocr_failed(
        self,
        document_id: int,
        error_message: str | None = None,
    ) -> JobUpdateResult:
        async with self._session_factory() as session:
            job = await jobs.get_ocr_job(session, document_id, for_update=True)
            if job is None:
                raise NotFoundError(f"OCR job for document {document_id} not found")
            self._fail(job, error_message)
            await session.commit()
        logger.warning("OCR job %s failed (document %s): %s", job.id, document_id, error_message)
        return JobUpdateResult(job=job)

    async def mark_banking_completed(
        self,
        application_id: int,
        statement_months_detected: int | None = None,
    ) -> JobUpdateResult:
        async with self._session_factory() as session:
            job = await jobs.get_banking_job(session, application_id, for_update=True)
            if job is None:
                raise NotFoundError(f"Banking analysis job for application {application_id} not found")
            if job.status != JobStatus.COMPLETED:
                jobs.mark_job_completed(job, datetime.now(UTC))
            if statement_months_detected is not None:
                job.statement_months_detected = statement_months_detected
            await session.flush()
            await jobs.stamp_completed(session, application_id, JobKind.BANKING)
            stage = await self._engine.advance(application_id, session=session)
            await commit_and_settle(session)
        logger.info("Banking analysis job %s completed (application %s)", job.id, application_id)
        return JobUpdateResult(job=job, stage=stage)

    async def mark_banking_failed(
        self,
        application_id: int,
        error_message: str | None = None,
    ) -> JobUpdateResult:
        async with self._session_factory() as session:
            job = await jobs.get_banking_job(session, application_id, for_update=True)
            if job is None:
                raise NotFoundError(f"Banking analysis job for application {application_id} not found")
            self._fail(job, error_message)
            await session.commit()
        logger.warning(
            "Banking analysis job %s failed (application %s): %s", job.id, application_id, error_message,
        )
        return JobUpdateResult(job=job)

    async def mark_credit_summary_completed(self, application_id: int) -> ProcessingStage:
        """Record a generated credit summary and advance the application."""
        async with self._session_factory() as session:
            job = await jobs.get_credit_summary_job(session, application_id, for_update=True)
            if job is not None and job.status != JobStatus.COMPLETED:
                jobs.mark_job_completed(job, datetime.now(UTC))
                await session.flush()
            await jobs.stamp_completed(session, application_id, JobKind.CREDIT_SUMMARY)
            stage = await self._engine.advance(application_id, session=session)
            await commit_and_settle(session)
        logger.info("Credit summary completed for application %s", application_id)
        return stage

    # ------------------------------------------------------------------
    # Document review
    # ------------------------------------------------------------------

    async def record_document_review(
        self,
        application_id: int,
        category: str,
        status: RequiredDocumentStatus,
        *,
        is_required: bool = True,
    ) -> ProcessingStage:
        """Record an upload/accept/reject for a required category and advance."""
        async with self._session_factory() as session:
            await jobs.lock_application(session, application_id)
            await required_documents.upsert_required_document(
                session, application_id, category, is_required=is_required, status=status,
            )
            stage = await self._engine.advance(application_id, session=session)
            await commit_and_settle(session)
        return stage

    # ------------------------------------------------------------------
    # Staff retries
    # ------------------------------------------------------------------

    async def retry_job(
        self,
        job_kind: JobKind,
        job_id: int,
        *,
        force: bool = False,
        reason: str | None = None,
        user_id: str | None = None,
    ) -> RetryResult:
        """Re-queue a failed job.

        Unless ``force`` is set the retry policy (remaining retries, backoff)
        must allow it and then the job kind's breaker must admit the call.
        The breaker only sees retries that pass the policy.
        A forced retry still refuses a job that is pending or processing.

        Raises:
            RetryDisabledError: retries are switched off and ``force`` is not set.
            NotFoundError: job does not exist.
            CircuitOpenError: breaker for the job kind is open.
            RetryNotAllowedError: retry policy rejects the retry.
            InvalidStateError: forced retry of a job that is still pending or processing.
        """
        job_kind = JobKind(job_kind)
        if not self._config.RETRY_POLICY_ENABLED and not force:
            raise RetryDisabledError("Retry policy is disabled")

        base_delay = timedelta(seconds=self._config.RETRY_BASE_DELAY_SECONDS)
        async with self._session_factory() as session:
            job = await jobs.get_job_for_update(session, job_kind, job_id)
            if force and job.status in _ACTIVE_STATUSES:
                status = JobStatus(job.status).value
                raise InvalidStateError(f"{job_kind.value} job {job_id} is {status}, not finished")
            breaker = None
            if not force:
                assert_retry_allowed(job, datetime.now(UTC), base_delay)
                breaker = self._breaker(RETRY_BREAKERS[job_kind])
            try:
                stage = await self._requeue(session, job_kind, job, force, reason, user_id)
                await commit_and_settle(session)
            except BaseException:
                if breaker is not None:
                    breaker.record_failure()
                raise
        if breaker is not None:
            breaker.record_success()

        logger.info(
            "Retried %s job %s (retry %d/%d, forced=%s)",
            job_kind.value,
            job_id,
            job.retry_count,
            job.max_retries,
            force,
        )
        return RetryResult(
            job_kind=job_kind,
            job=job,
            stage=stage,
            forced=force,
            next_retry_at=next_retry_at(job, base_delay),
        )

    async def _requeue(
        self,
        session: AsyncSession,
        job_kind: JobKind,
        job: jobs.JobRow,
        force: bool,
        reason: str | None,
        user_id: str | None,
    ) -> ProcessingStage:
        jobs.requeue_job(job, datetime.now(UTC))
        await session.flush()
        await write_audit_event(
            session,
            event_type=JOB_RETRIED,
            application_id=job.application_id,
            user_id=user_id,
            event_data={
                "job_type": job_kind.value,
                "job_id": job.id,
                "retry_count": job.retry_count,
                "reason": reason,
                "forced": force,
            },
        )
        return await self._engine.advance(job.application_id, session=session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _breaker(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if not breaker.can_request():
            logger.warning("Rejected call: circuit breaker %s is open", name)
            raise CircuitOpenError(name)
        return breaker

    @staticmethod
    def _fail(job: jobs.JobRow, error_message: str | None) -> None:
        if job.status in _ACTIVE_STATUSES:
            jobs.mark_job_failed(job, datetime.now(UTC), error_message)
        else:
            logger.warning(
                "Ignoring failure report for job %s in status %s",
                job.id,
                JobStatus(job.status).value,
            )


_orchestrator: JobOrchestrator | None = None


def init_orchestrator(
    session_factory,
    engine: ProcessingStageEngine,
    breakers: CircuitBreakerRegistry,
    config: Settings = settings,
) -> JobOrchestrator:
    """Create the process-wide job orchestrator."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = JobOrchestrator(session_factory, engine, breakers, config)
    return _orchestrator


def get_orchestrator() -> JobOrchestrator:
    if _orchestrator is None:
        raise RuntimeError(
            "JobOrchestrator not initialised -- call init_orchestrator() first"
        )
    return _orchestrator
