# This project was developed with assistance from AI tools.
"""Processing stage engine.

Recomputes an application's processing stage from its completion
timestamps, pending jobs and required-document review statuses. The
transition function is pure; ``advance`` locks the application row, gathers
the inputs, iterates the transition function to a fixed point and persists
the result.

Stages only move forward, with one exception: once OCR and banking are
complete, a rejected required document sends the application back to
``documents_incomplete``.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from db import Application, ProcessingStage
from sqlalchemy.ext.asyncio import AsyncSession

from . import jobs, required_documents, requirements
from .audit import STAGE_CHANGED, write_audit_event
from .circuit_breaker import CREDIT_SUMMARY_GENERATION, CircuitBreakerRegistry
from .credit_summary import commit_and_settle, ensure_credit_summary_job
from .required_documents import DocumentStatusSummary

logger = logging.getLogger(__name__)

S = ProcessingStage


@dataclass(frozen=True)
class StageInputs:
    ocr_completed: bool = False
    banking_completed: bool = False
    credit_summary_completed: bool = False
    has_ocr_jobs_pending: bool = False
    has_banking_jobs_pending: bool = False
    all_documents_accepted: bool = False
    any_documents_rejected: bool = False

    @property
    def can_evaluate_documents(self) -> bool:
        return self.ocr_completed and self.banking_completed

    @property
    def can_start_credit_summary(self) -> bool:
        return self.can_evaluate_documents and self.all_documents_accepted

    @property
    def documents_rejected(self) -> bool:
        return self.can_evaluate_documents and self.any_documents_rejected


def resolve_next_stage(stage: ProcessingStage, inputs: StageInputs) -> ProcessingStage:
    """One step of the transition table. Unlisted (stage, condition) pairs stay put."""
    if stage is S.PENDING:
        if inputs.has_ocr_jobs_pending:
            return S.OCR_PROCESSING
        if inputs.ocr_completed:
            return S.OCR_COMPLETE
    elif stage is S.OCR_PROCESSING:
        if inputs.ocr_completed:
            return S.OCR_COMPLETE
    elif stage is S.OCR_COMPLETE:
        if inputs.has_banking_jobs_pending:
            return S.BANKING_PROCESSING
        if inputs.banking_completed:
            return S.BANKING_COMPLETE
    elif stage is S.BANKING_PROCESSING:
        if inputs.banking_completed:
            return S.BANKING_COMPLETE
    elif stage is S.BANKING_COMPLETE:
        if inputs.documents_rejected:
            return S.DOCUMENTS_INCOMPLETE
        if inputs.can_evaluate_documents and inputs.all_documents_accepted:
            return S.DOCUMENTS_COMPLETE
    elif stage is S.DOCUMENTS_INCOMPLETE:
        if inputs.can_evaluate_documents and inputs.all_documents_accepted:
            return S.DOCUMENTS_COMPLETE
    elif stage is S.DOCUMENTS_COMPLETE:
        if inputs.documents_rejected:
            return S.DOCUMENTS_INCOMPLETE
        if inputs.can_start_credit_summary and inputs.credit_summary_completed:
            return S.CREDIT_SUMMARY_COMPLETE
        if inputs.can_start_credit_summary:
            return S.CREDIT_SUMMARY_PROCESSING
    elif stage is S.CREDIT_SUMMARY_PROCESSING:
        if inputs.documents_rejected:
            return S.DOCUMENTS_INCOMPLETE
        if inputs.credit_summary_completed:
            return S.CREDIT_SUMMARY_COMPLETE
    elif stage is S.CREDIT_SUMMARY_COMPLETE:
        if inputs.documents_rejected:
            return S.DOCUMENTS_INCOMPLETE
        if inputs.can_start_credit_summary and inputs.credit_summary_completed:
            return S.READY_FOR_LENDER
    elif stage is S.READY_FOR_LENDER:
        if inputs.documents_rejected:
            return S.DOCUMENTS_INCOMPLETE
    return stage


def compute_stage(stage: ProcessingStage, inputs: StageInputs) -> ProcessingStage:
    """Apply ``resolve_next_stage`` until it stops changing, at most once per stage."""
    current = stage
    for _ in range(len(ProcessingStage.ordered())):
        nxt = resolve_next_stage(current, inputs)
        if nxt is current:
            break
        current = nxt
    return current


class ProcessingStageEngine:
    """Advances applications through the processing stages."""

    def __init__(
        self,
        session_factory,
        breakers: CircuitBreakerRegistry,
        *,
        credit_summary_max_retries: int = 1,
    ):
        self._session_factory = session_factory
        self._breakers = breakers
        self._credit_summary_max_retries = credit_summary_max_retries

    async def advance(
        self,
        application_id: int,
        session: AsyncSession | None = None,
    ) -> ProcessingStage:
        """Recompute and persist the application's stage.

        With ``session`` the caller owns the transaction and commits it with
        ``commit_and_settle``; otherwise a new session is opened and committed
        here.

        Raises:
            NotFoundError: application does not exist.
            InvalidProductError: requirements cannot be resolved.
            CircuitOpenError: a credit-summary job is due but its breaker is open.
        """
        if session is not None:
            return await self._advance(session, application_id)

        async with self._session_factory() as own_session:
            stage = await self._advance(own_session, application_id)
            await commit_and_settle(own_session)
            return stage

    async def evaluate_documents(
        self,
        session: AsyncSession,
        application: Application,
    ) -> DocumentStatusSummary:
        """Summarize review statuses of the application's required documents."""
        entries = await requirements.resolve_requirements(
            session,
            lender_product_id=application.lender_product_id,
            product_type=application.product_type,
            requested_amount=application.requested_amount,
            country=requirements.resolve_application_country(application.app_metadata),
        )
        tracked = await required_documents.list_required_documents(session, application.id)
        return required_documents.summarize_document_statuses(
            required_documents.required_keys(entries), tracked,
        )

    async def _advance(self, session: AsyncSession, application_id: int) -> ProcessingStage:
        application = await jobs.lock_application(session, application_id)
        stored = application.processing_stage

        pending_ocr = await jobs.count_pending_ocr_jobs(session, application_id)
        pending_banking = await jobs.count_pending_banking_jobs(session, application_id)
        documents = await self.evaluate_documents(session, application)

        inputs = StageInputs(
            ocr_completed=application.ocr_completed_at is not None,
            banking_completed=application.banking_completed_at is not None,
            credit_summary_completed=application.credit_summary_completed_at is not None,
            has_ocr_jobs_pending=pending_ocr > 0,
            has_banking_jobs_pending=pending_banking > 0,
            all_documents_accepted=documents.all_accepted,
            any_documents_rejected=documents.any_rejected,
        )
        previous = ProcessingStage.parse(stored)
        stage = compute_stage(previous, inputs)

        if stage.value != stored:
            application.processing_stage = stage.value
            application.updated_at = datetime.now(UTC)
            await session.flush()
            if stage is not previous:
                logger.info(
                    "Application %s processing stage %s -> %s",
                    application_id,
                    previous.value,
                    stage.value,
                )
                await write_audit_event(
                    session,
                    event_type=STAGE_CHANGED,
                    application_id=application_id,
                    event_data={"from": previous.value, "to": stage.value},
                )

        if stage is S.CREDIT_SUMMARY_PROCESSING:
            await ensure_credit_summary_job(
                session,
                application_id,
                self._breakers.get(CREDIT_SUMMARY_GENERATION),
                max_retries=self._credit_summary_max_retries,
            )

        return stage


_engine: ProcessingStageEngine | None = None


def init_stage_engine(session_factory, breakers: CircuitBreakerRegistry, **kwargs) -> ProcessingStageEngine:
    """Create the process-wide stage engine."""
    global _engine  # noqa: PLW0603
    _engine = ProcessingStageEngine(session_factory, breakers, **kwargs)
    return _engine


def get_stage_engine() -> ProcessingStageEngine:
    if _engine is None:
        raise RuntimeError(
            "ProcessingStageEngine not initialised -- call init_stage_engine() first"
        )
    return _engine
