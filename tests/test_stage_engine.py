# This project was developed with assistance from AI tools.
"""Tests for the processing stage transition table and ProcessingStageEngine.advance."""

import itertools
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from db.enums import ProcessingStage

from backoffice.services.circuit_breaker import (
    CREDIT_SUMMARY_GENERATION,
    CircuitBreakerRegistry,
)
from backoffice.services.credit_summary import PENDING_BREAKER_KEY
from backoffice.services.errors import NotFoundError
from backoffice.services.requirements import DocumentCategory, RequirementEntry
from backoffice.services.stage_engine import (
    ProcessingStageEngine,
    StageInputs,
    compute_stage,
    resolve_next_stage,
)
from tests.factories import (
    make_mock_application,
    make_session,
    make_session_factory,
    make_tracked_document,
)

S = ProcessingStage
NOW = datetime(2026, 3, 1, tzinfo=UTC)

_INPUT_FIELDS = (
    "ocr_completed",
    "banking_completed",
    "credit_summary_completed",
    "has_ocr_jobs_pending",
    "has_banking_jobs_pending",
    "all_documents_accepted",
    "any_documents_rejected",
)


def _all_inputs():
    for values in itertools.product([False, True], repeat=len(_INPUT_FIELDS)):
        yield StageInputs(**dict(zip(_INPUT_FIELDS, values)))


def _consistent(inputs: StageInputs) -> bool:
    """Accepted-everything and something-rejected cannot both hold for real data."""
    return not (inputs.all_documents_accepted and inputs.any_documents_rejected)


DOCS_READY = StageInputs(ocr_completed=True, banking_completed=True, all_documents_accepted=True)
DOCS_REJECTED = StageInputs(ocr_completed=True, banking_completed=True, any_documents_rejected=True)


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "stage, inputs, expected",
    [
        (S.PENDING, StageInputs(has_ocr_jobs_pending=True), S.OCR_PROCESSING),
        (S.PENDING, StageInputs(ocr_completed=True), S.OCR_COMPLETE),
        (S.PENDING, StageInputs(), S.PENDING),
        (S.OCR_PROCESSING, StageInputs(ocr_completed=True), S.OCR_COMPLETE),
        (S.OCR_PROCESSING, StageInputs(has_ocr_jobs_pending=True), S.OCR_PROCESSING),
        (S.OCR_COMPLETE, StageInputs(ocr_completed=True, has_banking_jobs_pending=True), S.BANKING_PROCESSING),
        (S.OCR_COMPLETE, StageInputs(ocr_completed=True, banking_completed=True), S.BANKING_COMPLETE),
        (S.BANKING_PROCESSING, StageInputs(banking_completed=True), S.BANKING_COMPLETE),
        (S.BANKING_COMPLETE, DOCS_REJECTED, S.DOCUMENTS_INCOMPLETE),
        (S.BANKING_COMPLETE, DOCS_READY, S.DOCUMENTS_COMPLETE),
        (S.BANKING_COMPLETE, StageInputs(ocr_completed=True, banking_completed=True), S.BANKING_COMPLETE),
        (S.DOCUMENTS_INCOMPLETE, DOCS_READY, S.DOCUMENTS_COMPLETE),
        (S.DOCUMENTS_COMPLETE, DOCS_REJECTED, S.DOCUMENTS_INCOMPLETE),
        (S.DOCUMENTS_COMPLETE, DOCS_READY, S.CREDIT_SUMMARY_PROCESSING),
        (
            S.DOCUMENTS_COMPLETE,
            StageInputs(**{**DOCS_READY.__dict__, "credit_summary_completed": True}),
            S.CREDIT_SUMMARY_COMPLETE,
        ),
        (S.CREDIT_SUMMARY_PROCESSING, DOCS_REJECTED, S.DOCUMENTS_INCOMPLETE),
        (S.CREDIT_SUMMARY_PROCESSING, StageInputs(credit_summary_completed=True), S.CREDIT_SUMMARY_COMPLETE),
        (S.CREDIT_SUMMARY_COMPLETE, DOCS_REJECTED, S.DOCUMENTS_INCOMPLETE),
        (
            S.CREDIT_SUMMARY_COMPLETE,
            StageInputs(**{**DOCS_READY.__dict__, "credit_summary_completed": True}),
            S.READY_FOR_LENDER,
        ),
        (S.READY_FOR_LENDER, DOCS_REJECTED, S.DOCUMENTS_INCOMPLETE),
        (S.READY_FOR_LENDER, DOCS_READY, S.READY_FOR_LENDER),
    ],
)
def test_resolve_next_stage(stage, inputs, expected):
    assert resolve_next_stage(stage, inputs) is expected


def test_rejection_ignored_until_ocr_and_banking_complete():
    """A rejected document cannot roll back a stage whose prerequisites are unmet."""
    inputs = StageInputs(ocr_completed=True, any_documents_rejected=True)
    assert resolve_next_stage(S.READY_FOR_LENDER, inputs) is S.READY_FOR_LENDER
    assert resolve_next_stage(S.BANKING_COMPLETE, inputs) is S.BANKING_COMPLETE


def test_documents_complete_requires_all_accepted():
    inputs = StageInputs(ocr_completed=True, banking_completed=True)
    assert resolve_next_stage(S.DOCUMENTS_INCOMPLETE, inputs) is S.DOCUMENTS_INCOMPLETE


def test_compute_stage_walks_whole_pipeline():
    inputs = StageInputs(
        ocr_completed=True,
        banking_completed=True,
        credit_summary_completed=True,
        all_documents_accepted=True,
    )
    assert compute_stage(S.PENDING, inputs) is S.READY_FOR_LENDER


def test_compute_stage_stops_at_credit_summary_processing():
    assert compute_stage(S.PENDING, DOCS_READY) is S.CREDIT_SUMMARY_PROCESSING


def test_compute_stage_terminates_for_every_input():
    for stage in ProcessingStage:
        for inputs in _all_inputs():
            assert isinstance(compute_stage(stage, inputs), ProcessingStage)


def test_compute_stage_reaches_fixed_point_for_consistent_inputs():
    for stage in ProcessingStage:
        for inputs in filter(_consistent, _all_inputs()):
            result = compute_stage(stage, inputs)
            assert resolve_next_stage(result, inputs) is result, (stage, inputs)


def test_only_rejection_moves_backward():
    for stage in ProcessingStage:
        for inputs in filter(_consistent, _all_inputs()):
            result = compute_stage(stage, inputs)
            if result.position < stage.position:
                assert result is S.DOCUMENTS_INCOMPLETE
                assert inputs.can_evaluate_documents and inputs.any_documents_rejected


def test_compute_stage_is_idempotent():
    for stage in ProcessingStage:
        for inputs in filter(_consistent, _all_inputs()):
            once = compute_stage(stage, inputs)
            assert compute_stage(once, inputs) is once


# ---------------------------------------------------------------------------
# Engine.advance
# ---------------------------------------------------------------------------


@pytest.fixture
def repo():
    """Patch the repository calls advance() makes."""
    lock_application = AsyncMock()
    count_ocr = AsyncMock(return_value=0)
    count_banking = AsyncMock(return_value=0)
    resolve = AsyncMock(
        return_value=[RequirementEntry(category=DocumentCategory.BANK_STATEMENTS_6_MONTHS)]
    )
    tracked = AsyncMock(return_value=[])
    audit = AsyncMock()
    ensure = AsyncMock()
    with (
        patch("backoffice.services.jobs.lock_application", lock_application),
        patch("backoffice.services.jobs.count_pending_ocr_jobs", count_ocr),
        patch("backoffice.services.jobs.count_pending_banking_jobs", count_banking),
        patch("backoffice.services.requirements.resolve_requirements", resolve),
        patch("backoffice.services.required_documents.list_required_documents", tracked),
        patch("backoffice.services.stage_engine.write_audit_event", audit),
        patch("backoffice.services.stage_engine.ensure_credit_summary_job", ensure),
    ):
        yield SimpleNamespace(
            lock_application=lock_application,
            count_ocr=count_ocr,
            count_banking=count_banking,
            resolve=resolve,
            tracked=tracked,
            audit=audit,
            ensure=ensure,
        )


def _engine(session=None):
    session = session or make_session()
    return ProcessingStageEngine(make_session_factory(session), CircuitBreakerRegistry())


async def test_pending_without_jobs_stays_pending(repo):
    app = make_mock_application(processing_stage="pending")
    repo.lock_application.return_value = app
    session = make_session()

    stage = await _engine().advance(100, session=session)

    assert stage is S.PENDING
    assert app.processing_stage == "pending"
    repo.audit.assert_not_awaited()
    session.flush.assert_not_awaited()


async def test_pending_with_ocr_job_moves_to_ocr_processing(repo):
    app = make_mock_application(processing_stage="pending")
    repo.lock_application.return_value = app
    repo.count_ocr.return_value = 1

    stage = await _engine().advance(100, session=make_session())

    assert stage is S.OCR_PROCESSING
    assert app.processing_stage == "ocr_processing"


async def test_ocr_completed_moves_to_ocr_complete(repo):
    app = make_mock_application(processing_stage="pending", ocr_completed_at=NOW)
    repo.lock_application.return_value = app
    session = make_session()

    stage = await _engine().advance(100, session=session)

    assert stage is S.OCR_COMPLETE
    assert app.processing_stage == "ocr_complete"
    session.flush.assert_awaited()
    audit_kwargs = repo.audit.call_args.kwargs
    assert audit_kwargs["event_type"] == "processing_stage_changed"
    assert audit_kwargs["event_data"] == {"from": "pending", "to": "ocr_complete"}


async def test_rejected_document_after_ocr_and_banking_is_incomplete(repo):
    app = make_mock_application(
        processing_stage="pending", ocr_completed_at=NOW, banking_completed_at=NOW,
    )
    repo.lock_application.return_value = app
    repo.resolve.return_value = [
        RequirementEntry(category=DocumentCategory.BANK_STATEMENTS_6_MONTHS),
        RequirementEntry(category=DocumentCategory.GOVERNMENT_ID),
    ]
    repo.tracked.return_value = [
        make_tracked_document("bank_statements_6_months", "accepted"),
        make_tracked_document("government_id", "rejected"),
    ]

    stage = await _engine().advance(100, session=make_session())

    assert stage is S.DOCUMENTS_INCOMPLETE


async def test_ready_for_lender_rolls_back_on_rejection(repo):
    app = make_mock_application(
        processing_stage="ready_for_lender",
        ocr_completed_at=NOW,
        banking_completed_at=NOW,
        credit_summary_completed_at=NOW,
    )
    repo.lock_application.return_value = app
    repo.tracked.return_value = [make_tracked_document("bank_statement", "rejected")]

    stage = await _engine().advance(100, session=make_session())

    assert stage is S.DOCUMENTS_INCOMPLETE
    assert app.processing_stage == "documents_incomplete"


async def test_all_accepted_reaches_credit_summary_processing_and_ensures_job(repo):
    app = make_mock_application(
        processing_stage="banking_complete", ocr_completed_at=NOW, banking_completed_at=NOW,
    )
    repo.lock_application.return_value = app
    repo.tracked.return_value = [make_tracked_document("bank_statements_6_months", "accepted")]
    session = make_session()
    breakers = CircuitBreakerRegistry()
    engine = ProcessingStageEngine(make_session_factory(session), breakers, credit_summary_max_retries=2)

    stage = await engine.advance(100, session=session)

    assert stage is S.CREDIT_SUMMARY_PROCESSING
    repo.ensure.assert_awaited_once_with(
        session, 100, breakers.get(CREDIT_SUMMARY_GENERATION), max_retries=2,
    )


async def test_credit_summary_not_ensured_at_other_stages(repo):
    repo.lock_application.return_value = make_mock_application(ocr_completed_at=NOW)

    await _engine().advance(100, session=make_session())

    repo.ensure.assert_not_awaited()


async def test_null_stage_is_persisted_as_pending_without_audit(repo):
    app = make_mock_application(processing_stage=None)
    repo.lock_application.return_value = app

    stage = await _engine().advance(100, session=make_session())

    assert stage is S.PENDING
    assert app.processing_stage == "pending"
    repo.audit.assert_not_awaited()


async def test_unknown_stage_is_treated_as_pending(repo):
    app = make_mock_application(processing_stage="legacy_stage", ocr_completed_at=NOW)
    repo.lock_application.return_value = app

    stage = await _engine().advance(100, session=make_session())

    assert stage is S.OCR_COMPLETE


async def test_advance_twice_is_idempotent(repo):
    app = make_mock_application(
        processing_stage="pending", ocr_completed_at=NOW, banking_completed_at=NOW,
    )
    repo.lock_application.return_value = app
    repo.tracked.return_value = [make_tracked_document("bank_statements_6_months", "accepted")]
    engine = _engine()

    first = await engine.advance(100, session=make_session())
    repo.audit.reset_mock()
    second_session = make_session()
    second = await engine.advance(100, session=second_session)

    assert first is second is S.CREDIT_SUMMARY_PROCESSING
    repo.audit.assert_not_awaited()
    second_session.flush.assert_not_awaited()


async def test_advance_without_session_commits_own_transaction(repo):
    repo.lock_application.return_value = make_mock_application(ocr_completed_at=NOW)
    session = make_session()
    engine = _engine(session)

    stage = await engine.advance(100)

    assert stage is S.OCR_COMPLETE
    session.commit.assert_awaited_once()


async def test_failed_own_commit_records_credit_summary_failure(repo):
    app = make_mock_application(
        processing_stage="banking_complete", ocr_completed_at=NOW, banking_completed_at=NOW,
    )
    repo.lock_application.return_value = app
    repo.tracked.return_value = [make_tracked_document("bank_statements_6_months", "accepted")]
    session = make_session()
    session.commit.side_effect = RuntimeError("serialization failure")
    breakers = CircuitBreakerRegistry()
    breaker = breakers.get(CREDIT_SUMMARY_GENERATION)

    async def _park(session, application_id, breaker, **kwargs):
        session.info[PENDING_BREAKER_KEY] = breaker

    repo.ensure.side_effect = _park
    engine = ProcessingStageEngine(make_session_factory(session), breakers)

    with pytest.raises(RuntimeError):
        await engine.advance(100)

    assert breaker.failure_count == 1
    assert PENDING_BREAKER_KEY not in session.info


async def test_advance_missing_application_raises_not_found(repo):
    repo.lock_application.side_effect = NotFoundError("Application 999 not found")
    session = make_session()

    with pytest.raises(NotFoundError):
        await _engine(session).advance(999)

    session.commit.assert_not_awaited()


async def test_requirements_resolved_from_application_fields(repo):
    app = make_mock_application(
        product_type="TERM",
        lender_product_id=7,
        requested_amount=50000,
        app_metadata={"business": {"address": {"country": " ca "}}},
    )
    repo.lock_application.return_value = app
    session = make_session()

    await _engine().advance(100, session=session)

    repo.resolve.assert_awaited_once_with(
        session,
        lender_product_id=7,
        product_type="TERM",
        requested_amount=50000,
        country="CA",
    )
