# This project was developed with assistance from AI tools.
"""Tests for the internal processing API and its error responses."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from db import get_db, get_db_service
from db.enums import JobKind, JobStatus, ProcessingStage
from fastapi.testclient import TestClient

from backoffice.core.config import settings
from backoffice.main import app
from backoffice.schemas.processing import (
    DocumentsStatus,
    ProcessingStatusResponse,
    StepStatus,
)
from backoffice.services.circuit_breaker import OCR_JOB_CREATION, CircuitBreakerRegistry
from backoffice.services.errors import (
    CircuitOpenError,
    InvalidProductError,
    InvalidStateError,
    NotFoundError,
    RetryNotAllowedError,
)
from backoffice.services.orchestrator import (
    JobUpdateResult,
    RetryResult,
    UploadProcessingResult,
    get_orchestrator,
)
from backoffice.services.stage_engine import get_stage_engine
from tests.factories import make_mock_job

PREFIX = "/api/internal/processing"


@pytest.fixture
def orchestrator():
    mock = MagicMock()
    mock.breakers = CircuitBreakerRegistry()
    for name in (
        "on_document_uploaded",
        "mark_ocr_completed",
        "mark_ocr_failed",
        "mark_banking_completed",
        "mark_banking_failed",
        "mark_credit_summary_completed",
        "retry_job",
    ):
        setattr(mock, name, AsyncMock())
    return mock


@pytest.fixture
def engine():
    mock = MagicMock()
    mock.advance = AsyncMock(return_value=ProcessingStage.OCR_PROCESSING)
    return mock


@pytest.fixture
def client(orchestrator, engine):
    async def _db():
        yield AsyncMock()

    db_service = MagicMock()
    db_service.health_check = AsyncMock(return_value=True)

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_stage_engine] = lambda: engine
    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_db_service] = lambda: db_service
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Upload hook and worker callbacks
# ---------------------------------------------------------------------------


def test_document_uploaded_returns_ocr_job(client, orchestrator):
    orchestrator.on_document_uploaded.return_value = UploadProcessingResult(
        ocr_job=make_mock_job(id=11, document_id=10),
    )

    resp = client.post(
        f"{PREFIX}/documents/10/uploaded",
        json={"application_id": 100, "category": "government_id"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["ocr_job"]["id"] == 11
    assert data["ocr_job"]["status"] == "pending"
    assert data["banking_job"] is None
    orchestrator.on_document_uploaded.assert_awaited_once_with(100, 10, "government_id")


def test_bank_statement_below_batch_returns_no_jobs(client, orchestrator):
    orchestrator.on_document_uploaded.return_value = UploadProcessingResult()

    resp = client.post(
        f"{PREFIX}/documents/12/uploaded",
        json={"application_id": 100, "category": "bank_statement"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"ocr_job": None, "banking_job": None}


def test_ocr_complete(client, orchestrator):
    job = make_mock_job(id=11, document_id=10, status=JobStatus.COMPLETED)
    orchestrator.mark_ocr_completed.return_value = JobUpdateResult(job=job, stage=ProcessingStage.OCR_COMPLETE)

    resp = client.post(f"{PREFIX}/ocr/10/complete")

    assert resp.status_code == 200
    assert resp.json()["stage"] == "ocr_complete"
    assert resp.json()["job"]["status"] == "completed"


def test_ocr_fail_passes_error_message(client, orchestrator):
    job = make_mock_job(status=JobStatus.FAILED, error_message="blurry")
    orchestrator.mark_ocr_failed.return_value = JobUpdateResult(job=job)

    resp = client.post(f"{PREFIX}/ocr/10/fail", json={"error_message": "blurry"})

    assert resp.status_code == 200
    assert resp.json()["stage"] is None
    orchestrator.mark_ocr_failed.assert_awaited_once_with(10, "blurry")


def test_banking_complete_passes_months(client, orchestrator):
    orchestrator.mark_banking_completed.return_value = JobUpdateResult(
        job=make_mock_job(id=21, status=JobStatus.COMPLETED),
        stage=ProcessingStage.BANKING_COMPLETE,
    )

    resp = client.post(f"{PREFIX}/banking/100/complete", json={"statement_months_detected": 6})

    assert resp.status_code == 200
    orchestrator.mark_banking_completed.assert_awaited_once_with(100, 6)


def test_banking_fail(client, orchestrator):
    orchestrator.mark_banking_failed.return_value = JobUpdateResult(
        job=make_mock_job(id=21, status=JobStatus.FAILED),
    )

    resp = client.post(f"{PREFIX}/banking/100/fail", json={})

    assert resp.status_code == 200
    orchestrator.mark_banking_failed.assert_awaited_once_with(100, None)


def test_credit_summary_complete(client, orchestrator):
    orchestrator.mark_credit_summary_completed.return_value = ProcessingStage.READY_FOR_LENDER

    resp = client.post(f"{PREFIX}/credit-summary/100/complete")

    assert resp.json() == {"application_id": 100, "stage": "ready_for_lender"}


def test_advance(client, engine):
    resp = client.post(f"{PREFIX}/applications/100/advance")

    assert resp.status_code == 200
    assert resp.json()["stage"] == "ocr_processing"
    engine.advance.assert_awaited_once_with(100)


def test_status(client):
    snapshot = ProcessingStatusResponse(
        application_id=100,
        stage=ProcessingStage.BANKING_COMPLETE,
        ocr=StepStatus(completed=True, completed_at=datetime(2026, 1, 5, tzinfo=UTC)),
        banking=StepStatus(completed=True),
        documents=DocumentsStatus(required={}, all_accepted=False),
        credit_summary=StepStatus(completed=False),
    )
    with patch(
        "backoffice.routes.processing.get_processing_status",
        new_callable=AsyncMock,
        return_value=snapshot,
    ):
        resp = client.get(f"{PREFIX}/applications/100/status")

    assert resp.status_code == 200
    assert resp.json()["stage"] == "banking_complete"
    assert resp.json()["ocr"]["completed"] is True


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


def test_retry_job(client, orchestrator):
    job = make_mock_job(id=11, retry_count=1, last_retry_at=datetime(2026, 3, 1, tzinfo=UTC))
    orchestrator.retry_job.return_value = RetryResult(
        job_kind=JobKind.OCR,
        job=job,
        stage=ProcessingStage.OCR_PROCESSING,
        forced=True,
        next_retry_at=datetime(2026, 3, 1, 0, 1, tzinfo=UTC),
    )

    resp = client.post(f"{PREFIX}/jobs/ocr/11/retry", json={"force": True, "reason": "vendor fixed"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["job_kind"] == "ocr"
    assert data["forced"] is True
    assert data["job"]["retry_count"] == 1
    orchestrator.retry_job.assert_awaited_once_with(JobKind.OCR, 11, force=True, reason="vendor fixed")


def test_retry_unknown_job_kind_is_validation_error(client):
    resp = client.post(f"{PREFIX}/jobs/underwriting/1/retry", json={})

    assert resp.status_code == 422
    assert resp.json()["status"] == 422


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "error, status, code",
    [
        (NotFoundError("OCR job for document 10 not found"), 404, "not_found"),
        (CircuitOpenError(OCR_JOB_CREATION), 503, "circuit_open"),
        (InvalidProductError("Unknown product type"), 400, "invalid_product"),
        (InvalidStateError("ocr job 11 is processing, not finished"), 400, "invalid_state"),
        (RetryNotAllowedError("Job 11 is pending, not failed"), 409, "retry_not_allowed"),
    ],
)
def test_processing_errors_render_problem_details(client, orchestrator, error, status, code):
    orchestrator.mark_ocr_completed.side_effect = error

    resp = client.post(f"{PREFIX}/ocr/10/complete", headers={"x-request-id": "req-1"})

    assert resp.status_code == status
    body = resp.json()
    assert body["type"] == code
    assert body["status"] == status
    assert body["detail"] == error.message
    assert body["request_id"] == "req-1"


def test_unexpected_error_returns_500(client, orchestrator):
    orchestrator.mark_ocr_completed.side_effect = RuntimeError("boom")

    resp = client.post(f"{PREFIX}/ocr/10/complete")

    assert resp.status_code == 500
    assert resp.json()["detail"] == "An unexpected error occurred."


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_health_reports_breakers(client, orchestrator):
    orchestrator.breakers.get(OCR_JOB_CREATION)

    resp = client.get("/health/")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["circuit_breakers"] == {OCR_JOB_CREATION: "closed"}


def test_app_uses_configured_name_and_debug():
    assert app.title == settings.APP_NAME
    assert app.debug is settings.DEBUG
