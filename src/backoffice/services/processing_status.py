# This project was developed with assistance from AI tools.
"""Processing status snapshot.

Step completion comes from the stage's flags (not the raw timestamps), so the
snapshot agrees with the stage even for applications whose timestamps were
stamped but not yet advanced.
"""

import logging

from db import Application, ProcessingStage, RequiredDocumentStatus
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.processing import (
    DocumentsStatus,
    ProcessingStatusResponse,
    RequiredDocumentState,
    StepStatus,
)
from . import required_documents, requirements
from .errors import NotFoundError

logger = logging.getLogger(__name__)


def _required_status(raw: str | None) -> RequiredDocumentStatus:
    try:
        return RequiredDocumentStatus(raw)
    except ValueError:
        return RequiredDocumentStatus.MISSING


async def get_processing_status(
    session: AsyncSession,
    application_id: int,
) -> ProcessingStatusResponse:
    result = await session.execute(select(Application).where(Application.id == application_id))
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError(f"Application {application_id} not found")

    entries = await requirements.resolve_requirements(
        session,
        lender_product_id=application.lender_product_id,
        product_type=application.product_type,
        requested_amount=application.requested_amount,
        country=requirements.resolve_application_country(application.app_metadata),
    )
    required: dict[str, RequiredDocumentState] = {
        key: RequiredDocumentState(status=RequiredDocumentStatus.MISSING)
        for key in required_documents.required_keys(entries)
    }

    tracked = await required_documents.list_required_documents(session, application_id)
    for entry in tracked:
        if not entry.is_required:
            continue
        category = requirements.normalize_document_category(entry.document_category)
        if not isinstance(category, requirements.DocumentCategory):
            continue
        required[category.value] = RequiredDocumentState(
            status=_required_status(entry.status),
            updated_at=entry.updated_at,
        )

    stage = ProcessingStage.parse(application.processing_stage)
    flags = stage.flags
    return ProcessingStatusResponse(
        application_id=application_id,
        stage=stage,
        ocr=StepStatus(
            completed=flags.ocr_completed,
            completed_at=application.ocr_completed_at if flags.ocr_completed else None,
        ),
        banking=StepStatus(
            completed=flags.banking_completed,
            completed_at=application.banking_completed_at if flags.banking_completed else None,
        ),
        documents=DocumentsStatus(
            required=required,
            all_accepted=all(
                state.status == RequiredDocumentStatus.ACCEPTED for state in required.values()
            ),
        ),
        credit_summary=StepStatus(
            completed=flags.credit_summary_completed,
            completed_at=(
                application.credit_summary_completed_at if flags.credit_summary_completed else None
            ),
        ),
    )
