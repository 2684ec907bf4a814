# This project was developed with assistance from AI tools.
"""Required-document tracker.

One row per (application, canonical category) recording whether the category
is required and its review status. Rows are upserted, never deleted. No
status transition rules are enforced here; the stage engine reads the rows.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from db import ApplicationRequiredDocument, RequiredDocumentStatus
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .requirements import (
    DocumentCategory,
    RequirementEntry,
    UnrecognizedCategory,
    category_key,
    normalize_document_category,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentStatusSummary:
    all_accepted: bool
    any_rejected: bool


async def upsert_required_document(
    session: AsyncSession,
    application_id: int,
    category: DocumentCategory | UnrecognizedCategory | str,
    *,
    is_required: bool = True,
    status: RequiredDocumentStatus = RequiredDocumentStatus.MISSING,
) -> None:
    """Insert or update the tracker row for one category."""
    if isinstance(category, str):
        category = normalize_document_category(category)
    key = category_key(category)
    status_value = RequiredDocumentStatus(status).value

    stmt = pg_insert(ApplicationRequiredDocument).values(
        application_id=application_id,
        document_category=key,
        is_required=is_required,
        status=status_value,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["application_id", "document_category"],
        set_={
            "is_required": stmt.excluded.is_required,
            "status": stmt.excluded.status,
            "updated_at": datetime.now(UTC),
        },
    )
    await session.execute(stmt)
    logger.info(
        "Required document %s for application %s set to %s (required=%s)",
        key,
        application_id,
        status_value,
        is_required,
    )


async def list_required_documents(
    session: AsyncSession,
    application_id: int,
) -> list[ApplicationRequiredDocument]:
    stmt = (
        select(ApplicationRequiredDocument)
        .where(ApplicationRequiredDocument.application_id == application_id)
        .order_by(ApplicationRequiredDocument.document_category)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


def required_keys(requirements: list[RequirementEntry]) -> list[str]:
    """Canonical keys of the recognized categories that are required, in order."""
    keys: list[str] = []
    for entry in requirements:
        if entry.required and entry.recognized and entry.key not in keys:
            keys.append(entry.key)
    return keys


def find_tracked_entry(
    key: str,
    entries: list[ApplicationRequiredDocument],
) -> ApplicationRequiredDocument | None:
    """Tracker row for ``key``, matching legacy category names too."""
    for entry in entries:
        if not entry.is_required:
            continue
        if category_key(normalize_document_category(entry.document_category)) == key:
            return entry
    return None


def summarize_document_statuses(
    keys: list[str],
    entries: list[ApplicationRequiredDocument],
) -> DocumentStatusSummary:
    """Whether every required category is accepted, and whether any is rejected.

    A required category without a tracker row counts as not accepted.
    """
    all_accepted = True
    any_rejected = False
    for key in keys:
        entry = find_tracked_entry(key, entries)
        if entry is None:
            all_accepted = False
            continue
        if entry.status != RequiredDocumentStatus.ACCEPTED.value:
            all_accepted = False
        if entry.status == RequiredDocumentStatus.REJECTED.value:
            any_rejected = True
    return DocumentStatusSummary(all_accepted=all_accepted, any_rejected=any_rejected)
