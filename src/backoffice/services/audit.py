# This project was developed with assistance from AI tools.
"""Audit event service.

Appends processing audit events (stage changes, job retries) in the caller's
transaction, so an event exists only if the change it describes committed.
"""

import logging

from db import AuditEvent
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

STAGE_CHANGED = "processing_stage_changed"
JOB_RETRIED = "processing_job_retried"


async def write_audit_event(
    session: AsyncSession,
    *,
    event_type: str,
    application_id: int | None = None,
    user_id: str | None = None,
    event_data: dict | None = None,
) -> AuditEvent:
    """Write a single audit event.

    Args:
        session: Database session (the caller owns the transaction).
        event_type: Event category (e.g. 'processing_stage_changed').
        application_id: Related application, if any.
        user_id: Staff member who triggered the event, if any.
        event_data: Arbitrary JSON-serializable event payload.

    Returns:
        The created AuditEvent row.
    """
    audit = AuditEvent(
        event_type=event_type,
        application_id=application_id,
        user_id=user_id,
        event_data=event_data,
    )
    session.add(audit)
    await session.flush()
    logger.debug("Audit event %s for application %s", event_type, application_id)
    return audit


async def get_events_for_application(
    session: AsyncSession,
    application_id: int,
    event_type: str | None = None,
) -> list[AuditEvent]:
    """Return audit events for an application, oldest first."""
    stmt = select(AuditEvent).where(AuditEvent.application_id == application_id)
    if event_type is not None:
        stmt = stmt.where(AuditEvent.event_type == event_type)
    stmt = stmt.order_by(AuditEvent.timestamp.asc(), AuditEvent.id.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())
