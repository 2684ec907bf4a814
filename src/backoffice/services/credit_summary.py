# This project was developed with assistance from AI tools.
"""Credit-summary job trigger used by the stage engine.

Creating the job is guarded by the ``credit_summary_generation`` breaker.
A failure is recorded at once; a success is only known once the enclosing
transaction commits, so the breaker is parked in ``session.info`` and
settled by ``commit_and_settle``.
"""

import logging

from db import CreditSummaryJob
from sqlalchemy.ext.asyncio import AsyncSession

from . import jobs
from .circuit_breaker import CircuitBreaker
from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

PENDING_BREAKER_KEY = "credit_summary_breaker"


async def ensure_credit_summary_job(
    session: AsyncSession,
    application_id: int,
    breaker: CircuitBreaker,
    *,
    max_retries: int = 1,
) -> CreditSummaryJob:
    """Return the application's credit-summary job, creating a pending one if absent.

    Raises:
        CircuitOpenError: the job has to be created but the breaker is open.
    """
    job = await jobs.get_credit_summary_job(session, application_id)
    if job is not None:
        return job

    if not breaker.can_request():
        raise CircuitOpenError(breaker.name)
    try:
        await jobs.insert_credit_summary_job(session, application_id, max_retries=max_retries)
        job = await jobs.get_credit_summary_job(session, application_id)
        if job is None:
            raise RuntimeError(f"Credit summary job for application {application_id} not created")
    except BaseException:
        breaker.record_failure()
        raise

    session.info[PENDING_BREAKER_KEY] = breaker
    logger.info("Created credit summary job %s for application %s", job.id, application_id)
    return job


def settle_pending_breaker(session: AsyncSession, *, committed: bool) -> None:
    """Report a credit-summary creation left pending on ``session``, if any."""
    breaker = session.info.pop(PENDING_BREAKER_KEY, None)
    if breaker is None:
        return
    if committed:
        breaker.record_success()
    else:
        breaker.record_failure()


async def commit_and_settle(session: AsyncSession) -> None:
    """Commit ``session`` and settle the breaker of any job created in it."""
    try:
        await session.commit()
    except BaseException:
        settle_pending_breaker(session, committed=False)
        raise
    settle_pending_breaker(session, committed=True)
