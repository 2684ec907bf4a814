# This project was developed with assistance from AI tools.
"""Retry eligibility for failed processing jobs.

Two callers use this:

* Re-upload of a document whose OCR job failed: the job is re-queued only
  when retries remain and ``min_interval`` has passed since the last retry.
* Staff-initiated retries: the wait doubles with each retry already made
  (``base_delay * 2 ** retry_count``).

A job that has used all its retries stays failed; escalation happens
outside the engine.
"""

from datetime import datetime, timedelta

from db import JobStatus

from .errors import RetryNotAllowedError


def is_retry_eligible(job, now: datetime, min_interval: timedelta) -> bool:
    """Whether a failed job may be re-queued at ``now``."""
    if job.status != JobStatus.FAILED:
        return False
    if (job.retry_count or 0) >= (job.max_retries or 0):
        return False
    if job.last_retry_at is None:
        return True
    return now - job.last_retry_at >= min_interval


def backoff_delay(retry_count: int, base_delay: timedelta) -> timedelta:
    return base_delay * (2 ** max(retry_count, 0))


def next_retry_at(job, base_delay: timedelta) -> datetime | None:
    """Earliest time a staff retry is allowed, or None when not yet retried."""
    if job.last_retry_at is None:
        return None
    return job.last_retry_at + backoff_delay(job.retry_count or 0, base_delay)


def assert_retry_allowed(job, now: datetime, base_delay: timedelta) -> None:
    """Raise RetryNotAllowedError unless a staff retry may run now."""
    if job.status != JobStatus.FAILED:
        raise RetryNotAllowedError(f"Job {job.id} is {JobStatus(job.status).value}, not failed")
    if (job.retry_count or 0) >= (job.max_retries or 0):
        raise RetryNotAllowedError(
            f"Job {job.id} has used all {job.max_retries} retries"
        )
    earliest = next_retry_at(job, base_delay)
    if earliest is not None and now < earliest:
        raise RetryNotAllowedError(
            f"Job {job.id} may not be retried before {earliest.isoformat()}"
        )
