"""Durable side-effect queue for confirmed bookings.

Jobs are rows in ``BookingJob``. A drain claims each pending row with a
conditional update, runs the handler for its type outside any row lock and
records the outcome. Handlers are idempotent on their own (invoice fields,
email claim columns), so a job that runs twice never duplicates the effect.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from .models import Booking, BookingJob

logger = logging.getLogger(__name__)

JOB_STALE_AFTER = timedelta(minutes=10)


class JobError(Exception):
    """Base class for job handler failures."""


class TransientJobError(JobError):
    """Retry later; counts against max_attempts."""


class PermanentJobError(JobError):
    """Retrying cannot help; the job fails immediately."""


@dataclass(frozen=True)
class JobSpec:
    type: str
    payload: dict = field(default_factory=dict)
    requeue: bool = False


@dataclass(frozen=True)
class JobRunResult:
    processed: int
    failed: int
    remaining_pending: int

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "remaining_pending": self.remaining_pending,
        }


def enqueue_booking_jobs(booking: Booking, specs: Iterable[JobSpec]) -> list[BookingJob]:
    """
    Ensure one job per (booking, type).

    Existing jobs are left as they are, except a FAILED job whose spec asks
    for ``requeue``: it goes back to pending with a fresh attempt budget.
    """
    jobs = []
    for spec in specs:
        job, created = BookingJob.objects.get_or_create(
            booking=booking,
            type=spec.type,
            defaults={
                "payload": dict(spec.payload),
                "max_attempts": settings.BOOKING_JOB_MAX_ATTEMPTS,
            },
        )
        if created:
            logger.info(f"job:enqueued booking={booking.pk} type={spec.type} job={job.pk}")
        elif spec.requeue and job.status == BookingJob.Status.FAILED:
            requeue_job(job, payload=spec.payload or None)
        jobs.append(job)
    return jobs


def requeue_job(job: BookingJob, *, payload: dict | None = None) -> None:
    job.status = BookingJob.Status.PENDING
    job.attempts = 0
    job.last_error = ""
    if payload:
        job.payload = dict(payload)
    job.save(update_fields=["status", "attempts", "last_error", "payload", "updated_at"])
    logger.info(f"job:requeued booking={job.booking_id} type={job.type} job={job.pk}")


# ============================================================================
# HANDLERS
# ============================================================================

def _issue_invoice(job: BookingJob) -> dict:
    from apps.invoicing.exceptions import InvoicingError, VendusAPIError
    from apps.invoicing.services import booking_facts, maybe_issue_invoice, persist_invoice

    booking = job.booking
    if booking.has_invoice:
        return {"skipped": "already_issued", "number": booking.invoice_number}

    payment_intent_id = (job.payload or {}).get("stripe_payment_intent_id") or booking.stripe_payment_intent_id
    if not payment_intent_id:
        raise PermanentJobError("Missing stripe_payment_intent_id for invoice")

    try:
        record = maybe_issue_invoice(booking_facts(booking), payment_intent_id)
    except VendusAPIError as exc:
        if exc.is_transient:
            raise TransientJobError(str(exc)) from exc
        raise PermanentJobError(str(exc)) from exc
    except InvoicingError as exc:
        raise PermanentJobError(str(exc)) from exc

    if record is None:
        logger.info(f"invoice:skipped booking={booking.pk} reason=invoicing_disabled")
        return {"skipped": "invoicing_disabled"}

    persist_invoice(booking, record)
    enqueue_booking_jobs(booking, [JobSpec(BookingJob.JobType.SEND_INVOICE_READY, requeue=True)])
    return {"number": record.number, "provider": record.provider}


def _send_customer_confirmation(job: BookingJob) -> dict:
    from apps.notifications.services import NotificationError, send_booking_confirmed

    try:
        outcome = send_booking_confirmed(job.booking_id, audience="customer")
    except NotificationError as exc:
        raise TransientJobError(str(exc)) from exc
    return {"outcome": outcome}


def _send_internal_confirmation(job: BookingJob) -> dict:
    from apps.notifications.services import NotificationError, send_booking_confirmed

    try:
        outcome = send_booking_confirmed(job.booking_id, audience="ops")
    except NotificationError as exc:
        raise TransientJobError(str(exc)) from exc
    return {"outcome": outcome}


def _send_invoice_ready(job: BookingJob) -> dict:
    from apps.notifications.services import NotificationError, send_invoice_ready

    try:
        outcome = send_invoice_ready(job.booking_id)
    except NotificationError as exc:
        raise TransientJobError(str(exc)) from exc
    return {"outcome": outcome}


JOB_HANDLERS: dict[str, Callable[[BookingJob], dict]] = {
    BookingJob.JobType.ISSUE_INVOICE: _issue_invoice,
    BookingJob.JobType.SEND_CUSTOMER_CONFIRMATION: _send_customer_confirmation,
    BookingJob.JobType.SEND_INTERNAL_CONFIRMATION: _send_internal_confirmation,
    BookingJob.JobType.SEND_INVOICE_READY: _send_invoice_ready,
}


# ============================================================================
# DRAIN
# ============================================================================

def _claim(job_id: int) -> bool:
    return bool(
        BookingJob.objects.filter(pk=job_id, status=BookingJob.Status.PENDING).update(
            status=BookingJob.Status.PROCESSING,
            updated_at=timezone.now(),
        )
    )


def _run_one(job: BookingJob) -> bool:
    """Run a claimed job. Returns True when it completed."""

    handler = JOB_HANDLERS.get(job.type)
    started = time.monotonic()
    logger.info(
        f"job:processing job={job.pk} booking={job.booking_id} type={job.type} attempt={job.attempts + 1}"
    )
    try:
        if handler is None:
            raise PermanentJobError(f"Unknown job type: {job.type}")
        result = handler(job)
    except PermanentJobError as exc:
        job.status = BookingJob.Status.FAILED
        job.attempts += 1
        job.last_error = str(exc)
        job.result = {"error": str(exc), "permanent": True, "attempted_at": timezone.now().isoformat()}
        job.save(update_fields=["status", "attempts", "last_error", "result", "updated_at"])
        logger.error(f"job:failed job={job.pk} booking={job.booking_id} type={job.type} permanent=true error={exc}")
        return False
    except Exception as exc:
        job.attempts += 1
        exhausted = job.attempts >= job.max_attempts
        job.status = BookingJob.Status.FAILED if exhausted else BookingJob.Status.PENDING
        job.last_error = str(exc)
        job.result = {"error": str(exc), "attempted_at": timezone.now().isoformat()}
        job.save(update_fields=["status", "attempts", "last_error", "result", "updated_at"])
        logger.warning(
            f"job:failed job={job.pk} booking={job.booking_id} type={job.type} "
            f"attempt={job.attempts} will_retry={not exhausted} error={exc}",
            exc_info=not isinstance(exc, JobError),
        )
        return False

    job.status = BookingJob.Status.COMPLETED
    job.result = result or {}
    job.last_error = ""
    job.processed_at = timezone.now()
    job.save(update_fields=["status", "result", "last_error", "processed_at", "updated_at"])
    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"job:completed job={job.pk} booking={job.booking_id} type={job.type} duration_ms={duration_ms}")
    return True


def process_pending_jobs(limit: int | None = None) -> JobRunResult:
    """Drain up to ``limit`` pending jobs, oldest first."""

    if limit is None:
        limit = settings.BOOKING_JOBS_BATCH_SIZE

    job_ids = list(
        BookingJob.objects.filter(status=BookingJob.Status.PENDING)
        .order_by("created_at", "pk")
        .values_list("pk", flat=True)[:limit]
    )

    processed = failed = 0
    for job_id in job_ids:
        if not _claim(job_id):
            continue
        job = BookingJob.objects.select_related("booking", "booking__machine").get(pk=job_id)
        if _run_one(job):
            processed += 1
        elif job.status == BookingJob.Status.FAILED:
            failed += 1

    remaining = BookingJob.objects.filter(status=BookingJob.Status.PENDING).count()
    return JobRunResult(processed=processed, failed=failed, remaining_pending=remaining)


def reclaim_stale_jobs(now: datetime | None = None, stale_after: timedelta | None = None) -> int:
    """Return jobs stuck in processing (a crashed worker) to pending."""

    now = now or timezone.now()
    stale_after = stale_after or timedelta(
        minutes=getattr(settings, "BOOKING_JOB_STALE_MINUTES", JOB_STALE_AFTER.total_seconds() // 60)
    )
    reclaimed = BookingJob.objects.filter(
        status=BookingJob.Status.PROCESSING,
        updated_at__lt=now - stale_after,
    ).update(status=BookingJob.Status.PENDING, updated_at=now)
    if reclaimed:
        logger.warning(f"job:reclaimed count={reclaimed}")
    return reclaimed
