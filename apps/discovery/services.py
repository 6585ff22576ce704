"""
Discovery service layer.

Views, tasks and the management command go through these functions; they
raise apps.core.exceptions errors and leave HTTP concerns to the views.

Sections:
- Daily quota (process-wide daily cap)
- Jobs (bulk create, delete, retire)
- Runs (start, dispatch, cancel, reap)
- Staged vendor review (approve, reject, bulk)
- Ad-hoc preview (no staging)
- Chat history
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from apps.core.metrics import increment_review, increment_runs_finished, increment_runs_started
from apps.core.middleware import celery_request_id_headers
from apps.vendors.models import Vendor
from apps.vendors.services import promote_staged_vendor, vendor_name_index

from .llm import VendorDiscoveryClient
from .models import (
    DailyDiscoveryQuota,
    DiscoveryChatHistory,
    DiscoveryJob,
    DiscoveryRun,
    SchedulerConfig,
    StagedVendor,
    stale_run_cutoff,
)
from .state_machine import RunState, transition_run

logger = logging.getLogger(__name__)


# =============================================================================
# Daily quota
# =============================================================================

def get_daily_usage(run_date) -> int:
    quota = DailyDiscoveryQuota.objects.filter(run_date=run_date).first()
    return quota.reserved if quota else 0


def daily_remaining(run_date, daily_cap) -> int:
    return max(daily_cap - get_daily_usage(run_date), 0)


def reserve_daily_quota(run_id, run_date, requested: int, daily_cap: int) -> int:
    """
    Atomically reserve up to `requested` units of the day's cap for a run.

    The quota row is locked for the check-and-increment, so concurrent runs
    can never reserve more than daily_cap in total.

    Returns:
        Units granted (0..requested)
    """
    if requested <= 0:
        return 0

    with transaction.atomic():
        quota, _ = DailyDiscoveryQuota.objects.select_for_update().get_or_create(run_date=run_date)
        granted = max(0, min(requested, daily_cap - quota.reserved))
        if granted:
            quota.reserved = quota.reserved + granted
            quota.save(update_fields=['reserved', 'updated_at'])
            DiscoveryRun.objects.filter(pk=run_id).update(quota_reserved=F('quota_reserved') + granted)

    logger.info(f"Run {run_id}: reserved {granted}/{requested} of daily cap {daily_cap} for {run_date}")
    return granted


def release_run_quota(run_id) -> int:
    """
    Return a run's unused reservation to its day's quota.

    Safe to call repeatedly; the run's quota_reserved drops to 0.

    Returns:
        Units released
    """
    with transaction.atomic():
        run = DiscoveryRun.objects.select_for_update().only('id', 'run_date', 'quota_reserved').get(pk=run_id)
        unused = run.quota_reserved
        if not unused:
            return 0

        quota = DailyDiscoveryQuota.objects.select_for_update().filter(run_date=run.run_date).first()
        if quota:
            quota.reserved = max(quota.reserved - unused, 0)
            quota.save(update_fields=['reserved', 'updated_at'])
        DiscoveryRun.objects.filter(pk=run_id).update(quota_reserved=0)

    logger.info(f"Run {run_id}: released {unused} unused daily cap units")
    return unused


# =============================================================================
# Run log
# =============================================================================

def append_run_log(run_id, message: str, level: str = 'info', data: Optional[Dict] = None) -> None:
    """
    Append a step entry to a run's log, keeping the newest
    DISCOVERY_RUN_LOG_MAX_ENTRIES entries.
    """
    entry = {
        'timestamp': timezone.now().isoformat(),
        'level': level,
        'message': message,
    }
    if data:
        entry['data'] = data

    with transaction.atomic():
        run = DiscoveryRun.objects.select_for_update().only('id', 'logs').filter(pk=run_id).first()
        if run is None:
            return
        logs = list(run.logs or [])
        logs.append(entry)
        DiscoveryRun.objects.filter(pk=run_id).update(logs=logs[-settings.DISCOVERY_RUN_LOG_MAX_ENTRIES:])


# =============================================================================
# Jobs
# =============================================================================

@dataclass
class BulkCreateResult:
    results: List[Dict] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            'total': len(self.results),
            'created': sum(1 for r in self.results if r['status'] == 'created'),
            'skipped': sum(1 for r in self.results if r['status'] == 'skipped_existing'),
            'errors': sum(1 for r in self.results if r['status'] == 'error'),
        }


def _unique_stripped(values):
    seen = set()
    unique = []
    for value in values:
        value = (value or '').strip()
        if value and value.lower() not in seen:
            seen.add(value.lower())
            unique.append(value)
    return unique


def bulk_create_jobs(
    areas: List[str],
    specialties: List[str],
    count_per_run: int = 20,
    max_total: Optional[int] = 100,
    notes: str = '',
    skip_existing: bool = True,
    end_date=None,
) -> BulkCreateResult:
    """
    Create one job per (area, specialty) in the cartesian product.

    Each item commits on its own and is reported individually; a failure
    on one pair does not undo the others.
    """
    outcome = BulkCreateResult()

    for area in _unique_stripped(areas):
        for specialty in _unique_stripped(specialties):
            item = {'area': area, 'specialty': specialty}
            try:
                if skip_existing:
                    existing = DiscoveryJob.objects.filter(
                        area__iexact=area, specialty__iexact=specialty
                    ).only('id').first()
                    if existing:
                        item.update(status='skipped_existing', id=str(existing.id))
                        outcome.results.append(item)
                        continue

                job = DiscoveryJob.objects.create(
                    area=area,
                    specialty=specialty,
                    count_per_run=count_per_run,
                    max_total=max_total,
                    notes=notes or '',
                    end_date=end_date,
                )
                item.update(status='created', id=str(job.id))
            except DatabaseError as e:
                logger.error(f"Bulk job create failed for {specialty} in {area}: {e}")
                item.update(status='error', error=str(e))
            outcome.results.append(item)

    logger.info(f"Bulk job create: {outcome.summary}")
    return outcome


def delete_job(job: DiscoveryJob) -> None:
    """
    Delete a job and its run history.

    Blocked while a run is queued or running. Staged vendors survive with
    their job and run links cleared.
    """
    with transaction.atomic():
        job = DiscoveryJob.objects.select_for_update().get(pk=job.pk)
        if job.has_active_run():
            raise ConflictError("Job has a queued or running run; cancel it before deleting the job")
        job_id = job.id
        job.delete()
    logger.info(f"Deleted discovery job {job_id}")


def retire_job(job: DiscoveryJob) -> DiscoveryJob:
    """Stop a job permanently while keeping it and its history."""
    job.retired = True
    job.is_active = False
    job.paused = True
    job.save(update_fields=['retired', 'is_active', 'paused', 'updated_at'])
    logger.info(f"Retired discovery job {job.id} ({job})")
    return job


# =============================================================================
# Runs
# =============================================================================

def preflight_skip_reason(job: DiscoveryJob, config: SchedulerConfig, run_date) -> Optional[str]:
    """
    Why a run of `job` must be skipped before execution, or None.

    Deactivates jobs that can never run again (past end date or at max total).
    """
    reason = job.skip_reason()
    if reason and (job.is_past_end_date or job.remaining_capacity == 0) and job.is_active:
        job.is_active = False
        job.save(update_fields=['is_active', 'updated_at'])
        logger.info(f"Deactivated job {job.id}: {reason}")
    if reason:
        return reason

    if daily_remaining(run_date, config.daily_cap) <= 0:
        return f"Daily cap of {config.daily_cap} reached for {run_date}"
    return None


def skip_run(run_id, reason: str) -> bool:
    skipped = transition_run(run_id, RunState.SKIPPED, error=reason)
    if skipped:
        increment_runs_finished('skipped')
        append_run_log(run_id, f"Skipped: {reason}")
        logger.info(f"Run {run_id} skipped: {reason}")
    return skipped


def start_run(job_id, triggered_by=DiscoveryRun.TRIGGER_MANUAL, user=None, dispatch=True) -> DiscoveryRun:
    """
    Create a run for a job and queue it for execution.

    The job row is locked while checking for an outstanding run, so two
    concurrent "run now" requests cannot both create one. Runs that fail
    pre-flight checks are created and immediately skipped.

    Raises:
        NotFoundError: Unknown job
        ConflictError: The job already has a queued or running run
    """
    config = SchedulerConfig.get_active()

    with transaction.atomic():
        job = DiscoveryJob.objects.select_for_update().filter(pk=job_id).first()
        if job is None:
            raise NotFoundError(f"Discovery job {job_id} not found")

        if job.has_active_run():
            raise ConflictError("A run for this job is already queued or running")

        run = DiscoveryRun.objects.create(
            job=job,
            run_date=config.local_date(),
            status=DiscoveryRun.STATUS_QUEUED,
            triggered_by=triggered_by,
            requested_by=user if user is not None and user.is_authenticated else None,
        )
        increment_runs_started(triggered_by)

        reason = preflight_skip_reason(job, config, run.run_date)
        if reason:
            skip_run(run.id, reason)

    logger.info(f"Created {triggered_by} run {run.id} for job {job.id} ({job})")

    # Snapshot before dispatch
    run.refresh_from_db()
    if not reason and dispatch and not dispatch_run(run.id):
        run.refresh_from_db()
    return run


def dispatch_run(run_id) -> bool:
    """
    Queue the Celery task for a run.

    Returns:
        False when the broker refused the task and the run was failed
    """
    from .tasks import execute_discovery_run

    try:
        result = execute_discovery_run.apply_async(
            args=[str(run_id)],
            headers=celery_request_id_headers(),
        )
    except Exception as e:
        logger.exception(f"Failed to queue run {run_id}")
        if transition_run(run_id, RunState.FAILED, from_states={RunState.QUEUED},
                          error=f"Failed to queue run: {e}"):
            increment_runs_finished('failed')
        return False

    DiscoveryRun.objects.filter(pk=run_id).update(task_id=result.id or '')
    return True


def cancel_run(run_id, user=None) -> DiscoveryRun:
    """
    Cancel a queued or running run.

    The executor notices the persisted status between external calls and
    stops; a queued task is also revoked.

    Raises:
        NotFoundError: Unknown run
        ConflictError: The run already reached a terminal status
    """
    run = DiscoveryRun.objects.filter(pk=run_id).first()
    if run is None:
        raise NotFoundError(f"Discovery run {run_id} not found")

    was_queued = run.status == DiscoveryRun.STATUS_QUEUED
    who = getattr(user, 'username', None) or 'admin'

    if not transition_run(run.id, RunState.CANCELLED, error=f"Cancelled by {who}"):
        run.refresh_from_db(fields=['status'])
        raise ConflictError(f"Run is {run.status}; only queued or running runs can be cancelled")

    increment_runs_finished('cancelled')
    append_run_log(run.id, f"Cancelled by {who}", level='warning')
    logger.info(f"Run {run.id} cancelled by {who}")

    if was_queued and run.task_id:
        try:
            from config.celery import app
            app.control.revoke(run.task_id)
        except Exception as e:
            logger.warning(f"Failed to revoke task {run.task_id} for run {run.id}: {e}")

    if was_queued:
        release_run_quota(run.id)

    run.refresh_from_db()
    return run


def reap_stuck_runs() -> Dict[str, int]:
    """
    Fail runs stuck queued or running past DISCOVERY_RUN_TIMEOUT_MINUTES and
    return reservations held by runs that already finished.
    """
    cutoff = stale_run_cutoff()
    minutes = settings.DISCOVERY_RUN_TIMEOUT_MINUTES
    reaped = 0

    stuck = DiscoveryRun.objects.filter(
        Q(status=DiscoveryRun.STATUS_RUNNING, started_at__lt=cutoff)
        | Q(status=DiscoveryRun.STATUS_QUEUED, created_at__lt=cutoff)
    ).values_list('id', flat=True)

    stuck = list(stuck)
    for run_id in stuck:
        if transition_run(run_id, RunState.FAILED, error=f"Timed out after {minutes} minutes"):
            reaped += 1
            increment_runs_finished('failed')
            logger.warning(f"Reaped stuck run {run_id}")

    released = 0
    orphaned = DiscoveryRun.objects.filter(
        status__in=DiscoveryRun.TERMINAL_STATUSES,
        quota_reserved__gt=0,
        updated_at__lt=cutoff,
    ).values_list('id', flat=True)
    for run_id in list(orphaned):
        released += release_run_quota(run_id)
    for run_id in stuck:
        released += release_run_quota(run_id)

    return {'reaped': reaped, 'released': released}


# =============================================================================
# Staged vendor review
# =============================================================================

def _get_staged_for_update(staged_id) -> StagedVendor:
    staged = StagedVendor.objects.select_for_update().filter(pk=staged_id).first()
    if staged is None:
        raise NotFoundError(f"Staged vendor {staged_id} not found")
    return staged


def approve_staged_vendor(staged_id, user=None, overrides=None) -> StagedVendor:
    """
    Promote a staged vendor into the live directory.

    Only rows in 'staged' may be approved, so a second approve is rejected
    instead of creating a second live vendor.

    Raises:
        NotFoundError: Unknown staged vendor
        ConflictError: Row is not in 'staged'
    """
    with transaction.atomic():
        staged = _get_staged_for_update(staged_id)
        if staged.status != StagedVendor.STATUS_STAGED:
            raise ConflictError(f"Staged vendor is {staged.status}; only staged vendors can be approved")

        vendor = promote_staged_vendor(staged, overrides)

        staged.status = StagedVendor.STATUS_APPROVED
        staged.approved_vendor = vendor
        staged.reviewed_at = timezone.now()
        staged.reviewed_by = user if user is not None and user.is_authenticated else None
        staged.save(update_fields=['status', 'approved_vendor', 'reviewed_at', 'reviewed_by', 'updated_at'])

    increment_review('approve')
    return staged


def reject_staged_vendor(staged_id, user=None) -> StagedVendor:
    """
    Reject a staged (or duplicate) vendor.

    Raises:
        NotFoundError: Unknown staged vendor
        ConflictError: Row was already approved or rejected
    """
    with transaction.atomic():
        staged = _get_staged_for_update(staged_id)
        if staged.status not in StagedVendor.REVIEWABLE_STATUSES:
            raise ConflictError(f"Staged vendor is {staged.status}; only staged or duplicate vendors can be rejected")

        staged.status = StagedVendor.STATUS_REJECTED
        staged.reviewed_at = timezone.now()
        staged.reviewed_by = user if user is not None and user.is_authenticated else None
        staged.save(update_fields=['status', 'reviewed_at', 'reviewed_by', 'updated_at'])

    increment_review('reject')
    return staged


def bulk_review(ids, action: str, user=None) -> Dict:
    """
    Apply approve or reject to each id independently.

    Returns:
        {"approved"|"rejected": n, "failed": n, "results": [{id, success, vendorId?, error?}]}
    """
    results = []
    for staged_id in ids:
        item = {'id': str(staged_id), 'success': False}
        try:
            if action == 'approve':
                staged = approve_staged_vendor(staged_id, user=user)
                item['vendorId'] = str(staged.approved_vendor_id)
            else:
                reject_staged_vendor(staged_id, user=user)
            item['success'] = True
        except (NotFoundError, ConflictError) as e:
            item['error'] = e.message
            increment_review(action, status='error')
        except DatabaseError as e:
            logger.exception(f"Bulk {action} of staged vendor {staged_id} failed")
            item['error'] = str(e)
            increment_review(action, status='error')
        results.append(item)

    succeeded = sum(1 for r in results if r['success'])
    key = 'approved' if action == 'approve' else 'rejected'
    logger.info(f"Bulk {action}: {succeeded} of {len(results)} succeeded")
    return {key: succeeded, 'failed': len(results) - succeeded, 'results': results}


# =============================================================================
# Ad-hoc preview
# =============================================================================

def preview_discovery(area: str, specialty: str, count: int) -> Dict:
    """
    Ask the discovery service for candidates and flag directory duplicates.

    Nothing is staged or stored, and the per-pair chat history is not used.
    DiscoveryServiceError propagates to the caller.
    """
    result = VendorDiscoveryClient().discover_vendors(area, specialty, count)
    index = vendor_name_index()

    vendors = []
    for candidate in result.vendors:
        existing_id = index.get(Vendor.normalize_name(candidate.name))
        vendors.append({
            'name': candidate.name,
            'location': candidate.location,
            'phone': candidate.phone,
            'email': candidate.email,
            'website': candidate.website,
            'specialty': candidate.specialty,
            'categories': candidate.categories,
            'culturalSpecialties': candidate.cultural_specialties,
            'preferredWeddingTraditions': candidate.preferred_wedding_traditions,
            'priceRange': candidate.price_range,
            'notes': candidate.notes,
            'isDuplicate': existing_id is not None,
            'existingVendorId': str(existing_id) if existing_id is not None else None,
            'suggested': existing_id is None,
        })

    duplicates = sum(1 for v in vendors if v['isDuplicate'])
    logger.info(f"Previewed {len(vendors)} {specialty} candidates in {area} ({duplicates} already listed)")
    return {
        'area': area,
        'specialty': specialty,
        'total': len(vendors),
        'duplicates': duplicates,
        'newVendors': len(vendors) - duplicates,
        'vendors': vendors,
    }


# =============================================================================
# Chat history
# =============================================================================

def clear_chat_history(area: str, specialty: str) -> int:
    """Forget the LLM conversation for an (area, specialty)."""
    if not area or not specialty:
        raise ValidationError("Both area and specialty are required")
    deleted, _ = DiscoveryChatHistory.objects.filter(area=area, specialty=specialty).delete()
    logger.info(f"Cleared chat history for {specialty} in {area} ({deleted} record)")
    return deleted
