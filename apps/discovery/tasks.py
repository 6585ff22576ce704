"""
Celery tasks for vendor discovery.

execute_discovery_run      - run one DiscoveryRun (queued by services.start_run)
run_scheduled_discovery    - beat tick; starts the daily sweep at the run hour
reap_stuck_runs            - beat; fails runs stuck queued/running too long
reverify_pending_websites  - beat; verifies websites left pending by the per-run cap
"""

import logging

from celery import shared_task
from django.conf import settings
from django.db.models import F

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True)
def execute_discovery_run(self, run_id):
    """
    Execute a discovery run.

    Args:
        run_id: UUID of the DiscoveryRun

    Returns:
        dict with run_id, status and executed
    """
    from .executor import DiscoveryExecutor

    logger.info(f"Starting execute_discovery_run task {self.request.id} for run {run_id}")
    result = DiscoveryExecutor(run_id).execute()
    logger.info(f"Run {run_id} finished with status {result['status']}")
    return result


@shared_task
def run_scheduled_discovery():
    """
    Start the daily sweep when the scheduler's local hour is reached.

    Ticks every 15 minutes; the sweep runs at most once per local date.
    Jobs are started oldest last run first and the sweep stops once the
    day's remaining cap has been handed out.

    Returns:
        dict with summary
    """
    from apps.core.exceptions import ConflictError, NotFoundError
    from .models import DiscoveryJob, DiscoveryRun, SchedulerConfig
    from .services import daily_remaining, start_run

    config = SchedulerConfig.get_active()
    if not config.enabled:
        return {'started': 0, 'reason': 'disabled'}

    now = config.local_now()
    today = now.date()
    if now.hour != config.run_hour:
        return {'started': 0, 'reason': 'not_run_hour'}
    if config.last_scheduled_date == today:
        return {'started': 0, 'reason': 'already_ran'}

    # Claim the day so overlapping ticks cannot both sweep
    claimed = SchedulerConfig.objects.filter(pk=config.pk).exclude(
        last_scheduled_date=today
    ).update(last_scheduled_date=today)
    if not claimed:
        return {'started': 0, 'reason': 'already_ran'}

    budget = daily_remaining(today, config.daily_cap)
    logger.info(f"Scheduled discovery sweep for {today}: {budget} of {config.daily_cap} available")

    jobs = DiscoveryJob.objects.filter(is_active=True, paused=False, retired=False).order_by(
        F('last_run_at').asc(nulls_first=True), 'created_at'
    )

    started = 0
    skipped = 0
    conflicts = 0
    for job in jobs:
        if budget <= 0:
            logger.info("Daily cap handed out, stopping sweep")
            break
        try:
            run = start_run(job.id, triggered_by=DiscoveryRun.TRIGGER_SCHEDULED)
        except ConflictError:
            conflicts += 1
            continue
        except NotFoundError:
            continue

        if run.status == DiscoveryRun.STATUS_SKIPPED:
            skipped += 1
            continue

        started += 1
        remaining = job.remaining_capacity
        budget -= min(job.count_per_run, remaining if remaining is not None else job.count_per_run)

    result = {
        'started': started,
        'skipped': skipped,
        'conflicts': conflicts,
        'run_date': today.isoformat(),
    }
    logger.info(f"Scheduled discovery sweep: {result}")
    return result


@shared_task
def reap_stuck_runs():
    """Fail runs stuck past DISCOVERY_RUN_TIMEOUT_MINUTES and free their quota."""
    from .services import reap_stuck_runs as reap

    result = reap()
    if result['reaped'] or result['released']:
        logger.warning(f"Reaper: {result}")
    return result


@shared_task
def reverify_pending_websites(limit=None):
    """
    Verify websites of reviewable staged vendors still marked pending.

    Returns:
        dict with counts per verification result
    """
    from .models import StagedVendor
    from .verification import WebsiteVerifier

    limit = limit or settings.DISCOVERY_VERIFY_MAX_PER_RUN
    pending = list(
        StagedVendor.objects.filter(
            website_verified=StagedVendor.WEBSITE_PENDING,
            status__in=StagedVendor.REVIEWABLE_STATUSES,
        ).order_by('created_at')[:limit]
    )

    counts = {}
    with WebsiteVerifier() as verifier:
        for staged in pending:
            result = verifier.verify(staged.website)
            StagedVendor.objects.filter(pk=staged.pk).update(website_verified=result)
            counts[result] = counts.get(result, 0) + 1

    if pending:
        logger.info(f"Re-verified {len(pending)} pending websites: {counts}")
    return counts
