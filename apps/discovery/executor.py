"""
Discovery run executor.

Runs one DiscoveryRun end to end inside a Celery worker:

    reserve daily cap -> build exclusions -> ask the LLM -> dedup
    -> verify websites -> write staged rows -> save chat history

Cancellation is cooperative. The persisted run status is re-read between
external calls, and every row write locks the run and re-checks that it is
still running, so nothing is written after a cancel is committed.
"""

import logging
import time
from typing import Dict, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.core.metrics import increment_runs_finished, increment_vendors_staged, observe_run_duration
from apps.vendors.models import Vendor
from apps.vendors.services import vendor_name_index

from .llm import DiscoveredVendor, VendorDiscoveryClient
from .models import DiscoveryChatHistory, DiscoveryJob, DiscoveryRun, SchedulerConfig, StagedVendor
from .services import (
    append_run_log,
    daily_remaining,
    preflight_skip_reason,
    release_run_quota,
    reserve_daily_quota,
    skip_run,
)
from .state_machine import RunState, transition_run
from .verification import WebsiteVerifier

logger = logging.getLogger(__name__)


class RunCancelled(Exception):
    """The run left 'running' while the executor was working on it."""
    pass


def build_exclusion_names(job: DiscoveryJob, limit: Optional[int] = None):
    """
    Names the LLM should not suggest again: this job's staged vendors first,
    then the live directory, normalized and capped at `limit`.
    """
    limit = limit or settings.DISCOVERY_EXCLUDE_NAMES_MAX
    names = []
    seen = set()

    staged = StagedVendor.objects.filter(discovery_job=job).order_by('-created_at').values_list('normalized_name', flat=True)
    for name in staged.iterator():
        if name and name not in seen:
            seen.add(name)
            names.append(name)
            if len(names) >= limit:
                return names

    for name in Vendor.objects.values_list('name', flat=True).iterator():
        key = Vendor.normalize_name(name)
        if key and key not in seen:
            seen.add(key)
            names.append(key)
            if len(names) >= limit:
                break

    return names


class DiscoveryExecutor:
    """
    Executes a single discovery run.

    Usage:
        result = DiscoveryExecutor(run_id).execute()

    The discovery client and website verifier can be injected for tests.
    """

    def __init__(self, run_id, discovery_client=None, verifier=None):
        self.run_id = run_id
        self.discovery_client = discovery_client or VendorDiscoveryClient()
        self._verifier = verifier
        self._owns_verifier = verifier is None
        self.verify_limit = settings.DISCOVERY_VERIFY_MAX_PER_RUN
        self.verified_count = 0

    @property
    def verifier(self) -> WebsiteVerifier:
        if self._verifier is None:
            self._verifier = WebsiteVerifier()
        return self._verifier

    def log(self, message: str, level: str = 'info', data: Optional[Dict] = None):
        getattr(logger, level)(f"Run {self.run_id}: {message}")
        append_run_log(self.run_id, message, level=level, data=data)

    def execute(self) -> Dict:
        """
        Execute the run.

        Returns:
            dict with run_id, status and executed (False when the run was no
            longer queued)
        """
        if not transition_run(self.run_id, RunState.RUNNING, from_states={RunState.QUEUED}, started_at=timezone.now()):
            status = self._current_status()
            logger.info(f"Run {self.run_id} not started: status is {status}")
            return {'run_id': str(self.run_id), 'status': status, 'executed': False}

        started = time.monotonic()
        try:
            status = self._execute()
        except RunCancelled:
            status = self._current_status()
            self.log(f"Stopped: run is {status}", level='warning')
        except Exception as e:
            logger.exception(f"Run {self.run_id} failed")
            append_run_log(self.run_id, f"Run failed: {e}", level='error')
            if transition_run(self.run_id, RunState.FAILED, from_states={RunState.RUNNING}, error=str(e)):
                increment_runs_finished('failed')
            status = self._current_status()
        finally:
            release_run_quota(self.run_id)
            observe_run_duration(time.monotonic() - started)
            if self._owns_verifier and self._verifier is not None:
                self._verifier.close()

        return {'run_id': str(self.run_id), 'status': status, 'executed': True}

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _execute(self) -> str:
        run = DiscoveryRun.objects.select_related('job').get(pk=self.run_id)
        job = run.job
        config = SchedulerConfig.get_active()
        self.log('Run started', data={'jobId': str(job.id), 'area': job.area, 'specialty': job.specialty})

        reason = preflight_skip_reason(job, config, run.run_date)
        if reason:
            skip_run(run.id, reason)
            return self._current_status()

        remaining = job.remaining_capacity
        requested = min(
            job.count_per_run,
            remaining if remaining is not None else job.count_per_run,
            daily_remaining(run.run_date, config.daily_cap),
        )
        granted = reserve_daily_quota(run.id, run.run_date, requested, config.daily_cap)
        if granted == 0:
            skip_run(run.id, f"Daily cap of {config.daily_cap} reached for {run.run_date}")
            return self._current_status()
        self.log(f"Requesting {granted} vendors", data={'requested': requested, 'granted': granted})

        exclusions = build_exclusion_names(job)
        chat = DiscoveryChatHistory.objects.filter(area=job.area, specialty=job.specialty).first()
        history = chat.history if chat else []

        self._check_cancelled()
        result = self.discovery_client.discover_vendors(
            job.area, job.specialty, granted, exclude_names=exclusions, history=history,
        )
        DiscoveryRun.objects.filter(pk=run.id).update(vendors_discovered=len(result.vendors))
        candidates = result.vendors[:granted]
        self.log(
            f"Discovery service returned {len(result.vendors)} vendors",
            data={'used': len(candidates), 'excluded': len(exclusions)},
        )

        staged_count = self._stage_candidates(run, job, candidates)
        self._save_chat_history(job, result.history, staged_count)

        if transition_run(run.id, RunState.COMPLETED, from_states={RunState.RUNNING}):
            DiscoveryJob.objects.filter(pk=job.pk).update(last_run_at=timezone.now())
            increment_runs_finished('completed')
            self.log(f"Run completed: {staged_count} rows written")
        return self._current_status()

    def _stage_candidates(self, run: DiscoveryRun, job: DiscoveryJob, candidates) -> int:
        live_index = vendor_name_index()
        batch_seen = set()
        written = 0

        for candidate in candidates:
            self._check_cancelled()
            key = Vendor.normalize_name(candidate.name)

            if key in batch_seen or StagedVendor.objects.filter(normalized_name=key).exists():
                batch_seen.add(key)
                DiscoveryRun.objects.filter(pk=run.id).update(duplicates_found=F('duplicates_found') + 1)
                logger.debug(f"Run {run.id}: skipping already staged {candidate.name!r}")
                continue
            batch_seen.add(key)

            website_status = self._verify_website(candidate.website)
            self._check_cancelled()

            if not self._write_row(run, job, candidate, live_index.get(key), website_status):
                self.log('Job reached max total, stopping', level='warning')
                break
            written += 1

        return written

    def _write_row(self, run, job, candidate: DiscoveredVendor, duplicate_of_id, website_status) -> bool:
        """
        Write one staged row together with the job and run counters.

        Returns:
            False when the job has no capacity left

        Raises:
            RunCancelled: The run is no longer running
        """
        status = StagedVendor.STATUS_DUPLICATE if duplicate_of_id else StagedVendor.STATUS_STAGED

        with transaction.atomic():
            current = DiscoveryRun.objects.select_for_update().only('id', 'status').get(pk=run.id)
            if current.status != DiscoveryRun.STATUS_RUNNING:
                raise RunCancelled()

            claimed = DiscoveryJob.objects.filter(pk=job.pk).filter(
                Q(max_total__isnull=True) | Q(total_discovered__lt=F('max_total'))
            ).update(total_discovered=F('total_discovered') + 1, updated_at=timezone.now())
            if not claimed:
                return False

            StagedVendor.objects.create(
                discovery_job=job,
                discovery_run=run,
                name=candidate.name,
                location=candidate.location,
                phone=candidate.phone,
                email=candidate.email,
                website=candidate.website,
                specialty=candidate.specialty,
                categories=candidate.categories,
                cultural_specialties=candidate.cultural_specialties,
                preferred_wedding_traditions=candidate.preferred_wedding_traditions,
                price_range=candidate.price_range,
                notes=candidate.notes,
                status=status,
                website_verified=website_status,
                duplicate_of_vendor_id=duplicate_of_id,
            )

            DiscoveryRun.objects.filter(pk=run.id).update(
                vendors_staged=F('vendors_staged') + 1,
                duplicates_found=F('duplicates_found') + (1 if duplicate_of_id else 0),
                quota_reserved=F('quota_reserved') - 1,
            )

        increment_vendors_staged(status)
        return True

    def _verify_website(self, url: str) -> str:
        if not (url or '').strip():
            return StagedVendor.WEBSITE_NO_URL
        if self.verified_count >= self.verify_limit:
            return StagedVendor.WEBSITE_PENDING
        self.verified_count += 1
        return self.verifier.verify(url)

    def _save_chat_history(self, job: DiscoveryJob, history, staged_count: int):
        try:
            chat, _ = DiscoveryChatHistory.objects.get_or_create(area=job.area, specialty=job.specialty)
            chat.history = history
            chat.total_vendors_found = chat.total_vendors_found + staged_count
            chat.save(update_fields=['history', 'total_vendors_found', 'updated_at'])
        except DatabaseError as e:
            self.log(f"Failed to save chat history: {e}", level='warning')

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _current_status(self) -> Optional[str]:
        return DiscoveryRun.objects.filter(pk=self.run_id).values_list('status', flat=True).first()

    def _check_cancelled(self):
        if self._current_status() != DiscoveryRun.STATUS_RUNNING:
            raise RunCancelled()
