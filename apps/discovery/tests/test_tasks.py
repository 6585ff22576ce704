"""
Tests for discovery Celery tasks.

Tests cover:
- Scheduled sweep: run hour, disabled, once per local date
- Sweep job selection and ordering, stopping once the cap is handed out
- Reaper task
- Re-verification of pending websites
"""

from datetime import datetime, timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest
from django.utils import timezone

from apps.discovery.models import DiscoveryRun, SchedulerConfig, StagedVendor
from apps.discovery.tasks import reap_stuck_runs, reverify_pending_websites, run_scheduled_discovery

from .conftest import FakeVerifier

LA = ZoneInfo('America/Los_Angeles')


def at_local(hour, day=15):
    return datetime(2026, 3, day, hour, 5, tzinfo=LA)


# ============================================================================
# Scheduled sweep
# ============================================================================

@pytest.mark.django_db
class TestScheduledDiscovery:

    def test_outside_run_hour_does_nothing(self, scheduler_config, job):
        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(9)):
            result = run_scheduled_discovery()

        assert result == {'started': 0, 'reason': 'not_run_hour'}
        assert DiscoveryRun.objects.count() == 0

    def test_disabled_does_nothing(self, scheduler_config, job):
        scheduler_config.enabled = False
        scheduler_config.save()

        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2)):
            result = run_scheduled_discovery()

        assert result['reason'] == 'disabled'
        assert DiscoveryRun.objects.count() == 0

    def test_sweep_runs_once_per_day(self, scheduler_config, job, fake_discovery):
        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2)):
            first = run_scheduled_discovery()
            second = run_scheduled_discovery()

        assert first['started'] == 1
        assert first['run_date'] == '2026-03-15'
        assert second == {'started': 0, 'reason': 'already_ran'}

        scheduler_config.refresh_from_db()
        assert scheduler_config.last_scheduled_date.isoformat() == '2026-03-15'

        run = DiscoveryRun.objects.get()
        assert run.triggered_by == DiscoveryRun.TRIGGER_SCHEDULED
        assert run.run_date.isoformat() == '2026-03-15'
        assert run.status == DiscoveryRun.STATUS_COMPLETED

    def test_sweep_runs_again_next_day(self, scheduler_config, job, fake_discovery):
        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2, day=15)):
            run_scheduled_discovery()
        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2, day=16)):
            result = run_scheduled_discovery()

        assert result['started'] == 1
        assert DiscoveryRun.objects.count() == 2

    def test_paused_and_retired_jobs_excluded(self, scheduler_config, make_job, fake_discovery):
        make_job(area='Seattle')
        make_job(area='Portland', paused=True)
        make_job(area='Tacoma', retired=True, is_active=False)
        make_job(area='Spokane', is_active=False)

        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2)):
            result = run_scheduled_discovery()

        assert result['started'] == 1
        assert list(DiscoveryRun.objects.values_list('job__area', flat=True)) == ['Seattle']

    def test_sweep_stops_when_cap_handed_out(self, scheduler_config, make_job, fake_discovery):
        scheduler_config.daily_cap = 10
        scheduler_config.save()
        now = timezone.now()
        never_run = make_job(area='Seattle', count_per_run=5, max_total=None)
        older = make_job(area='Portland', count_per_run=5, max_total=None, last_run_at=now - timedelta(days=3))
        recent = make_job(area='Tacoma', count_per_run=5, max_total=None, last_run_at=now - timedelta(days=1))

        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2)):
            result = run_scheduled_discovery()

        assert result['started'] == 2
        assert DiscoveryRun.objects.filter(job=never_run).exists()
        assert DiscoveryRun.objects.filter(job=older).exists()
        assert not DiscoveryRun.objects.filter(job=recent).exists()
        assert StagedVendor.objects.count() == 10

    def test_active_run_counts_as_conflict(self, scheduler_config, job, make_run):
        make_run(job, status=DiscoveryRun.STATUS_RUNNING)

        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2)):
            result = run_scheduled_discovery()

        assert result['conflicts'] == 1
        assert result['started'] == 0

    def test_job_past_max_total_counted_as_skipped(self, scheduler_config, make_job):
        job = make_job(max_total=10, total_discovered=10)

        with patch.object(SchedulerConfig, 'local_now', return_value=at_local(2)):
            result = run_scheduled_discovery()

        assert result['skipped'] == 1
        job.refresh_from_db()
        assert job.is_active is False


# ============================================================================
# Maintenance tasks
# ============================================================================

@pytest.mark.django_db
class TestMaintenanceTasks:

    def test_reaper_task_fails_stuck_runs(self, job, make_run, settings):
        run = make_run(job, status=DiscoveryRun.STATUS_RUNNING)
        stale = timezone.now() - timedelta(minutes=settings.DISCOVERY_RUN_TIMEOUT_MINUTES + 5)
        DiscoveryRun.objects.filter(pk=run.pk).update(started_at=stale)

        result = reap_stuck_runs()

        run.refresh_from_db()
        assert result['reaped'] == 1
        assert run.status == DiscoveryRun.STATUS_FAILED
        assert 'Timed out' in run.error

    def test_reverify_pending_websites(self, make_staged):
        pending = make_staged('Pending Studio', website='https://pending.example.com')
        make_staged('Checked Studio', website='https://ok.example.com', website_verified=StagedVendor.WEBSITE_VALID)
        make_staged(
            'Rejected Studio',
            website='https://rejected.example.com',
            status=StagedVendor.STATUS_REJECTED,
        )
        verifier = FakeVerifier(result=StagedVendor.WEBSITE_INVALID)

        with patch('apps.discovery.verification.WebsiteVerifier', return_value=verifier):
            result = reverify_pending_websites()

        assert result == {StagedVendor.WEBSITE_INVALID: 1}
        assert verifier.urls == ['https://pending.example.com']
        pending.refresh_from_db()
        assert pending.website_verified == StagedVendor.WEBSITE_INVALID
