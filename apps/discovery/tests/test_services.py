"""
Tests for the discovery service layer.

Tests cover:
- Daily quota reservation and release
- Bulk job creation (cartesian product, skip_existing, input collapsing)
- Job delete (blocked while a run is active, staged rows kept) and retire
- start_run conflict detection and pre-flight skips
- cancel_run from queued and from terminal states
- Approve / reject guards and bulk review
- Stuck-run reaper
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DataError
from django.utils import timezone

from apps.core.exceptions import ConflictError, NotFoundError, ValidationError
from apps.discovery import services
from apps.discovery.models import (
    DailyDiscoveryQuota,
    DiscoveryChatHistory,
    DiscoveryJob,
    DiscoveryRun,
    StagedVendor,
)
from apps.vendors.models import Vendor


# ============================================================================
# Daily quota
# ============================================================================

@pytest.mark.django_db
class TestDailyQuota:

    def test_reserve_grants_up_to_cap(self, job, make_run):
        run_a = make_run(job, status=DiscoveryRun.STATUS_RUNNING)
        today = run_a.run_date

        assert services.reserve_daily_quota(run_a.id, today, 4, daily_cap=5) == 4
        assert services.daily_remaining(today, 5) == 1

        run_a.refresh_from_db()
        assert run_a.quota_reserved == 4

    def test_reserve_partial_grant_when_cap_nearly_used(self, make_job, make_run):
        run_a = make_run(make_job(area='Seattle'), status=DiscoveryRun.STATUS_RUNNING)
        run_b = make_run(make_job(area='Portland'), status=DiscoveryRun.STATUS_RUNNING)
        today = run_a.run_date

        services.reserve_daily_quota(run_a.id, today, 4, daily_cap=5)

        assert services.reserve_daily_quota(run_b.id, today, 4, daily_cap=5) == 1
        assert services.reserve_daily_quota(run_b.id, today, 4, daily_cap=5) == 0
        assert DailyDiscoveryQuota.objects.get(run_date=today).reserved == 5

    def test_release_returns_unused_units(self, job, make_run):
        run = make_run(job, status=DiscoveryRun.STATUS_RUNNING)
        services.reserve_daily_quota(run.id, run.run_date, 5, daily_cap=10)

        assert services.release_run_quota(run.id) == 5
        assert services.release_run_quota(run.id) == 0
        assert DailyDiscoveryQuota.objects.get(run_date=run.run_date).reserved == 0


# ============================================================================
# Jobs
# ============================================================================

@pytest.mark.django_db
class TestBulkCreateJobs:

    def test_creates_cartesian_product(self):
        outcome = services.bulk_create_jobs(
            areas=['Seattle', 'Portland'],
            specialties=['photographer', 'florist'],
            count_per_run=15,
            max_total=60,
        )

        assert outcome.summary == {'total': 4, 'created': 4, 'skipped': 0, 'errors': 0}
        job = DiscoveryJob.objects.get(area='Portland', specialty='florist')
        assert job.count_per_run == 15
        assert job.max_total == 60
        assert job.is_active and not job.paused

    def test_skip_existing_never_duplicates_pairs(self, make_job):
        existing = make_job(area='Seattle', specialty='photographer')

        outcome = services.bulk_create_jobs(
            areas=['Seattle', 'seattle ', 'Tacoma'],
            specialties=['photographer'],
        )

        assert outcome.summary == {'total': 2, 'created': 1, 'skipped': 1, 'errors': 0}
        skipped = [r for r in outcome.results if r['status'] == 'skipped_existing']
        assert skipped[0]['id'] == str(existing.id)
        assert DiscoveryJob.objects.filter(area__iexact='seattle', specialty='photographer').count() == 1

    def test_without_skip_existing_creates_again(self, make_job):
        make_job(area='Seattle', specialty='photographer')

        outcome = services.bulk_create_jobs(['Seattle'], ['photographer'], skip_existing=False)

        assert outcome.summary['created'] == 1
        assert DiscoveryJob.objects.filter(area='Seattle', specialty='photographer').count() == 2

    def test_blank_entries_ignored(self):
        outcome = services.bulk_create_jobs(['Seattle', '  '], ['', 'dj'])

        assert outcome.summary['total'] == 1


@pytest.mark.django_db
class TestDeleteAndRetire:

    def test_delete_blocked_while_run_active(self, job, make_run):
        make_run(job, status=DiscoveryRun.STATUS_RUNNING)

        with pytest.raises(ConflictError):
            services.delete_job(job)

        assert DiscoveryJob.objects.filter(pk=job.pk).exists()

    def test_delete_cascades_runs_and_keeps_staged(self, job, make_run, make_staged):
        run = make_run(job, status=DiscoveryRun.STATUS_COMPLETED)
        staged = make_staged('Lens & Light', discovery_job=job, discovery_run=run)

        services.delete_job(job)

        assert not DiscoveryRun.objects.filter(pk=run.pk).exists()
        staged.refresh_from_db()
        assert staged.discovery_job is None
        assert staged.discovery_run is None

    def test_retire(self, job):
        services.retire_job(job)

        job.refresh_from_db()
        assert job.retired is True
        assert job.is_active is False
        assert job.paused is True
        assert job.skip_reason() == 'Job is retired'


# ============================================================================
# Runs
# ============================================================================

@pytest.mark.django_db
class TestStartRun:

    def test_creates_queued_run(self, job, scheduler_config):
        run = services.start_run(job.id, dispatch=False)

        assert run.status == DiscoveryRun.STATUS_QUEUED
        assert run.run_date == scheduler_config.local_date()
        assert run.logs == []

    def test_unknown_job(self, db):
        with pytest.raises(NotFoundError):
            services.start_run(uuid.uuid4(), dispatch=False)

    def test_second_run_conflicts(self, job, scheduler_config):
        services.start_run(job.id, dispatch=False)

        with pytest.raises(ConflictError):
            services.start_run(job.id, dispatch=False)

        assert job.runs.count() == 1

    def test_paused_job_skips(self, make_job, scheduler_config):
        job = make_job(paused=True)

        run = services.start_run(job.id)

        assert run.status == DiscoveryRun.STATUS_SKIPPED
        assert run.error == 'Job is paused'
        assert run.finished_at is not None

    def test_past_end_date_skips_and_deactivates(self, make_job, scheduler_config):
        job = make_job(end_date=timezone.now() - timedelta(days=1))

        run = services.start_run(job.id)

        assert run.status == DiscoveryRun.STATUS_SKIPPED
        job.refresh_from_db()
        assert job.is_active is False

    def test_max_total_reached_skips_and_deactivates(self, make_job, scheduler_config):
        job = make_job(max_total=20, total_discovered=20)

        run = services.start_run(job.id)

        assert run.status == DiscoveryRun.STATUS_SKIPPED
        assert run.error == 'Job reached max total'
        job.refresh_from_db()
        assert job.is_active is False

    def test_daily_cap_exhausted_skips(self, job, scheduler_config):
        DailyDiscoveryQuota.objects.create(run_date=scheduler_config.local_date(), reserved=50)

        run = services.start_run(job.id)

        assert run.status == DiscoveryRun.STATUS_SKIPPED
        assert 'Daily cap' in run.error
        job.refresh_from_db()
        assert job.is_active is True

    def test_dispatch_failure_fails_run(self, job, scheduler_config):
        from apps.discovery.tasks import execute_discovery_run

        with patch.object(execute_discovery_run, 'apply_async', side_effect=OSError('broker down')):
            run = services.start_run(job.id)

        assert run.status == DiscoveryRun.STATUS_FAILED
        assert 'broker down' in run.error

    def test_dispatch_records_task_id(self, job, scheduler_config, fake_discovery):
        run = services.start_run(job.id)

        assert run.status == DiscoveryRun.STATUS_QUEUED
        run.refresh_from_db()
        assert run.task_id
        assert run.status == DiscoveryRun.STATUS_COMPLETED


@pytest.mark.django_db
class TestCancelRun:

    def test_cancel_queued(self, job, make_run, operator_admin):
        run = make_run(job)

        cancelled = services.cancel_run(run.id, user=operator_admin)

        assert cancelled.status == DiscoveryRun.STATUS_CANCELLED
        assert cancelled.error == 'Cancelled by ops-admin'
        assert cancelled.finished_at is not None

    @pytest.mark.parametrize('status', ['completed', 'failed', 'cancelled', 'skipped'])
    def test_cancel_terminal_conflicts(self, job, make_run, status):
        run = make_run(job, status=status)

        with pytest.raises(ConflictError):
            services.cancel_run(run.id)

        run.refresh_from_db()
        assert run.status == status

    def test_cancel_unknown(self, db):
        with pytest.raises(NotFoundError):
            services.cancel_run(uuid.uuid4())


@pytest.mark.django_db
class TestReaper:

    def test_fails_stuck_running_and_queued_runs(self, make_job, make_run, settings):
        settings.DISCOVERY_RUN_TIMEOUT_MINUTES = 30
        old = timezone.now() - timedelta(minutes=31)
        stuck_running = make_run(make_job(area='Seattle'), status=DiscoveryRun.STATUS_RUNNING, started_at=old)
        stuck_queued = make_run(make_job(area='Portland'), created_at=old)
        fresh = make_run(make_job(area='Tacoma'), status=DiscoveryRun.STATUS_RUNNING, started_at=timezone.now())

        result = services.reap_stuck_runs()

        assert result['reaped'] == 2
        for run in (stuck_running, stuck_queued):
            run.refresh_from_db()
            assert run.status == DiscoveryRun.STATUS_FAILED
            assert run.error == 'Timed out after 30 minutes'
        fresh.refresh_from_db()
        assert fresh.status == DiscoveryRun.STATUS_RUNNING

    def test_releases_quota_of_reaped_run(self, job, make_run):
        old = timezone.now() - timedelta(hours=2)
        run = make_run(job, status=DiscoveryRun.STATUS_RUNNING, started_at=old, quota_reserved=7)
        DailyDiscoveryQuota.objects.create(run_date=run.run_date, reserved=7)

        result = services.reap_stuck_runs()

        assert result['released'] == 7
        assert DailyDiscoveryQuota.objects.get(run_date=run.run_date).reserved == 0


# ============================================================================
# Staged vendor review
# ============================================================================

@pytest.mark.django_db
class TestReview:

    def test_approve_promotes_to_live_vendor(self, make_staged, operator_admin):
        staged = make_staged(
            'Lens & Light',
            location='Seattle, WA',
            website='https://lensandlight.example.com',
            categories=['photographer'],
            notes='Documentary style',
        )

        result = services.approve_staged_vendor(staged.id, user=operator_admin)

        assert result.status == StagedVendor.STATUS_APPROVED
        assert result.reviewed_by == operator_admin
        vendor = result.approved_vendor
        assert vendor.name == 'Lens & Light'
        assert vendor.slug.startswith('lens-light-')
        assert vendor.is_ghost_profile and vendor.is_published
        assert vendor.approval_status == 'approved'
        assert vendor.description == 'Documentary style'

    def test_approve_with_overrides(self, make_staged):
        staged = make_staged('Lens and Light LLC', phone='555-0100')

        result = services.approve_staged_vendor(staged.id, overrides={'name': 'Lens & Light', 'city': 'Seattle'})

        assert result.approved_vendor.name == 'Lens & Light'
        assert result.approved_vendor.city == 'Seattle'
        assert result.approved_vendor.phone == '555-0100'

    def test_second_approve_conflicts(self, make_staged):
        staged = make_staged('Lens & Light')
        services.approve_staged_vendor(staged.id)

        with pytest.raises(ConflictError):
            services.approve_staged_vendor(staged.id)

        assert Vendor.objects.filter(name='Lens & Light').count() == 1

    def test_duplicate_rows_cannot_be_approved(self, make_staged):
        staged = make_staged('Golden Hour', status=StagedVendor.STATUS_DUPLICATE)

        with pytest.raises(ConflictError):
            services.approve_staged_vendor(staged.id)

    def test_reject_duplicate(self, make_staged):
        staged = make_staged('Golden Hour', status=StagedVendor.STATUS_DUPLICATE)

        result = services.reject_staged_vendor(staged.id)

        assert result.status == StagedVendor.STATUS_REJECTED
        assert result.reviewed_at is not None

    def test_reject_approved_conflicts(self, make_staged):
        staged = make_staged('Lens & Light', status=StagedVendor.STATUS_APPROVED)

        with pytest.raises(ConflictError):
            services.reject_staged_vendor(staged.id)

    def test_bulk_review_reports_each_item(self, make_staged):
        good = make_staged('Lens & Light')
        done = make_staged('Golden Hour', status=StagedVendor.STATUS_APPROVED)
        missing = uuid.uuid4()

        result = services.bulk_review([good.id, done.id, missing], 'approve')

        assert result['approved'] == 1
        assert result['failed'] == 2
        by_id = {r['id']: r for r in result['results']}
        assert by_id[str(good.id)]['success'] is True
        assert by_id[str(good.id)]['vendorId']
        assert 'approved' in by_id[str(done.id)]['error']
        assert 'not found' in by_id[str(missing)]['error']

    def test_bulk_review_survives_database_error(self, make_staged):
        first, second, third = (make_staged(f'Studio {i}') for i in range(3))
        real_promote = services.promote_staged_vendor
        calls = []

        def promote(staged, overrides=None):
            calls.append(staged.id)
            if len(calls) == 2:
                raise DataError('value too long for type character varying(100)')
            return real_promote(staged, overrides)

        with patch('apps.discovery.services.promote_staged_vendor', side_effect=promote):
            result = services.bulk_review([first.id, second.id, third.id], 'approve')

        assert result['approved'] == 2
        assert result['failed'] == 1
        by_id = {r['id']: r for r in result['results']}
        assert by_id[str(second.id)]['success'] is False
        assert 'value too long' in by_id[str(second.id)]['error']
        second.refresh_from_db()
        assert second.status == StagedVendor.STATUS_STAGED
        assert Vendor.objects.count() == 2

    def test_bulk_reject(self, make_staged):
        ids = [make_staged(f'Studio {i}').id for i in range(3)]

        result = services.bulk_review(ids, 'reject')

        assert result == {'rejected': 3, 'failed': 0, 'results': result['results']}
        assert StagedVendor.objects.filter(status=StagedVendor.STATUS_REJECTED).count() == 3


@pytest.mark.django_db
class TestChatHistory:

    def test_clear(self):
        DiscoveryChatHistory.objects.create(area='Seattle', specialty='photographer', history=[])

        assert services.clear_chat_history('Seattle', 'photographer') == 1
        assert services.clear_chat_history('Seattle', 'photographer') == 0

    def test_requires_both_keys(self):
        with pytest.raises(ValidationError):
            services.clear_chat_history('Seattle', '')


@pytest.mark.django_db
class TestRunLog:

    def test_log_is_capped(self, job, make_run, settings):
        settings.DISCOVERY_RUN_LOG_MAX_ENTRIES = 3
        run = make_run(job)

        for i in range(5):
            services.append_run_log(run.id, f'step {i}', data={'i': i})

        run.refresh_from_db()
        assert [entry['message'] for entry in run.logs] == ['step 2', 'step 3', 'step 4']
        assert run.logs[0]['level'] == 'info'
