"""
Vendor discovery models.

DiscoveryJob      - what to search for (area x specialty) and how much
DiscoveryRun      - one execution attempt of a job
StagedVendor      - a candidate awaiting review
SchedulerConfig   - singleton controlling the daily sweep and daily cap
DailyDiscoveryQuota - per-day reservation counter backing the daily cap
DiscoveryChatHistory - LLM conversation per (area, specialty)
"""

from datetime import timedelta
from zoneinfo import ZoneInfo

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.models import BaseModel


class DiscoveryJob(BaseModel):
    """
    A recurring search for vendors of one specialty in one metro area.
    """

    MAX_COUNT_PER_RUN = 50

    area = models.CharField(
        max_length=200,
        db_index=True,
        verbose_name='Area',
        help_text='Metro area to search, e.g. "Seattle"'
    )

    specialty = models.CharField(
        max_length=200,
        db_index=True,
        verbose_name='Specialty',
        help_text='Vendor specialty to search for, e.g. "photographer"'
    )

    count_per_run = models.PositiveSmallIntegerField(
        default=20,
        validators=[MinValueValidator(1), MaxValueValidator(MAX_COUNT_PER_RUN)],
        verbose_name='Count Per Run',
        help_text='Vendors requested from the discovery service per run'
    )

    max_total = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        verbose_name='Max Total',
        help_text='Lifetime cap on vendors staged by this job (empty = unbounded)'
    )

    total_discovered = models.PositiveIntegerField(
        default=0,
        verbose_name='Total Discovered',
        help_text='Vendors staged by this job so far'
    )

    paused = models.BooleanField(default=False, verbose_name='Paused')
    is_active = models.BooleanField(default=True, db_index=True, verbose_name='Active')

    retired = models.BooleanField(
        default=False,
        verbose_name='Retired',
        help_text='Retired jobs are kept for history but never run again'
    )

    end_date = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name='End Date',
        help_text='Runs starting after this date are skipped and the job deactivated'
    )

    notes = models.TextField(blank=True, verbose_name='Notes')

    last_run_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name='Last Run At',
        help_text='When a run of this job last completed'
    )

    class Meta:
        db_table = 'discovery_jobs'
        ordering = ['-created_at']
        verbose_name = 'Discovery Job'
        verbose_name_plural = 'Discovery Jobs'
        indexes = [
            models.Index(fields=['area', 'specialty'], name='discovery_job_area_spec_idx'),
        ]

    def __str__(self):
        return f"{self.specialty} in {self.area}"

    @property
    def remaining_capacity(self):
        """Vendors this job may still stage; None when unbounded."""
        if self.max_total is None:
            return None
        return max(self.max_total - self.total_discovered, 0)

    @property
    def is_past_end_date(self):
        return self.end_date is not None and timezone.now() > self.end_date

    def skip_reason(self):
        """
        Why a run of this job must not execute right now, or None.

        Only checks the job itself; the daily cap is checked separately.
        """
        if self.retired:
            return 'Job is retired'
        if not self.is_active:
            return 'Job is inactive'
        if self.paused:
            return 'Job is paused'
        if self.is_past_end_date:
            return 'Job is past its end date'
        if self.remaining_capacity == 0:
            return 'Job reached max total'
        return None

    def has_active_run(self):
        return self.runs.filter(status__in=DiscoveryRun.ACTIVE_STATUSES).exists()


class DiscoveryRun(BaseModel):
    """
    One execution attempt of a DiscoveryJob.

    Status only moves along the edges in apps.discovery.state_machine.
    """

    STATUS_QUEUED = 'queued'
    STATUS_RUNNING = 'running'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_SKIPPED = 'skipped'

    STATUS_CHOICES = [
        (STATUS_QUEUED, 'Queued'),
        (STATUS_RUNNING, 'Running'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_SKIPPED, 'Skipped'),
    ]

    ACTIVE_STATUSES = (STATUS_QUEUED, STATUS_RUNNING)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED, STATUS_SKIPPED)

    TRIGGER_MANUAL = 'manual'
    TRIGGER_SCHEDULED = 'scheduled'

    TRIGGER_CHOICES = [
        (TRIGGER_MANUAL, 'Manual'),
        (TRIGGER_SCHEDULED, 'Scheduled'),
    ]

    job = models.ForeignKey(
        DiscoveryJob,
        on_delete=models.CASCADE,
        related_name='runs',
        verbose_name='Job'
    )

    run_date = models.DateField(
        db_index=True,
        verbose_name='Run Date',
        help_text='Calendar day in the scheduler timezone (daily cap bucket)'
    )

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_QUEUED,
        db_index=True,
        verbose_name='Status'
    )

    triggered_by = models.CharField(
        max_length=20,
        choices=TRIGGER_CHOICES,
        default=TRIGGER_MANUAL,
        verbose_name='Triggered By'
    )

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='discovery_runs',
        verbose_name='Requested By'
    )

    vendors_discovered = models.PositiveIntegerField(
        default=0,
        verbose_name='Vendors Discovered',
        help_text='Candidates returned by the discovery service'
    )

    vendors_staged = models.PositiveIntegerField(
        default=0,
        verbose_name='Vendors Staged',
        help_text='Staged vendor rows written by this run'
    )

    duplicates_found = models.PositiveIntegerField(
        default=0,
        verbose_name='Duplicates Found'
    )

    quota_reserved = models.PositiveIntegerField(
        default=0,
        verbose_name='Quota Reserved',
        help_text='Daily cap units held by this run and not yet settled'
    )

    started_at = models.DateTimeField(null=True, blank=True, verbose_name='Started At')
    finished_at = models.DateTimeField(null=True, blank=True, verbose_name='Finished At')

    error = models.TextField(
        blank=True,
        verbose_name='Error',
        help_text='Failure message, or the reason a run was skipped or cancelled'
    )

    task_id = models.CharField(
        max_length=255,
        blank=True,
        verbose_name='Task ID',
        help_text='Celery task executing this run'
    )

    logs = models.JSONField(
        default=list,
        blank=True,
        verbose_name='Logs',
        help_text='Step log entries {timestamp, level, message, data}'
    )

    class Meta:
        db_table = 'discovery_runs'
        ordering = ['-created_at']
        verbose_name = 'Discovery Run'
        verbose_name_plural = 'Discovery Runs'
        constraints = [
            models.UniqueConstraint(
                fields=['job'],
                condition=Q(status__in=['queued', 'running']),
                name='discovery_one_active_run_per_job',
            ),
        ]
        indexes = [
            models.Index(fields=['run_date', 'status'], name='discovery_run_date_status_idx'),
        ]

    def __str__(self):
        return f"Run {self.id} ({self.status}) for {self.job}"

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def duration(self):
        if self.started_at and self.finished_at:
            return self.finished_at - self.started_at
        return None


class StagedVendor(BaseModel):
    """
    A vendor candidate produced by discovery, awaiting review.
    """

    STATUS_STAGED = 'staged'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_DUPLICATE = 'duplicate'

    STATUS_CHOICES = [
        (STATUS_STAGED, 'Staged'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_DUPLICATE, 'Duplicate'),
    ]

    WEBSITE_VALID = 'valid'
    WEBSITE_INVALID = 'invalid'
    WEBSITE_ERROR = 'error'
    WEBSITE_PENDING = 'pending'
    WEBSITE_NO_URL = 'no_url'

    WEBSITE_CHOICES = [
        (WEBSITE_VALID, 'Valid'),
        (WEBSITE_INVALID, 'Invalid'),
        (WEBSITE_ERROR, 'Error'),
        (WEBSITE_PENDING, 'Pending'),
        (WEBSITE_NO_URL, 'No URL'),
    ]

    REVIEWABLE_STATUSES = (STATUS_STAGED, STATUS_DUPLICATE)

    discovery_job = models.ForeignKey(
        DiscoveryJob,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staged_vendors',
        verbose_name='Discovery Job'
    )

    discovery_run = models.ForeignKey(
        DiscoveryRun,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staged_vendors',
        verbose_name='Discovery Run'
    )

    name = models.CharField(max_length=255, verbose_name='Name')

    normalized_name = models.CharField(
        max_length=255,
        db_index=True,
        editable=False,
        verbose_name='Normalized Name',
        help_text='Lower-cased, trimmed name used for duplicate detection'
    )

    location = models.CharField(max_length=255, blank=True, verbose_name='Location')
    phone = models.CharField(max_length=50, blank=True, verbose_name='Phone')
    email = models.CharField(max_length=255, blank=True, verbose_name='Email')
    website = models.CharField(max_length=500, blank=True, verbose_name='Website')
    specialty = models.CharField(max_length=200, blank=True, verbose_name='Specialty')
    categories = models.JSONField(default=list, blank=True, verbose_name='Categories')
    cultural_specialties = models.JSONField(default=list, blank=True, verbose_name='Cultural Specialties')
    preferred_wedding_traditions = models.JSONField(default=list, blank=True, verbose_name='Preferred Wedding Traditions')
    price_range = models.CharField(max_length=10, blank=True, verbose_name='Price Range')
    notes = models.TextField(blank=True, verbose_name='Notes')

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_STAGED,
        db_index=True,
        verbose_name='Status'
    )

    website_verified = models.CharField(
        max_length=20,
        choices=WEBSITE_CHOICES,
        default=WEBSITE_PENDING,
        db_index=True,
        verbose_name='Website Verified'
    )

    duplicate_of_vendor = models.ForeignKey(
        'vendors.Vendor',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name='Duplicate Of',
        help_text='Live vendor this candidate matched by name'
    )

    approved_vendor = models.ForeignKey(
        'vendors.Vendor',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='promoted_from',
        verbose_name='Approved Vendor',
        help_text='Live vendor created when this candidate was approved'
    )

    reviewed_at = models.DateTimeField(null=True, blank=True, verbose_name='Reviewed At')

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reviewed_staged_vendors',
        verbose_name='Reviewed By'
    )

    class Meta:
        db_table = 'staged_vendors'
        ordering = ['-created_at']
        verbose_name = 'Staged Vendor'
        verbose_name_plural = 'Staged Vendors'

    def __str__(self):
        return f"{self.name} ({self.status})"

    def save(self, *args, **kwargs):
        self.normalized_name = (self.name or '').strip().lower()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'name' in update_fields:
            kwargs['update_fields'] = set(update_fields) | {'normalized_name'}
        super().save(*args, **kwargs)


class SchedulerConfig(BaseModel):
    """
    Process-wide discovery schedule and daily cap.
    Singleton pattern - only one active record at a time.
    """

    MAX_DAILY_CAP = 500

    run_hour = models.PositiveSmallIntegerField(
        default=2,
        validators=[MinValueValidator(0), MaxValueValidator(23)],
        verbose_name='Run Hour',
        help_text='Local hour (0-23) at which the daily sweep starts'
    )

    daily_cap = models.PositiveIntegerField(
        default=50,
        validators=[MinValueValidator(1), MaxValueValidator(MAX_DAILY_CAP)],
        verbose_name='Daily Cap',
        help_text='Maximum vendors staged across all jobs per day'
    )

    timezone = models.CharField(
        max_length=64,
        default='America/Los_Angeles',
        verbose_name='Timezone',
        help_text='IANA timezone for the run hour and the daily cap day'
    )

    enabled = models.BooleanField(
        default=True,
        verbose_name='Enabled',
        help_text='Whether the daily scheduled sweep runs'
    )

    last_scheduled_date = models.DateField(
        null=True,
        blank=True,
        verbose_name='Last Scheduled Date',
        help_text='Local date of the last scheduled sweep'
    )

    is_active = models.BooleanField(default=True, verbose_name='Active')

    class Meta:
        db_table = 'discovery_scheduler_config'
        verbose_name = 'Scheduler Config'
        verbose_name_plural = 'Scheduler Config'
        ordering = ['-updated_at']

    def __str__(self):
        return f"Scheduler (hour {self.run_hour}, cap {self.daily_cap}, {self.timezone})"

    @classmethod
    def get_active(cls):
        """Get the active config, creating it from settings defaults if needed."""
        config = cls.objects.filter(is_active=True).first()
        if not config:
            config = cls.objects.create(
                is_active=True,
                run_hour=settings.DISCOVERY_DEFAULT_RUN_HOUR,
                daily_cap=settings.DISCOVERY_DEFAULT_DAILY_CAP,
                timezone=settings.DISCOVERY_DEFAULT_TIMEZONE,
            )
        return config

    def save(self, *args, **kwargs):
        """Ensure only one active config record."""
        if self.is_active:
            SchedulerConfig.objects.filter(is_active=True).exclude(pk=self.pk).update(is_active=False)
        super().save(*args, **kwargs)

    @property
    def tzinfo(self):
        return ZoneInfo(self.timezone)

    def local_now(self):
        return timezone.now().astimezone(self.tzinfo)

    def local_date(self):
        """Today's date in the scheduler timezone (the daily cap bucket)."""
        return self.local_now().date()


class DailyDiscoveryQuota(BaseModel):
    """
    Vendors reserved against the daily cap for one local date.

    Runs reserve before calling the discovery service and release what they
    did not use, so the row always holds at most daily_cap units.
    """

    run_date = models.DateField(unique=True, verbose_name='Run Date')

    reserved = models.PositiveIntegerField(
        default=0,
        verbose_name='Reserved',
        help_text='Vendors staged or held by in-flight runs on this date'
    )

    class Meta:
        db_table = 'discovery_daily_quota'
        ordering = ['-run_date']
        verbose_name = 'Daily Discovery Quota'
        verbose_name_plural = 'Daily Discovery Quotas'

    def __str__(self):
        return f"{self.run_date}: {self.reserved}"


class DiscoveryChatHistory(BaseModel):
    """
    LLM conversation for one (area, specialty), continued by every run so
    the model keeps suggesting vendors it has not named before.
    """

    area = models.CharField(max_length=200, verbose_name='Area')
    specialty = models.CharField(max_length=200, verbose_name='Specialty')

    history = models.JSONField(
        default=list,
        blank=True,
        verbose_name='History',
        help_text='Conversation turns [{role, content}]'
    )

    total_vendors_found = models.PositiveIntegerField(
        default=0,
        verbose_name='Total Vendors Found'
    )

    class Meta:
        db_table = 'discovery_chat_history'
        verbose_name = 'Discovery Chat History'
        verbose_name_plural = 'Discovery Chat Histories'
        constraints = [
            models.UniqueConstraint(fields=['area', 'specialty'], name='discovery_chat_area_specialty_uniq'),
        ]

    def __str__(self):
        return f"Chat: {self.specialty} in {self.area} ({len(self.history or [])} turns)"


def stale_run_cutoff():
    """Runs started (or queued) before this instant are considered stuck."""
    return timezone.now() - timedelta(minutes=settings.DISCOVERY_RUN_TIMEOUT_MINUTES)
