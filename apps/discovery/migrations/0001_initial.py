# Generated migration for vendor discovery

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import uuid
from django.conf import settings
from django.db import migrations, models


def base_fields():
    return [
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier (UUID)', primary_key=True, serialize=False, verbose_name='ID')),
        ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False, help_text='Timestamp when record was created', verbose_name='Created At')),
        ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when record was last updated', verbose_name='Updated At')),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('vendors', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='DiscoveryJob',
            fields=base_fields() + [
                ('area', models.CharField(db_index=True, help_text='Metro area to search, e.g. "Seattle"', max_length=200, verbose_name='Area')),
                ('specialty', models.CharField(db_index=True, help_text='Vendor specialty to search for, e.g. "photographer"', max_length=200, verbose_name='Specialty')),
                ('count_per_run', models.PositiveSmallIntegerField(default=20, help_text='Vendors requested from the discovery service per run', validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(50)], verbose_name='Count Per Run')),
                ('max_total', models.PositiveIntegerField(blank=True, help_text='Lifetime cap on vendors staged by this job (empty = unbounded)', null=True, validators=[django.core.validators.MinValueValidator(1)], verbose_name='Max Total')),
                ('total_discovered', models.PositiveIntegerField(default=0, help_text='Vendors staged by this job so far', verbose_name='Total Discovered')),
                ('paused', models.BooleanField(default=False, verbose_name='Paused')),
                ('is_active', models.BooleanField(db_index=True, default=True, verbose_name='Active')),
                ('retired', models.BooleanField(default=False, help_text='Retired jobs are kept for history but never run again', verbose_name='Retired')),
                ('end_date', models.DateTimeField(blank=True, help_text='Runs starting after this date are skipped and the job deactivated', null=True, verbose_name='End Date')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('last_run_at', models.DateTimeField(blank=True, help_text='When a run of this job last completed', null=True, verbose_name='Last Run At')),
            ],
            options={
                'verbose_name': 'Discovery Job',
                'verbose_name_plural': 'Discovery Jobs',
                'db_table': 'discovery_jobs',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['area', 'specialty'], name='discovery_job_area_spec_idx')],
            },
        ),
        migrations.CreateModel(
            name='DiscoveryRun',
            fields=base_fields() + [
                ('run_date', models.DateField(db_index=True, help_text='Calendar day in the scheduler timezone (daily cap bucket)', verbose_name='Run Date')),
                ('status', models.CharField(choices=[('queued', 'Queued'), ('running', 'Running'), ('completed', 'Completed'), ('failed', 'Failed'), ('cancelled', 'Cancelled'), ('skipped', 'Skipped')], db_index=True, default='queued', max_length=20, verbose_name='Status')),
                ('triggered_by', models.CharField(choices=[('manual', 'Manual'), ('scheduled', 'Scheduled')], default='manual', max_length=20, verbose_name='Triggered By')),
                ('vendors_discovered', models.PositiveIntegerField(default=0, help_text='Candidates returned by the discovery service', verbose_name='Vendors Discovered')),
                ('vendors_staged', models.PositiveIntegerField(default=0, help_text='Staged vendor rows written by this run', verbose_name='Vendors Staged')),
                ('duplicates_found', models.PositiveIntegerField(default=0, verbose_name='Duplicates Found')),
                ('quota_reserved', models.PositiveIntegerField(default=0, help_text='Daily cap units held by this run and not yet settled', verbose_name='Quota Reserved')),
                ('started_at', models.DateTimeField(blank=True, null=True, verbose_name='Started At')),
                ('finished_at', models.DateTimeField(blank=True, null=True, verbose_name='Finished At')),
                ('error', models.TextField(blank=True, help_text='Failure message, or the reason a run was skipped or cancelled', verbose_name='Error')),
                ('task_id', models.CharField(blank=True, help_text='Celery task executing this run', max_length=255, verbose_name='Task ID')),
                ('logs', models.JSONField(blank=True, default=list, help_text='Step log entries {timestamp, level, message, data}', verbose_name='Logs')),
                ('job', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='runs', to='discovery.discoveryjob', verbose_name='Job')),
                ('requested_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='discovery_runs', to=settings.AUTH_USER_MODEL, verbose_name='Requested By')),
            ],
            options={
                'verbose_name': 'Discovery Run',
                'verbose_name_plural': 'Discovery Runs',
                'db_table': 'discovery_runs',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['run_date', 'status'], name='discovery_run_date_status_idx')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('status__in', ['queued', 'running'])), fields=('job',), name='discovery_one_active_run_per_job')],
            },
        ),
        migrations.CreateModel(
            name='StagedVendor',
            fields=base_fields() + [
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('normalized_name', models.CharField(db_index=True, editable=False, help_text='Lower-cased, trimmed name used for duplicate detection', max_length=255, verbose_name='Normalized Name')),
                ('location', models.CharField(blank=True, max_length=255, verbose_name='Location')),
                ('phone', models.CharField(blank=True, max_length=50, verbose_name='Phone')),
                ('email', models.CharField(blank=True, max_length=255, verbose_name='Email')),
                ('website', models.CharField(blank=True, max_length=500, verbose_name='Website')),
                ('specialty', models.CharField(blank=True, max_length=200, verbose_name='Specialty')),
                ('categories', models.JSONField(blank=True, default=list, verbose_name='Categories')),
                ('cultural_specialties', models.JSONField(blank=True, default=list, verbose_name='Cultural Specialties')),
                ('preferred_wedding_traditions', models.JSONField(blank=True, default=list, verbose_name='Preferred Wedding Traditions')),
                ('price_range', models.CharField(blank=True, max_length=10, verbose_name='Price Range')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('status', models.CharField(choices=[('staged', 'Staged'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('duplicate', 'Duplicate')], db_index=True, default='staged', max_length=20, verbose_name='Status')),
                ('website_verified', models.CharField(choices=[('valid', 'Valid'), ('invalid', 'Invalid'), ('error', 'Error'), ('pending', 'Pending'), ('no_url', 'No URL')], db_index=True, default='pending', max_length=20, verbose_name='Website Verified')),
                ('reviewed_at', models.DateTimeField(blank=True, null=True, verbose_name='Reviewed At')),
                ('approved_vendor', models.ForeignKey(blank=True, help_text='Live vendor created when this candidate was approved', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='promoted_from', to='vendors.vendor', verbose_name='Approved Vendor')),
                ('discovery_job', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='staged_vendors', to='discovery.discoveryjob', verbose_name='Discovery Job')),
                ('discovery_run', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='staged_vendors', to='discovery.discoveryrun', verbose_name='Discovery Run')),
                ('duplicate_of_vendor', models.ForeignKey(blank=True, help_text='Live vendor this candidate matched by name', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='vendors.vendor', verbose_name='Duplicate Of')),
                ('reviewed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reviewed_staged_vendors', to=settings.AUTH_USER_MODEL, verbose_name='Reviewed By')),
            ],
            options={
                'verbose_name': 'Staged Vendor',
                'verbose_name_plural': 'Staged Vendors',
                'db_table': 'staged_vendors',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='SchedulerConfig',
            fields=base_fields() + [
                ('run_hour', models.PositiveSmallIntegerField(default=2, help_text='Local hour (0-23) at which the daily sweep starts', validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(23)], verbose_name='Run Hour')),
                ('daily_cap', models.PositiveIntegerField(default=50, help_text='Maximum vendors staged across all jobs per day', validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(500)], verbose_name='Daily Cap')),
                ('timezone', models.CharField(default='America/Los_Angeles', help_text='IANA timezone for the run hour and the daily cap day', max_length=64, verbose_name='Timezone')),
                ('enabled', models.BooleanField(default=True, help_text='Whether the daily scheduled sweep runs', verbose_name='Enabled')),
                ('last_scheduled_date', models.DateField(blank=True, help_text='Local date of the last scheduled sweep', null=True, verbose_name='Last Scheduled Date')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
            ],
            options={
                'verbose_name': 'Scheduler Config',
                'verbose_name_plural': 'Scheduler Config',
                'db_table': 'discovery_scheduler_config',
                'ordering': ['-updated_at'],
            },
        ),
        migrations.CreateModel(
            name='DailyDiscoveryQuota',
            fields=base_fields() + [
                ('run_date', models.DateField(unique=True, verbose_name='Run Date')),
                ('reserved', models.PositiveIntegerField(default=0, help_text='Vendors staged or held by in-flight runs on this date', verbose_name='Reserved')),
            ],
            options={
                'verbose_name': 'Daily Discovery Quota',
                'verbose_name_plural': 'Daily Discovery Quotas',
                'db_table': 'discovery_daily_quota',
                'ordering': ['-run_date'],
            },
        ),
        migrations.CreateModel(
            name='DiscoveryChatHistory',
            fields=base_fields() + [
                ('area', models.CharField(max_length=200, verbose_name='Area')),
                ('specialty', models.CharField(max_length=200, verbose_name='Specialty')),
                ('history', models.JSONField(blank=True, default=list, help_text='Conversation turns [{role, content}]', verbose_name='History')),
                ('total_vendors_found', models.PositiveIntegerField(default=0, verbose_name='Total Vendors Found')),
            ],
            options={
                'verbose_name': 'Discovery Chat History',
                'verbose_name_plural': 'Discovery Chat Histories',
                'db_table': 'discovery_chat_history',
                'constraints': [models.UniqueConstraint(fields=('area', 'specialty'), name='discovery_chat_area_specialty_uniq')],
            },
        ),
    ]
