from django.contrib import admin
from django.utils.html import format_html

from apps.core.exceptions import ConflictError, NotFoundError

from . import services
from .models import (
    DailyDiscoveryQuota,
    DiscoveryChatHistory,
    DiscoveryJob,
    DiscoveryRun,
    SchedulerConfig,
    StagedVendor,
)

STATUS_COLORS = {
    'queued': 'gray',
    'running': 'blue',
    'completed': 'green',
    'failed': 'red',
    'cancelled': 'orange',
    'skipped': 'gray',
    'staged': 'blue',
    'approved': 'green',
    'rejected': 'red',
    'duplicate': 'orange',
}


def status_badge(value):
    return format_html(
        '<span style="color: {}; font-weight: bold;">{}</span>',
        STATUS_COLORS.get(value, 'black'),
        value,
    )


@admin.register(DiscoveryJob)
class DiscoveryJobAdmin(admin.ModelAdmin):
    """Admin configuration for DiscoveryJob model."""

    list_display = [
        'area',
        'specialty',
        'count_per_run',
        'progress_display',
        'is_active',
        'paused',
        'retired',
        'last_run_at',
        'created_at',
    ]
    list_filter = ['is_active', 'paused', 'retired', 'specialty']
    search_fields = ['area', 'specialty', 'notes']
    readonly_fields = ['id', 'total_discovered', 'last_run_at', 'created_at', 'updated_at']

    def progress_display(self, obj):
        if obj.max_total is None:
            return f'{obj.total_discovered} / ∞'
        return f'{obj.total_discovered} / {obj.max_total}'
    progress_display.short_description = 'Discovered'
    progress_display.admin_order_field = 'total_discovered'

    actions = ['run_now', 'pause_jobs', 'resume_jobs']

    def run_now(self, request, queryset):
        """Start a manual run for each selected job."""
        started = 0
        for job in queryset:
            try:
                run = services.start_run(job.id, user=request.user)
            except (ConflictError, NotFoundError) as e:
                self.message_user(request, f'{job}: {e.message}', level='warning')
                continue
            if run.status == DiscoveryRun.STATUS_SKIPPED:
                self.message_user(request, f'{job}: skipped ({run.error})', level='warning')
            else:
                started += 1
        if started:
            self.message_user(request, f'Started {started} run(s). Check Celery worker logs for progress.')
    run_now.short_description = 'Run now (requires Celery)'

    def pause_jobs(self, request, queryset):
        updated = queryset.update(paused=True)
        self.message_user(request, f'{updated} job(s) paused.')
    pause_jobs.short_description = 'Pause'

    def resume_jobs(self, request, queryset):
        updated = queryset.filter(retired=False).update(paused=False)
        self.message_user(request, f'{updated} job(s) resumed.')
    resume_jobs.short_description = 'Resume'


@admin.register(DiscoveryRun)
class DiscoveryRunAdmin(admin.ModelAdmin):
    """Admin configuration for DiscoveryRun model."""

    list_display = [
        'id',
        'job',
        'run_date',
        'status_display',
        'triggered_by',
        'vendors_discovered',
        'vendors_staged',
        'duplicates_found',
        'started_at',
        'finished_at',
    ]
    list_filter = ['status', 'triggered_by', 'run_date']
    search_fields = ['job__area', 'job__specialty', 'error']
    readonly_fields = [
        'id',
        'job',
        'run_date',
        'status',
        'triggered_by',
        'requested_by',
        'vendors_discovered',
        'vendors_staged',
        'duplicates_found',
        'quota_reserved',
        'started_at',
        'finished_at',
        'error',
        'task_id',
        'logs',
        'created_at',
        'updated_at',
    ]
    list_select_related = ['job']

    def status_display(self, obj):
        return status_badge(obj.status)
    status_display.short_description = 'Status'
    status_display.admin_order_field = 'status'

    actions = ['cancel_runs']

    def cancel_runs(self, request, queryset):
        cancelled = 0
        for run in queryset.filter(status__in=DiscoveryRun.ACTIVE_STATUSES):
            try:
                services.cancel_run(run.id, user=request.user)
                cancelled += 1
            except ConflictError:
                continue
        self.message_user(request, f'{cancelled} run(s) cancelled.')
    cancel_runs.short_description = 'Cancel selected runs'

    def has_add_permission(self, request):
        return False


@admin.register(StagedVendor)
class StagedVendorAdmin(admin.ModelAdmin):
    """Admin configuration for StagedVendor model."""

    list_display = [
        'name',
        'specialty',
        'location',
        'status_display',
        'website_verified',
        'discovery_job',
        'created_at',
    ]
    list_filter = ['status', 'website_verified', 'specialty']
    search_fields = ['name', 'normalized_name', 'location', 'website', 'email']
    readonly_fields = [
        'id',
        'normalized_name',
        'discovery_job',
        'discovery_run',
        'duplicate_of_vendor',
        'approved_vendor',
        'reviewed_at',
        'reviewed_by',
        'created_at',
        'updated_at',
    ]

    def status_display(self, obj):
        return status_badge(obj.status)
    status_display.short_description = 'Status'
    status_display.admin_order_field = 'status'

    actions = ['approve_selected', 'reject_selected']

    def approve_selected(self, request, queryset):
        result = services.bulk_review(list(queryset.values_list('id', flat=True)), 'approve', user=request.user)
        self.message_user(request, f"{result['approved']} approved, {result['failed']} failed.")
    approve_selected.short_description = 'Approve (create live vendors)'

    def reject_selected(self, request, queryset):
        result = services.bulk_review(list(queryset.values_list('id', flat=True)), 'reject', user=request.user)
        self.message_user(request, f"{result['rejected']} rejected, {result['failed']} failed.")
    reject_selected.short_description = 'Reject'


@admin.register(SchedulerConfig)
class SchedulerConfigAdmin(admin.ModelAdmin):
    list_display = ['run_hour', 'daily_cap', 'timezone', 'enabled', 'last_scheduled_date', 'is_active', 'updated_at']
    readonly_fields = ['last_scheduled_date', 'created_at', 'updated_at']


@admin.register(DailyDiscoveryQuota)
class DailyDiscoveryQuotaAdmin(admin.ModelAdmin):
    list_display = ['run_date', 'reserved', 'updated_at']
    readonly_fields = ['run_date', 'reserved', 'created_at', 'updated_at']


@admin.register(DiscoveryChatHistory)
class DiscoveryChatHistoryAdmin(admin.ModelAdmin):
    list_display = ['area', 'specialty', 'total_vendors_found', 'updated_at']
    search_fields = ['area', 'specialty']
    readonly_fields = ['history', 'total_vendors_found', 'created_at', 'updated_at']
