"""
Discovery API serializers.

The admin UI speaks camelCase, so every field is declared with an explicit
camelCase name and a `source` pointing at the model attribute.
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rest_framework import serializers

from .models import DiscoveryJob, DiscoveryRun, SchedulerConfig, StagedVendor


# ============================================================================
# Jobs
# ============================================================================

class DiscoveryJobSerializer(serializers.ModelSerializer):
    """
    Job list/detail and create/update.

    Only area, specialty, countPerRun, maxTotal, isActive, paused, endDate
    and notes are writable; everything else is ignored on input.
    """

    countPerRun = serializers.IntegerField(
        source='count_per_run', min_value=1, max_value=DiscoveryJob.MAX_COUNT_PER_RUN, required=False
    )
    maxTotal = serializers.IntegerField(source='max_total', min_value=1, allow_null=True, required=False)
    totalDiscovered = serializers.IntegerField(source='total_discovered', read_only=True)
    remainingCapacity = serializers.IntegerField(source='remaining_capacity', read_only=True)
    isActive = serializers.BooleanField(source='is_active', required=False)
    endDate = serializers.DateTimeField(source='end_date', allow_null=True, required=False)
    lastRunAt = serializers.DateTimeField(source='last_run_at', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = DiscoveryJob
        fields = [
            'id',
            'area',
            'specialty',
            'countPerRun',
            'maxTotal',
            'totalDiscovered',
            'remainingCapacity',
            'paused',
            'isActive',
            'retired',
            'endDate',
            'notes',
            'lastRunAt',
            'createdAt',
            'updatedAt',
        ]
        read_only_fields = ['id', 'retired']
        extra_kwargs = {
            'notes': {'required': False, 'allow_blank': True},
            'paused': {'required': False},
        }

    def validate_area(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Area must not be blank.")
        return value

    def validate_specialty(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Specialty must not be blank.")
        return value

    def validate(self, attrs):
        max_total = attrs.get('max_total')
        if self.instance is not None and max_total is not None and max_total < self.instance.total_discovered:
            raise serializers.ValidationError({
                'maxTotal': f"Must be at least the {self.instance.total_discovered} vendors already discovered."
            })
        return attrs


class BulkJobCreateSerializer(serializers.Serializer):
    """Body of POST /discovery-jobs/bulk."""

    areas = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    specialties = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    countPerRun = serializers.IntegerField(min_value=1, max_value=DiscoveryJob.MAX_COUNT_PER_RUN, default=20)
    maxTotal = serializers.IntegerField(min_value=1, allow_null=True, default=100)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    skipExisting = serializers.BooleanField(default=True)
    endDate = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def validate_areas(self, value):
        if not any(v.strip() for v in value):
            raise serializers.ValidationError("At least one area is required.")
        return value

    def validate_specialties(self, value):
        if not any(v.strip() for v in value):
            raise serializers.ValidationError("At least one specialty is required.")
        return value


class DiscoveryPreviewSerializer(serializers.Serializer):
    """Body of POST /discover-preview."""

    area = serializers.CharField()
    specialty = serializers.CharField()
    count = serializers.IntegerField(min_value=1, max_value=20, default=10)


# ============================================================================
# Runs
# ============================================================================

class DiscoveryRunSerializer(serializers.ModelSerializer):
    jobId = serializers.UUIDField(source='job_id', read_only=True)
    area = serializers.CharField(source='job.area', read_only=True)
    specialty = serializers.CharField(source='job.specialty', read_only=True)
    runDate = serializers.DateField(source='run_date', read_only=True)
    triggeredBy = serializers.CharField(source='triggered_by', read_only=True)
    requestedBy = serializers.CharField(source='requested_by.username', read_only=True, default=None)
    vendorsDiscovered = serializers.IntegerField(source='vendors_discovered', read_only=True)
    vendorsStaged = serializers.IntegerField(source='vendors_staged', read_only=True)
    duplicatesFound = serializers.IntegerField(source='duplicates_found', read_only=True)
    startedAt = serializers.DateTimeField(source='started_at', read_only=True)
    finishedAt = serializers.DateTimeField(source='finished_at', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    durationSeconds = serializers.SerializerMethodField()

    class Meta:
        model = DiscoveryRun
        fields = [
            'id',
            'jobId',
            'area',
            'specialty',
            'runDate',
            'status',
            'triggeredBy',
            'requestedBy',
            'vendorsDiscovered',
            'vendorsStaged',
            'duplicatesFound',
            'error',
            'startedAt',
            'finishedAt',
            'createdAt',
            'durationSeconds',
        ]
        read_only_fields = fields

    def get_durationSeconds(self, obj):
        duration = obj.duration
        return round(duration.total_seconds(), 1) if duration else None


class DiscoveryRunDetailSerializer(DiscoveryRunSerializer):
    """Run detail including the step log."""

    class Meta(DiscoveryRunSerializer.Meta):
        fields = DiscoveryRunSerializer.Meta.fields + ['logs']
        read_only_fields = fields


# ============================================================================
# Scheduler config
# ============================================================================

class SchedulerConfigSerializer(serializers.ModelSerializer):
    runHour = serializers.IntegerField(source='run_hour', min_value=0, max_value=23, required=False)
    dailyCap = serializers.IntegerField(
        source='daily_cap', min_value=1, max_value=SchedulerConfig.MAX_DAILY_CAP, required=False
    )
    lastScheduledDate = serializers.DateField(source='last_scheduled_date', read_only=True)

    class Meta:
        model = SchedulerConfig
        fields = ['runHour', 'dailyCap', 'timezone', 'enabled', 'lastScheduledDate']
        extra_kwargs = {
            'timezone': {'required': False},
            'enabled': {'required': False},
        }

    def validate_timezone(self, value):
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise serializers.ValidationError(f"Unknown timezone: {value}")
        return value


# ============================================================================
# Staged vendors
# ============================================================================

class StagedVendorSerializer(serializers.ModelSerializer):
    jobId = serializers.UUIDField(source='discovery_job_id', read_only=True)
    runId = serializers.UUIDField(source='discovery_run_id', read_only=True)
    culturalSpecialties = serializers.JSONField(source='cultural_specialties', read_only=True)
    preferredWeddingTraditions = serializers.JSONField(source='preferred_wedding_traditions', read_only=True)
    priceRange = serializers.CharField(source='price_range', read_only=True)
    websiteVerified = serializers.CharField(source='website_verified', read_only=True)
    duplicateOfVendorId = serializers.UUIDField(source='duplicate_of_vendor_id', read_only=True)
    approvedVendorId = serializers.UUIDField(source='approved_vendor_id', read_only=True)
    reviewedAt = serializers.DateTimeField(source='reviewed_at', read_only=True)
    reviewedBy = serializers.CharField(source='reviewed_by.username', read_only=True, default=None)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = StagedVendor
        fields = [
            'id',
            'jobId',
            'runId',
            'name',
            'location',
            'phone',
            'email',
            'website',
            'specialty',
            'categories',
            'culturalSpecialties',
            'preferredWeddingTraditions',
            'priceRange',
            'notes',
            'status',
            'websiteVerified',
            'duplicateOfVendorId',
            'approvedVendorId',
            'reviewedAt',
            'reviewedBy',
            'createdAt',
        ]
        read_only_fields = fields


class ApproveOverridesSerializer(serializers.Serializer):
    """Optional field overrides applied to the live vendor on approve."""

    name = serializers.CharField(required=False, max_length=255)
    location = serializers.CharField(required=False, allow_blank=True, max_length=255)
    city = serializers.CharField(required=False, allow_blank=True, max_length=100)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=50)
    email = serializers.CharField(required=False, allow_blank=True, max_length=255)
    website = serializers.CharField(required=False, allow_blank=True, max_length=500)
    description = serializers.CharField(required=False, allow_blank=True)


class BulkReviewSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
