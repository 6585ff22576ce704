"""
Vendor discovery admin API.

Endpoints (mounted at /api/admin/):
- /discovery-jobs              GET list, POST create
- /discovery-jobs/{id}         GET, PATCH, DELETE
- /discovery-jobs/bulk         POST cartesian-product create
- /discovery-jobs/{id}/run-now POST start a manual run
- /discovery-jobs/{id}/retire  POST retire
- /discovery-runs              GET list (jobId, runDate, status, limit)
- /discovery-runs/{id}         GET detail with logs
- /discovery-runs/{id}/cancel  POST cancel
- /scheduler-config            GET, PUT
- /staged-vendors              GET list (status, jobId, q)
- /staged-vendors/{id}         GET, DELETE
- /staged-vendors/{id}/approve POST (optional overrides in body)
- /staged-vendors/{id}/reject  POST
- /staged-vendors/bulk-approve POST {ids}
- /staged-vendors/bulk-reject  POST {ids}
- /discovery-chat-history      DELETE ?area=&specialty=
- /discover-preview            POST ad-hoc discovery, nothing staged
"""

import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import ValidationError
from apps.core.permissions import IsAdmin
from apps.core.throttling import BulkActionThrottle, DiscoveryRunThrottle, StateChangeThrottle
from apps.vendors.serializers import VendorSerializer

from . import services
from .models import DiscoveryJob, DiscoveryRun, SchedulerConfig, StagedVendor
from .serializers import (
    ApproveOverridesSerializer,
    BulkJobCreateSerializer,
    BulkReviewSerializer,
    DiscoveryPreviewSerializer,
    DiscoveryJobSerializer,
    DiscoveryRunDetailSerializer,
    DiscoveryRunSerializer,
    SchedulerConfigSerializer,
    StagedVendorSerializer,
)

logger = logging.getLogger(__name__)

UUID_LOOKUP_REGEX = '[0-9a-fA-F-]{36}'

DEFAULT_RUN_LIMIT = 100
MAX_RUN_LIMIT = 500


def _parse_bool(value):
    return str(value).lower() in ('1', 'true', 'yes')


class DiscoveryJobViewSet(viewsets.ModelViewSet):
    """
    Discovery job management.

    PUT is not offered; PATCH merges the writable fields.
    """

    serializer_class = DiscoveryJobSerializer
    permission_classes = [IsAuthenticated, IsAdmin]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    lookup_value_regex = UUID_LOOKUP_REGEX

    def get_queryset(self):
        queryset = DiscoveryJob.objects.all()

        area = self.request.query_params.get('area')
        if area:
            queryset = queryset.filter(area__iexact=area)

        specialty = self.request.query_params.get('specialty')
        if specialty:
            queryset = queryset.filter(specialty__iexact=specialty)

        active = self.request.query_params.get('active')
        if active is not None:
            queryset = queryset.filter(is_active=_parse_bool(active))

        retired = self.request.query_params.get('retired')
        if retired is not None:
            queryset = queryset.filter(retired=_parse_bool(retired))

        return queryset

    def perform_create(self, serializer):
        job = serializer.save()
        logger.info(f"Created discovery job {job.id} ({job}) by {self.request.user.username}")

    def perform_update(self, serializer):
        job = serializer.save()
        logger.info(f"Updated discovery job {job.id}: {sorted(serializer.validated_data)}")

    def destroy(self, request, *args, **kwargs):
        services.delete_job(self.get_object())
        return Response({'success': True})

    @action(detail=False, methods=['post'], url_path='bulk', throttle_classes=[BulkActionThrottle])
    def bulk(self, request):
        """Create one job per (area, specialty) pair."""
        serializer = BulkJobCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        outcome = services.bulk_create_jobs(
            areas=data['areas'],
            specialties=data['specialties'],
            count_per_run=data['countPerRun'],
            max_total=data['maxTotal'],
            notes=data.get('notes', ''),
            skip_existing=data['skipExisting'],
            end_date=data.get('endDate'),
        )
        return Response(
            {'summary': outcome.summary, 'results': outcome.results},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['post'], url_path='run-now', throttle_classes=[DiscoveryRunThrottle])
    def run_now(self, request, pk=None):
        """Start a manual run; the executor works in the background."""
        run = services.start_run(pk, triggered_by=DiscoveryRun.TRIGGER_MANUAL, user=request.user)
        body = {'runId': str(run.id), 'status': run.status}
        if run.status == DiscoveryRun.STATUS_SKIPPED:
            body['reason'] = run.error
        return Response(body, status=status.HTTP_202_ACCEPTED)

    @action(detail=True, methods=['post'], url_path='retire', throttle_classes=[StateChangeThrottle])
    def retire(self, request, pk=None):
        job = services.retire_job(self.get_object())
        return Response(self.get_serializer(job).data)


class DiscoveryRunViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAuthenticated, IsAdmin]
    lookup_value_regex = UUID_LOOKUP_REGEX

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return DiscoveryRunDetailSerializer
        return DiscoveryRunSerializer

    def get_queryset(self):
        queryset = DiscoveryRun.objects.select_related('job', 'requested_by').order_by('-created_at')
        if self.action == 'list':
            queryset = queryset.defer('logs')

        job_id = self.request.query_params.get('jobId')
        if job_id:
            queryset = queryset.filter(job_id=job_id)

        run_date = self.request.query_params.get('runDate')
        if run_date:
            queryset = queryset.filter(run_date=run_date)

        run_status = self.request.query_params.get('status')
        if run_status:
            queryset = queryset.filter(status=run_status)

        return queryset

    def list(self, request, *args, **kwargs):
        raw_limit = request.query_params.get('limit', DEFAULT_RUN_LIMIT)
        try:
            limit = int(raw_limit)
        except (TypeError, ValueError):
            raise ValidationError(f"limit must be an integer, got {raw_limit!r}", field='limit')
        limit = max(1, min(limit, MAX_RUN_LIMIT))

        runs = self.get_queryset()[:limit]
        return Response(self.get_serializer(runs, many=True).data)

    @action(detail=True, methods=['post'], url_path='cancel', throttle_classes=[StateChangeThrottle])
    def cancel(self, request, pk=None):
        run = services.cancel_run(pk, user=request.user)
        return Response({
            'runId': str(run.id),
            'status': run.status,
            'message': 'Run cancelled successfully',
        })


class StagedVendorViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """Review queue for discovered vendors."""

    serializer_class = StagedVendorSerializer
    permission_classes = [IsAuthenticated, IsAdmin]
    lookup_value_regex = UUID_LOOKUP_REGEX

    def get_queryset(self):
        queryset = StagedVendor.objects.select_related('reviewed_by')

        if self.action == 'list':
            staged_status = self.request.query_params.get('status', StagedVendor.STATUS_STAGED)
            if staged_status and staged_status != 'all':
                queryset = queryset.filter(status=staged_status)

        job_id = self.request.query_params.get('jobId')
        if job_id:
            queryset = queryset.filter(discovery_job_id=job_id)

        search = self.request.query_params.get('q')
        if search:
            queryset = queryset.filter(name__icontains=search)

        return queryset

    def destroy(self, request, *args, **kwargs):
        staged = self.get_object()
        staged_id = staged.id
        staged.delete()
        logger.info(f"Deleted staged vendor {staged_id}")
        return Response({'success': True})

    @action(detail=True, methods=['post'], url_path='approve', throttle_classes=[StateChangeThrottle])
    def approve(self, request, pk=None):
        """Promote to the live directory; body may override contact fields."""
        overrides = ApproveOverridesSerializer(data=request.data or {})
        overrides.is_valid(raise_exception=True)

        staged = services.approve_staged_vendor(pk, user=request.user, overrides=overrides.validated_data)
        return Response({
            'success': True,
            'vendor': VendorSerializer(staged.approved_vendor).data,
            'stagedVendor': StagedVendorSerializer(staged).data,
        })

    @action(detail=True, methods=['post'], url_path='reject', throttle_classes=[StateChangeThrottle])
    def reject(self, request, pk=None):
        staged = services.reject_staged_vendor(pk, user=request.user)
        return Response({'success': True, 'stagedVendor': StagedVendorSerializer(staged).data})

    @action(detail=False, methods=['post'], url_path='bulk-approve', throttle_classes=[BulkActionThrottle])
    def bulk_approve(self, request):
        serializer = BulkReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(services.bulk_review(serializer.validated_data['ids'], 'approve', user=request.user))

    @action(detail=False, methods=['post'], url_path='bulk-reject', throttle_classes=[BulkActionThrottle])
    def bulk_reject(self, request):
        serializer = BulkReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(services.bulk_review(serializer.validated_data['ids'], 'reject', user=request.user))


class SchedulerConfigView(APIView):
    """
    GET /api/admin/scheduler-config
    PUT /api/admin/scheduler-config   partial update of runHour, dailyCap, timezone, enabled
    """

    permission_classes = [IsAuthenticated, IsAdmin]

    def get(self, request):
        return Response(SchedulerConfigSerializer(SchedulerConfig.get_active()).data)

    def put(self, request):
        config = SchedulerConfig.get_active()
        serializer = SchedulerConfigSerializer(config, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        config = serializer.save()
        logger.info(
            f"Scheduler config updated by {request.user.username}: "
            f"run_hour={config.run_hour} daily_cap={config.daily_cap} "
            f"timezone={config.timezone} enabled={config.enabled}"
        )
        return Response(SchedulerConfigSerializer(config).data)


class ChatHistoryView(APIView):
    """DELETE /api/admin/discovery-chat-history?area=&specialty="""

    permission_classes = [IsAuthenticated, IsAdmin]

    def delete(self, request):
        area = request.query_params.get('area', '')
        specialty = request.query_params.get('specialty', '')
        deleted = services.clear_chat_history(area, specialty)
        return Response({'deleted': bool(deleted), 'area': area, 'specialty': specialty})


class DiscoveryPreviewView(APIView):
    """
    POST /api/admin/discover-preview   {area, specialty, count?}

    Runs discovery synchronously and flags names already in the directory.
    Nothing is staged; a discovery service failure returns 502.
    """

    permission_classes = [IsAuthenticated, IsAdmin]
    throttle_classes = [DiscoveryRunThrottle]

    def post(self, request):
        serializer = DiscoveryPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return Response(services.preview_discovery(data['area'], data['specialty'], data['count']))
