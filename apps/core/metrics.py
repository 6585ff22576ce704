"""
Prometheus metrics for discovery runs, LLM calls and the review queue.

Labels stay low-cardinality: statuses, triggers and review actions only.
Per-job or per-vendor detail belongs in the run log, never in a label.
"""

import time
from contextlib import contextmanager

from django.http import HttpResponse
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# ============================================================================
# Metrics
# ============================================================================

runs_started_total = Counter(
    'discovery_runs_started_total',
    'Total discovery runs created',
    ['trigger']  # trigger: manual/scheduled
)

runs_finished_total = Counter(
    'discovery_runs_finished_total',
    'Total discovery runs reaching a terminal status',
    ['status']  # status: completed/failed/cancelled/skipped
)

run_duration_seconds = Histogram(
    'discovery_run_duration_seconds',
    'Duration of executed discovery runs',
    buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800]
)

vendors_staged_total = Counter(
    'discovery_vendors_staged_total',
    'Staged vendor rows written by the executor',
    ['status']  # status: staged/duplicate
)

website_checks_total = Counter(
    'discovery_website_checks_total',
    'Website verification results',
    ['result']  # result: valid/invalid/error/no_url
)

llm_requests_total = Counter(
    'discovery_llm_requests_total',
    'Total LLM vendor discovery requests',
    ['status']  # status: success/error/fallback
)

llm_request_duration_seconds = Histogram(
    'discovery_llm_request_duration_seconds',
    'LLM vendor discovery request duration',
    buckets=[1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0]
)

reviews_total = Counter(
    'staged_vendor_reviews_total',
    'Staged vendor review outcomes',
    ['action', 'status']  # action: approve/reject, status: success/error
)

active_runs = Gauge(
    'discovery_active_runs',
    'Runs currently queued or running'
)


# ============================================================================
# Recording helpers
# ============================================================================

def increment_runs_started(trigger='manual'):
    runs_started_total.labels(trigger=trigger).inc()


def increment_runs_finished(status='completed'):
    runs_finished_total.labels(status=status).inc()


def observe_run_duration(duration_seconds):
    run_duration_seconds.observe(duration_seconds)


def increment_vendors_staged(status='staged'):
    vendors_staged_total.labels(status=status).inc()


def increment_website_check(result):
    website_checks_total.labels(result=result).inc()


def increment_llm_request(status='success'):
    llm_requests_total.labels(status=status).inc()


def increment_review(action, status='success', count=1):
    reviews_total.labels(action=action, status=status).inc(count)


@contextmanager
def observe_llm_request_duration():
    """Records the wrapped call in the LLM latency histogram."""
    start = time.perf_counter()
    try:
        yield
    finally:
        llm_request_duration_seconds.observe(time.perf_counter() - start)


# ============================================================================
# Exposition
# ============================================================================

def metrics_view(request):
    """Expose Prometheus metrics in text format."""
    from apps.discovery.models import DiscoveryRun

    active_runs.set(
        DiscoveryRun.objects.filter(status__in=DiscoveryRun.ACTIVE_STATUSES).count()
    )

    return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
