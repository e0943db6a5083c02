"""
================================================================================
EDIT ENGINE - Prometheus Metrics
================================================================================
Module-level collectors shared by the selector, pipeline and facade.
Exposed by the API entry point on GET /metrics.
================================================================================
"""

from prometheus_client import Counter, Gauge, Histogram


# =============================================================================
# PROMETHEUS METRICS
# =============================================================================

EDIT_REQUESTS = Counter(
    'mediaedit_requests_total',
    'Edit request count',
    ['type', 'status']
)

EDIT_LATENCY = Histogram(
    'mediaedit_request_latency_seconds',
    'End-to-end edit latency',
    ['type', 'backend'],
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120, 300]
)

BACKEND_SELECTIONS = Counter(
    'mediaedit_backend_selections_total',
    'Backend chosen per request',
    ['backend', 'reason']
)

STAGE_FAILURES = Counter(
    'mediaedit_stage_failures_total',
    'Failed pipeline stages by operation and error kind',
    ['operation', 'error_kind']
)

STAGE_LATENCY = Histogram(
    'mediaedit_stage_latency_seconds',
    'Single engine invocation latency',
    ['operation'],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60, 120]
)

CLEANUP_FAILURES = Counter(
    'mediaedit_cleanup_failures_total',
    'Temp artifacts that could not be removed'
)

REMOTE_ENGINE_UP = Gauge(
    'mediaedit_remote_engine_up',
    'Last observed remote processing service health (1 healthy, 0 not)'
)
