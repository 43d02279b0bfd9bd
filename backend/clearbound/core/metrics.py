"""
Prometheus metrics configuration
"""
import os

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from prometheus_client.registry import REGISTRY

if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    from prometheus_client import CollectorRegistry
    from prometheus_client.multiprocess import MultiProcessCollector

    REGISTRY = CollectorRegistry()
    MultiProcessCollector(REGISTRY)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
)

http_errors_total = Counter(
    'http_errors_total',
    'Total number of HTTP errors',
    ['method', 'endpoint', 'status_code', 'error_type']
)

# ============================================================================
# Generator Metrics
# ============================================================================

llm_requests_total = Counter(
    'llm_requests_total',
    'Total number of generator calls',
    ['model', 'stage', 'status']  # status: 'success', 'timeout', 'provider_error', 'empty'
)

llm_request_duration_seconds = Histogram(
    'llm_request_duration_seconds',
    'Generator call duration in seconds',
    ['model', 'stage'],
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0)
)

# ============================================================================
# Pipeline Metrics
# ============================================================================

generation_stage_total = Counter(
    'generation_stage_total',
    'Generation stage outcomes',
    ['stage', 'outcome']  # outcome: 'valid', 'repaired', 'fallback', 'failed'
)

postprocess_adjustments_total = Counter(
    'postprocess_adjustments_total',
    'Deterministic adjustments applied to delivered fields',
    ['field', 'adjustment']  # adjustment: 'truncated', 'padded', 'reshaped'
)

template_cache_lookups_total = Counter(
    'template_cache_lookups_total',
    'Template cache lookups',
    ['outcome']  # outcome: 'hit', 'miss', 'revalidated', 'stale', 'error'
)


def get_metrics() -> bytes:
    """Get metrics in Prometheus format"""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics endpoint"""
    return CONTENT_TYPE_LATEST
