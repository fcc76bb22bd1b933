"""
Prometheus metrics endpoint.

Exposes system metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Inbound Webhook Metrics
# ============================================

webhook_deliveries_total = Counter(
    'webhook_deliveries_total',
    'Total inbound webhook deliveries processed',
    ['topic', 'status']
)

webhook_signature_failures = Counter(
    'webhook_signature_failures_total',
    'Inbound webhooks rejected for a bad or missing signature',
    ['topic']
)

webhook_processing_duration = Histogram(
    'webhook_processing_duration_seconds',
    'Time spent processing an inbound webhook',
    ['topic'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

webhook_retries_total = Counter(
    'webhook_retries_total',
    'Delivery replays attempted by the retry worker',
    ['topic', 'status']
)

# ============================================
# Remote Platform Metrics
# ============================================

remote_api_calls_total = Counter(
    'woocommerce_api_calls_total',
    'Calls made to the WooCommerce REST API',
    ['method', 'outcome']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_webhook_delivery(topic: str, status: str, duration_seconds: float):
    """Record an inbound delivery outcome."""
    webhook_deliveries_total.labels(topic=topic, status=status).inc()
    webhook_processing_duration.labels(topic=topic).observe(duration_seconds)


def track_signature_failure(topic: str):
    webhook_signature_failures.labels(topic=topic).inc()


def track_webhook_retry(topic: str, status: str):
    webhook_retries_total.labels(topic=topic, status=status).inc()


def track_remote_call(method: str, outcome: str):
    remote_api_calls_total.labels(method=method, outcome=outcome).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
