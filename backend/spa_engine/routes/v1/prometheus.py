"""
Prometheus metrics endpoint for monitoring infrastructure.

This is a PUBLIC endpoint (no authentication required) following
standard Prometheus practices. It exposes metrics collected from
the @measure_operation decorators and the booking and voucher counters.
"""

from fastapi import APIRouter, Response
from prometheus_client import Counter

from ...monitoring.prometheus_metrics import REGISTRY, prometheus_metrics

router = APIRouter(tags=["monitoring"])

_scrape_counter = Counter(
    "spa_engine_prometheus_scrapes_total",
    "Total number of Prometheus metrics scrapes",
    registry=REGISTRY,
)


@router.get("/prometheus", include_in_schema=False)
def get_prometheus_metrics() -> Response:
    """Expose metrics in the Prometheus text format."""
    _scrape_counter.inc()
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
        headers={"Cache-Control": "no-cache"},
    )
