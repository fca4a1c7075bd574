import logging

from prometheus_client import Counter, Histogram, Info, generate_latest
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Prometheus Registry
REGISTRY = CollectorRegistry()

service_requests_total = Counter(
    'machinebio_service_requests_total',
    'Total service method calls',
    ['status', 'service', 'method'],
    registry=REGISTRY
)

service_duration_seconds = Histogram(
    'machinebio_service_duration_seconds',
    'Service method duration in seconds',
    ['service', 'method'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0],
    registry=REGISTRY
)

system_info = Info(
    'machinebio_info',
    'System information',
    registry=REGISTRY
)

# Spot challenge metrics
guesses_submitted_total = Counter(
    'machinebio_guesses_submitted_total',
    'Guesses submitted on challenge spots',
    registry=REGISTRY
)

spots_revealed_total = Counter(
    'machinebio_spots_revealed_total',
    'Challenge spots revealed',
    registry=REGISTRY
)

guesses_scored_total = Counter(
    'machinebio_guesses_scored_total',
    'Guesses scored at reveal time',
    ['result'],
    registry=REGISTRY
)


class PrometheusMetricsCollector:
    """Records service and spot challenge metrics into the app registry"""

    def __init__(self):
        system_info.info({
            'version': '0.1.0',
            'service': 'machinebio'
        })

    def record_service_call(
        self,
        service_name: str,
        method_name: str,
        duration_seconds: float,
        success: bool,
    ):
        status = 'success' if success else 'error'

        service_requests_total.labels(
            status=status,
            service=service_name,
            method=method_name
        ).inc()

        service_duration_seconds.labels(
            service=service_name,
            method=method_name
        ).observe(duration_seconds)

    def record_guess_submitted(self):
        guesses_submitted_total.inc()

    def record_reveal(self, correct: int, incorrect: int):
        spots_revealed_total.inc()
        if correct:
            guesses_scored_total.labels(result='correct').inc(correct)
        if incorrect:
            guesses_scored_total.labels(result='incorrect').inc(incorrect)

    def get_prometheus_metrics(self) -> bytes:
        """Get Prometheus metrics in text format"""
        return generate_latest(REGISTRY)


# Global instance
prometheus_collector = PrometheusMetricsCollector()
