import time
import logging
from functools import wraps
from typing import Optional

from machinebio.core.prometheus_metrics import prometheus_collector

logger = logging.getLogger(__name__)


def track_performance(service_name: Optional[str] = None):
    """
    Time an async service method and count its outcome in Prometheus.

    @track_performance(service_name="SpotService")
    async def reveal_spot(self, spot_id, caller_id): ...

    Domain errors count as failed calls and are re-raised untouched.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            service = service_name or (type(args[0]).__name__ if args else func.__module__)
            started = time.perf_counter()
            outcome = "error"
            try:
                result = await func(*args, **kwargs)
                outcome = "success"
                return result
            except Exception as e:
                logger.warning(f"{service}.{func.__name__} rejected: {e}")
                raise
            finally:
                elapsed = time.perf_counter() - started
                prometheus_collector.record_service_call(
                    service_name=service,
                    method_name=func.__name__,
                    duration_seconds=elapsed,
                    success=outcome == "success",
                )
                logger.debug(
                    f"{service}.{func.__name__} finished",
                    extra={
                        "service_name": service,
                        "method_name": func.__name__,
                        "duration_ms": round(elapsed * 1000, 2),
                        "outcome": outcome,
                    },
                )

        return wrapper
    return decorator
