from fastapi import Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from machinebio.core.environment import is_rate_limit_enabled
from machinebio.core.prometheus_metrics import REGISTRY

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],  # Global default
    enabled=is_rate_limit_enabled(),
)

# Metric for monitoring
rate_limit_exceeded_counter = Counter(
    'machinebio_rate_limit_exceeded_total',
    'Total rate limit violations',
    ['endpoint'],
    registry=REGISTRY
)


def custom_rate_limit_exceeded(request: Request, exc: RateLimitExceeded):
    rate_limit_exceeded_counter.labels(endpoint=request.url.path).inc()

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limited",
            "message": f"Rate limit exceeded ({exc.detail}). Please try again later.",
        },
    )
