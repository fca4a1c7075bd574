import time
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TTLCache:
    """In-memory single-value cache with a TTL and an injectable clock."""

    def __init__(self, ttl_seconds: int = 86400, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[Any] = None
        self._timestamp: Optional[float] = None

    def get(self) -> Optional[Any]:
        """Get cached value if still valid."""
        if self._value is None or self._timestamp is None:
            return None

        if self._clock() - self._timestamp >= self.ttl_seconds:
            logger.info("Cache expired")
            self.invalidate()
            return None

        return self._value

    def set(self, value: Any) -> None:
        self._value = value
        self._timestamp = self._clock()

    def invalidate(self) -> None:
        """Manually invalidate cache."""
        self._value = None
        self._timestamp = None

    def age_seconds(self) -> Optional[float]:
        if self._timestamp is None:
            return None
        return self._clock() - self._timestamp
