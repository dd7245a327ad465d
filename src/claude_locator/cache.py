"""Short-lived on-disk cache of the last detection outcome.

One JSON document per user:
    {"timestamp": ..., "platform": ..., "result": {...}, "ttl": ...}

A missing, corrupt, expired or foreign-platform file is a cache miss, never an
error. There is no cross-process locking: concurrent writers can clobber each
other, which only costs a repeated detection.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from .models import CachedResult, DetectionResult, HostPlatform

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class DetectionCache:
    """Platform-scoped cache with a TTL that depends on the outcome."""

    def __init__(
        self,
        cache_file: Path,
        host_platform: HostPlatform,
        success_ttl_seconds: int = 30 * 60,
        failure_ttl_seconds: int = 5 * 60,
        clock: Callable[[], int] = _now_ms
    ):
        self.cache_file = Path(cache_file)
        self.host_platform = host_platform
        self.success_ttl_ms = success_ttl_seconds * 1000
        self.failure_ttl_ms = failure_ttl_seconds * 1000
        self._clock = clock

    def ttl_for(self, result: DetectionResult) -> int:
        """Successes live long; failures expire quickly so they retry sooner."""
        return self.success_ttl_ms if result.success else self.failure_ttl_ms

    def load(self) -> Optional[CachedResult]:
        """Read the raw cache document, or None if unreadable."""
        try:
            return CachedResult.model_validate_json(self.cache_file.read_text(encoding="utf-8"))
        except Exception:
            return None

    def get(self) -> Optional[DetectionResult]:
        """Return the cached result if still valid for this host."""
        entry = self.load()
        if entry is None:
            return None
        if not entry.is_valid(self._clock(), self.host_platform):
            logger.debug("Detection cache entry expired or recorded for another platform")
            return None
        return entry.result

    def put(self, result: DetectionResult) -> None:
        """Overwrite the cache file with result. Failures are logged only."""
        entry = CachedResult(
            timestamp=self._clock(),
            platform=self.host_platform,
            result=result,
            ttl=self.ttl_for(result),
        )
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(entry.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to cache Claude detection result: %s", e)

    def clear(self) -> None:
        """Delete the cache file if present."""
        try:
            self.cache_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clear detection cache: %s", e)
