"""
Per-endpoint health bookkeeping for the RPC connection manager.
"""

import time
from dataclasses import dataclass, asdict, replace
from typing import Callable, Dict, List, Optional, Sequence

from incubator.core.exceptions import ConfigurationError


@dataclass
class EndpointHealth:
    """Outcome counters for a single RPC endpoint."""
    url: str
    last_success_time: Optional[float] = None
    last_attempt_time: Optional[float] = None
    consecutive_failures: int = 0
    total_attempts: int = 0
    total_failures: int = 0

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return (self.total_attempts - self.total_failures) / self.total_attempts

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["success_rate"] = round(self.success_rate, 3)
        return data


class EndpointPool:
    """
    Static, ordered set of RPC endpoints with health counters.

    Endpoints are never evicted: an unhealthy endpoint stays in the rotation
    and is simply skipped over by round-robin when the manager switches.
    """

    def __init__(self, urls: Sequence[str], clock: Callable[[], float] = time.monotonic):
        if not urls:
            raise ConfigurationError("Endpoint pool requires at least one RPC endpoint")
        self.urls: List[str] = list(urls)
        self._clock = clock
        self._health: Dict[str, EndpointHealth] = {}
        self.reset()

    def __len__(self) -> int:
        return len(self.urls)

    def reset(self) -> None:
        """Forget all recorded outcomes."""
        self._health = {url: EndpointHealth(url=url) for url in self.urls}

    def url_at(self, index: int) -> str:
        return self.urls[index % len(self.urls)]

    def next_index(self, index: int) -> int:
        """Round-robin successor of ``index``."""
        return (index + 1) % len(self.urls)

    def health(self, url: str) -> EndpointHealth:
        return self._health[url]

    def record_attempt(self, url: str) -> None:
        health = self._health[url]
        health.last_attempt_time = self._clock()
        health.total_attempts += 1

    def record_success(self, url: str) -> None:
        health = self._health[url]
        health.last_success_time = self._clock()
        health.consecutive_failures = 0

    def record_failure(self, url: str) -> None:
        health = self._health[url]
        health.consecutive_failures += 1
        health.total_failures += 1

    def snapshot(self) -> List[EndpointHealth]:
        """Copies of the health table in configured order."""
        return [replace(self._health[url]) for url in self.urls]
