"""
Resilient RPC connection manager with failover across multiple endpoints.

This service provides:
- A global request throttle shared by every caller
- Liveness probing of the active endpoint before each dispatch
- Round-robin failover with a cooldown between endpoint switches
- Exponential backoff retries for transient infrastructure failures
- Per-endpoint health statistics and an on-demand health check
"""

import asyncio
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog
from solana.rpc.async_api import AsyncClient

from incubator.core.config import Settings, SolanaConfig, settings as default_settings
from incubator.core.exceptions import EndpointUnavailableError, classify_error
from incubator.services.endpoint_pool import EndpointPool


logger = structlog.get_logger(__name__)

T = TypeVar("T")
RpcOperation = Callable[[AsyncClient], Awaitable[T]]
ClientFactory = Callable[[str], AsyncClient]


@dataclass
class ConnectionState:
    """Mutable routing state owned by the connection manager."""
    active_endpoint_index: int = 0
    last_request_time: Optional[float] = None
    last_switch_time: Optional[float] = None
    switch_count: int = 0


class ConnectionManager:
    """
    Long-lived owner of the RPC clients and the endpoint health table.

    Every read or write against the ledger goes through
    ``execute_with_retry``, which throttles, verifies the active endpoint,
    dispatches the caller's operation and retries transient failures on the
    next endpoint. All mutable state is confined to this object and touched
    only from the event loop it runs on.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = config or default_settings
        self.logger = logger.bind(service="connection_manager")
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock
        self._sleep = sleep
        self._throttle_lock = asyncio.Lock()

        self.pool = EndpointPool(self.settings.rpc_endpoints, clock=clock)
        self.state = ConnectionState()
        self._clients: Dict[str, AsyncClient] = {}

        # Construction performs no I/O; connection errors surface on first use.
        self._client_for(self.active_endpoint)

    def _default_client_factory(self, url: str) -> AsyncClient:
        return AsyncClient(url, **SolanaConfig.get_rpc_config(self.settings))

    def _client_for(self, url: str) -> AsyncClient:
        client = self._clients.get(url)
        if client is None:
            client = self._client_factory(url)
            self._clients[url] = client
        return client

    @property
    def active_endpoint(self) -> str:
        return self.pool.url_at(self.state.active_endpoint_index)

    @property
    def active_client(self) -> AsyncClient:
        return self._client_for(self.active_endpoint)

    async def _wait_for_rate_limit(self) -> None:
        """Block until the global request interval has elapsed."""
        async with self._throttle_lock:
            if self.state.last_request_time is not None:
                elapsed = self._clock() - self.state.last_request_time
                wait_time = self.settings.request_interval - elapsed
                if wait_time > 0:
                    self.logger.debug("Throttling RPC request", wait_seconds=round(wait_time, 3))
                    await self._sleep(wait_time)
            self.state.last_request_time = self._clock()

    def _can_switch(self) -> bool:
        if self.state.last_switch_time is None:
            return True
        elapsed = self._clock() - self.state.last_switch_time
        return elapsed >= self.settings.min_endpoint_switch_interval

    def _switch_endpoint(self, reason: str) -> bool:
        """Rotate to the next endpoint unless the switch cooldown is active."""
        if not self._can_switch():
            self.logger.debug("Endpoint switch suppressed by cooldown", reason=reason)
            return False

        previous = self.active_endpoint
        self.state.active_endpoint_index = self.pool.next_index(self.state.active_endpoint_index)
        self.state.last_switch_time = self._clock()
        self.state.switch_count += 1

        self.logger.warning(
            "Switched RPC endpoint",
            previous=previous,
            current=self.active_endpoint,
            reason=reason
        )
        return True

    async def _probe(self, url: str) -> AsyncClient:
        client = self._client_for(url)
        self.pool.record_attempt(url)
        try:
            await asyncio.wait_for(client.get_slot(), timeout=self.settings.probe_timeout)
        except Exception as e:
            self.pool.record_failure(url)
            raise EndpointUnavailableError(url, str(e) or type(e).__name__) from e
        self.pool.record_success(url)
        return client

    async def _verify_connection(self) -> AsyncClient:
        """Return a client whose endpoint answered the liveness probe."""
        try:
            return await self._probe(self.active_endpoint)
        except EndpointUnavailableError as e:
            self.logger.warning("Liveness probe failed", endpoint=self.active_endpoint, error=str(e))
            if not self._switch_endpoint(reason="liveness probe failed"):
                raise
        return await self._probe(self.active_endpoint)

    async def execute_with_retry(
        self,
        operation: RpcOperation,
        max_retries: Optional[int] = None
    ) -> T:
        """
        Run ``operation(client)`` with throttling, failover and retries.

        Args:
            operation: Coroutine function receiving a verified ``AsyncClient``
            max_retries: Total attempts (uses config default if None)

        Returns:
            Whatever the operation returns

        Raises:
            The operation's own exception immediately when it is not
            retryable, otherwise the last error once attempts run out
        """
        attempts = max(1, max_retries if max_retries is not None else self.settings.max_retries)
        await self._wait_for_rate_limit()

        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            url = self.active_endpoint
            dispatched = False
            try:
                client = await self._verify_connection()
                url = self.active_endpoint
                self.pool.record_attempt(url)
                dispatched = True
                result = await operation(client)

            except Exception as e:
                kind = classify_error(e)
                if not kind.retryable:
                    self.logger.info(
                        "RPC operation rejected",
                        endpoint=url,
                        kind=kind.value,
                        error=str(e)
                    )
                    raise

                last_error = e
                if dispatched:
                    self.pool.record_failure(url)

                self.logger.warning(
                    "RPC operation failed",
                    endpoint=url,
                    attempt=attempt + 1,
                    max_retries=attempts,
                    error=str(e),
                    error_type=type(e).__name__
                )

                self._switch_endpoint(reason="operation failed")

                if attempt < attempts - 1:
                    await self._sleep(self.settings.retry_base_delay * (2 ** attempt))
                continue

            self.pool.record_success(url)
            if attempt > 0:
                self.logger.info("RPC operation succeeded after retries", endpoint=url, attempt=attempt + 1)
            return result

        self.logger.error(
            "All RPC attempts failed",
            max_retries=attempts,
            last_error=str(last_error)
        )
        raise last_error

    async def reset_connection(self) -> None:
        """Drop every client and all routing state, then target endpoint 0 again."""
        clients = list(self._clients.values())
        self._clients = {}
        self.state = ConnectionState()
        self.pool.reset()
        self._client_for(self.active_endpoint)

        for client in clients:
            await self._close_client(client)

        self.logger.info("Connection manager reset", endpoint=self.active_endpoint)

    async def _close_client(self, client: AsyncClient) -> None:
        try:
            await client.close()
        except Exception as e:
            self.logger.warning("Error closing RPC client", error=str(e))

    async def close(self) -> None:
        """Clean up all client connections."""
        clients = list(self._clients.values())
        self._clients = {}
        for client in clients:
            await self._close_client(client)
        self.logger.info("All RPC clients closed")

    def get_stats(self) -> Dict[str, Any]:
        """Routing state and per-endpoint health."""
        return {
            "active_endpoint": self.active_endpoint,
            "state": asdict(self.state),
            "endpoints": [health.to_dict() for health in self.pool.snapshot()],
        }

    async def health_check(self) -> Dict[str, Any]:
        """Probe every configured endpoint once without rotating."""
        results = {}

        for url in self.pool.urls:
            start_time = self._clock()
            try:
                await self._probe(url)
                results[url] = {
                    "healthy": True,
                    "response_time": self._clock() - start_time,
                    "error": None
                }
            except EndpointUnavailableError as e:
                results[url] = {
                    "healthy": False,
                    "response_time": None,
                    "error": e.details.get("reason", str(e))
                }

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": results,
            "stats": self.get_stats()
        }


# Global instance
_connection_manager: Optional[ConnectionManager] = None


async def get_connection_manager() -> ConnectionManager:
    """Get or create the process-wide ConnectionManager instance."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


async def close_connection_manager():
    """Close the process-wide ConnectionManager instance."""
    global _connection_manager
    if _connection_manager:
        await _connection_manager.close()
        _connection_manager = None
