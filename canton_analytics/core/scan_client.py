"""
Canton Network Scan API client.

Talks to one or more upstream Scan nodes with automatic failover:

    ┌──────────────────────────────────────────────┐
    │  Node 1 (priority 1)  api.cantonnodes.com     │
    │  Node 2 (priority 2)  Global Synchronizer     │
    │  Node N (optional)                            │
    └──────────────────────────────────────────────┘
                         ↓
        rate-limit aware, error-counting failover
                         ↓
          GET cache (TTL) + in-flight dedup

Node list, response cache and in-flight registry belong to the client
instance. All state transitions happen between awaits, so no locking is
needed under asyncio.
"""

import asyncio
import functools
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

import httpx
import structlog

from canton_analytics.models.config import AnalyticsConfig, NodeConfig

logger = structlog.get_logger(__name__)

_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")


class ScanApiError(Exception):
    """Base error for upstream Scan API failures."""

    code = "SCAN_API_ERROR"

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "status": self.status, "code": self.code}


class RateLimitedError(ScanApiError):
    """Upstream answered 429 and the retry budget is spent."""

    code = "RATE_LIMIT"

    def __init__(self, message: str, retry_after: Optional[int] = None, status: Optional[int] = 429):
        super().__init__(message, status=status)
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class UpstreamUnavailableError(ScanApiError):
    """5xx or network-level failure after failover."""

    code = "UPSTREAM_UNAVAILABLE"


class UpstreamRejectedError(ScanApiError):
    """Non-retryable upstream rejection (4xx other than 429)."""

    code = "UPSTREAM_REJECTED"


@dataclass
class RateLimitInfo:
    """Rate-limit window reported by a node."""
    remaining: int
    reset: int  # Unix timestamp (seconds)
    limit: int


@dataclass
class ScanNode:
    """Upstream node and its health state."""
    url: str
    name: str
    priority: int
    consecutive_errors: int = 0
    last_error: Optional[float] = None
    rate_limit_info: Optional[RateLimitInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        rate_limit = None
        if self.rate_limit_info:
            rate_limit = {
                "remaining": self.rate_limit_info.remaining,
                "reset": self.rate_limit_info.reset,
                "limit": self.rate_limit_info.limit,
            }
        return {
            "url": self.url,
            "name": self.name,
            "priority": self.priority,
            "consecutive_errors": self.consecutive_errors,
            "last_error": self.last_error,
            "rate_limit": rate_limit,
        }


@dataclass
class NodeStatus:
    """Node plus whether it is the current one."""
    node: ScanNode
    is_active: bool


def cache_key(endpoint: str, params: Optional[Dict[str, Any]] = None, method: str = "GET") -> str:
    """Normalized key: path plus sorted query, prefixed by method for non-GET."""
    key = endpoint
    if params:
        pairs = sorted((str(k), str(v)) for k, v in params.items() if v is not None)
        if pairs:
            key = f"{endpoint}?{urlencode(pairs)}"
    method = method.upper()
    return key if method == "GET" else f"{method} {key}"


def _parse_int(value: Optional[str]) -> Optional[int]:
    """Leading integer of a header value; fractional parts are truncated."""
    if value is None:
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


class ScanApiClient:
    """
    Scan API client with rate limiting, failover, caching and dedup.

    Features:
    - Priority-ordered nodes, skipping nodes with too many consecutive errors
    - Honors X-RateLimit-* headers (waits up to a ceiling, else fails over)
    - GET responses cached for a TTL and deduplicated while in flight
    - Every failure surfaces as a typed ScanApiError
    """

    def __init__(self,
                 config: Optional[AnalyticsConfig] = None,
                 nodes: Optional[Sequence[NodeConfig]] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        """
        Initialize the Scan API client.

        Args:
            config: Analytics configuration (defaults from environment)
            nodes: Node list overriding ``config.nodes``
            transport: Optional httpx transport (tests use httpx.MockTransport)
            clock: Wall clock in epoch seconds
            sleep: Coroutine used for rate-limit waits
        """
        self.config = config or AnalyticsConfig()
        node_configs = list(nodes) if nodes is not None else list(self.config.nodes)
        if not node_configs:
            raise ValueError("At least one upstream node is required")

        # sorted() is stable, equal priorities keep configuration order
        self.nodes: List[ScanNode] = sorted(
            (ScanNode(url=n.url.rstrip('/'), name=n.name, priority=n.priority) for n in node_configs),
            key=lambda n: n.priority,
        )
        self.current_node_index = 0

        self._clock = clock
        self._sleep = sleep
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._in_flight: Dict[str, "asyncio.Future[Any]"] = {}

        self._http = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(self.config.request_timeout_seconds),
            headers={
                'Accept': 'application/json',
                'User-Agent': self.config.user_agent,
            },
        )

        self.logger = logger.bind(component="scan_client")
        self.logger.info("Scan API client initialized",
                         nodes=[n.name for n in self.nodes],
                         cache_ttl_ms=self.config.cache_ttl_ms,
                         max_retries=self.config.max_retries)

    # ============================================================
    # Node management
    # ============================================================

    @property
    def current_node(self) -> ScanNode:
        return self.nodes[self.current_node_index]

    def switch_to_next_node(self) -> None:
        """
        Advance to the next node with fewer errors than the threshold.

        If the walk wraps back to the starting node, nodes past the
        cooldown get their error count reset; the walk is not restarted.
        """
        start_index = self.current_node_index
        threshold = self.config.node_error_threshold

        while True:
            self.current_node_index = (self.current_node_index + 1) % len(self.nodes)
            node = self.current_node
            if node.consecutive_errors < threshold:
                self.logger.info("Switched node", node=node.name, index=self.current_node_index)
                return
            if self.current_node_index == start_index:
                break

        now = self._clock()
        for node in self.nodes:
            if node.consecutive_errors >= threshold and node.last_error is not None:
                if now - node.last_error > self.config.node_cooldown_seconds:
                    node.consecutive_errors = 0

        self.logger.warning("All nodes exhausted", current=self.current_node.name)

    def _is_rate_limited(self, node: ScanNode) -> bool:
        info = node.rate_limit_info
        if info is None:
            return False

        if self._clock() < info.reset:
            return info.remaining <= 0

        # Window expired
        node.rate_limit_info = None
        return False

    def _record_rate_limit(self, node: ScanNode, response: httpx.Response) -> None:
        remaining = _parse_int(response.headers.get('X-RateLimit-Remaining'))
        reset = _parse_int(response.headers.get('X-RateLimit-Reset'))
        limit = _parse_int(response.headers.get('X-RateLimit-Limit'))

        if remaining is not None and reset is not None and limit is not None:
            node.rate_limit_info = RateLimitInfo(remaining=remaining, reset=reset, limit=limit)

    def get_node_status(self) -> List[NodeStatus]:
        """Current node status."""
        return [
            NodeStatus(node=node, is_active=index == self.current_node_index)
            for index, node in enumerate(self.nodes)
        ]

    # ============================================================
    # Requests
    # ============================================================

    async def fetch(self,
                    endpoint: str,
                    params: Optional[Dict[str, Any]] = None,
                    method: str = "GET",
                    json: Any = None,
                    max_retries: Optional[int] = None) -> Any:
        """
        Fetch JSON from the best available node.

        GET requests are served from cache while fresh and deduplicated
        while in flight: concurrent callers share one upstream request and
        its outcome. Cancelling a caller does not cancel that request.
        """
        method = method.upper()
        retries = max_retries if max_retries is not None else self.config.max_retries

        if method != "GET":
            return await self._fetch_with_failover(endpoint, params, method, json, retries)

        key = cache_key(endpoint, params)

        cached = self._cache.get(key)
        if cached is not None:
            data, stored_at = cached
            if self._clock() - stored_at < self.config.cache_ttl_seconds:
                self.logger.debug("Cache hit", key=key)
                return data

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._fetch_with_failover(endpoint, params, method, json, retries)
            )
            self._in_flight[key] = pending
            pending.add_done_callback(functools.partial(self._settle, key))
        else:
            self.logger.debug("Joining in-flight request", key=key)

        return await asyncio.shield(pending)

    def _settle(self, key: str, task: "asyncio.Future[Any]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

        if task.cancelled():
            return

        error = task.exception()
        if error is None:
            self._cache[key] = (task.result(), self._clock())
        else:
            self.logger.debug("Request failed, not cached", key=key, error=str(error))

    async def _fetch_with_failover(self,
                                   endpoint: str,
                                   params: Optional[Dict[str, Any]],
                                   method: str,
                                   json: Any,
                                   retries: int) -> Any:
        attempts = max(1, retries)
        last_error: Optional[ScanApiError] = None
        query = {k: v for k, v in (params or {}).items() if v is not None}

        for attempt in range(attempts):
            node = self.current_node
            is_last = attempt == attempts - 1

            if self._is_rate_limited(node):
                wait_seconds = node.rate_limit_info.reset - self._clock()

                if 0 < wait_seconds < self.config.rate_limit_wait_ceiling_seconds:
                    self.logger.info("Rate limited, waiting", node=node.name, wait_seconds=round(wait_seconds, 3))
                    await self._sleep(wait_seconds)
                else:
                    self.logger.info("Rate limit too long, switching node", node=node.name,
                                     wait_seconds=round(wait_seconds, 3))
                    last_error = RateLimitedError(
                        f"Rate limit window too long on {node.name}",
                        retry_after=max(0, math.ceil(wait_seconds)),
                        status=None,
                    )
                    self.switch_to_next_node()
                    continue

            url = f"{node.url}{endpoint}"
            try:
                response = await self._http.request(method, url, params=query or None, json=json)
            except httpx.TransportError as e:
                node.consecutive_errors += 1
                node.last_error = self._clock()
                last_error = UpstreamUnavailableError(f"Network error on {node.name}: {e}")
                last_error.__cause__ = e

                self.logger.warning("Network error",
                                    node=node.name,
                                    endpoint=endpoint,
                                    attempt=attempt + 1,
                                    error=str(e),
                                    consecutive_errors=node.consecutive_errors)

                if is_last:
                    raise last_error from e
                self.switch_to_next_node()
                continue

            self._record_rate_limit(node, response)

            if response.status_code == 429:
                retry_after = _parse_int(response.headers.get('Retry-After'))
                node.consecutive_errors += 1
                node.last_error = self._clock()
                self.switch_to_next_node()

                last_error = RateLimitedError(
                    f"Rate limit exceeded on {node.name}",
                    retry_after=retry_after if retry_after is not None else 60,
                )
                self.logger.warning("Rate limited",
                                    node=node.name,
                                    endpoint=endpoint,
                                    attempt=attempt + 1,
                                    retries=attempts)
                if is_last:
                    raise last_error
                continue

            if not response.is_success:
                # Node answered, so it is reachable
                node.consecutive_errors = 0
                message = self._error_message(response)

                if response.status_code >= 500:
                    last_error = UpstreamUnavailableError(message, status=response.status_code)
                    self.logger.warning("Upstream server error",
                                        node=node.name,
                                        endpoint=endpoint,
                                        status=response.status_code,
                                        attempt=attempt + 1)
                    if is_last:
                        raise last_error
                    self.switch_to_next_node()
                    continue

                self.logger.warning("Upstream rejected request",
                                    node=node.name,
                                    endpoint=endpoint,
                                    status=response.status_code)
                raise UpstreamRejectedError(message, status=response.status_code)

            node.consecutive_errors = 0
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamUnavailableError(
                    f"Invalid JSON from {node.name}", status=response.status_code
                ) from e

        raise last_error or UpstreamUnavailableError("All retry attempts failed")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        message = f"API request failed: {response.reason_phrase or f'HTTP {response.status_code}'}"
        try:
            body = response.json()
        except ValueError:
            return message
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            return body["message"]
        return message

    # ============================================================
    # Lifecycle
    # ============================================================

    def clear_cache(self) -> None:
        """Clear response cache (e.g. for testing or forced refresh)."""
        self._cache.clear()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ScanApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
