"""Pytest configuration and fixtures for Canton analytics tests."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.scan_client import ScanApiClient
from canton_analytics.models.config import AnalyticsConfig, NodeConfig


# ============================================================================
# TIME FIXTURES
# ============================================================================

class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records waits and advances the clock."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)


@pytest.fixture
def fixed_now():
    """Reference 'now' for calculator and report tests."""
    return datetime(2024, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# UPSTREAM FIXTURES
# ============================================================================

Responder = Union[httpx.Response, Callable[[httpx.Request], Any]]


class UpstreamStub:
    """
    Canned Scan API.

    Routes match on path, optionally narrowed to one host. A route with
    several responses serves them in order and then repeats the last one.
    Unknown routes answer 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[Optional[str], str], List[Responder]] = {}
        self.requests: List[httpx.Request] = []

    def route(self, path: str, *responses: Responder, host: Optional[str] = None) -> None:
        self.routes[(host, path)] = list(responses)

    def json(self, path: str, payload: Any, status: int = 200,
             headers: Optional[Dict[str, str]] = None, host: Optional[str] = None) -> None:
        self.route(path, httpx.Response(status, json=payload, headers=headers), host=host)

    def calls(self, path: str, host: Optional[str] = None) -> int:
        return sum(
            1 for r in self.requests
            if r.url.path == path and (host is None or r.url.host == host)
        )

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.raw_path.decode().split("?")[0]

        responders = self.routes.get((request.url.host, path)) or self.routes.get((None, path))
        if not responders:
            return httpx.Response(404, json={"message": f"no route for {path}"})

        responder = responders.pop(0) if len(responders) > 1 else responders[0]
        if isinstance(responder, httpx.Response):
            # Fresh copy, a response object is bound to one request
            return httpx.Response(responder.status_code, headers=responder.headers, content=responder.content)

        response = responder(request)
        if hasattr(response, "__await__"):
            response = await response
        return response


@pytest.fixture
def upstream():
    return UpstreamStub()


@pytest.fixture
def test_config():
    """Two-node configuration."""
    return AnalyticsConfig(
        nodes=[
            NodeConfig(url="https://node-a.test", name="node-a", priority=1),
            NodeConfig(url="https://node-b.test/", name="node-b", priority=2),
        ],
    )


@pytest.fixture
def make_client(test_config, upstream, clock, sleep):
    """Factory for clients wired to the upstream stub and fake time."""

    def _make(config: Optional[AnalyticsConfig] = None,
              nodes: Optional[List[NodeConfig]] = None) -> ScanApiClient:
        return ScanApiClient(
            config or test_config,
            nodes=nodes,
            transport=httpx.MockTransport(upstream),
            clock=clock,
            sleep=sleep,
        )

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def service(client, sleep, fixed_now):
    return ScanDataService(client, sleep=sleep, now=lambda: fixed_now)


# ============================================================================
# SAMPLE PAYLOADS
# ============================================================================

@pytest.fixture
def validators_payload():
    return {
        "validator_licenses": [
            {"payload": {
                "validator": "v1::abc",
                "sponsor": "sv-one",
                "lastActiveAt": "2024-01-30T10:00:00Z",
                "faucetState": {"numCouponsMissed": 3},
            }},
            {"payload": {
                "validator": "Alpha::1220ff",
                "sponsor": "sv-two",
                "faucetState": {"numCouponsMissed": "0"},
            }},
            {"payload": {"sponsor": "sv-three"}},
        ]
    }


@pytest.fixture
def consensus_payload():
    return {
        "latest_block": {
            "signed_header": {
                "header": {"height": "123456", "time": "2024-01-31T11:59:00Z"}
            }
        },
        "validators": [
            {"address": "v1", "voting_power": "10"},
            {"address": "PARTY::1220FF", "voting_power": 7},
            {"address": "broken", "voting_power": "n/a"},
        ],
    }


@pytest.fixture
def overview_payload():
    return {
        "consensusHeight": 999,
        "openVotes": [
            {
                "contract_id": "00abc",
                "trackingCid": "TRACK-1",
                "status": "open",
                "acceptCount": 4,
                "rejectCount": "1",
                "payload": {
                    "requester": "sv-one",
                    "reason": "Raise fee",
                    "action": "SRARC_SetConfig",
                    "voteBefore": "2024-02-07T00:00:00Z",
                    "votes": [],
                    "trackingCid": "TRACK-1",
                },
            },
            "not-a-vote",
        ],
    }
