"""
Integration tests for the HTTP API against a stubbed upstream.
"""

import pytest
from fastapi.testclient import TestClient

from canton_analytics.api.main import create_app


@pytest.fixture
def api(client):
    app = create_app(client=client)
    return TestClient(app)


class TestHealthEndpoints:

    def test_root(self, api):
        response = api.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "operational"

    def test_health_reports_nodes(self, api, upstream):
        response = api.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert [n["name"] for n in data["nodes"]] == ["node-a", "node-b"]
        assert data["nodes"][0]["is_active"] is True
        assert upstream.requests == []

    def test_health_degraded_when_all_nodes_failing(self, api, client):
        for node in client.nodes:
            node.consecutive_errors = 5

        assert api.get("/api/v1/health").json()["status"] == "degraded"

    def test_process_time_header(self, api):
        assert "X-Process-Time" in api.get("/api/v1/nodes").headers


class TestNetworkEndpoints:

    def test_validators(self, api, upstream, validators_payload, consensus_payload):
        upstream.json("/api/validators", validators_payload)
        upstream.json("/api/consensus", consensus_payload)

        response = api.get("/api/v1/validators")

        assert response.status_code == 200
        first = response.json()[0]
        assert first["validator_id"] == "v1::abc"
        assert first["status"] == "at_risk"
        assert first["liveness_rounds"] == 10

    def test_validator_detail_unknown(self, api, upstream, validators_payload, consensus_payload):
        upstream.json("/api/validators", validators_payload)
        upstream.json("/api/consensus", consensus_payload)

        response = api.get("/api/v1/validators/nobody")

        assert response.status_code == 200
        assert response.json()["status"] == "unknown"

    def test_round(self, api, upstream, consensus_payload, overview_payload):
        upstream.json("/api/consensus", consensus_payload)
        upstream.json("/api/overview", overview_payload)

        assert api.get("/api/v1/round").json()["round"] == 123456

    def test_vote_detail_not_found(self, api, upstream, overview_payload):
        upstream.json("/api/overview", overview_payload)

        response = api.get("/api/v1/governance/votes/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "HTTP_404"

    def test_votes(self, api, upstream, overview_payload):
        upstream.json("/api/overview", overview_payload)

        votes = api.get("/api/v1/governance/votes").json()

        assert [v["tracking_cid"] for v in votes] == ["TRACK-1"]

    def test_updates_window_validation(self, api):
        response = api.get("/api/v1/updates", params={
            "start": "2024-02-01T00:00:00Z",
            "end": "2024-01-01T00:00:00Z",
        })

        assert response.status_code == 422

    def test_updates(self, api, upstream):
        upstream.json("/api/v2/updates", {"updates": [
            {"updateId": "u1", "recordTime": "2024-01-15T00:00:00Z"},
        ]})

        response = api.get("/api/v1/updates", params={
            "start": "2024-01-01T00:00:00Z",
            "end": "2024-01-31T00:00:00Z",
        })

        assert response.status_code == 200
        assert [u["update_id"] for u in response.json()] == ["u1"]


class TestErrorMapping:
    """Upstream failures surface as distinguishable HTTP errors."""

    def test_rate_limited(self, api, upstream):
        upstream.json("/api/overview", {}, status=429, headers={"Retry-After": "7"})

        response = api.get("/api/v1/governance/votes")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "7"
        assert response.json()["error"]["code"] == "RATE_LIMIT"

    def test_unavailable(self, api, upstream):
        upstream.json("/api/overview", {}, status=500)

        response = api.get("/api/v1/governance/votes")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "UPSTREAM_UNAVAILABLE"

    def test_rejected_keeps_status(self, api, upstream):
        upstream.json("/api/overview", {"message": "forbidden"}, status=403)

        response = api.get("/api/v1/governance/votes")

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "forbidden"


class TestFinOpsEndpoint:

    def test_stub_data_gives_infinite_runway(self, api, upstream, validators_payload, consensus_payload):
        upstream.json("/api/validators", validators_payload)
        upstream.json("/api/consensus", consensus_payload)

        response = api.get("/api/v1/validators/v1::abc/finops", params={"compute": 30})

        assert response.status_code == 200
        data = response.json()
        assert data["runway"]["days_remaining"] is None
        assert data["runway"]["warning_level"] == "healthy"
        assert data["net_margin"]["total_costs"] == 30
        assert data["health"]["status"] == "critical"
        assert [s["name"] for s in data["scenarios"]] == ["idle", "moderate", "heavy"]
        assert all(s["runway_days"] is None for s in data["scenarios"])


class TestReportEndpoint:

    def _stub_updates(self, upstream):
        upstream.json("/api/v2/updates", {"updates": []})

    def test_json_report(self, api, upstream):
        self._stub_updates(upstream)

        response = api.get("/api/v1/reports/featured-app", params={"party_id": "acme::1", "app_name": "Acme"})

        assert response.status_code == 200
        data = response.json()
        assert data["report"]["app_name"] == "Acme"
        assert len(data["evidence"]["data_hash"]) == 64
        assert len(data["checklist"]) == 4
        assert data["completion_percentage"] == pytest.approx(75.0)

    def test_csv_report(self, api, upstream):
        self._stub_updates(upstream)

        response = api.get("/api/v1/reports/featured-app", params={"party_id": "acme::1", "format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.text.startswith("Field,Value")

    def test_party_required(self, api):
        assert api.get("/api/v1/reports/featured-app").status_code == 422
