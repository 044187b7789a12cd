"""Tests for the FastAPI API endpoints."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from ucas_engine.api.app import create_app
from ucas_engine.config import ProposalConfig, UcasConfig
from ucas_engine.models.resource import PricingInfo, ResourceInfo, UsageMetrics
from ucas_engine.proposal.ledger import ProposalLedger
from ucas_engine.proposal.store import ProposalStore
from ucas_engine.simulation.resolvers import InMemoryResourceCatalog


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _make_catalog() -> InMemoryResourceCatalog:
    catalog = InMemoryResourceCatalog()
    catalog.register(
        ResourceInfo(id="i-web", csp="AWS", service="EC2",
                     tags={"owner": "web", "env": "dev"}, instance_type="m5.xlarge"),
        UsageMetrics(avg=0.2, p99=0.5, idle_ratio=0.5, uptime_days=200),
        PricingInfo(unit="hour", unit_price=0.1, commitment_applicable=True,
                    commitment_price=0.06, commitment_type="SP"),
    )
    catalog.register(
        ResourceInfo(id="i-batch", csp="AWS", service="EC2",
                     tags={"owner": "data"}, instance_type="c5.xlarge"),
        UsageMetrics(avg=0.85, p99=0.99, idle_ratio=0.05),
        PricingInfo(unit="hour", unit_price=0.17),
    )
    return catalog


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def client(clock):
    """Create a test client with fresh components."""
    config = UcasConfig(proposals=ProposalConfig(sweep_enabled=False))
    ledger = ProposalLedger(ProposalStore(db_path=":memory:"), clock=clock)
    app = create_app(config=config, catalog=_make_catalog(), ledger=ledger)
    return TestClient(app)


def _simulate(client, action="rightsizing", resource_ids=("i-web",), params=None):
    body = {"resourceIds": list(resource_ids), "action": action}
    if params is not None:
        body["params"] = params
    response = client.post("/simulate", json=body)
    assert response.status_code == 200
    return response.json()


def _create_proposal(client, ttl_days=7):
    scenario = _simulate(client)["scenarios"][0]
    response = client.post("/proposals", json={
        "scenarioId": scenario["scenarioId"],
        "note": "downsize after the release",
        "ttlDays": ttl_days,
    })
    assert response.status_code == 200
    return response.json()


class TestSimulateEndpoint:
    def test_simulate(self, client):
        data = _simulate(client, resource_ids=["i-web", "i-batch", "i-gone"])
        assert data["actionType"] == "rightsizing"
        assert data["totalResources"] == 3
        assert [s["resourceId"] for s in data["scenarios"]] == ["i-web"]
        scenario = data["scenarios"][0]
        assert scenario["savings"] == pytest.approx(36.0)
        assert 0 <= scenario["riskScore"] <= 1
        assert scenario["confidence"] == pytest.approx(1 - scenario["riskScore"])

    def test_commitment_returns_three(self, client):
        data = _simulate(client, action="commitment")
        assert len(data["scenarios"]) == 3

    def test_params(self, client):
        data = _simulate(client, action="offhours",
                         params={"stopAt": "22:00", "startAt": "06:00"})
        assert "22:00" in data["scenarios"][0]["description"]
        assert "06:00" in data["scenarios"][0]["description"]

    def test_cleanup_is_empty(self, client):
        data = _simulate(client, action="cleanup")
        assert data["scenarios"] == []
        assert data["totalResources"] == 1

    def test_empty_resource_ids(self, client):
        response = client.post("/simulate", json={"resourceIds": [], "action": "offhours"})
        assert response.status_code == 400

    def test_unknown_action(self, client):
        response = client.post("/simulate", json={"resourceIds": ["i-web"], "action": "delete"})
        assert response.status_code == 400

    def test_invalid_params(self, client):
        response = client.post("/simulate", json={
            "resourceIds": ["i-web"], "action": "commitment", "params": {"commitLevel": 2},
        })
        assert response.status_code == 400

    def test_non_numeric_storage_size(self, client):
        response = client.post("/simulate", json={
            "resourceIds": ["i-web"], "action": "storage",
            "params": {"custom": {"size_gb": "abc"}},
        })
        assert response.status_code == 400


class TestProposalEndpoints:
    def test_create(self, client):
        proposal = _create_proposal(client)
        assert proposal["status"] == "PENDING"
        assert proposal["ttlDays"] == 7
        assert proposal["note"] == "downsize after the release"
        assert proposal["scenario"]["scenarioId"] == proposal["scenarioId"]
        created = datetime.fromisoformat(proposal["createdAt"].replace("Z", "+00:00"))
        expires = datetime.fromisoformat(proposal["expiresAt"].replace("Z", "+00:00"))
        assert expires - created == timedelta(days=7)

    def test_create_with_embedded_scenario(self, client):
        scenario = _simulate(client)["scenarios"][0]
        fresh = TestClient(create_app(
            config=UcasConfig(proposals=ProposalConfig(sweep_enabled=False)),
            catalog=InMemoryResourceCatalog(),
        ))
        response = fresh.post("/proposals", json={
            "scenarioId": scenario["scenarioId"], "ttlDays": 3, "scenario": scenario,
        })
        assert response.status_code == 200
        assert response.json()["scenario"] == scenario

    def test_embedded_scenario_must_match_id(self, client):
        scenario = _simulate(client)["scenarios"][0]
        response = client.post("/proposals", json={
            "scenarioId": "scn_0000000000000000", "ttlDays": 3, "scenario": scenario,
        })
        assert response.status_code == 400

    def test_unknown_scenario(self, client):
        response = client.post("/proposals", json={"scenarioId": "scn_missing", "ttlDays": 7})
        assert response.status_code == 404

    @pytest.mark.parametrize("ttl", [0, -2, None, True, "7", 7.5, 7.0])
    def test_invalid_ttl(self, client, ttl):
        scenario = _simulate(client)["scenarios"][0]
        response = client.post("/proposals", json={
            "scenarioId": scenario["scenarioId"], "ttlDays": ttl,
        })
        assert response.status_code == 400

    def test_get(self, client):
        proposal = _create_proposal(client)
        response = client.get(f"/proposals/{proposal['id']}")
        assert response.status_code == 200
        assert response.json() == proposal

    def test_get_not_found(self, client):
        assert client.get("/proposals/nope").status_code == 404

    def test_approve_then_conflict(self, client):
        proposal = _create_proposal(client)

        response = client.post(f"/proposals/{proposal['id']}/approve")
        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"

        again = client.post(f"/proposals/{proposal['id']}/approve")
        assert again.status_code == 409
        assert again.json()["detail"]["currentStatus"] == "APPROVED"

        reject = client.post(f"/proposals/{proposal['id']}/reject")
        assert reject.status_code == 409

    def test_reject(self, client):
        proposal = _create_proposal(client)
        response = client.post(f"/proposals/{proposal['id']}/reject")
        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"

    def test_decide_not_found(self, client):
        assert client.post("/proposals/nope/approve").status_code == 404
        assert client.post("/proposals/nope/reject").status_code == 404

    def test_expiry(self, client, clock):
        proposal = _create_proposal(client, ttl_days=1)
        clock.advance(days=1, minutes=1)

        assert client.get(f"/proposals/{proposal['id']}").json()["status"] == "EXPIRED"
        response = client.post(f"/proposals/{proposal['id']}/approve")
        assert response.status_code == 409
        assert response.json()["detail"]["currentStatus"] == "EXPIRED"

    def test_expire_sweep(self, client, clock):
        due = _create_proposal(client, ttl_days=1)
        _create_proposal(client, ttl_days=30)
        clock.advance(days=2)

        response = client.post("/proposals/expire")
        assert response.status_code == 200
        assert response.json() == {"expired": [due["id"]]}

    def test_list(self, client):
        first = _create_proposal(client)
        second = _create_proposal(client)
        client.post(f"/proposals/{first['id']}/reject")

        assert [p["id"] for p in client.get("/proposals").json()] == [first["id"], second["id"]]
        pending = client.get("/proposals", params={"status": "PENDING"}).json()
        assert [p["id"] for p in pending] == [second["id"]]


class TestRecommendationEndpoint:
    def test_top_three(self, client):
        response = client.get("/recommendations")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 3
        scores = [r["scenario"]["priorityScore"] for r in data]
        assert scores == sorted(scores, reverse=True)
        for rec in data:
            assert rec["estimatedSavings"] == pytest.approx(rec["scenario"]["savings"] * 12)
            assert rec["title"]
            assert rec["description"]
            assert rec["actionType"] == rec["scenario"]["actionType"]
            assert rec["approvalRequired"] is True
            assert rec["actionType"] != "storage"
        pairs = [(r["scenario"]["resourceId"], r["actionType"]) for r in data]
        assert len(pairs) == len(set(pairs))

    def test_empty_inventory(self):
        app = create_app(
            config=UcasConfig(proposals=ProposalConfig(sweep_enabled=False)),
            catalog=InMemoryResourceCatalog(),
        )
        assert TestClient(app).get("/recommendations").json() == []


class TestHealth:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["rules"] == 4
        assert data["resources"] == 2

    def test_lifespan_starts_and_stops_sweeper(self):
        app = create_app(config=UcasConfig(), catalog=_make_catalog())
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
        assert app.state.sweeper.status == "stopped"
