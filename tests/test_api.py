"""
HTTP tests for the issue routes, using FastAPI's TestClient.

The repository, config provider and clock are swapped for in-memory
versions through dependency overrides; the app lifespan is not run.
"""

import pytest
from fastapi.testclient import TestClient

from src.issues.domain import SLAConfiguration
from src.issues.infrastructure import InMemoryAgencyConfigProvider
from src.issues.interfaces.controllers import get_clock, get_config_provider, get_issue_repository
from src.main import app
from tests.conftest import AGENCY, LANDLORD, RENTER


@pytest.fixture
def client(issue_repo, config_provider, clock):
    app.dependency_overrides[get_issue_repository] = lambda: issue_repo
    app.dependency_overrides[get_config_provider] = lambda: config_provider
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, payload):
    response = client.post("/issues", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _transition(client, issue_id, **body):
    return client.post(f"/issues/{issue_id}/transitions", json=body)


class TestIssueRoutes:

    # ─────────────────────────────────────────────────────────────────────────────
    # CREATE / READ
    # ─────────────────────────────────────────────────────────────────────────────

    def test_create_issue(self, client, issue_data):
        body = _create(client, issue_data)

        assert body["status"] == "open"
        assert body["priority"] == "urgent"
        assert body["sla_hours"] == 24.0
        assert body["is_overdue"] is False
        assert body["time_remaining"] == "24h 0m"
        assert body["responsible_party"] == {"kind": "landlord", "id": LANDLORD}
        assert len(body["status_history"]) == 1
        assert body["version"] == 1

    def test_create_uses_agency_config(self, client, agency_issue_data):
        provider = InMemoryAgencyConfigProvider({AGENCY: SLAConfiguration(urgent_response_hours=12)})
        app.dependency_overrides[get_config_provider] = lambda: provider

        body = _create(client, agency_issue_data)

        assert body["sla_hours"] == 12.0
        assert body["responsible_party"]["kind"] == "agency"

    def test_create_validation_error(self, client, issue_data):
        response = client.post("/issues", json={**issue_data, "description": "too short"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["field"] == "description"
        assert "correlation_id" in body

    def test_correlation_id_is_echoed(self, client, issue_data):
        response = client.post("/issues", json=issue_data, headers={"X-Correlation-ID": "req-1"})

        assert response.headers["X-Correlation-ID"] == "req-1"

    def test_get_unknown_issue(self, client):
        response = client.get("/issues/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_list_requires_one_filter(self, client):
        assert client.get("/issues").status_code == 400
        assert client.get("/issues?property_id=a&match_id=b").status_code == 400

    def test_list_by_property_and_match(self, client, issue_data):
        _create(client, issue_data)
        _create(client, {**issue_data, "match_id": "match-2"})

        by_property = client.get("/issues", params={"property_id": issue_data["property_id"]}).json()
        by_match = client.get("/issues", params={"match_id": "match-2"}).json()

        assert by_property["total_count"] == 2
        assert by_match["total_count"] == 1

    # ─────────────────────────────────────────────────────────────────────────────
    # TRANSITIONS
    # ─────────────────────────────────────────────────────────────────────────────

    def test_lifecycle_over_http(self, client, clock, issue_data):
        issue_id = _create(client, issue_data)["id"]

        clock.at(hours=2)
        assert _transition(client, issue_id, target_status="acknowledged", actor_id=LANDLORD).status_code == 200

        clock.at(hours=30)
        response = _transition(
            client, issue_id,
            target_status="resolved", actor_id=LANDLORD, resolution_summary="Replaced pump"
        )
        assert response.json()["is_overdue"] is True

        clock.at(hours=31)
        body = _transition(client, issue_id, target_status="closed", actor_id=RENTER).json()

        assert body["status"] == "closed"
        assert body["is_overdue"] is True
        assert [e["status"] for e in body["status_history"]] == [
            "open", "acknowledged", "resolved", "closed"
        ]

    def test_illegal_transition_is_409(self, client, issue_data):
        issue_id = _create(client, issue_data)["id"]

        response = _transition(client, issue_id, target_status="closed", actor_id=RENTER)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "illegal_transition"
        assert body["details"] == {"current_status": "open", "target_status": "closed"}

    def test_unauthorized_actor_is_403(self, client, issue_data):
        issue_id = _create(client, issue_data)["id"]

        response = _transition(client, issue_id, target_status="acknowledged", actor_id=RENTER)

        assert response.status_code == 403
        assert response.json()["error"] == "actor_not_permitted"

    def test_unknown_status_is_400(self, client, issue_data):
        issue_id = _create(client, issue_data)["id"]

        response = _transition(client, issue_id, target_status="archived", actor_id=LANDLORD)

        assert response.status_code == 400

    # ─────────────────────────────────────────────────────────────────────────────
    # MESSAGES, NOTES, RATING
    # ─────────────────────────────────────────────────────────────────────────────

    def test_internal_entries_hidden_from_renter(self, client, clock, issue_data):
        issue_id = _create(client, issue_data)["id"]
        clock.at(hours=1)
        client.post(f"/issues/{issue_id}/messages", json={
            "sender_id": RENTER, "sender_role": "renter", "content": "Any update?"
        })
        client.post(f"/issues/{issue_id}/messages", json={
            "sender_id": LANDLORD, "sender_role": "landlord", "content": "Quote pending", "is_internal": True
        })
        client.post(f"/issues/{issue_id}/internal-notes", json={
            "author_id": LANDLORD, "content": "Warranty check"
        })

        renter_thread = client.get(f"/issues/{issue_id}/messages", params={"viewer_role": "renter"}).json()
        full_thread = client.get(f"/issues/{issue_id}/messages").json()
        renter_issue = client.get(f"/issues/{issue_id}", params={"viewer_role": "renter"}).json()

        assert [m["content"] for m in renter_thread] == ["Any update?"]
        assert len(full_thread) == 2
        assert renter_issue["internal_notes"] == []
        assert len(client.get(f"/issues/{issue_id}").json()["internal_notes"]) == 1

    def test_renter_dispute_response_hides_internal_entries(self, client, clock, issue_data):
        issue_id = _create(client, issue_data)["id"]
        clock.at(hours=1)
        client.post(f"/issues/{issue_id}/messages", json={
            "sender_id": LANDLORD, "sender_role": "landlord",
            "content": "Tenant caused it, bill them", "is_internal": True
        })
        client.post(f"/issues/{issue_id}/internal-notes", json={
            "author_id": LANDLORD, "content": "Warranty check"
        })
        _transition(client, issue_id, target_status="in_progress", actor_id=LANDLORD)
        _transition(client, issue_id, target_status="resolved", actor_id=LANDLORD, resolution_summary="Done")

        clock.at(hours=2)
        response = _transition(client, issue_id, target_status="in_progress", actor_id=RENTER, note="Still leaking")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "in_progress"
        assert body["messages"] == []
        assert body["internal_notes"] == []

    def test_landlord_transition_response_keeps_internal_entries(self, client, clock, issue_data):
        issue_id = _create(client, issue_data)["id"]
        clock.at(hours=1)
        client.post(f"/issues/{issue_id}/internal-notes", json={
            "author_id": LANDLORD, "content": "Warranty check"
        })

        body = _transition(client, issue_id, target_status="acknowledged", actor_id=LANDLORD).json()

        assert [n["content"] for n in body["internal_notes"]] == ["Warranty check"]

    @pytest.mark.parametrize("sender_id,sender_role", [
        (RENTER, "landlord"),
        ("nobody-at-all", "management_agency"),
    ])
    def test_message_sender_must_match_ticket_party(self, client, issue_data, sender_id, sender_role):
        issue_id = _create(client, issue_data)["id"]

        response = client.post(f"/issues/{issue_id}/messages", json={
            "sender_id": sender_id, "sender_role": sender_role, "content": "hidden?", "is_internal": True
        })

        assert response.status_code == 403
        assert client.get(f"/issues/{issue_id}/messages").json() == []

    def test_renter_internal_message_rejected(self, client, issue_data):
        issue_id = _create(client, issue_data)["id"]

        response = client.post(f"/issues/{issue_id}/messages", json={
            "sender_id": RENTER, "sender_role": "renter", "content": "hidden?", "is_internal": True
        })

        assert response.status_code == 400

    def test_rating_rules(self, client, clock, issue_data):
        issue_id = _create(client, issue_data)["id"]

        early = client.post(f"/issues/{issue_id}/rating", json={"renter_id": RENTER, "rating": 5})
        assert early.status_code == 409
        assert early.json()["error"] == "domain_rule_violated"

        clock.at(hours=1)
        _transition(client, issue_id, target_status="in_progress", actor_id=LANDLORD)
        _transition(client, issue_id, target_status="resolved", actor_id=LANDLORD, resolution_summary="Done")

        rated = client.post(f"/issues/{issue_id}/rating", json={"renter_id": RENTER, "rating": 5})
        assert rated.status_code == 200
        assert rated.json()["renter_satisfaction_rating"] == 5

    # ─────────────────────────────────────────────────────────────────────────────
    # SWEEP / REPORTING
    # ─────────────────────────────────────────────────────────────────────────────

    def test_sweep_and_agency_performance(self, client, clock, agency_issue_data):
        issue_id = _create(client, {**agency_issue_data, "priority": "emergency"})["id"]
        _create(client, {**agency_issue_data, "priority": "low"})

        clock.at(hours=5)
        sweep = client.post("/issues/sweep").json()
        report = client.get(f"/issues/agencies/{AGENCY}/performance").json()

        assert sweep["newly_overdue_ids"] == [issue_id]
        assert report["total_issues"] == 2
        assert report["overdue_open_issues"] == 1
        assert report["compliance_band"] == "danger"

    def test_health_and_root(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/").json()["service"] == "Tenancy Issue Service"
