"""
Integration tests for the status catalog (/status-types) and the scoped
history feed (/history).
"""

import pytest
from fastapi.testclient import TestClient

from machine_monitor.models.audit import AuditEvent
from machine_monitor.models.status import StatusType
from machine_monitor.routers.auth import create_access_token


pytestmark = pytest.mark.usefixtures("db")


def _auth_header(profile) -> dict:
    token = create_access_token(
        {"sub": profile.email, "profile_id": str(profile.id), "role": profile.role}
    )
    return {"Authorization": f"Bearer {token}"}


def _status_type(db, name) -> StatusType:
    return db.query(StatusType).filter(StatusType.name == name).one()


class TestCatalog:
    def test_default_catalog_in_display_order(self, client: TestClient, plant):
        resp = client.get("/status-types")
        assert resp.status_code == 200
        assert [s["name"] for s in resp.json()] == ["Running", "Idle", "Fault", "Under Maintenance"]
        assert all(s["is_default"] for s in resp.json())

    def test_create_appends_to_display_order(self, client: TestClient, db, plant):
        resp = client.post(
            "/status-types",
            json={"name": "Setup", "color": "purple"},
            headers=_auth_header(plant.admin),
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["display_order"] == 5
        assert body["is_default"] is False
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "status_type.created").count() == 1

    def test_create_requires_admin(self, client: TestClient, plant):
        resp = client.post(
            "/status-types", json={"name": "Setup"}, headers=_auth_header(plant.leader)
        )
        assert resp.status_code == 403

    def test_unknown_colour(self, client: TestClient, plant):
        resp = client.post(
            "/status-types",
            json={"name": "Setup", "color": "chartreuse"},
            headers=_auth_header(plant.admin),
        )
        assert resp.status_code == 422

    def test_blank_name_rejected(self, client: TestClient, db, plant):
        resp = client.post(
            "/status-types", json={"name": "   "}, headers=_auth_header(plant.admin)
        )
        assert resp.status_code == 422
        assert db.query(StatusType).count() == 4

    def test_blank_rename_rejected(self, client: TestClient, db, plant):
        idle = _status_type(db, "Idle")
        resp = client.patch(
            f"/status-types/{idle.id}", json={"name": " "}, headers=_auth_header(plant.admin)
        )
        assert resp.status_code == 422
        db.expire_all()
        assert db.get(StatusType, idle.id).name == "Idle"

    def test_rename_is_trimmed(self, client: TestClient, db, plant):
        idle = _status_type(db, "Idle")
        resp = client.patch(
            f"/status-types/{idle.id}",
            json={"name": " Standby  "},
            headers=_auth_header(plant.admin),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Standby"

    def test_duplicate_name(self, client: TestClient, plant):
        resp = client.post(
            "/status-types", json={"name": "Idle"}, headers=_auth_header(plant.admin)
        )
        assert resp.status_code == 409

    def test_default_type_cannot_be_deleted(self, client: TestClient, db, plant):
        running = _status_type(db, "Running")
        resp = client.delete(f"/status-types/{running.id}", headers=_auth_header(plant.admin))
        assert resp.status_code == 409
        assert resp.json()["error"] == "constraint_violation"
        db.expire_all()
        assert _status_type(db, "Running")

    @pytest.mark.parametrize("who", ["leader", "operator", None])
    def test_non_admin_delete_of_default_type_is_denied(
        self, client: TestClient, db, plant, who
    ):
        running = _status_type(db, "Running")
        headers = _auth_header(getattr(plant, who)) if who else {}
        resp = client.delete(f"/status-types/{running.id}", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "authorization_denied"

    def test_custom_type_can_be_deleted(self, client: TestClient, db, plant):
        created = client.post(
            "/status-types", json={"name": "Setup"}, headers=_auth_header(plant.admin)
        ).json()
        resp = client.delete(
            f"/status-types/{created['id']}", headers=_auth_header(plant.leader)
        )
        assert resp.status_code == 403
        resp = client.delete(f"/status-types/{created['id']}", headers=_auth_header(plant.admin))
        assert resp.status_code == 204

    def test_inactive_types_hidden_from_non_admins(self, client: TestClient, db, plant):
        fault = _status_type(db, "Fault")
        resp = client.patch(
            f"/status-types/{fault.id}",
            json={"is_active": False},
            headers=_auth_header(plant.admin),
        )
        assert resp.status_code == 200

        names = [
            s["name"]
            for s in client.get(
                "/status-types?include_inactive=true", headers=_auth_header(plant.leader)
            ).json()
        ]
        assert "Fault" not in names

        names = [
            s["name"]
            for s in client.get(
                "/status-types?include_inactive=true", headers=_auth_header(plant.admin)
            ).json()
        ]
        assert "Fault" in names

    def test_rename_keeps_history(self, client: TestClient, db, plant):
        client.post(
            f"/machines/{plant.m100.id}/status",
            json={"status": "Fault"},
            headers=_auth_header(plant.admin),
        )
        fault = _status_type(db, "Fault")
        resp = client.patch(
            f"/status-types/{fault.id}",
            json={"name": "Breakdown"},
            headers=_auth_header(plant.admin),
        )
        assert resp.status_code == 200

        history = client.get(f"/machines/{plant.m100.id}/history").json()
        assert [h["status"] for h in history] == ["Fault"]


class TestHistoryFeed:
    @pytest.fixture
    def changes(self, client: TestClient, plant):
        for machine in (plant.m100, plant.m200, plant.m900):
            resp = client.post(
                f"/machines/{machine.id}/status",
                json={"status": "Running"},
                headers=_auth_header(plant.admin),
            )
            assert resp.status_code == 201, resp.text

    def test_anonymous_sees_all(self, client: TestClient, plant, changes):
        assert len(client.get("/history").json()) == 3

    def test_operator_sees_assigned_machines_only(self, client: TestClient, plant, changes):
        resp = client.get("/history", headers=_auth_header(plant.operator))
        assert [h["machine_id"] for h in resp.json()] == [str(plant.m100.id)]

    def test_leader_sees_led_departments_only(self, client: TestClient, plant, changes):
        resp = client.get("/history", headers=_auth_header(plant.leader))
        assert [h["machine_id"] for h in resp.json()] == [str(plant.m100.id)]

    def test_idle_operator_sees_nothing(self, client: TestClient, plant, changes):
        assert client.get("/history", headers=_auth_header(plant.idle_operator)).json() == []

    def test_department_filter(self, client: TestClient, plant, changes):
        resp = client.get(f"/history?department_id={plant.prod.id}")
        assert [h["machine_id"] for h in resp.json()] == [str(plant.m200.id)]

    def test_limit(self, client: TestClient, plant, changes):
        resp = client.get("/history?limit=2")
        assert [h["machine_id"] for h in resp.json()] == [str(plant.m900.id), str(plant.m200.id)]
