"""
Integration tests for the /auth router.

Covers:
  - Sign-up yields an operator with no assignments
  - Password login and the token's claims
  - /auth/me for each kind of caller, including anonymous
  - Bad tokens are 401, missing tokens are anonymous
"""

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from machine_monitor.models.profile import Profile
from machine_monitor.routers.auth import create_access_token, hash_password
from machine_monitor.settings import settings


pytestmark = pytest.mark.usefixtures("db")


def _auth_header(profile) -> dict:
    token = create_access_token(
        {"sub": profile.email, "profile_id": str(profile.id), "role": profile.role}
    )
    return {"Authorization": f"Bearer {token}"}


class TestSignup:
    def test_creates_operator_without_scope(self, client: TestClient, db, plant):
        resp = client.post(
            "/auth/signup",
            json={"email": "New.Hire@Example.com", "full_name": "New Hire", "password": "s3cret-pass"},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["role"] == "operator"

        profile = db.query(Profile).filter(Profile.email == "new.hire@example.com").one()
        assert str(profile.id) == body["profile_id"]

        me = client.get(
            "/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
        ).json()
        assert me["role"] == "operator"
        assert me["scope"]["kind"] == "none"

        machines = client.get(
            "/machines", headers={"Authorization": f"Bearer {body['access_token']}"}
        )
        assert machines.json() == []

    def test_duplicate_email(self, client: TestClient, plant):
        resp = client.post(
            "/auth/signup",
            json={"email": "operator@example.com", "full_name": "Dup", "password": "s3cret-pass"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "constraint_violation"

    def test_blank_full_name(self, client: TestClient, plant):
        resp = client.post(
            "/auth/signup",
            json={"email": "x@example.com", "full_name": "   ", "password": "s3cret-pass"},
        )
        assert resp.status_code == 422

    def test_short_password(self, client: TestClient, plant):
        resp = client.post(
            "/auth/signup",
            json={"email": "x@example.com", "full_name": "X", "password": "short"},
        )
        assert resp.status_code == 422


class TestLogin:
    @pytest.fixture
    def leader_with_password(self, db, plant):
        plant.leader.hashed_password = hash_password("leader-pass")
        db.commit()
        return plant.leader

    def test_valid_credentials(self, client: TestClient, leader_with_password):
        resp = client.post(
            "/auth/token",
            data={"username": "Leader@Example.com", "password": "leader-pass"},
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["role"] == "team_leader"

        claims = jwt.decode(
            body["access_token"], settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
        assert claims["profile_id"] == str(leader_with_password.id)
        assert claims["sub"] == "leader@example.com"

    def test_wrong_password(self, client: TestClient, leader_with_password):
        resp = client.post(
            "/auth/token",
            data={"username": "leader@example.com", "password": "nope"},
        )
        assert resp.status_code == 401

    def test_profile_without_password(self, client: TestClient, plant):
        resp = client.post(
            "/auth/token",
            data={"username": "operator@example.com", "password": "anything"},
        )
        assert resp.status_code == 401

    def test_inactive_profile(self, client: TestClient, db, leader_with_password):
        leader_with_password.is_active = False
        db.commit()
        resp = client.post(
            "/auth/token",
            data={"username": "leader@example.com", "password": "leader-pass"},
        )
        assert resp.status_code == 403


class TestMe:
    def test_anonymous_is_universal_read_only(self, client: TestClient, plant):
        resp = client.get("/auth/me")
        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] is None
        assert body["scope"] == {
            "kind": "universal",
            "read_only": True,
            "department_ids": [],
            "machine_ids": [],
        }

    def test_admin(self, client: TestClient, plant):
        body = client.get("/auth/me", headers=_auth_header(plant.admin)).json()
        assert body["role"] == "admin"
        assert body["scope"]["kind"] == "universal"
        assert body["scope"]["read_only"] is False

    def test_team_leader(self, client: TestClient, plant):
        body = client.get("/auth/me", headers=_auth_header(plant.leader)).json()
        assert body["scope"]["kind"] == "department"
        assert body["scope"]["department_ids"] == [str(plant.qc.id)]

    def test_operator(self, client: TestClient, plant):
        body = client.get("/auth/me", headers=_auth_header(plant.operator)).json()
        assert body["scope"]["kind"] == "machine"
        assert body["scope"]["machine_ids"] == [str(plant.m100.id)]

    def test_garbage_token(self, client: TestClient, plant):
        resp = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    def test_token_for_deactivated_profile(self, client: TestClient, db, plant):
        headers = _auth_header(plant.operator)
        plant.operator.is_active = False
        db.commit()
        assert client.get("/auth/me", headers=headers).status_code == 401
