from datetime import timedelta

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from backend.ielts_api import main, roles
from backend.ielts_api.db import get_db
from backend.ielts_api.routers.auth import User, hash_password, require_all_roles, require_roles

from conftest import auth_headers


def test_missing_token_returns_401_envelope(client) -> None:
	response = client.get("/api/auth/me")
	assert response.status_code == 401
	body = response.json()
	assert body["success"] is False
	assert body["message"] == "No token provided"
	assert "timestamp" in body


def test_invalid_token_returns_401(client) -> None:
	response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
	assert response.status_code == 401
	assert response.json()["message"] == "Invalid token"


def test_expired_token_returns_401(client, student) -> None:
	response = client.get("/api/auth/me", headers=auth_headers(student, expires_delta=timedelta(minutes=-5)))
	assert response.status_code == 401
	assert response.json()["message"] == "Token expired"


def test_inactive_user_is_rejected(client, make_user) -> None:
	user = make_user(status="0")
	response = client.get("/api/auth/me", headers=auth_headers(user))
	assert response.status_code == 403
	assert response.json()["message"] == "User account is inactive"


def test_deleted_user_returns_404(client, db, student) -> None:
	headers = auth_headers(student)
	db.delete(student)
	db.commit()
	response = client.get("/api/auth/me", headers=headers)
	assert response.status_code == 404


def test_me_returns_user_with_roles(client, student) -> None:
	response = client.get("/api/auth/me", headers=auth_headers(student))
	assert response.status_code == 200
	data = response.json()["data"]
	assert data["email"] == "student@example.com"
	assert data["roles"] == ["User"]
	assert data["is_admin"] is False
	assert "password" not in data


def test_admin_login_issues_token(client, make_user) -> None:
	make_user((roles.ADMIN,), email="boss@example.com", password=hash_password("s3cret-pass"))
	response = client.post("/api/auth/admin/login", json={"email": "Boss@Example.com", "password": "s3cret-pass"})
	assert response.status_code == 200
	data = response.json()["data"]
	assert data["user"]["is_admin"] is True
	me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
	assert me.status_code == 200


def test_admin_login_wrong_password(client, make_user) -> None:
	make_user((roles.ADMIN,), email="boss@example.com", password=hash_password("s3cret-pass"))
	response = client.post("/api/auth/admin/login", json={"email": "boss@example.com", "password": "nope"})
	assert response.status_code == 401
	assert response.json()["success"] is False


def test_admin_login_requires_admin_role(client, make_user) -> None:
	make_user((roles.USER,), email="learner@example.com", password=hash_password("s3cret-pass"))
	response = client.post("/api/auth/admin/login", json={"email": "learner@example.com", "password": "s3cret-pass"})
	assert response.status_code == 403


def test_admin_login_rejects_oauth_only_account(client, make_user) -> None:
	make_user((roles.ADMIN,), email="oauth@example.com", password=None)
	response = client.post("/api/auth/admin/login", json={"email": "oauth@example.com", "password": "anything"})
	assert response.status_code == 401


def _gate_app(db) -> TestClient:
	gate = FastAPI()

	@gate.get("/any")
	def any_of(user: User = Depends(require_roles(roles.ADMIN, roles.USER))):
		return {"id": user.id}

	@gate.get("/all")
	def all_of(user: User = Depends(require_all_roles(roles.ADMIN, roles.USER))):
		return {"id": user.id}

	def _override_get_db():
		yield db

	gate.dependency_overrides[get_db] = _override_get_db
	return TestClient(gate)


def test_role_gates_any_versus_all(db, student, make_user) -> None:
	both = make_user((roles.ADMIN, roles.USER))
	client = _gate_app(db)
	assert client.get("/any", headers=auth_headers(student)).status_code == 200
	assert client.get("/all", headers=auth_headers(student)).status_code == 403
	assert client.get("/all", headers=auth_headers(both)).status_code == 200


def test_user_without_roles_is_forbidden(client, make_user) -> None:
	nobody = make_user(())
	response = client.get("/api/user/index", headers=auth_headers(nobody))
	assert response.status_code == 403
	assert "Admin" in response.json()["message"]


def test_user_has_role(db, student, admin) -> None:
	assert roles.user_has_role(db, student.id, roles.USER)
	assert not roles.user_has_role(db, student.id, roles.ADMIN)
	assert roles.user_has_role(db, admin.id, roles.ADMIN)
	assert not roles.user_has_role(db, 9999, roles.USER)


def test_seed_admin_promotes_existing_user(db, student, monkeypatch) -> None:
	monkeypatch.setattr(main.settings, "seed_admin_email", student.email)
	monkeypatch.setattr(main.settings, "seed_admin_password", "secret-pass")
	main.seed_admin(db)
	assert roles.user_has_role(db, student.id, roles.ADMIN)
	main.seed_admin(db)
	assert roles.get_user_roles(db, student.id) == [roles.ADMIN, roles.USER]
