from backend.ielts_api import models, roles
from backend.ielts_api.routers.auth import verify_password

from conftest import auth_headers


def test_non_admin_cannot_list_users(client, student) -> None:
	response = client.get("/api/user/index", headers=auth_headers(student))
	assert response.status_code == 403


def test_store_hashes_password_and_assigns_role(client, db, admin) -> None:
	response = client.post(
		"/api/user/store",
		json={"name": "New Learner", "email": "New@Example.com", "password": "pw-123456", "country": "VN"},
		headers=auth_headers(admin),
	)
	assert response.status_code == 201
	data = response.json()["data"]
	assert data["email"] == "new@example.com"
	assert data["roles"] == ["User"]
	assert "password" not in data
	row = db.get(models.User, data["id"])
	assert row.password != "pw-123456"
	assert verify_password("pw-123456", row.password)


def test_store_rejects_duplicate_email(client, admin, student) -> None:
	response = client.post(
		"/api/user/store",
		json={"name": "Copy", "email": "student@example.com"},
		headers=auth_headers(admin),
	)
	assert response.status_code == 409


def test_store_rejects_unknown_role(client, admin) -> None:
	response = client.post(
		"/api/user/store",
		json={"name": "X", "email": "x@example.com", "roles": ["Superuser"]},
		headers=auth_headers(admin),
	)
	assert response.status_code == 400


def test_index_filters_by_role(client, admin, student) -> None:
	response = client.get("/api/user/index", params={"role": "Admin"}, headers=auth_headers(admin))
	assert response.status_code == 200
	emails = [u["email"] for u in response.json()["data"]]
	assert emails == ["admin@example.com"]


def test_update_changes_fields_and_roles(client, db, admin, student) -> None:
	response = client.post(
		"/api/user/update",
		json={"id": student.id, "name": "Renamed", "roles": ["Admin", "User"]},
		headers=auth_headers(admin),
	)
	assert response.status_code == 200
	assert response.json()["data"]["name"] == "Renamed"
	assert roles.get_user_roles(db, student.id) == ["Admin", "User"]


def test_edit_and_delete(client, db, admin, student) -> None:
	headers = auth_headers(admin)
	assert client.get(f"/api/user/edit/{student.id}", headers=headers).json()["data"]["name"] == "Student"
	response = client.get(f"/api/user/delete/{student.id}", headers=headers)
	assert response.status_code == 200
	assert db.get(models.User, student.id) is None
	assert roles.get_user_roles(db, student.id) == []
	assert client.get(f"/api/user/edit/{student.id}", headers=headers).status_code == 404


def test_admin_cannot_delete_self(client, admin) -> None:
	response = client.get(f"/api/user/delete/{admin.id}", headers=auth_headers(admin))
	assert response.status_code == 400
