import asyncio
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from backend.ielts_api import google_oauth, models, roles
from backend.ielts_api.routers import auth

PROFILE = {"google_id": "g-123", "email": "learner@gmail.com", "name": "Learner", "picture": "http://pic/1"}


@pytest.fixture()
def google_profile(monkeypatch):
	async def _fake_fetch(code):
		assert code == "auth-code"
		return dict(PROFILE)

	monkeypatch.setattr(google_oauth, "fetch_google_profile", _fake_fetch)


def _callback(client, state=None):
	state = state or auth._create_oauth_state()
	return client.get("/api/auth/google/callback", params={"code": "auth-code", "state": state}, follow_redirects=False)


def test_google_login_redirects_with_signed_state(client) -> None:
	response = client.get("/api/auth/google", follow_redirects=False)
	assert response.status_code == 302
	location = urlparse(response.headers["location"])
	assert location.netloc == "accounts.google.com"
	query = parse_qs(location.query)
	assert query["client_id"] == ["test-client-id"]
	assert auth._verify_oauth_state(query["state"][0])


def test_callback_with_bad_state_redirects_to_signin(client, google_profile) -> None:
	response = _callback(client, state="forged")
	assert response.status_code == 302
	assert response.headers["location"] == "http://frontend.test/signin?error=authentication_failed"


def test_callback_creates_google_user_with_default_role(client, db, google_profile) -> None:
	response = _callback(client)
	assert response.status_code == 302
	location = urlparse(response.headers["location"])
	assert location.path == "/auth/callback"
	query = parse_qs(location.query)
	user_info = json.loads(query["user"][0])
	assert user_info["authProvider"] == "google"

	row = db.query(models.User).filter(models.User.email == "learner@gmail.com").one()
	assert row.password is None
	assert row.google_id == "g-123"
	assert roles.get_user_roles(db, row.id) == [roles.USER]

	me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {query['token'][0]}"})
	assert me.json()["data"]["id"] == row.id


def test_callback_links_existing_email_account(client, db, make_user, google_profile) -> None:
	existing = make_user(email="learner@gmail.com")
	_callback(client)
	db.refresh(existing)
	assert existing.google_id == "g-123"
	assert existing.auth_provider == "google"
	assert existing.email_verified_at is not None
	assert db.query(models.User).count() == 1


def test_callback_is_idempotent_for_returning_user(client, db, google_profile) -> None:
	_callback(client)
	_callback(client)
	assert db.query(models.User).count() == 1


def test_callback_provider_error_redirects_to_signin(client, monkeypatch) -> None:
	async def _broken(code):
		raise google_oauth.GoogleAuthError("Invalid profile data from Google")

	monkeypatch.setattr(google_oauth, "fetch_google_profile", _broken)
	response = _callback(client)
	assert response.headers["location"].endswith("/signin?error=authentication_failed")


def test_fetch_google_profile_normalizes_userinfo() -> None:
	def handler(request: httpx.Request) -> httpx.Response:
		if request.url.host == "oauth2.googleapis.com":
			assert b"grant_type=authorization_code" in request.content
			return httpx.Response(200, json={"access_token": "at"})
		assert request.headers["Authorization"] == "Bearer at"
		return httpx.Response(200, json={"sub": "42", "email": "a@b.com"})

	profile = asyncio.run(google_oauth.fetch_google_profile("c", transport=httpx.MockTransport(handler)))
	assert profile == {"google_id": "42", "email": "a@b.com", "name": "a", "picture": None}


def test_fetch_google_profile_requires_email() -> None:
	def handler(request: httpx.Request) -> httpx.Response:
		if request.url.host == "oauth2.googleapis.com":
			return httpx.Response(200, json={"access_token": "at"})
		return httpx.Response(200, json={"sub": "42"})

	with pytest.raises(google_oauth.GoogleAuthError):
		asyncio.run(google_oauth.fetch_google_profile("c", transport=httpx.MockTransport(handler)))


def test_callback_database_failure_redirects_to_signin(client, monkeypatch, google_profile) -> None:
	def _failing_upsert(db, profile):
		raise IntegrityError("INSERT INTO users", {}, Exception("duplicate"))

	monkeypatch.setattr(auth, "upsert_google_user", _failing_upsert)
	response = _callback(client)
	assert response.status_code == 302
	assert response.headers["location"].endswith("/signin?error=authentication_failed")
