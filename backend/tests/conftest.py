import os

os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["LLM_PROVIDER"] = "openai"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["FRONTEND_URL"] = "http://frontend.test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.ielts_api import models, roles
from backend.ielts_api.db import Base, get_db
from backend.ielts_api.main import app
from backend.ielts_api.routers.auth import create_access_token


@pytest.fixture()
def db():
	engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
	Base.metadata.create_all(bind=engine)
	session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
	roles.ensure_roles(session)
	try:
		yield session
	finally:
		session.close()
		Base.metadata.drop_all(bind=engine)
		engine.dispose()


@pytest.fixture()
def client(db):
	def _override_get_db():
		yield db

	app.dependency_overrides[get_db] = _override_get_db
	try:
		yield TestClient(app)
	finally:
		app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
	counter = {"n": 0}

	def _make(role_names=(roles.USER,), *, email=None, name=None, password=None, status="1"):
		counter["n"] += 1
		row = models.User(
			name=name or f"User {counter['n']}",
			email=email or f"user{counter['n']}@example.com",
			password=password,
			auth_provider="local",
			status=status,
		)
		db.add(row)
		db.flush()
		for role_name in role_names:
			roles.assign_role_to_user(db, row.id, role_name)
		db.commit()
		return row

	return _make


@pytest.fixture()
def student(make_user):
	return make_user((roles.USER,), name="Student", email="student@example.com")


@pytest.fixture()
def admin(make_user):
	return make_user((roles.ADMIN,), name="Admin", email="admin@example.com")


def auth_headers(user, **kwargs):
	return {"Authorization": f"Bearer {create_access_token(user, **kwargs)}"}


@pytest.fixture()
def writing_test(db):
	test = models.Test(name="Academic Test 1", category=1, type="writing", status=1)
	test.writing_questions = [
		models.WritingQuestion(task_number=1, question_text="Describe the chart.", word_limit=150),
		models.WritingQuestion(task_number=2, question_text="Discuss both views.", word_limit=250),
	]
	db.add(test)
	db.commit()
	return test


def words(n, word="word"):
	return " ".join([word] * n)
