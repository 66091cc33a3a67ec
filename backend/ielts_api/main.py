import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .db import Base, SessionLocal, engine
from .logger import configure_logging, log_requests
from .models import User
from .responses import http_exception_handler, unhandled_exception_handler, validation_exception_handler
from .settings import settings
from . import roles
from .routers import health
from .routers import auth
from .routers import users
from .routers import tests
from .routers import writing
from .routers import expert_review

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="IELTS Writing Test API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(tests.router)
app.include_router(writing.router)
app.include_router(expert_review.router)

app.add_middleware(
	CORSMiddleware,
	allow_origins=[settings.frontend_url],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.middleware("http")(log_requests)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


def seed_admin(db) -> None:
	email = (settings.seed_admin_email or "").strip().lower()
	password = settings.seed_admin_password
	if not email or not password:
		return
	existing = db.query(User).filter(User.email == email).first()
	if existing is not None:
		if not roles.user_has_role(db, existing.id, roles.ADMIN):
			roles.assign_role_to_user(db, existing.id, roles.ADMIN)
			db.commit()
			logger.info("Granted admin role to existing user %s", email)
		return
	row = User(name="Administrator", email=email, password=auth.hash_password(password), auth_provider="local", status="1")
	db.add(row)
	db.flush()
	roles.assign_role_to_user(db, row.id, roles.ADMIN)
	db.commit()
	logger.info("Seeded admin user %s", email)


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	db = SessionLocal()
	try:
		roles.ensure_roles(db)
		seed_admin(db)
	finally:
		db.close()
	logger.info("IELTS Writing Test API started (env=%s)", settings.app_env)
