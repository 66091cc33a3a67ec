from __future__ import annotations
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import google_oauth
from .. import roles as role_helper
from ..db import get_db
from ..models import User as UserRow
from ..responses import success
from ..settings import settings

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

OAUTH_STATE_MINUTES = 10


class User(BaseModel):
	id: int
	email: str
	name: str
	auth_provider: Optional[str] = None
	roles: List[str] = []

	@property
	def is_admin(self) -> bool:
		return role_helper.ADMIN in self.roles


class AdminLoginRequest(BaseModel):
	email: str
	password: str


def hash_password(password: str) -> str:
	# bcrypt only uses the first 72 bytes
	password_bytes = password.encode("utf-8")[:72]
	return pwd_context.hash(password_bytes.decode("utf-8", errors="ignore"))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	password_bytes = plain_password.encode("utf-8")[:72]
	return pwd_context.verify(password_bytes.decode("utf-8", errors="ignore"), hashed_password)


def serialize_user(row: UserRow, roles: Optional[List[str]] = None) -> Dict[str, Any]:
	data = {
		"id": row.id,
		"name": row.name,
		"email": row.email,
		"auth_provider": row.auth_provider,
		"profile_picture": row.profile_picture,
		"phone": row.phone,
		"country": row.country,
		"status": row.status,
		"email_verified_at": row.email_verified_at,
		"created_at": row.created_at,
		"updated_at": row.updated_at,
	}
	if roles is not None:
		data["roles"] = roles
		data["is_admin"] = role_helper.ADMIN in roles
	return data


def create_access_token(row: UserRow, expires_delta: Optional[timedelta] = None) -> str:
	delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
	to_encode = {
		"sub": str(row.id),
		"email": row.email,
		"name": row.name,
		"auth_provider": row.auth_provider,
		"exp": datetime.now(timezone.utc) + delta,
	}
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _create_oauth_state() -> str:
	payload = {
		"purpose": "google_oauth",
		"nonce": uuid.uuid4().hex,
		"exp": datetime.now(timezone.utc) + timedelta(minutes=OAUTH_STATE_MINUTES),
	}
	return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _verify_oauth_state(state: Optional[str]) -> bool:
	if not state:
		return False
	try:
		payload = jwt.decode(state, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		return False
	return payload.get("purpose") == "google_oauth"


def _load_user(token: str, db: Session) -> User:
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		user_id = int(payload.get("sub"))
	except ExpiredSignatureError:
		raise HTTPException(status_code=401, detail="Token expired")
	except (JWTError, TypeError, ValueError):
		raise HTTPException(status_code=401, detail="Invalid token")
	row = db.get(UserRow, user_id)
	if row is None:
		raise HTTPException(status_code=404, detail="User not found")
	if row.status != "1":
		raise HTTPException(status_code=403, detail="User account is inactive")
	return User(
		id=row.id,
		email=row.email,
		name=row.name,
		auth_provider=row.auth_provider,
		roles=role_helper.get_user_roles(db, row.id),
	)


def get_current_user(
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
	db: Session = Depends(get_db),
) -> User:
	if credentials is None or not credentials.credentials:
		raise HTTPException(status_code=401, detail="No token provided")
	return _load_user(credentials.credentials, db)


def optional_user(
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
	db: Session = Depends(get_db),
) -> Optional[User]:
	if credentials is None or not credentials.credentials:
		return None
	try:
		return _load_user(credentials.credentials, db)
	except HTTPException:
		return None


def require_roles(*required: str):
	"""Allow the request when the user holds ANY of the given roles."""
	def checker(user: User = Depends(get_current_user)) -> User:
		if not set(user.roles).intersection(required):
			raise HTTPException(
				status_code=403,
				detail=f"Insufficient permissions. Required role(s): {', '.join(required)}",
			)
		return user
	return checker


def require_all_roles(*required: str):
	"""Allow the request only when the user holds ALL of the given roles."""
	def checker(user: User = Depends(get_current_user)) -> User:
		if not set(required).issubset(user.roles):
			raise HTTPException(
				status_code=403,
				detail=f"Insufficient permissions. Required all roles: {', '.join(required)}",
			)
		return user
	return checker


require_admin = require_roles(role_helper.ADMIN)


@router.post("/admin/login")
async def admin_login(req: AdminLoginRequest, db: Session = Depends(get_db)):
	email = (req.email or "").strip().lower()
	if not email or not req.password:
		raise HTTPException(status_code=400, detail="email and password are required")
	row = db.query(UserRow).filter(UserRow.email == email).first()
	if row is None or not row.password or not verify_password(req.password, row.password):
		logger.info("Admin login failed for %s", email)
		raise HTTPException(status_code=401, detail="Invalid email or password")
	if row.status != "1":
		raise HTTPException(status_code=403, detail="User account is inactive")
	user_roles = role_helper.get_user_roles(db, row.id)
	if role_helper.ADMIN not in user_roles:
		raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
	logger.info("Admin %s logged in", row.id)
	return success(
		{"token": create_access_token(row), "token_type": "bearer", "user": serialize_user(row, user_roles)},
		"Login successful",
	)


@router.get("/me")
async def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = db.get(UserRow, user.id)
	return success(serialize_user(row, user.roles))


def _failure_redirect() -> RedirectResponse:
	return RedirectResponse(url=f"{settings.frontend_url}/signin?error=authentication_failed", status_code=302)


@router.get("/google")
async def google_login():
	try:
		url = google_oauth.build_authorization_url(_create_oauth_state())
	except google_oauth.GoogleAuthError as e:
		logger.error("Google login unavailable: %s", e)
		return _failure_redirect()
	return RedirectResponse(url=url, status_code=302)


def upsert_google_user(db: Session, profile: Dict[str, Any]) -> UserRow:
	now = datetime.utcnow()
	row = db.query(UserRow).filter(UserRow.google_id == profile["google_id"]).first()
	if row is not None:
		row.profile_picture = profile.get("picture")
		db.commit()
		return row
	row = db.query(UserRow).filter(UserRow.email == profile["email"].lower()).first()
	if row is not None:
		# Link Google to the existing email account
		row.google_id = profile["google_id"]
		row.auth_provider = "google"
		row.profile_picture = profile.get("picture")
		row.email_verified_at = now
		db.commit()
		logger.info("Linked Google account to user %s", row.id)
		return row
	row = UserRow(
		name=profile["name"],
		email=profile["email"].lower(),
		google_id=profile["google_id"],
		auth_provider="google",
		profile_picture=profile.get("picture"),
		password=None,
		status="1",
		email_verified_at=now,
	)
	db.add(row)
	db.flush()
	role_helper.assign_role_to_user(db, row.id, role_helper.DEFAULT_ROLE)
	db.commit()
	logger.info("Created Google user %s", row.id)
	return row


@router.get("/google/callback")
async def google_callback(code: Optional[str] = None, state: Optional[str] = None, db: Session = Depends(get_db)):
	if not code or not _verify_oauth_state(state):
		return _failure_redirect()
	try:
		profile = await google_oauth.fetch_google_profile(code)
		row = upsert_google_user(db, profile)
	except google_oauth.GoogleAuthError as e:
		logger.error("Google auth error: %s", e)
		return _failure_redirect()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("Could not store Google user")
		return _failure_redirect()
	token = create_access_token(row)
	user_json = json.dumps({
		"id": row.id,
		"name": row.name,
		"email": row.email,
		"authProvider": row.auth_provider,
		"profilePicture": row.profile_picture,
	})
	query = urlencode({"token": token, "user": user_json})
	return RedirectResponse(url=f"{settings.frontend_url}/auth/callback?{query}", status_code=302)


@router.get("/failure")
async def google_failure():
	return _failure_redirect()
