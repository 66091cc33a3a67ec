from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import roles as role_helper
from ..db import get_db
from ..models import User as UserRow
from ..responses import success
from .auth import User, hash_password, require_admin, serialize_user

router = APIRouter(prefix="/api/user", tags=["users"])
logger = logging.getLogger(__name__)


class UserCreateRequest(BaseModel):
	name: str
	email: str
	password: Optional[str] = None
	phone: Optional[str] = None
	country: Optional[str] = None
	status: str = "1"
	roles: List[str] = [role_helper.DEFAULT_ROLE]


class UserUpdateRequest(BaseModel):
	id: int
	name: Optional[str] = None
	email: Optional[str] = None
	password: Optional[str] = None
	phone: Optional[str] = None
	country: Optional[str] = None
	status: Optional[str] = None
	roles: Optional[List[str]] = None


def _validate_roles(names: List[str]) -> None:
	unknown = [n for n in names if n not in role_helper.ALL_ROLES]
	if unknown:
		raise HTTPException(status_code=400, detail=f"Unknown role(s): {', '.join(unknown)}")


def _get_or_404(db: Session, user_id: int) -> UserRow:
	row = db.get(UserRow, user_id)
	if row is None:
		raise HTTPException(status_code=404, detail="User not found")
	return row


def _email_taken(db: Session, email: str, exclude_id: Optional[int] = None) -> bool:
	query = db.query(UserRow).filter(UserRow.email == email)
	if exclude_id is not None:
		query = query.filter(UserRow.id != exclude_id)
	return query.first() is not None


@router.get("/index")
async def index(role: Optional[str] = None, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	if role:
		rows = role_helper.get_users_by_role(db, role)
	else:
		rows = db.query(UserRow).order_by(UserRow.id.desc()).all()
	users = [serialize_user(r, role_helper.get_user_roles(db, r.id)) for r in rows]
	return success(users, "Users fetched successfully")


@router.get("/create")
async def create(admin: User = Depends(require_admin)):
	return success({"roles": role_helper.ALL_ROLES, "default_role": role_helper.DEFAULT_ROLE})


@router.post("/store", status_code=201)
async def store(req: UserCreateRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	name = (req.name or "").strip()
	email = (req.email or "").strip().lower()
	if not name or not email:
		raise HTTPException(status_code=400, detail="name and email are required")
	_validate_roles(req.roles)
	if _email_taken(db, email):
		raise HTTPException(status_code=409, detail="A user with this email already exists")
	row = UserRow(
		name=name,
		email=email,
		password=hash_password(req.password) if req.password else None,
		auth_provider="local",
		phone=req.phone,
		country=req.country,
		status=req.status,
	)
	db.add(row)
	db.flush()
	for role_name in req.roles:
		role_helper.assign_role_to_user(db, row.id, role_name)
	db.commit()
	logger.info("User %s created by admin %s", row.id, admin.id)
	return success(serialize_user(row, role_helper.get_user_roles(db, row.id)), "User created successfully", 201)


@router.get("/edit/{user_id}")
async def edit(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_or_404(db, user_id)
	return success(serialize_user(row, role_helper.get_user_roles(db, row.id)))


@router.post("/update")
async def update(req: UserUpdateRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_or_404(db, req.id)
	changes = req.model_dump(exclude_unset=True, exclude={"id", "password", "roles"})
	if "email" in changes:
		changes["email"] = (changes["email"] or "").strip().lower()
		if not changes["email"]:
			raise HTTPException(status_code=400, detail="email cannot be empty")
		if _email_taken(db, changes["email"], exclude_id=row.id):
			raise HTTPException(status_code=409, detail="A user with this email already exists")
	for field, value in changes.items():
		setattr(row, field, value)
	if req.password:
		row.password = hash_password(req.password)
	if req.roles is not None:
		_validate_roles(req.roles)
		role_helper.set_user_roles(db, row.id, req.roles)
	db.commit()
	logger.info("User %s updated by admin %s", row.id, admin.id)
	return success(serialize_user(row, role_helper.get_user_roles(db, row.id)), "User updated successfully")


@router.get("/delete/{user_id}")
async def delete_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_or_404(db, user_id)
	if row.id == admin.id:
		raise HTTPException(status_code=400, detail="You cannot delete your own account")
	for role_name in role_helper.get_user_roles(db, row.id):
		role_helper.remove_role_from_user(db, row.id, role_name)
	db.delete(row)
	db.commit()
	logger.info("User %s deleted by admin %s", user_id, admin.id)
	return success(None, "User deleted successfully")
