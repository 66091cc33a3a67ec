from __future__ import annotations
import logging
from typing import List

from sqlalchemy.orm import Session

from .models import ModelHasRole, Role, User

logger = logging.getLogger(__name__)

ADMIN = "Admin"
USER = "User"
ALL_ROLES = [ADMIN, USER]
DEFAULT_ROLE = USER

# Role assignments reference users through this model type
USER_MODEL_TYPE = "App\\Models\\User"


def ensure_roles(db: Session) -> None:
	existing = {r.name for r in db.query(Role).all()}
	for name in ALL_ROLES:
		if name not in existing:
			db.add(Role(name=name))
	db.commit()


def get_user_roles(db: Session, user_id: int) -> List[str]:
	rows = (
		db.query(Role.name)
		.join(ModelHasRole, ModelHasRole.role_id == Role.id)
		.filter(ModelHasRole.model_id == user_id, ModelHasRole.model_type == USER_MODEL_TYPE)
		.order_by(Role.name)
		.all()
	)
	return [name for (name,) in rows]


def user_has_role(db: Session, user_id: int, role_name: str) -> bool:
	return (
		db.query(ModelHasRole)
		.join(Role, ModelHasRole.role_id == Role.id)
		.filter(
			Role.name == role_name,
			ModelHasRole.model_type == USER_MODEL_TYPE,
			ModelHasRole.model_id == user_id,
		)
		.first()
		is not None
	)


def _find_role(db: Session, role_name: str) -> Role:
	role = db.query(Role).filter(Role.name == role_name).first()
	if role is None:
		raise ValueError(f"Role '{role_name}' not found")
	return role


def assign_role_to_user(db: Session, user_id: int, role_name: str) -> bool:
	"""Returns False when the user already holds the role. Does not commit."""
	role = _find_role(db, role_name)
	existing = db.get(ModelHasRole, (role.id, USER_MODEL_TYPE, user_id))
	if existing is not None:
		return False
	db.add(ModelHasRole(role_id=role.id, model_type=USER_MODEL_TYPE, model_id=user_id))
	logger.info("Assigned role %s to user %s", role_name, user_id)
	return True


def remove_role_from_user(db: Session, user_id: int, role_name: str) -> int:
	role = _find_role(db, role_name)
	count = (
		db.query(ModelHasRole)
		.filter(
			ModelHasRole.role_id == role.id,
			ModelHasRole.model_type == USER_MODEL_TYPE,
			ModelHasRole.model_id == user_id,
		)
		.delete(synchronize_session=False)
	)
	return count


def set_user_roles(db: Session, user_id: int, role_names: List[str]) -> None:
	current = set(get_user_roles(db, user_id))
	wanted = set(role_names)
	for name in current - wanted:
		remove_role_from_user(db, user_id, name)
	for name in wanted - current:
		assign_role_to_user(db, user_id, name)


def get_users_by_role(db: Session, role_name: str) -> List[User]:
	role = db.query(Role).filter(Role.name == role_name).first()
	if role is None:
		return []
	ids = [
		model_id
		for (model_id,) in db.query(ModelHasRole.model_id).filter(
			ModelHasRole.role_id == role.id,
			ModelHasRole.model_type == USER_MODEL_TYPE,
		)
	]
	if not ids:
		return []
	return db.query(User).filter(User.id.in_(ids)).order_by(User.id.desc()).all()
