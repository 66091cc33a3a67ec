from __future__ import annotations
import enum
from datetime import datetime
from sqlalchemy import (
	Boolean,
	Column,
	DateTime,
	Enum,
	Float,
	ForeignKey,
	Integer,
	String,
	Text,
	UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base


class ReviewStatus(str, enum.Enum):
	pending = "pending"
	in_progress = "in_progress"
	completed = "completed"
	rejected = "rejected"


class User(Base):
	__tablename__ = "users"
	id = Column(Integer, primary_key=True, index=True)
	name = Column(String(255), nullable=False)
	email = Column(String(255), unique=True, index=True, nullable=False)
	# Null for OAuth-only accounts
	password = Column(String(256), nullable=True)
	auth_provider = Column(String(32), default="local", nullable=True)
	google_id = Column(String(128), unique=True, index=True, nullable=True)
	profile_picture = Column(String(1024), nullable=True)
	phone = Column(String(32), nullable=True)
	country = Column(String(64), nullable=True)
	# "1" is active
	status = Column(String(8), default="1", nullable=False)
	email_verified_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Role(Base):
	__tablename__ = "roles"
	id = Column(Integer, primary_key=True)
	name = Column(String(64), unique=True, nullable=False)
	guard_name = Column(String(64), default="web", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ModelHasRole(Base):
	__tablename__ = "model_has_roles"
	# Polymorphic reference: (model_type, model_id) points at the owning row
	role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
	model_type = Column(String(255), primary_key=True)
	model_id = Column(Integer, primary_key=True, index=True)

	role = relationship("Role")


class Test(Base):
	__tablename__ = "tests"
	id = Column(Integer, primary_key=True, index=True)
	name = Column(String(255), nullable=False)
	# 1 = Academic, 2 = General Training
	category = Column(Integer, nullable=False, default=1)
	type = Column(String(64), nullable=True)
	# 1 = active
	status = Column(Integer, nullable=False, default=1)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	writing_questions = relationship(
		"WritingQuestion",
		back_populates="test",
		order_by="WritingQuestion.task_number",
		cascade="all, delete-orphan",
	)
	submissions = relationship("WritingSubmission", back_populates="test", cascade="all, delete-orphan")


class WritingQuestion(Base):
	__tablename__ = "writing_questions"
	__table_args__ = (UniqueConstraint("test_id", "task_number", name="uq_writing_question_task"),)
	id = Column(Integer, primary_key=True)
	test_id = Column(Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
	task_number = Column(Integer, nullable=False)
	question_text = Column(Text, nullable=False)
	word_limit = Column(Integer, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	test = relationship("Test", back_populates="writing_questions")


class WritingSubmission(Base):
	__tablename__ = "writing_submissions"
	id = Column(Integer, primary_key=True, index=True)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	test_id = Column(Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True)
	task1_answer = Column(Text, nullable=True)
	task1_word_count = Column(Integer, default=0, nullable=False)
	task2_answer = Column(Text, nullable=True)
	task2_word_count = Column(Integer, default=0, nullable=False)
	time_taken = Column(Integer, nullable=True)
	ai_evaluation = Column(Text, nullable=True)  # JSON string
	# Derived from ai_evaluation on every write
	overall_band_score = Column(Float, nullable=True)
	expert_score = Column(Float, nullable=True)
	expert_feedback = Column(Text, nullable=True)  # JSON string
	expert_feedback_sent = Column(Boolean, default=False, nullable=False)
	status = Column(String(32), default="evaluated", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	test = relationship("Test", back_populates="submissions")
	review_request = relationship(
		"ExpertReviewRequest",
		back_populates="submission",
		uselist=False,
		cascade="all, delete-orphan",
	)


class ExpertReviewRequest(Base):
	__tablename__ = "expert_review_requests"
	id = Column(Integer, primary_key=True, index=True)
	submission_id = Column(
		Integer,
		ForeignKey("writing_submissions.id", ondelete="CASCADE"),
		unique=True,
		nullable=False,
	)
	user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
	status = Column(
		Enum(ReviewStatus, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
		default=ReviewStatus.pending,
		nullable=False,
	)
	requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	reviewed_at = Column(DateTime, nullable=True)
	admin_notes = Column(Text, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	submission = relationship("WritingSubmission", back_populates="review_request")
