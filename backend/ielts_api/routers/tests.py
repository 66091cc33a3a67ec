from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Test, WritingQuestion
from ..responses import success
from .auth import User, get_current_user, optional_user, require_admin

router = APIRouter(prefix="/api/tests", tags=["tests"])
logger = logging.getLogger(__name__)

ACADEMIC = 1
GENERAL_TRAINING = 2
ACTIVE = 1


class TestCreateRequest(BaseModel):
	name: str
	category: int = Field(default=ACADEMIC, ge=1, le=2)
	type: Optional[str] = "writing"
	status: int = ACTIVE


class TestUpdateRequest(BaseModel):
	name: Optional[str] = None
	category: Optional[int] = Field(default=None, ge=1, le=2)
	type: Optional[str] = None
	status: Optional[int] = None


class QuestionInput(BaseModel):
	task_number: int = Field(ge=1, le=2)
	question_text: str
	word_limit: Optional[int] = Field(default=None, gt=0)


class QuestionsRequest(BaseModel):
	questions: List[QuestionInput]


def serialize_test(test: Test) -> Dict[str, Any]:
	return {
		"id": test.id,
		"name": test.name,
		"category": test.category,
		"type": test.type,
		"status": test.status,
		"created_at": test.created_at,
		"updated_at": test.updated_at,
	}


def serialize_question(q: WritingQuestion) -> Dict[str, Any]:
	return {
		"id": q.id,
		"task_number": q.task_number,
		"question_text": q.question_text,
		"word_limit": q.word_limit,
	}


def get_test_or_404(db: Session, test_id: int) -> Test:
	test = db.get(Test, test_id)
	if test is None:
		raise HTTPException(status_code=404, detail="Test not found")
	return test


@router.get("")
async def get_tests(user: Optional[User] = Depends(optional_user), db: Session = Depends(get_db)):
	query = db.query(Test)
	# Inactive tests are only listed for admins
	if user is None or not user.is_admin:
		query = query.filter(Test.status == ACTIVE)
	tests = query.order_by(Test.id.desc()).all()
	logger.info("Tests fetched: %d", len(tests))
	return success([serialize_test(t) for t in tests], "Tests fetched successfully")


@router.get("/{test_id}")
async def get_test(test_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	test = get_test_or_404(db, test_id)
	return success(serialize_test(test))


@router.post("", status_code=201)
async def create_test(req: TestCreateRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	name = (req.name or "").strip()
	if not name:
		raise HTTPException(status_code=400, detail="name is required")
	test = Test(name=name, category=req.category, type=req.type, status=req.status)
	db.add(test)
	db.commit()
	logger.info("Test %s created: %s", test.id, name)
	return success(serialize_test(test), "Test created successfully", 201)


@router.put("/{test_id}")
async def update_test(test_id: int, req: TestUpdateRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = get_test_or_404(db, test_id)
	for field, value in req.model_dump(exclude_unset=True).items():
		if value is not None:
			setattr(test, field, value)
	db.commit()
	logger.info("Test %s updated", test.id)
	return success(serialize_test(test), "Test updated successfully")


@router.delete("/{test_id}")
async def delete_test(test_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = get_test_or_404(db, test_id)
	db.delete(test)
	db.commit()
	logger.info("Test %s deleted", test_id)
	return success(None, "Test deleted successfully")


@router.get("/{test_id}/questions")
async def get_questions(test_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	test = get_test_or_404(db, test_id)
	return success([serialize_question(q) for q in test.writing_questions])


@router.put("/{test_id}/questions")
async def put_questions(test_id: int, req: QuestionsRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = get_test_or_404(db, test_id)
	existing = {q.task_number: q for q in test.writing_questions}
	for item in req.questions:
		question = existing.get(item.task_number)
		if question is None:
			question = WritingQuestion(test_id=test.id, task_number=item.task_number)
			test.writing_questions.append(question)
			existing[item.task_number] = question
		question.question_text = item.question_text
		question.word_limit = item.word_limit
	db.commit()
	db.refresh(test)
	logger.info("Questions saved for test %s", test.id)
	return success([serialize_question(q) for q in test.writing_questions], "Questions saved successfully")
