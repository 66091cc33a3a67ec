from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..evaluator import evaluate_writing_test
from ..llm_client import LLMError
from ..models import Test, WritingSubmission
from ..responses import success
from ..scoring import SubmissionError, TaskState, TASK_NUMBERS, merge_evaluation, resolve_tasks
from .auth import User, get_current_user
from .tests import ACADEMIC, ACTIVE, GENERAL_TRAINING, serialize_question

router = APIRouter(prefix="/api/take-test/writing", tags=["writing"])
logger = logging.getLogger(__name__)

RETRY_MESSAGE = "AI evaluation is temporarily unavailable. Please try again in a few minutes."


class SubmitRequest(BaseModel):
	test_id: int
	task1_answer: Optional[str] = None
	task2_answer: Optional[str] = None
	time_taken: Optional[int] = Field(default=None, ge=0)
	# Set to resubmit into an existing submission
	submission_id: Optional[int] = None


def _loads(value: Optional[str]) -> Optional[Any]:
	if not value:
		return None
	try:
		return json.loads(value)
	except ValueError:
		return None


def _list_tests(db: Session, category: int, order_by) -> list:
	rows = (
		db.query(Test)
		.filter(Test.status == ACTIVE, Test.category == category)
		.order_by(order_by)
		.all()
	)
	return [
		{
			"id": t.id,
			"name": t.name,
			"category": t.category,
			"type": t.type,
			"created_at": t.created_at,
			"updated_at": t.updated_at,
		}
		for t in rows
	]


def serialize_submission(sub: WritingSubmission) -> Dict[str, Any]:
	review = sub.review_request
	return {
		"id": sub.id,
		"user_id": sub.user_id,
		"test_id": sub.test_id,
		"test_name": sub.test.name if sub.test else None,
		"task1_answer": sub.task1_answer,
		"task1_word_count": sub.task1_word_count,
		"task2_answer": sub.task2_answer,
		"task2_word_count": sub.task2_word_count,
		"time_taken": sub.time_taken,
		"ai_evaluation": _loads(sub.ai_evaluation),
		"overall_band_score": sub.overall_band_score,
		"expert_score": sub.expert_score,
		"expert_feedback": _loads(sub.expert_feedback),
		"expert_feedback_sent": sub.expert_feedback_sent,
		"expert_review_status": review.status.value if review else None,
		"status": sub.status,
		"created_at": sub.created_at,
		"updated_at": sub.updated_at,
	}


def _stored_tasks(sub: WritingSubmission) -> Dict[int, TaskState]:
	evaluation = _loads(sub.ai_evaluation) or {}
	return {
		1: TaskState(sub.task1_answer, sub.task1_word_count or 0, evaluation.get("task1")),
		2: TaskState(sub.task2_answer, sub.task2_word_count or 0, evaluation.get("task2")),
	}


@router.get("/academic-writing-test")
async def get_academic_writing_tests(db: Session = Depends(get_db)):
	tests = _list_tests(db, ACADEMIC, Test.name.asc())
	if not tests:
		return success([], "No active tests available")
	return success(tests, "Active tests fetched successfully")


@router.get("/general-training-writing-test")
async def get_general_training_writing_tests(db: Session = Depends(get_db)):
	tests = _list_tests(db, GENERAL_TRAINING, Test.id.desc())
	if not tests:
		return success([], "No active tests available")
	return success(tests, "Active tests fetched successfully")


@router.get("/test/{test_id}")
async def get_writing_test(test_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	test = db.get(Test, test_id)
	if test is None or test.status != ACTIVE:
		raise HTTPException(status_code=404, detail="Test not found")
	return success({
		"id": test.id,
		"name": test.name,
		"category": test.category,
		"type": test.type,
		"questions": [serialize_question(q) for q in test.writing_questions],
	})


@router.post("/submit")
async def submit_writing_test(req: SubmitRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	test = db.get(Test, req.test_id)
	if test is None or test.status != ACTIVE:
		raise HTTPException(status_code=404, detail="Test not found")
	questions = {q.task_number: q for q in test.writing_questions}

	submission: Optional[WritingSubmission] = None
	previous: Optional[Dict[int, TaskState]] = None
	if req.submission_id is not None:
		submission = db.get(WritingSubmission, req.submission_id)
		if submission is None:
			raise HTTPException(status_code=404, detail="Submission not found")
		if submission.user_id != user.id:
			raise HTTPException(status_code=403, detail="Unauthorized access")
		if submission.test_id != test.id:
			raise HTTPException(status_code=400, detail="Submission belongs to a different test")
		previous = _stored_tasks(submission)

	supplied = {1: req.task1_answer, 2: req.task2_answer}
	for number, answer in supplied.items():
		if answer and answer.strip() and number not in questions:
			raise HTTPException(status_code=400, detail=f"This test has no Task {number} question")
	word_limits = {n: q.word_limit for n, q in questions.items()}
	try:
		tasks, to_evaluate = resolve_tasks(previous, supplied, word_limits)
	except SubmissionError as e:
		raise HTTPException(status_code=400, detail=str(e))

	fresh: Dict[str, Any] = {}
	if to_evaluate:
		payload = {
			n: {
				"question": questions[n].question_text,
				"answer": tasks[n].answer,
				"word_count": tasks[n].word_count,
			}
			for n in to_evaluate
		}
		try:
			fresh = await evaluate_writing_test(payload)
		except LLMError as e:
			logger.error("AI evaluation failed for user %s test %s: %s", user.id, test.id, e)
			raise HTTPException(status_code=503, detail=RETRY_MESSAGE)
	evaluation = merge_evaluation(tasks, fresh, to_evaluate)

	created = submission is None
	if created:
		submission = WritingSubmission(user_id=user.id, test_id=test.id)
		db.add(submission)
	for number in TASK_NUMBERS:
		state = tasks[number]
		setattr(submission, f"task{number}_answer", state.answer if state.has_answer else None)
		setattr(submission, f"task{number}_word_count", state.word_count if state.has_answer else 0)
	if req.time_taken is not None:
		submission.time_taken = req.time_taken
	submission.ai_evaluation = json.dumps(evaluation)
	submission.overall_band_score = evaluation["average_band"]
	submission.status = "evaluated"
	db.commit()
	db.refresh(submission)
	logger.info(
		"Submission %s %s by user %s (re-evaluated tasks %s, band %.1f)",
		submission.id,
		"created" if created else "updated",
		user.id,
		to_evaluate,
		submission.overall_band_score,
	)
	message = "Writing test submitted successfully" if created else "Writing test resubmitted successfully"
	return success(serialize_submission(submission), message, 201 if created else 200)


@router.get("/submissions")
async def get_my_submissions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = (
		db.query(WritingSubmission)
		.filter(WritingSubmission.user_id == user.id)
		.order_by(WritingSubmission.created_at.desc(), WritingSubmission.id.desc())
		.all()
	)
	return success([serialize_submission(s) for s in rows], "Submissions fetched successfully")


@router.get("/submission/{submission_id}")
async def get_submission(submission_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	sub = db.get(WritingSubmission, submission_id)
	if sub is None:
		raise HTTPException(status_code=404, detail="Submission not found")
	if sub.user_id != user.id and not user.is_admin:
		raise HTTPException(status_code=403, detail="Unauthorized access")
	return success(serialize_submission(sub))
