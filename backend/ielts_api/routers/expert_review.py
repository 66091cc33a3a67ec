from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import ExpertReviewRequest, ReviewStatus, WritingSubmission
from ..responses import success
from .auth import User, get_current_user, require_admin
from .tests import serialize_question
from .writing import serialize_submission

router = APIRouter(prefix="/api/expert-review", tags=["expert-review"])
logger = logging.getLogger(__name__)

# Statuses that close a request
_FINAL = (ReviewStatus.completed, ReviewStatus.rejected)


class ReviewRequestCreate(BaseModel):
	submission_id: int


class ExpertReviewSubmit(BaseModel):
	expert_evaluation: Dict[str, Any]
	expert_overall_score: float = Field(ge=0, le=9)
	admin_notes: Optional[str] = None
	status: ReviewStatus = ReviewStatus.completed


class StatusUpdate(BaseModel):
	status: str
	admin_notes: Optional[str] = None


def serialize_request(req: ExpertReviewRequest, *, full: bool = False) -> Dict[str, Any]:
	sub = req.submission
	data: Dict[str, Any] = {
		"id": req.id,
		"submission_id": req.submission_id,
		"user_id": req.user_id,
		"status": req.status.value,
		"requested_at": req.requested_at,
		"reviewed_at": req.reviewed_at,
		"admin_notes": req.admin_notes,
	}
	if full:
		submission = serialize_submission(sub)
		test = sub.test
		submission["test"] = None if test is None else {
			"id": test.id,
			"title": test.name,
			"category": test.category,
			"questions": [serialize_question(q) for q in test.writing_questions],
		}
		data["submission"] = submission
	else:
		data["submission"] = {
			"id": sub.id,
			"test_id": sub.test_id,
			"overall_band_score": sub.overall_band_score,
			"expert_score": sub.expert_score,
			"expert_feedback": json.loads(sub.expert_feedback) if sub.expert_feedback else None,
			"expert_feedback_sent": sub.expert_feedback_sent,
			"created_at": sub.created_at,
		}
	return data


def _owned_submission(db: Session, submission_id: int, user: User) -> WritingSubmission:
	sub = db.get(WritingSubmission, submission_id)
	if sub is None:
		raise HTTPException(status_code=404, detail="Submission not found")
	if sub.user_id != user.id:
		raise HTTPException(status_code=403, detail="Unauthorized access")
	return sub


def _request_or_404(db: Session, request_id: int) -> ExpertReviewRequest:
	req = db.get(ExpertReviewRequest, request_id)
	if req is None:
		raise HTTPException(status_code=404, detail="Review request not found")
	return req


@router.post("/request", status_code=201)
async def request_expert_review(body: ReviewRequestCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	sub = _owned_submission(db, body.submission_id, user)
	if sub.review_request is not None:
		raise HTTPException(status_code=409, detail="Expert review already requested for this test")
	review = ExpertReviewRequest(submission_id=sub.id, user_id=user.id, status=ReviewStatus.pending)
	db.add(review)
	try:
		db.commit()
	except IntegrityError:
		# Lost a race against a concurrent request for the same submission
		db.rollback()
		raise HTTPException(status_code=409, detail="Expert review already requested for this test")
	logger.info("Expert review %s requested for submission %s", review.id, sub.id)
	return success(
		{
			"id": review.id,
			"submission_id": review.submission_id,
			"status": review.status.value,
			"requested_at": review.requested_at,
		},
		"Expert review requested successfully",
		201,
	)


@router.get("/my-requests")
async def get_user_review_requests(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = (
		db.query(ExpertReviewRequest)
		.filter(ExpertReviewRequest.user_id == user.id)
		.order_by(ExpertReviewRequest.requested_at.desc(), ExpertReviewRequest.id.desc())
		.all()
	)
	return success([serialize_request(r) for r in rows], "Review requests fetched successfully")


@router.get("/request/{request_id}")
async def get_review_request_details(request_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	req = _request_or_404(db, request_id)
	if req.user_id != user.id:
		raise HTTPException(status_code=403, detail="Unauthorized access")
	return success(serialize_request(req), "Review request details fetched successfully")


@router.get("/check/{submission_id}")
async def check_expert_review_status(submission_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	sub = _owned_submission(db, submission_id, user)
	review = sub.review_request
	if review is None:
		return success({"has_request": False}, "No review request found")
	return success(
		{
			"has_request": True,
			"request_id": review.id,
			"status": review.status.value,
			"requested_at": review.requested_at,
			"reviewed_at": review.reviewed_at,
		},
		"Review request exists",
	)


@router.get("/admin/all")
async def get_all_review_requests(status: Optional[str] = None, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	query = db.query(ExpertReviewRequest)
	if status and status != "all":
		try:
			query = query.filter(ExpertReviewRequest.status == ReviewStatus(status))
		except ValueError:
			raise HTTPException(status_code=400, detail="Invalid status value")
	rows = query.order_by(ExpertReviewRequest.requested_at.desc(), ExpertReviewRequest.id.desc()).all()
	return success([serialize_request(r, full=True) for r in rows], "Review requests fetched successfully")


@router.get("/admin/request/{request_id}")
async def get_review_request_details_admin(request_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	req = _request_or_404(db, request_id)
	return success(serialize_request(req, full=True), "Review request details fetched successfully")


@router.post("/admin/request/{request_id}/submit")
async def submit_expert_review(request_id: int, body: ExpertReviewSubmit, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	if not body.expert_evaluation:
		raise HTTPException(status_code=400, detail="Expert evaluation and overall score are required")
	req = _request_or_404(db, request_id)
	now = datetime.utcnow()
	sub = req.submission
	sub.expert_feedback = json.dumps(body.expert_evaluation)
	sub.expert_score = body.expert_overall_score
	sub.expert_feedback_sent = True
	sub.status = "reviewed"
	req.status = body.status
	req.reviewed_at = now
	req.admin_notes = body.admin_notes
	db.commit()
	logger.info("Expert review %s submitted by admin %s (score %.1f)", req.id, admin.id, body.expert_overall_score)
	return success(
		{"request_id": req.id, "status": req.status.value},
		"Expert review submitted successfully",
	)


@router.patch("/admin/request/{request_id}/status")
async def update_review_request_status(request_id: int, body: StatusUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	if not body.status:
		raise HTTPException(status_code=400, detail="Status is required")
	try:
		new_status = ReviewStatus(body.status)
	except ValueError:
		raise HTTPException(status_code=400, detail="Invalid status value")
	req = _request_or_404(db, request_id)
	req.status = new_status
	if body.admin_notes:
		req.admin_notes = body.admin_notes
	if new_status in _FINAL:
		req.reviewed_at = datetime.utcnow()
	db.commit()
	logger.info("Expert review %s moved to %s by admin %s", req.id, new_status.value, admin.id)
	return success(
		{
			"id": req.id,
			"status": req.status.value,
			"reviewed_at": req.reviewed_at,
			"admin_notes": req.admin_notes,
		},
		"Review request status updated successfully",
	)
