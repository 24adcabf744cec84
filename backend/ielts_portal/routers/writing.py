from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..llm_client import GeminiClient, extract_json_object, llm_configured
from ..models import ROLE_ADMIN, ROLE_INSTRUCTOR, Assignment, MockModule, Submission, User, load_json
from ..scoring.bands import (
	ScoringError,
	WritingCriteria,
	calculate_writing_band,
	check_band,
	combine_writing_task_bands,
	get_band_description,
)
from ..services.results import calculate_and_store_results
from .auth import CurrentUser, require_roles

router = APIRouter(prefix="/admin/writing-submissions", tags=["writing"])
logger = logging.getLogger("ielts.writing")

staff = require_roles(ROLE_ADMIN, ROLE_INSTRUCTOR)

# Long essays are cut before they go to the model
MAX_ASSESSED_CHARS = 8000


class EvaluateRequest(BaseModel):
	criteria: Optional[WritingCriteria] = None
	task1_band: Optional[float] = None
	task2_band: Optional[float] = None
	band: Optional[float] = None


class NotesRequest(BaseModel):
	notes: str


def _load_writing_submission(db: Session, submission_id: str) -> tuple:
	row = (
		db.query(Submission, MockModule)
		.join(MockModule, MockModule.id == Submission.module_id)
		.filter(Submission.id == submission_id)
		.first()
	)
	if not row or row[1].type != "WRITING":
		raise HTTPException(status_code=404, detail="Writing test submission not found")
	return row


def _submission_out(db: Session, sub: Submission) -> Dict[str, Any]:
	assignment = db.get(Assignment, sub.assignment_id)
	student = db.get(User, assignment.student_id) if assignment else None
	return {
		"id": sub.id,
		"assignment_id": sub.assignment_id,
		"module_id": sub.module_id,
		"student": {"id": student.id, "email": student.email, "name": student.name} if student else None,
		"answers": sub.answers,
		"submitted_at": sub.submitted_at.isoformat() if sub.submitted_at else None,
		"criteria": load_json(sub.criteria_json),
		"task1_band": sub.task1_band,
		"task2_band": sub.task2_band,
		"band": sub.band,
		"instructor_notes": sub.instructor_notes,
		"evaluated_at": sub.evaluated_at.isoformat() if sub.evaluated_at else None,
	}


@router.get("")
def list_submissions(pending: bool = False, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	q = (
		db.query(Submission)
		.join(MockModule, MockModule.id == Submission.module_id)
		.filter(MockModule.type == "WRITING", Submission.submitted_at.isnot(None))
	)
	if pending:
		q = q.filter(Submission.band.is_(None))
	rows = q.order_by(Submission.submitted_at.desc()).all()
	return {"submissions": [_submission_out(db, s) for s in rows]}


@router.get("/{submission_id}")
def get_submission(submission_id: str, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	sub, _ = _load_writing_submission(db, submission_id)
	return _submission_out(db, sub)


@router.put("/{submission_id}/evaluate")
def evaluate(submission_id: str, req: EvaluateRequest, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	sub, _ = _load_writing_submission(db, submission_id)
	if sub.submitted_at is None:
		raise HTTPException(status_code=400, detail="Submission has not been submitted yet")
	try:
		task_band = combine_writing_task_bands(req.task1_band, req.task2_band)
		if req.criteria is not None:
			band = calculate_writing_band(req.criteria)
		elif task_band is not None:
			band = task_band
		elif req.band is not None:
			band = check_band("band", req.band)
		else:
			raise HTTPException(status_code=400, detail="criteria, task bands or band is required")
	except ScoringError as e:
		raise HTTPException(status_code=400, detail=str(e))

	sub.criteria_json = json.dumps(req.criteria.model_dump()) if req.criteria else None
	sub.task1_band = req.task1_band
	sub.task2_band = req.task2_band
	sub.band = band
	sub.evaluated_at = datetime.utcnow()
	db.commit()
	logger.info("Writing evaluated: submission=%s band=%s by=%s", sub.id, band, user.id)
	calculate_and_store_results(db, sub.assignment_id)
	return {**_submission_out(db, sub), "description": get_band_description(band)}


@router.put("/{submission_id}/notes")
def save_notes(submission_id: str, req: NotesRequest, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	sub, _ = _load_writing_submission(db, submission_id)
	sub.instructor_notes = req.notes
	db.commit()
	return {"ok": True, "instructor_notes": sub.instructor_notes}


def _build_assessment_prompt(task_text: str) -> str:
	return (
		"You are an IELTS Writing examiner. Score the candidate's response against the four public band descriptors.\n"
		"Give each criterion a band from 0 to 9 in steps of 0.5:\n"
		"- task_achievement\n"
		"- coherence_cohesion\n"
		"- lexical_resource\n"
		"- grammar_accuracy\n\n"
		"Also give a short overall comment.\n"
		"Return ONLY a JSON object with keys: task_achievement, coherence_cohesion, lexical_resource, grammar_accuracy (numbers), comment (string).\n\n"
		f"Candidate response:\n{task_text}"
	)


def _writing_text(answers: Dict[str, Any]) -> str:
	parts = [str(v).strip() for v in answers.values() if isinstance(v, str) and v.strip()]
	return "\n\n".join(parts)


@router.post("/{submission_id}/suggest")
async def suggest(submission_id: str, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	sub, _ = _load_writing_submission(db, submission_id)
	text = _writing_text(sub.answers)
	if not text:
		raise HTTPException(status_code=400, detail="Submission has no written text")
	if not llm_configured():
		raise HTTPException(status_code=503, detail="Writing assistant is not configured")
	client = GeminiClient()
	try:
		raw = await client.generate(_build_assessment_prompt(text[:MAX_ASSESSED_CHARS]))
	except RuntimeError as e:
		logger.exception("Writing assistant call failed for submission %s", submission_id)
		raise HTTPException(status_code=502, detail=str(e))
	finally:
		await client.aclose()
	try:
		data = extract_json_object(raw)
		criteria = WritingCriteria(**{k: float(data[k]) for k in WritingCriteria.model_fields})
	except (ValueError, KeyError, TypeError) as e:
		raise HTTPException(status_code=502, detail=f"Writing assistant returned an unusable answer: {e}")
	band = calculate_writing_band(criteria)
	return {
		"criteria": criteria.model_dump(),
		"band": band,
		"description": get_band_description(band),
		"comment": str(data.get("comment", "")) if isinstance(data, dict) else "",
	}
