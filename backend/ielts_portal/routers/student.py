from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import (
    ROLE_STUDENT,
    STATUS_EXPIRED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    Assignment,
    MockModule,
    MockTest,
    Submission,
)
from ..scoring.detailed import LISTENING, READING, score_module_submission
from ..services.results import calculate_and_store_results, result_payload
from ..tokens import is_token_active, is_token_expired
from .admin import mock_out
from .auth import CurrentUser, require_roles

router = APIRouter(prefix="/student", tags=["student"])
logger = logging.getLogger("ielts.student")

student_only = require_roles(ROLE_STUDENT)


class AnswersRequest(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)
    time_spent_seconds: Optional[int] = Field(default=None, ge=0)


@router.get("/validate-token")
def validate_token(token: str, db: Session = Depends(get_db)):
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")
    assignment = db.query(Assignment).filter(Assignment.access_token == token).first()
    if not assignment:
        raise HTTPException(status_code=404, detail="Invalid token")
    now = datetime.utcnow()
    if is_token_expired(assignment.valid_until, now):
        raise HTTPException(status_code=403, detail="Token has expired")
    if assignment.valid_from > now:
        raise HTTPException(status_code=403, detail="Token is not yet valid")
    mock = db.get(MockTest, assignment.mock_id)
    return {
        "valid": True,
        "assignment": {
            "id": assignment.id,
            "mock_id": assignment.mock_id,
            "test_title": mock.title if mock else None,
            "valid_from": assignment.valid_from.isoformat(),
            "valid_until": assignment.valid_until.isoformat(),
        },
    }


def _own_assignment(db: Session, user: CurrentUser, assignment_id: str) -> Assignment:
    assignment = db.get(Assignment, assignment_id)
    if not assignment or assignment.student_id != user.id:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return assignment


def _open_assignment(db: Session, user: CurrentUser, assignment_id: str) -> Assignment:
    assignment = _own_assignment(db, user, assignment_id)
    if assignment.status == STATUS_EXPIRED or not is_token_active(assignment.valid_from, assignment.valid_until):
        raise HTTPException(status_code=403, detail="Assignment is not open")
    return assignment


def _module(db: Session, assignment: Assignment, module_id: str) -> MockModule:
    module = db.get(MockModule, module_id)
    if not module or module.mock_id != assignment.mock_id:
        raise HTTPException(status_code=404, detail="Module not found")
    return module


def _submission(db: Session, assignment: Assignment, module: MockModule) -> Optional[Submission]:
    return (
        db.query(Submission)
        .filter(Submission.assignment_id == assignment.id, Submission.module_id == module.id)
        .first()
    )


def _assignment_summary(db: Session, assignment: Assignment) -> Dict[str, Any]:
    mock = db.get(MockTest, assignment.mock_id)
    modules = []
    for m in (mock.modules if mock else []):
        sub = _submission(db, assignment, m)
        modules.append({
            "id": m.id,
            "type": m.type,
            "duration_minutes": m.duration_minutes,
            "question_count": len(m.questions),
            "started": sub is not None,
            "submitted": bool(sub and sub.submitted_at),
        })
    return {
        "id": assignment.id,
        "mock_id": assignment.mock_id,
        "title": mock.title if mock else None,
        "status": assignment.status,
        "valid_from": assignment.valid_from.isoformat(),
        "valid_until": assignment.valid_until.isoformat(),
        "modules": modules,
    }


@router.get("/assignments")
def list_assignments(user: CurrentUser = Depends(student_only), db: Session = Depends(get_db)):
    rows = db.query(Assignment).filter(Assignment.student_id == user.id).order_by(Assignment.created_at.desc()).all()
    return {"assignments": [_assignment_summary(db, a) for a in rows]}


@router.get("/assignments/{assignment_id}")
def get_assignment(assignment_id: str, user: CurrentUser = Depends(student_only), db: Session = Depends(get_db)):
    return _assignment_summary(db, _own_assignment(db, user, assignment_id))


@router.get("/assignments/{assignment_id}/modules/{module_id}")
def get_module(assignment_id: str, module_id: str, user: CurrentUser = Depends(student_only), db: Session = Depends(get_db)):
    assignment = _open_assignment(db, user, assignment_id)
    module = _module(db, assignment, module_id)
    mock = db.get(MockTest, assignment.mock_id)
    payload = next(m for m in mock_out(mock, include_answers=False)["modules"] if m["id"] == module.id)
    sub = _submission(db, assignment, module)
    payload["saved_answers"] = sub.answers if sub else {}
    payload["submitted"] = bool(sub and sub.submitted_at)
    return payload


def _start_or_load(db: Session, assignment: Assignment, module: MockModule) -> Submission:
    sub = _submission(db, assignment, module)
    if sub is None:
        sub = Submission(assignment_id=assignment.id, module_id=module.id, started_at=datetime.utcnow())
        db.add(sub)
    if sub.submitted_at is not None:
        raise HTTPException(status_code=409, detail="Module already submitted")
    if assignment.status == STATUS_PENDING:
        assignment.status = STATUS_IN_PROGRESS
    return sub


@router.put("/assignments/{assignment_id}/modules/{module_id}/autosave")
def autosave(assignment_id: str, module_id: str, req: AnswersRequest, user: CurrentUser = Depends(student_only), db: Session = Depends(get_db)):
    assignment = _open_assignment(db, user, assignment_id)
    module = _module(db, assignment, module_id)
    sub = _start_or_load(db, assignment, module)
    sub.answers_json = json.dumps(req.answers)
    db.commit()
    return {"ok": True, "submission_id": sub.id, "saved_at": sub.updated_at.isoformat()}


@router.post("/assignments/{assignment_id}/modules/{module_id}/submit")
def submit(assignment_id: str, module_id: str, req: AnswersRequest, user: CurrentUser = Depends(student_only), db: Session = Depends(get_db)):
    assignment = _open_assignment(db, user, assignment_id)
    module = _module(db, assignment, module_id)
    sub = _start_or_load(db, assignment, module)
    answers = req.answers or sub.answers
    sub.answers_json = json.dumps(answers)
    sub.submitted_at = datetime.utcnow()
    response: Dict[str, Any] = {"success": True, "module_type": module.type}
    if module.type in (READING, LISTENING):
        score = score_module_submission(module.type, module.questions, answers)
        sub.raw_score = score.raw_score
        sub.auto_score = score.band_score
        response.update({"raw_score": score.raw_score, "band": score.band_score})
    else:
        response["pending_evaluation"] = True
    db.commit()
    response["submission_id"] = sub.id
    logger.info("Submission stored: id=%s module=%s band=%s", sub.id, module.type, sub.auto_score)
    calculate_and_store_results(db, assignment.id)
    return response


@router.get("/results")
def list_results(user: CurrentUser = Depends(student_only), db: Session = Depends(get_db)):
    rows = db.query(Assignment).filter(Assignment.student_id == user.id).order_by(Assignment.created_at.desc()).all()
    return {"results": [result_payload(db, a) for a in rows]}


@router.get("/results/{assignment_id}")
def get_result(assignment_id: str, user: CurrentUser = Depends(student_only), db: Session = Depends(get_db)):
    return result_payload(db, _own_assignment(db, user, assignment_id))
