from __future__ import annotations
import json
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import Any, Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import (
	MODULE_TYPES,
	ROLE_ADMIN,
	ROLE_INSTRUCTOR,
	ROLE_STUDENT,
	Assignment,
	MockModule,
	MockTest,
	Question,
	Submission,
	User,
)
from ..services.results import calculate_and_store_results, result_payload
from ..settings import settings
from ..tokens import generate_student_token
from .auth import CurrentUser, hash_password, require_roles

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger("ielts.admin")

admin_only = require_roles(ROLE_ADMIN)
staff = require_roles(ROLE_ADMIN, ROLE_INSTRUCTOR)

CANDIDATE_NUMBER_PATTERN = r"^[A-Za-z0-9_]+$"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class StudentCreate(BaseModel):
	email: str
	password: str = Field(min_length=6)
	name: Optional[str] = None
	candidate_number: str = Field(min_length=1, max_length=64, pattern=CANDIDATE_NUMBER_PATTERN)


class InstructorCreate(BaseModel):
	email: str
	password: str = Field(min_length=6)
	name: Optional[str] = None


class QuestionIn(BaseModel):
	type: str
	part: int = Field(default=1, ge=1)
	points: int = Field(default=1, ge=0)
	content: dict = Field(default_factory=dict)
	correct_answer: Any = None


class ModuleIn(BaseModel):
	type: str
	duration_minutes: int = Field(default=60, gt=0)
	instructions: Optional[str] = None
	questions: List[QuestionIn] = Field(default_factory=list)


class MockCreate(BaseModel):
	title: str = Field(min_length=1)
	description: Optional[str] = None
	modules: List[ModuleIn] = Field(default_factory=list)


class AssignmentCreate(BaseModel):
	student_id: str
	mock_id: str
	valid_from: Optional[datetime] = None
	valid_days: Optional[int] = Field(default=None, gt=0)


def _user_out(u: User) -> dict:
	return {
		"id": u.id,
		"email": u.email,
		"name": u.name,
		"role": u.role,
		"candidate_number": u.candidate_number,
		"created_at": u.created_at.isoformat(),
	}


def _assignment_out(a: Assignment) -> dict:
	return {
		"id": a.id,
		"student_id": a.student_id,
		"mock_id": a.mock_id,
		"access_token": a.access_token,
		"valid_from": a.valid_from.isoformat(),
		"valid_until": a.valid_until.isoformat(),
		"status": a.status,
	}


def mock_out(mock: MockTest, *, include_answers: bool) -> dict:
	modules = []
	for m in mock.modules:
		questions = []
		for q in m.questions:
			item = {"id": q.id, "type": q.type, "part": q.part, "order": q.order, "points": q.points, "content": q.content}
			if include_answers:
				item["correct_answer"] = q.correct_answer
			else:
				# matching-headings content carries its own answer key
				item["content"] = {k: v for k, v in q.content.items() if k != "correctAnswers"}
			questions.append(item)
		modules.append({
			"id": m.id,
			"type": m.type,
			"duration_minutes": m.duration_minutes,
			"instructions": m.instructions,
			"order": m.order,
			"questions": questions,
		})
	return {
		"id": mock.id,
		"title": mock.title,
		"description": mock.description,
		"is_active": mock.is_active,
		"modules": modules,
	}


def _create_user(db: Session, email: str, password: str, name: Optional[str], role: str, candidate_number: Optional[str] = None) -> User:
	email = email.strip().lower()
	if "@" not in email:
		raise HTTPException(status_code=400, detail="email is invalid")
	if db.query(User).filter(User.email == email).first():
		raise HTTPException(status_code=409, detail="email already exists")
	if candidate_number and db.query(User).filter(User.candidate_number == candidate_number).first():
		raise HTTPException(status_code=409, detail="candidate number already exists")
	row = User(email=email, name=name, password_hash=hash_password(password), role=role, candidate_number=candidate_number)
	db.add(row)
	db.commit()
	logger.info("User created: id=%s role=%s", row.id, role)
	return row


@router.post("/students", status_code=201)
def create_student(req: StudentCreate, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	return _user_out(_create_user(db, req.email, req.password, req.name, ROLE_STUDENT, req.candidate_number))


@router.post("/instructors", status_code=201)
def create_instructor(req: InstructorCreate, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	return _user_out(_create_user(db, req.email, req.password, req.name, ROLE_INSTRUCTOR))


def _read_student_csv(raw: bytes) -> pd.DataFrame:
	try:
		df = pd.read_csv(BytesIO(raw), dtype=str, keep_default_na=False, skipinitialspace=True)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=f"CSV parsing error: {e}")
	df.columns = [str(c).strip().lower().replace(" ", "_") for c in df.columns]
	df = df.rename(columns={"candidatenumber": "candidate_number"})
	missing = [c for c in ("name", "email") if c not in df.columns]
	if missing:
		raise HTTPException(status_code=400, detail=f"Missing required columns: {', '.join(missing)}")
	return df


def _cell(row: Dict[str, Any], key: str) -> str:
	# short rows come back as NaN
	value = row.get(key)
	return value.strip() if isinstance(value, str) else ""


@router.post("/students/bulk-upload", status_code=201)
async def bulk_upload_students(
	file: UploadFile = File(...),
	user: CurrentUser = Depends(admin_only),
	db: Session = Depends(get_db),
):
	"""Create students from a CSV with ``name`` and ``email`` columns.

	``candidate_number`` and ``password`` columns are optional. Rows without a
	password get a generated one, returned once in the report. Existing or
	repeated e-mails are skipped; invalid rows are reported under ``errors``.
	"""
	if not (file.filename or "").lower().endswith(".csv"):
		raise HTTPException(status_code=400, detail="File must be a CSV file")
	df = _read_student_csv(await file.read())

	created: List[Dict[str, Any]] = []
	skipped: List[Dict[str, Any]] = []
	errors: List[Dict[str, Any]] = []
	seen_emails = set()
	seen_candidates = set()
	# header is line 1
	for line, row in enumerate(df.to_dict("records"), start=2):
		name = _cell(row, "name")
		email = _cell(row, "email").lower()
		candidate = _cell(row, "candidate_number") or None
		password = _cell(row, "password")
		if not name and not email:
			continue
		if not name or not email:
			errors.append({"row": line, "error": "name and email are required"})
			continue
		if not EMAIL_PATTERN.match(email):
			errors.append({"row": line, "email": email, "error": "invalid email format"})
			continue
		if candidate and not re.match(CANDIDATE_NUMBER_PATTERN, candidate):
			errors.append({"row": line, "email": email, "error": "candidate number may only contain letters, digits and _"})
			continue
		if password and len(password) < 6:
			errors.append({"row": line, "email": email, "error": "password must be at least 6 characters"})
			continue
		if email in seen_emails or db.query(User).filter(User.email == email).first():
			skipped.append({"row": line, "email": email, "reason": "email already exists"})
			continue
		if candidate and (candidate in seen_candidates or db.query(User).filter(User.candidate_number == candidate).first()):
			skipped.append({"row": line, "email": email, "reason": "candidate number already exists"})
			continue

		generated = not password
		if generated:
			password = secrets.token_urlsafe(9)
		student = User(email=email, name=name, password_hash=hash_password(password), role=ROLE_STUDENT, candidate_number=candidate)
		db.add(student)
		db.flush()
		seen_emails.add(email)
		if candidate:
			seen_candidates.add(candidate)
		entry = {"row": line, "id": student.id, "email": email, "name": name, "candidate_number": candidate}
		if generated:
			entry["temporary_password"] = password
		created.append(entry)

	db.commit()
	logger.info("Bulk upload: created=%s skipped=%s errors=%s", len(created), len(skipped), len(errors))
	return {"total": len(df), "created": created, "skipped": skipped, "errors": errors}


@router.get("/students")
def list_students(user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	rows = db.query(User).filter(User.role == ROLE_STUDENT).order_by(User.created_at.desc()).all()
	return {"students": [_user_out(u) for u in rows]}


@router.get("/students/{student_id}")
def get_student(student_id: str, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	student = db.get(User, student_id)
	if not student or student.role != ROLE_STUDENT:
		raise HTTPException(status_code=404, detail="Student not found")
	assignments = db.query(Assignment).filter(Assignment.student_id == student_id).order_by(Assignment.created_at.desc()).all()
	return {
		"student": _user_out(student),
		"assignments": [{**_assignment_out(a), "result": result_payload(db, a)["bands"]} for a in assignments],
	}


def _store_mock(db: Session, req: MockCreate, user: CurrentUser) -> dict:
	mock = MockTest(title=req.title.strip(), description=req.description, created_by=user.id)
	seen_types = set()
	for m_idx, m in enumerate(req.modules):
		module_type = m.type.upper()
		if module_type not in MODULE_TYPES:
			raise HTTPException(status_code=400, detail=f"module type must be one of {list(MODULE_TYPES)}")
		# results hold one band per skill
		if module_type in seen_types:
			raise HTTPException(status_code=400, detail=f"mock already has a {module_type} module")
		seen_types.add(module_type)
		module = MockModule(type=module_type, duration_minutes=m.duration_minutes, instructions=m.instructions, order=m_idx)
		for q_idx, q in enumerate(m.questions):
			module.questions.append(Question(
				type=q.type.upper(),
				part=q.part,
				order=q_idx,
				points=q.points,
				content_json=json.dumps(q.content),
				correct_answer_json=json.dumps(q.correct_answer) if q.correct_answer is not None else None,
			))
		mock.modules.append(module)
	db.add(mock)
	db.commit()
	db.refresh(mock)
	logger.info("Mock created: id=%s modules=%s", mock.id, len(mock.modules))
	return mock_out(mock, include_answers=True)


@router.post("/mocks", status_code=201)
def create_mock(req: MockCreate, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	return _store_mock(db, req, user)


def transform_question_type(kind: str) -> str:
	"""``"true-false-not-given"`` -> ``"TRUE_FALSE_NOT_GIVEN"``."""
	return str(kind).strip().upper().replace("-", "_").replace(" ", "_")


def _question_sort_key(key: str):
	return (0, int(key), "") if str(key).isdigit() else (1, 0, str(key))


def mock_from_test_data(data: Dict[str, Any], module_type: str) -> MockCreate:
	"""Build a single-module mock from an exported test file.

	The file carries ``test`` (title, totalTimeMinutes, instructions), optional
	``passages`` (id, title, content), ``questions`` keyed by question number
	and ``correctAnswers`` keyed the same way. A question's part is the
	position of its passage, else its own ``part``, else 1. A matching-headings
	question whose answer is a section map keeps that map as its answer key.
	"""
	if not isinstance(data, dict) or not isinstance(data.get("test"), dict):
		raise ValueError("test data must be an object with a 'test' section")
	test = data["test"]
	passages = data.get("passages") or []
	questions = data.get("questions") or {}
	answers = data.get("correctAnswers") or {}
	if not isinstance(questions, dict) or not isinstance(answers, dict) or not isinstance(passages, list):
		raise ValueError("'questions' and 'correctAnswers' must be objects and 'passages' a list")

	passage_parts = {p.get("id"): idx for idx, p in enumerate(passages, start=1) if isinstance(p, dict)}
	passage_by_id = {p.get("id"): p for p in passages if isinstance(p, dict)}
	placed = set()
	items: List[QuestionIn] = []
	for key in sorted(questions, key=_question_sort_key):
		raw = questions[key]
		if not isinstance(raw, dict):
			raise ValueError(f"question {key} must be an object")
		passage_id = raw.get("passageId")
		part = passage_parts.get(passage_id) or raw.get("part") or 1
		content = {k: v for k, v in raw.items() if k not in ("type", "passageId", "part")}
		content["number"] = key
		if passage_id in passage_by_id and passage_id not in placed:
			# passage text travels with the first question that reads it
			content["passage"] = passage_by_id[passage_id]
			placed.add(passage_id)
		answer = answers.get(key)
		points = 0 if module_type == "WRITING" else 1
		if isinstance(answer, dict) and raw.get("headingsList"):
			content["headings"] = raw["headingsList"]
			content["correctAnswers"] = answer
			points = len(answer)
			answer = None
		items.append(QuestionIn(
			type=transform_question_type(raw.get("type") or "multiple-choice"),
			part=part,
			points=points,
			content=content,
			correct_answer=answer,
		))

	return MockCreate(
		title=str(test.get("title") or "").strip() or f"Imported {module_type.title()} Test",
		description=test.get("description"),
		modules=[ModuleIn(
			type=module_type,
			duration_minutes=test.get("totalTimeMinutes") or 60,
			instructions=test.get("instructions"),
			questions=items,
		)],
	)


@router.post("/mocks/import", status_code=201)
async def import_mock(
	module: str,
	file: UploadFile = File(...),
	user: CurrentUser = Depends(admin_only),
	db: Session = Depends(get_db),
):
	module_type = module.upper()
	if module_type not in MODULE_TYPES:
		raise HTTPException(status_code=400, detail=f"module must be one of {list(MODULE_TYPES)}")
	try:
		data = json.loads(await file.read())
		req = mock_from_test_data(data, module_type)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=f"Invalid test data: {e}")
	return _store_mock(db, req, user)


@router.get("/mocks")
def list_mocks(include_inactive: bool = False, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	q = db.query(MockTest)
	if not include_inactive:
		q = q.filter(MockTest.is_active.is_(True))
	rows = q.order_by(MockTest.created_at.desc()).all()
	return {"mocks": [{"id": m.id, "title": m.title, "is_active": m.is_active, "modules": [mod.type for mod in m.modules]} for m in rows]}


@router.get("/mocks/{mock_id}")
def get_mock(mock_id: str, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	mock = db.get(MockTest, mock_id)
	if not mock:
		raise HTTPException(status_code=404, detail="Mock test not found")
	return mock_out(mock, include_answers=True)


@router.delete("/mocks/{mock_id}")
def deactivate_mock(mock_id: str, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	mock = db.get(MockTest, mock_id)
	if not mock:
		raise HTTPException(status_code=404, detail="Mock test not found")
	mock.is_active = False
	db.commit()
	return {"ok": True}



def as_naive_utc(value: datetime) -> datetime:
	"""Stored timestamps are naive UTC; offset-aware input is converted first."""
	if value.tzinfo is None:
		return value
	return value.astimezone(timezone.utc).replace(tzinfo=None)

@router.post("/assignments", status_code=201)
def create_assignment(req: AssignmentCreate, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	student = db.get(User, req.student_id)
	if not student or student.role != ROLE_STUDENT:
		raise HTTPException(status_code=404, detail="Student not found")
	mock = db.get(MockTest, req.mock_id)
	if not mock or not mock.is_active:
		raise HTTPException(status_code=404, detail="Mock test not found")
	valid_from = as_naive_utc(req.valid_from) if req.valid_from else datetime.utcnow()
	valid_until = valid_from + timedelta(days=req.valid_days or settings.assignment_valid_days)
	token = generate_student_token(student.candidate_number or student.id, valid_from)
	if db.query(Assignment).filter(Assignment.access_token == token).first():
		raise HTTPException(status_code=409, detail="Student already has an assignment starting that day")
	row = Assignment(student_id=student.id, mock_id=mock.id, access_token=token, valid_from=valid_from, valid_until=valid_until)
	db.add(row)
	db.commit()
	logger.info("Assignment created: id=%s student=%s mock=%s", row.id, student.id, mock.id)
	return _assignment_out(row)


@router.get("/assignments")
def list_assignments(status: Optional[str] = None, user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	q = db.query(Assignment)
	if status:
		q = q.filter(Assignment.status == status.upper())
	return {"assignments": [_assignment_out(a) for a in q.order_by(Assignment.created_at.desc()).all()]}


@router.post("/assignments/{assignment_id}/recalculate")
def recalculate(assignment_id: str, user: CurrentUser = Depends(admin_only), db: Session = Depends(get_db)):
	assignment = db.get(Assignment, assignment_id)
	if not assignment:
		raise HTTPException(status_code=404, detail="Assignment not found")
	calculate_and_store_results(db, assignment_id)
	return result_payload(db, assignment)


@router.get("/dashboard")
def dashboard(user: CurrentUser = Depends(staff), db: Session = Depends(get_db)):
	by_status = dict(db.query(Assignment.status, func.count(Assignment.id)).group_by(Assignment.status).all())
	pending_writing = (
		db.query(func.count(Submission.id))
		.join(MockModule, MockModule.id == Submission.module_id)
		.filter(MockModule.type == "WRITING", Submission.submitted_at.isnot(None), Submission.band.is_(None))
		.scalar()
	)
	return {
		"students": db.query(func.count(User.id)).filter(User.role == ROLE_STUDENT).scalar(),
		"instructors": db.query(func.count(User.id)).filter(User.role == ROLE_INSTRUCTOR).scalar(),
		"mocks": db.query(func.count(MockTest.id)).filter(MockTest.is_active.is_(True)).scalar(),
		"assignments": by_status,
		"pending_writing_evaluations": pending_writing,
	}
