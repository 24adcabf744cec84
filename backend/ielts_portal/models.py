from __future__ import annotations
import json
import uuid
from datetime import datetime
from typing import Any
from sqlalchemy import Column, String, DateTime, Integer, Float, Text, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


ROLE_ADMIN = "ADMIN"
ROLE_INSTRUCTOR = "INSTRUCTOR"
ROLE_STUDENT = "STUDENT"

MODULE_TYPES = ("READING", "LISTENING", "WRITING")

STATUS_PENDING = "PENDING"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"
STATUS_EXPIRED = "EXPIRED"


def _new_id() -> str:
	return uuid.uuid4().hex


def load_json(raw: str | None, default: Any = None) -> Any:
	if not raw:
		return default
	try:
		return json.loads(raw)
	except ValueError:
		return default


class User(Base):
	__tablename__ = "users"
	id = Column(String(32), primary_key=True, default=_new_id)
	email = Column(String(256), unique=True, index=True, nullable=False)
	name = Column(String(256), nullable=True)
	password_hash = Column(String(256), nullable=False)
	role = Column(String(16), default=ROLE_STUDENT, nullable=False)
	# Students only
	candidate_number = Column(String(64), unique=True, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# JWT jti
	session_id = Column(String(64), primary_key=True)
	user_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class MockTest(Base):
	__tablename__ = "mock_tests"
	id = Column(String(32), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	created_by = Column(String(32), ForeignKey("users.id"), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	modules = relationship("MockModule", order_by="MockModule.order", cascade="all, delete-orphan")


class MockModule(Base):
	__tablename__ = "mock_modules"
	id = Column(String(32), primary_key=True, default=_new_id)
	mock_id = Column(String(32), ForeignKey("mock_tests.id"), index=True, nullable=False)
	type = Column(String(16), nullable=False)
	duration_minutes = Column(Integer, default=60, nullable=False)
	instructions = Column(Text, nullable=True)
	order = Column(Integer, default=0, nullable=False)

	questions = relationship("Question", order_by="Question.order", cascade="all, delete-orphan")


class Question(Base):
	__tablename__ = "questions"
	id = Column(String(32), primary_key=True, default=_new_id)
	module_id = Column(String(32), ForeignKey("mock_modules.id"), index=True, nullable=False)
	# Question bank type, e.g. MULTIPLE_CHOICE, TRUE_FALSE_NOT_GIVEN, MATCHING_HEADINGS
	type = Column(String(32), nullable=False)
	part = Column(Integer, default=1, nullable=False)
	order = Column(Integer, default=0, nullable=False)
	points = Column(Integer, default=1, nullable=False)
	content_json = Column(Text, nullable=True)
	correct_answer_json = Column(Text, nullable=True)

	@property
	def content(self) -> dict:
		return load_json(self.content_json, {}) or {}

	@property
	def correct_answer(self) -> Any:
		return load_json(self.correct_answer_json)


class Assignment(Base):
	__tablename__ = "assignments"
	id = Column(String(32), primary_key=True, default=_new_id)
	student_id = Column(String(32), ForeignKey("users.id"), index=True, nullable=False)
	mock_id = Column(String(32), ForeignKey("mock_tests.id"), index=True, nullable=False)
	access_token = Column(String(128), unique=True, index=True, nullable=False)
	valid_from = Column(DateTime, nullable=False)
	valid_until = Column(DateTime, nullable=False)
	status = Column(String(16), default=STATUS_PENDING, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Submission(Base):
	__tablename__ = "submissions"
	__table_args__ = (UniqueConstraint("assignment_id", "module_id", name="uq_submission_module"),)
	id = Column(String(32), primary_key=True, default=_new_id)
	assignment_id = Column(String(32), ForeignKey("assignments.id"), index=True, nullable=False)
	module_id = Column(String(32), ForeignKey("mock_modules.id"), nullable=False)
	answers_json = Column(Text, nullable=True)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	submitted_at = Column(DateTime, nullable=True)
	# Reading/Listening: scaled raw score (0-40) and its band
	raw_score = Column(Integer, nullable=True)
	auto_score = Column(Float, nullable=True)
	# Writing evaluation
	criteria_json = Column(Text, nullable=True)
	task1_band = Column(Float, nullable=True)
	task2_band = Column(Float, nullable=True)
	band = Column(Float, nullable=True)
	instructor_notes = Column(Text, nullable=True)
	evaluated_at = Column(DateTime, nullable=True)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	@property
	def answers(self) -> dict:
		return load_json(self.answers_json, {}) or {}


class Result(Base):
	__tablename__ = "results"
	id = Column(String(32), primary_key=True, default=_new_id)
	assignment_id = Column(String(32), ForeignKey("assignments.id"), unique=True, nullable=False)
	listening_band = Column(Float, nullable=True)
	reading_band = Column(Float, nullable=True)
	writing_band = Column(Float, nullable=True)
	speaking_band = Column(Float, nullable=True)
	overall_band = Column(Float, nullable=False, default=0.0)
	generated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
