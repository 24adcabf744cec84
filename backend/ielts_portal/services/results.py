from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Assignment, MockModule, MockTest, Result, Submission, STATUS_COMPLETED
from ..scoring.detailed import (
    LISTENING,
    READING,
    DetailedScore,
    calculate_detailed_score,
    expand_correct_answers,
    expand_student_answers,
)
from ..scoring.results import ModuleBands, aggregate_module_bands

logger = logging.getLogger("ielts.results")


def submission_band(module: MockModule, submission: Submission) -> Optional[float]:
    if submission.submitted_at is None:
        return None
    if module.type in (READING, LISTENING):
        return submission.auto_score
    # Writing (and speaking) bands only exist once evaluated
    return submission.band


def _submitted_pairs(db: Session, assignment_id: str) -> List[tuple]:
    rows = (
        db.query(Submission, MockModule)
        .join(MockModule, MockModule.id == Submission.module_id)
        .filter(Submission.assignment_id == assignment_id)
        .all()
    )
    return rows


def calculate_and_store_results(db: Session, assignment_id: str) -> Optional[Result]:
    assignment = db.get(Assignment, assignment_id)
    if assignment is None:
        return None
    rows = _submitted_pairs(db, assignment_id)
    if not rows:
        logger.info("No submissions found for assignment %s", assignment_id)
        return None

    bands: ModuleBands = aggregate_module_bands((module.type, submission_band(module, sub)) for sub, module in rows)
    overall = bands.overall

    result = db.query(Result).filter(Result.assignment_id == assignment_id).first()
    if result is None:
        result = Result(assignment_id=assignment_id)
        db.add(result)
    result.listening_band = bands.listening
    result.reading_band = bands.reading
    result.writing_band = bands.writing
    result.speaking_band = bands.speaking
    result.overall_band = overall
    result.generated_at = datetime.utcnow()

    mock = db.get(MockTest, assignment.mock_id)
    module_ids = {m.id for m in mock.modules} if mock else set()
    submitted_ids = {sub.module_id for sub, _ in rows if sub.submitted_at is not None}
    if module_ids and module_ids <= submitted_ids:
        assignment.status = STATUS_COMPLETED

    db.commit()
    db.refresh(result)
    logger.info(
        "Result stored: assignment=%s listening=%s reading=%s writing=%s speaking=%s overall=%s",
        assignment_id, bands.listening, bands.reading, bands.writing, bands.speaking, overall,
    )
    return result


def detailed_breakdown(module: MockModule, submission: Submission) -> Optional[DetailedScore]:
    if module.type not in (READING, LISTENING) or submission.submitted_at is None:
        return None
    correct = expand_correct_answers(module.questions)
    given = expand_student_answers(submission.answers)
    return calculate_detailed_score(module.type, given, correct)


def result_payload(db: Session, assignment: Assignment) -> Dict[str, Any]:
    result = db.query(Result).filter(Result.assignment_id == assignment.id).first()
    bands = ModuleBands()
    if result is not None:
        bands = ModuleBands(
            listening=result.listening_band,
            reading=result.reading_band,
            writing=result.writing_band,
            speaking=result.speaking_band,
        )
    modules: List[Dict[str, Any]] = []
    for sub, module in _submitted_pairs(db, assignment.id):
        detail = detailed_breakdown(module, sub)
        modules.append({
            "module_id": module.id,
            "module_type": module.type,
            "submitted_at": sub.submitted_at.isoformat() if sub.submitted_at else None,
            "band": submission_band(module, sub),
            "raw_score": sub.raw_score,
            "pending_evaluation": module.type == "WRITING" and sub.submitted_at is not None and sub.band is None,
            "detail": detail.model_dump() if detail else None,
        })
    return {
        "assignment_id": assignment.id,
        "mock_id": assignment.mock_id,
        "status": assignment.status,
        "generated_at": result.generated_at.isoformat() if result else None,
        "bands": bands.describe(),
        "modules": modules,
    }
