from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

MCQ = "MCQ"
FIB = "FIB"
MATCHING = "MATCHING"
TRUE_FALSE = "TRUE_FALSE"
NOT_GIVEN = "NOT_GIVEN"

ANSWER_TYPES: Tuple[str, ...] = (MCQ, FIB, MATCHING, TRUE_FALSE, NOT_GIVEN)

# Question bank type -> answer checking type
_BANK_TYPE_MAP: Dict[str, str] = {
    "MULTIPLE_CHOICE": MCQ,
    "MCQ": MCQ,
    "TRUE_FALSE_NOT_GIVEN": NOT_GIVEN,
    "YES_NO_NOT_GIVEN": NOT_GIVEN,
    "NOT_GIVEN": NOT_GIVEN,
    "TRUE_FALSE": TRUE_FALSE,
    "NOTES_COMPLETION": FIB,
    "SUMMARY_COMPLETION": FIB,
    "SENTENCE_COMPLETION": FIB,
    "FIB": FIB,
    "MATCHING": MATCHING,
    "MATCHING_HEADINGS": MATCHING,
}

_MCQ_LETTER = re.compile(r"^([a-d])\)")
_TRUE_FALSE_VALUES = re.compile(r"^(true|false|not given)$", re.IGNORECASE)


@dataclass
class StudentAnswer:
    question_id: str
    answer: str


@dataclass
class CorrectAnswer:
    question_id: str
    answer: Union[str, List[str]]
    type: str = MCQ
    part: int = 1


def map_question_type(bank_type: Optional[str]) -> str:
    return _BANK_TYPE_MAP.get((bank_type or "").upper(), MCQ)


def _normalize(value: object) -> str:
    return str(value if value is not None else "").strip().lower()


def check_answer(student: object, correct: Union[str, Sequence[str], None], answer_type: str) -> bool:
    given = _normalize(student)
    if not given:
        return False
    if answer_type == MCQ:
        letter = _MCQ_LETTER.match(given)
        if letter:
            given = letter.group(1)
    if isinstance(correct, (list, tuple)):
        return any(_normalize(c) == given for c in correct)
    return _normalize(correct) == given


def score_answers(student_answers: Sequence[StudentAnswer], correct_answers: Sequence[CorrectAnswer]) -> Tuple[int, int]:
    """Return (correct_count, total_questions); unanswered questions count as wrong."""
    given = {sa.question_id: sa.answer for sa in student_answers}
    correct_count = 0
    for ca in correct_answers:
        if ca.question_id not in given:
            continue
        if check_answer(given[ca.question_id], ca.answer, ca.type):
            correct_count += 1
    return correct_count, len(correct_answers)


def calculate_module_score(correct_count: int, total_questions: int) -> float:
    if total_questions == 0:
        return 0.0
    return correct_count / total_questions * 100


def validate_answer_format(answer: str, answer_type: str) -> bool:
    value = (answer or "").strip()
    if answer_type in (MCQ, FIB, MATCHING):
        return len(value) > 0
    if answer_type in (TRUE_FALSE, NOT_GIVEN):
        return bool(_TRUE_FALSE_VALUES.match(value))
    return True


def get_score_feedback(percentage: float) -> str:
    if percentage >= 90:
        return "Excellent work!"
    if percentage >= 80:
        return "Very good performance."
    if percentage >= 70:
        return "Good work, keep practicing."
    if percentage >= 60:
        return "Satisfactory, room for improvement."
    if percentage >= 50:
        return "Needs more practice."
    return "Consider reviewing the material and practicing more."
