from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel

from .auto_scorer import (
    ANSWER_TYPES,
    FIB,
    MATCHING,
    MCQ,
    NOT_GIVEN,
    TRUE_FALSE,
    CorrectAnswer,
    StudentAnswer,
    check_answer,
    map_question_type,
    score_answers,
)
from .bands import MAX_RAW_SCORE, ScoringError, calculate_listening_band, calculate_reading_band, round_half_up


READING = "READING"
LISTENING = "LISTENING"

DEFAULT_PARTS: Dict[str, Tuple[int, ...]] = {
    READING: (1, 2, 3),
    LISTENING: (1, 2, 3, 4),
}

TYPE_DISPLAY_NAMES: Dict[str, str] = {
    MCQ: "Multiple Choice",
    FIB: "Fill in the Blank",
    MATCHING: "Matching",
    TRUE_FALSE: "True/False",
    NOT_GIVEN: "True/False/Not Given",
}


class PartScore(BaseModel):
    part: int
    score: int
    total: int
    correct: int
    band_score: float


class QuestionTypeScore(BaseModel):
    type: str
    display_name: str
    correct: int
    total: int
    accuracy: int
    band_score: float


class DetailedScore(BaseModel):
    module_type: str
    band_score: float
    total_questions: int
    correct_answers: int
    accuracy: int
    part_scores: List[PartScore]
    question_type_scores: List[QuestionTypeScore]


class ModuleScore(BaseModel):
    earned_points: float
    possible_points: int
    raw_score: int
    band_score: float


def _band(module_type: str, correct: int) -> float:
    if module_type == READING:
        return calculate_reading_band(correct)
    return calculate_listening_band(correct)


def _percent(correct: int, total: int) -> int:
    if total == 0:
        return 0
    return int(round_half_up(correct / total * 100))


def _check_module_type(module_type: str) -> str:
    module_type = (module_type or "").upper()
    if module_type not in DEFAULT_PARTS:
        raise ScoringError(f"module_type must be one of {list(DEFAULT_PARTS)}")
    return module_type


def is_matching_headings(content: Mapping[str, Any]) -> bool:
    return bool(content.get("headings")) and isinstance(content.get("correctAnswers"), dict)


def _correct_value(raw: Any) -> Any:
    if isinstance(raw, list):
        return [str(v) for v in raw]
    if raw is None:
        return ""
    return str(raw)


def question_part(content: Mapping[str, Any], fallback: Any) -> int:
    """Part number from question content, else the question's own part.

    Content is free-form, so only a positive integer (or a digit string) is
    taken from it.
    """
    for value in (content.get("part"), fallback):
        if isinstance(value, bool):
            continue
        if isinstance(value, int) and value >= 1:
            return value
        if isinstance(value, str) and value.strip().isdigit() and int(value) >= 1:
            return int(value)
    return 1


def expand_correct_answers(questions: Sequence[Any]) -> List[CorrectAnswer]:
    """Flatten questions into scorable items.

    ``questions`` are objects exposing ``id``, ``type``, ``part``, ``content``
    and ``correct_answer`` (the ORM ``Question`` does). Each section of a
    matching-headings question becomes its own item keyed ``<id>:<section>``.
    """
    items: List[CorrectAnswer] = []
    for q in questions:
        content = q.content or {}
        part = question_part(content, q.part)
        if is_matching_headings(content):
            for section_id, heading in content["correctAnswers"].items():
                items.append(CorrectAnswer(question_id=f"{q.id}:{section_id}", answer=_correct_value(heading), type=MATCHING, part=part))
            continue
        items.append(CorrectAnswer(question_id=q.id, answer=_correct_value(q.correct_answer), type=map_question_type(q.type), part=part))
    return items


def expand_student_answers(answers: Mapping[str, Any]) -> List[StudentAnswer]:
    items: List[StudentAnswer] = []
    for question_id, answer in answers.items():
        if isinstance(answer, dict):
            for section_id, heading in answer.items():
                items.append(StudentAnswer(question_id=f"{question_id}:{section_id}", answer=str(heading or "")))
        else:
            items.append(StudentAnswer(question_id=question_id, answer=str(answer if answer is not None else "")))
    return items


def _subset_counts(student_answers: Sequence[StudentAnswer], subset: Sequence[CorrectAnswer]) -> Tuple[int, int]:
    ids = {ca.question_id for ca in subset}
    return score_answers([sa for sa in student_answers if sa.question_id in ids], subset)


def calculate_part_scores(module_type: str, student_answers: Sequence[StudentAnswer], correct_answers: Sequence[CorrectAnswer]) -> List[PartScore]:
    parts = sorted(set(DEFAULT_PARTS[module_type]) | {ca.part for ca in correct_answers})
    scores: List[PartScore] = []
    for part in parts:
        subset = [ca for ca in correct_answers if ca.part == part]
        correct, total = _subset_counts(student_answers, subset)
        scores.append(PartScore(part=part, score=_percent(correct, total), total=total, correct=correct, band_score=_band(module_type, correct)))
    return scores


def calculate_question_type_scores(module_type: str, student_answers: Sequence[StudentAnswer], correct_answers: Sequence[CorrectAnswer]) -> List[QuestionTypeScore]:
    scores: List[QuestionTypeScore] = []
    for answer_type in ANSWER_TYPES:
        subset = [ca for ca in correct_answers if ca.type == answer_type]
        if not subset:
            continue
        correct, total = _subset_counts(student_answers, subset)
        scores.append(
            QuestionTypeScore(
                type=answer_type,
                display_name=TYPE_DISPLAY_NAMES[answer_type],
                correct=correct,
                total=total,
                accuracy=_percent(correct, total),
                band_score=_band(module_type, correct),
            )
        )
    return scores


def calculate_detailed_score(module_type: str, student_answers: Sequence[StudentAnswer], correct_answers: Sequence[CorrectAnswer]) -> DetailedScore:
    module_type = _check_module_type(module_type)
    correct, total = score_answers(student_answers, correct_answers)
    return DetailedScore(
        module_type=module_type,
        band_score=_band(module_type, correct),
        total_questions=total,
        correct_answers=correct,
        accuracy=_percent(correct, total),
        part_scores=calculate_part_scores(module_type, student_answers, correct_answers),
        question_type_scores=calculate_question_type_scores(module_type, student_answers, correct_answers),
    )


def _question_points(question: Any, answer: Any) -> Tuple[float, int]:
    points = int(question.points or 0)
    content = question.content or {}
    if is_matching_headings(content):
        sections: Dict[str, Any] = content["correctAnswers"]
        if not sections:
            return 0.0, points
        matched = 0
        if isinstance(answer, dict):
            matched = sum(1 for section_id, heading in sections.items() if check_answer(answer.get(section_id), str(heading), MATCHING))
        return matched / len(sections) * points, points
    if answer is None or isinstance(answer, dict):
        return 0.0, points
    if check_answer(answer, _correct_value(question.correct_answer), map_question_type(question.type)):
        return float(points), points
    return 0.0, points


def score_module_submission(module_type: str, questions: Sequence[Any], answers: Optional[Mapping[str, Any]]) -> ModuleScore:
    """Points-weighted module score scaled onto the 40-question band table."""
    module_type = _check_module_type(module_type)
    answers = answers or {}
    earned = 0.0
    possible = 0
    for q in questions:
        got, worth = _question_points(q, answers.get(q.id))
        earned += got
        possible += worth
    if possible <= 0:
        return ModuleScore(earned_points=0.0, possible_points=0, raw_score=0, band_score=0.0)
    raw = int(round_half_up(earned / possible * MAX_RAW_SCORE))
    return ModuleScore(earned_points=earned, possible_points=possible, raw_score=raw, band_score=_band(module_type, raw))
