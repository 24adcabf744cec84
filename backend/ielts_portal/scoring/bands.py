from __future__ import annotations
import math
from typing import Dict, Iterable, Optional, Tuple

from pydantic import BaseModel, Field


class ScoringError(ValueError):
    """Raised when a score or band is outside what the IELTS scale allows."""


MIN_BAND = 0.0
MAX_BAND = 9.0
MAX_RAW_SCORE = 40

# Raw correct answers (out of 40) -> band. Shared by Listening and Reading.
LISTENING_READING_BANDS: Tuple[Tuple[int, float], ...] = (
    (40, 9.0),
    (39, 8.5),
    (38, 8.0),
    (37, 7.5),
    (36, 7.0),
    (35, 6.5),
    (34, 6.0),
    (33, 6.0),
    (32, 6.0),
    (31, 5.5),
    (30, 5.5),
    (29, 5.5),
    (28, 5.0),
    (27, 5.0),
    (26, 5.0),
    (25, 4.5),
    (24, 4.5),
    (23, 4.5),
    (22, 4.0),
    (21, 4.0),
    (20, 4.0),
    (19, 3.5),
    (18, 3.5),
    (17, 3.5),
    (16, 3.0),
    (15, 3.0),
    (14, 3.0),
    (13, 2.5),
    (12, 2.5),
    (11, 2.5),
    (10, 2.0),
    (9, 2.0),
    (8, 2.0),
    (7, 1.5),
    (6, 1.5),
    (5, 1.5),
    (4, 1.0),
    (3, 1.0),
    (2, 1.0),
    (1, 0.5),
    (0, 0.0),
)

_BAND_BY_RAW: Dict[int, float] = dict(LISTENING_READING_BANDS)

BAND_DESCRIPTIONS: Tuple[Tuple[float, str], ...] = (
    (9.0, "Expert User"),
    (8.0, "Very Good User"),
    (7.0, "Good User"),
    (6.0, "Competent User"),
    (5.0, "Modest User"),
    (4.0, "Limited User"),
    (3.0, "Extremely Limited User"),
    (2.0, "Intermittent User"),
    (1.0, "Non User"),
)


class WritingCriteria(BaseModel):
    task_achievement: float = Field(ge=MIN_BAND, le=MAX_BAND)
    coherence_cohesion: float = Field(ge=MIN_BAND, le=MAX_BAND)
    lexical_resource: float = Field(ge=MIN_BAND, le=MAX_BAND)
    grammar_accuracy: float = Field(ge=MIN_BAND, le=MAX_BAND)

    def values(self) -> Tuple[float, float, float, float]:
        return (self.task_achievement, self.coherence_cohesion, self.lexical_resource, self.grammar_accuracy)


def _band_for_raw(correct: int) -> float:
    # bool is an int subclass; True is not a raw score
    if isinstance(correct, bool) or not isinstance(correct, int):
        return 0.0
    return _BAND_BY_RAW.get(correct, 0.0)


def calculate_listening_band(correct: int) -> float:
    return _band_for_raw(correct)


def calculate_reading_band(correct: int) -> float:
    return _band_for_raw(correct)


def apply_ielts_rounding(score: float) -> float:
    """Round an averaged score onto the half-band scale.

    A fraction below .25 rounds down, .25 up to (not including) .75 goes to
    the half band, and .75 or more goes up to the next whole band.
    """
    whole = math.floor(score)
    fraction = score - whole
    if fraction < 0.25:
        return float(whole)
    if fraction < 0.75:
        return whole + 0.5
    return whole + 1.0


def round_half_up(value: float, step: float = 1.0) -> float:
    return math.floor(value / step + 0.5) * step


def check_band(name: str, value: float) -> float:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise ScoringError(f"{name} must be a number")
    if value < MIN_BAND or value > MAX_BAND:
        raise ScoringError(f"{name} must be between {MIN_BAND:g} and {MAX_BAND:g}")
    return float(value)


def calculate_writing_band(criteria: WritingCriteria | Dict[str, float]) -> float:
    if isinstance(criteria, dict):
        names = ("task_achievement", "coherence_cohesion", "lexical_resource", "grammar_accuracy")
        missing = [n for n in names if n not in criteria]
        if missing:
            raise ScoringError(f"missing writing criteria: {', '.join(missing)}")
        values = [check_band(n, criteria[n]) for n in names]
    else:
        values = [check_band("criterion", v) for v in criteria.values()]
    return apply_ielts_rounding(sum(values) / 4)


def calculate_overall_band(
    listening: Optional[float] = None,
    reading: Optional[float] = None,
    writing: Optional[float] = None,
    speaking: Optional[float] = None,
) -> float:
    """Average the module bands that were taken and apply IELTS rounding.

    ``None`` marks a module that was not taken (or not yet evaluated) and is
    left out of the mean. With no bands at all the overall band is 0.0.
    """
    named = (("listening", listening), ("reading", reading), ("writing", writing), ("speaking", speaking))
    available = [check_band(name, value) for name, value in named if value is not None]
    if not available:
        return 0.0
    return apply_ielts_rounding(sum(available) / len(available))


def combine_writing_task_bands(task1: Optional[float], task2: Optional[float]) -> Optional[float]:
    # Task 2 carries twice the weight of Task 1
    if task1 is not None:
        task1 = check_band("task1_band", task1)
    if task2 is not None:
        task2 = check_band("task2_band", task2)
    if task1 is not None and task2 is not None:
        return round_half_up((task1 + 2 * task2) / 3, 0.5)
    if task1 is not None:
        return task1
    return task2


def get_band_description(band: float) -> str:
    for threshold, label in BAND_DESCRIPTIONS:
        if band >= threshold:
            return label
    return "Did not attempt"


def band_table() -> Iterable[Dict[str, float]]:
    return [{"raw": raw, "band": band} for raw, band in LISTENING_READING_BANDS]
