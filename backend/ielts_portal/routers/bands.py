from typing import Literal, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from ..scoring.bands import (
	WritingCriteria,
	band_table,
	calculate_listening_band,
	calculate_overall_band,
	calculate_reading_band,
	calculate_writing_band,
	combine_writing_task_bands,
	get_band_description,
)

router = APIRouter(prefix="/bands", tags=["bands"])


class OverallRequest(BaseModel):
	listening: Optional[float] = None
	reading: Optional[float] = None
	writing: Optional[float] = None
	speaking: Optional[float] = None


class WritingTasksRequest(BaseModel):
	task1_band: Optional[float] = None
	task2_band: Optional[float] = None


def _describe(band: float) -> dict:
	return {"band": band, "description": get_band_description(band)}


@router.get("/table")
def get_table():
	return {"table": band_table()}


@router.get("/convert")
def convert(module: Literal["reading", "listening"], correct: int = Query(..., ge=0)):
	band = calculate_reading_band(correct) if module == "reading" else calculate_listening_band(correct)
	return {"module": module, "correct": correct, **_describe(band)}


@router.post("/writing")
def writing_band(criteria: WritingCriteria):
	return _describe(calculate_writing_band(criteria))


@router.post("/writing-tasks")
def writing_tasks_band(req: WritingTasksRequest):
	band = combine_writing_task_bands(req.task1_band, req.task2_band)
	return {"band": band, "description": get_band_description(band) if band is not None else None}


@router.post("/overall")
def overall_band(req: OverallRequest):
	band = calculate_overall_band(req.listening, req.reading, req.writing, req.speaking)
	return _describe(band)


@router.get("/describe")
def describe(band: float):
	return _describe(band)
