import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse

from .db import Base, SessionLocal, engine, ensure_schema
from .cleanup import run_cleanup
from .settings import settings
from .scoring.bands import ScoringError
from .routers import auth
from .routers import admin
from .routers import bands
from .routers import cron
from .routers import student
from .routers import writing

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("ielts.app")

app = FastAPI(title="IELTS Portal API")
app.include_router(auth.router)
app.include_router(bands.router)
app.include_router(admin.router)
app.include_router(writing.router)
app.include_router(student.router)
app.include_router(cron.router)


@app.exception_handler(ScoringError)
async def scoring_error_handler(request: Request, exc: ScoringError):
	return JSONResponse({"detail": str(exc)}, status_code=400)


@app.get("/", include_in_schema=False)
async def redirect_root_to_docs():
	return RedirectResponse(url="/docs")

@app.get("/info")
def root():
	return {"status": "ok", "environment": settings.environment, "llm_configured": bool(settings.gemini_api_key or settings.openrouter_api_key)}


def _cleanup_once() -> None:
	db = SessionLocal()
	try:
		run_cleanup(db)
	except Exception:
		logger.exception("Scheduled cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	# Daily; startup already ran one pass
	while True:
		await asyncio.sleep(24 * 60 * 60)
		await run_in_threadpool(_cleanup_once)


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	added = ensure_schema()
	if added:
		logger.info("Added %s missing columns", added)
	db = SessionLocal()
	try:
		auth.ensure_seed_admin(db)
	finally:
		db.close()
	if settings.environment != "test":
		await run_in_threadpool(_cleanup_once)
		app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "cleanup_task", None)
	if task is not None:
		task.cancel()
