import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from insuratask.core import database
from insuratask.core.config import settings
from insuratask.core.database import engine, Base
from insuratask.core.errors import register_exception_handlers
from insuratask.models import task, template, calendar_sync  # noqa: F401 (tables)
from insuratask.routers import health, tasks, templates, google_calendar, export, attachments
from insuratask.services import task_service
from insuratask.services.template_scheduler import template_scheduler

logger = logging.getLogger(__name__)

# Init DB
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SEED_DEMO_DATA:
        db = database.SessionLocal()
        try:
            added = task_service.seed_demo_tasks(db)
            if added:
                logger.info(f"Seeded {added} demo tasks")
        finally:
            db.close()

    if settings.SCHEDULER_ENABLED:
        template_scheduler.initialize()

    yield

    template_scheduler.shutdown()


app = FastAPI(
    title="InsuraTask API",
    version="1.1.0",
    lifespan=lifespan
)

register_exception_handlers(app)


@app.middleware("http")
async def log_api_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} {response.status_code} in {elapsed_ms:.0f}ms")
    return response


# Routes
app.include_router(health.router, prefix="/health")
app.include_router(tasks.router)
app.include_router(templates.router)
app.include_router(google_calendar.router)
app.include_router(export.router)
app.include_router(attachments.router)
