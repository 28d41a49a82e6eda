from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schedule_engine.api.deps import close_engine
from schedule_engine.api.routes import class_teachers, health, schedules
from schedule_engine.core.config import get_settings
from schedule_engine.core.exceptions import AppError
from schedule_engine.core.logging import setup_logging
from schedule_engine.core.middleware import RequestSizeLimitMiddleware, RequestTimingMiddleware
from schedule_engine.db.bootstrap import ensure_schema
from schedule_engine.db.session import engine as db_engine

settings = get_settings()
setup_logging(environment=settings.environment, level=settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.store_backend == "sql":
        ensure_schema(db_engine)
    logger.info(
        "Schedule engine started (store=%s, qualification=%s)",
        settings.store_backend,
        settings.qualification_mode,
    )
    yield
    close_engine()


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(RequestTimingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(schedules.router, prefix=settings.api_prefix, tags=["schedules"])
app.include_router(class_teachers.router, prefix=settings.api_prefix, tags=["class-teachers"])
