import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smartschedule.api.routes import generator, health, rule_sets, schedules, timeslots
from smartschedule.core.config import get_settings
from smartschedule.core.exceptions import AppError
from smartschedule.core.middleware import RequestSizeLimitMiddleware
from smartschedule.db.bootstrap import ensure_schema
from smartschedule.db.session import engine

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.getLogger("smartschedule").setLevel(settings.log_level.upper())
    ensure_schema(engine)
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(generator.router, prefix=settings.api_prefix, tags=["generator"])
app.include_router(schedules.router, prefix=settings.api_prefix, tags=["schedules"])
app.include_router(rule_sets.router, prefix=settings.api_prefix, tags=["rule-sets"])
app.include_router(timeslots.router, prefix=settings.api_prefix, tags=["timeslots"])
