import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_engine.api.routes import appointments, availability, booking_types, manage, public
from booking_engine.core.config import _ENV_FILE, settings
from booking_engine.core.errors import BookingEngineError, ScheduleIntegrityError
from booking_engine.services import events

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info(
        "Scheduling defaults: timezone=%s duration=%dmin notice=%dmin horizon=%dd",
        settings.default_timezone,
        settings.default_duration_minutes,
        settings.default_min_notice_minutes,
        settings.default_max_future_days,
    )
    events.subscribe(events.log_booking_created)
    yield
    events.unsubscribe(events.log_booking_created)


app = FastAPI(
    title="Booking Engine API",
    description="Availability and booking scheduling: open slots, bookings, appointment lifecycle",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(public.router, prefix="/api/v1")
app.include_router(manage.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(availability.router, prefix="/api/v1")
app.include_router(booking_types.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(BookingEngineError)
async def booking_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    """Map engine errors onto their HTTP status; the guest sees the message, never a stack trace."""
    if isinstance(exc, ScheduleIntegrityError):
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s: %s (%s)", request.method, request.url.path, exc.message, type(exc).__name__)
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "error": type(exc).__name__},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return the error in JSON; include CORS so 500 responses are not blocked by browser."""
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
