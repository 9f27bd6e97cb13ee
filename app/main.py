import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import date

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import auth, bookings, slots
from app.core.config import settings, _ENV_FILE
from app.core.errors import BookingError
from app.core.store import AvailabilityStore, InMemoryStore
from app.services.calendar_service import CalendarAdapter, DisabledCalendar, GoogleCalendar
from app.services.google_auth_service import (
    CALENDAR_SCOPES,
    SHEETS_SCOPES,
    ServiceAccountTokenSource,
)
from app.services.sheets_service import SheetsStore
from app.services.slot_service import generate_for_range

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)

SLOT_HORIZON_INTERVAL_SECONDS = 24 * 60 * 60  # 24 hours
HTTP_TIMEOUT_SECONDS = 15.0


def build_store(client: httpx.AsyncClient) -> AvailabilityStore:
    if settings.storage_backend == "memory":
        logger.warning("STORAGE_BACKEND=memory: bookings are lost on restart")
        return InMemoryStore()
    if not (settings.spreadsheet_id and settings.google_enabled):
        raise RuntimeError(
            "SPREADSHEET_ID, GOOGLE_CLIENT_EMAIL and GOOGLE_PRIVATE_KEY must be set "
            f"(in the environment or {_ENV_FILE}), or set STORAGE_BACKEND=memory"
        )
    token_source = ServiceAccountTokenSource.from_settings(client, SHEETS_SCOPES)
    return SheetsStore(client, token_source, settings.spreadsheet_id)


def build_calendar(client: httpx.AsyncClient) -> CalendarAdapter:
    if not (settings.calendar_id and settings.google_enabled):
        logger.warning("Google Calendar: NOT configured. Set CALENDAR_ID and the service account in %s", _ENV_FILE)
        return DisabledCalendar()
    token_source = ServiceAccountTokenSource.from_settings(client, CALENDAR_SCOPES)
    return GoogleCalendar(client, token_source, settings.calendar_id)


async def _run_slot_horizon(store: AvailabilityStore) -> None:
    """Make sure slots exist from today through slot_horizon_days ahead."""
    try:
        await generate_for_range(store, date.today(), settings.slot_horizon_days)
    except Exception as e:
        logger.exception("Slot horizon generation failed: %s", e)


async def _slot_horizon_loop(store: AvailabilityStore) -> None:
    while True:
        await asyncio.sleep(SLOT_HORIZON_INTERVAL_SECONDS)
        await _run_slot_horizon(store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    if getattr(app.state, "store", None) is None:
        app.state.store = build_store(client)
    if getattr(app.state, "calendar", None) is None:
        app.state.calendar = build_calendar(client)

    task = None
    if settings.slot_horizon_days > 0:
        logger.info("Slot horizon: %d days (on startup and every 24h)", settings.slot_horizon_days)
        await _run_slot_horizon(app.state.store)
        task = asyncio.create_task(_slot_horizon_loop(app.state.store))
    yield
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await client.aclose()


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message},
        headers=_cors_headers(request.headers.get("origin")),
    )


def _describe_validation_error(exc: RequestValidationError) -> str:
    missing: list[str] = []
    problems: list[str] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        if err.get("type") == "missing":
            missing.append(loc[-1] if loc else "body")
        else:
            msg = str(err.get("msg", "invalid")).removeprefix("Value error, ")
            problems.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    if missing:
        problems.insert(0, f"Missing fields: {', '.join(missing)}")
    return "; ".join(problems) or "Invalid request"


def create_app(
    store: AvailabilityStore | None = None,
    calendar: CalendarAdapter | None = None,
) -> FastAPI:
    app = FastAPI(
        title="Clinic Booking API",
        description="Slot generation, bookings and cancellations backed by Google Sheets and Calendar",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.calendar = calendar

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(slots.router, prefix="/api")
    app.include_router(bookings.router, prefix="/api")
    app.include_router(auth.router, prefix="/api")

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return _error_response(request, exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(request, 400, _describe_validation_error(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(request, exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Return the error in JSON; include CORS so 500 responses are not blocked by browser."""
        logger.exception("Unhandled exception: %s", exc)
        return _error_response(request, 500, f"{type(exc).__name__}: {exc}")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
