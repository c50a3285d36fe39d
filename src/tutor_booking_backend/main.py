'''
FastAPI application: lifespan, middleware, routers and the mapping from
domain errors to HTTP responses.
'''
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from .database.engine import create_db_engine_and_session_factory, create_all_tables, dispose_db_engine
from .common.logger import log
from .common.config import settings
from .common.exceptions import (
    BookingEngineError,
    ValidationError,
    SlotUnavailableError,
    InsufficientCreditsError,
    InvalidStateTransitionError,
    NotFoundError
)
from .api import slots, availability, sessions, contracts, credits

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and shutdown events.
    """
    # --- On App Startup ---
    log.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")
    create_db_engine_and_session_factory()
    if settings.database_url.startswith("sqlite"):
        await create_all_tables()

    yield # --- Application is now running ---

    # --- On App Shutdown ---
    if not settings.TEST_MODE:
        log.info("Application lifespan shutdown...")
        await dispose_db_engine()
    else:
        log.info("Skipping database engine disposal in TEST_MODE.")


# ---- CREATING THE APP ----
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# --- Add CORS Middleware ---
origins = [
    "http://localhost",
    "http://localhost:3000",
]
origins.extend(settings.BACKEND_CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],)
# --- End of CORS Middleware ---

# --- Domain error handlers ---
ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SlotUnavailableError: status.HTTP_409_CONFLICT,
    InsufficientCreditsError: status.HTTP_402_PAYMENT_REQUIRED,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}

@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = code
            break

    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, InsufficientCreditsError):
        content.update(required=exc.required, available=exc.available, shortfall=exc.shortfall)

    log.warning(f"{request.method} {request.url.path} failed with {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=status_code, content=content)

@app.get("/")
async def health_check():
    return {"status": "ok", "message": f"{settings.APP_NAME} is running"}

app.include_router(slots.router)
app.include_router(availability.router)
app.include_router(sessions.router)
app.include_router(contracts.router)
app.include_router(credits.router)
