"""FastAPI application for student records."""

import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

# local modules (same folder as main.py inside the container)
from metrics import router as metrics_router
from auth.credentials import CredentialStore, FixedCredentialStore, HashedCredentialStore
from auth.routes import router as auth_router
from auth.service import CredentialValidator
from auth.tokens import JwtTokenCodec, OpaqueTokenCodec, TokenCodec
from db import build_engine, build_session_factory, create_tables
from errors import AuthenticationFailure, StudentRecordsError, ValidationError, field_errors
from logging_config import (
    generate_request_id,
    get_logger,
    log_with_context,
    request_id_var,
    setup_logging,
)
from settings import Settings, settings as default_settings
from students.repository import StudentRepository
from students.routes import router as students_router

logger = get_logger("http")


def build_credential_store(settings: Settings, session_factory) -> CredentialStore:
    if settings.credential_backend == "fixed":
        return FixedCredentialStore()
    return HashedCredentialStore(session_factory, settings.password_pepper)


def build_token_codec(settings: Settings) -> TokenCodec:
    ttl = timedelta(hours=settings.token_expire_hours)
    if settings.token_format == "opaque":
        return OpaqueTokenCodec(ttl=ttl)
    return JwtTokenCodec(settings.jwt_secret_key, settings.jwt_algorithm, ttl=ttl)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed data on startup, release the pool on shutdown."""
    state = app.state
    create_tables(state.engine)

    if isinstance(state.credential_store, HashedCredentialStore):
        state.credential_store.provision(
            state.settings.admin_user,
            state.settings.admin_pass,
            email=f"{state.settings.admin_user}@students.local",
            first_name="Admin",
            last_name="User",
        )
    if state.settings.seed_sample_data:
        state.student_repository.seed_if_empty()

    yield
    state.engine.dispose()


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    """Build the app with its repository and validator constructed once."""
    settings = settings or default_settings
    engine = engine or build_engine(settings.database_url)
    session_factory = build_session_factory(engine)

    app = FastAPI(
        title="Student Records Backend",
        description="Student records CRUD, search, statistics and session-token authentication",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.credential_store = build_credential_store(settings, session_factory)
    app.state.credential_validator = CredentialValidator(
        app.state.credential_store, build_token_codec(settings)
    )
    app.state.student_repository = StudentRepository(session_factory)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Tag every log entry of a request with one id and log its latency."""
        req_id = request.headers.get("X-Request-ID") or generate_request_id()
        request_id_var.set(req_id)
        start_time = time.time()

        response = await call_next(request)

        duration_ms = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = req_id
        log_with_context(logger, "INFO",
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra_data={
                "duration_ms": duration_ms,
                "ip": request.client.host if request.client else "unknown",
            })
        return response

    @app.exception_handler(StudentRecordsError)
    async def student_records_error_handler(request: Request, exc: StudentRecordsError):
        headers = None
        if isinstance(exc, AuthenticationFailure):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        error = ValidationError("Request data is invalid", errors=field_errors(exc.errors()))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"kind": "internal_error", "message": "Internal server error", "errors": []},
        )

    # Observability
    app.include_router(metrics_router)  # exposes GET /metrics

    # Functional routers
    app.include_router(auth_router)
    app.include_router(students_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/")
    async def root():
        return {"message": "Student Records API", "version": "1.0.0"}

    return app


setup_logging(default_settings.log_level)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
