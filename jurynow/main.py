from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Optional
import json
import logging
import traceback

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from jurynow.data.verdict_archive import sweep_overdue_sessions
from jurynow.database import Base, SessionLocal, engine
import jurynow.models  # noqa: F401  # Ensure all SQLAlchemy models are registered
from jurynow.routers import jury as jury_router
from jurynow.routers import questions as questions_router
from jurynow.routers import sessions as sessions_router
from jurynow.routers import verdicts as verdicts_router
from jurynow.services import verdict_coordinator
from jurynow.services.errors import InternalConsistencyError, JuryError
from jurynow.utils.logging_config import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logging.getLogger("app").info("Database initialized.")
    yield
    db = SessionLocal()
    try:
        archived = sweep_overdue_sessions(db, verdict_coordinator)
    finally:
        db.close()
    if archived:
        logging.getLogger("app").info("Closed and archived overdue sessions on shutdown: %s", archived)
    logging.getLogger("app").info("Application shutdown.")


app = FastAPI(
    title="JuryNow",
    description="Diverse 12-juror panels and verdicts for binary-choice questions",
    lifespan=lifespan,
)


def _error_name(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase.replace(" ", "").replace("-", "")
    except ValueError:
        return "HTTPError"


async def audit_action_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    method = request.method.upper()
    if method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return await call_next(request)

    path = request.url.path
    if not path.startswith("/api/"):
        return await call_next(request)

    payload_summary: Optional[str] = None
    if request.headers.get("content-type", "").lower().startswith("application/json"):
        try:
            body = await request.body()
            request._body = body  # Preserve for any downstream access
            if body:
                parsed = json.loads(body.decode("utf-8"))
                if isinstance(parsed, dict):
                    redacted = {}
                    for key, value in parsed.items():
                        lower_key = str(key).lower()
                        # Ballot reasoning is internal to the jury.
                        if "token" in lower_key or lower_key == "reasoning":
                            redacted[key] = "***"
                        else:
                            redacted[key] = value if isinstance(value, (str, int, float, bool, type(None))) else type(value).__name__
                    payload_summary = json.dumps(redacted, ensure_ascii=True)
                else:
                    payload_summary = type(parsed).__name__
        except (UnicodeDecodeError, ValueError):
            payload_summary = "unavailable"

    response = await call_next(request)

    identity = getattr(request.state, "identity", None)
    details = {
        "method": method,
        "path": path,
        "status": response.status_code,
        "subject": getattr(identity, "subject", None) or "anonymous",
        "role": getattr(getattr(identity, "role", None), "value", None),
    }
    if payload_summary:
        details["payload"] = payload_summary
    logging.getLogger("audit").info("Audit action: %s", details)
    return response


app.add_middleware(BaseHTTPMiddleware, dispatch=audit_action_middleware)

# Include routers
app.include_router(questions_router.router)
app.include_router(jury_router.router)
app.include_router(sessions_router.router)
app.include_router(verdicts_router.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger = logging.getLogger("app")
    logger.error(f"Global exception: {str(exc)}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal Server Error. Please check logs.",
            "error": "InternalServerError",
        },
    )


@app.exception_handler(InternalConsistencyError)
async def consistency_exception_handler(request: Request, exc: InternalConsistencyError):
    logging.getLogger("jury").error(
        f"Invariant violated on {request.method} {request.url.path}: {exc}\n"
        f"{traceback.format_exc()}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error. Please check logs.", "error": type(exc).__name__},
    )


@app.exception_handler(JuryError)
async def jury_exception_handler(request: Request, exc: JuryError):
    logging.getLogger("app").info(f"{exc.error_code} ({exc.status_code}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_code},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger = logging.getLogger("app")
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code} error: {exc.detail}\n{traceback.format_exc()}"
        )
    else:
        logger.info(f"HTTP {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": _error_name(exc.status_code)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger = logging.getLogger("app")
    # Extract just the error messages for a simpler, guaranteed-serializable response
    error_messages = [err["msg"] for err in exc.errors()]
    logger.warning(f"Validation error: {error_messages}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": error_messages, "error": "ValidationError"},
    )


@app.get("/health", tags=["healthcheck"])
async def health_check():
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logging.getLogger("database").error(f"Health check database connection error: {e}")
        raise HTTPException(
            status_code=503, detail=f"Database connection failed: {str(e)}"
        )
