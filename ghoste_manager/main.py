"""
Ghoste AI Manager — FastAPI Backend
Canonical Meta connection status, manager context, performance scores and
guardrailed campaign recommendations for Ghoste One.
All errors use the {ok: false, error, code} envelope.
"""

import logging
from contextlib import asynccontextmanager
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ghoste_manager.config import get_settings
from ghoste_manager.database import init_db, check_db_connection
from ghoste_manager.auth import get_owner_id
from ghoste_manager.errors import ErrorKind, ManagerError
from ghoste_manager.routers import connection, context, scores, decisions
from ghoste_manager.utils import install_redacting_filter, safe_error_detail

logging.basicConfig(level=logging.INFO)
install_redacting_filter()
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Ghoste AI Manager...")
    try:
        if not settings.is_production:
            await init_db()
            logger.info("Database initialized — all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {type(e).__name__}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Ghoste AI Manager",
    description="Context aggregation, scoring and guardrailed decisions for Ghoste One campaigns",
    version="1.0.0",
    lifespan=lifespan,
)

CORS_ORIGINS = settings.cors_origin_list


class AddCORSHeadersMiddleware(BaseHTTPMiddleware):
    """Ensure CORS headers on ALL responses (including errors)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        origin = request.headers.get("origin", "")
        if origin in CORS_ORIGINS:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
        return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AddCORSHeadersMiddleware)


# ── Error envelope ────────────────────────────────────────────────────

def _error(status_code: int, message: str, kind: ErrorKind) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message, "code": kind.value})


@app.exception_handler(ManagerError)
async def manager_error_handler(request: Request, exc: ManagerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind.value}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) or "body" for err in exc.errors()})
    return _error(422, f"Invalid request: {', '.join(fields)}", ErrorKind.VALIDATION_ERROR)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = ErrorKind.UNAUTHORIZED if exc.status_code in (401, 403) else ErrorKind.INTERNAL
    if exc.status_code == 404:
        kind = ErrorKind.INVALID_ENTITY
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error(exc.status_code, message, kind)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    return _error(500, safe_error_detail(exc), ErrorKind.INTERNAL)


# ── Register Routers (all require auth) ──────────────────────────────
_auth = [Depends(get_owner_id)]
app.include_router(connection.router, prefix="/api/manager", tags=["Connection"], dependencies=_auth)
app.include_router(context.router, prefix="/api/manager", tags=["Manager Context"], dependencies=_auth)
app.include_router(scores.router, prefix="/api/manager", tags=["Scores"], dependencies=_auth)
app.include_router(decisions.router, prefix="/api/manager", tags=["Decisions"], dependencies=_auth)


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Ghoste AI Manager",
        "database": "connected" if db_ok else "disconnected",
    }
