import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from . import __version__
from .auth import router as auth_router
from .cases import router as cases_router
from .config import settings
from .db import init_db
from .logging_utils import configure_logging
from .security import verify_token
from .users import router as users_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Case Monitoring API", version=__version__)

origins = settings.cors_origins
if origins:
    wildcard = "*" in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else origins,
        # Credentials cannot be combined with wildcard origins
        allow_credentials=False if wildcard else True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(GZipMiddleware, minimum_size=500)


def _request_user(request: Request) -> str:
    header = request.headers.get("authorization", "")
    if not header.lower().startswith("bearer "):
        return "anonymous"
    try:
        return verify_token(header[7:].strip()).get("username") or "unknown"
    except HTTPException:
        return "anonymous"


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s %s %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        _request_user(request),
    )
    return response


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(cases_router)


def startup() -> None:
    configure_logging(settings.LOG_LEVEL)
    init_db()
    logger.info("Case monitoring API %s started (%s)", __version__, settings.ENV)


app.on_event("startup")(startup)


@app.get("/health")
async def health_check():
    """Liveness check"""
    return {"status": "healthy", "version": app.version}
