from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import os
import time
import structlog

from notelink.auth import COOKIE_SECURE
from notelink.db import init_db
from notelink.routers import auth as auth_router
from notelink.routers import communities as communities_router
from notelink.routers import notes as notes_router
from notelink.routers import quizzes as quizzes_router
from notelink.services.logging import bind_request_context, clear_request_context, configure_logging, log_request
from notelink.services.monitoring import health_checker, get_metrics, REQUEST_COUNT, REQUEST_DURATION
from notelink.middleware.rate_limit import limiter

configure_logging()
logger = structlog.get_logger()

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
# Exception text goes into 500 bodies only outside production
SHOW_ERROR_DETAIL = os.getenv("SHOW_ERROR_DETAIL", "false" if COOKIE_SECURE else "true").lower() in ("1", "true", "yes")

app = FastAPI(
    title="NoteLink",
    description="Lecture note sharing with communities and review quiz generation",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log_request(request, error=exc)
    logger.exception("unhandled_exception")
    if request.url.path.startswith("/api/"):
        content = {"message": "server error"}
        if SHOW_ERROR_DETAIL:
            content["detail"] = str(exc)
        return JSONResponse(status_code=500, content=content)
    return PlainTextResponse("Server Error", status_code=500)


def _endpoint_label(request: Request) -> str:
    # Route template, so /api/notes/1 and /api/notes/2 share one series
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


@app.middleware("http")
async def request_context_and_metrics(request: Request, call_next):
    request_id = bind_request_context(request)
    start = time.perf_counter()

    response = await call_next(request)

    elapsed = time.perf_counter() - start
    endpoint = _endpoint_label(request)
    REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(elapsed)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    log_request(request, status_code=response.status_code, duration=elapsed)
    clear_request_context()
    return response


# ----------------- Health & Monitoring Endpoints -----------------
@app.get("/health")
async def health_check():
    """Full health report: DB, cache, AI configuration and host metrics"""
    return health_checker.get_health_status()


@app.get("/api/health")
async def api_health_check():
    db = health_checker.check_database()
    return {"ok": db["status"] == "healthy", "db": db["status"] == "healthy"}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return get_metrics()


# ----------------- Startup -----------------
@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("app_started", version=app.version)


# ----------------- Routers -----------------
app.include_router(auth_router.router)
app.include_router(communities_router.router)
app.include_router(notes_router.router)
app.include_router(quizzes_router.router)
