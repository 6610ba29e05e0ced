"""
Structured logging: JSON lines through structlog, with per-request context
"""
import functools
import logging
import os
import sys
import time
import uuid

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Chatty third-party loggers and the level they are held at
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy": logging.WARNING,
    "httpx": logging.WARNING,
    "openai": logging.WARNING,
}


def configure_logging(level: str = LOG_LEVEL):
    """Configure structlog on top of the standard logging module.

    Note bodies and quiz text are Japanese, so the JSON renderer keeps
    non-ASCII characters as they are.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )
    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str = None):
    return structlog.get_logger(name)


def bind_request_context(request) -> str:
    """Attach a request id, method and path to every event logged while
    handling ``request``. Returns the request id."""
    structlog.contextvars.clear_contextvars()
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    return request_id


def clear_request_context():
    structlog.contextvars.clear_contextvars()


def log_performance(func_name: str):
    """Log how long the wrapped call took, in milliseconds."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger("performance")
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "function_failed",
                    function=func_name,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                    error=str(e),
                )
                raise
            logger.info(
                "function_completed",
                function=func_name,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return result
        return wrapper
    return decorator


def log_request(request, status_code: int = None, duration: float = None, error: Exception = None):
    """Log the outcome of one HTTP request; method and path come from the bound context."""
    logger = get_logger("api")
    client_ip = request.client.host if request.client else "unknown"

    if error is not None:
        logger.error("request_failed", client_ip=client_ip, error=str(error), status_code=status_code or 500)
        return
    level = logging.WARNING if status_code and status_code >= 500 else logging.INFO
    logger.log(
        level,
        "request_completed",
        client_ip=client_ip,
        status_code=status_code,
        duration_ms=round(duration * 1000, 2) if duration is not None else None,
    )
