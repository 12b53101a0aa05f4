"""Logging setup and request logging shared by the web app and resource server."""

import logging
import sys
import time
import uuid
from pathlib import Path

from fastapi import Request
from fastapi.exceptions import HTTPException
from loguru import logger
from starlette.responses import JSONResponse

from src.identity_sync.runtime.context import get_config

PLAIN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "[<cyan>{extra[request_id]}</cyan>] | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Third-party loggers and the level below which they are muted
STDLIB_LEVELS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.CRITICAL,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Requests are logged by log_requests, errors with their context there too
        if record.name == "uvicorn.access":
            return
        if record.name == "uvicorn.error" and record.levelno >= logging.ERROR:
            return

        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(depth=2, exception=record.exc_info).bind(
            logger_name=record.name
        ).log(level, record.getMessage())


def _route_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        existing = logging.getLogger(name)
        existing.handlers = []
        existing.propagate = True
    for name, level in STDLIB_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def configure_logging() -> None:
    """Install loguru sinks from the active configuration.

    The console sink is always plain and colorized. A file sink is added when
    ``logging.file`` is set, serialized as JSON when ``logging.format`` is json.
    """
    config = get_config()
    settings = config.logging
    verbose_traces = config.app.environment != "production"

    logger.remove()
    # Records logged outside a request still render {extra[request_id]}
    logger.configure(
        extra={"request_id": "-"},
        patcher=lambda record: record["extra"].setdefault("request_id", "-"),
    )

    logger.add(
        sys.stderr,
        level=settings.level,
        format=PLAIN_FORMAT,
        colorize=True,
        backtrace=verbose_traces,
        diagnose=verbose_traces,
    )

    if settings.file:
        path = Path(settings.file)
        path.parent.mkdir(parents=True, exist_ok=True)
        as_json = settings.format == "json"
        logger.add(
            str(path),
            level=settings.level,
            format="{message}" if as_json else PLAIN_FORMAT,
            serialize=as_json,
            rotation=f"{settings.max_size_mb} MB",
            retention=settings.backup_count,
            compression="zip",
            enqueue=True,
            backtrace=verbose_traces,
            diagnose=verbose_traces,
        )

    _route_stdlib_logging()

    logger.bind(
        app_level=settings.level,
        app_format=settings.format,
        app_file=settings.file,
        environment=config.app.environment,
    ).info("Logging configured")


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _error_response(status_code: int, detail, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "request_id": request_id},
        headers={"X-Request-ID": request_id},
    )


async def log_requests(request: Request, call_next):
    """Bind a request id for everything logged while handling the request.

    Unhandled exceptions become a JSON error carrying the request id.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    started = time.perf_counter()

    def elapsed_ms() -> float:
        return round((time.perf_counter() - started) * 1000, 1)

    with logger.contextualize(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        client_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    ):
        logger.info("request.start")
        try:
            response = await call_next(request)
        except HTTPException as exc:
            logger.bind(
                status_code=exc.status_code,
                duration_ms=elapsed_ms(),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return _error_response(exc.status_code, exc.detail, request_id)
        except Exception as exc:
            logger.bind(
                status_code=500,
                duration_ms=elapsed_ms(),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return _error_response(500, "Internal Server Error", request_id)

        logger.bind(
            status_code=response.status_code, duration_ms=elapsed_ms()
        ).info("request.end")
        response.headers.setdefault("X-Request-ID", request_id)
        return response
