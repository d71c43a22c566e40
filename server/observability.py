import logging
import sys
import time

import structlog
from fastapi import FastAPI, Request
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator


# Registered once per process; the module must not be re-imported.
MACHINE_ACTIONS = Counter(
    "machine_actions",
    "Per-machine outcomes of lifecycle actions.",
    ["action", "status"],
)


def init_logging(level: str = "INFO") -> None:
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
    logging.basicConfig(stream=sys.stdout, level=log_level)


def record_machine_action(action: str, status: str) -> None:
    MACHINE_ACTIONS.labels(action=action, status=status).inc()


def attach_instrumentation(app: FastAPI) -> None:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    @app.middleware("http")
    async def _latency(request: Request, call_next):
        start = time.perf_counter()
        resp = await call_next(request)
        dur_ms = (time.perf_counter() - start) * 1000
        structlog.get_logger("request").info(
            "req",
            path=request.url.path,
            method=request.method,
            status=resp.status_code,
            duration_ms=round(dur_ms, 2),
        )
        return resp
