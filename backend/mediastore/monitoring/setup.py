import logging
import time

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

file_operations = Counter(
    "mediastore_file_operations_total",
    "File lifecycle operations by outcome",
    ["operation", "outcome"],
)
storage_errors = Counter(
    "mediastore_storage_errors_total",
    "Object storage failures by error kind",
    ["kind"],
)
file_operation_duration = Histogram(
    "mediastore_file_operation_duration_seconds",
    "Duration of a file lifecycle operation in seconds",
    ["operation"],
)

def record_file_operation(operation: str, outcome: str, duration: float) -> None:
    """Record a lifecycle operation to Prometheus."""
    file_operations.labels(operation=operation, outcome=outcome).inc()
    file_operation_duration.labels(operation=operation).observe(duration)

def record_storage_error(kind) -> None:
    storage_errors.labels(kind=getattr(kind, "value", str(kind))).inc()

def setup_monitoring(app: ASGIApp):
    Instrumentator().instrument(app).expose(app, endpoint="/api/metrics", include_in_schema=False)

    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        start_time = time.time()
        response = None
        try:
            response = await call_next(request)
        except HTTPException as e:
            logger.exception("HTTP exception: %s %s -> %s", request.method, request.url.path, e.detail)
            response = JSONResponse(status_code=e.status_code, content={"detail": e.detail})
        except Exception as e:
            logger.exception("Unhandled error: %s %s -> %s", request.method, request.url.path, e)
            response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        finally:
            process_time = time.time() - start_time
            logger.info("method=%s path=%s status=%s duration=%.4fs",
                        request.method, request.url.path,
                        getattr(response, "status_code", "?"), process_time)
        return response
