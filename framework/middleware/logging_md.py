import uuid
import time
from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from framework.logging.logger import _current_request

TRACE_HEADER = "X-Trace-ID"
# Health checks would drown out request logs
QUIET_PATHS = {"/health"}


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or uuid.uuid4().hex
        request.state.trace_id = trace_id
        token = _current_request.set(request)
        quiet = request.url.path in QUIET_PATHS

        with logger.contextualize(trace_id=trace_id):
            start_time = time.perf_counter()
            if not quiet:
                logger.info(
                    f"Request Started | Method: {request.method} | Path: {request.url.path} | "
                    f"Client: {request.client.host if request.client else 'unknown'}"
                )

            try:
                response = await call_next(request)
                duration = (time.perf_counter() - start_time) * 1000
                if not quiet:
                    logger.info(f"Request Finished | Status: {response.status_code} | Duration: {duration:.2f}ms")
                response.headers[TRACE_HEADER] = trace_id
                return response
            except Exception as e:
                duration = (time.perf_counter() - start_time) * 1000
                logger.error(f"Request Failed | Error: {e!r} | Duration: {duration:.2f}ms")
                raise
            finally:
                _current_request.reset(token)
