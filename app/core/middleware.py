"""Request middleware: correlation ids and access logging."""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger, request_id_var, user_id_var

logger = get_logger(__name__)

SLOW_REQUEST_MS = 5_000.0


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Binds request_id for the request, clears user_id, and logs one line per request.

    Generation calls can legitimately take tens of seconds; anything slower
    than ``SLOW_REQUEST_MS`` is logged at warning level.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        rid_token = request_id_var.set(request_id)
        # user_id is bound by the auth dependency once the caller is verified
        uid_token = user_id_var.set(None)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(started),
            )
            raise
        else:
            elapsed = _elapsed_ms(started)
            response.headers["x-request-id"] = request_id
            response.headers["x-response-time-ms"] = f"{elapsed:.1f}"

            log = logger.warning if elapsed > SLOW_REQUEST_MS else logger.info
            log(
                "request_finished",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=elapsed,
            )
            return response
        finally:
            request_id_var.reset(rid_token)
            user_id_var.reset(uid_token)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)
