"""Middleware for request/response processing in sensechat-proxy."""
import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

logger = logging.getLogger("sensechat-proxy.access")

class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and writes one access log line per request.

    The id is only logged; it is never added to the proxied response.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id

        status_code = HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as e:
            logger.error(f"Request error: {str(e)}")
            raise
        finally:
            # For streams this is time to first byte, not total duration
            duration_ms = (time.time() - start_time) * 1000
            client_ip = request.client.host if request.client else "unknown"
            logger.info(
                f"{client_ip} {request.method} {request.url.path} {status_code} "
                f"{duration_ms:.1f}ms request_id={request_id}"
            )
