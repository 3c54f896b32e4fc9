"""
Request context middleware: request id and latency headers
"""

import time
import uuid
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from core.logging import request_id_var

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Injects:
    - request_id (honours an incoming X-Request-ID), also bound to every
      log record emitted while the request is served
    - api_latency_ms
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.perf_counter()

        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response: Response = await call_next(request)

            latency_ms = int((time.perf_counter() - start_time) * 1000)

            response.headers["X-Request-ID"] = request_id
            response.headers["X-API-Latency-ms"] = str(latency_ms)

            # Routing fills path_params on the shared scope
            step_name = request.scope.get("path_params", {}).get("step_name")
            message = f"{request.method} {request.url.path} -> {response.status_code} in {latency_ms}ms"
            if step_name:
                logger.info(f"{message} (step {step_name})", extra={"step_name": step_name})
            else:
                logger.debug(message)
        finally:
            request_id_var.reset(token)

        return response
