from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from chatrouter.core.config import settings
from chatrouter.core.logging import bind_request_id, reset_request_id


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to each HTTP request and log one line per request."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._logger = logging.getLogger("chatrouter.request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        request_id = request.headers.get(settings.request_id_header) or uuid.uuid4().hex
        token = bind_request_id(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._logger.exception(
                "request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": 500,
                    "duration_ms": self._elapsed_ms(started),
                },
            )
            raise
        else:
            self._logger.info(
                "request completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": self._elapsed_ms(started),
                },
            )
            response.headers[settings.request_id_header] = request_id
            return response
        finally:
            reset_request_id(token)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)
