"""
Request logging middleware.

Logs method, path, status and latency of API requests with a request id.
"""

import logging
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware:
    """
    Pure ASGI middleware that logs API requests.

    Streaming responses are timed until the response body is complete. The
    request id is stored in scope state and returned as X-Request-Id unless a
    handler already set one.
    """

    # Paths to skip
    SKIP_PATHS = ["/health", "/docs", "/redoc", "/openapi.json", "/ws"]

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    def _should_log(self, path: str) -> bool:
        return not any(path.startswith(p) for p in self.SKIP_PATHS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI interface."""
        if scope["type"] != "http" or not self._should_log(scope["path"]):
            await self.app(scope, receive, send)
            return

        request_id = f"req_{uuid.uuid4().hex[:24]}"
        if "state" not in scope:
            scope["state"] = {}
        scope["state"]["request_id"] = request_id

        start_time = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = list(message.get("headers", []))
                if not any(k.lower() == b"x-request-id" for k, _ in headers):
                    headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            logger.info(
                f"[{request_id}] {scope.get('method', '-')} {scope['path']} "
                f"-> {status_code} ({latency_ms}ms)"
            )
