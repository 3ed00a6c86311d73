"""
Generation API endpoints.

Forwards Gemini-format requests through the multi-backend router.
The request body is a Gemini request plus a "model" field.
"""

import json
import logging
import uuid
from typing import Any, AsyncIterator

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from keycycle.router import MultiBackendRouter, RouterError, get_router
from keycycle.server.routes.errors import error_response, simple_error

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_body(request: Request) -> dict[str, Any] | JSONResponse:
    try:
        body = await request.json()
    except Exception as e:
        return simple_error(
            "invalid_request_error", f"Invalid JSON: {e}", status.HTTP_400_BAD_REQUEST
        )
    if not isinstance(body, dict):
        return simple_error(
            "invalid_request_error",
            "Request body must be a JSON object",
            status.HTTP_400_BAD_REQUEST,
        )
    return body


def _require_router() -> MultiBackendRouter | JSONResponse:
    routing = get_router()
    if routing is None:
        return simple_error(
            "configuration_error",
            "Router is not initialized",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return routing


def _request_id(request: Request) -> str:
    """Reuse the id assigned by the logging middleware when present."""
    return getattr(request.state, "request_id", None) or f"req_{uuid.uuid4().hex[:24]}"


def _sse(data: dict[str, Any], event: str | None = None) -> bytes:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(data)}\n\n".encode()


@router.post("/generate")
async def generate(request: Request) -> Any:
    """
    Generate content.

    Rate-limited backends are rotated out and the request is retried on the
    next eligible backend.
    """
    routing = _require_router()
    if isinstance(routing, JSONResponse):
        return routing
    body = await _read_body(request)
    if isinstance(body, JSONResponse):
        return body

    request_id = _request_id(request)
    logger.info(f"[{request_id}] generate (model={body.get('model')})")

    try:
        return await routing.generate(body)
    except RouterError as e:
        logger.warning(f"[{request_id}] generate failed: {e}")
        return error_response(e, headers={"X-Request-Id": request_id})


@router.post("/generate/stream")
async def generate_stream(request: Request) -> Any:
    """
    Stream generated content as server-sent events.

    Failures before the first chunk produce a normal JSON error response.
    Failures after it end the stream with an "error" event.
    """
    routing = _require_router()
    if isinstance(routing, JSONResponse):
        return routing
    body = await _read_body(request)
    if isinstance(body, JSONResponse):
        return body

    request_id = _request_id(request)
    logger.info(f"[{request_id}] generate stream (model={body.get('model')})")

    stream = routing.generate_stream(body)
    try:
        first = await anext(stream)
    except StopAsyncIteration:
        first = None
    except RouterError as e:
        logger.warning(f"[{request_id}] stream failed before first chunk: {e}")
        return error_response(e, headers={"X-Request-Id": request_id})

    async def events() -> AsyncIterator[bytes]:
        try:
            if first is not None:
                yield _sse(first)
                async for chunk in stream:
                    yield _sse(chunk)
        except RouterError as e:
            logger.warning(f"[{request_id}] stream aborted: {e}")
            yield _sse(e.to_dict(), event="error")
        finally:
            await stream.aclose()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Request-Id": request_id,
        },
    )


@router.post("/count-tokens")
async def count_tokens(request: Request) -> Any:
    """Count tokens for a request."""
    routing = _require_router()
    if isinstance(routing, JSONResponse):
        return routing
    body = await _read_body(request)
    if isinstance(body, JSONResponse):
        return body

    try:
        return await routing.count_tokens(body)
    except RouterError as e:
        return error_response(e)


@router.post("/embed")
async def embed(request: Request) -> Any:
    """Compute embeddings for a request."""
    routing = _require_router()
    if isinstance(routing, JSONResponse):
        return routing
    body = await _read_body(request)
    if isinstance(body, JSONResponse):
        return body

    try:
        return await routing.embed(body)
    except RouterError as e:
        return error_response(e)
