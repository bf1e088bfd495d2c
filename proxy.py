"""Request dispatch: chat completions are translated, everything else is passed through."""
import time
import uuid
import logging
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from fastapi import Request
from starlette.responses import Response, StreamingResponse

from auth import AuthManager
from config import settings
from errors import InvalidTargetError, UpstreamUnavailableError
from stream import StreamReframer, reframe_response
from transform import prepare_upstream_body

logger = logging.getLogger("sensechat-proxy.proxy")

EVENT_STREAM = "text/event-stream"

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Host and Content-Length are recomputed by the HTTP client for the outbound request
UNFORWARDED_REQUEST_HEADERS = {"host", "content-length"} | HOP_BY_HOP_HEADERS

# The re-framed body differs in length and is never re-compressed
REFRAMED_DROP_HEADERS = {"content-length", "content-encoding"}

def allowed_origin(request: Request) -> str:
    """Echo the inbound Access-Control-Allow-Origin header, defaulting to '*'."""
    return request.headers.get("Access-Control-Allow-Origin") or "*"

def forward_headers(request: Request, authorization: Optional[str] = None) -> List[Tuple[str, str]]:
    """Copy inbound headers for the upstream call, optionally replacing Authorization."""
    headers = []
    for key, value in request.headers.items():
        name = key.lower()
        if name in UNFORWARDED_REQUEST_HEADERS:
            continue
        if authorization is not None and name == "authorization":
            continue
        headers.append((key, value))

    if authorization is not None:
        headers.append(("Authorization", authorization))
    return headers

def copy_response_headers(response: Response, upstream: httpx.Response, drop: frozenset = frozenset()) -> None:
    for key, value in upstream.headers.multi_items():
        name = key.lower()
        if name in HOP_BY_HOP_HEADERS or name in drop:
            continue
        response.headers.append(key, value)

def passthrough_url(request: Request) -> str:
    if not settings.PASSTHROUGH_URL:
        return str(request.url)

    url = settings.PASSTHROUGH_URL.rstrip("/") + request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return url

async def relay_raw(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """Byte-for-byte copy of the upstream body."""
    try:
        # Body already buffered, aiter_raw would raise StreamConsumed
        if upstream.is_stream_consumed:
            yield upstream.content
            return

        async for chunk in upstream.aiter_raw():
            yield chunk
    finally:
        await upstream.aclose()

class ProxyService:
    """Dispatcher owning the shared upstream HTTP client."""

    _client: Optional[httpx.AsyncClient] = None

    @classmethod
    async def initialize(cls):
        """Initialize the proxy service."""
        if cls._client is None:
            cls._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None, connect=settings.UPSTREAM_CONNECT_TIMEOUT),
                follow_redirects=False,
            )

        logger.info(f"ProxyService initialized - upstream: {settings.UPSTREAM_URL}")
        return cls

    @classmethod
    async def close(cls):
        if cls._client is not None:
            await cls._client.aclose()
            cls._client = None

    @classmethod
    async def _send(cls, method: str, url: str, headers, content) -> httpx.Response:
        if cls._client is None:
            await cls.initialize()

        try:
            upstream_request = cls._client.build_request(method, url, headers=headers, content=content)
        except httpx.InvalidURL as e:
            raise InvalidTargetError(f"Failed to parse target URL: {str(e)}")

        try:
            return await cls._client.send(upstream_request, stream=True)
        except httpx.UnsupportedProtocol as e:
            raise InvalidTargetError(f"Failed to parse target URL: {str(e)}")
        except httpx.TransportError as e:
            logger.error(f"Upstream request to {url} failed: {e}")
            raise UpstreamUnavailableError(f"Failed to forward request: {str(e)}")

    @staticmethod
    async def dispatch(request: Request) -> Response:
        if request.url.path == settings.CHAT_COMPLETIONS_PATH:
            return await ProxyService.forward_chat_completion(request)
        return await ProxyService.forward_passthrough(request)

    @staticmethod
    async def forward_chat_completion(request: Request) -> Response:
        """Translate a chat completion request and its response."""
        start_time = time.time()
        request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
        origin = allowed_origin(request)

        raw = await request.body()
        body, model = prepare_upstream_body(raw, request.headers.get("content-type"))
        authorization = AuthManager.resolve_authorization(request.headers.get("authorization"))

        url = settings.UPSTREAM_URL.rstrip("/") + settings.UPSTREAM_CHAT_PATH
        upstream = await ProxyService._send(request.method, url, forward_headers(request, authorization), body)

        content_type = upstream.headers.get("content-type")
        logger.info(
            f"Chat completion {request_id}: model={model or '-'} upstream_status={upstream.status_code} "
            f"content_type={content_type} in {(time.time() - start_time) * 1000:.0f}ms"
        )

        if content_type == EVENT_STREAM:
            reframer = StreamReframer(model, settings.SYSTEM_FINGERPRINT)
            response = StreamingResponse(
                reframe_response(upstream, reframer, disconnect_check=request.is_disconnected),
                status_code=upstream.status_code,
            )
            copy_response_headers(response, upstream, drop=REFRAMED_DROP_HEADERS)
            response.headers["Content-Type"] = "text/event-stream; charset=utf-8"
            response.headers["Cache-Control"] = "no-cache"
            response.headers["Connection"] = "keep-alive"
        else:
            response = StreamingResponse(relay_raw(upstream), status_code=upstream.status_code)
            copy_response_headers(response, upstream)

        response.headers["Access-Control-Allow-Origin"] = origin
        return response

    @staticmethod
    async def forward_passthrough(request: Request) -> Response:
        """Forward a request untouched, adding only the CORS header to the response."""
        origin = allowed_origin(request)
        url = passthrough_url(request)
        logger.debug(f"Passthrough {request.method} {url}")

        body = await request.body()
        upstream = await ProxyService._send(request.method, url, forward_headers(request), body)

        response = StreamingResponse(relay_raw(upstream), status_code=upstream.status_code)
        copy_response_headers(response, upstream)
        response.headers["Access-Control-Allow-Origin"] = origin
        return response
