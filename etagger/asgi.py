from __future__ import annotations

import logging
import typing as t

from etagger._async._sinks import AsyncResponseSink
from etagger._async_interceptor import AsyncEtagInterceptor
from etagger._core._digest import EtagGenerator
from etagger._core._headers import Headers
from etagger._core._states import EtagOptions
from etagger._core.models import Request
from etagger._exceptions import ResponseAlreadyCommittedError, ResponseProtocolError
from etagger._utils import decode_header_pairs, encode_header_pairs

logger = logging.getLogger(__name__)

# Extensions whose response messages bypass http.response.body.
UNBUFFERABLE_EXTENSIONS = frozenset(
    {
        "http.response.pathsend",
        "http.response.zerocopysend",
        "http.response.push",
        "http.response.early_hint",
        "http.response.trailers",
        "http.response.debug",
    }
)


class _ASGIScope(t.TypedDict, total=False):
    """ASGI HTTP scope type."""

    type: str
    asgi: dict[str, str]
    http_version: str
    method: str
    scheme: str
    path: str
    query_string: bytes
    root_path: str
    headers: list[tuple[bytes, bytes]]
    server: tuple[str, int | None] | None
    client: tuple[str, int] | None
    state: dict[str, t.Any]
    extensions: dict[str, t.Any]


_Scope = _ASGIScope
_Receive = t.Callable[[], t.Awaitable[dict[str, t.Any]]]
_Send = t.Callable[[dict[str, t.Any]], t.Awaitable[None]]
_ASGIApp = t.Callable[[_Scope, _Receive, _Send], t.Awaitable[None]]


class ASGIResponseSink(AsyncResponseSink):
    """
    Response sink writing to an ASGI `send` callable.

    Status and headers are held until the first body write (or `finish`),
    then sent as a single `http.response.start` message. After that point
    they can no longer change.
    """

    def __init__(self, send: _Send) -> None:
        self._send = send
        self._status_code = 200
        self._headers = Headers()
        self._started = False
        self._bytes_sent = 0
        self._chunk_count = 0

    async def set_status(self, status_code: int) -> None:
        self._ensure_not_started()
        self._status_code = status_code

    async def set_header(self, name: str, value: str) -> None:
        self._ensure_not_started()
        self._headers[name] = value

    async def add_header(self, name: str, value: str) -> None:
        self._ensure_not_started()
        self._headers.add(name, value)

    async def write(self, chunk: bytes) -> None:
        await self._start()
        if not chunk:
            return
        await self._send(
            {
                "type": "http.response.body",
                "body": chunk,
                "more_body": True,
            }
        )
        self._bytes_sent += len(chunk)
        self._chunk_count += 1
        logger.debug("Sent response chunk: size=%d bytes", len(chunk))

    async def finish(self) -> None:
        await self._start()
        # Send final empty chunk to signal end
        await self._send(
            {
                "type": "http.response.body",
                "body": b"",
                "more_body": False,
            }
        )
        logger.debug(
            "Response fully sent: status=%d total_bytes=%d chunks=%d",
            self._status_code,
            self._bytes_sent,
            self._chunk_count,
        )

    async def _start(self) -> None:
        if self._started:
            return
        self._started = True
        await self._send(
            {
                "type": "http.response.start",
                "status": self._status_code,
                "headers": encode_header_pairs(self._headers.multi_items()),
            }
        )
        logger.debug(
            "Response headers sent: status=%d headers_count=%d",
            self._status_code,
            len(self._headers),
        )

    def _ensure_not_started(self) -> None:
        if self._started:
            raise ResponseAlreadyCommittedError("Response headers were already sent")


class ASGIEtagMiddleware:
    """
    ASGI middleware that adds content-derived ETags and answers conditional
    requests with 304 Not Modified.

    The wrapped application's response is buffered completely, digested and
    compared with the request's If-None-Match header before anything is sent
    to the client. On a match only a bare 304 status is sent. Otherwise the
    application's status, headers and body go out unchanged, plus an ETag.

    Non-HTTP scopes (lifespan, websocket) are passed through untouched.

    Args:
        app: The ASGI application to wrap.
        options: Entity-tag options. Defaults to EtagOptions().
        generator: Custom validator generator, overriding `options.algorithm`.

    Example:
        ```python
        from fastapi import FastAPI
        from etagger.asgi import ASGIEtagMiddleware

        app = FastAPI()
        app.add_middleware(ASGIEtagMiddleware)
        ```
    """

    def __init__(
        self,
        app: _ASGIApp,
        options: EtagOptions | None = None,
        generator: EtagGenerator | None = None,
    ) -> None:
        self.app = app
        self._interceptor = AsyncEtagInterceptor(options=options, generator=generator)

        logger.info(
            "Initialized ASGIEtagMiddleware with generator=%r",
            self._interceptor.generator,
        )

    async def __call__(self, scope: _Scope, receive: _Receive, send: _Send) -> None:
        """
        Handle an ASGI request.

        Args:
            scope: The ASGI scope dictionary.
            receive: The ASGI receive callable.
            send: The ASGI send callable.
        """
        # Only handle HTTP requests
        if scope["type"] != "http":
            logger.debug("Skipping non-HTTP request: type=%s", scope["type"])
            await self.app(scope, receive, send)
            return

        request = self._asgi_to_internal_request(scope)

        logger.debug("Incoming HTTP request: method=%s path=%s", request.method, request.path)

        # Responses sent through these extensions carry no bytes we could
        # buffer, so the application must fall back to http.response.body.
        app_scope = t.cast(_Scope, dict(scope))
        if "extensions" in scope:
            app_scope["extensions"] = {
                name: value
                for name, value in scope["extensions"].items()
                if name not in UNBUFFERABLE_EXTENSIONS
            }

        # The closure binds scope and receive of this request only, so the
        # middleware itself stays free of per-request state.
        async def call_app(request: Request, response: AsyncResponseSink) -> None:
            response_started = False

            async def inner_send(message: dict[str, t.Any]) -> None:
                nonlocal response_started
                if message["type"] == "http.response.start":
                    if response_started:
                        raise ResponseProtocolError("Application sent http.response.start twice")
                    response_started = True
                    await response.set_status(message["status"])
                    for key, value in decode_header_pairs(message.get("headers", [])):
                        await response.add_header(key, value)
                    logger.debug("Application response started: status=%d", message["status"])
                elif message["type"] == "http.response.body":
                    if not response_started:
                        raise ResponseProtocolError("Application sent a body before http.response.start")
                    body_chunk = message.get("body", b"")
                    if body_chunk:
                        await response.write(body_chunk)
                        logger.debug("Captured response body chunk: size=%d bytes", len(body_chunk))
                elif message["type"].startswith("http.response."):
                    raise ResponseProtocolError(f"Cannot buffer ASGI message: type={message['type']}")
                else:
                    logger.debug("Ignoring ASGI message: type=%s", message["type"])

            await self.app(app_scope, receive, inner_send)

            if not response_started:
                raise ResponseProtocolError("Application returned without sending a response")

        try:
            await self._interceptor.intercept(request, ASGIResponseSink(send), call_app)
        except Exception as e:
            logger.error(
                "Error processing request: method=%s path=%s error=%s",
                request.method,
                request.path,
                str(e),
                exc_info=True,
            )
            raise

        logger.debug("Request processed: method=%s path=%s", request.method, request.path)

    def _asgi_to_internal_request(self, scope: _Scope) -> Request:
        return Request(
            method=scope.get("method", "GET"),
            path=scope.get("path", "/"),
            headers=Headers.from_pairs(decode_header_pairs(scope.get("headers", []))),
        )
