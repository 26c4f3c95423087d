from __future__ import annotations

import logging
import typing as t
from types import TracebackType

from etagger._core._digest import EtagGenerator
from etagger._core._headers import Headers
from etagger._core._states import EtagOptions
from etagger._core.models import Request
from etagger._exceptions import ResponseAlreadyCommittedError, ResponseProtocolError
from etagger._sync._sinks import SyncResponseSink
from etagger._sync_interceptor import SyncEtagInterceptor
from etagger._utils import parse_status_line, status_line

logger = logging.getLogger(__name__)

_ExcInfo = t.Tuple[t.Type[BaseException], BaseException, t.Optional[TracebackType]]
_Environ = t.Dict[str, t.Any]
_Write = t.Callable[[bytes], None]
_StartResponse = t.Callable[..., _Write]
_WSGIApp = t.Callable[[_Environ, _StartResponse], t.Iterable[bytes]]


class WSGIResponseSink(SyncResponseSink):
    """
    Response sink on top of a WSGI `start_response` callable.

    `start_response` is called on the first body write (or on `finish`);
    the written chunks are collected in `body`, which the middleware hands
    back to the server as the response iterable.
    """

    def __init__(self, start_response: _StartResponse) -> None:
        self._start_response = start_response
        self._status_code = 200
        self._headers = Headers()
        self._started = False
        self._status_lines: dict[int, str] = {}
        self.body: list[bytes] = []

    def use_status_line(self, status: str) -> None:
        """
        Send `status` verbatim whenever the response goes out with its status code.
        """
        self._status_lines[parse_status_line(status)] = status

    def set_status(self, status_code: int) -> None:
        self._ensure_not_started()
        self._status_code = status_code

    def set_header(self, name: str, value: str) -> None:
        self._ensure_not_started()
        self._headers[name] = value

    def add_header(self, name: str, value: str) -> None:
        self._ensure_not_started()
        self._headers.add(name, value)

    def write(self, chunk: bytes) -> None:
        self._start()
        if chunk:
            self.body.append(chunk)

    def finish(self) -> None:
        self._start()
        logger.debug(
            "Response committed: status=%d total_bytes=%d chunks=%d",
            self._status_code,
            sum(len(chunk) for chunk in self.body),
            len(self.body),
        )

    def _start(self) -> None:
        if self._started:
            return
        self._started = True
        status = self._status_lines.get(self._status_code) or status_line(self._status_code)
        self._start_response(status, list(self._headers.multi_items()))

    def _ensure_not_started(self) -> None:
        if self._started:
            raise ResponseAlreadyCommittedError("start_response was already called")


class WSGIEtagMiddleware:
    """
    WSGI counterpart of ASGIEtagMiddleware.

    The wrapped application's output is collected from both its returned
    iterable and the `write` callable, and the real `start_response` is only
    called once the response has been digested and compared with the
    request's If-None-Match header.

    Args:
        app: The WSGI application to wrap.
        options: Entity-tag options. Defaults to EtagOptions().
        generator: Custom validator generator, overriding `options.algorithm`.
    """

    def __init__(
        self,
        app: _WSGIApp,
        options: EtagOptions | None = None,
        generator: EtagGenerator | None = None,
    ) -> None:
        self.app = app
        self._interceptor = SyncEtagInterceptor(options=options, generator=generator)

        logger.info(
            "Initialized WSGIEtagMiddleware with generator=%r",
            self._interceptor.generator,
        )

    def __call__(self, environ: _Environ, start_response: _StartResponse) -> t.Iterable[bytes]:
        request = self._environ_to_internal_request(environ)
        sink = WSGIResponseSink(start_response)

        logger.debug("Incoming HTTP request: method=%s path=%s", request.method, request.path)

        def call_app(request: Request, response: SyncResponseSink) -> None:
            started: tuple[str, list[tuple[str, str]]] | None = None

            def capture_start_response(
                status: str,
                headers: list[tuple[str, str]],
                exc_info: _ExcInfo | None = None,
            ) -> _Write:
                nonlocal started
                # Nothing has reached the server yet, so a call carrying
                # exc_info may always replace the earlier status and headers.
                if started is not None and exc_info is None:
                    raise ResponseProtocolError("start_response was called twice without exc_info")
                started = (status, list(headers))
                logger.debug("Application response started: status=%s", status)
                return response.write

            result = self.app(environ, capture_start_response)
            try:
                for chunk in result:
                    response.write(chunk)
            finally:
                close = getattr(result, "close", None)
                if close is not None:
                    close()

            if started is None:
                raise ResponseProtocolError("Application returned without calling start_response")

            status, headers = started
            sink.use_status_line(status)
            response.set_status(parse_status_line(status))
            for key, value in headers:
                response.add_header(key, value)

        try:
            self._interceptor.intercept(request, sink, call_app)
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
        return sink.body

    def _environ_to_internal_request(self, environ: _Environ) -> Request:
        headers = Headers()
        for key, value in environ.items():
            if key.startswith("HTTP_"):
                headers.add(key[5:].replace("_", "-").title(), value)

        return Request(
            method=environ.get("REQUEST_METHOD", "GET"),
            path=environ.get("PATH_INFO", "") or "/",
            headers=headers,
        )
