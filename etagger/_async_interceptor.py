from __future__ import annotations

import logging
from typing import Awaitable, Callable

from typing_extensions import assert_never

from etagger._async._sinks import AsyncCapturingResponse, AsyncResponseSink
from etagger._core._digest import EtagGenerator
from etagger._core._states import (
    NOT_MODIFIED,
    AnyState,
    AwaitingResponse,
    EmitWithEtag,
    EtagOptions,
    IdleServer,
    NotModified,
)
from etagger._core.models import Request

logger = logging.getLogger("etagger.interceptor")

AsyncHandler = Callable[[Request, AsyncResponseSink], Awaitable[None]]


class AsyncEtagInterceptor:
    """
    Adds content-derived ETags to responses and answers matching
    conditional requests with 304 Not Modified.

    This class is independent of any specific web framework and works only
    with internal models. The handler writes its response into a capturing
    sink; nothing reaches the real sink until the whole body is buffered,
    digested and compared against the request's If-None-Match value.

    The interceptor keeps no per-request state, so one instance can serve
    any number of concurrent requests.

    Args:
        options: Entity-tag options. Defaults to EtagOptions().
        generator: Generator used to build validators. Takes precedence
            over `options.algorithm` when given.
    """

    def __init__(
        self,
        options: EtagOptions | None = None,
        generator: EtagGenerator | None = None,
    ) -> None:
        self.options = options if options is not None else EtagOptions()
        self.generator = generator if generator is not None else self.options.make_generator()

    async def intercept(
        self,
        request: Request,
        response: AsyncResponseSink,
        handler: AsyncHandler,
    ) -> None:
        """
        Run `handler` for `request` and write the outcome to `response`.

        Exceptions raised by the handler propagate unchanged, and in that
        case nothing is written to `response`.
        """
        logger.debug("Intercepting request: method=%s path=%s", request.method, request.path)
        state: AnyState = IdleServer(generator=self.generator)

        while state:
            logger.debug(f"Handling state: {state.__class__.__name__}")
            if isinstance(state, IdleServer):
                state = state.next(request)
            elif isinstance(state, AwaitingResponse):
                state = await self._handle_awaiting_response(state, request, handler)
            elif isinstance(state, NotModified):
                await self._handle_not_modified(response)
                return
            elif isinstance(state, EmitWithEtag):
                await self._handle_emit(state, response)
                return
            else:
                assert_never(state)

        raise RuntimeError("Unreachable")

    async def _handle_awaiting_response(
        self,
        state: AwaitingResponse,
        request: Request,
        handler: AsyncHandler,
    ) -> AnyState:
        capture = AsyncCapturingResponse()
        await handler(request, capture)
        await capture.finish()
        logger.debug(
            "Handler finished: status=%d body_bytes=%d chunks=%d",
            capture.status_code,
            len(capture.content),
            len(capture.response.chunks),
        )
        return state.next(capture.response)

    async def _handle_not_modified(self, response: AsyncResponseSink) -> None:
        await response.set_status(NOT_MODIFIED)
        await response.finish()

    async def _handle_emit(self, state: EmitWithEtag, response: AsyncResponseSink) -> None:
        await response.send_response(state.response)
        await response.finish()
