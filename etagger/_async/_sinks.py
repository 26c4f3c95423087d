from __future__ import annotations

import abc

from etagger._core._headers import Headers
from etagger._core.models import Response
from etagger._exceptions import ResponseAlreadyCommittedError

__all__ = ("AsyncResponseSink", "AsyncCapturingResponse")


class AsyncResponseSink(abc.ABC):
    """
    Everything a handler may do to a response.

    The interceptor hands handlers an AsyncCapturingResponse implementing
    this interface, so a handler never knows whether its output reaches the
    client directly or is buffered first.
    """

    @abc.abstractmethod
    async def set_status(self, status_code: int) -> None: ...

    @abc.abstractmethod
    async def set_header(self, name: str, value: str) -> None: ...

    @abc.abstractmethod
    async def add_header(self, name: str, value: str) -> None: ...

    @abc.abstractmethod
    async def write(self, chunk: bytes) -> None: ...

    @abc.abstractmethod
    async def finish(self) -> None: ...

    async def send_response(self, response: Response) -> None:
        """
        Write a complete response: status, then headers, then body chunks in order.

        The sink is not finished afterwards, so the caller decides when to commit it.
        """
        await self.set_status(response.status_code)
        for name, value in response.headers.multi_items():
            await self.add_header(name, value)
        for chunk in response.chunks:
            await self.write(chunk)


class AsyncCapturingResponse(AsyncResponseSink):
    """
    A sink that records status, headers and body writes in memory.

    One instance belongs to exactly one request and is dropped once the
    interceptor has made its decision.
    """

    def __init__(self) -> None:
        self._response = Response()
        self._finished = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> Headers:
        return self._response.headers

    @property
    def content(self) -> bytes:
        return self._response.content

    @property
    def response(self) -> Response:
        return self._response

    async def set_status(self, status_code: int) -> None:
        self._ensure_open()
        self._response.status_code = status_code

    async def set_header(self, name: str, value: str) -> None:
        self._ensure_open()
        self._response.headers[name] = value

    async def add_header(self, name: str, value: str) -> None:
        self._ensure_open()
        self._response.headers.add(name, value)

    async def write(self, chunk: bytes) -> None:
        self._ensure_open()
        if chunk:
            self._response.chunks.append(bytes(chunk))

    async def finish(self) -> None:
        self._finished = True

    def _ensure_open(self) -> None:
        if self._finished:
            raise ResponseAlreadyCommittedError("Response was already finished")
