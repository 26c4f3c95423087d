from __future__ import annotations

import abc

from etagger._core._headers import Headers
from etagger._core.models import Response
from etagger._exceptions import ResponseAlreadyCommittedError

__all__ = ("SyncResponseSink", "SyncCapturingResponse")


class SyncResponseSink(abc.ABC):
    """
    Everything a handler may do to a response.

    The interceptor hands handlers a SyncCapturingResponse implementing
    this interface, so a handler never knows whether its output reaches the
    client directly or is buffered first.
    """

    @abc.abstractmethod
    def set_status(self, status_code: int) -> None: ...

    @abc.abstractmethod
    def set_header(self, name: str, value: str) -> None: ...

    @abc.abstractmethod
    def add_header(self, name: str, value: str) -> None: ...

    @abc.abstractmethod
    def write(self, chunk: bytes) -> None: ...

    @abc.abstractmethod
    def finish(self) -> None: ...

    def send_response(self, response: Response) -> None:
        """
        Write a complete response: status, then headers, then body chunks in order.

        The sink is not finished afterwards, so the caller decides when to commit it.
        """
        self.set_status(response.status_code)
        for name, value in response.headers.multi_items():
            self.add_header(name, value)
        for chunk in response.chunks:
            self.write(chunk)


class SyncCapturingResponse(SyncResponseSink):
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

    def set_status(self, status_code: int) -> None:
        self._ensure_open()
        self._response.status_code = status_code

    def set_header(self, name: str, value: str) -> None:
        self._ensure_open()
        self._response.headers[name] = value

    def add_header(self, name: str, value: str) -> None:
        self._ensure_open()
        self._response.headers.add(name, value)

    def write(self, chunk: bytes) -> None:
        self._ensure_open()
        if chunk:
            self._response.chunks.append(bytes(chunk))

    def finish(self) -> None:
        self._finished = True

    def _ensure_open(self) -> None:
        if self._finished:
            raise ResponseAlreadyCommittedError("Response was already finished")
