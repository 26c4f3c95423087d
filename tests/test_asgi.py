from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from inline_snapshot import snapshot
from starlette.responses import FileResponse

from etagger import EtagOptions, ResponseProtocolError, generate_etag
from etagger.asgi import ASGIEtagMiddleware, _ASGIScope

HELLO_ETAG = generate_etag(b"hello")


async def hello_asgi_app(scope: _ASGIScope, receive: Any, send: Any) -> None:
    """ASGI app that answers 200 with "hello" and a couple of headers."""
    if scope["type"] != "http":
        return

    await send(
        {
            "type": "http.response.start",
            "status": 200,
            "headers": [
                (b"content-type", b"text/plain"),
                (b"content-length", b"5"),
                (b"set-cookie", b"a=1"),
                (b"set-cookie", b"b=2"),
            ],
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": b"hello",
            "more_body": False,
        }
    )


async def streaming_asgi_app(scope: _ASGIScope, receive: Any, send: Any) -> None:
    """ASGI app that streams its body in several chunks."""
    await send(
        {
            "type": "http.response.start",
            "status": 201,
            "headers": [(b"content-type", b"text/plain")],
        }
    )

    for i in range(3):
        await send(
            {
                "type": "http.response.body",
                "body": f"Chunk {i}\n".encode(),
                "more_body": True,
            }
        )

    await send(
        {
            "type": "http.response.body",
            "body": b"",
            "more_body": False,
        }
    )


async def failing_asgi_app(scope: _ASGIScope, receive: Any, send: Any) -> None:
    await send({"type": "http.response.start", "status": 200, "headers": []})
    await send({"type": "http.response.body", "body": b"partial", "more_body": True})
    raise RuntimeError("application failed")


def create_asgi_scope(
    method: str = "GET",
    path: str = "/",
    headers: list[tuple[bytes, bytes]] | None = None,
) -> _ASGIScope:
    """Create a basic ASGI HTTP scope dictionary."""
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "https",
        "path": path,
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "server": ("testserver", 443),
        "client": ("127.0.0.1", 8000),
        "state": {},
        "extensions": {},
    }


async def simple_receive() -> dict[str, Any]:
    return {"type": "http.disconnect"}


class ResponseCollector:
    """Collect response messages from ASGI send calls."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def send(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    @property
    def status(self) -> int:
        starts = [m for m in self.messages if m["type"] == "http.response.start"]
        assert len(starts) == 1
        return starts[0]["status"]

    @property
    def headers(self) -> list[tuple[bytes, bytes]]:
        return next(m for m in self.messages if m["type"] == "http.response.start")["headers"]

    def get_body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")

    def get_header(self, name: bytes) -> bytes | None:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None


@pytest.mark.anyio
async def test_first_request_gets_etag() -> None:
    middleware = ASGIEtagMiddleware(app=hello_asgi_app)
    collector = ResponseCollector()

    await middleware(create_asgi_scope(), simple_receive, collector.send)

    assert collector.status == 200
    assert collector.get_body() == b"hello"
    assert collector.headers == [
        (b"content-type", b"text/plain"),
        (b"content-length", b"5"),
        (b"set-cookie", b"a=1"),
        (b"set-cookie", b"b=2"),
        (b"ETag", HELLO_ETAG.encode()),
    ]
    assert collector.messages[-1] == {"type": "http.response.body", "body": b"", "more_body": False}


@pytest.mark.anyio
async def test_matching_if_none_match_gets_304() -> None:
    middleware = ASGIEtagMiddleware(app=hello_asgi_app)
    collector = ResponseCollector()
    scope = create_asgi_scope(headers=[(b"if-none-match", HELLO_ETAG.encode())])

    await middleware(scope, simple_receive, collector.send)

    assert collector.messages == [
        {"type": "http.response.start", "status": 304, "headers": []},
        {"type": "http.response.body", "body": b"", "more_body": False},
    ]


@pytest.mark.anyio
async def test_stale_if_none_match_gets_full_response() -> None:
    middleware = ASGIEtagMiddleware(app=hello_asgi_app)
    collector = ResponseCollector()
    scope = create_asgi_scope(headers=[(b"if-none-match", b'"stale"')])

    await middleware(scope, simple_receive, collector.send)

    assert collector.status == 200
    assert collector.get_body() == b"hello"
    assert collector.get_header(b"etag") == HELLO_ETAG.encode()


@pytest.mark.anyio
async def test_weak_validator_is_not_normalized() -> None:
    middleware = ASGIEtagMiddleware(app=hello_asgi_app)
    collector = ResponseCollector()
    scope = create_asgi_scope(headers=[(b"if-none-match", b"W/" + HELLO_ETAG.encode())])

    await middleware(scope, simple_receive, collector.send)

    assert collector.status == 200


@pytest.mark.anyio
async def test_streaming_response_is_buffered_and_replayed_in_order() -> None:
    middleware = ASGIEtagMiddleware(app=streaming_asgi_app)
    collector = ResponseCollector()

    await middleware(create_asgi_scope(), simple_receive, collector.send)

    body = b"Chunk 0\nChunk 1\nChunk 2\n"
    assert collector.status == 201
    assert collector.get_body() == body
    assert collector.get_header(b"etag") == generate_etag(body).encode()
    assert [m["body"] for m in collector.messages if m["type"] == "http.response.body"] == [
        b"Chunk 0\n",
        b"Chunk 1\n",
        b"Chunk 2\n",
        b"",
    ]


@pytest.mark.anyio
async def test_application_error_propagates_and_nothing_is_sent(caplog: pytest.LogCaptureFixture) -> None:
    middleware = ASGIEtagMiddleware(app=failing_asgi_app)
    collector = ResponseCollector()

    with caplog.at_level("ERROR", logger="etagger"):
        with pytest.raises(RuntimeError, match="application failed"):
            await middleware(create_asgi_scope(), simple_receive, collector.send)

    assert collector.messages == []
    assert caplog.messages == snapshot(["Error processing request: method=GET path=/ error=application failed"])


@pytest.mark.anyio
async def test_body_before_start_is_a_protocol_error() -> None:
    async def app(scope: _ASGIScope, receive: Any, send: Any) -> None:
        await send({"type": "http.response.body", "body": b"oops", "more_body": False})

    collector = ResponseCollector()

    with pytest.raises(ResponseProtocolError):
        await ASGIEtagMiddleware(app=app)(create_asgi_scope(), simple_receive, collector.send)

    assert collector.messages == []


@pytest.mark.anyio
async def test_application_without_response_is_a_protocol_error() -> None:
    async def app(scope: _ASGIScope, receive: Any, send: Any) -> None:
        return None

    with pytest.raises(ResponseProtocolError):
        await ASGIEtagMiddleware(app=app)(create_asgi_scope(), simple_receive, ResponseCollector().send)


@pytest.mark.anyio
async def test_file_response_under_pathsend_is_buffered(tmp_path: Path) -> None:
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello")
    scope = create_asgi_scope()
    scope["extensions"] = {"http.response.pathsend": {}}
    collector = ResponseCollector()

    await ASGIEtagMiddleware(app=FileResponse(path))(scope, simple_receive, collector.send)

    assert collector.status == 200
    assert collector.get_body() == b"hello"
    assert collector.get_header(b"content-length") == b"5"
    assert [value for key, value in collector.headers if key.lower() == b"etag"] == [HELLO_ETAG.encode()]
    assert all(m["type"] != "http.response.pathsend" for m in collector.messages)
    assert scope["extensions"] == {"http.response.pathsend": {}}


@pytest.mark.anyio
async def test_unbufferable_response_message_is_a_protocol_error() -> None:
    async def app(scope: _ASGIScope, receive: Any, send: Any) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.pathsend", "path": "/etc/hostname"})

    collector = ResponseCollector()

    with pytest.raises(ResponseProtocolError):
        await ASGIEtagMiddleware(app=app)(create_asgi_scope(), simple_receive, collector.send)

    assert collector.messages == []


@pytest.mark.anyio
async def test_unbufferable_extensions_are_hidden_from_the_application() -> None:
    seen: list[dict[str, Any]] = []

    async def app(scope: _ASGIScope, receive: Any, send: Any) -> None:
        seen.append(scope["extensions"])
        await hello_asgi_app(scope, receive, send)

    scope = create_asgi_scope()
    scope["extensions"] = {
        "http.response.pathsend": {},
        "http.response.zerocopysend": {},
        "tls": {"server_cert": None},
    }

    await ASGIEtagMiddleware(app=app)(scope, simple_receive, ResponseCollector().send)

    assert seen == [{"tls": {"server_cert": None}}]

@pytest.mark.anyio
async def test_non_http_scope_passes_through() -> None:
    seen: list[str] = []

    async def app(scope: Any, receive: Any, send: Any) -> None:
        seen.append(scope["type"])
        await send({"type": "lifespan.startup.complete"})

    collector = ResponseCollector()
    await ASGIEtagMiddleware(app=app)({"type": "lifespan"}, simple_receive, collector.send)

    assert seen == ["lifespan"]
    assert collector.messages == [{"type": "lifespan.startup.complete"}]


@pytest.mark.anyio
async def test_custom_algorithm() -> None:
    middleware = ASGIEtagMiddleware(app=hello_asgi_app, options=EtagOptions(algorithm="sha256"))
    collector = ResponseCollector()

    await middleware(create_asgi_scope(), simple_receive, collector.send)

    assert collector.get_header(b"etag") == b'"2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"'


@pytest.mark.anyio
async def test_logs(caplog: pytest.LogCaptureFixture) -> None:
    middleware = ASGIEtagMiddleware(app=hello_asgi_app, options=EtagOptions(algorithm="md5"))
    scope = create_asgi_scope(headers=[(b"if-none-match", b'"5d41402abc4b2a76b9719d911017c592"')])

    with caplog.at_level("DEBUG", logger="etagger.asgi"):
        await middleware(create_asgi_scope(), simple_receive, ResponseCollector().send)
        await middleware(scope, simple_receive, ResponseCollector().send)

    assert caplog.messages == snapshot(
        [
            "Incoming HTTP request: method=GET path=/",
            "Application response started: status=200",
            "Captured response body chunk: size=5 bytes",
            "Response headers sent: status=200 headers_count=4",
            "Sent response chunk: size=5 bytes",
            "Response fully sent: status=200 total_bytes=5 chunks=1",
            "Request processed: method=GET path=/",
            "Incoming HTTP request: method=GET path=/",
            "Application response started: status=200",
            "Captured response body chunk: size=5 bytes",
            "Response headers sent: status=304 headers_count=0",
            "Response fully sent: status=304 total_bytes=0 chunks=0",
            "Request processed: method=GET path=/",
        ]
    )


def create_fastapi_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(ASGIEtagMiddleware)

    @app.get("/hello", response_class=PlainTextResponse)
    async def hello() -> str:
        return "hello"

    @app.get("/items/{item_id}")
    async def item(item_id: int) -> dict[str, int]:
        return {"id": item_id}

    return app


@pytest.mark.anyio
async def test_fastapi_conditional_requests() -> None:
    transport = httpx.ASGITransport(app=create_fastapi_app())

    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        first = await client.get("/hello")
        second = await client.get("/hello", headers={"If-None-Match": first.headers["ETag"]})
        third = await client.get("/hello", headers={"If-None-Match": '"stale"'})

    assert first.status_code == 200
    assert first.text == "hello"
    assert first.headers["ETag"] == HELLO_ETAG
    assert first.headers["content-type"] == "text/plain; charset=utf-8"

    assert second.status_code == 304
    assert second.content == b""
    assert "etag" not in second.headers
    assert "content-type" not in second.headers

    assert third.status_code == 200
    assert third.text == "hello"
    assert third.headers["ETag"] == HELLO_ETAG


@pytest.mark.anyio
async def test_fastapi_different_resources_get_different_etags() -> None:
    transport = httpx.ASGITransport(app=create_fastapi_app())

    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        one = await client.get("/items/1")
        two = await client.get("/items/2")
        cross = await client.get("/items/2", headers={"If-None-Match": one.headers["ETag"]})

    assert one.headers["ETag"] == generate_etag(b'{"id":1}')
    assert two.headers["ETag"] == generate_etag(b'{"id":2}')
    assert cross.status_code == 200
    assert cross.json() == {"id": 2}
