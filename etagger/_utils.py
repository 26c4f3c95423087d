from __future__ import annotations

import typing as tp
from http import HTTPStatus

HEADERS_ENCODING = "iso-8859-1"


def decode_header_pairs(pairs: tp.Iterable[tuple[bytes, bytes]]) -> list[tuple[str, str]]:
    return [(key.decode(HEADERS_ENCODING), value.decode(HEADERS_ENCODING)) for key, value in pairs]


def encode_header_pairs(pairs: tp.Iterable[tuple[str, str]]) -> list[tuple[bytes, bytes]]:
    return [(key.encode(HEADERS_ENCODING), value.encode(HEADERS_ENCODING)) for key, value in pairs]


def status_line(status_code: int) -> str:
    """
    Build a WSGI status line for the given status code.

    Unknown codes get an empty reason phrase.

    Examples:
        >>> status_line(200)
        '200 OK'
        >>> status_line(304)
        '304 Not Modified'
        >>> status_line(599)
        '599 '
    """
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        phrase = ""
    return f"{status_code} {phrase}"


def parse_status_line(status: str) -> int:
    """
    Extract the status code from a WSGI status line such as "200 OK".
    """
    code, _, _ = status.partition(" ")
    return int(code)
