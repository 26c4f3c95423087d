from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from etagger._core._headers import IF_NONE_MATCH, Headers


@dataclass
class Request:
    method: str = "GET"
    path: str = "/"
    headers: Headers = field(default_factory=Headers)

    @property
    def if_none_match(self) -> Optional[str]:
        """The validator the client presented, or None when it presented none."""
        return self.headers.get(IF_NONE_MATCH)


@dataclass
class Response:
    """
    A response as recorded by a capturing sink.

    `chunks` keeps every body write separately and in order, so replaying the
    response produces the same sequence of writes the application made.
    """

    status_code: int = 200
    headers: Headers = field(default_factory=Headers)
    chunks: List[bytes] = field(default_factory=list)

    @property
    def content(self) -> bytes:
        return b"".join(self.chunks)
