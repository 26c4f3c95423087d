from __future__ import annotations

from typing import (
    Any,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Tuple,
    Union,
)

IF_NONE_MATCH = "If-None-Match"
ETAG = "ETag"


class Headers(MutableMapping[str, str]):
    """
    Case-insensitive, multi-valued HTTP header collection.

    Fields are kept as an ordered list of (name, value) pairs, so headers can
    be replayed to a transport exactly as the application set them, including
    the interleaving of different fields. Lookups ignore case.

    Examples:
        >>> headers = Headers({"Content-Type": "text/plain"})
        >>> headers["content-type"]
        'text/plain'
        >>> headers.add("Set-Cookie", "a=1")
        >>> headers.add("Set-Cookie", "b=2")
        >>> headers.get_list("set-cookie")
        ['a=1', 'b=2']
        >>> list(headers.multi_items())
        [('Content-Type', 'text/plain'), ('Set-Cookie', 'a=1'), ('Set-Cookie', 'b=2')]
    """

    def __init__(self, headers: Optional[Mapping[str, Union[str, List[str]]]] = None) -> None:
        self._items: List[Tuple[str, str]] = []
        for key, value in (headers or {}).items():
            for item in [value] if isinstance(value, str) else value:
                self._items.append((key, item))

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "Headers":
        headers = cls()
        for key, value in pairs:
            headers.add(key, value)
        return headers

    def add(self, key: str, value: str) -> None:
        self._items.append((key, value))

    def get_list(self, key: str) -> Optional[List[str]]:
        lower = key.lower()
        values = [value for name, value in self._items if name.lower() == lower]
        return values or None

    def multi_items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._items[:])

    def __getitem__(self, key: str) -> str:
        values = self.get_list(key)
        if values is None:
            raise KeyError(key)
        return ", ".join(values)

    def __setitem__(self, key: str, value: str) -> None:
        # The new value takes the place of the first existing one.
        lower = key.lower()
        items: List[Tuple[str, str]] = []
        replaced = False
        for name, old_value in self._items:
            if name.lower() != lower:
                items.append((name, old_value))
            elif not replaced:
                items.append((key, value))
                replaced = True
        if not replaced:
            items.append((key, value))
        self._items = items

    def __delitem__(self, key: str) -> None:
        lower = key.lower()
        items = [(name, value) for name, value in self._items if name.lower() != lower]
        if len(items) == len(self._items):
            raise KeyError(key)
        self._items = items

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for name, _ in self._items:
            if name.lower() not in seen:
                seen.add(name.lower())
                yield name

    def __len__(self) -> int:
        return len({name.lower() for name, _ in self._items})

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"

    def _grouped(self) -> dict[str, List[str]]:
        grouped: dict[str, List[str]] = {}
        for name, value in self._items:
            grouped.setdefault(name.lower(), []).append(value)
        return grouped

    def __eq__(self, other_headers: Any) -> bool:
        if not isinstance(other_headers, Headers):
            return False
        return self._grouped() == other_headers._grouped()
