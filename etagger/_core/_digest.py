from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod

from etagger._exceptions import UnsupportedAlgorithmError

DEFAULT_ALGORITHM = "sha512"


class EtagGenerator(ABC):
    """
    Turns a complete response body into an entity-tag value.

    Subclass this to change how validators look on the wire. Implementations
    must be deterministic and must not keep state between calls, because one
    generator is shared by every request an interceptor handles.
    """

    @abstractmethod
    def generate(self, body: bytes) -> str: ...


class HashEtagGenerator(EtagGenerator):
    """
    Strong validator built from a hashlib digest of the body.

    The value is the lowercase hex digest wrapped in double quotes, the
    quoted-string form entity tags use in headers.

    Args:
        algorithm: Any fixed-length algorithm `hashlib.new` understands.

    Raises:
        UnsupportedAlgorithmError: If the algorithm is unknown, or produces
            variable-length digests (shake_128, shake_256).
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM) -> None:
        try:
            hashlib.new(algorithm).hexdigest()
        except ValueError as exc:
            raise UnsupportedAlgorithmError(f"Unknown digest algorithm: {algorithm!r}") from exc
        except TypeError as exc:
            raise UnsupportedAlgorithmError(
                f"Digest algorithm {algorithm!r} has no fixed length and cannot be used for entity tags"
            ) from exc
        self.algorithm = algorithm

    def generate(self, body: bytes) -> str:
        return quote_etag(hashlib.new(self.algorithm, body).hexdigest())

    def __repr__(self) -> str:
        return f"HashEtagGenerator(algorithm={self.algorithm!r})"


def quote_etag(opaque_tag: str) -> str:
    return f'"{opaque_tag}"'


def generate_etag(body: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """
    Compute the entity tag for a response body.

    Examples:
        >>> generate_etag(b"hello", algorithm="sha256")
        '"2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"'
    """
    return HashEtagGenerator(algorithm).generate(body)
