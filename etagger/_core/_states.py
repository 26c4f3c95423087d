from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import (
    TYPE_CHECKING,
    Any,
    Optional,
    Union,
)

from etagger._core._digest import DEFAULT_ALGORITHM, EtagGenerator, HashEtagGenerator
from etagger._core._headers import ETAG, Headers

if TYPE_CHECKING:
    from etagger import Request, Response


NOT_MODIFIED = 304
logger = logging.getLogger("etagger.core.states")


@dataclass
class EtagOptions:
    """
    Configuration for entity-tag generation.

    Attributes:
    ----------
    algorithm : str
        Name of the hashlib algorithm used to digest response bodies.

        Any fixed-length algorithm works. Digest length only changes the size
        of the ETag header, never whether validation is correct.

        Default: "sha512"

        Examples:
        --------
        >>> options = EtagOptions()
        >>> options.algorithm
        'sha512'

        >>> # Shorter validators
        >>> options = EtagOptions(algorithm="sha256")
    """

    algorithm: str = DEFAULT_ALGORITHM
    """hashlib algorithm name used by the default generator."""

    def make_generator(self) -> EtagGenerator:
        return HashEtagGenerator(self.algorithm)


@dataclass
class State(ABC):
    generator: EtagGenerator

    @abstractmethod
    def next(self, *args: Any, **kwargs: Any) -> Union["State", None]:
        raise NotImplementedError("Subclasses must implement this method")


@dataclass
class IdleServer(State):
    """
    The starting state: a request has arrived and nothing has been produced yet.
    """

    def next(self, request: Request) -> AwaitingResponse:
        """
        Read the validator the client presented.

        A missing If-None-Match header is not an error. It only means the
        client holds no copy, so the request can never end in NotModified.

        Parameters:
        ----------
        request : Request
            The incoming request.

        Returns:
        -------
        AwaitingResponse
            The state that waits for the downstream handler to finish.
        """
        if_none_match = request.if_none_match
        logger.debug("Presented validator: %s", if_none_match if if_none_match is not None else "none")
        return AwaitingResponse(generator=self.generator, if_none_match=if_none_match)


@dataclass
class AwaitingResponse(State):
    """
    The downstream handler is running against a capturing response.

    Attributes:
    ----------
    if_none_match : Optional[str]
        The validator read from the request, or None.
    """

    if_none_match: Optional[str]

    def next(self, response: Response) -> Union[NotModified, EmitWithEtag]:
        """
        Decide between suppressing and emitting the captured response.

        Must only be called once the handler has returned, so `response`
        holds the complete body. The computed validator is compared to the
        presented one with plain string equality, quotes included. No
        normalization happens, so a weak validator (W/"...") never matches.

        Parameters:
        ----------
        response : Response
            The complete captured response.

        Returns:
        -------
        NotModified
            When the validators are equal.
        EmitWithEtag
            Otherwise, including when no validator was presented.

        Examples:
        --------
        >>> state = AwaitingResponse(generator=HashEtagGenerator("sha256"), if_none_match=None)
        >>> next_state = state.next(Response(chunks=[b"hello"]))
        >>> isinstance(next_state, EmitWithEtag)
        True
        >>> next_state.etag
        '"2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"'
        """
        etag = self.generator.generate(response.content)

        if etag == self.if_none_match:
            logger.debug("Validator matches, suppressing %d buffered bytes", len(response.content))
            return NotModified(generator=self.generator, etag=etag)

        logger.debug("Validator does not match, emitting %d bytes with ETag", len(response.content))
        headers = Headers.from_pairs(response.headers.multi_items())
        headers[ETAG] = etag
        return EmitWithEtag(
            generator=self.generator,
            etag=etag,
            response=replace(response, headers=headers, chunks=response.chunks[:]),
        )


@dataclass
class NotModified(State):
    """
    Terminal state: answer 304 and discard the captured body and headers.
    """

    etag: str

    def next(self) -> None:
        return None


@dataclass
class EmitWithEtag(State):
    """
    Terminal state: send the captured response with the computed ETag added.

    `response` is a copy of the captured response whose ETag header holds the
    computed validator, replacing any ETag the handler set itself.
    """

    etag: str
    response: Response

    def next(self) -> None:
        return None


AnyState = Union[IdleServer, AwaitingResponse, NotModified, EmitWithEtag]
