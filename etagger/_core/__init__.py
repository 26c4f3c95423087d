from etagger._core._digest import (
    EtagGenerator as EtagGenerator,
    HashEtagGenerator as HashEtagGenerator,
    generate_etag as generate_etag,
)
from etagger._core._headers import Headers as Headers
from etagger._core._states import (
    AnyState as AnyState,
    AwaitingResponse as AwaitingResponse,
    EmitWithEtag as EmitWithEtag,
    EtagOptions as EtagOptions,
    IdleServer as IdleServer,
    NotModified as NotModified,
    State as State,
)
from etagger._core.models import Request as Request, Response as Response
