from etagger._core._digest import EtagGenerator, HashEtagGenerator, generate_etag
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
from etagger._core.models import (
    Request as Request,
    Response as Response,
)
from etagger._async._sinks import AsyncCapturingResponse, AsyncResponseSink
from etagger._sync._sinks import SyncCapturingResponse, SyncResponseSink
from etagger._async_interceptor import AsyncEtagInterceptor as AsyncEtagInterceptor
from etagger._sync_interceptor import SyncEtagInterceptor as SyncEtagInterceptor
from etagger._exceptions import (
    EtaggerError,
    ResponseAlreadyCommittedError,
    ResponseProtocolError,
    UnsupportedAlgorithmError,
)

__version__ = "0.1.0"

__all__ = (
    ## States
    "AnyState",
    "IdleServer",
    "AwaitingResponse",
    "NotModified",
    "EmitWithEtag",
    "State",
    "EtagOptions",
    ## Models
    "Request",
    "Response",
    ## Headers
    "Headers",
    ## Validators
    "EtagGenerator",
    "HashEtagGenerator",
    "generate_etag",
    ## Sinks
    "AsyncResponseSink",
    "SyncResponseSink",
    "AsyncCapturingResponse",
    "SyncCapturingResponse",
    # Interceptors
    "AsyncEtagInterceptor",
    "SyncEtagInterceptor",
    # Errors
    "EtaggerError",
    "UnsupportedAlgorithmError",
    "ResponseProtocolError",
    "ResponseAlreadyCommittedError",
)
