__all__ = (
    "EtaggerError",
    "UnsupportedAlgorithmError",
    "ResponseProtocolError",
    "ResponseAlreadyCommittedError",
)


class EtaggerError(Exception): ...


class UnsupportedAlgorithmError(EtaggerError, ValueError): ...


class ResponseProtocolError(EtaggerError): ...


class ResponseAlreadyCommittedError(EtaggerError): ...
