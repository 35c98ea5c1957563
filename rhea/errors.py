"""Exception taxonomy for rhea."""


class RheaError(Exception):
    """Raised for failures that end the session with a non-zero exit status."""


class ConfigError(RheaError):
    """Raised for invalid configuration (bad config file, missing model, etc.)."""


class EngineError(RheaError):
    """Raised when a request/response cycle with the inference engine fails."""


class EngineDispatchError(EngineError):
    """The engine's ingress queue is closed or refused the request."""


class EngineReplyError(EngineError):
    """The reply channel closed early or the engine reported a failure."""


class MalformedReplyError(EngineError):
    """A completed reply carried no message content."""
