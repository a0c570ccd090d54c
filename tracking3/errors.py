"""tracking3 errors - typed failures raised by the client."""


class Tracking3Error(Exception):
    """Base class for client errors. Carries a stable numeric code."""

    def __init__(self, message: str, code: int = 0):
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(Tracking3Error, ValueError):
    """Raised when a Configuration is missing required values."""


class RequestTimeoutError(Tracking3Error, TimeoutError):
    """Raised when no response arrived within the configured timeout."""


class RequestConnectionError(Tracking3Error, ConnectionError):
    """Raised for any other transport failure (DNS, refused, TLS, reset...).

    ``code`` is the transport's native error code.
    """
