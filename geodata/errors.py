"""Exception hierarchy shared by the download and geometry pipeline."""


class GeoDataError(Exception):
    """Base class for every error raised by geodata."""


class ValidationError(GeoDataError, ValueError):
    """Bad input parameters, rejected before any network call."""


class NetworkError(GeoDataError):
    """The vector or elevation service could not be reached.

    ``cause`` is one of ``"timeout"``, ``"rate_limited"`` or ``"server"``.
    """

    def __init__(self, message: str, cause: str = "server"):
        super().__init__(message)
        self.cause = cause


class FetchTimeoutError(NetworkError):
    """The wall-clock limit on a download expired."""

    def __init__(self, message: str = "Download timeout. Try reducing radius."):
        super().__init__(message, cause="timeout")


class ParseError(GeoDataError):
    """The service answered with a payload that is not usable JSON."""


class KernelError(GeoDataError):
    """A geometry operation (loft, offset, cap) could not produce a result."""


class ElevationError(GeoDataError):
    """Elevation download or decoding failed."""
