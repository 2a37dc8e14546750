"""Error taxonomy shared by resolution and validation stages."""
from __future__ import annotations


class GeoError(Exception):
    """Base class for all geolocation errors."""


class InputError(GeoError, ValueError):
    """Rejected input, raised before any I/O is attempted."""


class NotFoundError(GeoError):
    """A venue or city could not be located."""


class TransportError(GeoError):
    """The backend could not be reached or answered with a server error."""

    def __init__(self, message: str, *, status_code: int | None = None, timeout: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.timeout = timeout
