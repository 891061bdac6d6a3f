"""Error taxonomy shared by the proximity discovery core and its collaborators."""


class StorefinderError(RuntimeError):
    """Base class for every error raised by storefinder."""


class InvalidArgument(StorefinderError, ValueError):
    """Raised synchronously for malformed input; never retried."""


class InvalidCoordinate(InvalidArgument):
    """Raised when a latitude/longitude pair is out of range or not numeric."""


class LocationUnavailable(StorefinderError):
    """Raised when the caller's position cannot be determined.

    Callers should surface this with guidance (enable location permissions or
    retry) instead of retrying automatically.
    """


class GeocodeNotFound(StorefinderError):
    """Raised when a geocoder has no match for an address. Terminal for that input."""


class GeocodeServiceError(StorefinderError):
    """Raised when a geocoding provider fails. Transient; safe to retry with backoff."""


class CatalogError(StorefinderError):
    """Raised by catalog providers when the upstream store cannot be read."""
