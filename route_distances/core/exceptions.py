"""
Exceptions raised by the distance caching and completion layers.

Views translate these into HTTP status codes; services raise them where the
failure is detected and recover locally where the failure is expected
(conflicts, missing coordinates, per-pair provider errors).
"""


class DistanceServiceError(Exception):
    """Base class for all distance service errors."""


class ProviderNotConfigured(DistanceServiceError):
    """The routing provider has no credentials configured."""

    def __init__(self, message="Google Maps API key is not configured"):
        super().__init__(message)


class ProviderError(DistanceServiceError):
    """Transport, authentication or quota failure reported by the provider."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class ConflictError(DistanceServiceError):
    """A Distance already exists for the (source, destination) pair."""

    def __init__(self, source_id, destination_id):
        super().__init__(
            f"Distance for source {source_id} and destination {destination_id} already exists"
        )
        self.source_id = source_id
        self.destination_id = destination_id


class UngeocodableDestination(DistanceServiceError):
    """Geocoding failed for a destination requested as a single pair."""

    def __init__(self, destination):
        super().__init__(
            f"Could not geocode destination \"{destination.name}\". "
            "Please add coordinates manually."
        )
        self.destination = destination


class ScopeNotFound(DistanceServiceError):
    """A scope references a Source or Destination that does not exist."""


class DuplicatePincode(DistanceServiceError):
    """A destination with the same pincode is already registered."""

    def __init__(self, existing):
        super().__init__(
            f"A destination with pincode \"{existing.pincode}\" already exists: \"{existing.name}\""
        )
        self.existing = existing


class NothingToExport(DistanceServiceError):
    """The export filters select no sources or no destinations."""


class ExportTooLarge(DistanceServiceError):
    """The export matrix exceeds the configured cell limit."""
