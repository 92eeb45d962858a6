"""Exception types raised by the profile engine."""

from typing import Optional


class ProfileError(Exception):
    """Base class for every error raised while building a country profile."""
    pass


class AnalyticsRequestError(ProfileError):
    """Raised when a call to the analytics API fails or returns an error status."""
    def __init__(self, endpoint: str, message: str, original_error: Optional[Exception] = None):
        self.endpoint = endpoint
        self.message = message
        self.original_error = original_error
        super().__init__(f"{endpoint}: {message}")


class MalformedResponseError(AnalyticsRequestError):
    """Raised when the analytics API answers with an unexpected body."""
    pass


class DuplicateIdentifierError(ProfileError):
    """Raised when an identifier is requested by more than one query group."""
    def __init__(self, duplicates: dict):
        self.duplicates = duplicates
        listing = ", ".join(f"{ident} (groups {sorted(groups)})" for ident, groups in sorted(duplicates.items()))
        super().__init__(f"Identifiers requested by more than one query group: {listing}")


class ProfileBuildError(ProfileError):
    """Raised when a profile cannot be assembled. No partial profile is produced."""
    def __init__(self, scope: str, reporting_year: int, cause: Exception):
        self.scope = scope
        self.reporting_year = reporting_year
        self.cause = cause
        super().__init__(f"Failed to load profile for {scope} ({reporting_year}): {cause}")


class StaleBuildError(ProfileError):
    """Raised to the caller of a build that was superseded by a newer request."""
    pass


class ConfigValidationError(ProfileError):
    """Raised when profile or chart configuration is invalid."""
    pass


class CatalogValidationError(ConfigValidationError):
    """Raised when the policy catalog fails validation."""
    pass
