"""
Custom exceptions for CoverCast.

Provides domain-specific exceptions with clear error messages and
support for structured error handling.
"""

from typing import Optional, Dict, Any


class CoverCastError(Exception):
    """Base exception for all CoverCast errors."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for callers that serialize errors."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# Database Errors
# ============================================================================

class DatabaseError(CoverCastError):
    """Database operation failed."""
    pass


class RecordNotFoundError(DatabaseError):
    """Database record not found."""
    pass


class RestaurantNotFoundError(RecordNotFoundError):
    """Restaurant id is unknown to the metadata source."""
    pass


class ConcurrentUpdateError(DatabaseError):
    """A shared pattern changed underneath an optimistic read-modify-write."""
    pass


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(CoverCastError):
    """Data validation failed."""
    pass


class InvalidDateRangeError(ValidationError):
    """Start date is not strictly before end date."""
    pass


# ============================================================================
# Data Availability
# ============================================================================

class InsufficientDataError(CoverCastError):
    """Sample size is below a stage's minimum. Always handled by skipping the stage."""
    
    def __init__(self, message: str, required: int = 0, actual: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.required = required
        self.actual = actual


class MissingLocationError(CoverCastError):
    """Restaurant has no coordinates, so location-based context is unavailable."""
    pass


# ============================================================================
# External Service Errors
# ============================================================================

class ExternalServiceError(CoverCastError):
    """External service integration failed."""
    pass


class ProviderUnavailableError(ExternalServiceError):
    """A context provider could not be reached or returned no usable data."""
    pass


class WeatherProviderError(ProviderUnavailableError):
    """Weather API error."""
    pass


class EventsProviderError(ProviderUnavailableError):
    """Events API error."""
    pass


class SportsProviderError(ProviderUnavailableError):
    """Sports schedule API error."""
    pass


class TransientProviderError(ExternalServiceError):
    """Retryable provider failure (5xx, connection reset, timeout)."""
    pass


# ============================================================================
# Rate Limiting Errors
# ============================================================================

class RateLimitError(CoverCastError):
    """Rate limit exceeded."""
    
    def __init__(self, message: str, retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


