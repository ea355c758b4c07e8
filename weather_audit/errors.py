"""
Error taxonomy shared by the lookup pipeline and the HTTP layer.

Every error carries its HTTP status and a short, caller-safe message.
Upstream response bodies never end up in a message.
"""
from http import HTTPStatus


class WeatherServiceError(Exception):
    """Base class for classified errors surfaced to API callers."""
    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def error(self) -> str:
        """Reason phrase for the status, e.g. 'Not Found'."""
        return HTTPStatus(self.status_code).phrase


class BadRequest(WeatherServiceError):
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Failed to fetch weather data"


class Unauthenticated(WeatherServiceError):
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Authentication required"


class Forbidden(WeatherServiceError):
    status_code = HTTPStatus.FORBIDDEN
    default_message = "Insufficient permissions"


class NotFound(WeatherServiceError):
    status_code = HTTPStatus.NOT_FOUND
    default_message = "Location not found"


class RateLimited(WeatherServiceError):
    status_code = HTTPStatus.TOO_MANY_REQUESTS
    default_message = "Weather provider rate limit exceeded, try again later"


class InternalError(WeatherServiceError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


class ServiceUnavailable(WeatherServiceError):
    status_code = HTTPStatus.SERVICE_UNAVAILABLE
    default_message = "Weather provider is currently unavailable"


def classify_status(status: int) -> WeatherServiceError:
    """
    Map a provider HTTP status to a core error.

    Args:
        status: HTTP status code returned by the provider

    Returns:
        The error instance to raise
    """
    if status in (401, 403):
        return InternalError("Weather provider rejected the configured credentials")
    if status == 404:
        return NotFound()
    if status == 429:
        return RateLimited()
    if status >= 500:
        return ServiceUnavailable()
    return BadRequest()
