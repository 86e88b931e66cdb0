"""Exception hierarchy for LogoGen.

Every exception that can reach a client carries the HTTP status code it is
reported with.  The API layer turns any :class:`LogogenError` into the
``{"success": false, "error": <message>}`` envelope.
"""

from __future__ import annotations


class LogogenError(Exception):
    """Base class for all LogoGen errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RequestValidationError(LogogenError):
    """The client sent an unusable generate request."""

    status_code = 400


class ImageGenerationError(LogogenError):
    """The image generation API call failed."""


class InvalidCredentialError(ImageGenerationError):
    """The image generation API rejected the credential (HTTP 401)."""


class RateLimitError(ImageGenerationError):
    """The image generation API is rate limiting us (HTTP 429)."""

    status_code = 429


class ForbiddenError(ImageGenerationError):
    """The credential lacks permission for the endpoint or model (HTTP 403)."""


class ImageProcessingError(LogogenError):
    """Downloading, resizing, or storing the generated image failed."""
