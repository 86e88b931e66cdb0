"""Image generation API client.

Talks to an OpenAI-images-style endpoint::

    POST {base_url}/images/generations
    {"model": ..., "prompt": ..., "n": 1, "response_format": "url"}
    -> {"data": [{"url": "https://..."}]}

Upstream failures are mapped onto distinct exception types so the client
sees a useful message:

========  =============================  ===================================
Upstream  Exception                      Message
========  =============================  ===================================
401       InvalidCredentialError         invalid API key
429       RateLimitError                 retry later
403       ForbiddenError                 check API permissions
other     ImageGenerationError           upstream detail appended
========  =============================  ===================================

Nothing is retried here.  ``GENERATION_TIMEOUT`` bounds the whole call,
including reading the response body.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from logogen.core.config import ApiEndpointConfig
from logogen.core.errors import (
    ForbiddenError,
    ImageGenerationError,
    InvalidCredentialError,
    RateLimitError,
)
from logogen.core.models import ImageKind

logger = logging.getLogger(__name__)

GENERATION_TIMEOUT = 60.0

INVALID_CREDENTIAL_MESSAGE = "Invalid API key. Please check your API_KEY configuration."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
FORBIDDEN_MESSAGE = "Access forbidden. Please check your API permissions."


def build_final_prompt(prompt: str, kind: ImageKind) -> str:
    """Wrap a (possibly enhanced) prompt in the kind-specific style."""
    if kind == ImageKind.LOGO:
        return (
            f"Professional logo design: {prompt}. "
            "Clean, modern, suitable for branding, high quality, vector-style"
        )
    return (
        f"Simple icon design: {prompt}. "
        "Minimalist, clear, suitable for favicon or app icon, clean lines"
    )


def _upstream_detail(response: httpx.Response) -> str:
    """Extract ``error.message`` from an upstream error body, if any."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return f"Request failed with status code {response.status_code}"


class ImageGenerationClient:
    """Requests a single image and returns its remote URL."""

    def __init__(self, config: ApiEndpointConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    @property
    def model_name(self) -> str:
        return self._config.model_name

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def generate(self, final_prompt: str, kind: ImageKind) -> str:
        """Generate one image for *final_prompt*.

        Args:
            final_prompt: Fully styled prompt (see :func:`build_final_prompt`).
            kind: Artifact kind, used for logging only.

        Returns:
            URL of the generated image.

        Raises:
            InvalidCredentialError: Upstream answered 401.
            RateLimitError: Upstream answered 429.
            ForbiddenError: Upstream answered 403.
            ImageGenerationError: Any other failure, including transport
                errors and responses without an image URL.
        """
        url = f"{self._config.base_url}/images/generations"
        payload = {
            "model": self._config.model_name,
            "prompt": final_prompt,
            "n": 1,
            "response_format": "url",
        }
        logger.info("Generating %s with model %s", kind.value, self._config.model_name)

        try:
            response = await asyncio.wait_for(
                self._client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._config.api_key}"},
                    timeout=GENERATION_TIMEOUT,
                ),
                GENERATION_TIMEOUT,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Image generation request timed out after %gs", GENERATION_TIMEOUT)
            raise ImageGenerationError(
                f"Failed to generate image: timed out after {GENERATION_TIMEOUT:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Image generation request failed: %s", exc)
            raise ImageGenerationError(f"Failed to generate image: {exc}") from exc

        if response.is_error:
            self._raise_for_status(response)

        try:
            image_url = response.json()["data"][0]["url"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("Invalid image generation response: %s", response.text[:500])
            raise ImageGenerationError(
                "Failed to generate image: Invalid response format from image generation API"
            ) from exc
        if not image_url:
            raise ImageGenerationError(
                "Failed to generate image: Invalid response format from image generation API"
            )

        logger.info("Generated image URL: %s", image_url)
        return image_url

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        detail = _upstream_detail(response)
        logger.error("Image generation API returned %s: %s", status, detail)

        if status == 401:
            raise InvalidCredentialError(INVALID_CREDENTIAL_MESSAGE)
        if status == 429:
            raise RateLimitError(RATE_LIMIT_MESSAGE)
        if status == 403:
            raise ForbiddenError(FORBIDDEN_MESSAGE)
        raise ImageGenerationError(f"Failed to generate image: {detail}")
