"""Tests for logogen.core.generation: image API client and prompt styling."""

from __future__ import annotations

import json
import time

import httpx
import pytest

from logogen.core import generation
from logogen.core.config import ApiEndpointConfig
from logogen.core.errors import (
    ForbiddenError,
    ImageGenerationError,
    InvalidCredentialError,
    RateLimitError,
)
from logogen.core.generation import (
    FORBIDDEN_MESSAGE,
    INVALID_CREDENTIAL_MESSAGE,
    RATE_LIMIT_MESSAGE,
    ImageGenerationClient,
    build_final_prompt,
)
from logogen.core.models import ImageKind

BASE_URL = "https://api.example.test/v1"
IMAGE_URL = "https://cdn.example.test/img.png"


def make_client(handler) -> tuple[ImageGenerationClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    config = ApiEndpointConfig(base_url=BASE_URL, api_key="image-key", model_name="img-model")
    http = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return ImageGenerationClient(config, http), seen


class TestBuildFinalPrompt:
    """Kind-specific style wrappers."""

    def test_logo_style(self):
        assert build_final_prompt("Acme rocket", ImageKind.LOGO) == (
            "Professional logo design: Acme rocket. "
            "Clean, modern, suitable for branding, high quality, vector-style"
        )

    def test_icon_style(self):
        assert build_final_prompt("blue circle", ImageKind.ICON) == (
            "Simple icon design: blue circle. "
            "Minimalist, clear, suitable for favicon or app icon, clean lines"
        )


class TestImageGenerationClient:
    """Request shape and upstream error mapping."""

    @pytest.mark.asyncio
    async def test_returns_image_url(self):
        client, seen = make_client(
            lambda request: httpx.Response(200, json={"data": [{"url": IMAGE_URL}]})
        )

        url = await client.generate("Simple icon design: x", ImageKind.ICON)

        assert url == IMAGE_URL
        [request] = seen
        assert str(request.url) == f"{BASE_URL}/images/generations"
        assert request.headers["authorization"] == "Bearer image-key"
        assert json.loads(request.content) == {
            "model": "img-model",
            "prompt": "Simple icon design: x",
            "n": 1,
            "response_format": "url",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error_type", "message"),
        [
            (401, InvalidCredentialError, INVALID_CREDENTIAL_MESSAGE),
            (429, RateLimitError, RATE_LIMIT_MESSAGE),
            (403, ForbiddenError, FORBIDDEN_MESSAGE),
        ],
    )
    async def test_known_statuses_map_to_specific_errors(self, status, error_type, message):
        client, _ = make_client(lambda request: httpx.Response(status, json={}))

        with pytest.raises(error_type) as excinfo:
            await client.generate("prompt", ImageKind.LOGO)
        assert excinfo.value.message == message

    def test_rate_limit_surfaces_as_429(self):
        assert RateLimitError(RATE_LIMIT_MESSAGE).status_code == 429
        assert InvalidCredentialError(INVALID_CREDENTIAL_MESSAGE).status_code == 500

    @pytest.mark.asyncio
    async def test_other_status_includes_upstream_detail(self):
        client, _ = make_client(
            lambda request: httpx.Response(500, json={"error": {"message": "model overloaded"}})
        )

        with pytest.raises(ImageGenerationError) as excinfo:
            await client.generate("prompt", ImageKind.LOGO)
        assert excinfo.value.message == "Failed to generate image: model overloaded"

    @pytest.mark.asyncio
    async def test_other_status_without_body(self):
        client, _ = make_client(lambda request: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(ImageGenerationError) as excinfo:
            await client.generate("prompt", ImageKind.LOGO)
        assert excinfo.value.message == (
            "Failed to generate image: Request failed with status code 502"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"data": []}, {"data": [{}]}, {"data": [{"url": ""}]}])
    async def test_missing_url_is_an_error(self, body):
        client, _ = make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(ImageGenerationError, match="Invalid response format"):
            await client.generate("prompt", ImageKind.LOGO)

    @pytest.mark.asyncio
    async def test_transport_error_is_an_error(self):
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client, _ = make_client(fail)

        with pytest.raises(ImageGenerationError, match="Failed to generate image"):
            await client.generate("prompt", ImageKind.LOGO)

    @pytest.mark.asyncio
    async def test_slow_response_hits_overall_deadline(self, trickling_body, monkeypatch):
        """The timeout covers the whole call, not each read of a slow body."""
        monkeypatch.setattr(generation, "GENERATION_TIMEOUT", 0.3)
        body = json.dumps({"data": [{"url": IMAGE_URL}]}).encode()

        client, _ = make_client(
            lambda request: httpx.Response(200, content=trickling_body(body, 0.1, chunk_size=4))
        )

        started = time.perf_counter()
        with pytest.raises(ImageGenerationError, match="timed out after 0.3s"):
            await client.generate("prompt", ImageKind.LOGO)
        assert time.perf_counter() - started < 1.0
