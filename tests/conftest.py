"""Shared pytest fixtures for LogoGen tests."""

from __future__ import annotations

import asyncio
import io
import shutil
import tempfile
from pathlib import Path
from typing import AsyncIterator, Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from logogen.api.main import create_app
from logogen.core.config import LogogenConfig

API_BASE_URL = "https://api.example.test/v1"
IMAGE_URL = "https://cdn.example.test/images/generated-1.png"

# Every variable LogogenConfig reads; cleared so the host environment
# cannot leak into tests.
_CONFIG_ENV_VARS = [name.upper() for name in LogogenConfig.model_fields]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path_factory) -> None:
    """Clear config variables and run from an empty working directory.

    The empty working directory keeps a developer's ``.env`` or
    ``prompt-templates.json`` out of the tests.
    """
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


def make_config(temp_dir: Path, **overrides) -> LogogenConfig:
    """Build a config rooted in *temp_dir* with test defaults."""
    values = {
        "api_key": "test-api-key",
        "api_base_url": API_BASE_URL,
        "model_name": "test-image-model",
        "generated_dir": str(temp_dir / "generated"),
        "temp_dir": str(temp_dir / "temp"),
        "database_data_dir": str(temp_dir / "database"),
        "prompt_templates_file": None,
        "_env_file": None,
    }
    values.update(overrides)
    return LogogenConfig(**values)


@pytest.fixture
def test_config(temp_dir: Path) -> LogogenConfig:
    """Configuration with enhancement and persistence logging disabled."""
    return make_config(temp_dir)


@pytest.fixture
def logging_config(temp_dir: Path) -> LogogenConfig:
    """Configuration with persistence logging enabled."""
    return make_config(temp_dir, enable_database_logging=True)


@pytest.fixture
def enhancement_config(temp_dir: Path) -> LogogenConfig:
    """Configuration with prompt enhancement enabled via the shared key."""
    return make_config(
        temp_dir,
        enable_prompt_enhancement=True,
        use_shared_api_key=True,
        llm_model_name="test-llm-model",
    )


def make_png(width: int = 512, height: int = 512, color=(30, 90, 200, 255)) -> bytes:
    """Encode a solid-colour RGBA PNG in memory."""
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeUpstream:
    """In-process stand-in for the image API, the LLM API and the image CDN.

    Tests tweak the public attributes to simulate upstream behaviour and
    inspect :attr:`requests` afterwards.
    """

    def __init__(self, image_bytes: bytes) -> None:
        self.image_bytes = image_bytes
        self.generation_status = 200
        self.generation_body: dict | None = None
        self.completion_status = 200
        self.completion_text = "a bold blue circle with soft gradient and crisp white outline"
        self.download_status = 200
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/images/generations"):
            if self.generation_status != 200:
                body = self.generation_body or {"error": {"message": "upstream exploded"}}
                return httpx.Response(self.generation_status, json=body)
            body = self.generation_body or {"data": [{"url": IMAGE_URL}]}
            return httpx.Response(200, json=body)

        if path.endswith("/completions"):
            if self.completion_status != 200:
                return httpx.Response(self.completion_status, json={"error": "nope"})
            return httpx.Response(200, json={"choices": [{"text": self.completion_text}]})

        if str(request.url) == IMAGE_URL:
            if self.download_status != 200:
                return httpx.Response(self.download_status)
            return httpx.Response(
                200,
                content=self.image_bytes,
                headers={"content-type": "image/png"},
            )

        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream(make_png(800, 600))


@pytest.fixture
def png_factory():
    """Return :func:`make_png` so tests can build images of any size."""
    return make_png


@pytest.fixture
def trickling_body():
    """Return a builder for response bodies sent one slow chunk at a time.

    Every chunk arrives well inside any per-read timeout, so only a deadline
    on the whole call can cut the transfer short.
    """

    def _build(data: bytes, delay: float, chunk_size: int = 1) -> AsyncIterator[bytes]:
        async def _chunks() -> AsyncIterator[bytes]:
            for start in range(0, len(data), chunk_size):
                await asyncio.sleep(delay)
                yield data[start : start + chunk_size]

        return _chunks()

    return _build


@pytest.fixture
def config_factory(temp_dir: Path):
    """Return a builder for configs rooted in the test's temp directory."""

    def _build(**overrides) -> LogogenConfig:
        return make_config(temp_dir, **overrides)

    return _build


# ---------------------------------------------------------------------------
# API clients. Used as context managers so startup and shutdown run.
# ---------------------------------------------------------------------------


@pytest.fixture
def test_client(test_config: LogogenConfig, upstream: FakeUpstream):
    """TestClient for an app with enhancement and logging disabled."""
    with TestClient(create_app(test_config, http_client=upstream.client())) as client:
        yield client


@pytest.fixture
def logging_client(logging_config: LogogenConfig, upstream: FakeUpstream):
    """TestClient for an app with persistence logging enabled."""
    with TestClient(create_app(logging_config, http_client=upstream.client())) as client:
        yield client


@pytest.fixture
def enhancement_client(enhancement_config: LogogenConfig, upstream: FakeUpstream):
    """TestClient for an app with prompt enhancement enabled."""
    with TestClient(create_app(enhancement_config, http_client=upstream.client())) as client:
        yield client
