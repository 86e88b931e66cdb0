"""Configuration management for LogoGen.

This module provides centralised configuration using Pydantic Settings.  All
values are read from environment variables (and an optional ``.env`` file)
once at boot, validated, and then exposed read-only.

Environment Variable Loading
----------------------------
Configuration values are resolved in the following priority order:

1. Keyword arguments passed to :class:`LogogenConfig` (used by tests).
2. Environment variables (``API_KEY``, ``LOGO_SIZE``, ...).
3. ``.env`` file in the working directory.
4. Default values defined on :class:`LogogenConfig`.

Example ``.env`` file::

    API_KEY=sk-...
    API_BASE_URL=https://api.x.ai/v1
    ENABLE_PROMPT_ENHANCEMENT=true
    USE_SHARED_API_KEY=true
    ENABLE_DATABASE_LOGGING=true

Boot-time Validation
--------------------
Two invariants are checked when the settings object is built:

- an image-generation credential (``API_KEY``) is present;
- if prompt enhancement is enabled and ``USE_SHARED_API_KEY`` is not set, a
  real (non-placeholder) ``LLM_API_KEY`` is present.

:func:`load_config` turns a violation into a descriptive log message and
terminates the process.  There is no global configuration instance: the
object returned by :func:`load_config` is passed explicitly to every
component.

Sub-configurations
------------------
Components do not read the flat settings directly.  They receive one of the
frozen views below, built on demand from the settings:

- :class:`ApiEndpointConfig` -- image generation endpoint.
- :class:`LlmConfig` -- prompt enhancement endpoint.
- :class:`ImageConfig` -- output sizes and download cap.
- :class:`DirectoryConfig` -- artifact directories.
- :class:`DatabaseConfig` -- optional persistence logging.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from logogen.core.models import ImageKind

logger = logging.getLogger(__name__)

_PLACEHOLDER_MARKER = "your_"


def _is_placeholder(key: str | None) -> bool:
    """Return ``True`` for an unset key or a ``.env.example`` placeholder."""
    return not key or _PLACEHOLDER_MARKER in key


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ApiEndpointConfig(_FrozenModel):
    """Image generation endpoint settings."""

    base_url: str
    api_key: str = Field(repr=False)
    model_name: str


class LlmConfig(_FrozenModel):
    """Prompt enhancement endpoint settings.

    ``api_key`` is ``None`` when no usable credential is configured; the
    enhancer then passes prompts through unchanged.
    """

    enabled: bool
    base_url: str
    api_key: str | None = Field(default=None, repr=False)
    model_name: str
    use_shared_key: bool
    templates_file: Path | None = None


class ImageConfig(_FrozenModel):
    """Output sizes (pixels) and the maximum accepted download size (bytes)."""

    logo_size: int
    icon_size: int
    max_file_size: int

    def target_size(self, kind: ImageKind) -> int:
        return self.icon_size if kind == ImageKind.ICON else self.logo_size


class DirectoryConfig(_FrozenModel):
    """Artifact directories and the public URL prefix they are served under."""

    generated: Path
    temp: Path
    public_prefix: str = "/generated"

    @property
    def generated_original(self) -> Path:
        return self.generated / "original"


class DatabaseConfig(_FrozenModel):
    """Persistence logging switches and record store settings."""

    enabled: bool
    type: str
    data_dir: Path
    enable_cache: bool
    max_cache_size: int
    log_transactions: bool
    log_api_requests: bool
    log_system_events: bool


class LogogenConfig(BaseSettings):
    """Flat, immutable settings for the whole service.

    Field names map one-to-one onto (case-insensitive) environment variable
    names, so ``logo_size`` is read from ``LOGO_SIZE``.

    Examples
    --------
    Build a configuration for tests without touching the environment file::

        >>> cfg = LogogenConfig(api_key="test-key", _env_file=None)
        >>> cfg.image.icon_size
        64
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Image generation API
    api_key: str = Field(..., min_length=1, repr=False)
    api_base_url: str = Field(default="https://api.x.ai/v1")
    model_name: str = Field(default="grok-vision-beta")

    # Prompt enhancement (text completion) API
    enable_prompt_enhancement: bool = Field(default=False)
    llm_api_key: str | None = Field(default=None, repr=False)
    llm_api_base_url: str | None = Field(
        default=None,
        description="Defaults to api_base_url when unset",
    )
    llm_model_name: str = Field(default="grok-beta")
    use_shared_api_key: bool = Field(default=False)
    prompt_templates_file: Path | None = Field(default=Path("prompt-templates.json"))

    # Image processing
    logo_size: int = Field(default=1024, ge=1, le=8192)
    icon_size: int = Field(default=64, ge=1, le=8192)
    max_file_size: int = Field(default=10 * 1024 * 1024, ge=1)

    # Directories
    generated_dir: Path = Field(default=Path("public/generated"))
    temp_dir: Path = Field(default=Path("temp"))

    # Persistence logging
    enable_database_logging: bool = Field(default=False)
    log_transactions: bool | None = Field(default=None)
    log_api_requests: bool | None = Field(default=None)
    log_system_events: bool | None = Field(default=None)
    database_type: str = Field(default="json")
    database_data_dir: Path = Field(default=Path("data/database"))
    database_enable_cache: bool = Field(default=True)
    database_max_cache_size: int = Field(default=1000, ge=1)

    # Server
    server_host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)
    environment: str = Field(default="development")

    @model_validator(mode="after")
    def _check_llm_credentials(self) -> LogogenConfig:
        if (
            self.enable_prompt_enhancement
            and not self.use_shared_api_key
            and _is_placeholder(self.llm_api_key)
        ):
            raise ValueError(
                "LLM_API_KEY is required when ENABLE_PROMPT_ENHANCEMENT=true. "
                "Either set LLM_API_KEY or set USE_SHARED_API_KEY=true to use the same API key"
            )
        return self

    # -- Sub-configurations -------------------------------------------------

    @property
    def image_api(self) -> ApiEndpointConfig:
        return ApiEndpointConfig(
            base_url=self.api_base_url.rstrip("/"),
            api_key=self.api_key,
            model_name=self.model_name,
        )

    @property
    def llm(self) -> LlmConfig:
        if self.use_shared_api_key:
            key = self.api_key
        elif not _is_placeholder(self.llm_api_key):
            key = self.llm_api_key
        else:
            key = None
        return LlmConfig(
            enabled=self.enable_prompt_enhancement,
            base_url=(self.llm_api_base_url or self.api_base_url).rstrip("/"),
            api_key=key,
            model_name=self.llm_model_name,
            use_shared_key=self.use_shared_api_key,
            templates_file=self.prompt_templates_file,
        )

    @property
    def image(self) -> ImageConfig:
        return ImageConfig(
            logo_size=self.logo_size,
            icon_size=self.icon_size,
            max_file_size=self.max_file_size,
        )

    @property
    def directories(self) -> DirectoryConfig:
        return DirectoryConfig(generated=self.generated_dir, temp=self.temp_dir)

    @property
    def database(self) -> DatabaseConfig:
        master = self.enable_database_logging

        def _toggle(value: bool | None) -> bool:
            return master if value is None else value

        return DatabaseConfig(
            enabled=master,
            type=self.database_type,
            data_dir=self.database_data_dir,
            enable_cache=self.database_enable_cache,
            max_cache_size=self.database_max_cache_size,
            log_transactions=_toggle(self.log_transactions),
            log_api_requests=_toggle(self.log_api_requests),
            log_system_events=_toggle(self.log_system_events),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def log_summary(self) -> None:
        """Log the effective configuration without any secrets."""
        llm = self.llm
        db = self.database
        logger.info("API base URL: %s", self.image_api.base_url)
        logger.info("Model: %s", self.model_name)
        logger.info("API key configured: %s", bool(self.api_key))
        logger.info("Prompt enhancement enabled: %s", llm.enabled)
        if llm.enabled:
            logger.info("  LLM base URL: %s", llm.base_url)
            logger.info("  LLM model: %s", llm.model_name)
            logger.info("  LLM API key configured: %s", bool(llm.api_key))
            logger.info("  Using shared API key: %s", llm.use_shared_key)
        logger.info("Database logging: %s", "enabled" if db.enabled else "disabled")
        if db.enabled:
            logger.info("  Database type: %s", db.type)
            logger.info("  Data directory: %s", db.data_dir)
            logger.info(
                "  Log transactions/api requests/system events: %s/%s/%s",
                db.log_transactions,
                db.log_api_requests,
                db.log_system_events,
            )


def _describe_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        if loc == ("api_key",):
            messages.append("API_KEY environment variable is required")
            continue
        msg = str(error.get("msg", ""))
        msg = msg.removeprefix("Value error, ")
        if loc:
            field = ".".join(str(part) for part in loc).upper()
            msg = f"{field}: {msg}"
        messages.append(msg)
    return "; ".join(messages)


def load_config(**overrides) -> LogogenConfig:
    """Build the settings object or terminate the process.

    Args:
        **overrides: Explicit field values (take precedence over the
            environment).

    Returns:
        A validated, frozen :class:`LogogenConfig`.

    Raises:
        SystemExit: If a mandatory credential is missing or a value fails
            validation.  This is a boot-time failure, not a request error.
    """
    try:
        return LogogenConfig(**overrides)
    except ValidationError as exc:
        message = _describe_validation_error(exc)
        logger.critical("Configuration error: %s", message)
        raise SystemExit(f"ERROR: {message}") from exc
