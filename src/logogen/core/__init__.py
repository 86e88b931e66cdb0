"""Core functionality for logo and icon generation.

This package holds everything that is independent of the HTTP layer:

- **config.py**: environment-based settings (Pydantic Settings) and the
  frozen sub-configurations handed to each component.
- **models.py**: transient request/result models and :class:`ImageKind`.
- **errors.py**: the exception hierarchy and its HTTP status codes.
- **storage.py**: artifact filenames, directories, writes and listings.
- **enhancement.py**: best-effort LLM prompt enhancement.
- **generation.py**: image generation API client and prompt styling.
- **processing.py**: download, resize and store generated images.
- **service.py**: the per-request orchestration pipeline.

Usage Example
-------------
::

    import httpx

    from logogen.core.config import load_config
    from logogen.core.generation import ImageGenerationClient, build_final_prompt
    from logogen.core.models import ImageKind

    config = load_config()
    async with httpx.AsyncClient() as client:
        generator = ImageGenerationClient(config.image_api, client)
        url = await generator.generate(
            build_final_prompt("a blue circle", ImageKind.ICON), ImageKind.ICON
        )
"""

from logogen.core.config import LogogenConfig, load_config
from logogen.core.errors import LogogenError
from logogen.core.models import ImageKind

__all__ = [
    "ImageKind",
    "LogogenConfig",
    "LogogenError",
    "load_config",
]
