"""Domain models shared by the generation pipeline and the API layer.

These are transient, per-request values.  Persisted log records live in
:mod:`logogen.records.models`.

Models
------
ImageKind
    The two artifact kinds the service produces.
GenerationRequest
    A validated ``POST /api/generate`` payload.
Dimensions
    Pixel width and height of an artifact.
ProcessedImage
    What the image processor returns: both artifacts on disk.
GenerationResult
    The ``data`` object of a successful generate response.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ImageKind(str, Enum):
    """Artifact kind requested by the client."""

    LOGO = "logo"
    ICON = "icon"

    @classmethod
    def values(cls) -> list[str]:
        return [kind.value for kind in cls]


class _CamelModel(BaseModel):
    """Base for models that serialise with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationRequest(BaseModel):
    """A generation request after validation.

    Attributes:
        prompt: Trimmed, non-empty user prompt.
        image_type: Requested artifact kind.
        enhance_prompt: Client opt-in for prompt enhancement.  ``None`` means
            "enhance when the feature is available".
    """

    prompt: str = Field(..., min_length=1)
    image_type: ImageKind = ImageKind.LOGO
    enhance_prompt: bool | None = None


class Dimensions(BaseModel):
    width: int
    height: int


class ProcessedImage(_CamelModel):
    """Both stored artifacts for one generation.

    ``path`` and ``original_path`` are public URL paths (``/generated/...``),
    not filesystem paths.
    """

    filename: str
    path: str
    size: int
    dimensions: Dimensions
    original_filename: str
    original_path: str
    original_size: int
    original_dimensions: Dimensions


class GenerationResult(ProcessedImage):
    """Full result of a successful generation, including prompt lineage."""

    original_prompt: str
    enhanced_prompt: str | None = None
    final_prompt: str
    image_type: ImageKind
    generated_at: str
