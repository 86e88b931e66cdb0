"""Pydantic request models for the LogoGen API.

Models
------
GeneratePayload
    Raw body of ``POST /api/generate``.  Field-level rules (non-empty
    prompt, known image type) are checked by
    :meth:`~logogen.core.service.GenerationService.validate` so that every
    rejection uses the same error envelope and message.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GeneratePayload(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        prompt: Free-text description of the logo or icon.
        image_type: ``"logo"`` (default) or ``"icon"``.  Sent as
            ``imageType``.
        enhance_prompt: Omitted means "enhance when available".  Only
            ``true`` and ``"true"`` keep enhancement on; ``null`` and any
            other value turn it off.  Sent as ``enhancePrompt``.
    """

    model_config = ConfigDict(populate_by_name=True)

    prompt: str | None = Field(
        default=None,
        description="Text prompt describing the image.",
    )
    image_type: str | None = Field(
        default=None,
        alias="imageType",
        description="Artifact kind: 'logo' or 'icon'.",
    )
    enhance_prompt: Any = Field(
        default=None,
        alias="enhancePrompt",
        description="Whether to rewrite the prompt with the LLM first.",
    )

    def enhancement_flag(self) -> Any:
        """The raw ``enhancePrompt`` value, with an explicit ``null`` as ``False``.

        Returns ``None`` only when the field was left out of the body.
        """
        if "enhance_prompt" not in self.model_fields_set:
            return None
        return False if self.enhance_prompt is None else self.enhance_prompt
