"""LLM-based prompt enhancement.

:class:`PromptEnhancer` asks a text-completion endpoint to rewrite the
user's prompt with more visual detail.  Enhancement is strictly best effort:

- when the feature is disabled or no credential is configured, the original
  prompt is returned untouched;
- any transport error, HTTP error, or malformed response falls back to the
  original prompt;
- completions that fail the quality gate (:func:`is_valid_enhancement`) are
  discarded in favour of the original prompt.

``enhance()`` never raises for upstream problems, so it can never abort a
generation request.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import httpx

from logogen.core.config import LlmConfig
from logogen.core.models import ImageKind

logger = logging.getLogger(__name__)

COMPLETION_MAX_TOKENS = 100
COMPLETION_TEMPERATURE = 0.7
COMPLETION_STOP = ["\n", "```"]
COMPLETION_TIMEOUT = 30.0

MIN_ENHANCED_LENGTH = 10

PROMPT_PLACEHOLDER = "${prompt}"

DEFAULT_TEMPLATE = (
    "Enhance this design prompt by adding specific visual details. "
    "Keep it concise and focused only on the design elements. No code or formatting:\n"
    '"${prompt}"\n'
    "Enhanced version:"
)

DEFAULT_TEMPLATES: dict[str, str] = {
    ImageKind.LOGO.value: DEFAULT_TEMPLATE,
    ImageKind.ICON.value: DEFAULT_TEMPLATE,
}

# Lower-case fragments that show the model echoed the instruction or refused.
FAILURE_PHRASES = (
    "enhance this design prompt",
    "enhanced version:",
    "here is the enhanced",
    "i cannot",
    "i can't",
    "as an ai",
)


def load_prompt_templates(path: Path | None) -> dict[str, str]:
    """Load kind -> template overrides from a JSON file.

    A missing, unreadable, or malformed file is not an error: the built-in
    templates are used instead.  Non-string values are ignored.

    Args:
        path: JSON file mapping kind names to template strings, or ``None``.

    Returns:
        Template mapping with built-in defaults for any kind not overridden.
    """
    templates = dict(DEFAULT_TEMPLATES)
    if path is None or not path.is_file():
        return templates
    try:
        with open(path, encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Failed to load prompt templates from %s: %s", path, exc)
        return templates

    if not isinstance(raw, dict):
        logger.warning("Prompt templates file %s is not a JSON object", path)
        return templates

    for kind, template in raw.items():
        if isinstance(template, str) and template.strip():
            templates[kind] = template
    logger.info("Prompt templates loaded: %s", sorted(templates))
    return templates


def is_valid_enhancement(enhanced: str | None, original: str) -> bool:
    """Quality gate for a raw completion.

    Rejects completions that are empty or shorter than 10 characters, that
    merely repeat the original prompt (case-insensitively), or that contain
    one of :data:`FAILURE_PHRASES`.
    """
    if not enhanced or len(enhanced) < MIN_ENHANCED_LENGTH:
        return False

    lowered = enhanced.lower()
    if lowered == original.lower():
        return False

    return not any(phrase in lowered for phrase in FAILURE_PHRASES)


class PromptEnhancer:
    """Rewrites prompts through an OpenAI-style ``/completions`` endpoint.

    Attributes:
        _config (LlmConfig): Endpoint, credential and model settings.
        _client (httpx.AsyncClient): Shared HTTP client.
        _templates (dict[str, str]): Kind -> prompt template.
    """

    def __init__(
        self,
        config: LlmConfig,
        client: httpx.AsyncClient,
        templates: dict[str, str] | None = None,
    ) -> None:
        self._config = config
        self._client = client
        if templates is None:
            templates = load_prompt_templates(config.templates_file)
        self._templates = templates

    @property
    def available(self) -> bool:
        """Enhancement is switched on and a credential is configured."""
        return self._config.enabled and bool(self._config.api_key)

    @property
    def model_name(self) -> str:
        return self._config.model_name

    def build_instruction(self, original_prompt: str, kind: ImageKind | str) -> str:
        kind_value = kind.value if isinstance(kind, ImageKind) else kind
        template = (
            self._templates.get(kind_value)
            or self._templates.get(ImageKind.LOGO.value)
            or DEFAULT_TEMPLATE
        )
        return template.replace(PROMPT_PLACEHOLDER, original_prompt)

    async def enhance(self, original_prompt: str, kind: ImageKind | str) -> str:
        """Return an enhanced prompt, or *original_prompt* on any problem."""
        if not self._config.enabled:
            logger.debug("Prompt enhancement disabled, using original prompt")
            return original_prompt
        if not self._config.api_key:
            logger.warning("No LLM API key available, using original prompt")
            return original_prompt

        payload = {
            "model": self._config.model_name,
            "prompt": self.build_instruction(original_prompt, kind),
            "max_tokens": COMPLETION_MAX_TOKENS,
            "temperature": COMPLETION_TEMPERATURE,
            "stop": COMPLETION_STOP,
        }
        url = f"{self._config.base_url}/completions"
        logger.info("Enhancing %s prompt via %s (%s)", kind, url, self._config.model_name)

        try:
            response = await asyncio.wait_for(
                self._client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._config.api_key}"},
                    timeout=COMPLETION_TIMEOUT,
                ),
                COMPLETION_TIMEOUT,
            )
            response.raise_for_status()
            body = response.json()
        except asyncio.TimeoutError:
            logger.error(
                "Prompt enhancement timed out after %gs, falling back to original prompt",
                COMPLETION_TIMEOUT,
            )
            return original_prompt
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Prompt enhancement failed with HTTP %s, falling back to original prompt",
                exc.response.status_code,
            )
            return original_prompt
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Prompt enhancement error (%s), falling back to original prompt", exc)
            return original_prompt

        text = _first_completion_text(body)
        if text is None:
            logger.warning("Invalid LLM response format, using original prompt")
            return original_prompt

        enhanced = text.strip()
        if not is_valid_enhancement(enhanced, original_prompt):
            logger.info("Enhanced prompt failed quality check, using original")
            return original_prompt

        logger.info("Prompt enhanced: %s", enhanced)
        return enhanced

    def client_config(self) -> dict:
        """Non-secret enhancement settings for the frontend."""
        return {
            "enabled": self._config.enabled,
            "available": self.available,
            "model": self._config.model_name,
        }


def _first_completion_text(body) -> str | None:
    if not isinstance(body, dict):
        return None
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    return text if isinstance(text, str) and text else None
