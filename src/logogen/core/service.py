"""Generation request orchestration.

:class:`GenerationService` runs one generate request end to end::

    validate -> enhance (optional) -> style -> generate -> download/process

and, when persistence logging is on, writes exactly one transaction record
and one session counter update per attempt that passed validation.  The
call is all-or-nothing: any failure after validation is re-raised and the
client gets an error envelope, never a partial result.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from logogen.core.enhancement import PromptEnhancer
from logogen.core.errors import LogogenError, RequestValidationError
from logogen.core.generation import ImageGenerationClient, build_final_prompt
from logogen.core.models import GenerationRequest, GenerationResult, ImageKind, ProcessedImage
from logogen.core.processing import ImageProcessor
from logogen.records.activity import ActivityLog
from logogen.records.models import ClientInfo, TransactionRecord

logger = logging.getLogger(__name__)

PROMPT_REQUIRED_MESSAGE = "Prompt is required"
INVALID_KIND_MESSAGE = 'Image type must be either "logo" or "icon"'


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _parse_flag(value) -> bool | None:
    """``None`` stays "not specified"; only ``true`` and ``"true"`` opt in."""
    if value is None:
        return None
    return value is True or value == "true"


class GenerationService:
    """Wires the enhancer, generator, processor and activity log together."""

    def __init__(
        self,
        enhancer: PromptEnhancer,
        generator: ImageGenerationClient,
        processor: ImageProcessor,
        activity: ActivityLog,
    ) -> None:
        self.enhancer = enhancer
        self.generator = generator
        self.processor = processor
        self.activity = activity

    @staticmethod
    def validate(prompt, image_type=None, enhance_prompt=None) -> GenerationRequest:
        """Validate raw request fields.

        ``enhance_prompt`` is ``None`` when the client did not send the flag.
        Any value other than ``True`` or ``"true"`` turns enhancement off.

        Raises:
            RequestValidationError: Missing/blank prompt or unknown kind.
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise RequestValidationError(PROMPT_REQUIRED_MESSAGE)
        if image_type is None:
            image_type = ImageKind.LOGO.value
        if image_type not in ImageKind.values():
            raise RequestValidationError(INVALID_KIND_MESSAGE)
        return GenerationRequest(
            prompt=prompt.strip(),
            image_type=ImageKind(image_type),
            enhance_prompt=_parse_flag(enhance_prompt),
        )

    def should_enhance(self, request: GenerationRequest) -> bool:
        return self.enhancer.available and request.enhance_prompt is not False

    async def generate(
        self,
        request: GenerationRequest,
        client: ClientInfo | None = None,
    ) -> GenerationResult:
        """Run the full pipeline for a validated request.

        Raises:
            LogogenError: Generation or processing failed.  The failure has
                already been recorded when logging is enabled.
        """
        client = client or ClientInfo()
        kind = request.image_type
        started = time.perf_counter()
        timings: dict[str, float] = {}
        enhanced: str | None = None
        final_prompt: str | None = None
        image_url: str | None = None
        processed: ProcessedImage | None = None

        logger.info("Starting %s generation for prompt: %s", kind.value, request.prompt)
        try:
            prompt = request.prompt
            if self.should_enhance(request):
                phase = time.perf_counter()
                enhanced = await self.enhancer.enhance(request.prompt, kind)
                timings["enhancement_ms"] = _elapsed_ms(phase)
                prompt = enhanced

            final_prompt = build_final_prompt(prompt, kind)

            phase = time.perf_counter()
            image_url = await self.generator.generate(final_prompt, kind)
            timings["generation_ms"] = _elapsed_ms(phase)

            phase = time.perf_counter()
            processed = await self.processor.process(image_url, kind, request.prompt)
            timings["processing_ms"] = _elapsed_ms(phase)
        except Exception as exc:
            message = exc.message if isinstance(exc, LogogenError) else str(exc)
            logger.error("Image generation failed: %s", message)
            self._record(
                request, client, started, timings, enhanced, final_prompt, image_url, None, message
            )
            self.activity.record_event(
                "generation_failed",
                "GenerationService",
                "error",
                message,
                {"error_type": type(exc).__name__, "image_type": kind.value},
            )
            raise

        result = GenerationResult(
            **processed.model_dump(),
            original_prompt=request.prompt,
            enhanced_prompt=enhanced,
            final_prompt=final_prompt,
            image_type=kind,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )
        self._record(
            request, client, started, timings, enhanced, final_prompt, image_url, processed, None
        )
        logger.info("Image generation completed: %s", processed.filename)
        return result

    def _record(
        self,
        request: GenerationRequest,
        client: ClientInfo,
        started: float,
        timings: dict[str, float],
        enhanced: str | None,
        final_prompt: str | None,
        image_url: str | None,
        processed: ProcessedImage | None,
        error: str | None,
    ) -> None:
        if not self.activity.logs_transactions:
            return
        success = error is None
        session_id = self.activity.touch_session(client, success=success)
        record = TransactionRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            session_id=session_id,
            client_ip=client.client_ip,
            user_agent=client.user_agent,
            original_prompt=request.prompt,
            enhanced_prompt=enhanced,
            final_prompt=final_prompt,
            image_type=request.image_type.value,
            enhance_prompt_requested=request.enhance_prompt,
            success=success,
            status="completed" if success else "failed",
            error_message=error,
            image_url=image_url,
            processed_filename=processed.filename if processed else None,
            original_filename=processed.original_filename if processed else None,
            processed_file_path=processed.path if processed else None,
            original_file_path=processed.original_path if processed else None,
            file_size=processed.size if processed else None,
            original_file_size=processed.original_size if processed else None,
            dimensions=processed.dimensions.model_dump() if processed else None,
            total_ms=_elapsed_ms(started),
            api_model=self.generator.model_name,
            api_base_url=self.generator.base_url,
            llm_model=self.enhancer.model_name if enhanced is not None else None,
            **timings,
        )
        self.activity.record_transaction(record)
