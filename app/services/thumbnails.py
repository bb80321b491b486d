"""Thumbnail generation: text-to-image with a prompt-keyed cache.

The raw prompt is first run through a fixed enhancement template (a pure
function, so the same prompt always maps to the same cache slot). Results
are cached for 24h under ``hf_thumbnail:<enhanced prompt>``. The inference
endpoint answers 503 while the model is warming up; that is the only status
retried.
"""

from __future__ import annotations

import asyncio
import base64
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from app.config import Settings, get_settings
from app.core.cache import NS_THUMBNAIL, CacheStore, cache_key
from app.core.logging import get_logger
from app.core.retry import ErrorKind, RequestSpec, RetryingFetcher, RetryPolicy
from app.core.singleflight import SingleFlight
from app.services.results import ServiceResult

logger = get_logger(__name__)

MODEL_WARMING_STATUS = 503

_ENHANCE_TEMPLATE = (
    "Professional YouTube thumbnail for: {prompt}. High quality, vibrant colors, "
    "eye-catching design, bold text overlay, 16:9 aspect ratio, photorealistic, "
    "trending style, engaging composition"
)
_QUALITY_MARKERS = ("youtube thumbnail", "high quality")
_PASS_THROUGH_LENGTH = 100

_UNSAFE_KEYWORDS = (
    "nude", "naked", "nsfw", "porn", "sex",
    "violence", "gore", "blood", "death",
    "hate", "racist", "terrorism",
)
_UNSAFE_RE = re.compile(r"\b(" + "|".join(_UNSAFE_KEYWORDS) + r")\b", re.IGNORECASE)

_VARIATION_STYLES = (
    "Style 1: Modern and clean design",
    "Style 2: Bold and dramatic with high contrast",
    "Style 3: Colorful and energetic composition",
    "Style 4: Minimalist with a single focal subject",
    "Style 5: Cinematic lighting with shallow depth of field",
)


# ── Prompt helpers ──────────────────────────────────────────────────


def enhance_prompt(prompt: str) -> str:
    """Wrap a short prompt in the thumbnail template.

    Prompts that already ask for thumbnail quality, or are long enough to be
    deliberate, pass through unchanged.
    """
    lowered = prompt.lower()
    if any(marker in lowered for marker in _QUALITY_MARKERS) or len(prompt) > _PASS_THROUGH_LENGTH:
        return prompt
    return _ENHANCE_TEMPLATE.format(prompt=prompt)


def is_prompt_safe(prompt: str) -> bool:
    """Whole-word block-list check."""
    return _UNSAFE_RE.search(prompt) is None


def add_variation(prompt: str, index: int) -> str:
    return f"{prompt}. {_VARIATION_STYLES[index % len(_VARIATION_STYLES)]}"


# ── Result model ────────────────────────────────────────────────────


@dataclass
class GenerationResult:
    """A generated image plus the prompts that produced it."""

    prompt_raw: str
    prompt_enhanced: str
    image_base64: str
    model: str
    dimensions: str
    generated_at: str
    size: str
    from_cache: bool = False
    variation: int | None = None
    # Raw response body; never cached
    image_bytes: bytes | None = field(default=None, repr=False)

    @property
    def image_payload(self) -> bytes:
        if self.image_bytes is not None:
            return self.image_bytes
        return base64.b64decode(self.image_base64)

    def to_cache_dict(self) -> dict[str, str]:
        return {
            "base64": self.image_base64,
            "prompt": self.prompt_enhanced,
            "originalPrompt": self.prompt_raw,
            "size": self.size,
            "model": self.model,
            "dimensions": self.dimensions,
            "generatedAt": self.generated_at,
        }

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {**self.to_cache_dict(), "fromCache": self.from_cache}
        if self.variation is not None:
            data["variation"] = self.variation
        return data

    def to_collection_item(self) -> dict[str, Any]:
        """Collection document for a generated image; the image travels as a data URI."""
        return {
            "title": f"AI Generated: {self.prompt_raw}",
            "description": f"Generated using {self.model}: {self.prompt_enhanced}",
            "imageUrl": f"data:image/png;base64,{self.image_base64}",
            "source": "ai-generated",
            "type": "ai-thumbnail",
            "metadata": {
                "aiModel": self.model,
                "originalPrompt": self.prompt_raw,
                "enhancedPrompt": self.prompt_enhanced,
                "generatedAt": self.generated_at,
                "dimensions": self.dimensions,
            },
        }

    @classmethod
    def from_cache_dict(cls, data: dict[str, Any]) -> GenerationResult:
        return cls(
            prompt_raw=data["originalPrompt"],
            prompt_enhanced=data["prompt"],
            image_base64=data["base64"],
            model=data["model"],
            dimensions=data["dimensions"],
            generated_at=data["generatedAt"],
            size=data["size"],
            from_cache=True,
        )


# ── Service ─────────────────────────────────────────────────────────


class ThumbnailGenerator:
    """Cache-aside wrapper around the text-to-image inference endpoint."""

    def __init__(
        self,
        cache: CacheStore,
        fetcher: RetryingFetcher,
        *,
        settings: Settings | None = None,
        flight: SingleFlight | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._settings = settings or get_settings()
        self._flight = flight or SingleFlight()
        self._sleep = sleep
        self._policy = RetryPolicy(
            max_attempts=self._settings.hf_retry_attempts,
            timeout_s=self._settings.hf_timeout_seconds,
            backoff_base_s=self._settings.hf_backoff_seconds,
            retry_on_status=(MODEL_WARMING_STATUS,),
        )

    @property
    def dimensions(self) -> str:
        return f"{self._settings.hf_width}x{self._settings.hf_height}"

    async def generate(self, prompt_raw: str) -> ServiceResult[GenerationResult]:
        prompt_raw = prompt_raw.strip()
        if not prompt_raw:
            return ServiceResult.fail(ErrorKind.INVALID_PROMPT, "Prompt is required")
        if not is_prompt_safe(prompt_raw):
            logger.info("thumbnail_prompt_rejected", prompt=prompt_raw[:80])
            return ServiceResult.fail(ErrorKind.INVALID_PROMPT, "Prompt contains inappropriate content")

        enhanced = enhance_prompt(prompt_raw)
        key = cache_key(enhanced)

        cached = await self._read_cache(key)
        if cached is not None:
            logger.info("thumbnail_cache_hit", prompt=prompt_raw[:80])
            return ServiceResult.ok(cached, from_cache=True)

        return await self._flight.do(
            f"{NS_THUMBNAIL}:{key}",
            lambda: self._generate_and_store(key, prompt_raw, enhanced),
        )

    async def generate_variations(
        self,
        prompt: str,
        count: int = 3,
    ) -> ServiceResult[list[GenerationResult]]:
        """Generate up to ``max_variations`` styled variants, one after another.

        Failed variants are skipped; the call fails only if none succeed.
        """
        prompt = prompt.strip()
        if not prompt:
            return ServiceResult.fail(ErrorKind.INVALID_PROMPT, "Prompt is required")
        if not is_prompt_safe(prompt):
            return ServiceResult.fail(ErrorKind.INVALID_PROMPT, "Prompt contains inappropriate content")

        count = max(1, min(count, self._settings.max_variations, len(_VARIATION_STYLES)))
        produced: list[GenerationResult] = []
        last_failure: ServiceResult | None = None

        for i in range(count):
            result = await self.generate(add_variation(prompt, i))
            if result.success:
                produced.append(replace(result.data, variation=i + 1))
            else:
                last_failure = result
                logger.warning(
                    "thumbnail_variation_failed",
                    variation=i + 1,
                    error_kind=result.error_kind,
                    error=result.message[:300],
                )
            # Space out upstream calls; cache hits need no pause
            if i < count - 1 and not result.from_cache:
                await self._sleep(self._settings.variation_pause_seconds)

        if not produced:
            kind = last_failure.error_kind if last_failure else ErrorKind.TRANSIENT_UPSTREAM
            return ServiceResult.fail(kind, "Failed to generate thumbnails")
        return ServiceResult.ok(produced)

    async def clear_cache(self, prompt: str) -> bool:
        deleted = await self._cache.delete(NS_THUMBNAIL, cache_key(enhance_prompt(prompt.strip())))
        logger.info("thumbnail_cache_cleared", prompt=prompt[:80], deleted=deleted)
        return deleted

    async def cache_stats(self) -> dict[str, Any]:
        ttl = self._settings.generation_cache_ttl
        return {
            "totalCached": await self._cache.count(NS_THUMBNAIL),
            "cachePrefix": f"{NS_THUMBNAIL}:",
            "ttl": f"{ttl // 3600} hours" if ttl % 3600 == 0 else f"{ttl} seconds",
        }

    # ── Internals ───────────────────────────────────────────────

    async def _read_cache(self, key: str) -> GenerationResult | None:
        stored = await self._cache.get_json(NS_THUMBNAIL, key)
        if not isinstance(stored, dict):
            return None
        try:
            return GenerationResult.from_cache_dict(stored)
        except KeyError:
            logger.warning("thumbnail_cache_entry_invalid", key=key[:120])
            return None

    async def _generate_and_store(
        self,
        key: str,
        prompt_raw: str,
        enhanced: str,
    ) -> ServiceResult[GenerationResult]:
        cached = await self._read_cache(key)
        if cached is not None:
            return ServiceResult.ok(cached, from_cache=True)

        s = self._settings
        if not s.hf_api_key:
            logger.error("thumbnail_provider_not_configured")
            return ServiceResult.fail(ErrorKind.TERMINAL_UPSTREAM, "Image generation provider is not configured")

        outcome = await self._fetcher.fetch(
            RequestSpec(
                method="POST",
                url=s.hf_model_url,
                headers={"Authorization": f"Bearer {s.hf_api_key}"},
                json={
                    "inputs": enhanced,
                    "parameters": {
                        "guidance_scale": s.hf_guidance_scale,
                        "num_inference_steps": s.hf_inference_steps,
                        "width": s.hf_width,
                        "height": s.hf_height,
                    },
                },
                label="hf_generate",
            ),
            self._policy,
        )
        if not outcome.ok:
            logger.warning(
                "thumbnail_generation_failed",
                status_code=outcome.status_code,
                attempts=outcome.attempts,
                error=outcome.message[:300],
            )
            return ServiceResult.fail(
                outcome.error_kind or ErrorKind.TRANSIENT_UPSTREAM,
                outcome.message or "Failed to generate thumbnail",
            )

        response = outcome.response
        content_type = response.headers.get("content-type", "")
        if not response.content or content_type.startswith("application/json"):
            return ServiceResult.fail(
                ErrorKind.TERMINAL_UPSTREAM,
                response.text or "Image generation returned no image",
            )

        encoded = base64.b64encode(response.content).decode("ascii")
        result = GenerationResult(
            prompt_raw=prompt_raw,
            prompt_enhanced=enhanced,
            image_base64=encoded,
            model=s.hf_model_name,
            dimensions=self.dimensions,
            generated_at=datetime.now(UTC).isoformat(),
            size=f"{round(len(encoded) / 1024)} KB",
            image_bytes=response.content,
        )

        await self._cache.set_json(NS_THUMBNAIL, key, result.to_cache_dict(), s.generation_cache_ttl)
        logger.info(
            "thumbnail_generated",
            prompt=prompt_raw[:80],
            size=result.size,
            attempts=outcome.attempts,
        )
        return ServiceResult.ok(result)
