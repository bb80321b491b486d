"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "auto"  # auto | json | console; auto follows debug

    # Dev mode: trust x-user-id instead of verifying bearer tokens
    dev_auth_bypass: bool = False

    # Redis cache
    redis_url: str = "redis://localhost:6379"
    cache_backend: str = "redis"  # redis | memory
    cache_socket_timeout_seconds: float = 2.0

    # --- Search provider (SerpApi) ---
    serp_api_key: str = ""
    serp_base_url: str = "https://serpapi.com/search"
    serp_timeout_seconds: float = 10.0
    serp_retry_attempts: int = 2
    serp_backoff_seconds: float = 0.5  # multiplied by attempt number
    serp_retry_on_status: tuple[int, ...] = (429, 500, 502, 503, 504)
    serp_locale_gl: str = "us"
    serp_locale_hl: str = "en"
    serp_image_count: int = 20

    # Cache TTLs (seconds)
    search_cache_ttl: int = 1800
    collections_cache_ttl: int = 1800
    generation_cache_ttl: int = 86400

    # Placeholder used when a result carries no image at all
    placeholder_image_url: str = "https://via.placeholder.com/320x180?text=No+Image"

    # --- Image generation (Hugging Face inference) ---
    hf_api_key: str = ""
    hf_model_url: str = (
        "https://api-inference.huggingface.co/models/black-forest-labs/FLUX.1-dev"
    )
    hf_model_name: str = "FLUX.1-dev"
    hf_timeout_seconds: float = 120.0
    hf_retry_attempts: int = 3
    hf_backoff_seconds: float = 5.0
    hf_guidance_scale: float = 7.5
    hf_inference_steps: int = 30
    hf_width: int = 1024
    hf_height: int = 576  # 16:9 for video thumbnails

    # Variations
    max_variations: int = 5
    variation_pause_seconds: float = 1.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
