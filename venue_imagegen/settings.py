from __future__ import annotations

from functools import lru_cache
from typing import ClassVar

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")

    openai_api_key: str | None = Field(default=None, description="API key for OpenAI")
    openai_base_url: str | None = Field(default=None, description="Optional base URL override for the OpenAI API")
    ai_gateway_api_key: str | None = Field(default=None, description="API key for the AI gateway fronting OpenAI")
    ai_gateway_url: str | None = Field(default=None, description="Base URL of the AI gateway fronting OpenAI")

    bfl_api_key: str | None = Field(default=None, description="API key for Black Forest Labs (Flux)")
    bfl_api_base: str = Field(default="https://api.bfl.ai/v1", description="Base URL for the Black Forest Labs API")

    fal_key: str | None = Field(default=None, description="API key for fal.ai")

    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_service_role_key: str | None = Field(default=None, description="Supabase service role key (storage admin credential)")
    supabase_anon_key: str | None = Field(default=None, description="Supabase anon key, used for record writes when no service role key is set")
    storage_bucket: str = Field(default="generated-images", description="Object storage bucket for generated assets")
    records_table: str = Field(default="generated_images", description="Table holding generated image records")

    poll_interval_seconds: float = Field(default=2.0, gt=0, description="Fixed delay between status polls")
    poll_max_attempts: int = Field(default=60, ge=1, description="Maximum status polls before a job is abandoned")
    http_timeout_seconds: float = Field(default=120.0, gt=0, description="Transport timeout for outbound HTTP calls")

    webp_quality: int = Field(default=80, ge=1, le=100, description="WebP quality used by the post-processor")
    max_image_edge: int = Field(default=2048, ge=1, description="Longest edge allowed after post-processing")
    compress_inline_assets: bool = Field(
        default=True,
        description="Re-encode inline (base64) provider output to WebP; when false it is uploaded as PNG unchanged.",
    )

    @property
    def openai_credentials(self) -> tuple[str | None, str | None]:
        """Return (api_key, base_url), preferring the AI gateway when configured."""
        if self.ai_gateway_api_key:
            return self.ai_gateway_api_key, self.ai_gateway_url or self.openai_base_url
        return self.openai_api_key, self.openai_base_url

    @property
    def use_openai(self) -> bool:
        """Determine if OpenAI should be used based on available credentials."""
        return bool(self.openai_credentials[0])

    @property
    def use_bfl(self) -> bool:
        """Determine if Black Forest Labs should be used based on available credentials."""
        return bool(self.bfl_api_key)

    @property
    def use_fal(self) -> bool:
        """Determine if fal.ai should be used based on available credentials."""
        return bool(self.fal_key)

    @property
    def use_storage(self) -> bool:
        """Storage uploads require the service role key; there is no anonymous fallback."""
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def records_key(self) -> str | None:
        return self.supabase_service_role_key or self.supabase_anon_key

    @property
    def use_records(self) -> bool:
        return bool(self.supabase_url and self.records_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
