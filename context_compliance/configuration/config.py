"""Configuration management for the context compliance engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings read from the environment."""

    # Token budget
    context_ceiling_tokens: int = Field(default=180_000, alias="CONTEXT_CEILING_TOKENS")
    context_protected_recent_count: int = Field(
        default=5, alias="CONTEXT_PROTECTED_RECENT_COUNT"
    )
    context_tool_result_floor_tokens: int = Field(
        default=500, alias="CONTEXT_TOOL_RESULT_FLOOR_TOKENS"
    )
    context_emergency_window_ratio: float = Field(
        default=0.9, alias="CONTEXT_EMERGENCY_WINDOW_RATIO"
    )

    # Delivery routing
    context_proxy_threshold_tokens: int = Field(
        default=80_000, alias="CONTEXT_PROXY_THRESHOLD_TOKENS"
    )

    # Reasoning (extended thinking) mode
    context_reasoning_mode: bool = Field(default=True, alias="CONTEXT_REASONING_MODE")
    context_missing_reasoning_policy: Literal["placeholder", "disable_reasoning"] = Field(
        default="placeholder", alias="CONTEXT_MISSING_REASONING_POLICY"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("context_missing_reasoning_policy", mode="before")
    @classmethod
    def normalize_missing_reasoning_policy(cls, value: str | None) -> str:
        """Normalize missing-reasoning policy value from environment."""
        if value is None:
            return "placeholder"
        normalized = str(value).strip().lower().replace("-", "_")
        if normalized in {"placeholder", "disable_reasoning"}:
            return normalized
        raise ValueError(
            "CONTEXT_MISSING_REASONING_POLICY must be one of: placeholder, disable_reasoning"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
