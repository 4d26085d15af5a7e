"""
Configuration settings for the lessonloop engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".lessonloop",
        description="Directory holding one JSON file per persisted document",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Lesson Policy
    # ========================================
    xp_per_correct: int = Field(
        default=10,
        description="XP credited for each correct answer",
    )
    skip_phase_index: int = Field(
        default=5,
        description="Phase index targeted by a skip challenge",
    )
    skip_max_mistakes: int = Field(
        default=2,
        description="Most mistakes a skip challenge may contain and still pass",
    )
    mastery_level: int = Field(
        default=6,
        description="Level at which a problem counts as mastered",
    )
    saved_lessons_limit: int = Field(
        default=50,
        description="Number of finished lessons kept in history",
    )
    duplicate_save_window_seconds: int = Field(
        default=60,
        description="Window in which a second save of the same lesson is ignored",
    )
    mistake_resolve_proficiency: int = Field(
        default=2,
        description="Clean reviews needed before a logged mistake is resolved",
    )

    # ========================================
    # Content Provider
    # ========================================
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Generative AI (Gemini) API key",
    )
    ai_model: str = Field(
        default="gemini-2.0-flash",
        description="AI model for lesson generation",
    )
    provider_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the generation API",
    )
    provider_timeout_seconds: float = Field(
        default=60.0,
        description="HTTP timeout for one generation request",
    )

    # ========================================
    # Learner Preferences
    # ========================================
    target_language: str = Field(
        default="Python",
        description="Programming language lessons are written in",
    )
    spoken_language: str = Field(
        default="English",
        description="Language used for explanations",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def has_ai_configured(self) -> bool:
        """Check if the content provider has an API key."""
        return bool(self.gemini_api_key)

    def get_lesson_config(self) -> dict[str, Any]:
        """Get lesson and progression policy as a dictionary."""
        return {
            "xp_per_correct": self.xp_per_correct,
            "skip_phase_index": self.skip_phase_index,
            "skip_max_mistakes": self.skip_max_mistakes,
            "mastery_level": self.mastery_level,
            "saved_lessons_limit": self.saved_lessons_limit,
            "duplicate_save_window_seconds": self.duplicate_save_window_seconds,
            "mistake_resolve_proficiency": self.mistake_resolve_proficiency,
        }

    def get_provider_config(self) -> dict[str, Any]:
        """Get content provider configuration as a dictionary."""
        return {
            "api_key": self.gemini_api_key,
            "model": self.ai_model,
            "base_url": self.provider_base_url,
            "timeout": self.provider_timeout_seconds,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
