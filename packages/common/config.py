from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCORE_TABLE = Path(__file__).resolve().parents[2] / "services" / "exam" / "data" / "score_conversion.json"


class Settings(BaseSettings):
    """Strongly-typed settings model loaded from env / .env.

    Notes:
        - Scoring works without any secret; only the explanation feature needs `GEMINI_API_KEY`.
        - The explanation feature refuses to initialize when the key is missing (see
          `services.exam.explainer.ExplanationService.from_settings`).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        protected_namespaces=()
    )

    SERVICE_NAME: str = Field(default="toeic-exam", description="Service name")
    LOG_LEVEL: str = Field(default="INFO", description="Root logging level")

    GEMINI_API_KEY: Optional[str] = Field(default=None, description="Generative AI API key (query parameter)")
    GEMINI_ENDPOINT: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the generative AI API",
    )
    GEMINI_MODEL: str = Field(default="gemini-flash-latest", description="Model used for explanations")
    EXPLANATION_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0, description="Per-call timeout")
    EXPLANATION_MAX_RETRIES: int = Field(default=1, ge=0, le=5, description="Retries on transport/5xx failure")
    EXPLANATION_RETRY_BACKOFF_SECONDS: float = Field(default=0.5, ge=0, description="Base backoff between retries")
    EXPLANATION_CONCURRENCY: int = Field(default=4, ge=1, description="Parallel explanation calls in batch mode")
    EXPLANATION_LANGUAGE: str = Field(default="English", description="Language of generated explanations")

    SCORE_FALLBACK: int = Field(default=5, ge=0, description="Scaled score used when a count has no table entry")
    MAX_SECTION_CORRECT: int = Field(default=100, ge=0, description="Questions per section (listening or reading)")

    CONTENT_PATH: Optional[Path] = Field(default=None, description="JSON file with exam content to preload")
    SCORE_TABLE_PATH: Path = Field(default=DEFAULT_SCORE_TABLE, description="JSON score conversion table")


@lru_cache()
def get_settings() -> Settings:
    """Return a cached singleton `Settings` instance."""
    return Settings()
