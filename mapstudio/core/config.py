from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── AI Providers ──────────────────────────────────────────────────────────
    AI_PROVIDER: str = "hybrid"

    @field_validator("AI_PROVIDER")
    @classmethod
    def validate_ai_provider(cls, v: str) -> str:
        allowed = {"hybrid", "groq", "gemini"}
        if v.lower() not in allowed:
            raise ValueError(f"AI_PROVIDER must be one of {allowed}, got '{v}'")
        return v.lower()

    # Groq (Llama 3 - High Speed)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"

    # Google (Gemini - primary structure generator + image OCR)
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_VISION_MODEL: str = "gemini-1.5-flash"

    # ── Retry ─────────────────────────────────────────────────────────────────
    MAX_RETRIES: int = 2  # extra attempts after the first one
    RETRY_BASE_DELAY_MS: int = 800

    # ── Limits ────────────────────────────────────────────────────────────────
    MAX_FILE_SIZE_MB: int = 20
    AI_TIMEOUT_SECONDS: int = 300  # 5-minute timeout for AI processing
    MAX_SESSIONS: int = 256  # generation sessions kept in memory

    # ── Layout (scene units) ──────────────────────────────────────────────────
    NODE_WIDTH: float = 180
    NODE_HEIGHT: float = 80
    HORIZONTAL_SPACING: float = 60
    VERTICAL_SPACING: float = 60

    # ── Viewport ──────────────────────────────────────────────────────────────
    ZOOM_FACTOR: float = 1.1
    VIEWPORT_WIDTH: float = 1000  # initial view box before fitting
    VIEWPORT_HEIGHT: float = 800

    @field_validator("ZOOM_FACTOR")
    @classmethod
    def validate_zoom_factor(cls, v: float) -> float:
        if v <= 1:
            raise ValueError(f"ZOOM_FACTOR must be greater than 1, got {v}")
        return v

    # ── Core ──────────────────────────────────────────────────────────────────
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
