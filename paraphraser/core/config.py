import logging

from pydantic import AliasChoices, ConfigDict, Field
from pydantic_settings import BaseSettings
from typing import Literal, Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # Language model (Groq)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    MODEL_MAX_OUTPUT_TOKENS: int = 8192
    MODEL_TIMEOUT_SECONDS: float = 60.0

    # Paraphrase behaviour
    HUMANIZE_MODE: Literal["rewrite", "options"] = "rewrite"
    PARAPHRASE_STREAM_DEFAULT: bool = False
    WORD_COUNT_TOLERANCE: int = 10

    # Watchman usage analytics
    WATCHMAN_OFF: bool = False
    WATCHMAN_BASE_URL: str = Field(
        default="",
        validation_alias=AliasChoices("WATCHMAN_BASE_URL", "NEXT_PUBLIC_WATCHMAN_BASE_URL"),
    )
    WATCHMAN_PRODUCT: str = "tabs-editor-tool"
    WATCHMAN_TIMEOUT_SECONDS: float = 10.0
    WATCHMAN_CAPTURE_MAX_BYTES: int = 0  # 0 = keep the whole streamed body
    LOG_BUFFER_MAX_ENTRIES: int = 0  # 0 = unbounded
    BACKGROUND_DRAIN_TIMEOUT_SECONDS: float = 10.0

    # Clerk Auth
    CLERK_SECRET_KEY: Optional[str] = None
    CLERK_JWT_SECRET: Optional[str] = None  # HS256 verification for dev/tests
    CLERK_ISSUER: Optional[str] = None  # e.g. https://your-instance.clerk.accounts.dev
    CLERK_JWKS_URL: Optional[str] = None
    CLERK_AUDIENCE: Optional[str] = None
    CLERK_API_URL: str = "https://api.clerk.com/v1"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()


def analytics_disabled(settings_obj: Optional[Settings] = None) -> bool:
    """Process-wide analytics kill-switch."""
    cfg = settings_obj or settings
    return bool(getattr(cfg, "WATCHMAN_OFF", False))


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("paraphraser")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = ["GROQ_API_KEY"]
    if not analytics_disabled(cfg):
        required_keys.append("WATCHMAN_BASE_URL")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
