import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from manzai.features.script.length_band import TolerancePolicy, get_tolerance_policy


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # LLM provider
    LLM_PROVIDER: str = "xai"  # xai | groq
    XAI_API_KEY: Optional[str] = None
    XAI_MODEL: str = "grok-4-fast-reasoning"
    XAI_BASE_URL: str = "https://api.x.ai/v1"
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    LLM_TIMEOUT_SECONDS: float = 60.0

    # Usage row store (unset = usage tracking disabled)
    DATABASE_URL: Optional[str] = None

    # Credits
    FREE_QUOTA: int = 20
    CREDIT_PRODUCT_ID: str = "credit_100"
    CREDIT_GRANT_AMOUNT: int = 100

    # Script pipeline
    LENGTH_TOLERANCE: str = "pm10"  # pm10 | m10p25 | floor_x1.5 | pm5
    DEFAULT_LENGTH: int = 350
    MAX_LENGTH: int = 2000
    CONTINUATION_ENABLED: bool = True
    VERIFICATION_ENABLED: bool = False
    TITLE_REGENERATION_ENABLED: bool = False

    # HTTP
    CORS_ORIGINS: str = "*"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable pipeline configuration built once at startup."""
    tolerance: TolerancePolicy
    default_length: int = 350
    max_length: int = 2000
    continuation_enabled: bool = True
    verification_enabled: bool = False
    title_regeneration_enabled: bool = False
    continuation_threshold: int = 30
    free_quota: int = 20
    credit_product_id: str = "credit_100"
    credit_grant_amount: int = 100
    expose_error_detail: bool = True


def build_pipeline_config(settings_obj: Optional[Settings] = None) -> PipelineConfig:
    cfg = settings_obj or settings
    return PipelineConfig(
        tolerance=get_tolerance_policy(cfg.LENGTH_TOLERANCE),
        default_length=cfg.DEFAULT_LENGTH,
        max_length=cfg.MAX_LENGTH,
        continuation_enabled=cfg.CONTINUATION_ENABLED,
        verification_enabled=cfg.VERIFICATION_ENABLED,
        title_regeneration_enabled=cfg.TITLE_REGENERATION_ENABLED,
        free_quota=cfg.FREE_QUOTA,
        credit_product_id=cfg.CREDIT_PRODUCT_ID,
        credit_grant_amount=cfg.CREDIT_GRANT_AMOUNT,
        expose_error_detail=cfg.ENV.lower() != "production",
    )


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("manzai")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    provider_key = "GROQ_API_KEY" if (cfg.LLM_PROVIDER or "").lower() == "groq" else "XAI_API_KEY"
    required_keys = [provider_key, "DATABASE_URL"]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
