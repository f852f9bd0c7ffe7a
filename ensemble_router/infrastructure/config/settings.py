from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Ensemble router runtime configuration.
    Every value can be overridden with an ENSEMBLE_ROUTER_* environment variable.
    """

    model_config = SettingsConfigDict(
        env_prefix="ENSEMBLE_ROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Service ===
    SERVICE_NAME: str = Field(default="ensemble-router")
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # === Memory retrieval ===
    EMBEDDING_DIMENSION: int = Field(default=384, gt=0)
    RETRIEVAL_MAX_RESULTS: int = Field(default=5, gt=0)
    SIMILARITY_WEIGHT: float = Field(default=0.7, ge=0.0, le=1.0)
    IMPORTANCE_WEIGHT: float = Field(default=0.3, ge=0.0, le=1.0)
    RECENCY_WINDOW_DAYS: int = Field(default=7, ge=0)
    RECENCY_BONUS: float = Field(default=0.2, ge=0.0, le=1.0)
    EMBEDDING_CACHE_TTL_SECONDS: int = Field(default=3600, ge=0)
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    MEMORY_STORE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # === Ensemble ===
    EXPERT_TIMEOUT_SECONDS: float = Field(default=8.0, gt=0)
    RESOLVE_TIMEOUT_SECONDS: float = Field(default=20.0, gt=0)
    VALIDATION_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    AGREEMENT_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    SYNTHESIS_TIMEOUT_SECONDS: float = Field(default=8.0, gt=0)

    @field_validator("LOG_FORMAT", mode="before")
    @classmethod
    def normalize_format(cls, v):
        if isinstance(v, str):
            return "json" if v.lower() == "json" else "console"
        return v


def get_settings() -> Settings:
    """Load settings from the environment"""
    return Settings()
