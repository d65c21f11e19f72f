from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
    )

    APP_NAME: str = "CrossFramework"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Tenant used when the routing layer does not resolve one
    DEFAULT_TENANT_ID: str = "default"

    # ── Overlap cache / matrix ──
    OVERLAP_CACHE_TTL_HOURS: int = 24
    MATRIX_MAX_CONCURRENCY: int = 4

    # ── Gap analysis ──
    UNMAPPED_CONTROLS_LIMIT: int = 100
    SUGGESTION_LIMIT: int = 5
    SUGGESTION_MIN_SIMILARITY: float = 0.3
    REQUIREMENT_MIN_CONTROLS: int = 3
    REQUIREMENT_SUGGESTION_LIMIT: int = 10

    # ── Qualitative bridge ──
    LINK_CONTROL_SAMPLE: int = 100
    LINK_MIN_SIMILARITY: float = 0.2
    LINK_MAX_RESULTS: int = 10
    ASSESSMENT_RECENCY_DAYS: int = 30

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


settings = Settings()
