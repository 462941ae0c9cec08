"""
Pydantic Settings — centralized configuration loaded from environment variables.
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# backend/ (holds the bundled rules/ directory)
BACKEND_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    # ── Database (individual vars) ──
    POSTGRES_USER: str = "smartproof_user"
    POSTGRES_PASSWORD: str = "smartproof_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "smartproof_db"

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Workflow state backend ────────────────
    # "blob" → JSON documents in the blob store, "sql" → Postgres tables
    STATE_BACKEND: str = "blob"
    BLOB_STORAGE_ROOT: str = "./data/state"

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # ── Stage execution ───────────────────────
    STAGE_TIMEOUT_SECONDS: float = 600.0
    STAGE_SERVICE_TIMEOUT: float = 300.0

    # ── Stage services ────────────────────────
    CONTENT_EXTRACTION_URL: str = "http://localhost:7001/extract"
    VISUAL_ANALYSIS_URL: str = "http://localhost:7002/analyze-images"
    REFERENCE_LOOKUP_URL: str = "http://localhost:7003/search-products"
    COMPLIANCE_CHECK_URL: str = "http://localhost:7004/check-compliance"
    KNOWLEDGE_INDEXING_URL: str = "http://localhost:7005/index-document"
    STAGE_SERVICE_API_KEY: str = ""

    # ── Compliance rules ──────────────────────
    RULES_DIR: str = str(BACKEND_DIR / "rules")

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
