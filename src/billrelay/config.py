from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://app:devpassword@db:5432/billrelay"

    CHANNEL_SECRET: str = ""
    CHANNEL_ACCESS_TOKEN: str = ""
    LINE_API_BASE_URL: str = "https://api.line.me"
    LINE_API_TIMEOUT: float = 10.0

    PROMPTPAY_ID: str = "0909944974"

    ARTIFACT_DIR: str = "artifacts"
    PUBLIC_BASE_URL: str = "http://localhost:4001"
    QR_RETENTION_DAYS: int = 7
    CLEANUP_INTERVAL_SECONDS: int = 24 * 60 * 60

    PORT: int = 4001
    LOG_LEVEL: str = "info"
    APP_ENV: str = "development"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return settings
