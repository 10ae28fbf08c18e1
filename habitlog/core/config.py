from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://habitlog:habitlog@db:5432/habitlog"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    # Trailing window shown by the weekly habit view.
    LOG_WINDOW_DAYS: int = 7
    NOTES_MAX_LENGTH: int = 500

    # Manual statistics recomputes allowed per user per calendar day.
    MANUAL_RECOMPUTE_PER_DAY: int = 1

    # Status written by the nightly backfill for daily habits left unlogged.
    AUTO_CHECK_STATUS: str = "achieved"

    # Shared secret the scheduler sends in X-Job-Token.
    JOB_TOKEN: str = "changeme-job-token"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
