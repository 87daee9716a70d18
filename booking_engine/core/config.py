from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./booking_engine.db"
    database_ssl: bool = False

    # JWT (host access tokens and guest manage links)
    secret_key: str = "change-me"
    access_token_expire_minutes: int = 15
    manage_token_expire_days: int = 90
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Scheduling defaults, applied when an agency or booking type is created
    default_timezone: str = "Asia/Dubai"
    default_duration_minutes: int = 30
    default_min_notice_minutes: int = 24 * 60
    default_max_future_days: int = 60
    default_buffer_before_minutes: int = 0
    default_buffer_after_minutes: int = 0

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
