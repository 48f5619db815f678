from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = True
    # Create tables on startup instead of running Alembic (local development only)
    auto_create_tables: bool = False

    # Access tokens are issued by the auth service; we only verify them
    secret_key: str
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Scheduling rules
    default_timezone: str = "UTC"
    default_slot_duration: int = 30
    max_materialize_days: int = 90
    max_bulk_patterns: int = 7
    # Strict: completing requires passing through in-exam. Relaxed lets
    # start/complete jump from any non-terminal state.
    strict_lifecycle: bool = True

    # Listing
    default_page_size: int = 10
    max_page_size: int = 100

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
