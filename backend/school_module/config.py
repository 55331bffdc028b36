import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("SCHOOL_DATABASE_URL", os.getenv("DATABASE_URL", ""))
    db_isolation_level: str = os.getenv("SCHOOL_DB_ISOLATION_LEVEL", "REPEATABLE READ")
    jwt_secret: str = os.getenv("SCHOOL_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production"))
    jwt_algorithm: str = os.getenv("SCHOOL_JWT_ALGORITHM", "HS256")
    jwt_audience: str = os.getenv("SCHOOL_JWT_AUDIENCE", "")
    jwt_exp_minutes: int = int(os.getenv("SCHOOL_JWT_EXP_MINUTES", "60"))
    page_size: int = int(os.getenv("SCHOOL_PAGE_SIZE", "10"))
    inbox_limit: int = int(os.getenv("SCHOOL_INBOX_LIMIT", "100"))
    message_max_length: int = int(os.getenv("SCHOOL_MESSAGE_MAX_LENGTH", "1000"))
    poll_interval_seconds: int = int(os.getenv("SCHOOL_POLL_INTERVAL_SECONDS", "5"))
    user_search_limit: int = int(os.getenv("SCHOOL_USER_SEARCH_LIMIT", "10"))
    seed_demo: bool = _env_bool("SCHOOL_SEED_DEMO")
    cors_origins: list[str] = field(
        default_factory=lambda: _env_list("SCHOOL_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )


settings = Settings()
