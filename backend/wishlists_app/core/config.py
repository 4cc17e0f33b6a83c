import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "WishLists API"
    app_tagline: str = "Crée, partage, maîtrise ton budget cadeaux."
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:5173"
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:5173", "http://127.0.0.1:5173"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except ValueError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]

    # Database: sqlite+aiosqlite:///./wishlists.db (dev) | postgresql+asyncpg://... (prod)
    postgres_dsn: str = "sqlite+aiosqlite:///./wishlists.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30
    redis_dsn: str = "redis://localhost:6379/0"

    access_token_expire_minutes: int = 60 * 24 * 7
    refresh_token_expire_minutes: int = 60 * 24 * 30
    password_reset_token_expire_minutes: int = 30
    invite_token_expire_minutes: int = 60 * 24 * 14
    # SECURITY: override via JWT_SECRET_KEY env var; app refuses to start with default outside local
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"

    # SMTP settings (optional)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@wishlists.local"
    smtp_use_tls: bool = True
    email_notifications_enabled: bool = True

    rate_limit_enabled: bool = True
    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 60
    rate_limit_login_requests: int = 5
    rate_limit_invite_requests: int = 20

    wishlist_cache_enabled: bool = True
    wishlist_cache_ttl_public: int = 60
    wishlist_cache_ttl_private: int = 30
    wishlist_slow_ms: float = 500.0

    og_fetch_timeout_s: float = 8.0

    default_currency: str = "EUR"
    budget_orange_threshold: int = 90
    budget_red_threshold: int = 100

    log_level: str = "INFO"
    log_file: str = ""


settings = Settings()
