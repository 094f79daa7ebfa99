import os
from dataclasses import dataclass
from typing import Optional


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    val = _env(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


def _get_cors_origins() -> list[str]:
    """
    Parse CORS allow-origins from env.

    Env:
      - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins, or '*' to allow all.
        Example: 'http://localhost:3000,http://127.0.0.1:3000'
    """
    raw = _env("CORS_ALLOW_ORIGINS", "*")
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the gallery backend."""

    admin_username: str = "admin"
    admin_password: str = "change-me"
    admin_password_hash: Optional[str] = None
    database_url: Optional[str] = None
    image_storage_dir: str = "images"
    public_api_base_url: str = ""
    cors_allow_origins: tuple[str, ...] = ("*",)
    seed_file: Optional[str] = None
    log_level: str = "INFO"
    port: int = 4000

    # PUBLIC_INTERFACE
    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Env:
          - ADMIN_USERNAME / ADMIN_PASSWORD: the single login credential pair
          - ADMIN_PASSWORD_HASH: passlib hash that takes precedence over ADMIN_PASSWORD
          - DATABASE_URL: SQLAlchemy URL (falls back to POSTGRES_* and then local SQLite)
          - IMAGE_STORAGE_DIR: blob root directory
          - PUBLIC_API_BASE_URL: e.g. 'http://localhost:4000'
          - PHOTOS_SEED_FILE: legacy photos.json imported into an empty store
          - LOG_LEVEL, PORT
        """
        return cls(
            admin_username=_env("ADMIN_USERNAME", "admin"),
            admin_password=os.getenv("ADMIN_PASSWORD") or "change-me",
            admin_password_hash=_env("ADMIN_PASSWORD_HASH") or None,
            database_url=_env("DATABASE_URL") or None,
            image_storage_dir=_env("IMAGE_STORAGE_DIR", "images") or "images",
            public_api_base_url=_env("PUBLIC_API_BASE_URL").rstrip("/"),
            cors_allow_origins=tuple(_get_cors_origins()),
            seed_file=_env("PHOTOS_SEED_FILE") or None,
            log_level=_env("LOG_LEVEL", "INFO").upper() or "INFO",
            port=_env_int("PORT", 4000),
        )
