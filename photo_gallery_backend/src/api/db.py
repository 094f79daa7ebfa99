import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy import Engine, create_engine, make_url, text

from src.api.config import Settings

DEFAULT_SQLITE_URL = "sqlite:///data/photos.db"

_POSTGRES_VARS = ["POSTGRES_URL", "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB", "POSTGRES_PORT"]


def _normalize_host(raw_host: str) -> str:
    """
    Normalize POSTGRES_URL into a host-only string when it contains a URL.

    Accepts either a URL (e.g. "postgresql://localhost:5000/gallery") or a bare host.
    """
    raw = (raw_host or "").strip()
    if not raw:
        return ""

    if raw.startswith(("postgres://", "postgresql://")):
        return urlparse(raw).hostname or ""

    return raw


def _split_host_port(host_value: str, fallback_port: str) -> tuple[str, str]:
    """Split "host[:port]" into (host, port), using fallback_port when none is given."""
    hv = (host_value or "").strip()
    if not hv:
        return "", fallback_port

    if ":" in hv:
        host, port = hv.rsplit(":", 1)
        return host.strip(), (port.strip() or fallback_port)

    return hv, fallback_port


# PUBLIC_INTERFACE
def build_postgres_dsn() -> Optional[str]:
    """
    Build a PostgreSQL DSN from POSTGRES_* environment variables.

    Returns None unless all of POSTGRES_URL, POSTGRES_USER, POSTGRES_PASSWORD,
    POSTGRES_DB and POSTGRES_PORT are set. Uses the psycopg3 driver prefix.
    """
    values = {k: (os.getenv(k) or "").strip() for k in _POSTGRES_VARS}
    if not all(values.values()):
        return None

    host, port = _split_host_port(_normalize_host(values["POSTGRES_URL"]), values["POSTGRES_PORT"])
    if not host:
        raise RuntimeError(
            "Invalid POSTGRES_URL. Expected hostname (e.g. 'localhost') or URL (e.g. 'postgresql://localhost:5000/gallery')."
        )

    user = values["POSTGRES_USER"]
    password = values["POSTGRES_PASSWORD"]
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{values['POSTGRES_DB']}"


# PUBLIC_INTERFACE
def resolve_database_url(settings: Settings) -> str:
    """Pick the store URL: DATABASE_URL, then POSTGRES_*, then local SQLite."""
    return settings.database_url or build_postgres_dsn() or DEFAULT_SQLITE_URL


# PUBLIC_INTERFACE
def get_engine(url: str) -> Engine:
    """Create an engine for the store. Does not connect."""
    kwargs: dict = {"pool_pre_ping": True, "future": True}
    if make_url(url).get_backend_name() == "sqlite":
        # Route handlers run on a threadpool.
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


def _ensure_sqlite_dir(engine: Engine) -> None:
    if engine.url.get_backend_name() != "sqlite":
        return
    database = engine.url.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


# PUBLIC_INTERFACE
def ensure_schema(engine: Engine) -> None:
    """
    Ensure the collection table exists.

    One row per named collection; the whole photo collection lives in `document`
    as JSON text and `version` increments on every save.
    """
    _ensure_sqlite_dir(engine)
    ddl = """
        CREATE TABLE IF NOT EXISTS photo_collections (
          name varchar(64) PRIMARY KEY,
          version integer NOT NULL,
          document text NOT NULL,
          updated_at varchar(40) NOT NULL
        )
    """
    with engine.begin() as conn:
        conn.execute(text(ddl))


# PUBLIC_INTERFACE
def new_uuid() -> uuid.UUID:
    """Generate a new UUIDv4."""
    return uuid.uuid4()


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Return current UTC timestamp with tzinfo."""
    return datetime.now(tz=timezone.utc)
