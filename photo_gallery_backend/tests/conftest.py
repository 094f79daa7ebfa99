"""
Pytest fixtures for the gallery backend tests.

Every test gets its own SQLite database and blob directory under tmp_path.
"""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.config import Settings
from src.api.db import get_engine
from src.api.main import create_app
from src.api.repository import PhotoRepository
from src.api.schemas import Photo
from src.api.store import DurableStore

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "s3cret-pass"


def make_photo(photo_id: str, order: int, title: str | None = None) -> Photo:
    """Photo with predictable title and filename."""
    return Photo(
        id=photo_id,
        title=title or f"Photo {photo_id}",
        filename=f"{photo_id}.jpg",
        display_order=order,
    )


# =============================================================================
# Settings / Store Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at tmp_path."""
    return Settings(
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
        database_url=f"sqlite:///{tmp_path / 'data' / 'photos.db'}",
        image_storage_dir=str(tmp_path / "images"),
    )


@pytest.fixture
def store(settings: Settings) -> Generator[DurableStore, None, None]:
    """Durable store with its schema in place."""
    store = DurableStore(get_engine(settings.database_url))
    store.ensure_schema()
    yield store
    store.engine.dispose()


@pytest.fixture
def repository(store: DurableStore) -> PhotoRepository:
    return PhotoRepository(store)


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """FastAPI TestClient (runs the lifespan)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def token(client: TestClient) -> str:
    response = client.post("/api/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def blob_dir(settings: Settings) -> Path:
    return Path(settings.image_storage_dir) / "fulls"
