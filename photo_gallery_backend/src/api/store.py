"""
Durable store for the photo collection.

The whole collection is one JSON document in one database row. `load` reads it
in full and `save` replaces it in full inside a single transaction, so a reader
never sees a partial write. Each save bumps `version` and only succeeds if the
row is still at the version the document was loaded at.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError
from sqlalchemy import Engine, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.api.db import ensure_schema, utcnow
from src.api.errors import CorruptStoreFailure, StoreConflictFailure, StoreFailure
from src.api.schemas import Photo

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "photos"


@dataclass
class CollectionDocument:
    """The persisted photo collection at a given version."""

    version: int = 0
    photos: List[Photo] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps({"version": self.version, "photos": [p.to_record() for p in self.photos]}, indent=2)


def _raw_order(record: Any) -> Any:
    value = record.get("displayOrder") if isinstance(record, dict) else None
    return 0 if value is None else value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _legacy_order_ranks(records: List[Any]) -> Optional[dict]:
    """
    Integer ranks for documents holding fractional displayOrder values.

    Older writers stored whatever number a patch supplied (e.g. 2.5). Every
    distinct numeric value is mapped to its 1-based rank, so relative order
    and ties survive. Returns None when all orders are already integers.
    """
    values = [_raw_order(r) for r in records]
    if not any(_is_number(v) and not float(v).is_integer() for v in values):
        return None
    distinct = sorted({float(v) for v in values if _is_number(v)})
    return {value: rank for rank, value in enumerate(distinct, start=1)}


def _parse_photo(record: Any, ranks: Optional[dict] = None) -> Photo:
    if not isinstance(record, dict):
        raise CorruptStoreFailure("Photo record is not an object")
    data = dict(record)
    # Older documents may lack these; everything else is required.
    data["displayOrder"] = _raw_order(data)
    if ranks is not None and _is_number(data["displayOrder"]):
        data["displayOrder"] = ranks[float(data["displayOrder"])]
    if data.get("description") is None:
        data["description"] = ""
    try:
        return Photo.model_validate(data)
    except ValidationError as exc:
        raise CorruptStoreFailure("Invalid photo record", photo_id=data.get("id")) from exc


# PUBLIC_INTERFACE
def parse_document(raw: str, version: int = 0) -> CollectionDocument:
    """
    Parse stored document text.

    Accepts the versioned object layout and a bare JSON array of photos.
    Blank text is an empty collection. Anything else raises CorruptStoreFailure;
    a partially valid document is never returned.
    """
    if not raw or not raw.strip():
        return CollectionDocument(version=version)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CorruptStoreFailure("Stored collection is not valid JSON") from exc

    if isinstance(data, dict):
        records = data.get("photos")
    else:
        records = data
    if not isinstance(records, list):
        raise CorruptStoreFailure("Stored collection has no photo array")

    ranks = _legacy_order_ranks(records)
    photos = [_parse_photo(r, ranks) for r in records]
    ids = [p.id for p in photos]
    if len(set(ids)) != len(ids):
        raise CorruptStoreFailure("Stored collection has duplicate photo ids")
    return CollectionDocument(version=version, photos=photos)


class DurableStore:
    """SQL-backed store holding one named collection document."""

    def __init__(self, engine: Engine, name: str = DEFAULT_COLLECTION) -> None:
        self.engine = engine
        self.name = name

    def ensure_schema(self) -> None:
        try:
            ensure_schema(self.engine)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreFailure("Could not initialize store") from exc

    # PUBLIC_INTERFACE
    def load(self) -> CollectionDocument:
        """Load the full collection; an absent document is an empty collection."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    text("SELECT version, document FROM photo_collections WHERE name = :name"),
                    {"name": self.name},
                ).mappings().first()
        except SQLAlchemyError as exc:
            raise StoreFailure("Could not load collection") from exc

        if not row:
            return CollectionDocument()
        return parse_document(row["document"], version=int(row["version"]))

    # PUBLIC_INTERFACE
    def save(self, document: CollectionDocument) -> CollectionDocument:
        """
        Replace the stored collection with `document`.

        Returns the saved document at its new version.

        Raises:
          StoreConflictFailure: the stored version is no longer document.version
          StoreFailure: the database write failed
        """
        new_version = document.version + 1
        saved = CollectionDocument(version=new_version, photos=list(document.photos))
        params = {
            "name": self.name,
            "expected": document.version,
            "version": new_version,
            "document": saved.to_json(),
            "updated_at": utcnow().isoformat(),
        }
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    text(
                        """
                        UPDATE photo_collections
                        SET version = :version, document = :document, updated_at = :updated_at
                        WHERE name = :name AND version = :expected
                        """
                    ),
                    params,
                )
                if result.rowcount == 0:
                    if document.version != 0:
                        raise StoreConflictFailure(
                            "Collection changed since it was loaded", expected_version=document.version
                        )
                    conn.execute(
                        text(
                            """
                            INSERT INTO photo_collections (name, version, document, updated_at)
                            VALUES (:name, :version, :document, :updated_at)
                            """
                        ),
                        params,
                    )
        except IntegrityError as exc:
            raise StoreConflictFailure("Collection was created concurrently") from exc
        except SQLAlchemyError as exc:
            raise StoreFailure("Could not save collection") from exc

        return saved

    # PUBLIC_INTERFACE
    def import_seed_file(self, path: Path) -> bool:
        """
        Copy a legacy photos.json array into the store if it has never been saved.

        Returns True when the seed was imported.
        """
        current = self.load()
        if current.version != 0:
            return False

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreFailure("Could not read seed file", path=str(path)) from exc

        seed = parse_document(raw)
        self.save(CollectionDocument(version=0, photos=seed.photos))
        logger.info(f"Imported {len(seed.photos)} photos from {path}")
        return True
