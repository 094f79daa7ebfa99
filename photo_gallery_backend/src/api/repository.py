"""
Photo repository: CRUD and reorder over the stored collection.

Every operation loads the collection from the durable store, computes the new
state and saves it in full. All of them hold one lock, so the load-mutate-save
cycles of concurrent requests never interleave and no update is lost.
"""

import logging
import threading
from typing import Any, List, Mapping, Optional

from src.api.db import new_uuid
from src.api.errors import NotFoundFailure, ValidationFailure
from src.api.ordering import apply_order, next_display_order, parse_display_order, sort_photos
from src.api.schemas import Photo
from src.api.store import CollectionDocument, DurableStore

logger = logging.getLogger(__name__)


def _present(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _find_index(document: CollectionDocument, photo_id: str) -> int:
    for index, photo in enumerate(document.photos):
        if photo.id == photo_id:
            return index
    raise NotFoundFailure("Photo not found", photo_id=photo_id)


class PhotoRepository:
    def __init__(self, store: DurableStore) -> None:
        self.store = store
        self._lock = threading.RLock()

    # PUBLIC_INTERFACE
    def list(self) -> List[Photo]:
        """All photos sorted by (displayOrder, title)."""
        with self._lock:
            return sort_photos(self.store.load().photos)

    # PUBLIC_INTERFACE
    def create(self, title: Optional[str], description: Optional[str], filename: Optional[str]) -> Photo:
        """
        Append a new photo ranked after every existing one.

        Raises ValidationFailure when title or filename is missing or blank.
        """
        if not _present(title) or not _present(filename):
            raise ValidationFailure("Title and filename are required")

        with self._lock:
            document = self.store.load()
            photo = Photo(
                id=str(new_uuid()),
                title=title,
                description=description if isinstance(description, str) else "",
                filename=filename,
                display_order=next_display_order(document.photos),
            )
            document.photos.append(photo)
            self.store.save(document)

        logger.info(f"Created photo {photo.id} at position {photo.display_order}")
        return photo

    # PUBLIC_INTERFACE
    def update(self, photo_id: str, patch: Mapping[str, Any]) -> Photo:
        """
        Apply a partial update.

        Patch keys: title, description, filename, displayOrder. Empty title or
        filename values are ignored, any string description is applied, and a
        displayOrder that is not an integer-valued number is ignored.

        Raises NotFoundFailure for an unknown id.
        """
        with self._lock:
            document = self.store.load()
            index = _find_index(document, photo_id)
            changes: dict[str, Any] = {}

            title = patch.get("title")
            if _present(title):
                changes["title"] = title

            description = patch.get("description")
            if isinstance(description, str):
                changes["description"] = description

            filename = patch.get("filename")
            if _present(filename):
                changes["filename"] = filename

            display_order = parse_display_order(patch.get("displayOrder"))
            if display_order is not None:
                changes["display_order"] = display_order

            photo = document.photos[index].model_copy(update=changes)
            document.photos[index] = photo
            self.store.save(document)

        logger.info(f"Updated photo {photo_id} fields={sorted(changes)}")
        return photo

    # PUBLIC_INTERFACE
    def delete(self, photo_id: str) -> Photo:
        """Remove a photo and return it so the caller can deal with its blob."""
        with self._lock:
            document = self.store.load()
            removed = document.photos.pop(_find_index(document, photo_id))
            self.store.save(document)

        logger.info(f"Deleted photo {photo_id}")
        return removed

    # PUBLIC_INTERFACE
    def reorder(self, order: Any) -> List[Photo]:
        """
        Rank the photos named in `order` first, in that sequence; every other
        photo follows, keeping its relative order. All-or-nothing.
        """
        with self._lock:
            document = self.store.load()
            document.photos = apply_order(document.photos, order)
            self.store.save(document)

        logger.info(f"Reordered {len(order)} of {len(document.photos)} photos")
        return sort_photos(document.photos)
