"""
Display ordering rules for the photo collection.

Every client-facing read is sorted by (displayOrder, title). Reordering takes a
possibly-partial list of ids: listed photos are ranked 1..n in the given
sequence and every photo left out keeps its relative order after them.
"""

import math
from typing import Any, Iterable, List, Optional, Sequence

from src.api.errors import ValidationFailure
from src.api.schemas import Photo

ORDER_REQUIRED_MESSAGE = "Order must be a non-empty array of photo IDs"
ORDER_UNKNOWN_MESSAGE = "Order contains unknown photo IDs"
ORDER_DUPLICATE_MESSAGE = "Order contains duplicate photo IDs"


def sort_key(photo: Photo) -> tuple[int, str]:
    return (photo.display_order, photo.title)


# PUBLIC_INTERFACE
def sort_photos(photos: Iterable[Photo]) -> List[Photo]:
    """Return photos in display order, ties broken by title."""
    return sorted(photos, key=sort_key)


# PUBLIC_INTERFACE
def next_display_order(photos: Iterable[Photo]) -> int:
    """Display order for a newly appended photo: max(existing, 0) + 1."""
    return max([0, *(p.display_order for p in photos)]) + 1


# PUBLIC_INTERFACE
def parse_display_order(value: Any) -> Optional[int]:
    """
    Lenient displayOrder parsing for patches.

    Accepts ints, integral floats and numeric strings. Returns None for anything
    else (None, "", booleans, NaN/inf, fractions, non-numeric text) so the
    caller can ignore the field instead of failing the request.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def _validate_order(order: Any, photos: Sequence[Photo]) -> List[str]:
    if not isinstance(order, list) or not order:
        raise ValidationFailure(ORDER_REQUIRED_MESSAGE)
    if not all(isinstance(photo_id, str) for photo_id in order):
        raise ValidationFailure(ORDER_REQUIRED_MESSAGE)

    known = {p.id for p in photos}
    unknown = [photo_id for photo_id in order if photo_id not in known]
    if unknown:
        raise ValidationFailure(ORDER_UNKNOWN_MESSAGE, unknown=unknown)

    if len(set(order)) != len(order):
        raise ValidationFailure(ORDER_DUPLICATE_MESSAGE)
    return order


# PUBLIC_INTERFACE
def apply_order(photos: Sequence[Photo], order: Any) -> List[Photo]:
    """
    Compute the reordered collection.

    Args:
      photos: the collection in stored sequence
      order: photo ids in the desired ranking, for some or all photos

    Returns:
      New Photo objects in the same stored sequence with rewritten display
      orders. The input is not modified.

    Raises:
      ValidationFailure: order is empty, not a list of ids, names an unknown
        photo, or repeats an id. Nothing is changed in that case.
    """
    order = _validate_order(order, photos)
    rank = {photo_id: index + 1 for index, photo_id in enumerate(order)}

    # sorted() is stable, so remaining photos with equal orders keep stored sequence.
    remaining = sorted((p for p in photos if p.id not in rank), key=lambda p: p.display_order)
    start = len(order) + 1
    for offset, photo in enumerate(remaining):
        rank[photo.id] = start + offset

    return [p.model_copy(update={"display_order": rank[p.id]}) for p in photos]
