from __future__ import annotations

import base64
import binascii
import json
import math
from dataclasses import dataclass, field
from typing import Callable, Generic, Sequence, TypeVar

from ..errors import ValidationError
from .intent_service import coerce_int

T = TypeVar("T")

CursorKey = tuple[float, ...]


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    has_more: bool = False
    total: int | None = None
    page: int | None = None
    total_pages: int | None = None
    next_cursor: str | None = None


def clamp_limit(raw: object, default: int, maximum: int) -> int:
    return max(1, min(maximum, coerce_int(raw, default)))


def parse_page(raw: object) -> int:
    return max(1, coerce_int(raw, 1))


def offset_page(items: Sequence[T], page: int, limit: int) -> Page[T]:
    total = len(items)
    skip = (page - 1) * limit
    return Page(
        items=list(items[skip : skip + limit]),
        has_more=page * limit < total,
        total=total,
        page=page,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def sampled_page(sample: list[T], total: int, page: int, limit: int) -> Page[T]:
    """Offset metadata for a page drawn at random from ``total`` candidates."""
    return Page(
        items=sample,
        has_more=page * limit < total,
        total=total,
        page=page,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def encode_cursor(key: CursorKey) -> str:
    raw = json.dumps({"k": list(key)}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: str, width: int) -> CursorKey:
    """Decode an opaque cursor; anything malformed is a client error."""
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        values = payload["k"]
        if not isinstance(values, list) or len(values) != width:
            raise ValueError("cursor width mismatch")
        if any(isinstance(value, bool) or not isinstance(value, (int, float)) for value in values):
            raise ValueError("cursor values must be numeric")
        return tuple(float(value) for value in values)
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise ValidationError("Invalid pagination cursor", code="INVALID_CURSOR") from exc


def legacy_distance_cursor(cursor_distance: object, cursor_id: object) -> CursorKey | None:
    """``cursorDistance`` + ``cursorId`` pair accepted by the nearby feed."""
    if cursor_distance in (None, "") and cursor_id in (None, ""):
        return None
    try:
        distance = float(cursor_distance)  # type: ignore[arg-type]
        listing_id = int(str(cursor_id))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid pagination cursor", code="INVALID_CURSOR") from exc
    if math.isnan(distance) or math.isinf(distance):
        raise ValidationError("Invalid pagination cursor", code="INVALID_CURSOR")
    return (distance, float(listing_id))


def cursor_page(
    ordered: Sequence[T],
    key: Callable[[T], CursorKey],
    after: CursorKey | None,
    limit: int,
) -> Page[T]:
    """Items strictly after ``after`` in an already sorted sequence; no total is computed."""
    if after is None:
        remaining = list(ordered)
    else:
        remaining = [item for item in ordered if tuple(float(part) for part in key(item)) > after]
    items = remaining[:limit]
    has_more = len(items) == limit
    next_cursor = encode_cursor(key(items[-1])) if has_more and items else None
    return Page(items=items, has_more=has_more, next_cursor=next_cursor)
