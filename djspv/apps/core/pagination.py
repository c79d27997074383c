"""
Keyset cursors for ``(-created_at, -id)`` ordered listings.

A cursor is ``<UTC timestamp with microseconds>_<id>`` of the last row on the
previous page.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

CURSOR_TS_FORMAT = "%Y%m%dT%H%M%S%f"
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass
class Cursor:
    created_at: datetime
    identifier: str


def decode_cursor(raw: Optional[str]) -> Optional[Cursor]:
    if not raw:
        return None
    try:
        sep = raw.index("_")
    except ValueError:
        return None
    ts_part, id_part = raw[:sep], raw[sep + 1 :]
    if not id_part:
        return None
    try:
        dt = datetime.strptime(ts_part, CURSOR_TS_FORMAT).replace(tzinfo=dt_timezone.utc)
    except ValueError:
        return None
    return Cursor(created_at=dt, identifier=id_part)


def encode_cursor(row) -> Optional[str]:
    created = row.created_at
    if not created:
        return None
    if timezone.is_naive(created):
        created = timezone.make_aware(created, timezone=dt_timezone.utc)
    return f"{created.astimezone(dt_timezone.utc).strftime(CURSOR_TS_FORMAT)}_{row.pk}"


def parse_limit(raw: Optional[str], default: int = DEFAULT_LIMIT) -> int:
    if raw in (None, ""):
        return default
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    return max(1, min(MAX_LIMIT, limit))


def paginate(qs, limit: int, cursor: Optional[Cursor]):
    """Return ``(rows, has_more, next_cursor)`` for a queryset."""
    if cursor:
        try:
            qs = qs.filter(
                Q(created_at__lt=cursor.created_at)
                | (Q(created_at=cursor.created_at) & Q(pk__lt=cursor.identifier))
            )
        except DjangoValidationError:
            raise ValidationError("invalid cursor")
    qs = qs.order_by("-created_at", "-pk")
    rows = list(qs[: limit + 1])
    has_more = len(rows) > limit
    if has_more:
        rows = rows[:limit]
    next_cursor = encode_cursor(rows[-1]) if has_more and rows else None
    return rows, has_more, next_cursor


def page_payload(items: list, limit: int, has_more: bool, next_cursor: Optional[str]) -> dict:
    return {
        "items": items,
        "pageInfo": {"nextCursor": next_cursor, "hasMore": has_more},
        "meta": {"limit": limit},
    }
