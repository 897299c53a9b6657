from __future__ import annotations

import base64
import json
from dataclasses import dataclass


class CursorError(ValueError):
    pass


@dataclass(frozen=True)
class Cursor:
    """Position after the last listed record of a collection."""

    collection: str
    created_at: float
    item_id: str

    @property
    def position(self) -> tuple[float, str]:
        return (self.created_at, self.item_id)


def encode_cursor(cursor: Cursor) -> str:
    raw = json.dumps(
        {"c": cursor.collection, "t": cursor.created_at, "id": cursor.item_id},
        separators=(",", ":"),
    ).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(value: str, *, collection: str | None = None) -> Cursor:
    s = (value or "").strip()
    if not s:
        raise CursorError("Empty cursor")

    pad = "=" * ((4 - (len(s) % 4)) % 4)
    try:
        obj = json.loads(base64.urlsafe_b64decode((s + pad).encode("ascii")).decode("utf-8"))
        cursor = Cursor(collection=str(obj["c"]), created_at=float(obj["t"]), item_id=str(obj["id"]))
    except Exception as e:
        raise CursorError("Invalid cursor") from e

    if collection is not None and cursor.collection != collection:
        raise CursorError(f'Cursor does not belong to "{collection}"')
    return cursor
