from __future__ import annotations

import pytest

from fortune.api.pagination import Cursor, CursorError, decode_cursor, encode_cursor


def test_cursor_roundtrip() -> None:
    c = Cursor(collection="people", created_at=123.456, item_id="abc")
    decoded = decode_cursor(encode_cursor(c), collection="people")
    assert decoded.created_at == pytest.approx(c.created_at)
    assert decoded.item_id == c.item_id
    assert decoded.position == (decoded.created_at, "abc")


def test_cursor_invalid() -> None:
    with pytest.raises(CursorError):
        decode_cursor("not-a-valid-cursor")
    with pytest.raises(CursorError):
        decode_cursor("   ")


def test_cursor_rejects_other_collection() -> None:
    encoded = encode_cursor(Cursor(collection="pets", created_at=1.0, item_id="x"))
    with pytest.raises(CursorError):
        decode_cursor(encoded, collection="people")
