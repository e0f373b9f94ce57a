"""Opaque keyset cursors.

A cursor records the sort it was issued under, the sort key of the last row
on the page and that row's id. Offset requests are converted into the same
cursor, so both pagination styles resume through one keyset predicate.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
import datetime as dt

import msgspec

from .errors import InvalidCursorError
from .models import SortOrder

type SortKey = int | str | dt.datetime | None


class _CursorPayload(msgspec.Struct, array_like=True, frozen=True):
    sort: str
    key: int | str | None
    id: int


_DECODER = msgspec.json.Decoder(_CursorPayload)


@dataclasses.dataclass(frozen=True, slots=True)
class Cursor:
    """Decoded position in an ordered result set."""

    sort: SortOrder
    key: SortKey
    id: int


def _wire_key(sort: SortOrder, key: SortKey) -> int | str | None:
    if sort is SortOrder.UPDATED and isinstance(key, dt.datetime):
        return key.astimezone(dt.UTC).isoformat()
    if isinstance(key, dt.datetime):
        raise InvalidCursorError.malformed()
    return key


def _native_key(sort: SortOrder, key: int | str | None) -> SortKey:
    match sort:
        case SortOrder.STARS:
            if not isinstance(key, int) or isinstance(key, bool):
                raise InvalidCursorError.malformed()
            return key
        case SortOrder.NAME:
            if not isinstance(key, str):
                raise InvalidCursorError.malformed()
            return key
        case SortOrder.UPDATED:
            if key is None:
                return None
            if not isinstance(key, str):
                raise InvalidCursorError.malformed()
            try:
                parsed = dt.datetime.fromisoformat(key)
            except ValueError as exc:
                raise InvalidCursorError.malformed() from exc
            if parsed.tzinfo is None:
                raise InvalidCursorError.malformed()
            return parsed.astimezone(dt.UTC)


def encode_cursor(cursor: Cursor) -> str:
    """Serialise ``cursor`` into an opaque URL-safe token."""
    payload = _CursorPayload(
        sort=cursor.sort.value,
        key=_wire_key(cursor.sort, cursor.key),
        id=cursor.id,
    )
    token = base64.urlsafe_b64encode(msgspec.json.encode(payload))
    return token.rstrip(b"=").decode("ascii")


def decode_cursor(token: str, *, expected_sort: SortOrder) -> Cursor:
    """Parse a token produced by :func:`encode_cursor`.

    Raises
    ------
    InvalidCursorError
        If the token is malformed or was issued for a different sort.

    """
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = _DECODER.decode(raw)
    except (binascii.Error, UnicodeEncodeError, msgspec.DecodeError) as exc:
        raise InvalidCursorError.malformed() from exc

    try:
        sort = SortOrder(payload.sort)
    except ValueError as exc:
        raise InvalidCursorError.malformed() from exc
    if sort is not expected_sort:
        raise InvalidCursorError.sort_mismatch(expected_sort.value, sort.value)
    return Cursor(sort=sort, key=_native_key(sort, payload.key), id=payload.id)
