"""
Cursor pagination protocol.

A page is ordered by `(primary?, id DESC)`. The cursor handed back to the
client is the last item's id, plus the last item's primary sort value when
there is a primary key other than the id. The next request bounds its
query strictly after that position:

    primary DESC:  (key < v) OR (key = v AND id < cursor)
    primary ASC:   (key > v) OR (key = v AND id < cursor)
    id only:       id < cursor

Sort values travel as plain JSON numbers. Counters are ints, similarity
scores floats, and timestamps integer epoch microseconds, so every value
round-trips exactly and the bound never skips or repeats a row.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from feed_api.query.fields import Direction, SortKind

_EPOCH = datetime(1970, 1, 1)
_MICROSECOND = timedelta(microseconds=1)


class ValueCodec:
    def encode(self, value: Any) -> Any:
        return value

    def decode(self, value: Any) -> Any:
        return value


class IntCodec(ValueCodec):
    def encode(self, value: Any) -> int:
        return int(value or 0)

    def decode(self, value: Any) -> int:
        return int(value)


class FloatCodec(ValueCodec):
    def encode(self, value: Any) -> float:
        return float(value or 0.0)

    def decode(self, value: Any) -> float:
        return float(value)


class TimestampCodec(ValueCodec):
    def encode(self, value: datetime) -> int:
        return (value - _EPOCH) // _MICROSECOND

    def decode(self, value: Any) -> datetime:
        return _EPOCH + timedelta(microseconds=int(value))


CODECS: dict[SortKind, ValueCodec] = {
    SortKind.COUNTER: IntCodec(),
    SortKind.SIMILARITY: FloatCodec(),
    SortKind.TIMESTAMP: TimestampCodec(),
}


@dataclass(frozen=True)
class Cursor:
    last_id: str
    last_value: Optional[float] = None

    @classmethod
    def from_params(cls, cursor: Optional[str], next_value: Optional[float]) -> Optional["Cursor"]:
        if not cursor:
            return None
        return cls(cursor, next_value)


@dataclass(frozen=True)
class OrderPlan:
    """Resolved ordering of one plan: optional primary key, then id DESC."""

    id_column: ColumnElement
    primary: Optional[ColumnElement] = None
    direction: Direction = Direction.DESC
    codec: ValueCodec = ValueCodec()

    def clauses(self) -> list:
        order = []
        if self.primary is not None:
            order.append(
                self.primary.asc() if self.direction is Direction.ASC else self.primary.desc()
            )
        order.append(self.id_column.desc())
        return order

    def bound(self, cursor: Optional[Cursor]) -> Optional[ColumnElement]:
        if cursor is None:
            return None
        id_before = self.id_column < cursor.last_id
        if self.primary is None or cursor.last_value is None:
            return id_before
        value = self.codec.decode(cursor.last_value)
        past = self.primary > value if self.direction is Direction.ASC else self.primary < value
        return or_(past, and_(self.primary == value, id_before))


@dataclass(frozen=True)
class NextCursor:
    cursor: Optional[str] = None
    value: Optional[float] = None


def next_cursor(rows: Sequence[Any], order: OrderPlan) -> NextCursor:
    """
    Cursor for the page after `rows`. `rows` are result rows whose first
    element is the document and which carry `sort_value` when the plan has a
    primary key. An empty page has no next cursor.
    """
    if not rows:
        return NextCursor()
    last = rows[-1]
    doc = last[0]
    if order.primary is None:
        return NextCursor(cursor=doc.id)
    return NextCursor(cursor=doc.id, value=order.codec.encode(last.sort_value))
