"""
Filter/sort DSL compiler.

Turns the raw `filter` / `sort` query tokens of a feed request into a
`FeedQuery` value:

    filter=user;65f0c0ffee0000000000beef   → IDENTITY term on `user`
    filter=tool;flux  filter=tool;sdxl      → ANY_OF term ("flux", "sdxl")
    filter=collection;<id>                  → Hint.MEMBERSHIP
    sort=likeCount;-1                        → COUNTER key + likeCount > 0 term
    sort=following;-1                        → Hint.GRAPH_FAN_OUT

Each kind of field has exactly one handler in `_FILTER_HANDLERS`; every step
returns a new `FeedQuery`, so the final value is a pure function of the
tokens and the set of fields the target feed can map.

Unknown fields, and fields the target does not support, are dropped rather
than rejected. Malformed identifiers and dates are rejected with
`MalformedFilterError`.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Optional

from feed_api.ids import is_valid_id
from feed_api.query.errors import MalformedFilterError
from feed_api.query.fields import (
    FILTER_FIELDS,
    OUTPUT_TYPES,
    SORT_FIELDS,
    Direction,
    FieldKind,
    FilterField,
    FilterSpec,
    FilterTerm,
    Hint,
    SortKey,
    SortKind,
    SortSpec,
)

logger = logging.getLogger(__name__)

# Counters whose sort implies `> 0`: mostly-zero documents never rank.
NOISE_AT_ZERO_COUNTERS = frozenset({"likeCount", "creationCount", "followerCount"})

OWNER_IDENTITY_FIELDS = frozenset({"user", "owner"})


@dataclass(frozen=True)
class FeedQuery:
    """Immutable accumulation of one request's compiled filters and sorts."""

    filters: FilterSpec = field(default_factory=FilterSpec)
    sort: SortSpec = field(default_factory=SortSpec)
    hints: frozenset = frozenset()
    # Set when a derived lookup resolved to nothing: the page is empty.
    empty: bool = False
    similarity_scores: Mapping[str, float] = field(default_factory=dict)

    # ── builder steps ─────────────────────────────────────────────────────
    def with_filter(self, term: FilterTerm) -> "FeedQuery":
        return replace(self, filters=self.filters.with_term(term))

    def without_filter(self, name: str) -> "FeedQuery":
        return replace(self, filters=self.filters.without(name))

    def with_sort(self, key: SortKey) -> "FeedQuery":
        return replace(self, sort=self.sort.with_key(key))

    def with_hint(self, hint: Hint) -> "FeedQuery":
        return replace(self, hints=self.hints | {hint})

    def with_allow_list(self, ids: Iterable[str]) -> "FeedQuery":
        term = FilterTerm("_id", FieldKind.ALLOW_LIST, tuple(ids), column="id")
        return replace(self, filters=self.filters.with_term(term))

    def with_similarity(self, scores: Mapping[str, float]) -> "FeedQuery":
        return replace(self.with_allow_list(scores), similarity_scores=dict(scores))

    def short_circuited(self) -> "FeedQuery":
        return replace(self, empty=True)

    # ── accessors ─────────────────────────────────────────────────────────
    def _value(self, kind: FieldKind) -> Optional[object]:
        terms = self.filters.of_kind(kind)
        return terms[-1].value if terms else None

    @property
    def collection_id(self) -> Optional[str]:
        return self._value(FieldKind.MEMBERSHIP)

    @property
    def concept(self) -> Optional[str]:
        return self._value(FieldKind.TASK_OUTPUT)

    @property
    def liked_by(self) -> Optional[str]:
        return self._value(FieldKind.REACTION)

    @property
    def similar_to(self) -> Optional[str]:
        return self._value(FieldKind.SIMILARITY)

    @property
    def search(self) -> Optional[str]:
        return self._value(FieldKind.SEARCH)

    @property
    def public_toggle(self) -> Optional[bool]:
        return self._value(FieldKind.VISIBILITY)

    @property
    def identity_values(self) -> tuple[str, ...]:
        return tuple(t.value for t in self.filters.of_kind(FieldKind.IDENTITY))

    @property
    def owner_values(self) -> tuple[str, ...]:
        """Identity terms naming the documents' owner (`agent` is not one)."""
        return tuple(
            t.value
            for t in self.filters.of_kind(FieldKind.IDENTITY)
            if t.field in OWNER_IDENTITY_FIELDS
        )


# ─────────────────────────── value parsers ───────────────────────────────

def _parse_id(name: str, value: str) -> str:
    if not is_valid_id(value):
        raise MalformedFilterError(name, value, "not a document id")
    return value


def _parse_date(name: str, value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise MalformedFilterError(name, value, "not an ISO-8601 date") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_threshold(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


# ─────────────────────────── kind handlers ───────────────────────────────

def _identity(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    return q.with_filter(FilterTerm(f.name, f.kind, _parse_id(f.name, value), f.column))


def _membership(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    q = q.with_filter(FilterTerm(f.name, f.kind, _parse_id(f.name, value)))
    return q.with_hint(Hint.MEMBERSHIP)


def _task_output(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    q = q.with_filter(FilterTerm(f.name, f.kind, _parse_id(f.name, value)))
    return q.with_hint(Hint.TASK_OUTPUT)


def _similarity(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    q = q.with_filter(FilterTerm(f.name, f.kind, _parse_id(f.name, value)))
    return q.with_hint(Hint.SIMILARITY)


def _reaction(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    q = q.with_filter(FilterTerm(f.name, f.kind, _parse_id(f.name, value)))
    return q.with_hint(Hint.REACTION_FAN_OUT)


def _any_of(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    if f.name == "output_type":
        values = OUTPUT_TYPES.get(value)
        if values is None:
            logger.debug("Dropping unknown output_type %r", value)
            return q
    elif f.name == "_id":
        values = (_parse_id(f.name, value),)
    else:
        values = (value,)
    return q.with_filter(FilterTerm(f.name, f.kind, tuple(values), f.column))


def _threshold(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    return q.with_filter(FilterTerm(f.name, f.kind, _parse_threshold(value), f.column))


def _date_range(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    if not value:
        return q
    return q.with_filter(FilterTerm(f.name, f.kind, _parse_date(f.name, value), f.column))


def _visibility(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    toggle = value.strip().lower() in ("true", "1", "public")
    # `public` and `visibility` are one toggle; the last token wins.
    q = q.without_filter("public").without_filter("visibility")
    return q.with_filter(FilterTerm(f.name, f.kind, toggle, f.column))


def _search(q: FeedQuery, f: FilterField, value: str) -> FeedQuery:
    if not value.strip():
        return q
    return q.with_filter(FilterTerm(f.name, f.kind, value.strip()))


_FILTER_HANDLERS: dict[FieldKind, Callable[[FeedQuery, FilterField, str], FeedQuery]] = {
    FieldKind.IDENTITY: _identity,
    FieldKind.MEMBERSHIP: _membership,
    FieldKind.TASK_OUTPUT: _task_output,
    FieldKind.SIMILARITY: _similarity,
    FieldKind.REACTION: _reaction,
    FieldKind.ANY_OF: _any_of,
    FieldKind.THRESHOLD: _threshold,
    FieldKind.DATE_RANGE: _date_range,
    FieldKind.VISIBILITY: _visibility,
    FieldKind.SEARCH: _search,
}


# ─────────────────────────── tokenising ──────────────────────────────────

def _split(token: str) -> tuple[str, str]:
    name, _, value = token.partition(";")
    return name.strip(), value.strip()


def _parse_direction(raw: str) -> Optional[Direction]:
    try:
        return Direction(int(raw))
    except ValueError:
        return None


def compile_query(
    filter_tokens: Iterable[str] = (),
    sort_tokens: Iterable[str] = (),
    supported_fields: Optional[frozenset] = None,
    supported_hints: Optional[frozenset] = None,
) -> FeedQuery:
    """
    Compile raw DSL tokens into a `FeedQuery`.

    `supported_fields` are the logical filter/sort names the target feed can
    map (None accepts every vocabulary field); `supported_hints` are the
    strategy hints it can execute. Anything outside them is dropped.
    """
    query = FeedQuery()

    def supported(name: str) -> bool:
        return supported_fields is None or name in supported_fields

    def hint_ok(hint: Optional[Hint]) -> bool:
        return hint is None or supported_hints is None or hint in supported_hints

    for token in filter_tokens:
        name, value = _split(token)
        spec = FILTER_FIELDS.get(name)
        if (
            spec is None
            or not supported(spec.column or spec.name)
            or not hint_ok(_KIND_HINTS.get(spec.kind))
        ):
            logger.debug("Dropping unsupported filter %r", token)
            continue
        query = _FILTER_HANDLERS[spec.kind](query, spec, value)

    for token in sort_tokens:
        name, raw = _split(token)
        spec = SORT_FIELDS.get(name)
        direction = _parse_direction(raw)
        if spec is None or direction is None:
            logger.debug("Dropping unknown sort %r", token)
            continue
        if spec.kind is SortKind.FAN_OUT:
            if hint_ok(spec.hint):
                query = query.with_hint(spec.hint)
            continue
        if spec.kind is SortKind.SIMILARITY:
            usable = hint_ok(Hint.SIMILARITY)
        else:
            usable = supported(spec.column)
        if not usable:
            logger.debug("Dropping unsupported sort %r", token)
            continue
        if query.sort.primary is not None and query.sort.primary.field != spec.column:
            # Only one literal key: the cursor bound covers (primary, id) exactly.
            logger.debug("Ignoring secondary sort %r", token)
            continue
        query = query.with_sort(SortKey(spec.column, spec.kind, direction, spec.column))
        existing = query.filters.get(spec.column)
        if spec.column in NOISE_AT_ZERO_COUNTERS and (existing is None or existing.value < 0):
            query = query.with_filter(
                FilterTerm(spec.column, FieldKind.THRESHOLD, 0, spec.column)
            )

    if query.liked_by is not None:
        # likedBy computes visibility per document; an explicit toggle is discarded.
        query = query.without_filter("public").without_filter("visibility")

    if Hint.SIMILARITY not in query.hints:
        query = replace(query, sort=query.sort.without_kind(SortKind.SIMILARITY))

    return query


_KIND_HINTS = {
    FieldKind.MEMBERSHIP: Hint.MEMBERSHIP,
    FieldKind.TASK_OUTPUT: Hint.TASK_OUTPUT,
    FieldKind.REACTION: Hint.REACTION_FAN_OUT,
}
