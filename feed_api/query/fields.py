"""
Filter/sort vocabulary of the feed DSL.

Every recognised field name maps to exactly one kind. The compiler looks the
kind up here and dispatches to the handler registered for it; there is no
per-field branching anywhere else.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class FieldKind(str, Enum):
    IDENTITY = "identity"          # equality on an owning/authoring id
    MEMBERSHIP = "membership"      # collection → members join
    TASK_OUTPUT = "task_output"    # concept → task → output join
    SIMILARITY = "similarity"      # nearest-neighbour allow-list
    REACTION = "reaction"          # likedBy fan-out + visibility override
    ANY_OF = "any_of"              # repeatable, accumulates into IN (...)
    THRESHOLD = "threshold"        # counter > N
    DATE_RANGE = "date_range"      # created_at bound
    VISIBILITY = "visibility"      # public/private toggle
    SEARCH = "search"              # free text, external collaborator
    ALLOW_LIST = "allow_list"      # internal: resolved id allow-list


class Hint(str, Enum):
    MEMBERSHIP = "membership"
    TASK_OUTPUT = "task_output"
    GRAPH_FAN_OUT = "graph_fan_out"
    REACTION_FAN_OUT = "reaction_fan_out"
    SIMILARITY = "similarity"


class SortKind(str, Enum):
    TIMESTAMP = "timestamp"
    COUNTER = "counter"
    SIMILARITY = "similarity"
    FAN_OUT = "fan_out"


class Direction(int, Enum):
    ASC = 1
    DESC = -1


@dataclass(frozen=True)
class FilterField:
    name: str
    kind: FieldKind
    # Logical column the term constrains; targets map it to a real column.
    column: Optional[str] = None
    # DATE_RANGE only: True for the lower bound.
    lower: bool = False


@dataclass(frozen=True)
class SortField:
    name: str
    kind: SortKind
    column: Optional[str] = None
    hint: Optional[Hint] = None


IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
VIDEO_MIME_TYPES = ("video/mp4", "video/webm", "video/quicktime")
AUDIO_MIME_TYPES = ("audio/mpeg", "audio/wav", "audio/ogg", "audio/mp4")

OUTPUT_TYPES = {
    "image": IMAGE_MIME_TYPES,
    "video": VIDEO_MIME_TYPES,
    "audio": AUDIO_MIME_TYPES,
}


FILTER_FIELDS: dict[str, FilterField] = {
    f.name: f
    for f in (
        FilterField("user", FieldKind.IDENTITY, column="user"),
        FilterField("owner", FieldKind.IDENTITY, column="owner"),
        FilterField("agent", FieldKind.IDENTITY, column="agent"),
        FilterField("collection", FieldKind.MEMBERSHIP),
        FilterField("concept", FieldKind.TASK_OUTPUT),
        FilterField("creation", FieldKind.SIMILARITY),
        FilterField("likedBy", FieldKind.REACTION),
        FilterField("tool", FieldKind.ANY_OF, column="tool"),
        FilterField("base_model", FieldKind.ANY_OF, column="base_model"),
        FilterField("output_type", FieldKind.ANY_OF, column="mime_type"),
        FilterField("_id", FieldKind.ANY_OF, column="id"),
        FilterField("likeCount", FieldKind.THRESHOLD, column="likeCount"),
        FilterField("creationCount", FieldKind.THRESHOLD, column="creationCount"),
        FilterField("followerCount", FieldKind.THRESHOLD, column="followerCount"),
        FilterField("minDate", FieldKind.DATE_RANGE, column="createdAt", lower=True),
        FilterField("maxDate", FieldKind.DATE_RANGE, column="createdAt"),
        FilterField("public", FieldKind.VISIBILITY, column="public"),
        FilterField("visibility", FieldKind.VISIBILITY, column="public"),
        FilterField("search", FieldKind.SEARCH),
    )
}

SORT_FIELDS: dict[str, SortField] = {
    f.name: f
    for f in (
        SortField("createdAt", SortKind.TIMESTAMP, column="createdAt"),
        SortField("likeCount", SortKind.COUNTER, column="likeCount"),
        SortField("creationCount", SortKind.COUNTER, column="creationCount"),
        SortField("followerCount", SortKind.COUNTER, column="followerCount"),
        SortField("similarity", SortKind.SIMILARITY, column="similarity"),
        SortField("embedding.score", SortKind.SIMILARITY, column="similarity"),
        SortField("liked", SortKind.FAN_OUT, hint=Hint.REACTION_FAN_OUT),
        SortField("following", SortKind.FAN_OUT, hint=Hint.GRAPH_FAN_OUT),
    )
}


@dataclass(frozen=True)
class FilterTerm:
    field: str
    kind: FieldKind
    value: Any
    column: Optional[str] = None


@dataclass(frozen=True)
class FilterSpec:
    terms: tuple[FilterTerm, ...] = ()

    def with_term(self, term: FilterTerm) -> "FilterSpec":
        if term.kind is FieldKind.ALLOW_LIST:
            return FilterSpec(self.terms + (term,))
        existing = self.get(term.field)
        if existing is not None and term.kind is FieldKind.ANY_OF:
            merged = FilterTerm(
                term.field, term.kind, existing.value + term.value, term.column
            )
            return FilterSpec(
                tuple(merged if t.field == term.field else t for t in self.terms)
            )
        kept = tuple(t for t in self.terms if t.field != term.field)
        return FilterSpec(kept + (term,))

    def without(self, field: str) -> "FilterSpec":
        return FilterSpec(tuple(t for t in self.terms if t.field != field))

    def get(self, field: str) -> Optional[FilterTerm]:
        for term in self.terms:
            if term.field == field and term.kind is not FieldKind.ALLOW_LIST:
                return term
        return None

    def of_kind(self, *kinds: FieldKind) -> tuple[FilterTerm, ...]:
        return tuple(t for t in self.terms if t.kind in kinds)

    @property
    def min_date(self) -> Optional[datetime]:
        term = self.get("minDate")
        return term.value if term else None

    @property
    def max_date(self) -> Optional[datetime]:
        term = self.get("maxDate")
        return term.value if term else None


@dataclass(frozen=True)
class SortKey:
    field: str
    kind: SortKind
    direction: Direction
    column: Optional[str] = None


@dataclass(frozen=True)
class SortSpec:
    """Ordered sort keys. The (id, DESC) tie-break is appended at plan time."""

    keys: tuple[SortKey, ...] = ()

    def with_key(self, key: SortKey) -> "SortSpec":
        kept = tuple(k for k in self.keys if k.field != key.field)
        return SortSpec(kept + (key,))

    def without_kind(self, kind: SortKind) -> "SortSpec":
        return SortSpec(tuple(k for k in self.keys if k.kind is not kind))

    @property
    def primary(self) -> Optional[SortKey]:
        return self.keys[0] if self.keys else None
