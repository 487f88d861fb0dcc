"""
Feed targets: one descriptor per entity feed.

A target tells the engine which ORM model backs the feed, how the DSL's
logical field names map onto real columns, which fan-out strategies make
sense for it and what gets joined in during enrichment.
"""
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from feed_api.models import Agent, Collection, Creation, Model, User
from feed_api.query.fields import Hint

_ALL_HINTS = frozenset(Hint)

# Filter names that are not columns but are usable when the hint is.
_HINT_FIELDS = {
    Hint.MEMBERSHIP: "collection",
    Hint.TASK_OUTPUT: "concept",
    Hint.SIMILARITY: "creation",
    Hint.REACTION_FAN_OUT: "likedBy",
}


@dataclass(frozen=True)
class FeedTarget:
    name: str
    model: Any
    columns: Mapping[str, str]
    hints: frozenset = frozenset()
    # Like records entity type; None → no likes for this entity.
    entity_type: Optional[str] = None
    owner_column: Optional[str] = None
    search_columns: tuple[str, ...] = ()
    enforce_privacy: bool = True
    # Late lookups, in order: "user", "owner", "agent", "task", "cover".
    lookups: tuple[str, ...] = ()
    # Token rewrites applied before compiling (e.g. agents: user → owner).
    aliases: Mapping[str, str] = field(default_factory=dict)

    def column(self, logical: str):
        return getattr(self.model, self.columns[logical])

    @property
    def id_column(self):
        return self.model.id

    @property
    def owner(self):
        return getattr(self.model, self.owner_column)

    @property
    def supported_fields(self) -> frozenset:
        names = set(self.columns)
        names.update(n for h, n in _HINT_FIELDS.items() if h in self.hints)
        if self.search_columns:
            names.add("search")
        return frozenset(names)

    def rewrite(self, tokens: list[str]) -> list[str]:
        out = []
        for token in tokens:
            name, sep, value = token.partition(";")
            out.append(f"{self.aliases.get(name, name)}{sep}{value}")
        return out


CREATIONS = FeedTarget(
    name="creations",
    model=Creation,
    columns={
        "id": "id",
        "user": "user_id",
        "agent": "agent_id",
        "tool": "tool",
        "mime_type": "mime_type",
        "likeCount": "like_count",
        "createdAt": "created_at",
        "public": "public",
    },
    hints=_ALL_HINTS,
    entity_type="creation",
    owner_column="user_id",
    lookups=("user", "agent", "task"),
)

MODELS = FeedTarget(
    name="models",
    model=Model,
    columns={
        "id": "id",
        "user": "user_id",
        "base_model": "base_model",
        "likeCount": "like_count",
        "creationCount": "creation_count",
        "createdAt": "created_at",
        "public": "public",
    },
    hints=frozenset({Hint.GRAPH_FAN_OUT, Hint.REACTION_FAN_OUT}),
    entity_type="model",
    owner_column="user_id",
    search_columns=("name",),
    lookups=("task", "user"),
)

COLLECTIONS = FeedTarget(
    name="collections",
    model=Collection,
    columns={
        "id": "id",
        "user": "user_id",
        "likeCount": "like_count",
        "createdAt": "created_at",
        "public": "public",
    },
    hints=frozenset({Hint.GRAPH_FAN_OUT}),
    owner_column="user_id",
    search_columns=("name",),
    lookups=("user", "cover"),
)

AGENTS = FeedTarget(
    name="agents",
    model=Agent,
    columns={
        "id": "id",
        "owner": "owner_id",
        "likeCount": "like_count",
        "createdAt": "created_at",
        "public": "public",
    },
    hints=frozenset({Hint.GRAPH_FAN_OUT, Hint.REACTION_FAN_OUT}),
    entity_type="agent",
    owner_column="owner_id",
    search_columns=("name",),
    lookups=("owner",),
    aliases={"user": "owner"},
)

CREATORS = FeedTarget(
    name="creators",
    model=User,
    columns={
        "id": "id",
        "followerCount": "follower_count",
        "creationCount": "creation_count",
        "createdAt": "created_at",
    },
    search_columns=("username",),
    enforce_privacy=False,
)

TARGETS: dict[str, FeedTarget] = {
    t.name: t for t in (CREATIONS, MODELS, COLLECTIONS, AGENTS, CREATORS)
}
