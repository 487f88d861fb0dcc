"""
Late lookups for one page of feed documents.

Runs after pagination, so every load is a single `IN` over the page's ids:

  1. owning user  (user_id / owner_id → users)
  2. agent        (agent_id → agents)
  3. task         (task_id → tasks)
  4. cover        (cover_creation_id → creations, collections only)
  5. isLiked      (likes scoped to the viewer and the entity type)

The page keeps its order and its length; a missing related row leaves the
summary empty rather than dropping the document.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_api.config import settings
from feed_api.models import (
    Agent,
    Collection,
    CollectionCreation,
    Creation,
    Like,
    Task,
    User,
)
from feed_api.query.targets import FeedTarget
from feed_api.schemas import (
    AgentDoc,
    AgentSummary,
    CollectionDoc,
    CoverCreation,
    CreationDoc,
    CreatorDoc,
    ModelDoc,
    TaskSummary,
    UserSummary,
)

logger = logging.getLogger(__name__)

# lookup name → (foreign-key attribute on the document, related model)
LOOKUPS: dict[str, tuple[str, Any]] = {
    "user": ("user_id", User),
    "owner": ("owner_id", User),
    "agent": ("agent_id", Agent),
    "task": ("task_id", Task),
    "cover": ("cover_creation_id", Creation),
}


def media_url(filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    return f"{settings.media_base_url.rstrip('/')}/{filename}"


def thumbnail_url(filename: Optional[str], width: int = 1024) -> Optional[str]:
    if not filename:
        return None
    return f"{settings.media_base_url.rstrip('/')}/thumbnails/{width}/{filename}"


@dataclass
class EnrichedPage:
    docs: list[BaseModel] = field(default_factory=list)
    liked: Optional[set[str]] = None
    bookmarked: Optional[set[str]] = None


async def load_related(
    db: AsyncSession, docs: Sequence[Any], lookup: str
) -> dict[str, Any]:
    """Bulk-fetch one kind of related row for the whole page → {id: row}."""
    fk, model = LOOKUPS[lookup]
    ids = {getattr(d, fk) for d in docs if getattr(d, fk, None)}
    if not ids:
        return {}
    rows = await db.execute(select(model).where(model.id.in_(ids)))
    return {r.id: r for r in rows.scalars().all()}


async def liked_ids(
    db: AsyncSession, viewer_id: str, entity_type: str, ids: Sequence[str]
) -> set[str]:
    if not ids:
        return set()
    rows = await db.execute(
        select(Like.entity_id).where(
            Like.user_id == viewer_id,
            Like.entity_type == entity_type,
            Like.entity_id.in_(ids),
        )
    )
    return set(rows.scalars().all())


async def bookmarked_ids(db: AsyncSession, viewer_id: str, ids: Sequence[str]) -> set[str]:
    """Creations among `ids` saved in the viewer's default collection."""
    if not ids:
        return set()
    rows = await db.execute(
        select(CollectionCreation.creation_id)
        .join(Collection, Collection.id == CollectionCreation.collection_id)
        .where(
            Collection.user_id == viewer_id,
            Collection.is_default.is_(True),
            Collection.deleted.is_(False),
            CollectionCreation.creation_id.in_(ids),
        )
    )
    return set(rows.scalars().all())


# ─────────────────────────── document builders ───────────────────────────

def _summary(schema, row):
    return schema.model_validate(row) if row is not None else None


def _creation_doc(doc: Creation, related: dict, is_liked: Optional[bool]) -> CreationDoc:
    return CreationDoc(
        id=doc.id,
        user=_summary(UserSummary, related["user"].get(doc.user_id)),
        agent=_summary(AgentSummary, related["agent"].get(doc.agent_id)),
        task=_summary(TaskSummary, related["task"].get(doc.task_id)),
        tool=doc.tool,
        filename=doc.filename,
        url=media_url(doc.filename),
        thumbnail=thumbnail_url(doc.filename),
        mime_type=doc.mime_type,
        public=doc.public,
        like_count=doc.like_count,
        created_at=doc.created_at,
        is_liked=is_liked,
    )


def _model_doc(doc, related: dict, is_liked: Optional[bool]) -> ModelDoc:
    return ModelDoc(
        id=doc.id,
        name=doc.name,
        user=_summary(UserSummary, related["user"].get(doc.user_id)),
        task=_summary(TaskSummary, related["task"].get(doc.task_id)),
        base_model=doc.base_model,
        checkpoint=doc.checkpoint,
        thumbnail=thumbnail_url(doc.thumbnail),
        public=doc.public,
        like_count=doc.like_count,
        creation_count=doc.creation_count,
        created_at=doc.created_at,
        is_liked=is_liked,
    )


def _collection_doc(doc: Collection, related: dict, is_liked: Optional[bool]) -> CollectionDoc:
    cover = related["cover"].get(doc.cover_creation_id)
    return CollectionDoc(
        id=doc.id,
        name=doc.name,
        description=doc.description,
        user=_summary(UserSummary, related["user"].get(doc.user_id)),
        cover_creation=(
            CoverCreation(
                id=cover.id,
                filename=cover.filename,
                thumbnail=thumbnail_url(cover.filename),
            )
            if cover is not None
            else None
        ),
        public=doc.public,
        like_count=doc.like_count,
        created_at=doc.created_at,
    )


def _agent_doc(doc: Agent, related: dict, is_liked: Optional[bool]) -> AgentDoc:
    return AgentDoc(
        id=doc.id,
        name=doc.name,
        description=doc.description,
        user_image=doc.user_image,
        owner=_summary(UserSummary, related["owner"].get(doc.owner_id)),
        public=doc.public,
        like_count=doc.like_count,
        created_at=doc.created_at,
        is_liked=is_liked,
    )


def _creator_doc(doc: User, related: dict, is_liked: Optional[bool]) -> CreatorDoc:
    return CreatorDoc.model_validate(doc)


_BUILDERS: dict[str, Callable[[Any, dict, Optional[bool]], BaseModel]] = {
    "creations": _creation_doc,
    "models": _model_doc,
    "collections": _collection_doc,
    "agents": _agent_doc,
    "creators": _creator_doc,
}


async def enrich(
    db: AsyncSession,
    target: FeedTarget,
    docs: Sequence[Any],
    viewer_id: Optional[str] = None,
) -> EnrichedPage:
    """Attach late lookups to `docs`, in order, one document per input row."""
    if not docs:
        return EnrichedPage()

    related: dict[str, dict] = {}
    for lookup in target.lookups:
        related[lookup] = await load_related(db, docs, lookup)
    for lookup in LOOKUPS:
        related.setdefault(lookup, {})

    ids = [d.id for d in docs]
    liked: Optional[set[str]] = None
    if viewer_id and target.entity_type:
        liked = await liked_ids(db, viewer_id, target.entity_type, ids)

    bookmarked: Optional[set[str]] = None
    if viewer_id and target.model is Creation:
        bookmarked = await bookmarked_ids(db, viewer_id, ids)

    build = _BUILDERS[target.name]
    out = [
        build(d, related, (d.id in liked) if liked is not None else None)
        for d in docs
    ]
    logger.debug(
        "Enriched %d %s (lookups=%s)", len(out), target.name, ",".join(target.lookups)
    )
    return EnrichedPage(docs=out, liked=liked, bookmarked=bookmarked)
