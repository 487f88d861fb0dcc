"""
Reaction endpoints:
  POST   /v2/likes: like a creation, model or agent
  DELETE /v2/likes: take the like back

Both are idempotent and keep the entity's like_count in step with the likes
table, which is what `sort=likeCount` and `filter=likedBy` read.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_api.auth import require_viewer_id
from feed_api.database import get_db
from feed_api.models import LIKEABLE_ENTITIES, Like
from feed_api.schemas import LikeRequest

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _load_entity(db: AsyncSession, body: LikeRequest):
    model = LIKEABLE_ENTITIES[body.entity_type]
    entity = await db.get(model, body.entity_id)
    if entity is None or entity.deleted:
        raise HTTPException(status_code=404, detail=f"{body.entity_type.capitalize()} not found")
    return entity


@router.post("", status_code=status.HTTP_204_NO_CONTENT)
async def like_entity(
    body: LikeRequest,
    viewer_id: str = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    """Like an entity (idempotent). Updates like_count."""
    with tracer.start_as_current_span("like_entity") as span:
        span.set_attribute("like.entity_type", body.entity_type)
        entity = await _load_entity(db, body)

        existing = await db.execute(
            select(Like.id).where(
                Like.user_id == viewer_id,
                Like.entity_type == body.entity_type,
                Like.entity_id == body.entity_id,
            )
        )
        if existing.scalar_one_or_none():
            return  # already liked

        db.add(Like(user_id=viewer_id, entity_type=body.entity_type, entity_id=body.entity_id))
        entity.like_count += 1
        logger.info("%s liked %s %s", viewer_id, body.entity_type, body.entity_id)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def unlike_entity(
    body: LikeRequest,
    viewer_id: str = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("unlike_entity"):
        entity = await _load_entity(db, body)
        result = await db.execute(
            delete(Like).where(
                Like.user_id == viewer_id,
                Like.entity_type == body.entity_type,
                Like.entity_id == body.entity_id,
            )
        )
        if result.rowcount:
            entity.like_count = max(0, entity.like_count - 1)
