"""
Social graph endpoints:
  POST /v2/users/follow  : follow another user
  POST /v2/users/unfollow: unfollow

The follows table is the parent lookup of `sort=following`; the followee's
follower_count backs `sort=followerCount` on the creators feed.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_api.auth import require_viewer_id
from feed_api.database import get_db
from feed_api.models import Follow, User
from feed_api.schemas import FollowRequest

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("/follow", status_code=status.HTTP_204_NO_CONTENT)
async def follow_user(
    body: FollowRequest,
    viewer_id: str = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a follower → following edge; idempotent."""
    with tracer.start_as_current_span("follow_user"):
        if viewer_id == body.following_id:
            raise HTTPException(status_code=400, detail="Cannot follow yourself")

        followee = await db.get(User, body.following_id)
        if not followee:
            raise HTTPException(status_code=404, detail=f"User {body.following_id} not found")

        existing = await db.execute(
            select(Follow).where(
                Follow.follower_id == viewer_id,
                Follow.following_id == body.following_id,
            )
        )
        if existing.scalar_one_or_none():
            return  # already following

        db.add(Follow(follower_id=viewer_id, following_id=body.following_id))
        followee.follower_count += 1
        logger.info("%s followed %s", viewer_id, body.following_id)


@router.post("/unfollow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(
    body: FollowRequest,
    viewer_id: str = Depends(require_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("unfollow_user"):
        result = await db.execute(
            delete(Follow).where(
                Follow.follower_id == viewer_id,
                Follow.following_id == body.following_id,
            )
        )
        if result.rowcount:
            followee = await db.get(User, body.following_id)
            if followee:
                followee.follower_count = max(0, followee.follower_count - 1)
