"""
Cursor-paginated feeds: GET /v2/feed-cursor/{creations,models,collections,agents,creators}

  ?filter=<field>;<value>   repeatable (user, collection, concept, creation,
                            likedBy, tool, output_type, minDate, search, ...)
  ?sort=<field>;<1|-1>      repeatable (createdAt, likeCount, similarity,
                            liked, following, ...)
  ?cursor=<id>&nextValue=<n>  position returned by the previous page
  ?limit=1..500

Response: {docs, nextCursor?, nextValue?, reactions?, bookmarks?}
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feed_api.auth import get_viewer_id
from feed_api.clients.search_client import search_client
from feed_api.clients.similarity_client import similar_creation_ids
from feed_api.config import settings
from feed_api.database import get_db
from feed_api.query.engine import FeedEngine, FeedParams
from feed_api.query.errors import MalformedFilterError
from feed_api.query.targets import TARGETS, FeedTarget
from feed_api.schemas import (
    AgentDoc,
    CollectionDoc,
    CreationDoc,
    CreatorDoc,
    CursorPage,
    ModelDoc,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def get_engine(db: AsyncSession = Depends(get_db)) -> FeedEngine:
    return FeedEngine(
        db,
        similarity=similar_creation_ids,
        search=search_client.search_ids if search_client.enabled else None,
    )


def feed_params(
    filter: list[str] = Query(default=[]),  # noqa: A002
    sort: list[str] = Query(default=[]),
    cursor: Optional[str] = Query(default=None),
    next_value: Optional[float] = Query(default=None, alias="nextValue"),
    limit: int = Query(default=settings.feed_default_limit, ge=1, le=settings.feed_max_limit),
) -> FeedParams:
    return FeedParams(
        filters=tuple(filter),
        sorts=tuple(sort),
        cursor=cursor or None,
        next_value=next_value,
        limit=limit,
    )


async def serve_feed(
    target: FeedTarget,
    engine: FeedEngine,
    params: FeedParams,
    viewer_id: Optional[str],
) -> CursorPage:
    with tracer.start_as_current_span("get_feed") as span:
        span.set_attribute("feed.target", target.name)
        span.set_attribute("viewer.authenticated", viewer_id is not None)
        try:
            return await engine.cursor_page(target, params, viewer_id)
        except MalformedFilterError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except SQLAlchemyError:
            logger.exception("Store failure serving %s feed", target.name)
            raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/creations",
    response_model=CursorPage[CreationDoc],
    response_model_exclude_none=True,
)
async def creations_feed(
    params: FeedParams = Depends(feed_params),
    viewer_id: Optional[str] = Depends(get_viewer_id),
    engine: FeedEngine = Depends(get_engine),
):
    return await serve_feed(TARGETS["creations"], engine, params, viewer_id)


@router.get(
    "/models",
    response_model=CursorPage[ModelDoc],
    response_model_exclude_none=True,
)
async def models_feed(
    params: FeedParams = Depends(feed_params),
    viewer_id: Optional[str] = Depends(get_viewer_id),
    engine: FeedEngine = Depends(get_engine),
):
    return await serve_feed(TARGETS["models"], engine, params, viewer_id)


@router.get(
    "/collections",
    response_model=CursorPage[CollectionDoc],
    response_model_exclude_none=True,
)
async def collections_feed(
    params: FeedParams = Depends(feed_params),
    viewer_id: Optional[str] = Depends(get_viewer_id),
    engine: FeedEngine = Depends(get_engine),
):
    return await serve_feed(TARGETS["collections"], engine, params, viewer_id)


@router.get(
    "/agents",
    response_model=CursorPage[AgentDoc],
    response_model_exclude_none=True,
)
async def agents_feed(
    params: FeedParams = Depends(feed_params),
    viewer_id: Optional[str] = Depends(get_viewer_id),
    engine: FeedEngine = Depends(get_engine),
):
    return await serve_feed(TARGETS["agents"], engine, params, viewer_id)


@router.get(
    "/creators",
    response_model=CursorPage[CreatorDoc],
    response_model_exclude_none=True,
)
async def creators_feed(
    params: FeedParams = Depends(feed_params),
    viewer_id: Optional[str] = Depends(get_viewer_id),
    engine: FeedEngine = Depends(get_engine),
):
    return await serve_feed(TARGETS["creators"], engine, params, viewer_id)
