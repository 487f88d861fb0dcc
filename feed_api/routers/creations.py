"""
Creation listing: GET /v2/creations?page=<n>&limit=<n>&filter=...&sort=...

Same DSL and visibility rules as the creations cursor feed, but numbered
pages with a total: {docs, total, page, limit, pages}.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError

from feed_api.auth import get_viewer_id
from feed_api.query.engine import FeedEngine, FeedParams
from feed_api.query.errors import MalformedFilterError
from feed_api.query.targets import TARGETS
from feed_api.routers.feed import feed_params, get_engine
from feed_api.schemas import CreationDoc, OffsetPage

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.get("", response_model=OffsetPage[CreationDoc], response_model_exclude_none=True)
async def list_creations(
    page: int = Query(default=1, ge=1),
    params: FeedParams = Depends(feed_params),
    viewer_id: Optional[str] = Depends(get_viewer_id),
    engine: FeedEngine = Depends(get_engine),
):
    with tracer.start_as_current_span("list_creations") as span:
        span.set_attribute("page", page)
        try:
            return await engine.offset_page(TARGETS["creations"], params, viewer_id, page)
        except MalformedFilterError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except SQLAlchemyError:
            logger.exception("Store failure listing creations (page=%d)", page)
            raise HTTPException(status_code=500, detail="Internal Server Error")
