"""
Feed engine: one request, end to end.

  Step 1 │ Compile
  ───────┼────────────────────────────────────────────────────────────────
         │  Target aliases → DSL compiler (fields/hints the feed supports).
         │  Derived lookups: similarity neighbours (Qdrant), search ids.
         │  A failed or empty lookup marks the query empty → {docs: []}.

  Step 2 │ Plan
  ───────┼────────────────────────────────────────────────────────────────
         │  Collection access side query → VisibilityContext → rule.
         │  Hints → Strategy → StrategyPlan (named stages → one Select).

  Step 3 │ Execute
  ───────┼────────────────────────────────────────────────────────────────
         │  One round trip; next cursor cut from the last row.

  Step 4 │ Enrich & assemble
  ───────┼────────────────────────────────────────────────────────────────
         │  Late lookups for the page, then the cursor or offset page.

Store errors are not caught here; the router maps them to a 500.
"""
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional

from opentelemetry import trace
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from feed_api.models import Collection, CollectionContributor
from feed_api.query.assembler import cursor_page, empty_page, offset_page
from feed_api.query.compiler import FeedQuery, compile_query
from feed_api.query.cursor import Cursor, next_cursor
from feed_api.query.enrichment import EnrichedPage, enrich
from feed_api.query.errors import SearchUnavailable, SimilarityUnavailable
from feed_api.query.fields import Hint
from feed_api.query.pipeline import StrategyPlan, build_plan
from feed_api.query.strategy import Strategy, select_strategy
from feed_api.query.targets import FeedTarget
from feed_api.query.visibility import build_context, resolve_visibility
from feed_api.schemas import CursorPage, OffsetPage
from feed_api.telemetry import (
    FEED_LATENCY,
    FEED_SHORT_CIRCUIT_TOTAL,
    FEED_STRATEGY_TOTAL,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SimilarityLookup = Callable[[str], Awaitable[Mapping[str, float]]]
SearchLookup = Callable[[str, str], Awaitable[list[str]]]


@dataclass(frozen=True)
class FeedParams:
    filters: tuple[str, ...] = ()
    sorts: tuple[str, ...] = ()
    cursor: Optional[str] = None
    next_value: Optional[float] = None
    limit: int = 100


class FeedEngine:
    def __init__(
        self,
        db: AsyncSession,
        *,
        similarity: Optional[SimilarityLookup] = None,
        search: Optional[SearchLookup] = None,
    ) -> None:
        self.db = db
        self._similarity = similarity
        # None → free text is matched in the store
        self._search = search

    # ── Step 1: compile ──────────────────────────────────────────────────
    async def compile(self, target: FeedTarget, params: FeedParams) -> FeedQuery:
        with tracer.start_as_current_span("feed.compile") as span:
            query = compile_query(
                target.rewrite(list(params.filters)),
                params.sorts,
                supported_fields=target.supported_fields,
                supported_hints=target.hints,
            )
            query = await self._resolve_similarity(query)
            query = await self._resolve_search(target, query)
            span.set_attribute("feed.hints", ",".join(sorted(h.value for h in query.hints)))
            span.set_attribute("feed.empty", query.empty)
        return query

    async def _resolve_similarity(self, query: FeedQuery) -> FeedQuery:
        if query.empty or Hint.SIMILARITY not in query.hints:
            return query
        if self._similarity is None:
            logger.warning("Similarity filter requested but no lookup configured")
            return self._short_circuit(query, "similarity")
        try:
            scores = await self._similarity(query.similar_to)
        except SimilarityUnavailable:
            return self._short_circuit(query, "similarity")
        if not scores:
            # Reference has no stored vector: never fall through to an unfiltered feed.
            logger.info("No neighbours for creation %s", query.similar_to)
            return self._short_circuit(query, "similarity")
        return query.with_similarity(scores)

    async def _resolve_search(self, target: FeedTarget, query: FeedQuery) -> FeedQuery:
        if query.empty or query.search is None or self._search is None:
            return query
        try:
            ids = await self._search(target.name, query.search)
        except SearchUnavailable:
            return self._short_circuit(query, "search")
        if not ids:
            return self._short_circuit(query, "search")
        return query.without_filter("search").with_allow_list(ids)

    @staticmethod
    def _short_circuit(query: FeedQuery, reason: str) -> FeedQuery:
        FEED_SHORT_CIRCUIT_TOTAL.labels(reason=reason).inc()
        return query.short_circuited()

    # ── Step 2: plan ─────────────────────────────────────────────────────
    async def collection_access(self, collection_id: str, viewer_id: str) -> bool:
        """True when the viewer owns or contributes to the collection."""
        contributed = select(CollectionContributor.collection_id).where(
            CollectionContributor.user_id == viewer_id
        )
        row = await self.db.execute(
            select(Collection.id).where(
                Collection.id == collection_id,
                or_(Collection.user_id == viewer_id, Collection.id.in_(contributed)),
            )
        )
        return row.scalar_one_or_none() is not None

    async def plan(
        self,
        target: FeedTarget,
        query: FeedQuery,
        viewer_id: Optional[str],
        *,
        cursor: Optional[Cursor] = None,
        limit: int = 100,
        offset: Optional[int] = None,
    ) -> Optional[StrategyPlan]:
        """Build the request's plan; None when it cannot match anything."""
        strategy = select_strategy(query.hints)
        if strategy is Strategy.GRAPH_FAN_OUT and viewer_id is None:
            FEED_SHORT_CIRCUIT_TOTAL.labels(reason="anonymous").inc()
            return None
        if strategy is Strategy.REACTION_FAN_OUT and not (query.liked_by or viewer_id):
            FEED_SHORT_CIRCUIT_TOTAL.labels(reason="anonymous").inc()
            return None

        access = False
        if Hint.MEMBERSHIP in query.hints and viewer_id is not None:
            access = await self.collection_access(query.collection_id, viewer_id)
        ctx = build_context(
            query,
            viewer_id,
            collection_access=access,
            enforce_privacy=target.enforce_privacy,
        )
        rule = resolve_visibility(ctx, query)
        return build_plan(
            strategy,
            target,
            query,
            rule,
            viewer_id=viewer_id,
            cursor=cursor,
            limit=limit,
            offset=offset,
        )

    # ── Steps 3-4: execute, enrich, assemble ─────────────────────────────
    async def _execute(self, target: FeedTarget, plan: StrategyPlan, limit: int) -> list:
        with tracer.start_as_current_span("feed.execute") as span:
            span.set_attribute("feed.strategy", plan.strategy.value)
            span.set_attribute("feed.stages", ",".join(plan.stage_names))
            span.set_attribute("feed.limit", limit)
            result = await self.db.execute(plan.statement())
            rows = result.all()
            span.set_attribute("feed.docs", len(rows))
        FEED_STRATEGY_TOTAL.labels(feed=target.name, strategy=plan.strategy.value).inc()
        return rows

    async def _enrich(
        self, target: FeedTarget, rows: list, viewer_id: Optional[str]
    ) -> EnrichedPage:
        with tracer.start_as_current_span("feed.enrich") as span:
            span.set_attribute("feed.lookups", ",".join(target.lookups))
            return await enrich(self.db, target, [r[0] for r in rows], viewer_id)

    async def cursor_page(
        self, target: FeedTarget, params: FeedParams, viewer_id: Optional[str] = None
    ) -> CursorPage:
        start_time = time.time()
        try:
            query = await self.compile(target, params)
            if query.empty:
                return empty_page()
            plan = await self.plan(
                target,
                query,
                viewer_id,
                cursor=Cursor.from_params(params.cursor, params.next_value),
                limit=params.limit,
            )
            if plan is None:
                return empty_page()
            rows = await self._execute(target, plan, params.limit)
            page = await self._enrich(target, rows, viewer_id)
            return cursor_page(page, next_cursor(rows, plan.order))
        finally:
            FEED_LATENCY.labels(feed=target.name).observe(time.time() - start_time)

    async def offset_page(
        self,
        target: FeedTarget,
        params: FeedParams,
        viewer_id: Optional[str] = None,
        page_number: int = 1,
    ) -> OffsetPage:
        """Page-numbered listing with a total; cursor parameters are ignored."""
        limit = params.limit
        query = await self.compile(target, params)
        plan = None
        if not query.empty:
            plan = await self.plan(
                target, query, viewer_id, limit=limit, offset=(page_number - 1) * limit
            )
        if plan is None:
            return offset_page(EnrichedPage(), 0, page_number, limit)

        total = (
            await self.db.execute(
                select(func.count()).select_from(plan.candidates().subquery())
            )
        ).scalar_one()
        rows = await self._execute(target, plan, limit)
        page = await self._enrich(target, rows, viewer_id)
        return offset_page(page, total, page_number, limit)
