"""
Pipeline builders.

Each strategy is expressed as an ordered tuple of named stages. Folding the
stages yields one SQLAlchemy `Select`:

  MEMBERSHIP        lookup_collection → unwind_members → join_documents → match → cursor_bound → sort → limit
  TASK_OUTPUT       lookup_tasks → join_outputs → match → cursor_bound → sort → limit
  GRAPH_FAN_OUT     rank_per_followee → cap_per_followee → sort → limit
  REACTION_FAN_OUT  lookup_reactions → join_documents → match → cursor_bound → sort → limit
  DIRECT            match_with_cursor → sort → limit

Every select returns `(document, sort_value?)` rows, where `sort_value` is
the labelled primary sort expression the cursor is cut from.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import Select, and_, case, false, func, literal, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from feed_api.models import Collection, CollectionCreation, Follow, Like, Task
from feed_api.query.compiler import FeedQuery
from feed_api.query.cursor import CODECS, Cursor, OrderPlan
from feed_api.query.fields import Direction, FieldKind, SortKind
from feed_api.query.strategy import Strategy
from feed_api.query.targets import FeedTarget
from feed_api.query.visibility import VisibilityRule


@dataclass(frozen=True)
class Stage:
    name: str
    apply: Callable[[Optional[Select]], Select]


@dataclass(frozen=True)
class StrategyPlan:
    strategy: Strategy
    pre_join_filter: tuple
    core: tuple[Stage, ...]
    tail: tuple[Stage, ...]
    order: OrderPlan

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self.core + self.tail]

    def candidates(self) -> Select:
        """The strategy's candidate set, before the shared sort/limit tail."""
        return _fold(self.core)

    def statement(self) -> Select:
        return _fold(self.core + self.tail)


def _fold(stages: tuple[Stage, ...]) -> Select:
    stmt = None
    for stage in stages:
        stmt = stage.apply(stmt)
    return stmt


# ─────────────────────────── predicates ──────────────────────────────────

def reacted_ids(target: FeedTarget, liker: str) -> Select:
    """Ids of the target's entities `liker` has reacted to."""
    if target.entity_type is None:
        return select(Like.entity_id).where(false())
    return select(Like.entity_id).where(
        Like.user_id == liker, Like.entity_type == target.entity_type
    )


def filter_clauses(
    target: FeedTarget, query: FeedQuery, *, reactions_joined: bool = False
) -> list[ColumnElement]:
    """SQL predicates for the column-bound terms of `query`.

    A likedBy term becomes a semi-join on the liker's reactions unless the
    plan already starts from them (`reactions_joined`).
    """
    clauses = []
    for term in query.filters.terms:
        if term.kind is FieldKind.REACTION:
            if not reactions_joined:
                clauses.append(target.id_column.in_(reacted_ids(target, term.value)))
            continue
        if term.kind is FieldKind.IDENTITY:
            clauses.append(target.column(term.column) == term.value)
        elif term.kind is FieldKind.ANY_OF:
            clauses.append(target.column(term.column).in_(term.value))
        elif term.kind is FieldKind.ALLOW_LIST:
            clauses.append(target.id_column.in_(term.value))
        elif term.kind is FieldKind.THRESHOLD:
            clauses.append(target.column(term.column) > term.value)
        elif term.kind is FieldKind.DATE_RANGE:
            col = target.column(term.column)
            clauses.append(col >= term.value if term.field == "minDate" else col <= term.value)
        elif term.kind is FieldKind.SEARCH:
            # Reaches the store only when no search service resolved it.
            clauses.append(
                or_(*(
                    getattr(target.model, c).icontains(term.value, autoescape=True)
                    for c in target.search_columns
                ))
            )
    return clauses


def visibility_clauses(target: FeedTarget, rule: VisibilityRule) -> list[ColumnElement]:
    if not target.enforce_privacy:
        return []
    model = target.model
    clauses = []
    if rule.exclude_deleted:
        clauses.append(model.deleted == false())
    if rule.liked_by is not None:
        others_public = and_(target.owner != rule.liked_by, model.public == true())
        if rule.viewer_id is not None and rule.viewer_id == rule.liked_by:
            own_private = and_(target.owner == rule.liked_by, model.public == false())
            clauses.append(or_(others_public, own_private))
        else:
            clauses.append(others_public)
    elif rule.public is not None:
        clauses.append(model.public == (true() if rule.public else false()))
    return clauses


# ─────────────────────────── ordering ────────────────────────────────────

def _similarity_expr(target: FeedTarget, query: FeedQuery) -> ColumnElement:
    if not query.similarity_scores:
        return literal(0.0)
    return case(dict(query.similarity_scores), value=target.id_column, else_=0.0)


def resolve_order(
    target: FeedTarget,
    query: FeedQuery,
    default_primary: Optional[ColumnElement] = None,
    default_kind: Optional[SortKind] = None,
) -> OrderPlan:
    key = query.sort.primary
    if key is None:
        if default_primary is None:
            return OrderPlan(id_column=target.id_column)
        return OrderPlan(
            id_column=target.id_column,
            primary=default_primary,
            direction=Direction.DESC,
            codec=CODECS[default_kind],
        )
    if key.kind is SortKind.SIMILARITY:
        expr = _similarity_expr(target, query)
    else:
        expr = target.column(key.column)
    return OrderPlan(
        id_column=target.id_column,
        primary=expr,
        direction=key.direction,
        codec=CODECS[key.kind],
    )


def _columns(target: FeedTarget, order: OrderPlan) -> list:
    cols = [target.model]
    if order.primary is not None:
        cols.append(order.primary.label("sort_value"))
    return cols


# ─────────────────────────── shared tail ─────────────────────────────────

def _where(*clauses) -> Callable[[Select], Select]:
    present = [c for c in clauses if c is not None]
    return lambda stmt: stmt.where(*present) if present else stmt


def _tail(order: OrderPlan, limit: int, offset: Optional[int]) -> tuple[Stage, ...]:
    def _limit(stmt: Select) -> Select:
        stmt = stmt.limit(limit)
        return stmt.offset(offset) if offset else stmt

    return (
        Stage("sort", lambda stmt: stmt.order_by(*order.clauses())),
        Stage("limit", _limit),
    )


# ─────────────────────────── builders ────────────────────────────────────

def build_plan(
    strategy: Strategy,
    target: FeedTarget,
    query: FeedQuery,
    rule: VisibilityRule,
    *,
    viewer_id: Optional[str] = None,
    cursor: Optional[Cursor] = None,
    limit: int = 100,
    offset: Optional[int] = None,
) -> StrategyPlan:
    builder = _BUILDERS[strategy]
    return builder(target, query, rule, viewer_id, cursor, limit, offset)


def _build_direct(target, query, rule, viewer_id, cursor, limit, offset) -> StrategyPlan:
    order = resolve_order(target, query)
    predicates = filter_clauses(target, query) + visibility_clauses(target, rule)
    core = (
        # Cursor bound pushed into the main WHERE so the store can use its index.
        Stage(
            "match_with_cursor",
            lambda _: select(*_columns(target, order)).where(
                *predicates, *_present(order.bound(cursor))
            ),
        ),
    )
    return StrategyPlan(Strategy.DIRECT, (), core, _tail(order, limit, offset), order)


def _build_membership(target, query, rule, viewer_id, cursor, limit, offset) -> StrategyPlan:
    order = resolve_order(target, query)
    pre = (Collection.id == query.collection_id, Collection.deleted == false())
    core = (
        Stage(
            "lookup_collection",
            lambda _: select(*_columns(target, order)).select_from(Collection).where(*pre),
        ),
        Stage(
            "unwind_members",
            lambda stmt: stmt.join(
                CollectionCreation, CollectionCreation.collection_id == Collection.id
            ),
        ),
        Stage(
            "join_documents",
            lambda stmt: stmt.join(
                target.model, target.id_column == CollectionCreation.creation_id
            ),
        ),
        Stage("match", _where(*filter_clauses(target, query), *visibility_clauses(target, rule))),
        Stage("cursor_bound", _where(order.bound(cursor))),
    )
    return StrategyPlan(Strategy.MEMBERSHIP, pre, core, _tail(order, limit, offset), order)


def _build_task_output(target, query, rule, viewer_id, cursor, limit, offset) -> StrategyPlan:
    order = resolve_order(target, query)
    pre = (Task.lora == query.concept,)
    core = (
        Stage(
            "lookup_tasks",
            lambda _: select(*_columns(target, order)).select_from(Task).where(*pre),
        ),
        Stage(
            "join_outputs",
            lambda stmt: stmt.join(target.model, target.model.task_id == Task.id),
        ),
        Stage("match", _where(*filter_clauses(target, query), *visibility_clauses(target, rule))),
        Stage("cursor_bound", _where(order.bound(cursor))),
    )
    return StrategyPlan(Strategy.TASK_OUTPUT, pre, core, _tail(order, limit, offset), order)


def _build_graph_fan_out(target, query, rule, viewer_id, cursor, limit, offset) -> StrategyPlan:
    order = resolve_order(target, query)
    pre = (Follow.follower_id == viewer_id,) if viewer_id else (false(),)
    # Each followee contributes at most as many documents as one page can show.
    cap = limit + (offset or 0)
    followees = select(Follow.following_id).where(*pre)
    ranked = (
        select(
            target.id_column.label("doc_id"),
            func.row_number()
            .over(partition_by=target.owner, order_by=order.clauses())
            .label("followee_rank"),
        )
        .where(
            target.owner.in_(followees),
            *filter_clauses(target, query),
            *visibility_clauses(target, rule),
            # The bound sits inside the per-followee ranking so every page
            # ranks only rows after the cursor.
            *_present(order.bound(cursor)),
        )
        .subquery("per_followee")
    )

    core = (
        Stage(
            "rank_per_followee",
            lambda _: select(*_columns(target, order)).join(
                ranked, ranked.c.doc_id == target.id_column
            ),
        ),
        Stage("cap_per_followee", _where(ranked.c.followee_rank <= cap)),
    )
    return StrategyPlan(Strategy.GRAPH_FAN_OUT, pre, core, _tail(order, limit, offset), order)


def _build_reaction_fan_out(target, query, rule, viewer_id, cursor, limit, offset) -> StrategyPlan:
    liker = query.liked_by or viewer_id
    # Ordered by reaction time unless the client chose a literal sort key.
    order = resolve_order(
        target, query, default_primary=Like.created_at, default_kind=SortKind.TIMESTAMP
    )
    if liker:
        pre = (Like.user_id == liker, Like.entity_type == target.entity_type)
    else:
        pre = (false(),)
    core = (
        Stage(
            "lookup_reactions",
            lambda _: select(*_columns(target, order)).select_from(Like).where(*pre),
        ),
        Stage(
            "join_documents",
            lambda stmt: stmt.join(target.model, target.id_column == Like.entity_id),
        ),
        Stage(
            "match",
            _where(
                *filter_clauses(target, query, reactions_joined=True),
                *visibility_clauses(target, rule),
            ),
        ),
        Stage("cursor_bound", _where(order.bound(cursor))),
    )
    return StrategyPlan(Strategy.REACTION_FAN_OUT, pre, core, _tail(order, limit, offset), order)


def _present(clause: Optional[ColumnElement]) -> list:
    return [] if clause is None else [clause]


_BUILDERS = {
    Strategy.DIRECT: _build_direct,
    Strategy.MEMBERSHIP: _build_membership,
    Strategy.TASK_OUTPUT: _build_task_output,
    Strategy.GRAPH_FAN_OUT: _build_graph_fan_out,
    Strategy.REACTION_FAN_OUT: _build_reaction_fan_out,
}
