"""Tests for strategy selection and the per-strategy stage layout."""

import pytest

from feed_api.query.compiler import compile_query
from feed_api.query.fields import Hint
from feed_api.query.pipeline import build_plan
from feed_api.query.strategy import Strategy, select_strategy
from feed_api.query.targets import CREATIONS
from feed_api.query.visibility import VisibilityRule

ALICE = "65e1c0de0000000000000001"


@pytest.mark.parametrize(
    "hints, expected",
    [
        (set(), Strategy.DIRECT),
        ({Hint.SIMILARITY}, Strategy.DIRECT),
        ({Hint.REACTION_FAN_OUT}, Strategy.REACTION_FAN_OUT),
        ({Hint.REACTION_FAN_OUT, Hint.GRAPH_FAN_OUT}, Strategy.GRAPH_FAN_OUT),
        ({Hint.GRAPH_FAN_OUT, Hint.TASK_OUTPUT}, Strategy.TASK_OUTPUT),
        (set(Hint), Strategy.MEMBERSHIP),
    ],
)
def test_precedence(hints, expected) -> None:
    assert select_strategy(frozenset(hints)) is expected


@pytest.mark.parametrize(
    "strategy, stages",
    [
        (Strategy.DIRECT, ["match_with_cursor", "sort", "limit"]),
        (
            Strategy.MEMBERSHIP,
            ["lookup_collection", "unwind_members", "join_documents", "match",
             "cursor_bound", "sort", "limit"],
        ),
        (
            Strategy.TASK_OUTPUT,
            ["lookup_tasks", "join_outputs", "match", "cursor_bound", "sort", "limit"],
        ),
        (Strategy.GRAPH_FAN_OUT, ["rank_per_followee", "cap_per_followee", "sort", "limit"]),
        (
            Strategy.REACTION_FAN_OUT,
            ["lookup_reactions", "join_documents", "match", "cursor_bound", "sort", "limit"],
        ),
    ],
)
def test_stage_layout(strategy, stages) -> None:
    query = compile_query([f"collection;{ALICE}", f"concept;{ALICE}"])
    plan = build_plan(strategy, CREATIONS, query, VisibilityRule(public=True), viewer_id=ALICE)
    assert plan.strategy is strategy
    assert plan.stage_names == stages
    # Every plan folds into one statement ending in the shared sort/limit tail.
    sql = str(plan.statement())
    assert "ORDER BY" in sql
    assert "LIMIT" in sql


def test_graph_fan_out_ranks_per_followee() -> None:
    plan = build_plan(
        Strategy.GRAPH_FAN_OUT, CREATIONS, compile_query(), VisibilityRule(public=True),
        viewer_id=ALICE, limit=20,
    )
    sql = str(plan.statement())
    assert "row_number() OVER (PARTITION BY creations.user_id" in sql
