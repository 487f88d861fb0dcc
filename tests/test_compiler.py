"""Tests for the filter/sort DSL compiler."""

from datetime import datetime

import pytest

from feed_api.query.compiler import compile_query
from feed_api.query.errors import MalformedFilterError
from feed_api.query.fields import (
    IMAGE_MIME_TYPES,
    Direction,
    FieldKind,
    Hint,
    SortKind,
)

ALICE = "65e1c0de0000000000000001"
BOB = "65e1c0de0000000000000002"
COLL = "65e1c0de00000000000000c1"


class TestFilters:
    def test_identity_term(self) -> None:
        q = compile_query([f"user;{ALICE}"])
        term = q.filters.get("user")
        assert term.kind is FieldKind.IDENTITY
        assert term.value == ALICE
        assert q.identity_values == (ALICE,)

    def test_any_of_accumulates(self) -> None:
        q = compile_query(["tool;flux", "tool;sdxl"])
        assert q.filters.get("tool").value == ("flux", "sdxl")

    def test_output_type_expands_to_mime_types(self) -> None:
        q = compile_query(["output_type;image"])
        term = q.filters.get("output_type")
        assert term.column == "mime_type"
        assert term.value == IMAGE_MIME_TYPES

    def test_unknown_output_type_dropped(self) -> None:
        q = compile_query(["output_type;hologram"])
        assert q.filters.terms == ()

    def test_unknown_field_dropped(self) -> None:
        q = compile_query(["colour;blue", f"user;{ALICE}"])
        assert [t.field for t in q.filters.terms] == ["user"]

    def test_unsupported_field_dropped(self) -> None:
        q = compile_query([f"agent;{ALICE}"], supported_fields=frozenset({"user"}))
        assert q.filters.terms == ()

    def test_unsupported_hint_dropped(self) -> None:
        q = compile_query(
            [f"collection;{COLL}"], supported_hints=frozenset({Hint.GRAPH_FAN_OUT})
        )
        assert q.collection_id is None
        assert Hint.MEMBERSHIP not in q.hints

    @pytest.mark.parametrize("token", ["user;nope", "collection;123", "_id;zz"])
    def test_malformed_identifier_raises(self, token: str) -> None:
        with pytest.raises(MalformedFilterError):
            compile_query([token])

    def test_malformed_date_raises(self) -> None:
        with pytest.raises(MalformedFilterError) as exc_info:
            compile_query(["minDate;last-tuesday"])
        assert exc_info.value.field == "minDate"
        assert isinstance(exc_info.value, ValueError)

    def test_last_date_bound_wins(self) -> None:
        q = compile_query(["minDate;2024-01-01", "minDate;2024-02-01T10:00:00Z"])
        assert q.filters.min_date == datetime(2024, 2, 1, 10, 0, 0)
        assert len(q.filters.of_kind(FieldKind.DATE_RANGE)) == 1

    def test_threshold_non_integer_is_zero(self) -> None:
        q = compile_query(["likeCount;lots"])
        assert q.filters.get("likeCount").value == 0

    def test_visibility_aliases_share_one_toggle(self) -> None:
        q = compile_query(["public;false", "visibility;true"])
        assert q.public_toggle is True
        assert len(q.filters.of_kind(FieldKind.VISIBILITY)) == 1

    def test_parent_lookups_raise_hints(self) -> None:
        q = compile_query([f"collection;{COLL}", f"concept;{BOB}", f"likedBy;{ALICE}"])
        assert q.hints == {Hint.MEMBERSHIP, Hint.TASK_OUTPUT, Hint.REACTION_FAN_OUT}
        assert q.collection_id == COLL
        assert q.concept == BOB
        assert q.liked_by == ALICE

    def test_liked_by_discards_public_toggle(self) -> None:
        q = compile_query(["public;false", f"likedBy;{ALICE}"])
        assert q.public_toggle is None

    def test_search_term(self) -> None:
        q = compile_query(["search;  red fox  "])
        assert q.search == "red fox"


class TestSorts:
    def test_counter_sort_adds_zero_threshold(self) -> None:
        q = compile_query(sort_tokens=["likeCount;-1"])
        key = q.sort.primary
        assert key.kind is SortKind.COUNTER
        assert key.direction is Direction.DESC
        assert q.filters.get("likeCount").value == 0

    def test_counter_sort_keeps_explicit_threshold(self) -> None:
        q = compile_query(["likeCount;5"], ["likeCount;-1"])
        assert q.filters.get("likeCount").value == 5

    def test_bad_direction_dropped(self) -> None:
        q = compile_query(sort_tokens=["createdAt;sideways"])
        assert q.sort.primary is None

    def test_only_one_literal_key(self) -> None:
        q = compile_query(sort_tokens=["createdAt;1", "likeCount;-1"])
        assert [k.field for k in q.sort.keys] == ["createdAt"]
        assert q.filters.get("likeCount") is None

    def test_fan_out_sorts_are_hints(self) -> None:
        q = compile_query(sort_tokens=["following;-1"])
        assert q.hints == {Hint.GRAPH_FAN_OUT}
        assert q.sort.primary is None

    def test_similarity_sort_needs_reference(self) -> None:
        assert compile_query(sort_tokens=["similarity;-1"]).sort.primary is None
        q = compile_query([f"creation;{ALICE}"], ["embedding.score;-1"])
        assert q.sort.primary.kind is SortKind.SIMILARITY
        assert q.similar_to == ALICE

    def test_compile_is_pure(self) -> None:
        tokens = ([f"user;{ALICE}", "tool;flux"], ["likeCount;-1"])
        assert compile_query(*tokens) == compile_query(*tokens)
