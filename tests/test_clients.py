"""Tests for the similarity (Qdrant) and search (HTTP) collaborators."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from feed_api.clients.search_client import SearchClient
from feed_api.clients.similarity_client import point_id, similar_creation_ids
from feed_api.query.errors import SearchUnavailable, SimilarityUnavailable

REF = "65e1c0de00000000000000f0"
NEAR = "65e1c0de00000000000000f1"
FAR = "65e1c0de00000000000000f2"


def _qdrant(vector=(0.1, 0.2), hits=()) -> AsyncMock:
    client = AsyncMock()
    client.retrieve.return_value = [SimpleNamespace(vector=list(vector))] if vector else []
    client.query_points.return_value = SimpleNamespace(
        points=[SimpleNamespace(payload={"creation_id": cid}, score=s) for cid, s in hits]
    )
    return client


async def test_neighbours_exclude_reference() -> None:
    client = _qdrant(hits=[(REF, 1.0), (NEAR, 0.83), (FAR, 0.41)])

    scores = await similar_creation_ids(REF, client=client)

    assert scores == {NEAR: 0.83, FAR: 0.41}
    assert client.retrieve.await_args.kwargs["ids"] == [point_id(REF)]
    assert client.query_points.await_args.kwargs["query"] == [0.1, 0.2]


async def test_reference_without_vector() -> None:
    client = _qdrant(vector=None)

    assert await similar_creation_ids(REF, client=client) == {}
    client.query_points.assert_not_awaited()


async def test_qdrant_error_is_unavailable() -> None:
    client = _qdrant()
    client.query_points.side_effect = ConnectionError("refused")

    with pytest.raises(SimilarityUnavailable):
        await similar_creation_ids(REF, client=client)


def test_point_ids_are_stable_uuids() -> None:
    assert point_id(REF) == point_id(REF)
    assert point_id(REF) != point_id(NEAR)
    assert len(point_id(REF)) == 36


def _search_client(handler) -> SearchClient:
    client = SearchClient()
    client._http = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://search"
    )
    return client


async def test_search_returns_ids() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"ids": [NEAR, FAR]})

    client = _search_client(handler)
    try:
        assert await client.search_ids("models", "fox") == [NEAR, FAR]
    finally:
        await client.stop()
    assert seen["index"] == "models"
    assert seen["query"] == "fox"


async def test_search_error_is_unavailable() -> None:
    client = _search_client(lambda request: httpx.Response(503))
    try:
        with pytest.raises(SearchUnavailable):
            await client.search_ids("creations", "fox")
    finally:
        await client.stop()


async def test_search_not_started() -> None:
    with pytest.raises(SearchUnavailable):
        await SearchClient().search_ids("creations", "fox")
