"""
Qdrant nearest-neighbour client for the creations similarity feed.

Collection layout:
  name    : creation_clip_embeddings  (settings.qdrant_collection)
  point id: uuid5(NAMESPACE_OID, creation_id)
  vector  : image embedding of the creation
  payload : { creation_id }

`filter=creation;<id>` asks for the neighbours of that creation. A
reference without a stored vector yields no neighbours; any client error or
timeout is raised as `SimilarityUnavailable` so the feed can short-circuit.
"""
import asyncio
import logging
import uuid
from typing import Optional

from qdrant_client import AsyncQdrantClient

from feed_api.config import settings
from feed_api.query.errors import SimilarityUnavailable
from feed_api.telemetry import SIMILARITY_ERRORS_TOTAL

logger = logging.getLogger(__name__)

_qdrant: Optional[AsyncQdrantClient] = None


async def init_qdrant() -> None:
    global _qdrant
    _qdrant = AsyncQdrantClient(
        host=settings.qdrant_host,
        port=settings.qdrant_port,
        timeout=int(settings.similarity_timeout_seconds) or 1,
    )
    try:
        exists = await _qdrant.collection_exists(settings.qdrant_collection)
    except Exception as exc:
        logger.warning("Qdrant unreachable at startup: %s; similarity feed degraded", exc)
        return
    if exists:
        logger.info("Qdrant collection '%s' available", settings.qdrant_collection)
    else:
        logger.warning("Qdrant collection '%s' missing", settings.qdrant_collection)


async def close_qdrant() -> None:
    global _qdrant
    if _qdrant is not None:
        await _qdrant.close()
        _qdrant = None


def get_qdrant() -> AsyncQdrantClient:
    if _qdrant is None:
        raise RuntimeError("Qdrant not initialised; call init_qdrant() at startup")
    return _qdrant


def point_id(creation_id: str) -> str:
    # Qdrant IDs must be unsigned ints or UUID strings
    return str(uuid.uuid5(uuid.NAMESPACE_OID, creation_id))


async def _neighbours(client: AsyncQdrantClient, creation_id: str) -> dict[str, float]:
    points = await client.retrieve(
        collection_name=settings.qdrant_collection,
        ids=[point_id(creation_id)],
        with_vectors=True,
        with_payload=False,
    )
    if not points or points[0].vector is None:
        return {}

    response = await client.query_points(
        collection_name=settings.qdrant_collection,
        query=points[0].vector,
        # The reference itself is always its own nearest neighbour.
        limit=settings.similarity_neighbours + 1,
        with_payload=True,
    )
    scores: dict[str, float] = {}
    for hit in response.points:
        cid = (hit.payload or {}).get("creation_id")
        if cid and cid != creation_id:
            scores[cid] = float(hit.score)
    return scores


async def similar_creation_ids(
    creation_id: str, client: Optional[AsyncQdrantClient] = None
) -> dict[str, float]:
    """
    Creations similar to `creation_id` → {creation_id: score}.

    Empty when the reference has no stored vector. Raises
    `SimilarityUnavailable` on any collaborator failure or timeout.
    """
    try:
        return await asyncio.wait_for(
            _neighbours(client or get_qdrant(), creation_id),
            timeout=settings.similarity_timeout_seconds,
        )
    except Exception as exc:
        logger.warning("Similarity lookup for %s failed: %s", creation_id, exc)
        SIMILARITY_ERRORS_TOTAL.inc()
        raise SimilarityUnavailable(str(exc)) from exc
