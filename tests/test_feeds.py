"""Per-target behaviour: field maps, parent lookups, search and offset listing."""

from datetime import timedelta
from unittest.mock import AsyncMock

from feed_api.query.engine import FeedEngine, FeedParams
from feed_api.query.errors import SearchUnavailable
from feed_api.query.targets import AGENTS, COLLECTIONS, CREATIONS, CREATORS, MODELS


def _ids(page) -> list[str]:
    return [d.id for d in page.docs]


async def test_concept_feed_joins_task_outputs(seed, engine) -> None:
    alice = await seed.user()
    concept = seed.next_id()
    trained = await seed.task(alice, lora=concept)
    other = await seed.task(alice, lora=seed.next_id())
    outputs = await seed.creations(alice, 2, task_id=trained.id)
    await seed.creation(alice, task_id=other.id)
    await seed.creation(alice)

    page = await engine.cursor_page(CREATIONS, FeedParams(filters=(f"concept;{concept}",)))
    assert _ids(page) == [c.id for c in reversed(outputs)]


async def test_any_of_and_date_filters(seed, engine) -> None:
    alice = await seed.user()
    flux = await seed.creation(alice, tool="flux")
    video = await seed.creation(alice, tool="runway", mime_type="video/mp4")
    sdxl = await seed.creation(alice, tool="sdxl")
    await seed.creation(alice, tool="dalle")

    page = await engine.cursor_page(CREATIONS, FeedParams(filters=("tool;flux", "tool;sdxl")))
    assert _ids(page) == [sdxl.id, flux.id]

    page = await engine.cursor_page(CREATIONS, FeedParams(filters=("output_type;video",)))
    assert _ids(page) == [video.id]

    since = (video.created_at).isoformat()
    until = (sdxl.created_at).isoformat()
    page = await engine.cursor_page(
        CREATIONS, FeedParams(filters=(f"minDate;{since}", f"maxDate;{until}"))
    )
    assert _ids(page) == [sdxl.id, video.id]


async def test_unsupported_parent_lookup_is_dropped(seed, engine) -> None:
    alice = await seed.user()
    models = [await seed.model(alice) for _ in range(2)]
    coll = await seed.collection(alice)

    page = await engine.cursor_page(MODELS, FeedParams(filters=(f"collection;{coll.id}",)))
    assert _ids(page) == [m.id for m in reversed(models)]


async def test_models_creation_count_sort(seed, engine) -> None:
    alice = await seed.user()
    low = await seed.model(alice, creation_count=2)
    high = await seed.model(alice, creation_count=9)
    await seed.model(alice, creation_count=0)

    page = await engine.cursor_page(MODELS, FeedParams(sorts=("creationCount;-1",)))
    assert _ids(page) == [high.id, low.id]
    assert page.next_value == 2


async def test_store_side_search_fallback(seed, engine) -> None:
    alice = await seed.user()
    fox = await seed.model(alice, name="Red Fox LoRA")
    await seed.model(alice, name="Blue Whale")
    percent = await seed.model(alice, name="100% cotton")

    page = await engine.cursor_page(MODELS, FeedParams(filters=("search;fox",)))
    assert _ids(page) == [fox.id]
    # LIKE wildcards in user text are matched literally.
    page = await engine.cursor_page(MODELS, FeedParams(filters=("search;0%",)))
    assert _ids(page) == [percent.id]


async def test_search_service_allow_list(seed, db) -> None:
    alice = await seed.user()
    a, b, c = await seed.creations(alice, 3)
    search = AsyncMock(return_value=[a.id, c.id])
    engine = FeedEngine(db, search=search)

    page = await engine.cursor_page(CREATIONS, FeedParams(filters=("search;cats",)))
    assert _ids(page) == [c.id, a.id]
    search.assert_awaited_once_with("creations", "cats")


async def test_search_service_failure_short_circuits(seed, db) -> None:
    alice = await seed.user()
    await seed.creations(alice, 2)
    engine = FeedEngine(db, search=AsyncMock(side_effect=SearchUnavailable("down")))

    page = await engine.cursor_page(CREATIONS, FeedParams(filters=("search;cats",)))
    assert page.docs == []


async def test_agents_user_filter_maps_to_owner(seed, engine) -> None:
    alice = await seed.user()
    bob = await seed.user()
    mine = await seed.agent(alice)
    await seed.agent(bob)
    hidden = await seed.agent(alice, public=False)

    page = await engine.cursor_page(AGENTS, FeedParams(filters=(f"user;{alice.id}",)))
    assert _ids(page) == [mine.id]

    own = await engine.cursor_page(AGENTS, FeedParams(filters=(f"user;{alice.id}",)), alice.id)
    assert _ids(own) == [hidden.id, mine.id]


async def test_collections_feed_hides_private(seed, engine) -> None:
    alice = await seed.user()
    shown = await seed.collection(alice)
    await seed.collection(alice, public=False)
    await seed.collection(alice, deleted=True)

    page = await engine.cursor_page(COLLECTIONS, FeedParams())
    assert _ids(page) == [shown.id]


async def test_creators_feed_has_no_privacy(seed, engine) -> None:
    quiet = await seed.user(follower_count=0)
    popular = await seed.user(follower_count=50)
    known = await seed.user(follower_count=5)

    page = await engine.cursor_page(CREATORS, FeedParams(sorts=("followerCount;-1",)))
    assert _ids(page) == [popular.id, known.id]
    assert quiet.id not in _ids(page)

    # Filters the creators feed cannot map are ignored rather than rejected.
    page = await engine.cursor_page(CREATORS, FeedParams(filters=("public;false", "tool;x")))
    assert len(page.docs) == 3


async def test_offset_listing_totals(seed, engine) -> None:
    alice = await seed.user()
    made = await seed.creations(alice, 7)
    await seed.creation(alice, public=False)

    first = await engine.offset_page(CREATIONS, FeedParams(limit=3), page_number=1)
    last = await engine.offset_page(CREATIONS, FeedParams(limit=3), page_number=3)

    assert (first.total, first.pages, first.page, first.limit) == (7, 3, 1, 3)
    assert _ids(first) == [c.id for c in reversed(made)][:3]
    assert _ids(last) == [made[0].id]


async def test_offset_listing_short_circuit(seed, engine, similarity) -> None:
    alice = await seed.user()
    ref = await seed.creation(alice)
    similarity.return_value = {}

    page = await engine.offset_page(CREATIONS, FeedParams(filters=(f"creation;{ref.id}",)))
    assert (page.total, page.pages, page.docs) == (0, 0, [])


async def test_reaction_time_ties_break_by_id(seed, engine) -> None:
    me = await seed.user()
    other = await seed.user()
    made = await seed.creations(other, 4)
    at = made[-1].created_at + timedelta(hours=1)
    for c in made:
        await seed.like(me, c, at=at)

    page = await engine.cursor_page(CREATIONS, FeedParams(sorts=("liked;-1",), limit=3), me.id)
    assert _ids(page) == [c.id for c in reversed(made)][:3]
