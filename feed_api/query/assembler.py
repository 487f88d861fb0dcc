"""Response assembly: cursor pages for the feeds, offset pages for listings."""
import math
from typing import Optional

from feed_api.query.cursor import NextCursor
from feed_api.query.enrichment import EnrichedPage
from feed_api.schemas import CursorPage, OffsetPage


def cursor_page(page: EnrichedPage, nxt: Optional[NextCursor] = None) -> CursorPage:
    """
    Build the `{docs, nextCursor?, nextValue?, reactions?, bookmarks?}` page.

    An empty page is just `{docs: []}`; the maps are present only when the
    feed computed them for a viewer.
    """
    if not page.docs:
        return empty_page()
    nxt = nxt or NextCursor()
    reactions = None
    if page.liked is not None and page.bookmarked is not None:
        reactions = {doc_id: {"like": True} for doc_id in sorted(page.liked)}
    bookmarks = None
    if page.bookmarked is not None:
        bookmarks = {doc_id: True for doc_id in sorted(page.bookmarked)}
    return CursorPage(
        docs=page.docs,
        next_cursor=nxt.cursor,
        next_value=nxt.value,
        reactions=reactions,
        bookmarks=bookmarks,
    )


def empty_page() -> CursorPage:
    return CursorPage(docs=[])


def offset_page(page: EnrichedPage, total: int, page_number: int, limit: int) -> OffsetPage:
    return OffsetPage(
        docs=page.docs,
        total=total,
        page=page_number,
        limit=limit,
        pages=math.ceil(total / limit) if limit else 0,
    )
