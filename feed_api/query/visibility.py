"""
Visibility policy.

Decides which default predicates a feed request gets:

  • creators feed (no privacy)   → nothing
  • likedBy filter               → per-document rule against the liker
  • own profile / own collection → public/private left to the client toggle
  • everyone else                → public = true, whatever the client sent

`deleted = false` is added in every privacy-enforcing case unless the
context explicitly opts out.

The policy only ever reads the `VisibilityContext` it is handed; the engine
builds that value once per request.
"""
from dataclasses import dataclass
from typing import Optional

from feed_api.query.compiler import FeedQuery


@dataclass(frozen=True)
class VisibilityContext:
    viewer_id: Optional[str] = None
    is_own_profile_view: bool = False
    owns_collection_or_contributes: bool = False
    via_liked_by_filter: bool = False
    enforce_privacy: bool = True
    include_deleted: bool = False


@dataclass(frozen=True)
class VisibilityRule:
    # None → no public/private predicate
    public: Optional[bool] = None
    exclude_deleted: bool = True
    # Set under likedBy: (owner != liker AND public) OR (owner == liker AND NOT public)
    liked_by: Optional[str] = None
    viewer_id: Optional[str] = None


def build_context(
    query: FeedQuery,
    viewer_id: Optional[str],
    *,
    collection_access: bool = False,
    enforce_privacy: bool = True,
    include_deleted: bool = False,
) -> VisibilityContext:
    """Derive the request's visibility context from its compiled query."""
    owners = set(query.owner_values)
    own_profile = viewer_id is not None and owners == {viewer_id}
    return VisibilityContext(
        viewer_id=viewer_id,
        is_own_profile_view=own_profile,
        owns_collection_or_contributes=collection_access and viewer_id is not None,
        via_liked_by_filter=query.liked_by is not None,
        enforce_privacy=enforce_privacy,
        include_deleted=include_deleted,
    )


def resolve_visibility(ctx: VisibilityContext, query: FeedQuery) -> VisibilityRule:
    if not ctx.enforce_privacy:
        return VisibilityRule(public=None, exclude_deleted=False)

    exclude_deleted = not ctx.include_deleted

    if ctx.via_liked_by_filter:
        return VisibilityRule(
            public=None,
            exclude_deleted=exclude_deleted,
            liked_by=query.liked_by,
            viewer_id=ctx.viewer_id,
        )

    if ctx.is_own_profile_view or ctx.owns_collection_or_contributes:
        return VisibilityRule(
            public=query.public_toggle,
            exclude_deleted=exclude_deleted,
            viewer_id=ctx.viewer_id,
        )

    return VisibilityRule(public=True, exclude_deleted=exclude_deleted, viewer_id=ctx.viewer_id)
