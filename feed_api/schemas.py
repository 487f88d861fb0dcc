"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

JSON keys are camelCase (`nextCursor`, `likeCount`, `isLiked`); Python
attributes stay snake_case.
"""
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ──────────────────────────── Summaries (late lookups) ────────────────────

class UserSummary(_Schema):
    id: str
    username: str
    user_image: Optional[str] = None


class AgentSummary(_Schema):
    id: str
    name: str
    user_image: Optional[str] = None


class TaskSummary(_Schema):
    id: str
    tool: str
    status: str
    args: Optional[dict[str, Any]] = None


class CoverCreation(_Schema):
    id: str
    filename: Optional[str] = None
    thumbnail: Optional[str] = None


# ──────────────────────────── Feed documents ──────────────────────────────

class CreationDoc(_Schema):
    id: str
    user: Optional[UserSummary] = None
    agent: Optional[AgentSummary] = None
    task: Optional[TaskSummary] = None
    tool: Optional[str] = None
    filename: Optional[str] = None
    url: Optional[str] = None
    thumbnail: Optional[str] = None
    mime_type: Optional[str] = None
    public: bool
    like_count: int
    created_at: datetime
    is_liked: Optional[bool] = None


class ModelDoc(_Schema):
    id: str
    name: str
    user: Optional[UserSummary] = None
    task: Optional[TaskSummary] = None
    base_model: Optional[str] = None
    checkpoint: Optional[str] = None
    thumbnail: Optional[str] = None
    public: bool
    like_count: int
    creation_count: int
    created_at: datetime
    is_liked: Optional[bool] = None


class CollectionDoc(_Schema):
    id: str
    name: str
    description: Optional[str] = None
    user: Optional[UserSummary] = None
    cover_creation: Optional[CoverCreation] = None
    public: bool
    like_count: int
    created_at: datetime


class AgentDoc(_Schema):
    id: str
    name: str
    description: Optional[str] = None
    user_image: Optional[str] = None
    owner: Optional[UserSummary] = None
    public: bool
    like_count: int
    created_at: datetime
    is_liked: Optional[bool] = None


class CreatorDoc(_Schema):
    id: str
    username: str
    user_image: Optional[str] = None
    follower_count: int
    creation_count: int
    created_at: datetime


DocT = TypeVar("DocT")


# ──────────────────────────── Pages ───────────────────────────────────────

class CursorPage(_Schema, Generic[DocT]):
    """A cursor-paginated slice. No `nextCursor` means the feed is exhausted."""
    docs: list[DocT] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    next_value: Optional[Union[int, float]] = None
    reactions: Optional[dict[str, dict[str, bool]]] = None
    bookmarks: Optional[dict[str, bool]] = None


class OffsetPage(_Schema, Generic[DocT]):
    docs: list[DocT] = Field(default_factory=list)
    total: int
    page: int
    limit: int
    pages: int


# ──────────────────────────── Writes ──────────────────────────────────────

class LikeRequest(_Schema):
    entity_type: str = Field(..., pattern="^(creation|model|agent)$")
    entity_id: str = Field(..., min_length=24, max_length=24)


class FollowRequest(_Schema):
    following_id: str = Field(..., min_length=24, max_length=24)
