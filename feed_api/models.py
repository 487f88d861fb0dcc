"""
SQLAlchemy ORM models for the document store.

Tables:
  users                  : creators (profile + denormalised counters)
  agents                 : user-owned agents
  tasks                  : generation tasks; `lora` is the concept argument
  creations              : task outputs (media bytes live in object storage)
  models                 : trained generative models
  collections            : user-curated creation lists
  collection_creations   : collection → creation membership array
  collection_contributors: users allowed to curate a collection
  follows                : social graph edges (follower → following)
  likes                  : user × entity engagement
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from feed_api.database import Base
from feed_api.ids import new_id

ID = String(24)


def _utcnow() -> datetime:
    # Naive UTC, microsecond precision: cursor values round-trip exactly.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    user_image: Mapped[Optional[str]] = mapped_column(String(500))
    follower_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    creation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_users_followers", "follower_count"),)


class Agent(Base):
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    user_image: Mapped[Optional[str]] = mapped_column(String(500))
    public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_agents_owner", "owner_id", "public", "deleted"),)


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False)
    tool: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    # Concept (LoRA) id the task was run with; the task→output join key.
    lora: Mapped[Optional[str]] = mapped_column(ID)
    args: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_tasks_lora", "lora"),)


class Creation(Base):
    __tablename__ = "creations"

    id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False)
    agent_id: Mapped[Optional[str]] = mapped_column(ID, ForeignKey("agents.id"))
    task_id: Mapped[Optional[str]] = mapped_column(ID, ForeignKey("tasks.id"))
    tool: Mapped[Optional[str]] = mapped_column(String(100))
    filename: Mapped[Optional[str]] = mapped_column(String(500))
    mime_type: Mapped[Optional[str]] = mapped_column(String(100))
    public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_creations_feed", "public", "deleted", "id"),
        Index("idx_creations_user", "user_id", "public", "deleted"),
        Index("idx_creations_likes", "public", "deleted", "like_count"),
        Index("idx_creations_task", "task_id"),
    )


class Model(Base):
    __tablename__ = "models"

    id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False)
    task_id: Mapped[Optional[str]] = mapped_column(ID, ForeignKey("tasks.id"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    base_model: Mapped[Optional[str]] = mapped_column(String(100))
    checkpoint: Mapped[Optional[str]] = mapped_column(String(500))
    thumbnail: Mapped[Optional[str]] = mapped_column(String(500))
    public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    creation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_models_user", "user_id", "public", "deleted"),
        Index("idx_models_creations", "public", "deleted", "creation_count"),
    )


class Collection(Base):
    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cover_creation_id: Mapped[Optional[str]] = mapped_column(ID, ForeignKey("creations.id"))
    # The per-user bookmarks collection
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_collections_user", "user_id", "public", "deleted"),)


class CollectionCreation(Base):
    __tablename__ = "collection_creations"

    collection_id: Mapped[str] = mapped_column(
        ID, ForeignKey("collections.id"), primary_key=True
    )
    creation_id: Mapped[str] = mapped_column(
        ID, ForeignKey("creations.id"), primary_key=True
    )
    added_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_collection_creations_creation", "creation_id"),)


class CollectionContributor(Base):
    __tablename__ = "collection_contributors"

    collection_id: Mapped[str] = mapped_column(
        ID, ForeignKey("collections.id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), primary_key=True)


class Follow(Base):
    __tablename__ = "follows"

    follower_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), primary_key=True)
    following_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        # "who follows user X?" used when maintaining follower_count
        Index("idx_follows_following", "following_id"),
    )


class Like(Base):
    __tablename__ = "likes"

    id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # 'creation' | 'model' | 'agent'
    entity_id: Mapped[str] = mapped_column(ID, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "entity_type", "entity_id", name="uq_likes_user_entity"),
        Index("idx_likes_entity", "entity_type", "entity_id"),
        Index("idx_likes_user_time", "user_id", "entity_type", "created_at"),
    )


LIKEABLE_ENTITIES = {"creation": Creation, "model": Model, "agent": Agent}
