"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Document store (MySQL-protocol, async SQLAlchemy) ─────────────────
    database_url: str = "mysql+aiomysql://root:@tidb:4000/feed"
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_echo: bool = False

    # ── Qdrant (nearest-neighbour similarity) ─────────────────────────────
    qdrant_host: str = "qdrant"
    qdrant_port: int = 6333
    qdrant_collection: str = "creation_clip_embeddings"
    similarity_neighbours: int = 10          # results returned besides the reference
    similarity_timeout_seconds: float = 2.0

    # ── External search service ───────────────────────────────────────────
    # Unset → free-text search falls back to a LIKE predicate in the store.
    search_service_url: Optional[str] = None
    search_timeout_seconds: float = 2.0
    search_max_results: int = 500

    # ── Media ─────────────────────────────────────────────────────────────
    media_base_url: str = "https://media.example.com"

    # ── Feed paging ───────────────────────────────────────────────────────
    feed_default_limit: int = 100
    feed_max_limit: int = 500

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    tracing_enabled: bool = True
    service_name: str = "feed-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
