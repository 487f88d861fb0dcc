"""
Feed Cursor API: entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP), unless disabled
  2. Create tables if not present
  3. Connect to Qdrant (creation similarity)
  4. Start the search service client (when configured)
  5. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from feed_api.config import settings
from feed_api.database import init_db
from feed_api.telemetry import setup_tracing, instrument_app
from feed_api.clients.similarity_client import close_qdrant, init_qdrant
from feed_api.clients.search_client import search_client
from feed_api.routers import creations, feed, likes, users

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Feed Cursor API (env=%s)", settings.environment)

    await init_db()
    await init_qdrant()
    await search_client.start()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await search_client.stop()
    await close_qdrant()


app = FastAPI(
    title="Feed Cursor API",
    description=(
        "Cursor-paginated feeds over creations, models, collections, agents "
        "and creators: filter/sort DSL, privacy rules and stable pagination."
    ),
    version="2.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(feed.router, prefix="/v2/feed-cursor", tags=["Feed"])
app.include_router(creations.router, prefix="/v2/creations", tags=["Creations"])
app.include_router(likes.router, prefix="/v2/likes", tags=["Likes"])
app.include_router(users.router, prefix="/v2/users", tags=["Users"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics: scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
