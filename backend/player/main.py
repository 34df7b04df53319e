"""Player API --- FastAPI Application."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging

from player.config import settings
from player.database import Base, async_engine, AsyncSessionLocal
from player.events import dispatcher
from player.exceptions import PlayerError
from player.rbac import seed_catalog
from player.services.cache_invalidation import register_cache_invalidation
from player.services.claims_cache import get_claims_cache
import player.models  # noqa: F401  (registers tables on Base.metadata)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def run_claims_cache_sweep():
    """Drop expired entries from the claims cache."""
    try:
        purged = get_claims_cache().purge_expired()
        if purged:
            logger.info(f"Claims cache sweep removed {purged} expired entries")
    except Exception as e:
        logger.error(f"Claims cache sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Player API...")

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema verified")

    if settings.SEED_ON_STARTUP:
        async with AsyncSessionLocal() as session:
            await seed_catalog(session)
        logger.info("Permission catalog seeded")

    register_cache_invalidation(dispatcher, get_claims_cache(), AsyncSessionLocal)

    # Schedule jobs
    scheduler.add_job(
        run_claims_cache_sweep,
        "interval",
        minutes=settings.CLAIMS_CACHE_SWEEP_MINUTES,
        id="claims_cache_sweep",
    )
    scheduler.start()
    logger.info("Scheduled jobs started (claims cache sweep)")

    logger.info("Player API started successfully")
    yield

    # Shutdown
    scheduler.shutdown()
    await async_engine.dispose()
    logger.info("Player API shut down")


app = FastAPI(
    title="Player",
    description="Views, Teams and their permissions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PlayerError)
async def player_error_handler(request: Request, exc: PlayerError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Import and register routers
from player.routes import permissions, roles, team_permissions, teams, users, views

app.include_router(permissions.router)
app.include_router(team_permissions.router)
app.include_router(roles.router)
app.include_router(views.router)
app.include_router(teams.router)
app.include_router(users.router)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "Player API", "version": "1.0.0"}
