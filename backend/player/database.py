from collections.abc import AsyncGenerator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from player.config import settings
from player.events import DISPATCHER_KEY, EventDispatcher, PlayerAsyncSession, dispatcher
from player.exceptions import ConflictError, EntityNotFoundError


def _engine_kwargs(url: str) -> dict:
    # SQLite's single-connection pools reject sizing arguments
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 20, "max_overflow": 10}


def make_session_factory(engine, event_dispatcher: EventDispatcher) -> async_sessionmaker:
    """Session factory whose sessions publish entity events after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=PlayerAsyncSession,
        expire_on_commit=False,
        info={DISPATCHER_KEY: event_dispatcher},
    )


# ---------------------------------------------------------------------------
# Async engine & session (used by FastAPI at runtime)
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_kwargs(settings.DATABASE_URL),
)

AsyncSessionLocal = make_session_factory(async_engine, dispatcher)

# ---------------------------------------------------------------------------
# Declarative base for all models
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


async def get_or_404(db: AsyncSession, model: type, entity_id, label: str | None = None):
    """Return ``model`` row *entity_id* or raise ``EntityNotFoundError``."""
    entity = await db.get(model, entity_id)
    if entity is None:
        raise EntityNotFoundError(label or model.__name__, entity_id)
    return entity


async def commit_or_conflict(db: AsyncSession, message: str) -> None:
    """Commit, turning a unique-constraint violation into ``ConflictError``."""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(message) from None
