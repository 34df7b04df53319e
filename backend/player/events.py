"""Entity change events for Player.

Every flush records which mapped objects were inserted, updated or deleted.
The records stay on the session until the transaction commits and are only
then handed to the ``EventDispatcher``; a change that is rolled back (or a
session closed without commit) never reaches a handler.

Events:

* ``EntityCreated(entity)``
* ``EntityUpdated(entity, modified_properties)`` -- names of the column
  attributes that changed in the flush
* ``EntityDeleted(entity)``
"""
from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Union

from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = "player.pending_events"
COMMITTED_EVENTS_KEY = "player.committed_events"
DISPATCHER_KEY = "player.event_dispatcher"


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class EntityCreated:
    entity: Any


@dataclasses.dataclass(frozen=True)
class EntityUpdated:
    entity: Any
    modified_properties: frozenset[str] = frozenset()


@dataclasses.dataclass(frozen=True)
class EntityDeleted:
    entity: Any


EntityEvent = Union[EntityCreated, EntityUpdated, EntityDeleted]
EventHandler = Callable[[EntityEvent], Awaitable[None]]


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class EventDispatcher:
    """Routes events to handlers registered for ``(event type, entity type)``."""

    def __init__(self) -> None:
        self._handlers: dict[tuple[type, type], list[EventHandler]] = defaultdict(list)

    def subscribe(
        self,
        event_type: type,
        entity_type: type,
        handler: EventHandler,
    ) -> None:
        self._handlers[(event_type, entity_type)].append(handler)

    def handlers_for(self, evt: EntityEvent) -> list[EventHandler]:
        return list(self._handlers.get((type(evt), type(evt.entity)), ()))

    async def publish(self, evt: EntityEvent) -> None:
        """Run every handler for *evt*.  Failures are logged only."""
        for handler in self.handlers_for(evt):
            try:
                await handler(evt)
            except Exception:
                logger.exception(
                    "Event handler failed for %s<%s>",
                    type(evt).__name__,
                    type(evt.entity).__name__,
                )

    async def publish_all(self, events: Iterable[EntityEvent]) -> None:
        for evt in events:
            await self.publish(evt)


# ---------------------------------------------------------------------------
# Change tracking
# ---------------------------------------------------------------------------


def _modified_properties(obj: Any) -> frozenset[str]:
    state = inspect(obj)
    return frozenset(
        prop.key
        for prop in state.mapper.column_attrs
        if state.attrs[prop.key].history.has_changes()
    )


class TrackedSession(Session):
    """Sync session that records entity changes per flush."""


@event.listens_for(TrackedSession, "after_flush")
def _record_flush(session: Session, flush_context: Any) -> None:
    # new/dirty/deleted and attribute history still reflect the pre-flush state here
    pending = session.info.setdefault(PENDING_EVENTS_KEY, [])

    for obj in session.new:
        pending.append(EntityCreated(obj))

    for obj in session.dirty:
        if not session.is_modified(obj, include_collections=False):
            continue
        modified = _modified_properties(obj)
        if modified:
            pending.append(EntityUpdated(obj, modified))

    for obj in session.deleted:
        pending.append(EntityDeleted(obj))


@event.listens_for(TrackedSession, "after_commit")
def _promote_on_commit(session: Session) -> None:
    pending = session.info.pop(PENDING_EVENTS_KEY, [])
    if pending:
        session.info.setdefault(COMMITTED_EVENTS_KEY, []).extend(pending)


@event.listens_for(TrackedSession, "after_transaction_end")
def _discard_uncommitted(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is None:
        session.info.pop(PENDING_EVENTS_KEY, None)


class PlayerAsyncSession(AsyncSession):
    """AsyncSession that publishes recorded events once ``commit()`` succeeds."""

    sync_session_class = TrackedSession

    async def commit(self) -> None:
        await super().commit()
        committed = self.info.pop(COMMITTED_EVENTS_KEY, [])
        dispatcher: EventDispatcher | None = self.info.get(DISPATCHER_KEY)
        if dispatcher is not None and committed:
            await dispatcher.publish_all(committed)


# Process-wide dispatcher used by the default session factory
dispatcher = EventDispatcher()
