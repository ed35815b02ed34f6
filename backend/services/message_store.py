# backend/services/message_store.py

from __future__ import annotations

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, List, Optional, Set

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from models.models import ChatMessage, MessageKind
from models.tables import Base, CounterRecord, MessageRecord, RoomRecord

logger = logging.getLogger(__name__)

MESSAGE_ID_COUNTER = "messages"

# ============================================================================
# MESSAGE PERSISTENCE GATEWAY
# ============================================================================

class MessageStore:
    """
    Durable store for rooms and messages.

    Writes are append-only, reads are keyed by room, deletes are scoped to
    the room the requester is currently in. Message identifiers come from a
    process-wide monotonic counter seeded from a persisted high-water mark, so an
    id can be handed out (and broadcast) before the row is written.

    Background writes go through schedule(). Their failures are logged and
    counted on the store (failure_count / last_failure) instead of being
    raised to anyone, since the broadcast they belong to already happened.

    Usage:
        store = MessageStore("sqlite+aiosqlite:///chat.db")
        await store.init()
        await store.ensure_room("abc123")
        messages = await store.get_recent_messages("abc123", 50)
    """

    def __init__(self, database_url: str, **engine_kwargs) -> None:
        self.shared_connection = database_url.startswith("sqlite") and ":memory:" in database_url
        if self.shared_connection:
            # One shared connection, otherwise every checkout sees an empty database
            engine_kwargs.setdefault("poolclass", StaticPool)
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})

        self.database_url = database_url
        self.engine = create_async_engine(database_url, echo=False, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        # Sessions on a shared connection must not interleave their transactions
        self._lock = asyncio.Lock() if self.shared_connection else None

        self._ids = itertools.count(1)
        self._pending: Set[asyncio.Task] = set()

        self.failure_count: int = 0
        self.last_failure: Optional[str] = None

    async def init(self) -> None:
        """
        Create tables and seed the id counter.

        The seed is past both the highest stored id and the recorded
        high-water mark, so ids of deleted messages are never handed out again.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with self._session() as session:
            highest = (await session.execute(select(func.max(MessageRecord.id)))).scalar() or 0
            counter = await session.get(CounterRecord, MESSAGE_ID_COUNTER)
            if counter is None:
                session.add(CounterRecord(name=MESSAGE_ID_COUNTER, value=highest))
            else:
                highest = max(highest, counter.value)
                counter.value = highest
            await session.commit()

        self._ids = itertools.count(highest + 1)
        logger.info("✓ Message store ready (%s), next message id %d", self.database_url, highest + 1)

    async def dispose(self) -> None:
        await self.wait_pending()
        await self.engine.dispose()
        logger.info("Message store closed")

    def next_id(self) -> int:
        return next(self._ids)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._lock is None:
            async with self.sessionmaker() as session:
                yield session
            return

        async with self._lock:
            async with self.sessionmaker() as session:
                yield session

    # ------------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------------

    async def ensure_room(self, room_id: str) -> None:
        """Create the room record if it does not exist yet. Idempotent."""
        async with self._session() as session:
            if await session.get(RoomRecord, room_id) is not None:
                return
            session.add(RoomRecord(id=room_id, name=f"Room {room_id[:8]}"))
            try:
                await session.commit()
                logger.info("✓ Created room record: %s", room_id)
            except IntegrityError:
                # Another session created it first
                await session.rollback()

    # ------------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------------

    async def insert_message(
        self,
        room_id: str,
        username: str,
        body: Optional[str],
        kind: MessageKind | str = MessageKind.TEXT,
        file_url: Optional[str] = None,
        file_name: Optional[str] = None,
        *,
        message_id: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> int:
        """
        Append a message and return its identifier.

        message_id and timestamp are normally assigned by the caller before
        the message is broadcast; when omitted they are allocated here.
        """
        if message_id is None:
            message_id = self.next_id()

        record = MessageRecord(
            id=message_id,
            room_id=room_id,
            username=username,
            message=body,
            message_type=MessageKind(kind).value,
            file_url=file_url,
            file_name=file_name,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        bump_counter = (
            update(CounterRecord)
            .where(CounterRecord.name == MESSAGE_ID_COUNTER, CounterRecord.value < message_id)
            .values(value=message_id)
        )
        async with self._session() as session:
            session.add(record)
            await session.execute(bump_counter)
            await session.commit()
        return message_id

    async def save_message(self, message: ChatMessage) -> int:
        return await self.insert_message(
            message.room_id,
            message.username,
            message.message,
            message.message_type,
            message.file_url,
            message.file_name,
            message_id=message.id,
            timestamp=message.timestamp,
        )

    async def get_recent_messages(self, room_id: str, limit: int) -> List[ChatMessage]:
        """Return the most recent `limit` messages of a room, oldest first."""
        query = (
            select(MessageRecord)
            .filter(MessageRecord.room_id == room_id)
            .order_by(MessageRecord.id.desc())
            .limit(limit)
        )
        async with self._session() as session:
            records = (await session.execute(query)).scalars().all()

        return [_to_message(record) for record in reversed(records)]

    async def get_message_author(self, message_id: int, room_id: str) -> Optional[str]:
        query = select(MessageRecord.username).filter(
            MessageRecord.id == message_id,
            MessageRecord.room_id == room_id,
        )
        async with self._session() as session:
            return (await session.execute(query)).scalar_one_or_none()

    async def delete_message(self, message_id: int, room_id: str) -> bool:
        query = delete(MessageRecord).where(
            MessageRecord.id == message_id,
            MessageRecord.room_id == room_id,
        )
        async with self._session() as session:
            result = await session.execute(query)
            await session.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------------
    # Background writes
    # ------------------------------------------------------------------------

    def schedule(self, operation: Awaitable, description: str) -> asyncio.Task:
        """Run a write in the background without blocking the caller."""
        task = asyncio.create_task(self._run_guarded(operation, description))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_pending(self) -> None:
        """
        Wait for the background writes scheduled so far.

        Cancelling the waiter does not cancel the writes; they belong to
        whoever scheduled them.
        """
        if self._pending:
            await asyncio.wait(list(self._pending))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def _run_guarded(self, operation: Awaitable, description: str) -> None:
        try:
            await operation
        except asyncio.CancelledError:
            self.record_failure(description, "cancelled")
            raise
        except Exception as e:
            self.record_failure(description, e)

    def record_failure(self, description: str, error: Exception | str) -> None:
        self.failure_count += 1
        self.last_failure = f"{description}: {error}"
        logger.error("✗ Persistence failure (%s): %s", description, error)


def _to_message(record: MessageRecord) -> ChatMessage:
    timestamp = record.timestamp
    if timestamp is not None and timestamp.tzinfo is None:
        # SQLite hands back naive datetimes
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    return ChatMessage(
        id=record.id,
        room_id=record.room_id,
        username=record.username,
        message=record.message,
        message_type=record.message_type,
        file_url=record.file_url,
        file_name=record.file_name,
        timestamp=timestamp,
    )
