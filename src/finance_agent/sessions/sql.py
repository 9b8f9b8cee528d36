"""
SQLAlchemy-backed session store.

Resolve-or-create is a single ``INSERT ... ON CONFLICT DO NOTHING`` against
the unique (app_name, user_id, session_id) constraint, followed by a read of
whichever row won.
"""

import asyncio
from datetime import timezone
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import UnknownSession
from ..models import SessionRecord, TurnRecord, create_engine, init_database
from .base import Resolution, ResolutionStatus, Session, SessionKey, SessionStore, ToolCallRecord, Turn

logger = structlog.get_logger()

_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class SqlSessionStore(SessionStore):
    """Session store persisted through SQLAlchemy's async ORM."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine = create_engine(database_url)
        self._session_maker: async_sessionmaker | None = None
        self._lock = asyncio.Lock()

        dialect = self._engine.dialect.name
        if dialect not in _INSERTS:
            raise ValueError(f"Unsupported database dialect for sessions: {dialect}")
        self._insert = _INSERTS[dialect]

    async def initialize(self) -> None:
        if self._session_maker is None:
            self._session_maker = await init_database(self._engine)
            logger.info("Session database initialized", url=self._engine.url.render_as_string())

    async def close(self) -> None:
        await self._engine.dispose()
        self._session_maker = None

    def _db(self) -> AsyncSession:
        if self._session_maker is None:
            raise RuntimeError("SqlSessionStore.initialize() has not been awaited")
        return self._session_maker()

    @staticmethod
    def _where_key(key: SessionKey):
        return (
            SessionRecord.app_name == key.app_name,
            SessionRecord.user_id == key.user_id,
            SessionRecord.session_id == key.session_id,
        )

    async def _load_record(self, db: AsyncSession, key: SessionKey) -> SessionRecord | None:
        result = await db.execute(select(SessionRecord).where(*self._where_key(key)))
        return result.scalar_one_or_none()

    async def _require_record(self, db: AsyncSession, key: SessionKey) -> SessionRecord:
        record = await self._load_record(db, key)
        if record is None:
            raise UnknownSession(f"Session {key.session_id!r} for user {key.user_id!r} was never resolved")
        return record

    async def _to_session(self, db: AsyncSession, key: SessionKey, record: SessionRecord) -> Session:
        result = await db.execute(
            select(TurnRecord)
            .where(TurnRecord.session_pk == record.id)
            .order_by(TurnRecord.sequence)
        )
        turns = [
            Turn(
                user_message=row.user_message,
                response=row.response,
                tool_calls=[ToolCallRecord.from_dict(tc) for tc in row.tool_calls or []],
                created_at=row.created_at.replace(tzinfo=timezone.utc),
            )
            for row in result.scalars().all()
        ]
        session = Session(key=key, turns=turns, state=dict(record.state or {}))
        if record.created_at is not None:
            session.created_at = record.created_at.replace(tzinfo=timezone.utc)
        return session

    async def resolve(self, key: SessionKey) -> Resolution:
        async with self._lock, self._db() as db:
            stmt = self._insert(SessionRecord).values(
                id=str(uuid4()),
                app_name=key.app_name,
                user_id=key.user_id,
                session_id=key.session_id,
                state={},
            ).on_conflict_do_nothing(index_elements=["app_name", "user_id", "session_id"])
            result = await db.execute(stmt)
            await db.commit()

            status = ResolutionStatus.CREATED if result.rowcount == 1 else ResolutionStatus.EXISTING
            record = await self._require_record(db, key)
            session = await self._to_session(db, key, record)

        logger.info(
            "Session resolved",
            app_name=key.app_name,
            user_id=key.user_id,
            session_id=key.session_id,
            status=status.value,
            turns=session.turn_count,
        )
        return Resolution(session=session, status=status)

    async def get(self, key: SessionKey) -> Session | None:
        async with self._db() as db:
            record = await self._load_record(db, key)
            if record is None:
                return None
            return await self._to_session(db, key, record)

    async def append(self, key: SessionKey, turn: Turn) -> None:
        async with self._lock, self._db() as db:
            record = await self._require_record(db, key)
            last = await db.scalar(
                select(func.max(TurnRecord.sequence)).where(TurnRecord.session_pk == record.id)
            )
            db.add(TurnRecord(
                session_pk=record.id,
                sequence=(last or 0) + 1,
                user_message=turn.user_message,
                response=turn.response,
                tool_calls=[tc.to_dict() for tc in turn.tool_calls],
                created_at=turn.created_at.replace(tzinfo=None),
            ))
            await db.commit()

    async def get_state(self, key: SessionKey) -> dict[str, Any]:
        async with self._db() as db:
            record = await self._require_record(db, key)
            return dict(record.state or {})

    async def set_state(self, key: SessionKey, name: str, value: Any) -> None:
        async with self._lock, self._db() as db:
            record = await self._require_record(db, key)
            # Reassign so the JSON column is flagged dirty
            record.state = {**(record.state or {}), name: value}
            await db.commit()
