"""
Repository Layer - Session Store access.

This module provides a repository pattern for database access,
keeping the relay's business logic free of SQL and giving tests a
single seam (SessionStoreProtocol) to replace.

Any database error surfaces as PersistenceFailure.

Usage:
    from app.services.core.repositories import get_session_repository

    session = await get_session_repository().get(session_id)
    await get_session_repository().update(session_id, status="active")
"""

import logging
from datetime import datetime, UTC
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import database
from app.models.audio_chunk import AudioChunk
from app.models.translation_log import TranslationLog
from app.models.translation_session import TranslationSession
from app.services.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SessionRepository:
    """
    SQL implementation of the Session Store.

    Every method opens its own short-lived AsyncSession so the relay
    never holds a database connection across awaits on its sockets.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        factory = self._session_factory or database.AsyncSessionLocal
        return factory()

    async def get(self, session_id: str) -> Optional[TranslationSession]:
        """
        Get a session by id.

        Args:
            session_id: The session identifier

        Returns:
            TranslationSession if found, None otherwise
        """
        try:
            async with self._session() as db:
                result = await db.execute(
                    select(TranslationSession).where(TranslationSession.id == session_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load session {session_id}: {e}") from e

    async def create(self, **fields: Any) -> TranslationSession:
        try:
            async with self._session() as db:
                session = TranslationSession(**fields)
                db.add(session)
                await db.commit()
                await db.refresh(session)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to create session: {e}") from e
        logger.info(f"[SessionRepo] Created session {session.id} ({session.platform})")
        return session

    async def update(self, session_id: str, **fields: Any) -> bool:
        """
        Update columns of a single session.

        Enum values are stored as their string value.

        Returns:
            True if the session existed and was updated
        """
        values = {
            key: getattr(value, "value", value)
            for key, value in fields.items()
        }
        values["updated_at"] = datetime.now(UTC)

        try:
            async with self._session() as db:
                result = await db.execute(
                    update(TranslationSession)
                    .where(TranslationSession.id == session_id)
                    .values(**values)
                )
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to update session {session_id}: {e}") from e

        updated = result.rowcount > 0
        if not updated:
            logger.warning(f"[SessionRepo] Update for unknown session {session_id}")
        return updated

    async def add_translation_log(self, session_id: str, **fields: Any) -> TranslationLog:
        """
        Insert one translation log row.

        Raises:
            PersistenceFailure: if the insert fails for any database reason
        """
        try:
            async with self._session() as db:
                log = TranslationLog(session_id=session_id, **fields)
                db.add(log)
                await db.commit()
                return log
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to store translation log: {e}") from e

    async def add_audio_chunk(self, session_id: str, **fields: Any) -> AudioChunk:
        """Insert one forwarded audio frame."""
        try:
            async with self._session() as db:
                chunk = AudioChunk(session_id=session_id, **fields)
                db.add(chunk)
                await db.commit()
                return chunk
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to store audio chunk: {e}") from e

    async def recent_translation_logs(self, session_id: str, limit: int) -> List[TranslationLog]:
        try:
            async with self._session() as db:
                result = await db.execute(
                    select(TranslationLog)
                    .where(TranslationLog.session_id == session_id)
                    .order_by(TranslationLog.created_at.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load translation logs: {e}") from e

    async def minutes_used_since(self, since: datetime) -> float:
        try:
            async with self._session() as db:
                result = await db.execute(
                    select(TranslationSession.started_at, TranslationSession.ended_at).where(
                        TranslationSession.started_at >= since,
                        TranslationSession.ended_at.is_not(None),
                    )
                )
                rows = result.all()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to compute usage: {e}") from e

        seconds = sum(
            max((_as_utc(ended) - _as_utc(started)).total_seconds(), 0.0)
            for started, ended in rows
        )
        return seconds / 60.0


# Singleton instance
session_repository = SessionRepository()


def get_session_repository() -> SessionRepository:
    """Get the Session Store repository."""
    return session_repository
