from __future__ import annotations

import datetime
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Set

from loguru import logger
from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .config import DB_PATH
from .errors import LearnerNotFoundError, StorageError
from .learning import GRADUATED_STEP
from .scheduler import DEFAULT_EASE_FACTOR, card_priority
from .structured import CardPriority, CardProgress, Learner


class Base(DeclarativeBase):
    pass


engine: AsyncEngine = create_async_engine(f"sqlite+aiosqlite:///{DB_PATH}")
# Keep attributes loaded after commit so rows can be converted outside the session
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _to_db(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    # SQLite DateTime columns are naive; store UTC wall time
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(datetime.UTC).replace(tzinfo=None)


def _from_db(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=datetime.UTC)


class LearnerRecord(Base):
    __tablename__ = "learners"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String)
    current_lesson: Mapped[int] = mapped_column(Integer, default=1)
    total_cards_completed: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: _to_db(_utcnow()))

    def to_learner(self) -> Learner:
        return Learner(
            id=self.id,
            current_lesson=self.current_lesson,
            total_cards_completed=self.total_cards_completed,
            name=self.name,
        )


class CardProgressRecord(Base):
    __tablename__ = "card_progress"
    __table_args__ = (UniqueConstraint("learner_id", "word", name="uq_card_progress_learner_word"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    learner_id: Mapped[str] = mapped_column(String, ForeignKey("learners.id"), index=True, nullable=False)
    word: Mapped[str] = mapped_column(String, nullable=False)
    ease_factor: Mapped[float] = mapped_column(Float, default=DEFAULT_EASE_FACTOR)
    interval_days: Mapped[int] = mapped_column(Integer, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    next_review_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: _to_db(_utcnow()))
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    successes: Mapped[int] = mapped_column(Integer, default=0)
    last_seen_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    hint_used: Mapped[bool] = mapped_column(Boolean, default=False)
    last_quality: Mapped[Optional[int]] = mapped_column(Integer)
    learning_step: Mapped[int] = mapped_column(Integer, default=0)  # 0-2 learning, 3 graduated
    cards_since_last_seen: Mapped[int] = mapped_column(Integer, default=0)

    def to_progress(self) -> CardProgress:
        return CardProgress(
            learner_id=self.learner_id,
            word=self.word,
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
            repetitions=self.repetitions,
            next_review_at=_from_db(self.next_review_at),
            attempts=self.attempts,
            successes=self.successes,
            last_seen_at=_from_db(self.last_seen_at),
            hint_used=self.hint_used,
            last_quality=self.last_quality,
            learning_step=self.learning_step,
            cards_since_last_seen=self.cards_since_last_seen,
        )

    def apply(self, progress: CardProgress) -> None:
        self.ease_factor = progress.ease_factor
        self.interval_days = progress.interval_days
        self.repetitions = progress.repetitions
        self.next_review_at = _to_db(progress.next_review_at)
        self.attempts = progress.attempts
        self.successes = progress.successes
        self.last_seen_at = _to_db(progress.last_seen_at)
        self.hint_used = progress.hint_used
        self.last_quality = progress.last_quality
        self.learning_step = progress.learning_step
        self.cards_since_last_seen = progress.cards_since_last_seen


class IntroducedPhoneme(Base):
    __tablename__ = "introduced_phonemes"
    __table_args__ = (UniqueConstraint("learner_id", "symbol", name="uq_introduced_phoneme"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    learner_id: Mapped[str] = mapped_column(String, ForeignKey("learners.id"), index=True, nullable=False)
    symbol: Mapped[str] = mapped_column(String, nullable=False)
    introduced_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: _to_db(_utcnow()))


async def init_db() -> None:
    """Create all tables on the current engine."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database tables initialized ({engine.url})")


async def is_db_initialized() -> bool:
    """Check that every table exists."""
    async with engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    return set(Base.metadata.tables).issubset(tables)


class SqlProgressStore:
    """ProgressStore on SQLAlchemy's asyncio extension.

    Every SQLAlchemy failure surfaces as StorageError. Without an explicit
    session factory the module-level SessionLocal is used, looked up per call
    so it can be rebound.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[AsyncSession]:
        factory = self._session_factory or SessionLocal
        try:
            async with factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except SQLAlchemyError as e:
            raise StorageError(f"Progress store failure: {e}") from e

    async def get_learner(self, learner_id: str) -> Optional[Learner]:
        async with self._scope() as session:
            row = await session.get(LearnerRecord, learner_id)
            return row.to_learner() if row else None

    async def create_learner(self, learner: Learner) -> Learner:
        async with self._scope() as session:
            row = await session.get(LearnerRecord, learner.id)
            if row is None:
                row = LearnerRecord(
                    id=learner.id,
                    name=learner.name,
                    current_lesson=learner.current_lesson,
                    total_cards_completed=learner.total_cards_completed,
                )
                session.add(row)
                await session.flush()
            return row.to_learner()

    async def update_learner_lesson(self, learner_id: str, lesson: int) -> None:
        async with self._scope() as session:
            row = await session.get(LearnerRecord, learner_id)
            if row is None:
                raise LearnerNotFoundError(learner_id)
            row.current_lesson = lesson

    async def increment_learner_cards_completed(self, learner_id: str) -> None:
        async with self._scope() as session:
            row = await session.get(LearnerRecord, learner_id)
            if row is None:
                raise LearnerNotFoundError(learner_id)
            row.total_cards_completed += 1

    async def get_due_review_cards_by_priority(
        self, learner_id: str, priority: CardPriority, now: Optional[datetime.datetime] = None
    ) -> List[CardProgress]:
        due = await self.get_due_review_cards(learner_id, now)
        return [p for p in due if card_priority(p) is priority]

    async def get_due_review_cards(
        self, learner_id: str, now: Optional[datetime.datetime] = None
    ) -> List[CardProgress]:
        cutoff = _to_db(now or _utcnow())
        async with self._scope() as session:
            result = await session.scalars(
                select(CardProgressRecord)
                .where(
                    CardProgressRecord.learner_id == learner_id,
                    CardProgressRecord.learning_step >= GRADUATED_STEP,
                    CardProgressRecord.next_review_at <= cutoff,
                )
                .order_by(CardProgressRecord.next_review_at, CardProgressRecord.ease_factor)
            )
            return [row.to_progress() for row in result]

    async def get_learning_cards(self, learner_id: str) -> List[CardProgress]:
        async with self._scope() as session:
            result = await session.scalars(
                select(CardProgressRecord).where(
                    CardProgressRecord.learner_id == learner_id,
                    CardProgressRecord.learning_step < GRADUATED_STEP,
                )
            )
            return [row.to_progress() for row in result]

    async def get_all_cards_for_learner(self, learner_id: str) -> List[CardProgress]:
        async with self._scope() as session:
            result = await session.scalars(
                select(CardProgressRecord).where(CardProgressRecord.learner_id == learner_id)
            )
            return [row.to_progress() for row in result]

    async def get_card_progress(self, learner_id: str, word: str) -> Optional[CardProgress]:
        async with self._scope() as session:
            row = await session.scalar(
                select(CardProgressRecord).where(
                    CardProgressRecord.learner_id == learner_id,
                    CardProgressRecord.word == word,
                )
            )
            return row.to_progress() if row else None

    async def create_or_update_card_progress(self, progress: CardProgress) -> CardProgress:
        async with self._scope() as session:
            row = await session.scalar(
                select(CardProgressRecord).where(
                    CardProgressRecord.learner_id == progress.learner_id,
                    CardProgressRecord.word == progress.word,
                )
            )
            if row is None:
                row = CardProgressRecord(learner_id=progress.learner_id, word=progress.word)
                session.add(row)
            row.apply(progress)
            await session.flush()
            return row.to_progress()

    async def get_introduced_phonemes(self, learner_id: str) -> Set[str]:
        async with self._scope() as session:
            result = await session.scalars(
                select(IntroducedPhoneme.symbol).where(IntroducedPhoneme.learner_id == learner_id)
            )
            return set(result)

    async def mark_phoneme_introduced(self, learner_id: str, symbol: str) -> None:
        async with self._scope() as session:
            existing = await session.scalar(
                select(IntroducedPhoneme).where(
                    IntroducedPhoneme.learner_id == learner_id,
                    IntroducedPhoneme.symbol == symbol,
                )
            )
            if existing is None:
                session.add(IntroducedPhoneme(learner_id=learner_id, symbol=symbol))

    async def increment_cards_since_last_seen(self, learner_id: str, exclude_word: str) -> None:
        async with self._scope() as session:
            await session.execute(
                update(CardProgressRecord)
                .where(
                    CardProgressRecord.learner_id == learner_id,
                    CardProgressRecord.learning_step < GRADUATED_STEP,
                    CardProgressRecord.word != exclude_word,
                )
                .values(cards_since_last_seen=CardProgressRecord.cards_since_last_seen + 1)
            )

    async def reset_cards_since_last_seen(self, learner_id: str, word: str) -> None:
        async with self._scope() as session:
            await session.execute(
                update(CardProgressRecord)
                .where(CardProgressRecord.learner_id == learner_id, CardProgressRecord.word == word)
                .values(cards_since_last_seen=0)
            )


__all__ = [
    "Base", "engine", "SessionLocal", "init_db", "is_db_initialized",
    "LearnerRecord", "CardProgressRecord", "IntroducedPhoneme", "SqlProgressStore",
]
