"""Persistence models for the registry catalog and indexing runs.

Repositories are shared across registries and keyed by ``(owner, name)``.
Registry memberships link a repository to one registry with the display
title and categories the registry gives it. Indexing runs and the single-row
indexing state live alongside so the concurrency gate and its audit trail are
written in the same transaction. Models keep to portable SQLAlchemy types so
the same code works with SQLite in tests and PostgreSQL in production.
"""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ

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
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from enhansome.common.time import utcnow

from .errors import TimezoneAwareRequiredError

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

INDEXING_STATE_ID = 1


class IndexingStatus(enum.StrEnum):
    """Lifecycle of the indexing gate and of individual runs.

    ``IDLE`` only ever appears on the state row before the first run.
    """

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerSource(enum.StrEnum):
    """Origin of an indexing run."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class Base(DeclarativeBase):
    """Base declarative class for catalog persistence."""

    metadata: typ.Any


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class RepositoryRecord(Base):
    """Repository observed in at least one registry document."""

    __tablename__ = "repositories"
    __table_args__ = (
        UniqueConstraint("owner", "name", name="uq_repository_slug"),
        Index("ix_repositories_stars", "stars"),
        Index("ix_repositories_last_commit", "last_commit"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(255))
    stars: Mapped[int] = mapped_column(Integer, default=0)
    language: Mapped[str | None] = mapped_column(String(128), default=None)
    last_commit: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    archived: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[str | None] = mapped_column(Text(), default=None)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )

    memberships: Mapped[list[RegistryMembership]] = relationship(
        back_populates="repository"
    )


class RegistryMembership(Base):
    """Link between a registry and a repository it lists."""

    __tablename__ = "registry_memberships"
    __table_args__ = (
        UniqueConstraint(
            "registry_name", "repository_id", name="uq_registry_membership"
        ),
        Index("ix_registry_memberships_repository", "repository_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    registry_name: Mapped[str] = mapped_column(String(255), index=True)
    repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id", ondelete="CASCADE")
    )
    title: Mapped[str] = mapped_column(Text())
    position: Mapped[int] = mapped_column(Integer, default=0)

    repository: Mapped[RepositoryRecord] = relationship(back_populates="memberships")
    categories: Mapped[list[MembershipCategory]] = relationship(
        back_populates="membership", cascade="all, delete-orphan"
    )


class MembershipCategory(Base):
    """Category label of one registry membership."""

    __tablename__ = "membership_categories"
    __table_args__ = (Index("ix_membership_categories_category", "category"),)

    membership_id: Mapped[int] = mapped_column(
        ForeignKey("registry_memberships.id", ondelete="CASCADE"), primary_key=True
    )
    category: Mapped[str] = mapped_column(String(255), primary_key=True)

    membership: Mapped[RegistryMembership] = relationship(back_populates="categories")


class RegistryMetadataRecord(Base):
    """Descriptive fields and cached totals for one registry."""

    __tablename__ = "registry_metadata"

    registry_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    title: Mapped[str] = mapped_column(Text())
    description: Mapped[str] = mapped_column(Text(), default="")
    source_repository: Mapped[str] = mapped_column(String(255), default="")
    last_updated: Mapped[str] = mapped_column(String(64), default="")
    refreshed_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    total_stars: Mapped[int] = mapped_column(Integer, default=0)
    languages: Mapped[list[str]] = mapped_column(JSON, default=list)
    latest_commit: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )


class IndexingRunRecord(Base):
    """Audit record of one indexing attempt."""

    __tablename__ = "indexing_history"
    __table_args__ = (Index("ix_indexing_history_started", "started_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    trigger_source: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), default=IndexingStatus.RUNNING)
    started_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    completed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    total_registries: Mapped[int] = mapped_column(Integer, default=0)
    processed_registries: Mapped[int] = mapped_column(Integer, default=0)
    current_registry: Mapped[str | None] = mapped_column(String(255), default=None)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list[str]] = mapped_column(JSON, default=list)
    error_message: Mapped[str | None] = mapped_column(Text(), default=None)
    created_by: Mapped[str | None] = mapped_column(String(255), default=None)


class IndexingStateRecord(Base):
    """Single-row concurrency gate for indexing runs."""

    __tablename__ = "indexing_state"

    id: Mapped[int] = mapped_column(primary_key=True, default=INDEXING_STATE_ID)
    status: Mapped[str] = mapped_column(String(16), default=IndexingStatus.IDLE)
    run_id: Mapped[int | None] = mapped_column(
        ForeignKey("indexing_history.id"), default=None
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


async def init_store(engine: AsyncEngine) -> None:
    """Create catalog tables and seed the idle indexing state row.

    Safe to call repeatedly; an existing state row is left untouched.

    Examples
    --------
    >>> engine = create_async_engine("sqlite+aiosqlite:///enhansome.db")
    >>> await init_store(engine)

    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSession(engine) as session, session.begin():
        existing = await session.scalar(
            select(IndexingStateRecord.id).where(
                IndexingStateRecord.id == INDEXING_STATE_ID
            )
        )
        if existing is None:
            session.add(
                IndexingStateRecord(
                    id=INDEXING_STATE_ID, status=IndexingStatus.IDLE.value
                )
            )
