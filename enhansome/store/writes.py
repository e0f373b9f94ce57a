"""Write operations on the catalog tables.

Each helper runs inside the caller's transaction. The indexing pipeline opens
one transaction per registry so a failure while writing a registry leaves its
previous memberships and metadata intact.
"""

from __future__ import annotations

import dataclasses
import datetime as dt  # noqa: TC003
import typing as typ

from sqlalchemy import delete, exists, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import selectinload

from enhansome.common.time import utcnow

from .errors import UnsupportedDialectError
from .storage import (
    MembershipCategory,
    RegistryMembership,
    RegistryMetadataRecord,
    RepositoryRecord,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from enhansome.catalog.flatten import MembershipSpec
    from enhansome.catalog.models import RegistryMetadata

_INSERTS: dict[str, typ.Callable[..., typ.Any]] = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryAttributes:
    """Mutable attributes of a repository as observed in a document."""

    stars: int = 0
    language: str | None = None
    last_commit: dt.datetime | None = None
    archived: bool = False
    description: str | None = None

    @classmethod
    def from_membership(cls, spec: MembershipSpec) -> RepositoryAttributes:
        """Build attributes from a repository's latest listing in a document.

        The description belongs to the listing item; everything else comes
        from its ``repo_info`` block.

        Raises
        ------
        RegistryParseError
            If ``last_commit`` is present but malformed.

        """
        info = spec.repo_info
        return cls(
            stars=info.stars,
            language=info.language or None,
            last_commit=info.last_commit_at,
            archived=info.archived,
            description=spec.description,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class MembershipEntry:
    """Desired membership row for one repository in one registry."""

    repository_id: int
    title: str
    categories: tuple[str, ...]
    position: int = 0


@dataclasses.dataclass(slots=True)
class MembershipChanges:
    """Counts of membership rows touched by a replacement."""

    created: int = 0
    updated: int = 0
    deleted: int = 0


@dataclasses.dataclass(frozen=True, slots=True)
class RegistryStats:
    """Aggregates derived from a registry's current memberships."""

    total_items: int
    total_stars: int
    languages: list[str]
    latest_commit: dt.datetime | None


def _set_if_changed(model: object, attr: str, value: object) -> bool:
    current = getattr(model, attr)
    if current == value:
        return False
    setattr(model, attr, value)
    return True


def _insert_for(session: AsyncSession) -> typ.Callable[..., typ.Any]:
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError as exc:
        raise UnsupportedDialectError(dialect) from exc


async def upsert_repository(
    session: AsyncSession, owner: str, name: str, attrs: RepositoryAttributes
) -> int:
    """Insert or update a repository by ``(owner, name)`` and return its id.

    The write is a single ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent
    upserts on the same key serialize in the database rather than racing a
    read-then-write. Later observations overwrite earlier ones.
    """
    now = utcnow()
    insert = _insert_for(session)
    stmt = insert(RepositoryRecord).values(
        owner=owner,
        name=name,
        stars=attrs.stars,
        language=attrs.language,
        last_commit=attrs.last_commit,
        archived=attrs.archived,
        description=attrs.description,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["owner", "name"],
        set_={
            "stars": stmt.excluded.stars,
            "language": stmt.excluded.language,
            "last_commit": stmt.excluded.last_commit,
            "archived": stmt.excluded.archived,
            "description": stmt.excluded.description,
            "updated_at": now,
        },
    ).returning(RepositoryRecord.id)
    repository_id = await session.scalar(stmt)
    return typ.cast("int", repository_id)


def _sync_categories(membership: RegistryMembership, wanted: tuple[str, ...]) -> bool:
    """Reconcile category rows in place; return ``True`` when any changed."""
    keep = set(wanted)
    changed = False
    for row in list(membership.categories):
        if row.category not in keep:
            membership.categories.remove(row)
            changed = True
    present = {row.category for row in membership.categories}
    for category in wanted:
        if category not in present:
            membership.categories.append(MembershipCategory(category=category))
            present.add(category)
            changed = True
    return changed


async def replace_registry_memberships(
    session: AsyncSession,
    registry_name: str,
    entries: typ.Sequence[MembershipEntry],
) -> MembershipChanges:
    """Swap the full membership set of one registry.

    Repositories absent from ``entries`` are unlinked from this registry only;
    memberships of other registries are never touched.
    """
    changes = MembershipChanges()
    existing = (
        await session.scalars(
            select(RegistryMembership)
            .where(RegistryMembership.registry_name == registry_name)
            .options(selectinload(RegistryMembership.categories))
        )
    ).all()
    by_repository = {row.repository_id: row for row in existing}
    wanted_ids = {entry.repository_id for entry in entries}

    for row in existing:
        if row.repository_id not in wanted_ids:
            await session.delete(row)
            changes.deleted += 1

    for entry in entries:
        membership = by_repository.get(entry.repository_id)
        if membership is None:
            membership = RegistryMembership(
                registry_name=registry_name,
                repository_id=entry.repository_id,
                title=entry.title,
                position=entry.position,
            )
            membership.categories = [
                MembershipCategory(category=category)
                for category in dict.fromkeys(entry.categories)
            ]
            session.add(membership)
            changes.created += 1
            continue
        updated = _set_if_changed(membership, "title", entry.title)
        updated = _set_if_changed(membership, "position", entry.position) or updated
        updated = _sync_categories(membership, entry.categories) or updated
        if updated:
            changes.updated += 1

    await session.flush()
    return changes


async def upsert_registry_metadata(
    session: AsyncSession, registry_name: str, metadata: RegistryMetadata
) -> RegistryMetadataRecord:
    """Write descriptive document metadata and stamp ``refreshed_at``."""
    record = await session.get(RegistryMetadataRecord, registry_name)
    if record is None:
        record = RegistryMetadataRecord(registry_name=registry_name)
        session.add(record)
    record.title = metadata.title
    record.description = metadata.source_repository_description
    record.source_repository = metadata.source_repository
    record.last_updated = metadata.last_updated
    record.refreshed_at = utcnow()
    return record


async def recompute_metadata(
    session: AsyncSession, registry_name: str
) -> RegistryStats:
    """Derive totals from current memberships and cache them on the registry."""
    await session.flush()
    scoped = (
        select(RepositoryRecord)
        .join(
            RegistryMembership,
            RegistryMembership.repository_id == RepositoryRecord.id,
        )
        .where(RegistryMembership.registry_name == registry_name)
        .subquery()
    )
    row = (
        await session.execute(
            select(
                func.count(scoped.c.id),
                func.coalesce(func.sum(scoped.c.stars), 0),
                func.max(scoped.c.last_commit),
            )
        )
    ).one()
    languages = (
        await session.scalars(
            select(scoped.c.language)
            .where(scoped.c.language.is_not(None))
            .distinct()
            .order_by(scoped.c.language)
        )
    ).all()
    stats = RegistryStats(
        total_items=int(row[0]),
        total_stars=int(row[1]),
        languages=list(languages),
        latest_commit=row[2],
    )

    record = await session.get(RegistryMetadataRecord, registry_name)
    if record is None:
        record = RegistryMetadataRecord(
            registry_name=registry_name, title=registry_name
        )
        session.add(record)
    record.total_items = stats.total_items
    record.total_stars = stats.total_stars
    record.languages = stats.languages
    record.latest_commit = stats.latest_commit
    return stats


async def prune_orphaned_repositories(session: AsyncSession) -> int:
    """Delete repositories no registry lists any more; return the count."""
    stmt = (
        delete(RepositoryRecord)
        .where(
            ~exists().where(RegistryMembership.repository_id == RepositoryRecord.id)
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount or 0  # type: ignore[attr-defined]
