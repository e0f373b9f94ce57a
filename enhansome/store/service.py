"""Per-registry indexing against the catalog store."""

from __future__ import annotations

import dataclasses
import typing as typ

from enhansome.catalog.flatten import collect_memberships, flatten

from .writes import (
    MembershipEntry,
    RepositoryAttributes,
    prune_orphaned_repositories,
    recompute_metadata,
    replace_registry_memberships,
    upsert_registry_metadata,
    upsert_repository,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from enhansome.catalog.models import RegistryDocument

    SessionFactory = async_sessionmaker[AsyncSession]


@dataclasses.dataclass(slots=True)
class RegistryIndexResult:
    """Summary of one registry written to the store."""

    registry_name: str
    items: int = 0
    repositories: int = 0
    total_stars: int = 0
    memberships_created: int = 0
    memberships_updated: int = 0
    memberships_deleted: int = 0


class CatalogStore:
    """Persist decoded registry documents.

    Parameters
    ----------
    session_factory
        Factory producing async sessions bound to the catalog database.

    """

    def __init__(
        self, session_factory: SessionFactory | typ.Callable[[], AsyncSession]
    ) -> None:
        """Store the session factory used for each registry transaction."""
        self._session_factory = session_factory

    async def index_registry(
        self, registry_name: str, document: RegistryDocument
    ) -> RegistryIndexResult:
        """Write one registry document in a single transaction.

        Repositories are upserted, the registry's membership set is swapped
        for the one in ``document``, and cached totals are recomputed. Any
        failure rolls the whole registry back.

        Raises
        ------
        RegistryParseError
            If a repository carries a malformed ``last_commit``. Raised
            before the transaction opens.
        sqlalchemy.exc.SQLAlchemyError
            On persistence failures.

        """
        flattened = flatten(document)
        specs = collect_memberships(flattened.items)
        observed = [
            (spec, RepositoryAttributes.from_membership(spec)) for spec in specs
        ]

        async with self._session_factory() as session, session.begin():
            await upsert_registry_metadata(session, registry_name, document.metadata)
            entries: list[MembershipEntry] = []
            for spec, attrs in observed:
                owner, name = spec.key
                repository_id = await upsert_repository(session, owner, name, attrs)
                entries.append(
                    MembershipEntry(
                        repository_id=repository_id,
                        title=spec.title,
                        categories=tuple(spec.categories),
                        position=spec.position,
                    )
                )
            changes = await replace_registry_memberships(
                session, registry_name, entries
            )
            stats = await recompute_metadata(session, registry_name)

        return RegistryIndexResult(
            registry_name=registry_name,
            items=len(flattened.items),
            repositories=stats.total_items,
            total_stars=stats.total_stars,
            memberships_created=changes.created,
            memberships_updated=changes.updated,
            memberships_deleted=changes.deleted,
        )

    async def prune_orphaned_repositories(self) -> int:
        """Delete repositories without any membership; return the count."""
        async with self._session_factory() as session, session.begin():
            return await prune_orphaned_repositories(session)
