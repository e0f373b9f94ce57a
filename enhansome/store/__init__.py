"""Relational store for repositories, registries and indexing runs."""

from __future__ import annotations

from .errors import TimezoneAwareRequiredError, UnsupportedDialectError
from .service import CatalogStore, RegistryIndexResult
from .storage import (
    INDEXING_STATE_ID,
    Base,
    IndexingRunRecord,
    IndexingStateRecord,
    IndexingStatus,
    MembershipCategory,
    RegistryMembership,
    RegistryMetadataRecord,
    RepositoryRecord,
    TriggerSource,
    UTCDateTime,
    init_store,
)
from .writes import (
    MembershipChanges,
    MembershipEntry,
    RegistryStats,
    RepositoryAttributes,
    prune_orphaned_repositories,
    recompute_metadata,
    replace_registry_memberships,
    upsert_registry_metadata,
    upsert_repository,
)

__all__ = [
    "INDEXING_STATE_ID",
    "Base",
    "CatalogStore",
    "IndexingRunRecord",
    "IndexingStateRecord",
    "IndexingStatus",
    "MembershipCategory",
    "MembershipChanges",
    "MembershipEntry",
    "RegistryIndexResult",
    "RegistryMembership",
    "RegistryMetadataRecord",
    "RegistryStats",
    "RepositoryAttributes",
    "RepositoryRecord",
    "TimezoneAwareRequiredError",
    "TriggerSource",
    "UTCDateTime",
    "UnsupportedDialectError",
    "init_store",
    "prune_orphaned_repositories",
    "recompute_metadata",
    "replace_registry_memberships",
    "upsert_registry_metadata",
    "upsert_repository",
]
