"""Registry document model.

Registry documents are the per-list JSON files inside the enhansome archive.
This package decodes them into closed msgspec structures and flattens their
sections into catalog entries ready for the store.

Quick examples
--------------

Decode and flatten a document::

    >>> from enhansome.catalog import decode_registry_document, flatten
    >>> document = decode_registry_document(payload)
    >>> result = flatten(document)
    >>> result.total_stars

Normalize an archive identifier::

    >>> from enhansome.catalog import extract_registry_name
    >>> extract_registry_name("v1nvn/enhansome-go")
    'go'
"""

from __future__ import annotations

from .errors import RegistryParseError
from .flatten import (
    FlattenedItem,
    FlattenResult,
    MembershipSpec,
    collect_memberships,
    extract_registry_name,
    flatten,
)
from .loader import decode_registry_document
from .models import (
    RegistryDocument,
    RegistryItem,
    RegistryMetadata,
    RegistrySection,
    RepoInfo,
)

__all__ = [
    "FlattenResult",
    "FlattenedItem",
    "MembershipSpec",
    "RegistryDocument",
    "RegistryItem",
    "RegistryMetadata",
    "RegistryParseError",
    "RegistrySection",
    "RepoInfo",
    "collect_memberships",
    "decode_registry_document",
    "extract_registry_name",
    "flatten",
]
