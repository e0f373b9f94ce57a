"""Flatten registry documents into catalog entries.

Registry documents nest items inside sections, and items may carry children.
Only the first level of each section is indexed: children describe their
parent (plugins, forks, related tools) and are not catalog entries in their
own right.
"""

from __future__ import annotations

import dataclasses
import re
import typing as typ

if typ.TYPE_CHECKING:
    from .models import RegistryDocument, RegistryItem, RepoInfo

_REGISTRY_PREFIX = re.compile(r"^(?:[^/]+/)?enhansome-(?P<suffix>.+)$")


@dataclasses.dataclass(frozen=True, slots=True)
class FlattenedItem:
    """One catalog entry with the section title it was listed under."""

    category: str
    data: RegistryItem

    @property
    def repo_info(self) -> RepoInfo | None:
        """Return the repository reference, if the item has one."""
        return self.data.repo_info


@dataclasses.dataclass(frozen=True, slots=True)
class FlattenResult:
    """Entries of one document in document order plus their star total."""

    items: list[FlattenedItem]
    total_stars: int


@dataclasses.dataclass(slots=True)
class MembershipSpec:
    """Desired link between one registry and one repository.

    Attributes
    ----------
    repo_info
        Latest repository observation within the document.
    title
        Display title from the first entry naming the repository.
    categories
        Section titles the repository appears under, first-seen order.
    position
        Zero-based document position of the first entry.
    description
        Item description from the latest entry that carries one.

    """

    repo_info: RepoInfo
    title: str
    categories: list[str]
    position: int
    description: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Return the ``(owner, name)`` identity of the repository."""
        return (self.repo_info.owner, self.repo_info.repo)


def flatten(document: RegistryDocument) -> FlattenResult:
    """Flatten sections into ``(category, item)`` entries.

    Items without ``repo_info`` are still emitted but add nothing to the star
    total. Empty sections contribute nothing.

    Examples
    --------
    >>> from enhansome.catalog.models import (
    ...     RegistryDocument, RegistryItem, RegistryMetadata, RegistrySection,
    ... )
    >>> doc = RegistryDocument(
    ...     metadata=RegistryMetadata(title="Go"),
    ...     items=[RegistrySection(title="Web", items=[RegistryItem(title="gin")])],
    ... )
    >>> [(entry.category, entry.data.title) for entry in flatten(doc).items]
    [('Web', 'gin')]

    """
    items: list[FlattenedItem] = []
    total_stars = 0
    for section in document.items:
        for item in section.items:
            items.append(FlattenedItem(category=section.title, data=item))
            if item.repo_info is not None:
                total_stars += item.repo_info.stars
    return FlattenResult(items=items, total_stars=total_stars)


def collect_memberships(entries: typ.Iterable[FlattenedItem]) -> list[MembershipSpec]:
    """Group flattened entries by repository.

    A repository listed under several sections yields one membership carrying
    every category. The title comes from the first listing; the repository
    attributes come from the last one, so later observations win. Item
    descriptions follow the same rule but a listing without one keeps the
    description already seen.
    """
    by_key: dict[tuple[str, str], MembershipSpec] = {}
    for position, entry in enumerate(entries):
        repo_info = entry.repo_info
        if repo_info is None:
            continue
        key = (repo_info.owner, repo_info.repo)
        spec = by_key.get(key)
        if spec is None:
            by_key[key] = MembershipSpec(
                repo_info=repo_info,
                title=entry.data.title,
                categories=[entry.category],
                position=position,
                description=entry.data.description or None,
            )
            continue
        spec.repo_info = repo_info
        if entry.data.description:
            spec.description = entry.data.description
        if entry.category not in spec.categories:
            spec.categories.append(entry.category)
    return list(by_key.values())


def extract_registry_name(identifier: str) -> str:
    """Return the canonical short name of a registry.

    ``owner/enhansome-<suffix>`` and ``enhansome-<suffix>`` both map to
    ``<suffix>``; anything else is returned unchanged.

    Examples
    --------
    >>> extract_registry_name("v1nvn/enhansome-go")
    'go'
    >>> extract_registry_name("enhansome-mcp-servers")
    'mcp-servers'
    >>> extract_registry_name("awesome-python")
    'awesome-python'

    """
    match = _REGISTRY_PREFIX.match(identifier)
    if match is None:
        return identifier
    return match.group("suffix")
