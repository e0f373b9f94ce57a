"""HTTP fetcher for the registry archive."""

from __future__ import annotations

import typing as typ

import httpx

from .config import ArchiveConfig
from .errors import ArchiveFetchError

_HTTP_ERROR_STATUS_THRESHOLD = 400


class ArchiveFetcher(typ.Protocol):
    """Interface for downloading the registry archive."""

    async def fetch(self, url: str | None = None) -> bytes:
        """Return the raw archive bytes from ``url`` or the configured URL."""
        ...

    async def aclose(self) -> None:
        """Release any held transport resources."""
        ...


class HttpArchiveFetcher:
    """httpx implementation of :class:`ArchiveFetcher`."""

    def __init__(
        self,
        config: ArchiveConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the fetcher.

        Without ``config`` the ``ENHANSOME_ARCHIVE_*`` environment variables
        are read, falling back to the defaults.
        """
        self._config = config or ArchiveConfig.from_env()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self._config.timeout_s,
            follow_redirects=True,
            headers={"User-Agent": self._config.user_agent},
        )

    @property
    def config(self) -> ArchiveConfig:
        """Return the fetcher configuration."""
        return self._config

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str | None = None) -> bytes:
        """Download the archive.

        Parameters
        ----------
        url
            Override for the configured archive location.

        Raises
        ------
        ArchiveFetchError
            On connection failures, unusable URLs and non-2xx responses.

        """
        target = url or self._config.url
        try:
            response = await self._client.get(target)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ArchiveFetchError.transport(target, exc) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise ArchiveFetchError.http_error(target, response.status_code)
        return response.content
