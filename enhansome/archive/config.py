"""Configuration for fetching the registry archive.

Usage
-----
Create a configuration with defaults:

>>> config = ArchiveConfig()
>>> config.timeout_s
60.0

Or load from environment variables:

>>> import os
>>> os.environ["ENHANSOME_ARCHIVE_TIMEOUT_S"] = "15"
>>> ArchiveConfig.from_env().timeout_s
15.0

"""

from __future__ import annotations

import dataclasses as dc
import os

DEFAULT_ARCHIVE_URL = (
    "https://github.com/v1nvn/enhansome-registry/archive/refs/heads/main.zip"
)


@dc.dataclass(frozen=True, slots=True)
class ArchiveConfig:
    """Configuration for the registry archive fetcher.

    Attributes
    ----------
    url
        Location of the zip snapshot holding every registry document.
    timeout_s
        Transport timeout in seconds for the download.
    user_agent
        ``User-Agent`` header sent with the request.

    """

    url: str = DEFAULT_ARCHIVE_URL
    timeout_s: float = 60.0
    user_agent: str = "enhansome-indexer/0.1"

    @staticmethod
    def _parse_positive_float(env_var: str, default: float) -> float:
        """Read a positive float env var, falling back to a default."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{env_var} must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if value <= 0:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls) -> ArchiveConfig:
        """Create configuration from environment variables.

        Reads ``ENHANSOME_ARCHIVE_URL``, ``ENHANSOME_ARCHIVE_TIMEOUT_S`` and
        ``ENHANSOME_ARCHIVE_USER_AGENT``. Blank values fall back to defaults.

        Raises
        ------
        ValueError
            If ``ENHANSOME_ARCHIVE_TIMEOUT_S`` is not a positive number.

        """
        defaults = cls()
        url = os.environ.get("ENHANSOME_ARCHIVE_URL", "").strip() or defaults.url
        user_agent = (
            os.environ.get("ENHANSOME_ARCHIVE_USER_AGENT", "").strip()
            or defaults.user_agent
        )
        timeout_s = cls._parse_positive_float(
            "ENHANSOME_ARCHIVE_TIMEOUT_S", defaults.timeout_s
        )
        return cls(url=url, timeout_s=timeout_s, user_agent=user_agent)
