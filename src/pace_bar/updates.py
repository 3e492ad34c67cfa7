"""Best-effort check for a newer GitHub release.

Pure stdlib — no rumps or PyObjC imports.
"""

from __future__ import annotations

import asyncio
import logging
import re

from pace_bar import __version__
from pace_bar.client import api_request
from pace_bar.errors import PaceBarError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
UPDATE_TIMEOUT = 10

_VERSION_RE = re.compile(r"^v?(\d+(?:\.\d+)*)")


def parse_version(tag: str) -> tuple[int, ...] | None:
    """``"v1.2"`` → ``(1, 2, 0)``; ``None`` if *tag* is not a version."""
    m = _VERSION_RE.match(tag.strip())
    if not m:
        return None
    parts = [int(part) for part in m.group(1).split(".")]
    parts += [0] * (3 - len(parts))
    return tuple(parts)


class UpdateChecker:
    def __init__(self, repo: str | None, current_version: str = __version__) -> None:
        self.repo = repo
        self.current_version = current_version
        self.available_version: str | None = None

    def _latest_tag(self) -> str | None:
        data = api_request(
            f"{GITHUB_API_URL}/repos/{self.repo}/releases/latest",
            headers={"Accept": "application/vnd.github+json"},
            timeout=UPDATE_TIMEOUT,
        )
        tag = data.get("tag_name") if isinstance(data, dict) else None
        return tag if isinstance(tag, str) else None

    async def check_for_updates(self) -> str | None:
        """Return the latest release version if it is newer than ours.

        Any failure just means "no update known"; nothing is raised.
        """
        if not self.repo:
            return None
        try:
            tag = await asyncio.to_thread(self._latest_tag)
        except PaceBarError as e:
            logger.debug("Update check failed: %s", e)
            return None

        latest = parse_version(tag) if tag else None
        current = parse_version(self.current_version)
        if latest is None or current is None:
            logger.debug("Update check: unusable version tag %r", tag)
            return None
        if latest <= current:
            logger.debug("Up to date (%s)", self.current_version)
            return None

        self.available_version = ".".join(str(part) for part in latest)
        logger.info("Update available: %s", self.available_version)
        return self.available_version
