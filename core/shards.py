"""Capacity-based selection of an image shard repository."""

from __future__ import annotations

import logging

from core.config import settings
from core.errors import UpstreamError
from core.remote_files import RemoteFileClient

logger = logging.getLogger(__name__)


class ShardSelector:
    def __init__(self, client: RemoteFileClient, max_bytes: int | None = None) -> None:
        self._client = client
        self.max_bytes = max_bytes if max_bytes is not None else settings.IMAGE_REPO_MAX_BYTES

    async def select(self, candidates: list[str], max_bytes: int | None = None) -> str | None:
        """Return the first candidate whose size is strictly below the ceiling.

        Candidates are tried in the order given. A repo whose size lookup
        fails is skipped. None means every shard is full or unavailable.
        """
        limit = max_bytes if max_bytes is not None else self.max_bytes
        for repo in candidates:
            try:
                size = await self._client.repo_size(repo)
            except UpstreamError as e:
                logger.warning("Could not check image repo %s: %s", repo, e)
                continue

            logger.info("Image repo %s size: %.2fMB", repo, size / 1024 / 1024)
            if size < limit:
                return repo

        logger.error("All image repositories are full or unavailable")
        return None
