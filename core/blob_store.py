"""Image blob store sharded across size-limited remote repositories."""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from core.config import settings
from core.errors import NotFoundError, StorageError, StorageExhaustedError, UpstreamError
from core.models import ImageKind
from core.remote_files import RemoteFileClient
from core.shards import ShardSelector
from core.storage_config import StorageConfig

logger = logging.getLogger(__name__)

BlobData = bytes | str


@dataclass(slots=True, frozen=True)
class UploadedBlob:
    url: str
    repo: str


class BlobStore(Protocol):
    """Upload/delete interface used by the catalog service."""

    async def upload(
        self, name: str, kind: ImageKind | str, data: BlobData, repo: str | None = None
    ) -> UploadedBlob:
        """Store one blob, selecting a shard unless ``repo`` is given."""
        ...

    async def upload_session(
        self, name: str, blobs: Mapping[ImageKind, BlobData]
    ) -> dict[ImageKind, UploadedBlob]:
        """Store several blobs for one owner in a single shard."""
        ...

    async def delete(
        self,
        name: str,
        kind: ImageKind | str,
        repo: str | None = None,
        url: str | None = None,
        fallback: bool = True,
    ) -> bool:
        """Delete a blob, returning False if it was not found anywhere."""
        ...


def blob_filename(name: str, kind: ImageKind | str) -> str:
    """``<id>_poster.webp`` for media, ``collection_<id>_banner.webp`` for collections."""
    return f"{name}_{ImageKind(kind).value}.webp"


def to_base64(data: BlobData) -> str:
    """Normalize a data URI, raw base64 string or bytes to a base64 payload."""
    if isinstance(data, (bytes, bytearray)):
        return base64.b64encode(data).decode("ascii")
    if isinstance(data, str):
        if data.startswith("data:"):
            _, _, payload = data.partition(",")
            if not payload:
                raise ValueError("Data URI has no payload")
            return payload
        return data
    raise TypeError(f"Invalid image data type: {type(data).__name__}")


class ShardedRepoBlobStore:
    """Blobs live at the root of one of the configured image repositories.

    URLs point straight at the raw content host and are built from
    owner/repo/branch/path, so they stay valid without a lookup.
    """

    def __init__(self, client: RemoteFileClient, selector: ShardSelector | None = None) -> None:
        self._client = client
        self._selector = selector or ShardSelector(client)

    def url_for(self, config: StorageConfig, repo: str, path: str) -> str:
        return f"{settings.RAW_CONTENT_URL.rstrip('/')}/{config.owner}/{repo}/{config.branch}/{path}"

    def repo_from_url(self, url: str | None) -> str | None:
        prefix = settings.RAW_CONTENT_URL.rstrip("/") + "/"
        if not url or not url.startswith(prefix):
            return None
        parts = url[len(prefix):].split("/")
        return parts[1] if len(parts) > 2 and parts[1] else None

    async def _select(self, config: StorageConfig) -> str:
        repo = await self._selector.select(config.image_repos)
        if repo is None:
            raise StorageExhaustedError("All image repositories are full")
        return repo

    async def upload(
        self,
        name: str,
        kind: ImageKind | str,
        data: BlobData,
        repo: str | None = None,
        message: str | None = None,
    ) -> UploadedBlob:
        config = self._client.resolver.get()
        encoded = to_base64(data)
        if repo is None:
            repo = await self._select(config)

        path = blob_filename(name, kind)
        existing = await self._client.file_hash(path, repo=repo)
        await self._client.put_base64(
            path,
            encoded,
            message or f"Upload {ImageKind(kind).value} for {name}",
            expected_hash=existing,
            repo=repo,
        )
        url = self.url_for(config, repo, path)
        logger.info("Uploaded %s to %s: %s", path, repo, url)
        return UploadedBlob(url=url, repo=repo)

    async def upload_session(
        self, name: str, blobs: Mapping[ImageKind, BlobData]
    ) -> dict[ImageKind, UploadedBlob]:
        """Upload every blob for ``name`` into one shard, concurrently.

        The shard is chosen once so a poster and banner saved together never
        split across repositories. A failed individual upload is logged and
        left out of the result.
        """
        if not blobs:
            return {}
        config = self._client.resolver.get()
        repo = await self._select(config)

        async def _one(kind: ImageKind, data: BlobData) -> tuple[ImageKind, UploadedBlob | None]:
            try:
                return kind, await self.upload(name, kind, data, repo=repo)
            except (StorageError, ValueError, TypeError) as e:
                logger.error("Error uploading %s for %s: %s", kind.value, name, e)
                return kind, None

        results = await asyncio.gather(*(_one(ImageKind(k), d) for k, d in blobs.items()))
        return {kind: blob for kind, blob in results if blob is not None}

    async def _delete_from(self, repo: str, path: str) -> bool:
        try:
            content_hash = await self._client.file_hash(path, repo=repo)
            if content_hash is None:
                return False
            await self._client.delete(path, content_hash, f"Delete {path}", repo=repo)
        except NotFoundError:
            return False
        except UpstreamError as e:
            logger.warning("Could not delete %s from %s: %s", path, repo, e)
            return False
        return True

    async def delete(
        self,
        name: str,
        kind: ImageKind | str,
        repo: str | None = None,
        url: str | None = None,
        fallback: bool = True,
    ) -> bool:
        """Delete a blob from its recorded shard.

        Falls back to the shard named in ``url``, then to every configured
        image repo, for records whose recorded shard is stale or missing.
        With ``fallback=False`` only ``repo`` is tried.
        """
        config = self._client.resolver.get()
        path = blob_filename(name, kind)

        candidates: list[str] = []
        sources = (repo, self.repo_from_url(url), *config.image_repos) if fallback else (repo,)
        for candidate in sources:
            if candidate and candidate not in candidates:
                candidates.append(candidate)

        for candidate in candidates:
            if await self._delete_from(candidate, path):
                logger.info("Deleted %s from %s", path, candidate)
                return True
        return False
