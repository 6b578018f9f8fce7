"""Catalog operations composed from the record, document and blob stores.

This is the library surface the HTTP handlers call. It returns plain models
and raises StorageError subclasses; HTTP concerns stay in ``api``.
"""

from __future__ import annotations

import asyncio
import json
import logging

from core.blob_store import BlobData, BlobStore, ShardedRepoBlobStore
from core.errors import NotFoundError, UpstreamError
from core.models import (
    CategoryImage,
    CategoryImages,
    Collection,
    CollectionCreate,
    CollectionUpdate,
    FieldsUpdate,
    ImageKind,
    MediaCreate,
    MediaRecord,
    SettingsUpdate,
    StorageUsage,
    UserSettings,
)
from core.records import DocumentStore, RecordStore, title_sort_key
from core.remote_files import RemoteFileClient
from core.settings_cache import SettingsCache

logger = logging.getLogger(__name__)

SETTINGS_PATH = "settings.json"
CATEGORY_IMAGES_PATH = "category-images.json"


def collection_blob_name(collection_id: str) -> str:
    return f"collection_{collection_id}"


def _pending_images(poster: str | None, banner: str | None, data_uri_only: bool = True) -> dict[ImageKind, BlobData]:
    blobs: dict[ImageKind, BlobData] = {}
    for kind, data in ((ImageKind.poster, poster), (ImageKind.banner, banner)):
        if not data:
            continue
        if data_uri_only and not data.startswith("data:image"):
            continue
        blobs[kind] = data
    return blobs


class CatalogService:
    def __init__(
        self,
        client: RemoteFileClient,
        blob_store: BlobStore | None = None,
        settings_ttl: float | None = None,
    ) -> None:
        self._client = client
        self._resolver = client.resolver
        self.media: RecordStore[MediaRecord] = RecordStore(
            client, "media", MediaRecord, sort_key=title_sort_key, label="media"
        )
        self.collections: RecordStore[Collection] = RecordStore(
            client,
            "collections",
            Collection,
            sort_key=lambda c: c.created_at,
            reverse=True,
            empty_last=True,
            label="collection",
        )
        self.settings_doc: DocumentStore[UserSettings] = DocumentStore(client, SETTINGS_PATH, UserSettings)
        self.category_images: DocumentStore[CategoryImages] = DocumentStore(
            client, CATEGORY_IMAGES_PATH, CategoryImages
        )
        self.settings_cache = SettingsCache(self.settings_doc, ttl=settings_ttl)
        self.blobs: BlobStore = blob_store or ShardedRepoBlobStore(client)

    # -- media --------------------------------------------------------------

    async def list_media(self) -> list[MediaRecord]:
        return await self.media.list()

    async def add_media(self, payload: MediaCreate) -> MediaRecord:
        """Create or replace a media record, uploading any attached images.

        Image paths and shards from the existing record are kept unless new
        images are uploaded or new paths supplied.
        """
        existing = await self.media.get(payload.id)
        record = payload.to_record()
        if existing is not None:
            previous = existing.record
            record.poster_path = record.poster_path or previous.poster_path
            record.banner_path = record.banner_path or previous.banner_path
            record.poster_image_repo = previous.poster_image_repo
            record.banner_image_repo = previous.banner_image_repo

        images = _pending_images(payload.poster_base64, payload.banner_base64)
        superseded = await self._store_images(record.id, record, images)

        await self.media.put(
            record.id,
            record,
            expected_hash=existing.hash if existing else None,
            message=f"{'Update' if existing else 'Add'} {record.title}",
        )
        if existing is not None:
            await self.media.ensure_indexed(record.id)
        await self._drop_superseded(record.id, superseded)
        logger.info("Saved item: %s", record.title)
        return record

    async def _require_media(self, media_id: str):
        stored = await self.media.get(media_id)
        if stored is None:
            raise NotFoundError(self.media.record_path(media_id))
        return stored

    async def update_rating(self, media_id: str, my_rank: int | float | None) -> MediaRecord:
        stored = await self._require_media(media_id)
        record = stored.record
        record.my_rank = my_rank or 0
        await self.media.put(media_id, record, expected_hash=stored.hash, message=f"Update rating for {media_id}")
        return record

    async def update_fields(self, update: FieldsUpdate) -> MediaRecord:
        stored = await self._require_media(update.id)
        record = stored.record
        for name in ("studio", "developer", "director_creator"):
            value = getattr(update, name)
            if value is not None:
                setattr(record, name, value or "")
        for name in ("runtime", "episodes", "episode_runtime"):
            value = getattr(update, name)
            if value is not None:
                setattr(record, name, str(value or ""))
        if update.time_to_beat is not None:
            ttb = update.time_to_beat
            record.time_to_beat = ttb if isinstance(ttb, str) else json.dumps(ttb or {})

        await self.media.put(update.id, record, expected_hash=stored.hash, message=f"Update fields for {update.id}")
        return record

    async def update_linked_movies(self, media_id: str, linked_movies: str | None) -> MediaRecord:
        stored = await self._require_media(media_id)
        record = stored.record
        record.linked_movies = linked_movies or ""
        await self.media.put(
            media_id, record, expected_hash=stored.hash, message=f"Update linked movies for {media_id}"
        )
        return record

    async def _store_images(
        self, name: str, record: MediaRecord | Collection, images: dict[ImageKind, BlobData]
    ) -> list[tuple[ImageKind, str]]:
        """Upload images and point ``record`` at them.

        Returns the (kind, repo) of previous blobs left in a different shard
        than their replacement; those are dropped once the record is saved.
        """
        if not images:
            return []
        uploaded = await self.blobs.upload_session(name, images)
        superseded = []
        for kind, blob in uploaded.items():
            old_repo = record.image_repo(kind)
            if old_repo and old_repo != blob.repo:
                superseded.append((kind, old_repo))
            record.set_image(kind, blob.url, blob.repo)
        return superseded

    async def _drop_superseded(self, name: str, superseded: list[tuple[ImageKind, str]]) -> None:
        await asyncio.gather(
            *(self.blobs.delete(name, kind, repo=repo, fallback=False) for kind, repo in superseded)
        )

    async def _delete_images(self, name: str, record: MediaRecord | Collection) -> None:
        await asyncio.gather(
            *(
                self.blobs.delete(name, kind, record.image_repo(kind), record.image_path(kind))
                for kind in ImageKind
            )
        )

    async def delete_media(self, ids: list[str]) -> list[str]:
        """Delete records, their images and their index entries.

        Raises PartialFailure when some ids could not be deleted; the rest
        are still removed.
        """
        async def _cleanup(record: MediaRecord) -> None:
            await self._delete_images(record.id, record)

        deleted = await self.media.delete_many(ids, before_delete=_cleanup)
        logger.info("Deleted items: %d", len(deleted))
        return deleted

    # -- collections --------------------------------------------------------

    async def list_collections(self) -> list[Collection]:
        return await self.collections.list()

    async def save_collection(self, payload: CollectionCreate) -> Collection:
        existing = await self.collections.get(payload.id)
        record = payload.to_record()
        if existing is not None:
            previous = existing.record
            record.poster_path = record.poster_path or previous.poster_path
            record.banner_path = record.banner_path or previous.banner_path
            record.poster_image_repo = previous.poster_image_repo
            record.banner_image_repo = previous.banner_image_repo

        name = collection_blob_name(record.id)
        images = _pending_images(payload.poster_base64, payload.banner_base64)
        superseded = await self._store_images(name, record, images)

        await self.collections.put(
            record.id,
            record,
            expected_hash=existing.hash if existing else None,
            message=f"{'Update' if existing else 'Add'} collection {record.name}",
        )
        if existing is not None:
            await self.collections.ensure_indexed(record.id)
        await self._drop_superseded(name, superseded)
        logger.info("Saved collection: %s", record.name)
        return record

    async def update_collection(self, collection_id: str, update: CollectionUpdate) -> Collection:
        stored = await self.collections.get(collection_id)
        if stored is None:
            raise NotFoundError(self.collections.record_path(collection_id))
        record = stored.record

        # PATCH accepts raw base64 as well as data URIs
        name = collection_blob_name(collection_id)
        images = _pending_images(update.poster_base64, update.banner_base64, data_uri_only=False)
        superseded = await self._store_images(name, record, images)

        if update.name is not None:
            record.name = update.name or record.name
        if update.item_ids is not None:
            record.item_ids = update.item_ids
        if update.poster_path is not None and not update.poster_base64:
            record.poster_path = update.poster_path
        if update.banner_path is not None and not update.banner_base64:
            record.banner_path = update.banner_path

        await self.collections.put(
            collection_id, record, expected_hash=stored.hash, message=f"Update collection {collection_id}"
        )
        await self._drop_superseded(name, superseded)
        return record

    async def delete_collection(self, collection_id: str) -> bool:
        stored = await self.collections.get(collection_id)
        if stored is not None:
            await self._delete_images(collection_blob_name(collection_id), stored.record)
        deleted = await self.collections.delete(collection_id)
        logger.info("Deleted collection: %s", collection_id)
        return deleted

    # -- settings -----------------------------------------------------------

    async def get_settings(self) -> UserSettings:
        return await self.settings_cache.get()

    async def save_settings(self, update: SettingsUpdate) -> str:
        """Persist settings; storage credentials go to the resolver instead."""
        if update.has_storage_credentials():
            self._resolver.reconfigure(
                token=update.github_token,
                owner=update.github_owner,
                data_repo=update.github_data_repo,
                image_repos=update.github_image_repos,
            )
            # remembered hashes belong to the previous data repo
            self.settings_doc.forget_hash()
            self.category_images.forget_hash()
            self.settings_cache.invalidate()

        new_hash = await self.settings_doc.put(update.to_settings(), message="Update settings")
        self.settings_cache.invalidate()
        logger.info("Settings saved")
        return new_hash

    async def list_category_images(self) -> list[CategoryImage]:
        stored = await self.category_images.get()
        return stored.record.rows() if stored else []

    async def set_category_image(self, category: str, image: str) -> str:
        stored = await self.category_images.get()
        images = dict(stored.record.root) if stored else {}
        images[category] = image
        new_hash = await self.category_images.put(
            CategoryImages(images), message=f"Update category image for {category}"
        )
        logger.info("Saved category image for %s (%d categories)", category, len(images))
        return new_hash

    # -- maintenance --------------------------------------------------------

    async def initialize(self) -> bool:
        """Create the empty repository layout if settings.json is absent."""
        if not await self._client.repo_exists():
            config = self._resolver.get()
            logger.error("Repository %s/%s does not exist or is not accessible", config.owner, config.data_repo)
            return False

        if not await self.settings_doc.create_if_missing({}, "Initialize settings"):
            logger.info("Repository already initialized")
            return True

        for store in (self.media, self.collections):
            if await self._client.file_hash(store.index_path) is None:
                await self._client.put(store.index_path, [], f"Initialize {store.label} index")
        await self.category_images.create_if_missing({}, "Initialize category images")
        logger.info("Repository structure initialized")
        return True

    async def repair_indexes(self) -> dict[str, list[str]]:
        return {
            "media": await self.media.repair_index(),
            "collections": await self.collections.repair_index(),
        }

    async def usage(self) -> StorageUsage:
        config = self._resolver.get()
        repos = [config.data_repo, *[r for r in config.image_repos if r != config.data_repo]]

        async def _size(repo: str) -> int:
            try:
                return await self._client.repo_size(repo)
            except UpstreamError as e:
                logger.warning("Could not read size of %s: %s", repo, e)
                return 0

        sizes = await asyncio.gather(*(_size(r) for r in repos))
        by_repo = dict(zip(repos, sizes))
        return StorageUsage(used=sum(sizes), repos=by_repo)
