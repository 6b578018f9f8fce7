"""JSON record storage on top of the remote file client.

An indexed entity type keeps one file per record under ``base_path`` plus an
``index.json`` listing the ids. A record is only reachable through the index.
Single documents (settings, category images) live at a fixed path with no
index.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from core.errors import ConflictError, InvalidRecordIdError, NotFoundError, PartialFailure, StorageError
from core.remote_files import RemoteFileClient

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

INDEX_FILE = "index.json"
RESERVED_IDS = frozenset({INDEX_FILE[: -len(".json")]})


def check_record_id(record_id: str) -> str:
    """Reject ids that would alias the index file or leave the entity directory."""
    if (
        not record_id
        or record_id in RESERVED_IDS
        or "/" in record_id
        or "\\" in record_id
        or ".." in record_id
    ):
        raise InvalidRecordIdError(record_id)
    return record_id


@dataclass(slots=True)
class StoredRecord(Generic[ModelT]):
    record: ModelT
    hash: str


def _dump(record: BaseModel) -> dict:
    return record.model_dump(by_alias=True, mode="json")


def title_sort_key(record: Any) -> str:
    return (getattr(record, "title", "") or "").casefold()


class RecordStore(Generic[ModelT]):
    """get/list/put/delete for one indexed entity type.

    ``sort_key`` orders ``list()`` results. Records whose key is empty can be
    pushed to the end with ``empty_last`` regardless of direction.
    """

    def __init__(
        self,
        client: RemoteFileClient,
        base_path: str,
        model: type[ModelT],
        sort_key: Callable[[ModelT], Any] | None = None,
        reverse: bool = False,
        empty_last: bool = False,
        label: str | None = None,
    ) -> None:
        self._client = client
        self.base_path = base_path.strip("/")
        self._model = model
        self._sort_key = sort_key
        self._reverse = reverse
        self._empty_last = empty_last
        self.label = label or self.base_path

    @property
    def index_path(self) -> str:
        return f"{self.base_path}/{INDEX_FILE}"

    def record_path(self, record_id: str) -> str:
        return f"{self.base_path}/{check_record_id(record_id)}.json"

    # -- index --------------------------------------------------------------

    async def read_index(self) -> tuple[list[str], str | None]:
        """Current index ids and hash; a missing index is an empty list."""
        remote = await self._client.get(self.index_path)
        if remote is None:
            return [], None
        content = remote.content
        if not isinstance(content, list):
            logger.warning("%s is not a list, treating as empty", self.index_path)
            return [], remote.hash
        return [str(i) for i in content], remote.hash

    async def _append_to_index(self, record_ids: list[str]) -> None:
        index, index_hash = await self.read_index()
        missing = [i for i in record_ids if i not in index]
        if not missing:
            return
        if index_hash is None:
            await self._client.put(self.index_path, index + missing, f"Initialize {self.label} index")
        else:
            await self._client.put(
                self.index_path,
                index + missing,
                f"Add {', '.join(missing)} to {self.label} index",
                expected_hash=index_hash,
            )

    async def _remove_from_index(self, record_ids: list[str]) -> None:
        index, index_hash = await self.read_index()
        if index_hash is None:
            return
        remaining = [i for i in index if i not in record_ids]
        if len(remaining) == len(index):
            return
        await self._client.put(
            self.index_path,
            remaining,
            f"Remove {len(index) - len(remaining)} item(s) from {self.label} index",
            expected_hash=index_hash,
        )

    # -- records ------------------------------------------------------------

    def _parse(self, record_id: str, content: Any) -> ModelT:
        if not isinstance(content, dict):
            raise ValueError(f"{self.record_path(record_id)} does not hold a JSON object")
        return self._model.model_validate(content)

    async def get(self, record_id: str) -> StoredRecord[ModelT] | None:
        remote = await self._client.get(self.record_path(record_id))
        if remote is None:
            return None
        return StoredRecord(record=self._parse(record_id, remote.content), hash=remote.hash)

    async def _get_for_list(self, record_id: str) -> ModelT | None:
        try:
            stored = await self.get(record_id)
        except (ValidationError, ValueError) as e:
            logger.warning("Skipping unreadable %s record %s: %s", self.label, record_id, e)
            return None
        except StorageError as e:
            logger.warning("Could not fetch %s record %s: %s", self.label, record_id, e)
            return None
        if stored is None:
            logger.warning("%s record %s is indexed but missing", self.label, record_id)
            return None
        return stored.record

    async def list(self) -> list[ModelT]:
        """Every indexed record that can be read, sorted.

        One broken record never fails the whole list; it is skipped with a
        warning.
        """
        index, _ = await self.read_index()
        if not index:
            return []

        fetched = await asyncio.gather(*(self._get_for_list(i) for i in index))
        records = [r for r in fetched if r is not None]

        if self._sort_key is not None:
            key = self._sort_key
            if self._empty_last:
                present = sorted((r for r in records if key(r)), key=key, reverse=self._reverse)
                absent = [r for r in records if not key(r)]
                records = present + absent
            else:
                records.sort(key=key, reverse=self._reverse)
        return records

    async def put(
        self,
        record_id: str,
        record: ModelT,
        expected_hash: str | None = None,
        message: str | None = None,
    ) -> str:
        """Write a record and return its new hash.

        Without ``expected_hash`` the current hash is read first, so an
        existing record is updated and a new one created. A stale
        ``expected_hash`` raises ConflictError. New records are appended to
        the index after the record write succeeds.
        """
        current_hash = expected_hash
        if current_hash is None:
            current_hash = await self._client.file_hash(self.record_path(record_id))

        new_hash = await self._client.put(
            self.record_path(record_id),
            _dump(record),
            message or f"{'Update' if current_hash else 'Add'} {self.label} {record_id}",
            expected_hash=current_hash,
        )

        if current_hash is None:
            await self._append_to_index([record_id])
        return new_hash

    async def ensure_indexed(self, record_id: str) -> None:
        """Add an existing record file's id to the index if it is missing."""
        await self._append_to_index([check_record_id(record_id)])

    async def _delete_file(self, record_id: str, content_hash: str | None = None) -> bool:
        path = self.record_path(record_id)
        if content_hash is None:
            content_hash = await self._client.file_hash(path)
            if content_hash is None:
                return False
        try:
            await self._client.delete(path, content_hash, f"Delete {self.label} {record_id}")
        except NotFoundError:
            return False
        return True

    async def delete(self, record_id: str) -> bool:
        """Remove the record file and its index entry.

        Returns True if a file was deleted; an already-missing file still has
        its id dropped from the index.
        """
        deleted = await self._delete_file(record_id)
        await self._remove_from_index([record_id])
        return deleted

    async def delete_many(
        self,
        record_ids: list[str],
        before_delete: Callable[[ModelT], Awaitable[None]] | None = None,
    ) -> list[str]:
        """Delete several records concurrently.

        ``before_delete`` runs on each existing record before its file is
        removed. The index is rewritten once for every id that succeeded.
        Raises PartialFailure after the successful subset is applied if any
        id failed.
        """
        failures: dict[str, str] = {}

        async def _one(record_id: str) -> str | None:
            try:
                stored = await self.get(record_id)
                if stored is None:
                    return record_id
                if before_delete is not None:
                    await before_delete(stored.record)
                await self._delete_file(record_id, stored.hash)
                return record_id
            except (StorageError, ValueError) as e:
                logger.warning("Could not delete %s record %s: %s", self.label, record_id, e)
                failures[record_id] = str(e)
                return None

        results = await asyncio.gather(*(_one(i) for i in record_ids))
        succeeded = [i for i in results if i is not None]

        if succeeded:
            await self._remove_from_index(succeeded)
        if failures:
            raise PartialFailure(succeeded, failures)
        return succeeded

    async def repair_index(self) -> list[str]:
        """Re-add record files that exist but are missing from the index."""
        entries = await self._client.list(self.base_path)
        on_disk = [
            e.name[: -len(".json")]
            for e in entries
            if e.kind == "file" and e.name.endswith(".json") and e.name != INDEX_FILE
        ]
        index, _ = await self.read_index()
        orphans = []
        for record_id in on_disk:
            if record_id in index:
                continue
            try:
                orphans.append(check_record_id(record_id))
            except InvalidRecordIdError:
                logger.warning("Not re-indexing %s/%s.json: invalid id", self.base_path, record_id)
        if orphans:
            logger.info("Re-indexing %d orphaned %s record(s)", len(orphans), self.label)
            await self._append_to_index(orphans)
        return orphans


class DocumentStore(Generic[ModelT]):
    """A single record at a fixed path, with no index.

    The hash from the last read or write is reused for the next write; when
    none is known it is read live. A conflicting write drops the remembered
    hash, and ``forget_hash()`` does the same when the backing repository
    changes.
    """

    def __init__(self, client: RemoteFileClient, path: str, model: type[ModelT]) -> None:
        self._client = client
        self.path = path
        self._model = model
        self._hash: str | None = None

    async def get(self) -> StoredRecord[ModelT] | None:
        remote = await self._client.get(self.path)
        if remote is None:
            self._hash = None
            return None
        self._hash = remote.hash
        content = remote.content if isinstance(remote.content, dict) else {}
        return StoredRecord(record=self._model.model_validate(content), hash=remote.hash)

    def forget_hash(self) -> None:
        self._hash = None

    async def put(self, record: ModelT, message: str | None = None) -> str:
        current_hash = self._hash or await self._client.file_hash(self.path)
        try:
            new_hash = await self._client.put(
                self.path,
                _dump(record),
                message or f"Update {self.path}",
                expected_hash=current_hash,
            )
        except ConflictError:
            self._hash = None
            raise
        self._hash = new_hash
        return new_hash

    async def create_if_missing(self, content: Any, message: str) -> bool:
        if await self._client.file_hash(self.path) is not None:
            return False
        self._hash = await self._client.put(self.path, content, message)
        return True
