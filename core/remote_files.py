"""Thin async client for the GitHub repository contents API.

Every call resolves the current StorageConfig from the resolver, so a runtime
``reconfigure()`` takes effect on the next request.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from core.config import settings
from core.errors import ConfigurationError, ConflictError, NotFoundError, StorageError, UpstreamError
from core.storage_config import ConfigurationResolver, StorageConfig

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RemoteFile:
    """File content plus the content hash needed to update or delete it."""

    content: Any
    hash: str


@dataclass(slots=True, frozen=True)
class RemoteEntry:
    """One directory listing entry."""

    name: str
    path: str
    hash: str
    kind: str  # "file" or "dir"


def encode_content(content: Any) -> str:
    """Serialize content the way it is stored remotely and base64 it."""
    text = content if isinstance(content, str) else json.dumps(content, indent=2)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(encoded: str) -> Any:
    """Decode a base64 payload, parsing JSON when possible.

    Not every path holds JSON, so a payload that fails to parse is returned
    as the raw string.
    """
    text = base64.b64decode(encoded).decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


class RemoteFileClient:
    """Client for path-addressed get/put/delete/list on remote repositories.

    ``repo`` defaults to the configured data repository on every method.
    """

    def __init__(
        self,
        resolver: ConfigurationResolver,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
    ) -> None:
        self._resolver = resolver
        self._base_url = (base_url or settings.GITHUB_API_URL).rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=30.0)

    async def __aenter__(self) -> "RemoteFileClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def resolver(self) -> ConfigurationResolver:
        return self._resolver

    def _config(self) -> StorageConfig:
        config = self._resolver.get()
        if not config.token:
            raise ConfigurationError("Remote storage token is required")
        return config

    def _headers(self, config: StorageConfig) -> dict[str, str]:
        return {
            "User-Agent": settings.USER_AGENT,
            "Accept": "application/vnd.github.v3+json",
            "Authorization": f"Bearer {config.token}",
            "X-GitHub-Api-Version": settings.GITHUB_API_VERSION,
        }

    def _contents_url(self, config: StorageConfig, repo: str, path: str) -> str:
        return f"{self._base_url}/repos/{config.owner}/{repo}/contents/{quote(path.strip('/'))}"

    async def _request(
        self,
        method: str,
        url: str,
        config: StorageConfig,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, headers=self._headers(config), json=body)
        except httpx.RequestError as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise UpstreamError(0, f"Request failed: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(data, dict):
            return str(data.get("message") or response.reason_phrase)
        return response.reason_phrase

    def _fail(self, response: httpx.Response, action: str, path: str) -> UpstreamError:
        message = self._error_message(response)
        logger.error("Remote storage error (%s) on %s %s: %s", response.status_code, action, path, message)
        return UpstreamError(response.status_code, message)

    def _is_conflict(self, response: httpx.Response) -> bool:
        if response.status_code == 409:
            return True
        # Writing an existing file without its sha is rejected as 422
        return response.status_code == 422 and "sha" in self._error_message(response).lower()

    async def get(self, path: str, repo: str | None = None) -> RemoteFile | None:
        """Read a file. Returns None when the path does not exist."""
        config = self._config()
        url = self._contents_url(config, repo or config.data_repo, path)
        response = await self._request("GET", url, config)

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise self._fail(response, "GET", path)

        data = response.json()
        if not isinstance(data, dict):
            # A directory listing, not a file
            return None
        encoded = data.get("content")
        content = decode_content(encoded) if encoded else None
        return RemoteFile(content=content, hash=data["sha"])

    async def file_hash(self, path: str, repo: str | None = None) -> str | None:
        """Current content hash of a path, or None if absent."""
        remote = await self.get(path, repo=repo)
        return remote.hash if remote else None

    async def put(
        self,
        path: str,
        content: Any,
        message: str | None = None,
        expected_hash: str | None = None,
        repo: str | None = None,
    ) -> str:
        """Create or update a file; returns the new content hash.

        Without ``expected_hash`` the file must not exist yet. With one, the
        write only succeeds if the remote file still has that hash, otherwise
        ConflictError is raised.
        """
        return await self.put_base64(path, encode_content(content), message, expected_hash, repo)

    async def put_base64(
        self,
        path: str,
        encoded: str,
        message: str | None = None,
        expected_hash: str | None = None,
        repo: str | None = None,
    ) -> str:
        config = self._config()
        url = self._contents_url(config, repo or config.data_repo, path)
        body: dict[str, Any] = {
            "message": message or f"Update {path}",
            "content": encoded,
            "branch": config.branch,
        }
        if expected_hash:
            body["sha"] = expected_hash

        response = await self._request("PUT", url, config, body)
        if response.status_code in (200, 201):
            return response.json()["content"]["sha"]
        if self._is_conflict(response):
            raise ConflictError(path, self._error_message(response))
        raise self._fail(response, "PUT", path)

    async def delete(
        self,
        path: str,
        content_hash: str,
        message: str | None = None,
        repo: str | None = None,
    ) -> bool:
        config = self._config()
        url = self._contents_url(config, repo or config.data_repo, path)
        body = {
            "message": message or f"Delete {path}",
            "sha": content_hash,
            "branch": config.branch,
        }
        response = await self._request("DELETE", url, config, body)

        if response.status_code == 200:
            return True
        if response.status_code == 404:
            raise NotFoundError(path)
        if self._is_conflict(response):
            raise ConflictError(path, self._error_message(response))
        raise self._fail(response, "DELETE", path)

    async def list(self, dir_path: str, repo: str | None = None) -> list[RemoteEntry]:
        """List a directory. Missing directories and plain files yield []."""
        config = self._config()
        url = self._contents_url(config, repo or config.data_repo, dir_path)
        response = await self._request("GET", url, config)

        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise self._fail(response, "LIST", dir_path)

        data = response.json()
        if not isinstance(data, list):
            return []
        return [
            RemoteEntry(name=item["name"], path=item["path"], hash=item["sha"], kind=item["type"])
            for item in data
        ]

    async def repo_size(self, repo: str) -> int:
        """Repository size in bytes (the service reports KB)."""
        config = self._config()
        url = f"{self._base_url}/repos/{config.owner}/{repo}"
        response = await self._request("GET", url, config)
        if response.status_code != 200:
            raise self._fail(response, "SIZE", repo)
        return int(response.json().get("size") or 0) * 1024

    async def repo_exists(self, repo: str | None = None) -> bool:
        try:
            config = self._config()
            url = f"{self._base_url}/repos/{config.owner}/{repo or config.data_repo}"
            response = await self._request("GET", url, config)
        except StorageError:
            return False
        return response.status_code == 200
