"""Shared fixtures: an in-memory fake of the GitHub contents API."""

from __future__ import annotations

import base64
import hashlib
import itertools
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from core.remote_files import RemoteFileClient
from core.storage_config import ConfigurationResolver

API_URL = "https://api.test"
OWNER = "tester"


class FakeContentsAPI:
    """Path-addressed files per repo with sha-checked writes.

    Every write mints a new sha, even for identical content. A PUT or DELETE
    carrying a sha that no longer matches gets 409; a PUT to an existing file
    without a sha gets 422, like the real service.
    """

    def __init__(self, repos: dict[str, int]) -> None:
        self.sizes_kb = dict(repos)
        self.files: dict[str, dict[str, tuple[str, str]]] = {repo: {} for repo in repos}
        self.calls: list[tuple[str, str, str]] = []
        self.failing: set[tuple[str, str]] = set()
        self.on_put: Callable[[str, str], None] | None = None
        self._counter = itertools.count(1)

    # -- helpers used by tests ---------------------------------------------

    def _mint(self, content: str) -> str:
        return hashlib.sha1(f"{content}:{next(self._counter)}".encode()).hexdigest()

    def seed(self, repo: str, path: str, content: Any) -> str:
        text = content if isinstance(content, str) else json.dumps(content)
        encoded = base64.b64encode(text.encode()).decode()
        sha = self._mint(encoded)
        self.files[repo][path] = (encoded, sha)
        return sha

    def read(self, repo: str, path: str) -> Any:
        encoded, _ = self.files[repo][path]
        text = base64.b64decode(encoded).decode()
        try:
            return json.loads(text)
        except ValueError:
            return text

    def exists(self, repo: str, path: str) -> bool:
        return path in self.files.get(repo, {})

    def sha(self, repo: str, path: str) -> str:
        return self.files[repo][path][1]

    def writes(self, repo: str | None = None) -> list[tuple[str, str, str]]:
        return [c for c in self.calls if c[0] in ("PUT", "DELETE") and (repo is None or c[1] == repo)]

    # -- transport ----------------------------------------------------------

    @staticmethod
    def _json(status: int, body: Any) -> httpx.Response:
        return httpx.Response(status, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if not request.headers.get("authorization", "").startswith("Bearer "):
            return self._json(401, {"message": "Requires authentication"})

        parts = request.url.path.strip("/").split("/", 4)
        # repos/{owner}/{repo}[/contents/{path}]
        if len(parts) < 3 or parts[0] != "repos" or parts[1] != OWNER:
            return self._json(404, {"message": "Not Found"})
        repo = parts[2]
        path = parts[4] if len(parts) > 4 else ""
        self.calls.append((request.method, repo, path))

        if repo not in self.files:
            return self._json(404, {"message": "Not Found"})
        if (repo, path) in self.failing:
            return self._json(500, {"message": "Server Error"})

        if len(parts) == 3:
            return self._json(200, {"name": repo, "size": self.sizes_kb[repo]})

        files = self.files[repo]
        if request.method == "GET":
            return self._get(repo, files, path)

        body = json.loads(request.content or b"{}")
        if request.method == "PUT":
            return self._put(repo, files, path, body)
        if request.method == "DELETE":
            return self._delete(files, path, body)
        return self._json(405, {"message": "Method Not Allowed"})

    def _get(self, repo: str, files: dict, path: str) -> httpx.Response:
        if path in files:
            encoded, sha = files[path]
            return self._json(200, {"name": path.rsplit("/", 1)[-1], "path": path, "sha": sha,
                                    "type": "file", "encoding": "base64", "content": encoded})
        prefix = f"{path}/" if path else ""
        entries = [
            {"name": p[len(prefix):], "path": p, "sha": sha, "type": "file"}
            for p, (_, sha) in files.items()
            if p.startswith(prefix) and "/" not in p[len(prefix):]
        ]
        if entries:
            return self._json(200, entries)
        return self._json(404, {"message": "Not Found"})

    def _put(self, repo: str, files: dict, path: str, body: dict) -> httpx.Response:
        existing = files.get(path)
        sent_sha = body.get("sha")
        if existing is not None and sent_sha is None:
            return self._json(422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
        if existing is not None and sent_sha != existing[1]:
            return self._json(409, {"message": f"{path} does not match {sent_sha}"})
        if existing is None and sent_sha is not None:
            return self._json(409, {"message": f"{path} does not match {sent_sha}"})

        sha = self._mint(body["content"])
        files[path] = (body["content"], sha)
        if self.on_put is not None:
            self.on_put(repo, path)
        return self._json(201 if existing is None else 200, {"content": {"path": path, "sha": sha},
                                                            "commit": {"message": body.get("message")}})

    def _delete(self, files: dict, path: str, body: dict) -> httpx.Response:
        existing = files.get(path)
        if existing is None:
            return self._json(404, {"message": "Not Found"})
        if body.get("sha") != existing[1]:
            return self._json(409, {"message": f"{path} does not match {body.get('sha')}"})
        del files[path]
        return self._json(200, {"content": None, "commit": {"message": body.get("message")}})


@pytest.fixture
def fake_api() -> FakeContentsAPI:
    return FakeContentsAPI({"data": 10, "img-1": 100, "img-2": 100})


@pytest.fixture
def resolver(tmp_path) -> ConfigurationResolver:
    env = {
        "GITHUB_TOKEN": "test-token",
        "GITHUB_OWNER": OWNER,
        "GITHUB_DATA_REPO": "data",
        "GITHUB_IMAGE_REPOS": "img-1, img-2",
    }
    return ConfigurationResolver(override_path=tmp_path / "github-config.json", environ=env)


@pytest_asyncio.fixture
async def remote(fake_api: FakeContentsAPI, resolver: ConfigurationResolver):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    client = RemoteFileClient(resolver, http_client=http_client, base_url=API_URL)
    yield client
    await http_client.aclose()
