"""Tests for the remote contents client against the in-memory fake"""

from __future__ import annotations

import base64

import httpx
import pytest

from core.errors import ConfigurationError, ConflictError, NotFoundError, UpstreamError
from core.remote_files import RemoteFileClient, decode_content, encode_content
from core.storage_config import ConfigurationResolver

API_URL = "https://api.test"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


class TestContentEncoding:
    def test_json_roundtrip(self):
        data = {"id": "1", "title": "Akira", "tags": ["a", "b"]}
        assert decode_content(encode_content(data)) == data

    def test_strings_are_stored_verbatim(self):
        encoded = encode_content("plain text")
        assert base64.b64decode(encoded).decode() == "plain text"

    def test_non_json_payload_decodes_to_raw_string(self):
        encoded = base64.b64encode(b"not { json").decode()
        assert decode_content(encoded) == "not { json"


# ---------------------------------------------------------------------------
# get / put / delete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_missing_returns_none(remote: RemoteFileClient):
    assert await remote.get("media/nope.json") is None
    assert await remote.file_hash("media/nope.json") is None


@pytest.mark.asyncio
async def test_put_then_get_returns_content_and_hash(remote: RemoteFileClient, fake_api):
    new_hash = await remote.put("media/1.json", {"id": "1"}, "Add 1")

    remote_file = await remote.get("media/1.json")
    assert remote_file is not None
    assert remote_file.content == {"id": "1"}
    assert remote_file.hash == new_hash == fake_api.sha("data", "media/1.json")


@pytest.mark.asyncio
async def test_put_with_current_hash_updates(remote: RemoteFileClient):
    first = await remote.put("settings.json", {"a": 1})
    second = await remote.put("settings.json", {"a": 2}, expected_hash=first)

    assert second != first
    assert (await remote.get("settings.json")).content == {"a": 2}


@pytest.mark.asyncio
async def test_put_with_stale_hash_raises_conflict(remote: RemoteFileClient):
    first = await remote.put("settings.json", {"a": 1})
    await remote.put("settings.json", {"a": 2}, expected_hash=first)

    with pytest.raises(ConflictError):
        await remote.put("settings.json", {"a": 3}, expected_hash=first)
    assert (await remote.get("settings.json")).content == {"a": 2}


@pytest.mark.asyncio
async def test_put_existing_without_hash_raises_conflict(remote: RemoteFileClient):
    await remote.put("settings.json", {"a": 1})
    with pytest.raises(ConflictError):
        await remote.put("settings.json", {"a": 2})


@pytest.mark.asyncio
async def test_identical_content_still_gets_new_hash(remote: RemoteFileClient):
    first = await remote.put("x.json", {"same": True})
    second = await remote.put("x.json", {"same": True}, expected_hash=first)
    assert first != second


@pytest.mark.asyncio
async def test_delete_missing_raises_not_found(remote: RemoteFileClient):
    with pytest.raises(NotFoundError):
        await remote.delete("media/gone.json", "abc")


@pytest.mark.asyncio
async def test_delete_with_stale_hash_raises_conflict(remote: RemoteFileClient):
    first = await remote.put("x.json", {"v": 1})
    await remote.put("x.json", {"v": 2}, expected_hash=first)
    with pytest.raises(ConflictError):
        await remote.delete("x.json", first)


@pytest.mark.asyncio
async def test_delete_removes_file(remote: RemoteFileClient, fake_api):
    content_hash = await remote.put("x.json", {"v": 1})
    assert await remote.delete("x.json", content_hash) is True
    assert not fake_api.exists("data", "x.json")


@pytest.mark.asyncio
async def test_server_error_raises_upstream_error(remote: RemoteFileClient, fake_api):
    fake_api.failing.add(("data", "broken.json"))
    with pytest.raises(UpstreamError) as exc_info:
        await remote.get("broken.json")
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_writes_go_to_the_requested_repo(remote: RemoteFileClient, fake_api):
    await remote.put_base64("a_poster.webp", base64.b64encode(b"img").decode(), repo="img-2")
    assert fake_api.exists("img-2", "a_poster.webp")
    assert not fake_api.exists("data", "a_poster.webp")


# ---------------------------------------------------------------------------
# Listing and repository metadata
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_directory(remote: RemoteFileClient, fake_api):
    fake_api.seed("data", "media/1.json", {"id": "1"})
    fake_api.seed("data", "media/2.json", {"id": "2"})
    fake_api.seed("data", "collections/9.json", {"id": "9"})

    entries = await remote.list("media")
    assert sorted(e.name for e in entries) == ["1.json", "2.json"]
    assert all(e.kind == "file" for e in entries)


@pytest.mark.asyncio
async def test_list_missing_directory_is_empty(remote: RemoteFileClient):
    assert await remote.list("nothing-here") == []


@pytest.mark.asyncio
async def test_repo_size_is_reported_in_bytes(remote: RemoteFileClient, fake_api):
    fake_api.sizes_kb["img-1"] = 2048
    assert await remote.repo_size("img-1") == 2048 * 1024


@pytest.mark.asyncio
async def test_repo_exists(remote: RemoteFileClient):
    assert await remote.repo_exists() is True
    assert await remote.repo_exists("missing-repo") is False


# ---------------------------------------------------------------------------
# Configuration and transport failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unconfigured_client_raises_configuration_error(tmp_path, fake_api):
    resolver = ConfigurationResolver(override_path=tmp_path / "none.json", environ={})
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler)) as http_client:
        client = RemoteFileClient(resolver, http_client=http_client, base_url=API_URL)
        with pytest.raises(ConfigurationError):
            await client.get("settings.json")
        assert await client.repo_exists() is False
    assert fake_api.calls == []


@pytest.mark.asyncio
async def test_network_failure_maps_to_upstream_error(resolver):
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(_boom)) as http_client:
        client = RemoteFileClient(resolver, http_client=http_client, base_url=API_URL)
        with pytest.raises(UpstreamError):
            await client.get("settings.json")


@pytest.mark.asyncio
async def test_requests_carry_bearer_token_and_api_headers(resolver):
    seen: list[httpx.Request] = []

    def _capture(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(404, json={"message": "Not Found"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(_capture)) as http_client:
        client = RemoteFileClient(resolver, http_client=http_client, base_url=API_URL)
        await client.get("settings.json")

    request = seen[0]
    assert request.headers["authorization"] == "Bearer test-token"
    assert request.headers["x-github-api-version"] == "2022-11-28"
    assert request.url.path == "/repos/tester/data/contents/settings.json"
