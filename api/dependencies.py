"""Process-wide service instances, created lazily and overridable in tests."""

from __future__ import annotations

from api.upstream import MetadataClient
from core.catalog import CatalogService
from core.remote_files import RemoteFileClient
from core.storage_config import ConfigurationResolver

_resolver: ConfigurationResolver | None = None
_remote_client: RemoteFileClient | None = None
_catalog: CatalogService | None = None
_metadata_client: MetadataClient | None = None


def get_resolver() -> ConfigurationResolver:
    global _resolver
    if _resolver is None:
        _resolver = ConfigurationResolver()
    return _resolver


def get_catalog() -> CatalogService:
    global _remote_client, _catalog
    if _catalog is None:
        _remote_client = RemoteFileClient(get_resolver())
        _catalog = CatalogService(_remote_client)
    return _catalog


def get_metadata_client() -> MetadataClient:
    global _metadata_client
    if _metadata_client is None:
        _metadata_client = MetadataClient()
    return _metadata_client


async def close_clients() -> None:
    global _remote_client, _catalog, _metadata_client
    if _remote_client is not None:
        await _remote_client.aclose()
    if _metadata_client is not None:
        await _metadata_client.aclose()
    _remote_client = _catalog = _metadata_client = None
