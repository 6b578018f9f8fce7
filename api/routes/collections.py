"""Collection endpoints"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_catalog
from core.catalog import CatalogService
from core.errors import ConfigurationError, StorageError
from core.models import Collection, CollectionCreate, CollectionUpdate, OkResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/collections", tags=["collections"])


@router.get("", response_model=list[Collection])
async def list_collections(catalog: CatalogService = Depends(get_catalog)) -> list[Collection]:
    try:
        return await catalog.list_collections()
    except ConfigurationError:
        return []
    except StorageError as e:
        logger.error("GET /collections failed: %s", e)
        return []


@router.post("", response_model=Collection)
async def save_collection(
    body: CollectionCreate,
    catalog: CatalogService = Depends(get_catalog),
) -> Collection:
    return await catalog.save_collection(body)


@router.patch("/{collection_id}", response_model=Collection)
async def update_collection(
    collection_id: str,
    body: CollectionUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> Collection:
    return await catalog.update_collection(collection_id, body)


@router.delete("/{collection_id}", response_model=OkResponse)
async def delete_collection(
    collection_id: str,
    catalog: CatalogService = Depends(get_catalog),
) -> OkResponse:
    await catalog.delete_collection(collection_id)
    return OkResponse()
