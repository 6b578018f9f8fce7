"""Storage maintenance endpoints: usage, initialization, index repair"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_catalog
from core.catalog import CatalogService
from core.models import OkResponse, StorageUsage

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/usage", response_model=StorageUsage)
async def storage_usage(catalog: CatalogService = Depends(get_catalog)) -> StorageUsage:
    return await catalog.usage()


@router.post("/initialize", response_model=OkResponse, response_model_exclude_none=True)
async def initialize_storage(catalog: CatalogService = Depends(get_catalog)) -> OkResponse:
    ok = await catalog.initialize()
    return OkResponse(ok=ok, warning=None if ok else "Data repository is not accessible")


@router.post("/repair")
async def repair_indexes(catalog: CatalogService = Depends(get_catalog)) -> dict[str, list[str]]:
    return await catalog.repair_indexes()
