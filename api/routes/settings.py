"""Settings and category image endpoints"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_catalog
from core.catalog import CatalogService
from core.errors import ConfigurationError, StorageError
from core.models import CategoryImage, OkResponse, SettingsUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["settings"])


@router.get("/settings")
async def get_settings(catalog: CatalogService = Depends(get_catalog)) -> dict:
    user_settings = await catalog.get_settings()
    return user_settings.model_dump(by_alias=True, mode="json", exclude_none=True)


@router.post("/settings", response_model=OkResponse, response_model_exclude_none=True)
async def save_settings(
    body: SettingsUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> OkResponse:
    try:
        sha = await catalog.save_settings(body)
    except ConfigurationError:
        logger.warning("Remote storage not configured, settings not saved")
        return OkResponse(warning="Remote storage not configured")
    return OkResponse(sha=sha)


@router.get("/category-images", response_model=list[CategoryImage])
async def list_category_images(catalog: CatalogService = Depends(get_catalog)) -> list[CategoryImage]:
    try:
        return await catalog.list_category_images()
    except ConfigurationError:
        return []
    except (StorageError, ValueError) as e:
        logger.error("GET /category-images failed: %s", e)
        return []


@router.post("/category-images", response_model=OkResponse, response_model_exclude_none=True)
async def save_category_image(
    body: CategoryImage,
    catalog: CatalogService = Depends(get_catalog),
) -> OkResponse:
    sha = await catalog.set_category_image(body.category, body.image)
    return OkResponse(sha=sha)
