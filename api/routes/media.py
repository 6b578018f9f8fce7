"""Media endpoints: add, list, delete, rating, field updates"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_catalog, get_metadata_client
from api.upstream import MetadataClient, UpstreamAPIError
from core.catalog import CatalogService
from core.errors import ConfigurationError, StorageError
from core.models import (
    Category,
    DeleteRequest,
    DeleteResponse,
    FieldsUpdate,
    LinkedMoviesUpdate,
    MediaCreate,
    MediaRecord,
    RatingUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["media"])


async def _lookup_rating(
    payload: MediaCreate, catalog: CatalogService, metadata: MetadataClient
) -> int | None:
    if payload.category not in (Category.movies, Category.tv) or not payload.external_api_id:
        return None
    user_settings = await catalog.get_settings()
    if not (user_settings.tmdb_api_key and user_settings.omdb_api_key):
        return None
    try:
        return await metadata.imdb_rating(
            payload.external_api_id,
            payload.category,
            user_settings.tmdb_api_key,
            user_settings.omdb_api_key,
        )
    except UpstreamAPIError as e:
        logger.warning("Error fetching IMDb rating for %s: %s", payload.id, e)
        return None


@router.post("/add", response_model=MediaRecord)
async def add_media(
    payload: MediaCreate,
    catalog: CatalogService = Depends(get_catalog),
    metadata: MetadataClient = Depends(get_metadata_client),
) -> MediaRecord:
    rating = await _lookup_rating(payload, catalog, metadata)
    if rating is not None:
        payload.rating = rating
    return await catalog.add_media(payload)


@router.get("/list", response_model=list[MediaRecord])
async def list_media(catalog: CatalogService = Depends(get_catalog)) -> list[MediaRecord]:
    try:
        return await catalog.list_media()
    except ConfigurationError:
        logger.info("Remote storage not configured, returning empty list")
        return []
    except StorageError as e:
        logger.error("/list failed: %s", e)
        return []


@router.post("/delete", response_model=DeleteResponse)
async def delete_media(
    body: DeleteRequest,
    catalog: CatalogService = Depends(get_catalog),
) -> DeleteResponse:
    deleted = await catalog.delete_media(body.ids)
    return DeleteResponse(deleted=deleted)


@router.patch("/rating", response_model=MediaRecord)
async def update_rating(
    body: RatingUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> MediaRecord:
    return await catalog.update_rating(body.id, body.my_rank)


@router.patch("/update", response_model=MediaRecord)
async def update_fields(
    body: FieldsUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> MediaRecord:
    return await catalog.update_fields(body)


@router.patch("/actor-linked-movies", response_model=MediaRecord)
async def update_linked_movies(
    body: LinkedMoviesUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> MediaRecord:
    return await catalog.update_linked_movies(body.id, body.linked_movies)
