"""Pydantic models for catalog records and request bodies.

Records are persisted with camelCase keys (``myRank``, ``posterImageRepo``);
attributes are snake_case and both spellings are accepted on input.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, RootModel, field_validator
from pydantic.alias_generators import to_camel

from core.records import check_record_id


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z"""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        """Dict in the persisted (camelCase) shape."""
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Category(str, Enum):
    anime = "anime"
    movies = "movies"
    tv = "tv"
    games = "games"
    actors = "actors"


class ImageKind(str, Enum):
    poster = "poster"
    banner = "banner"


# Ids name files (<base>/<id>.json), so they must stay inside their directory
RecordId = Annotated[str, Field(min_length=1), AfterValidator(check_record_id)]


class ImageFields:
    """Accessors for the poster/banner URL and shard fields of a record.

    Mixed into models that declare ``poster_path``, ``banner_path``,
    ``poster_image_repo`` and ``banner_image_repo``.
    """

    def image_repo(self, kind: ImageKind) -> str | None:
        return self.poster_image_repo if kind == ImageKind.poster else self.banner_image_repo

    def image_path(self, kind: ImageKind) -> str:
        return self.poster_path if kind == ImageKind.poster else self.banner_path

    def set_image(self, kind: ImageKind, url: str, repo: str) -> None:
        if kind == ImageKind.poster:
            self.poster_path, self.poster_image_repo = url, repo
        else:
            self.banner_path, self.banner_image_repo = url, repo


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

_MEDIA_TEXT_FIELDS = (
    "year", "genre", "description", "poster_path", "banner_path",
    "gender", "birthday", "place_of_birth", "social_media", "biography",
    "linked_movies", "external_api_id", "studio", "developer",
    "director_creator", "runtime", "episodes", "episode_runtime",
    "time_to_beat", "source",
)


class MediaRecord(ImageFields, CamelModel):
    id: RecordId
    title: str = Field(min_length=1)
    category: Category
    rating: int = 0
    year: str = ""
    genre: str = ""
    description: str = ""
    my_rank: int | float = 0
    poster_path: str = ""
    banner_path: str = ""
    poster_image_repo: str | None = None
    banner_image_repo: str | None = None

    # actors
    gender: str = ""
    birthday: str = ""
    place_of_birth: str = ""
    social_media: str = ""
    biography: str = ""
    linked_movies: str = ""

    external_api_id: str = ""
    studio: str = ""
    developer: str = ""
    director_creator: str = ""
    runtime: str = ""
    episodes: str = ""
    episode_runtime: str = ""
    time_to_beat: str = ""
    source: str = ""

    @field_validator(*_MEDIA_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return _text(v)

    @field_validator("rating", mode="before")
    @classmethod
    def _normalize_rating(cls, v: Any) -> int:
        if v in (None, ""):
            return 0
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0
        if not math.isfinite(value):
            return 0
        return max(0, min(100, round(value)))

    @field_validator("my_rank", mode="before")
    @classmethod
    def _default_rank(cls, v: Any) -> Any:
        return 0 if v is None else v


class MediaCreate(MediaRecord):
    """POST /add body: a record plus optional data-URI images to upload."""

    poster_base64: str | None = None
    banner_base64: str | None = None

    def to_record(self) -> MediaRecord:
        return MediaRecord.model_validate(self.model_dump(exclude={"poster_base64", "banner_base64"}))


class RatingUpdate(CamelModel):
    id: RecordId
    my_rank: int | float | None = None


class FieldsUpdate(CamelModel):
    """PATCH /update body. Fields left as None are not touched."""

    id: RecordId
    studio: str | None = None
    developer: str | None = None
    director_creator: str | None = None
    runtime: str | int | float | None = None
    episodes: str | int | float | None = None
    episode_runtime: str | int | float | None = None
    time_to_beat: str | dict | None = None


class LinkedMoviesUpdate(CamelModel):
    id: RecordId
    linked_movies: str | None = None


class DeleteRequest(CamelModel):
    ids: list[RecordId] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

def _decode_item_ids(v: Any) -> Any:
    if v is None:
        return []
    if isinstance(v, str):
        try:
            decoded = json.loads(v)
        except ValueError:
            return []
        return decoded if isinstance(decoded, list) else []
    return v


class Collection(ImageFields, CamelModel):
    id: RecordId
    name: str = Field(min_length=1)
    item_ids: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_timestamp)
    poster_path: str = ""
    banner_path: str = ""
    poster_image_repo: str | None = None
    banner_image_repo: str | None = None

    @field_validator("item_ids", mode="before")
    @classmethod
    def _item_ids(cls, v: Any) -> Any:
        return _decode_item_ids(v)

    @field_validator("poster_path", "banner_path", mode="before")
    @classmethod
    def _paths(cls, v: Any) -> Any:
        return _text(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at(cls, v: Any) -> Any:
        return v or utc_timestamp()


class CollectionCreate(Collection):
    poster_base64: str | None = None
    banner_base64: str | None = None

    def to_record(self) -> Collection:
        return Collection.model_validate(self.model_dump(exclude={"poster_base64", "banner_base64"}))


class CollectionUpdate(CamelModel):
    name: str | None = None
    item_ids: list[str] | None = None
    poster_path: str | None = None
    banner_path: str | None = None
    poster_base64: str | None = None
    banner_base64: str | None = None

    @field_validator("item_ids", mode="before")
    @classmethod
    def _item_ids(cls, v: Any) -> Any:
        return None if v is None else _decode_item_ids(v)


# ---------------------------------------------------------------------------
# Settings and category images
# ---------------------------------------------------------------------------

class UserSettings(CamelModel):
    """Third-party credentials and theming. Every field defaults to null."""

    theme_background_color: str | None = None
    theme_hover_color: str | None = None
    theme_title_color: str | None = None
    theme_text_color: str | None = None
    theme_font_family: str | None = None
    theme_dropdown_color: str | None = None

    tmdb_api_key: str | None = None
    mal_api_key: str | None = None
    steam_api_key: str | None = None
    steamgriddb_api_key: str | None = None
    fanarttv_api_key: str | None = None
    omdb_api_key: str | None = None
    spotify_client_id: str | None = None
    spotify_client_secret: str | None = None
    youtube_api_key: str | None = None

    bio_max_chars: int | None = None
    tab_backgrounds: dict[str, Any] | None = None

    @field_validator(
        "theme_background_color", "theme_hover_color", "theme_title_color",
        "theme_text_color", "theme_font_family", "theme_dropdown_color",
        "tmdb_api_key", "mal_api_key", "steam_api_key", "steamgriddb_api_key",
        "fanarttv_api_key", "omdb_api_key", "spotify_client_id",
        "spotify_client_secret", "youtube_api_key",
        mode="before",
    )
    @classmethod
    def _empty_to_none(cls, v: Any) -> Any:
        return v or None

    @field_validator("bio_max_chars", mode="before")
    @classmethod
    def _bio_max_chars(cls, v: Any) -> int | None:
        if v in (None, ""):
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        return int(value) if math.isfinite(value) else None

    @field_validator("tab_backgrounds", mode="before")
    @classmethod
    def _tab_backgrounds(cls, v: Any) -> Any:
        if not v:
            return None
        if isinstance(v, str):
            try:
                decoded = json.loads(v)
            except ValueError:
                return None
            return decoded if isinstance(decoded, dict) else None
        return v


class SettingsUpdate(UserSettings):
    """POST /settings body. Storage credentials reconfigure the resolver and
    are never written into settings.json."""

    github_token: str | None = None
    github_owner: str | None = None
    github_data_repo: str | None = None
    github_image_repos: str | list[str] | None = None

    def has_storage_credentials(self) -> bool:
        return bool(self.github_token or self.github_owner or self.github_data_repo or self.github_image_repos)

    def to_settings(self) -> UserSettings:
        return UserSettings.model_validate(
            self.model_dump(exclude={"github_token", "github_owner", "github_data_repo", "github_image_repos"})
        )


class CategoryImage(BaseModel):
    category: str = Field(min_length=1)
    image: str = Field(min_length=1)


class CategoryImages(RootModel[dict[str, str]]):
    """category-images.json: category name -> data URI."""

    root: dict[str, str] = Field(default_factory=dict)

    def rows(self) -> list[CategoryImage]:
        return [CategoryImage(category=c, image=i) for c, i in self.root.items() if c and i]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class OkResponse(BaseModel):
    ok: bool = True
    warning: str | None = None
    sha: str | None = None


class DeleteResponse(BaseModel):
    deleted: list[str]


class StorageUsage(BaseModel):
    used: int
    repos: dict[str, int]
