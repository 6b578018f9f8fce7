"""Tests for core/models.py.

Covers camelCase persistence, input coercion and validation error cases.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.models import (
    CategoryImages,
    Collection,
    CollectionUpdate,
    DeleteRequest,
    ImageKind,
    MediaCreate,
    MediaRecord,
    SettingsUpdate,
    UserSettings,
    utc_timestamp,
)


# ---------------------------------------------------------------------------
# MediaRecord
# ---------------------------------------------------------------------------


class TestMediaRecord:
    def test_accepts_camel_case_document(self):
        record = MediaRecord.model_validate(
            {"id": "1", "title": "Akira", "category": "anime", "myRank": 7, "posterImageRepo": "img-1"}
        )
        assert record.my_rank == 7
        assert record.poster_image_repo == "img-1"

    def test_document_uses_camel_case_keys(self):
        document = MediaRecord(id="1", title="Akira", category="anime", place_of_birth="Tokyo").to_document()
        assert document["placeOfBirth"] == "Tokyo"
        assert document["category"] == "anime"
        assert document["posterImageRepo"] is None

    @pytest.mark.parametrize("missing", ["id", "title", "category"])
    def test_required_fields(self, missing):
        data = {"id": "1", "title": "Akira", "category": "anime"}
        del data[missing]
        with pytest.raises(ValidationError):
            MediaRecord.model_validate(data)

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            MediaRecord(id="1", title="x", category="books")

    @pytest.mark.parametrize(
        "raw, expected",
        [(87, 87), ("73.6", 74), (150, 100), (-5, 0), (None, 0), ("", 0), ("n/a", 0)],
    )
    def test_rating_is_clamped_to_0_100(self, raw, expected):
        assert MediaRecord(id="1", title="x", category="movies", rating=raw).rating == expected

    def test_numeric_text_fields_become_strings(self):
        record = MediaRecord(id="1", title="x", category="tv", year=1998, episodes=26, genre=None)
        assert record.year == "1998"
        assert record.episodes == "26"
        assert record.genre == ""

    def test_create_drops_upload_payloads(self):
        create = MediaCreate(id="1", title="x", category="games", posterBase64="data:image/png;base64,AAA")
        record = create.to_record()
        assert type(record) is MediaRecord
        assert "posterBase64" not in record.to_document()


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class TestCollection:
    def test_item_ids_accepts_json_string(self):
        assert Collection(id="c", name="n", itemIds='["1", "2"]').item_ids == ["1", "2"]

    def test_item_ids_bad_json_becomes_empty(self):
        assert Collection(id="c", name="n", itemIds="[oops").item_ids == []

    def test_created_at_defaults_to_now(self):
        created = Collection(id="c", name="n").created_at
        assert created.endswith("Z")
        assert created[:4] == utc_timestamp()[:4]

    def test_update_leaves_item_ids_unset(self):
        assert CollectionUpdate(name="x").item_ids is None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults_are_null(self):
        assert UserSettings().model_dump(exclude_none=True) == {}

    def test_empty_strings_become_null(self):
        assert UserSettings(tmdbApiKey="").tmdb_api_key is None

    def test_tab_backgrounds_from_json_string(self):
        settings = UserSettings(tabBackgrounds='{"anime": "#000"}')
        assert settings.tab_backgrounds == {"anime": "#000"}

    def test_bio_max_chars_coercion(self):
        assert UserSettings(bioMaxChars="250").bio_max_chars == 250
        assert UserSettings(bioMaxChars="lots").bio_max_chars is None

    def test_storage_credentials_are_split_off(self):
        update = SettingsUpdate(githubToken="t", omdbApiKey="o")
        assert update.has_storage_credentials() is True
        settings = update.to_settings()
        assert type(settings) is UserSettings
        assert "githubToken" not in settings.to_document()
        assert settings.omdb_api_key == "o"

    def test_no_storage_credentials(self):
        assert SettingsUpdate(omdbApiKey="o").has_storage_credentials() is False


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


def test_category_image_rows_skip_empty_entries():
    rows = CategoryImages({"anime": "data:a", "games": ""}).rows()
    assert [(r.category, r.image) for r in rows] == [("anime", "data:a")]


def test_delete_request_needs_ids():
    with pytest.raises(ValidationError):
        DeleteRequest(ids=[])


@pytest.mark.parametrize("record_id", ["index", "a/b", "..", "../settings", "x\\y", ""])
def test_ids_that_name_other_files_are_rejected(record_id):
    with pytest.raises(ValidationError):
        MediaRecord(id=record_id, title="Akira", category="anime")
    with pytest.raises(ValidationError):
        Collection(id=record_id, name="Favs")
    with pytest.raises(ValidationError):
        DeleteRequest(ids=["1", record_id])


def test_image_accessors_follow_kind():
    record = MediaRecord(id="1", title="Akira", category="anime", poster_image_repo="img-1")
    record.set_image(ImageKind.banner, "https://raw.test/img-2/main/1_banner.webp", "img-2")

    assert record.image_repo(ImageKind.poster) == "img-1"
    assert record.image_repo(ImageKind.banner) == "img-2"
    assert record.image_path(ImageKind.banner).endswith("1_banner.webp")
    assert record.image_path(ImageKind.poster) == ""
