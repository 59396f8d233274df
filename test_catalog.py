"""Catalog document rendering and Mongo error mapping."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect, DuplicateKeyError, ServerSelectionTimeoutError

from reelkeeper.db.catalog import (
    CatalogError,
    CatalogStore,
    DuplicateEntryError,
    name_filter,
    to_public,
)


@pytest.fixture
def catalog():
    collections = {name: MagicMock(name=name) for name in ("movies", "series", "episodes")}
    client = MagicMock()
    client.__getitem__.return_value.__getitem__.side_effect = collections.__getitem__
    return CatalogStore("mongodb://unused", "reelkeeper", client=client)


def test_to_public_renders_ids_and_dates():
    oid, series_oid = ObjectId(), ObjectId()
    doc = {
        "_id": oid,
        "seriesId": series_oid,
        "addedAt": datetime(2026, 3, 1, 12, 0),
        "title": "Secrets",
    }
    assert to_public(doc) == {
        "id": str(oid),
        "seriesId": str(series_oid),
        "addedAt": "2026-03-01T12:00:00+00:00",
        "title": "Secrets",
    }
    assert to_public(None) is None


def test_name_filter_escapes_regex():
    assert name_filter("  ") == {}
    assert name_filter(None) == {}
    assert name_filter("a.b (1)") == {"name": {"$regex": r"a\.b\ \(1\)", "$options": "i"}}


def test_malformed_ids_are_not_found(catalog):
    assert catalog.get_movie("not-an-id") is None
    assert catalog.delete_series("zzz") is False
    assert catalog.list_episodes("zzz") == []
    catalog.movies.find_one.assert_not_called()


def test_add_episode_registers_season(catalog):
    series_id = str(ObjectId())
    catalog.series.update_one.return_value.matched_count = 1
    catalog.episodes.insert_one.return_value.inserted_id = "e1"
    assert catalog.add_episode(series_id, 2, 1, "Pilot", "http://s/p", added_by=4) == "e1"
    query, update = catalog.series.update_one.call_args.args
    assert query == {"_id": ObjectId(series_id)}
    assert update == {"$addToSet": {"seasons": 2}}
    inserted = catalog.episodes.insert_one.call_args.args[0]
    assert inserted["seriesId"] == ObjectId(series_id)
    assert inserted["addedAt"].tzinfo is not None


def test_add_episode_missing_series(catalog):
    catalog.series.find_one.return_value = None
    with pytest.raises(CatalogError):
        catalog.add_episode(str(ObjectId()), 1, 1, "Pilot", "http://s/p", added_by=4)
    catalog.episodes.insert_one.assert_not_called()
    catalog.series.update_one.assert_not_called()


def test_failed_insert_leaves_seasons_alone(catalog):
    catalog.episodes.insert_one.side_effect = AutoReconnect("connection lost")
    with pytest.raises(CatalogError):
        catalog.add_episode(str(ObjectId()), 3, 1, "Pilot", "http://s/p", added_by=4)
    catalog.series.update_one.assert_not_called()


def test_failed_season_registration_removes_episode(catalog):
    catalog.episodes.insert_one.return_value.inserted_id = "e1"
    catalog.series.update_one.side_effect = AutoReconnect("connection lost")
    with pytest.raises(CatalogError):
        catalog.add_episode(str(ObjectId()), 3, 1, "Pilot", "http://s/p", added_by=4)
    catalog.episodes.delete_one.assert_called_once_with({"_id": "e1"})


def test_series_removed_before_season_registration(catalog):
    catalog.episodes.insert_one.return_value.inserted_id = "e1"
    catalog.series.update_one.return_value.matched_count = 0
    with pytest.raises(CatalogError):
        catalog.add_episode(str(ObjectId()), 3, 1, "Pilot", "http://s/p", added_by=4)
    catalog.episodes.delete_one.assert_called_once_with({"_id": "e1"})


def test_delete_series_cascades(catalog):
    series_id = str(ObjectId())
    catalog.series.delete_one.return_value.deleted_count = 1
    catalog.episodes.delete_many.return_value.deleted_count = 3
    assert catalog.delete_series(series_id) is True
    catalog.episodes.delete_many.assert_called_once_with({"seriesId": ObjectId(series_id)})


def test_driver_errors_become_catalog_errors(catalog):
    catalog.movies.count_documents.side_effect = ServerSelectionTimeoutError("no servers")
    with pytest.raises(CatalogError):
        catalog.count_movies()


def test_duplicate_key_is_distinguished(catalog):
    catalog.series.update_one.return_value.matched_count = 1
    catalog.episodes.insert_one.side_effect = DuplicateKeyError("E11000")
    with pytest.raises(DuplicateEntryError):
        catalog.add_episode(str(ObjectId()), 1, 1, "Pilot", "http://s/p", added_by=4)


def test_update_rejects_unknown_field(catalog):
    with pytest.raises(ValueError):
        catalog.update_series(str(ObjectId()), "streamingUrl", "x")
