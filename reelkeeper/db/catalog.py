"""MongoDB-backed media catalog.

Three collections hold the normalized catalog:

- ``movies``: one document per movie
- ``series``: one document per series; ``seasons`` lists the season numbers
  that own at least one episode
- ``episodes``: one document per episode, referencing its series by
  ``seriesId`` and its season by ``seasonNumber``

Every public method returns plain JSON-ready dicts (``_id`` rendered as an
``id`` string, datetimes as ISO8601) and raises `CatalogError` when the
database is unreachable or rejects a write.
"""

from __future__ import annotations

import contextlib
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..runtime.config import AppConfig


logger = logging.getLogger("reelkeeper.catalog")

MOVIE_FIELDS = ("name", "thumbnail", "streamingUrl", "description", "type")
SERIES_FIELDS = ("name", "thumbnail", "description", "type")


class CatalogError(Exception):
    """Store unreachable or write rejected."""


class DuplicateEntryError(CatalogError):
    """A unique index rejected the write."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Render a raw document for API and chat consumers."""
    if not doc:
        return None
    result: Dict[str, Any] = {}
    for key, value in doc.items():
        if key == "_id":
            result["id"] = str(value)
        elif isinstance(value, ObjectId):
            result[key] = str(value)
        elif isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            result[key] = value.isoformat()
        else:
            result[key] = value
    return result


def name_filter(search: Optional[str]) -> Dict[str, Any]:
    """Case-insensitive substring match on ``name``; empty search matches all."""
    search = (search or "").strip()
    if not search:
        return {}
    return {"name": {"$regex": re.escape(search), "$options": "i"}}


class CatalogStore:
    def __init__(
        self,
        mongo_uri: str,
        db_name: str,
        client: Optional[MongoClient] = None,
    ) -> None:
        self.client = client or MongoClient(mongo_uri, serverSelectionTimeoutMS=10000, tz_aware=True)
        self.db = self.client[db_name]
        self.movies = self.db["movies"]
        self.series = self.db["series"]
        self.episodes = self.db["episodes"]

    @classmethod
    def from_config(cls, config: AppConfig) -> "CatalogStore":
        return cls(config.mongodb_uri, config.mongodb_db)

    @contextlib.contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except DuplicateKeyError as e:
            raise DuplicateEntryError(f"{operation}: duplicate entry") from e
        except PyMongoError as e:
            logger.error(
                "catalog operation failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise CatalogError(f"{operation} failed: {e}") from e

    def init_indexes(self) -> None:
        with self._guard("init_indexes"):
            self.movies.create_index([("addedAt", DESCENDING)])
            self.movies.create_index("name")
            self.series.create_index([("addedAt", DESCENDING)])
            self.series.create_index("name")
            self.episodes.create_index(
                [
                    ("seriesId", ASCENDING),
                    ("seasonNumber", ASCENDING),
                    ("episodeNumber", ASCENDING),
                ],
                unique=True,
            )

    def ping(self) -> None:
        with self._guard("ping"):
            self.client.admin.command("ping")

    def close(self) -> None:
        self.client.close()

    # --- Movies ---

    def create_movie(
        self,
        name: str,
        thumbnail: str,
        streaming_url: str,
        added_by: int,
        description: Optional[str] = None,
        type_: Optional[str] = None,
    ) -> str:
        doc = {
            "name": name,
            "thumbnail": thumbnail,
            "streamingUrl": streaming_url,
            "description": description,
            "type": type_,
            "addedBy": added_by,
            "addedAt": utc_now(),
        }
        with self._guard("create_movie"):
            result = self.movies.insert_one(doc)
        return str(result.inserted_id)

    def get_movie(self, movie_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(movie_id)
        if oid is None:
            return None
        with self._guard("get_movie"):
            return to_public(self.movies.find_one({"_id": oid}))

    def list_movies(
        self, search: Optional[str] = None, skip: int = 0, limit: int = 20
    ) -> List[Dict[str, Any]]:
        with self._guard("list_movies"):
            cursor = (
                self.movies.find(name_filter(search))
                .sort([("addedAt", DESCENDING), ("_id", DESCENDING)])
                .skip(max(0, skip))
                .limit(limit)
            )
            return [to_public(doc) for doc in cursor]

    def count_movies(self, search: Optional[str] = None) -> int:
        with self._guard("count_movies"):
            return self.movies.count_documents(name_filter(search))

    def update_movie(self, movie_id: str, field: str, value: str) -> bool:
        if field not in MOVIE_FIELDS:
            raise ValueError(f"movie field not editable: {field}")
        oid = to_object_id(movie_id)
        if oid is None:
            return False
        with self._guard("update_movie"):
            result = self.movies.update_one({"_id": oid}, {"$set": {field: value}})
        return result.matched_count > 0

    def delete_movie(self, movie_id: str) -> bool:
        oid = to_object_id(movie_id)
        if oid is None:
            return False
        with self._guard("delete_movie"):
            result = self.movies.delete_one({"_id": oid})
        return result.deleted_count > 0

    # --- Series ---

    def create_series(
        self,
        name: str,
        thumbnail: str,
        added_by: int,
        description: Optional[str] = None,
        type_: Optional[str] = None,
    ) -> str:
        doc = {
            "name": name,
            "thumbnail": thumbnail,
            "description": description,
            "type": type_,
            "seasons": [],
            "addedBy": added_by,
            "addedAt": utc_now(),
        }
        with self._guard("create_series"):
            result = self.series.insert_one(doc)
        return str(result.inserted_id)

    def get_series(self, series_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(series_id)
        if oid is None:
            return None
        with self._guard("get_series"):
            return to_public(self.series.find_one({"_id": oid}))

    def list_series(
        self, search: Optional[str] = None, skip: int = 0, limit: int = 20
    ) -> List[Dict[str, Any]]:
        with self._guard("list_series"):
            cursor = (
                self.series.find(name_filter(search))
                .sort([("addedAt", DESCENDING), ("_id", DESCENDING)])
                .skip(max(0, skip))
                .limit(limit)
            )
            return [to_public(doc) for doc in cursor]

    def count_series(self, search: Optional[str] = None) -> int:
        with self._guard("count_series"):
            return self.series.count_documents(name_filter(search))

    def update_series(self, series_id: str, field: str, value: str) -> bool:
        if field not in SERIES_FIELDS:
            raise ValueError(f"series field not editable: {field}")
        oid = to_object_id(series_id)
        if oid is None:
            return False
        with self._guard("update_series"):
            result = self.series.update_one({"_id": oid}, {"$set": {field: value}})
        return result.matched_count > 0

    def delete_series(self, series_id: str) -> bool:
        """Delete a series together with every episode referencing it."""
        oid = to_object_id(series_id)
        if oid is None:
            return False
        with self._guard("delete_series"):
            result = self.series.delete_one({"_id": oid})
            if result.deleted_count == 0:
                return False
            removed = self.episodes.delete_many({"seriesId": oid})
        logger.info(
            "series deleted",
            extra={"series_id": series_id, "episodes_deleted": removed.deleted_count},
        )
        return True

    def season_numbers(self, series_id: str) -> List[int]:
        oid = to_object_id(series_id)
        if oid is None:
            return []
        with self._guard("season_numbers"):
            doc = self.series.find_one({"_id": oid}, {"seasons": 1})
        return sorted(doc.get("seasons") or []) if doc else []

    # --- Episodes ---

    def episode_exists(self, series_id: str, season_number: int, episode_number: int) -> bool:
        oid = to_object_id(series_id)
        if oid is None:
            return False
        with self._guard("episode_exists"):
            doc = self.episodes.find_one(
                {
                    "seriesId": oid,
                    "seasonNumber": season_number,
                    "episodeNumber": episode_number,
                },
                {"_id": 1},
            )
        return doc is not None

    def add_episode(
        self,
        series_id: str,
        season_number: int,
        episode_number: int,
        title: str,
        streaming_url: str,
        added_by: int,
        thumbnail: Optional[str] = None,
    ) -> str:
        """Insert an episode and register its season on the parent series."""
        oid = to_object_id(series_id)
        if oid is None:
            raise CatalogError(f"add_episode failed: invalid series id {series_id!r}")
        doc = {
            "seriesId": oid,
            "seasonNumber": season_number,
            "episodeNumber": episode_number,
            "title": title,
            "streamingUrl": streaming_url,
            "thumbnail": thumbnail,
            "addedBy": added_by,
            "addedAt": utc_now(),
        }
        with self._guard("add_episode"):
            if self.series.find_one({"_id": oid}, {"_id": 1}) is None:
                raise CatalogError(f"add_episode failed: series {series_id} not found")
            result = self.episodes.insert_one(doc)
            # The season is registered only once it owns a stored episode
            try:
                matched = self.series.update_one(
                    {"_id": oid},
                    {"$addToSet": {"seasons": season_number}},
                ).matched_count
            except PyMongoError:
                self.episodes.delete_one({"_id": result.inserted_id})
                raise
            if not matched:
                self.episodes.delete_one({"_id": result.inserted_id})
                raise CatalogError(f"add_episode failed: series {series_id} not found")
        return str(result.inserted_id)

    def list_episodes(
        self, series_id: str, season_number: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        oid = to_object_id(series_id)
        if oid is None:
            return []
        query: Dict[str, Any] = {"seriesId": oid}
        if season_number is not None:
            query["seasonNumber"] = season_number
        with self._guard("list_episodes"):
            cursor = self.episodes.find(query).sort(
                [("seasonNumber", ASCENDING), ("episodeNumber", ASCENDING)]
            )
            return [to_public(doc) for doc in cursor]

    def get_episode(self, episode_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(episode_id)
        if oid is None:
            return None
        with self._guard("get_episode"):
            return to_public(self.episodes.find_one({"_id": oid}))

    def delete_episode(self, episode_id: str) -> bool:
        """Delete one episode; a season left without episodes is unregistered."""
        oid = to_object_id(episode_id)
        if oid is None:
            return False
        with self._guard("delete_episode"):
            doc = self.episodes.find_one_and_delete({"_id": oid})
            if not doc:
                return False
            remaining = self.episodes.count_documents(
                {"seriesId": doc["seriesId"], "seasonNumber": doc["seasonNumber"]}
            )
            if remaining == 0:
                self.series.update_one(
                    {"_id": doc["seriesId"]},
                    {"$pull": {"seasons": doc["seasonNumber"]}},
                )
        return True

    def count_episodes(self) -> int:
        with self._guard("count_episodes"):
            return self.episodes.count_documents({})

    def stats(self) -> Dict[str, int]:
        return {
            "movies": self.count_movies(),
            "series": self.count_series(),
            "episodes": self.count_episodes(),
        }
