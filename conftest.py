"""Shared test doubles: an in-memory catalog store and a recording messenger."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from reelkeeper.bot.router import CommandRouter
from reelkeeper.conversation.machine import ConversationMachine
from reelkeeper.conversation.sessions import MemorySessionStore
from reelkeeper.db.catalog import (
    MOVIE_FIELDS,
    SERIES_FIELDS,
    CatalogError,
    DuplicateEntryError,
)


class FakeCatalogStore:
    """Dict-backed stand-in for `CatalogStore` with the same public API."""

    def __init__(self) -> None:
        self.movies: Dict[str, Dict[str, Any]] = {}
        self.series: Dict[str, Dict[str, Any]] = {}
        self.episodes: Dict[str, Dict[str, Any]] = {}
        self.fail_writes = False
        self.fail_reads = False
        self.writes = 0
        self._seq = itertools.count(1)
        self._epoch = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _next(self, prefix: str) -> tuple:
        n = next(self._seq)
        return f"{prefix}{n:04d}", (self._epoch + timedelta(seconds=n)).isoformat()

    def _read(self) -> None:
        if self.fail_reads:
            raise CatalogError("store unreachable")

    def _write(self) -> None:
        if self.fail_writes:
            raise CatalogError("write rejected")
        self.writes += 1

    @staticmethod
    def _match(doc: Dict[str, Any], search: Optional[str]) -> bool:
        search = (search or "").strip().lower()
        return not search or search in doc["name"].lower()

    def _page(self, docs, search, skip, limit):
        rows = [dict(d) for d in docs if self._match(d, search)]
        rows.sort(key=lambda d: (d["addedAt"], d["id"]), reverse=True)
        return rows[skip : skip + limit]

    def ping(self) -> None:
        self._read()

    def create_movie(self, name, thumbnail, streaming_url, added_by, description=None, type_=None) -> str:
        self._write()
        movie_id, added_at = self._next("m")
        self.movies[movie_id] = {
            "id": movie_id,
            "name": name,
            "thumbnail": thumbnail,
            "streamingUrl": streaming_url,
            "description": description,
            "type": type_,
            "addedBy": added_by,
            "addedAt": added_at,
        }
        return movie_id

    def get_movie(self, movie_id):
        self._read()
        doc = self.movies.get(movie_id)
        return dict(doc) if doc else None

    def list_movies(self, search=None, skip=0, limit=20):
        self._read()
        return self._page(self.movies.values(), search, skip, limit)

    def count_movies(self, search=None) -> int:
        self._read()
        return sum(1 for d in self.movies.values() if self._match(d, search))

    def update_movie(self, movie_id, field, value) -> bool:
        if field not in MOVIE_FIELDS:
            raise ValueError(field)
        self._write()
        if movie_id not in self.movies:
            return False
        self.movies[movie_id][field] = value
        return True

    def delete_movie(self, movie_id) -> bool:
        self._write()
        return self.movies.pop(movie_id, None) is not None

    def create_series(self, name, thumbnail, added_by, description=None, type_=None) -> str:
        self._write()
        series_id, added_at = self._next("s")
        self.series[series_id] = {
            "id": series_id,
            "name": name,
            "thumbnail": thumbnail,
            "description": description,
            "type": type_,
            "seasons": [],
            "addedBy": added_by,
            "addedAt": added_at,
        }
        return series_id

    def get_series(self, series_id):
        self._read()
        doc = self.series.get(series_id)
        if not doc:
            return None
        return dict(doc, seasons=list(doc["seasons"]))

    def list_series(self, search=None, skip=0, limit=20):
        self._read()
        return self._page(self.series.values(), search, skip, limit)

    def count_series(self, search=None) -> int:
        self._read()
        return sum(1 for d in self.series.values() if self._match(d, search))

    def update_series(self, series_id, field, value) -> bool:
        if field not in SERIES_FIELDS:
            raise ValueError(field)
        self._write()
        if series_id not in self.series:
            return False
        self.series[series_id][field] = value
        return True

    def delete_series(self, series_id) -> bool:
        self._write()
        if self.series.pop(series_id, None) is None:
            return False
        for ep_id in [k for k, ep in self.episodes.items() if ep["seriesId"] == series_id]:
            del self.episodes[ep_id]
        return True

    def season_numbers(self, series_id) -> List[int]:
        self._read()
        doc = self.series.get(series_id)
        return sorted(doc["seasons"]) if doc else []

    def episode_exists(self, series_id, season_number, episode_number) -> bool:
        self._read()
        return any(
            ep["seriesId"] == series_id
            and ep["seasonNumber"] == season_number
            and ep["episodeNumber"] == episode_number
            for ep in self.episodes.values()
        )

    def add_episode(self, series_id, season_number, episode_number, title, streaming_url, added_by, thumbnail=None) -> str:
        self._write()
        if series_id not in self.series:
            raise CatalogError("series not found")
        if self.episode_exists(series_id, season_number, episode_number):
            raise DuplicateEntryError("duplicate episode")
        episode_id, added_at = self._next("e")
        self.episodes[episode_id] = {
            "id": episode_id,
            "seriesId": series_id,
            "seasonNumber": season_number,
            "episodeNumber": episode_number,
            "title": title,
            "streamingUrl": streaming_url,
            "thumbnail": thumbnail,
            "addedBy": added_by,
            "addedAt": added_at,
        }
        seasons = self.series[series_id]["seasons"]
        if season_number not in seasons:
            seasons.append(season_number)
        return episode_id

    def list_episodes(self, series_id, season_number=None):
        self._read()
        rows = [
            dict(ep)
            for ep in self.episodes.values()
            if ep["seriesId"] == series_id
            and (season_number is None or ep["seasonNumber"] == season_number)
        ]
        return sorted(rows, key=lambda ep: (ep["seasonNumber"], ep["episodeNumber"]))

    def get_episode(self, episode_id):
        self._read()
        doc = self.episodes.get(episode_id)
        return dict(doc) if doc else None

    def delete_episode(self, episode_id) -> bool:
        self._write()
        doc = self.episodes.pop(episode_id, None)
        if not doc:
            return False
        still_used = any(
            ep["seriesId"] == doc["seriesId"] and ep["seasonNumber"] == doc["seasonNumber"]
            for ep in self.episodes.values()
        )
        if not still_used and doc["seriesId"] in self.series:
            self.series[doc["seriesId"]]["seasons"].remove(doc["seasonNumber"])
        return True

    def count_episodes(self) -> int:
        self._read()
        return len(self.episodes)

    def stats(self) -> Dict[str, int]:
        return {
            "movies": self.count_movies(),
            "series": self.count_series(),
            "episodes": self.count_episodes(),
        }

    def snapshot(self) -> tuple:
        return (
            {k: dict(v) for k, v in self.movies.items()},
            {k: dict(v, seasons=list(v["seasons"])) for k, v in self.series.items()},
            {k: dict(v) for k, v in self.episodes.items()},
        )


class FakeMessenger:
    """Records outbound messages and callback answers."""

    def __init__(self) -> None:
        self.sent: List[tuple] = []
        self.answers: List[tuple] = []

    async def send_text(self, chat_id, text, reply_markup=None) -> bool:
        self.sent.append((chat_id, text, reply_markup))
        return True

    async def answer_callback(self, callback_id, text=None) -> bool:
        self.answers.append((callback_id, text))
        return True

    @property
    def last_text(self) -> str:
        return self.sent[-1][1]

    @property
    def last_markup(self):
        return self.sent[-1][2]


@pytest.fixture
def store() -> FakeCatalogStore:
    return FakeCatalogStore()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def machine(store, messenger) -> ConversationMachine:
    return ConversationMachine(store, messenger, MemorySessionStore())


@pytest.fixture
def router(store, messenger, machine) -> CommandRouter:
    return CommandRouter(store, messenger, machine, frontend_url="https://media.example")
