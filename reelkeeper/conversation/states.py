"""Closed set of conversation states and input kinds."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class State(str, Enum):
    IDLE = "idle"
    MOVIE_NAME = "await-movie-name"
    MOVIE_THUMBNAIL = "await-movie-thumbnail"
    MOVIE_STREAMING_URL = "await-movie-streaming-url"
    SERIES_CHOICE = "await-series-choice"
    SERIES_NAME = "await-series-name"
    SERIES_THUMBNAIL = "await-series-thumbnail"
    SEASON_NUMBER = "await-season-number"
    EPISODE_NUMBER = "await-episode-number"
    EPISODE_TITLE = "await-episode-title"
    EPISODE_URL = "await-episode-url"
    NEXT_STEP = "await-next-step"
    NEW_VALUE = "await-new-value"


class InputKind(str, Enum):
    TEXT = "text"
    # Inline button pressed while a flow waits for a choice
    CHOICE = "choice"


# Fields each terminal commit needs in the draft before it may fire.
REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "movie": ("name", "thumbnail", "streamingUrl"),
    "series": ("name", "thumbnail"),
    "episode": (
        "seriesId",
        "seasonNumber",
        "episodeNumber",
        "title",
        "streamingUrl",
    ),
    "update": ("kind", "id", "field"),
}

# Keywords accepted as text in number states and the branch step.
KEYWORD_DONE = "done"
KEYWORD_NEXT_SEASON = "next"

BRANCH_KEYWORDS = {
    "episode": "next_episode",
    "season": "next_season",
    "next": "next_season",
    "done": "finish",
    "finish": "finish",
}
