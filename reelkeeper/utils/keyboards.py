"""Reply and inline keyboards, and the callback payload vocabulary."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
)


MENU_ADD_MOVIE = "🎬 Add Movie"
MENU_ADD_SERIES = "📺 Add Series"
MENU_EDIT_MOVIES = "✍️ Edit/Delete Movies"
MENU_EDIT_SERIES = "🗑️ Edit/Delete Series"
MENU_STATS = "📊 Stats"
MENU_FRONTEND = "🌐 Open Frontend"
MENU_CANCEL = "❌ Cancel"

MENU_LABELS = (
    MENU_ADD_MOVIE,
    MENU_ADD_SERIES,
    MENU_EDIT_MOVIES,
    MENU_EDIT_SERIES,
    MENU_STATS,
    MENU_FRONTEND,
    MENU_CANCEL,
)

# Callback payload prefixes; the remainder after a prefix is opaque.
ADD_TO_SERIES = "add_to_series_"
CREATE_NEW_SERIES = "create_new_series"
EDIT_MOVIE = "edit_movie_"
EDIT_SERIES = "edit_series_"
EDIT_FIELD = "edit_field_"
DELETE_MOVIE = "delete_movie_"
DELETE_SERIES = "delete_series_"
DELETE_EPISODE = "delete_episode_"
SELECT_SEASON = "select_season_"
ADD_EPISODE = "add_episode_"
NEXT_EPISODE = "next_episode"
NEXT_SEASON = "next_season"
FINISH = "finish"

BUTTON_TEXT_MAX = 40


def _label(text: Any) -> str:
    text = str(text or "")
    if len(text) > BUTTON_TEXT_MAX:
        return text[: BUTTON_TEXT_MAX - 1] + "…"
    return text


def main_menu() -> ReplyKeyboardMarkup:
    rows = [
        [MENU_ADD_MOVIE, MENU_ADD_SERIES],
        [MENU_EDIT_MOVIES, MENU_EDIT_SERIES],
        [MENU_STATS, MENU_FRONTEND],
        [MENU_CANCEL],
    ]
    return ReplyKeyboardMarkup(
        [[KeyboardButton(label) for label in row] for row in rows],
        resize_keyboard=True,
    )


def series_picker(series: Iterable[Dict[str, Any]]) -> InlineKeyboardMarkup:
    rows = [
        [InlineKeyboardButton(_label(s["name"]), callback_data=f"{ADD_TO_SERIES}{s['id']}")]
        for s in series
    ]
    rows.append([InlineKeyboardButton("Create New Series", callback_data=CREATE_NEW_SERIES)])
    return InlineKeyboardMarkup(rows)


def manage_list(kind: str, records: Iterable[Dict[str, Any]]) -> InlineKeyboardMarkup:
    """Edit/delete button pair per record; `kind` is ``movie`` or ``series``."""
    edit_prefix = EDIT_MOVIE if kind == "movie" else EDIT_SERIES
    delete_prefix = DELETE_MOVIE if kind == "movie" else DELETE_SERIES
    rows: List[List[InlineKeyboardButton]] = []
    for record in records:
        rows.append(
            [
                InlineKeyboardButton(
                    f"✍️ {_label(record['name'])}",
                    callback_data=f"{edit_prefix}{record['id']}",
                ),
                InlineKeyboardButton(
                    f"🗑️ {_label(record['name'])}",
                    callback_data=f"{delete_prefix}{record['id']}",
                ),
            ]
        )
    return InlineKeyboardMarkup(rows)


def field_picker(
    kind: str,
    record_id: str,
    fields: Iterable[str],
    labels: Dict[str, str],
    seasons: Iterable[int] = (),
) -> InlineKeyboardMarkup:
    rows = [
        [
            InlineKeyboardButton(
                f"✍️ {labels.get(field, field)}",
                callback_data=f"{EDIT_FIELD}{kind}_{field}_{record_id}",
            )
        ]
        for field in fields
    ]
    season_buttons = [
        InlineKeyboardButton(
            f"Season {n}", callback_data=f"{SELECT_SEASON}{record_id}_{n}"
        )
        for n in seasons
    ]
    for i in range(0, len(season_buttons), 3):
        rows.append(season_buttons[i : i + 3])
    if kind == "series":
        rows.append(
            [InlineKeyboardButton("➕ Add season", callback_data=f"{ADD_TO_SERIES}{record_id}")]
        )
    delete_prefix = DELETE_MOVIE if kind == "movie" else DELETE_SERIES
    rows.append(
        [InlineKeyboardButton(f"🗑️ Delete {kind}", callback_data=f"{delete_prefix}{record_id}")]
    )
    return InlineKeyboardMarkup(rows)


def season_episodes(
    series_id: str, season_number: int, episodes: Iterable[Dict[str, Any]]
) -> InlineKeyboardMarkup:
    rows = [
        [
            InlineKeyboardButton(
                f"🗑️ E{ep['episodeNumber']} {_label(ep.get('title'))}",
                callback_data=f"{DELETE_EPISODE}{ep['id']}",
            )
        ]
        for ep in episodes
    ]
    rows.append(
        [
            InlineKeyboardButton(
                "➕ Add episode",
                callback_data=f"{ADD_EPISODE}{series_id}_{season_number}",
            )
        ]
    )
    return InlineKeyboardMarkup(rows)


def next_step() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton("➕ Add another episode", callback_data=NEXT_EPISODE)],
            [InlineKeyboardButton("🔢 Add new season", callback_data=NEXT_SEASON)],
            [InlineKeyboardButton("✅ Finish", callback_data=FINISH)],
        ]
    )
