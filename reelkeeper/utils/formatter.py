"""Chat message formatter for the reelkeeper bot.

Provides the prompts, confirmations and listings sent to operators, using
emoji-rich Markdown for readability in the Telegram UI. User-supplied text
is escaped before being embedded.
"""

from typing import Any, Dict, List, Optional

from telegram.helpers import escape_markdown

from ..conversation.states import State


def _esc(value: Any) -> str:
    return escape_markdown(str(value if value is not None else ""), version=1)


class MessageFormatter:
    """Formats prompts and catalog data into Telegram messages."""

    EMOJIS = {
        "success": "✅",
        "info": "ℹ️",
        "warning": "⚠️",
        "error": "❌",
        "movie": "🎬",
        "series": "📺",
        "season": "🔢",
        "photo": "📸",
        "link": "🔗",
        "edit": "✍️",
        "delete": "🗑️",
        "stats": "📊",
        "web": "🌐",
        "bot": "🤖",
    }

    FIELD_LABELS = {
        "name": "name",
        "thumbnail": "thumbnail URL",
        "streamingUrl": "streaming URL",
        "description": "description",
        "type": "type",
    }

    @classmethod
    def prompt(cls, state: State, draft: Optional[Dict[str, Any]] = None) -> str:
        """Prompt asking for the input `state` waits for."""
        draft = draft or {}
        e = cls.EMOJIS
        if state == State.MOVIE_NAME:
            return f"{e['movie']} Enter the movie name:"
        if state == State.MOVIE_THUMBNAIL:
            return f"{e['photo']} Enter the movie thumbnail URL:"
        if state == State.MOVIE_STREAMING_URL:
            return f"{e['link']} Enter the streaming URL:"
        if state == State.SERIES_CHOICE:
            return "Choose a series to add to, or create a new one:"
        if state == State.SERIES_NAME:
            return f"{e['series']} Enter the series name:"
        if state == State.SERIES_THUMBNAIL:
            return f"{e['photo']} Enter the series thumbnail URL:"
        if state == State.SEASON_NUMBER:
            seasons = draft.get("seasons") or []
            existing = ""
            if seasons:
                existing = f"\n{e['info']} Existing seasons: {', '.join(str(s) for s in sorted(seasons))}"
            return f"{e['season']} Enter the new season number (or \"done\" to finish):{existing}"
        if state == State.EPISODE_NUMBER:
            return (
                f"{e['series']} Season {draft.get('seasonNumber')} - Enter episode number "
                f"(or \"next\" for a new season, \"done\" to finish):"
            )
        if state == State.EPISODE_TITLE:
            return (
                f"{e['series']} S{draft.get('seasonNumber')}E{draft.get('episodeNumber')}"
                f" - Enter episode title:"
            )
        if state == State.EPISODE_URL:
            return f"{e['link']} Enter episode streaming URL:"
        if state == State.NEXT_STEP:
            return "What next?"
        if state == State.NEW_VALUE:
            label = cls.FIELD_LABELS.get(draft.get("field", ""), draft.get("field", "value"))
            return f"{e['edit']} Enter the new {label} for *{_esc(draft.get('name'))}*:"
        return cls.format_help()

    @classmethod
    def format_start(cls) -> str:
        return (
            f"Welcome to Movie & Series Manager Bot! 🎭\n\n"
            f"Choose an option:"
        )

    @classmethod
    def format_help(cls) -> str:
        e = cls.EMOJIS
        return (
            f"{e['bot']} *Reelkeeper*\n\n"
            f"{e['info']} Use the menu buttons to manage the catalog:\n"
            f"• {e['movie']} Add Movie - add a movie step by step\n"
            f"• {e['series']} Add Series - create a series or add seasons\n"
            f"• {e['edit']} Edit/Delete Movies or Series\n"
            f"• {e['stats']} Stats - catalog counts\n\n"
            f"Commands: /start, /help, /stats, /cancel"
        )

    @classmethod
    def format_invalid_number(cls, what: str, state: State, draft: Dict[str, Any]) -> str:
        return f"{cls.EMOJIS['warning']} Please enter a valid {what} number!\n\n{cls.prompt(state, draft)}"

    @classmethod
    def format_duplicate_season(cls, season_number: int, draft: Dict[str, Any]) -> str:
        return (
            f"{cls.EMOJIS['warning']} Season {season_number} already exists in this series!\n\n"
            f"{cls.prompt(State.SEASON_NUMBER, draft)}"
        )

    @classmethod
    def format_duplicate_episode(cls, episode_number: int, draft: Dict[str, Any]) -> str:
        return (
            f"{cls.EMOJIS['warning']} Episode {episode_number} already exists in season "
            f"{draft.get('seasonNumber')}!\n\n{cls.prompt(State.EPISODE_NUMBER, draft)}"
        )

    @classmethod
    def format_empty_input(cls, state: State, draft: Dict[str, Any]) -> str:
        return f"{cls.EMOJIS['warning']} Please send a non-empty value.\n\n{cls.prompt(state, draft)}"

    @classmethod
    def format_use_buttons(cls, state: State, draft: Dict[str, Any]) -> str:
        return f"{cls.EMOJIS['info']} Please use the buttons below.\n\n{cls.prompt(state, draft)}"

    @classmethod
    def format_movie_added(cls, name: str) -> str:
        return f"{cls.EMOJIS['success']} Movie \"{_esc(name)}\" added successfully!"

    @classmethod
    def format_series_created(cls, name: str) -> str:
        return (
            f"{cls.EMOJIS['success']} Series \"{_esc(name)}\" created!\n\n"
            f"{cls.prompt(State.SEASON_NUMBER)}"
        )

    @classmethod
    def format_episode_added(cls, draft: Dict[str, Any], episode_number: int, title: str) -> str:
        return (
            f"{cls.EMOJIS['success']} Episode added! S{draft.get('seasonNumber')}E{episode_number}: "
            f"{_esc(title)}\n\nWhat next?"
        )

    @classmethod
    def format_series_finished(cls, name: str, episodes_added: int) -> str:
        return (
            f"{cls.EMOJIS['success']} Series \"{_esc(name)}\" saved with "
            f"{episodes_added} new episode(s)."
        )

    @classmethod
    def format_updated(cls, field: str, name: str) -> str:
        label = cls.FIELD_LABELS.get(field, field)
        return f"{cls.EMOJIS['success']} Updated {label} of \"{_esc(name)}\"."

    @classmethod
    def format_commit_failed(cls, kind: str) -> str:
        return (
            f"{cls.EMOJIS['error']} Error saving {kind}. Please start again from the menu."
        )

    @classmethod
    def format_not_found(cls, kind: str) -> str:
        return f"{cls.EMOJIS['warning']} {kind.capitalize()} not found. It may have been deleted."

    @classmethod
    def format_cancelled(cls, had_session: bool) -> str:
        if had_session:
            return f"{cls.EMOJIS['info']} Cancelled. Nothing more will be saved."
        return f"{cls.EMOJIS['info']} Nothing to cancel."

    @classmethod
    def format_generic_error(cls) -> str:
        return f"{cls.EMOJIS['error']} An error occurred. Please try again."

    @classmethod
    def format_deleted(cls, kind: str, ok: bool) -> str:
        if ok:
            return f"{cls.EMOJIS['success']} {kind.capitalize()} deleted successfully!"
        return f"{cls.EMOJIS['error']} Error deleting {kind}."

    @classmethod
    def format_movie_list(cls, movies: List[Dict[str, Any]]) -> str:
        if not movies:
            return f"No movies to edit or delete! {cls.EMOJIS['movie']}"
        return f"{cls.EMOJIS['movie']} *Select a movie to edit or delete:*"

    @classmethod
    def format_series_list(cls, series: List[Dict[str, Any]]) -> str:
        if not series:
            return f"No series to edit or delete! {cls.EMOJIS['series']}"
        return f"{cls.EMOJIS['series']} *Select a series to edit or delete:*"

    @classmethod
    def format_movie_details(cls, movie: Dict[str, Any]) -> str:
        lines = [
            f"{cls.EMOJIS['movie']} *{_esc(movie.get('name'))}*",
            "",
            f"{cls.EMOJIS['photo']} {_esc(movie.get('thumbnail'))}",
            f"{cls.EMOJIS['link']} {_esc(movie.get('streamingUrl'))}",
        ]
        if movie.get("description"):
            lines.append(f"{cls.EMOJIS['info']} {_esc(movie['description'])}")
        lines.append("")
        lines.append("Choose a field to edit:")
        return "\n".join(lines)

    @classmethod
    def format_series_details(cls, series: Dict[str, Any]) -> str:
        seasons = series.get("seasons") or []
        lines = [
            f"{cls.EMOJIS['series']} *{_esc(series.get('name'))}*",
            "",
            f"{cls.EMOJIS['photo']} {_esc(series.get('thumbnail'))}",
            f"{cls.EMOJIS['season']} Seasons: {', '.join(str(s) for s in seasons) if seasons else 'none'}",
        ]
        if series.get("description"):
            lines.append(f"{cls.EMOJIS['info']} {_esc(series['description'])}")
        lines.append("")
        lines.append("Choose a field to edit or a season to manage:")
        return "\n".join(lines)

    @classmethod
    def format_season_episodes(
        cls, series: Dict[str, Any], season_number: int, episodes: List[Dict[str, Any]]
    ) -> str:
        lines = [f"{cls.EMOJIS['series']} *{_esc(series.get('name'))}* - Season {season_number}", ""]
        if not episodes:
            lines.append("No episodes yet.")
        for ep in episodes:
            lines.append(f"E{ep.get('episodeNumber')}: {_esc(ep.get('title'))}")
        return "\n".join(lines)

    @classmethod
    def format_stats(cls, stats: Dict[str, int]) -> str:
        e = cls.EMOJIS
        return (
            f"{e['stats']} *Catalog Stats*\n\n"
            f"{e['movie']} Movies: {stats.get('movies', 0)}\n"
            f"{e['series']} Series: {stats.get('series', 0)}\n"
            f"{e['link']} Episodes: {stats.get('episodes', 0)}"
        )

    @classmethod
    def format_frontend(cls, url: Optional[str]) -> str:
        if not url:
            return f"{cls.EMOJIS['warning']} No public URL configured (set PUBLIC_BASE_URL)."
        return (
            f"{cls.EMOJIS['web']} Frontend URL: {_esc(url)}\n\n"
            f"Open this link to access the media player interface!"
        )
