"""Conversation state machine for multi-step catalog entry.

Each chat has at most one `Session`. Inbound text (or an inline choice) is
looked up in `TRANSITIONS` by ``(state, input kind)`` and handed to the
matching handler, which validates the input, updates the draft, moves the
session to its next state and sends exactly one outbound message.

Terminal handlers commit the draft to the catalog store. A failed commit
sends a failure message and clears the session; validation problems
re-prompt and leave the session where it was.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional, Tuple

from ..db.catalog import MOVIE_FIELDS, SERIES_FIELDS, CatalogError
from ..metrics.registry import COMMIT_FAILURES, RECORDS_CREATED, VALIDATION_REJECTIONS
from ..utils import keyboards
from ..utils.formatter import MessageFormatter
from .sessions import MemorySessionStore, Session
from .states import (
    BRANCH_KEYWORDS,
    KEYWORD_DONE,
    KEYWORD_NEXT_SEASON,
    REQUIRED_FIELDS,
    InputKind,
    State,
)


logger = logging.getLogger("reelkeeper.conversation")

_POSITIVE_INT = re.compile(r"^\d{1,9}$")

# Upper bound for season and episode numbers
MAX_NUMBER = 9999

TRANSITIONS: Dict[Tuple[State, InputKind], str] = {
    (State.MOVIE_NAME, InputKind.TEXT): "_on_movie_name",
    (State.MOVIE_THUMBNAIL, InputKind.TEXT): "_on_movie_thumbnail",
    (State.MOVIE_STREAMING_URL, InputKind.TEXT): "_on_movie_streaming_url",
    (State.SERIES_CHOICE, InputKind.TEXT): "_on_series_choice_text",
    (State.SERIES_NAME, InputKind.TEXT): "_on_series_name",
    (State.SERIES_THUMBNAIL, InputKind.TEXT): "_on_series_thumbnail",
    (State.SEASON_NUMBER, InputKind.TEXT): "_on_season_number",
    (State.EPISODE_NUMBER, InputKind.TEXT): "_on_episode_number",
    (State.EPISODE_TITLE, InputKind.TEXT): "_on_episode_title",
    (State.EPISODE_URL, InputKind.TEXT): "_on_episode_url",
    (State.NEXT_STEP, InputKind.TEXT): "_on_next_step_text",
    (State.NEXT_STEP, InputKind.CHOICE): "_on_next_step",
    (State.NEW_VALUE, InputKind.TEXT): "_on_new_value",
}


class IncompleteDraftError(Exception):
    """A commit was attempted before the draft held every required field."""


def parse_positive_int(text: str) -> Optional[int]:
    text = text.strip()
    if not _POSITIVE_INT.match(text):
        return None
    value = int(text)
    return value if 0 < value <= MAX_NUMBER else None


def require_fields(draft: Dict[str, Any], commit: str) -> None:
    missing = [f for f in REQUIRED_FIELDS[commit] if draft.get(f) in (None, "")]
    if missing:
        raise IncompleteDraftError(f"{commit} draft missing {', '.join(missing)}")


class ConversationMachine:
    """Drives per-chat sessions through catalog entry flows.

    Args:
        store: catalog store (see `reelkeeper.db.catalog.CatalogStore`)
        messenger: object with ``async send_text(chat_id, text, reply_markup=None)``
        sessions: session store; a fresh in-memory one by default
    """

    def __init__(self, store, messenger, sessions: Optional[MemorySessionStore] = None) -> None:
        self._store = store
        self._messenger = messenger
        self._sessions = sessions if sessions is not None else MemorySessionStore()

    # --- Introspection ---

    def session(self, chat_id: int) -> Optional[Session]:
        return self._sessions.get(chat_id)

    def state_of(self, chat_id: int) -> State:
        session = self._sessions.get(chat_id)
        return session.state if session else State.IDLE

    # --- Entry points ---

    async def start_movie(self, chat_id: int) -> None:
        await self._enter(chat_id, Session(State.MOVIE_NAME, {"kind": "movie"}))

    async def start_series(self, chat_id: int) -> None:
        """Offer existing series to extend, or go straight to a new one."""
        try:
            existing = self._store.list_series(limit=50)
        except CatalogError:
            await self._fail(chat_id, "series")
            return
        if not existing:
            await self.create_new_series(chat_id)
            return
        session = Session(State.SERIES_CHOICE, {"kind": "series"})
        self._sessions.set(chat_id, session)
        await self._send(
            chat_id,
            MessageFormatter.prompt(State.SERIES_CHOICE),
            keyboards.series_picker(existing),
        )

    async def create_new_series(self, chat_id: int) -> None:
        await self._enter(chat_id, Session(State.SERIES_NAME, {"kind": "series"}))

    async def choose_existing_series(self, chat_id: int, series_id: str) -> None:
        """Enter the season step with the draft seeded from a stored series."""
        try:
            series = self._store.get_series(series_id)
        except CatalogError:
            await self._fail(chat_id, "series")
            return
        if not series:
            self._sessions.delete(chat_id)
            await self._send(chat_id, MessageFormatter.format_not_found("series"))
            return
        draft = {
            "kind": "series",
            "seriesId": series["id"],
            "name": series["name"],
            "seasons": list(series.get("seasons") or []),
            "added": 0,
        }
        await self._enter(chat_id, Session(State.SEASON_NUMBER, draft))

    async def start_add_episode(self, chat_id: int, series_id: str, season_number: int) -> None:
        try:
            series = self._store.get_series(series_id)
        except CatalogError:
            await self._fail(chat_id, "episode")
            return
        if not series:
            self._sessions.delete(chat_id)
            await self._send(chat_id, MessageFormatter.format_not_found("series"))
            return
        if season_number not in (series.get("seasons") or []):
            # New seasons go through the season prompt and its duplicate check
            self._sessions.delete(chat_id)
            await self._send(chat_id, MessageFormatter.format_not_found("season"))
            return
        draft = {
            "kind": "series",
            "seriesId": series["id"],
            "name": series["name"],
            "seasons": list(series.get("seasons") or []),
            "seasonNumber": season_number,
            "added": 0,
        }
        await self._enter(chat_id, Session(State.EPISODE_NUMBER, draft))

    async def start_edit(self, chat_id: int, kind: str, field: str, record_id: str) -> None:
        fields = MOVIE_FIELDS if kind == "movie" else SERIES_FIELDS
        if kind not in ("movie", "series") or field not in fields:
            await self._send(chat_id, MessageFormatter.format_generic_error())
            return
        try:
            record = (
                self._store.get_movie(record_id)
                if kind == "movie"
                else self._store.get_series(record_id)
            )
        except CatalogError:
            await self._fail(chat_id, kind)
            return
        if not record:
            self._sessions.delete(chat_id)
            await self._send(chat_id, MessageFormatter.format_not_found(kind))
            return
        draft = {"kind": kind, "id": record["id"], "field": field, "name": record["name"]}
        await self._enter(chat_id, Session(State.NEW_VALUE, draft))

    def discard(self, chat_id: int) -> None:
        """Drop any session without messaging the chat."""
        self._sessions.delete(chat_id)

    async def cancel(self, chat_id: int) -> bool:
        had_session = self._sessions.get(chat_id) is not None
        self._sessions.delete(chat_id)
        await self._send(
            chat_id, MessageFormatter.format_cancelled(had_session), keyboards.main_menu()
        )
        return had_session

    # --- Input dispatch ---

    async def handle_text(self, chat_id: int, user_id: int, text: str) -> bool:
        """Feed free text to the active session. Returns False when there is none."""
        return await self._dispatch(chat_id, user_id, InputKind.TEXT, (text or "").strip())

    async def handle_choice(self, chat_id: int, user_id: int, choice: str) -> bool:
        """Feed an inline-button choice. Returns False when no state accepts it."""
        return await self._dispatch(chat_id, user_id, InputKind.CHOICE, choice)

    async def _dispatch(self, chat_id: int, user_id: int, kind: InputKind, value: str) -> bool:
        session = self._sessions.get(chat_id)
        if session is None:
            return False
        handler_name = TRANSITIONS.get((session.state, kind))
        if handler_name is None:
            return False
        if kind == InputKind.TEXT and not value:
            await self._reject(
                chat_id, session, MessageFormatter.format_empty_input(session.state, session.draft)
            )
            return True
        handler = getattr(self, handler_name)
        try:
            await handler(chat_id, user_id, session, value)
        except (CatalogError, IncompleteDraftError) as e:
            logger.exception(
                "commit failed",
                extra={"chat_id": chat_id, "state": session.state.value, "error": str(e)},
            )
            await self._fail(chat_id, session.draft.get("kind", "entry"))
        return True

    # --- Movie flow ---

    async def _on_movie_name(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        session.draft["name"] = text
        await self._advance(chat_id, session, State.MOVIE_THUMBNAIL)

    async def _on_movie_thumbnail(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        session.draft["thumbnail"] = text
        await self._advance(chat_id, session, State.MOVIE_STREAMING_URL)

    async def _on_movie_streaming_url(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        draft = session.draft
        draft["streamingUrl"] = text
        require_fields(draft, "movie")
        movie_id = self._store.create_movie(
            name=draft["name"],
            thumbnail=draft["thumbnail"],
            streaming_url=draft["streamingUrl"],
            added_by=user_id,
        )
        RECORDS_CREATED.labels(kind="movie").inc()
        logger.info("movie created", extra={"movie_id": movie_id, "added_by": user_id})
        self._sessions.delete(chat_id)
        await self._send(
            chat_id, MessageFormatter.format_movie_added(draft["name"]), keyboards.main_menu()
        )

    # --- Series flow ---

    async def _on_series_choice_text(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        VALIDATION_REJECTIONS.labels(state=session.state.value).inc()
        try:
            existing = self._store.list_series(limit=50)
        except CatalogError:
            await self._fail(chat_id, "series")
            return
        await self._send(
            chat_id,
            MessageFormatter.format_use_buttons(session.state, session.draft),
            keyboards.series_picker(existing),
        )

    async def _on_series_name(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        session.draft["name"] = text
        await self._advance(chat_id, session, State.SERIES_THUMBNAIL)

    async def _on_series_thumbnail(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        draft = session.draft
        draft["thumbnail"] = text
        require_fields(draft, "series")
        series_id = self._store.create_series(
            name=draft["name"], thumbnail=draft["thumbnail"], added_by=user_id
        )
        RECORDS_CREATED.labels(kind="series").inc()
        logger.info("series created", extra={"series_id": series_id, "added_by": user_id})
        draft.update({"seriesId": series_id, "seasons": [], "added": 0})
        session.state = State.SEASON_NUMBER
        self._sessions.set(chat_id, session)
        await self._send(chat_id, MessageFormatter.format_series_created(draft["name"]))

    async def _on_season_number(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        draft = session.draft
        if text.lower() == KEYWORD_DONE:
            await self._finish_series(chat_id, session)
            return
        number = parse_positive_int(text)
        if number is None:
            await self._reject(
                chat_id, session, MessageFormatter.format_invalid_number("season", session.state, draft)
            )
            return
        known = set(draft.get("seasons") or []) | set(self._store.season_numbers(draft["seriesId"]))
        draft["seasons"] = sorted(known)
        if number in known:
            await self._reject(chat_id, session, MessageFormatter.format_duplicate_season(number, draft))
            return
        draft["seasonNumber"] = number
        await self._advance(chat_id, session, State.EPISODE_NUMBER)

    async def _on_episode_number(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        draft = session.draft
        keyword = text.lower()
        if keyword == KEYWORD_DONE:
            await self._finish_series(chat_id, session)
            return
        if keyword == KEYWORD_NEXT_SEASON:
            await self._advance(chat_id, session, State.SEASON_NUMBER)
            return
        number = parse_positive_int(text)
        if number is None:
            await self._reject(
                chat_id, session, MessageFormatter.format_invalid_number("episode", session.state, draft)
            )
            return
        if self._store.episode_exists(draft["seriesId"], draft["seasonNumber"], number):
            await self._reject(chat_id, session, MessageFormatter.format_duplicate_episode(number, draft))
            return
        draft["episodeNumber"] = number
        await self._advance(chat_id, session, State.EPISODE_TITLE)

    async def _on_episode_title(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        session.draft["title"] = text
        await self._advance(chat_id, session, State.EPISODE_URL)

    async def _on_episode_url(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        draft = session.draft
        draft["streamingUrl"] = text
        require_fields(draft, "episode")
        episode_id = self._store.add_episode(
            series_id=draft["seriesId"],
            season_number=draft["seasonNumber"],
            episode_number=draft["episodeNumber"],
            title=draft["title"],
            streaming_url=draft["streamingUrl"],
            added_by=user_id,
        )
        RECORDS_CREATED.labels(kind="episode").inc()
        logger.info(
            "episode created",
            extra={
                "episode_id": episode_id,
                "series_id": draft["seriesId"],
                "season": draft["seasonNumber"],
                "episode": draft["episodeNumber"],
            },
        )
        episode_number = draft.pop("episodeNumber")
        title = draft.pop("title")
        draft.pop("streamingUrl", None)
        if draft["seasonNumber"] not in draft.setdefault("seasons", []):
            draft["seasons"].append(draft["seasonNumber"])
            draft["seasons"].sort()
        draft["added"] = draft.get("added", 0) + 1
        session.state = State.NEXT_STEP
        self._sessions.set(chat_id, session)
        await self._send(
            chat_id,
            MessageFormatter.format_episode_added(draft, episode_number, title),
            keyboards.next_step(),
        )

    async def _on_next_step(self, chat_id: int, user_id: int, session: Session, choice: str) -> None:
        if choice == keyboards.NEXT_EPISODE:
            await self._advance(chat_id, session, State.EPISODE_NUMBER)
        elif choice == keyboards.NEXT_SEASON:
            await self._advance(chat_id, session, State.SEASON_NUMBER)
        elif choice == keyboards.FINISH:
            await self._finish_series(chat_id, session)
        else:
            await self._reject(
                chat_id,
                session,
                MessageFormatter.format_use_buttons(session.state, session.draft),
                keyboards.next_step(),
            )

    async def _on_next_step_text(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        choice = BRANCH_KEYWORDS.get(text.lower(), "")
        await self._on_next_step(chat_id, user_id, session, choice)

    async def _finish_series(self, chat_id: int, session: Session) -> None:
        draft = session.draft
        self._sessions.delete(chat_id)
        await self._send(
            chat_id,
            MessageFormatter.format_series_finished(draft.get("name", ""), draft.get("added", 0)),
            keyboards.main_menu(),
        )

    # --- Edit flow ---

    async def _on_new_value(self, chat_id: int, user_id: int, session: Session, text: str) -> None:
        draft = session.draft
        require_fields(draft, "update")
        if draft["kind"] == "movie":
            found = self._store.update_movie(draft["id"], draft["field"], text)
        else:
            found = self._store.update_series(draft["id"], draft["field"], text)
        self._sessions.delete(chat_id)
        if not found:
            await self._send(chat_id, MessageFormatter.format_not_found(draft["kind"]), keyboards.main_menu())
            return
        logger.info(
            "record updated",
            extra={"kind": draft["kind"], "id": draft["id"], "field": draft["field"]},
        )
        name = text if draft["field"] == "name" else draft.get("name", "")
        await self._send(
            chat_id, MessageFormatter.format_updated(draft["field"], name), keyboards.main_menu()
        )

    # --- Helpers ---

    async def _enter(self, chat_id: int, session: Session) -> None:
        self._sessions.set(chat_id, session)
        await self._send(chat_id, MessageFormatter.prompt(session.state, session.draft))

    async def _advance(self, chat_id: int, session: Session, state: State) -> None:
        session.state = state
        self._sessions.set(chat_id, session)
        await self._send(chat_id, MessageFormatter.prompt(state, session.draft))

    async def _reject(self, chat_id: int, session: Session, text: str, reply_markup=None) -> None:
        VALIDATION_REJECTIONS.labels(state=session.state.value).inc()
        await self._send(chat_id, text, reply_markup)

    async def _fail(self, chat_id: int, kind: str) -> None:
        COMMIT_FAILURES.labels(kind=kind).inc()
        self._sessions.delete(chat_id)
        await self._send(chat_id, MessageFormatter.format_commit_failed(kind), keyboards.main_menu())

    async def _send(self, chat_id: int, text: str, reply_markup=None) -> None:
        await self._messenger.send_text(chat_id, text, reply_markup=reply_markup)
