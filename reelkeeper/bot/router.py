"""Command router: classifies inbound updates and dispatches them.

An inbound update is one of: slash command, menu label, inline-button
callback payload, or free text. Commands, menu labels and most callbacks
map to a direct action or a conversation entry point; free text goes to
the active conversation session, if any.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..conversation.machine import ConversationMachine, parse_positive_int
from ..db.catalog import MOVIE_FIELDS, SERIES_FIELDS, CatalogError
from ..metrics.registry import RECORDS_DELETED, UPDATES_HANDLED
from ..utils import keyboards
from ..utils.formatter import MessageFormatter


logger = logging.getLogger("reelkeeper.router")

LIST_LIMIT = 20


@dataclass
class Inbound:
    """Transport-neutral view of one chat update."""

    chat_id: int
    user_id: int
    text: Optional[str] = None
    callback_id: Optional[str] = None
    callback_data: Optional[str] = None

    @property
    def is_callback(self) -> bool:
        return self.callback_id is not None


@dataclass(frozen=True)
class CallbackAction:
    action: str
    args: Tuple[str, ...] = field(default_factory=tuple)


# (prefix, action, arity); arity 0 means the payload must equal the prefix.
_CALLBACKS = (
    (keyboards.CREATE_NEW_SERIES, "create_new_series", 0),
    (keyboards.NEXT_EPISODE, "choice", 0),
    (keyboards.NEXT_SEASON, "choice", 0),
    (keyboards.FINISH, "choice", 0),
    (keyboards.ADD_TO_SERIES, "add_to_series", 1),
    (keyboards.EDIT_MOVIE, "edit_movie", 1),
    (keyboards.EDIT_SERIES, "edit_series", 1),
    (keyboards.EDIT_FIELD, "edit_field", 3),
    (keyboards.DELETE_MOVIE, "delete_movie", 1),
    (keyboards.DELETE_SERIES, "delete_series", 1),
    (keyboards.DELETE_EPISODE, "delete_episode", 1),
    (keyboards.SELECT_SEASON, "select_season", 2),
    (keyboards.ADD_EPISODE, "add_episode", 2),
)
_CALLBACKS_BY_LENGTH = sorted(_CALLBACKS, key=lambda c: len(c[0]), reverse=True)


def parse_callback(data: Optional[str]) -> Optional[CallbackAction]:
    """Parse an inline-button payload into an action and its identifiers.

    Returns None for malformed or unknown payloads. Two-part payloads
    (``<seriesId>_<seasonNumber>``) split on the last separator so ids
    that contain ``_`` survive intact.
    """
    if not data:
        return None
    for prefix, action, arity in _CALLBACKS_BY_LENGTH:
        if arity == 0:
            if data == prefix:
                return CallbackAction(action, (data,) if action == "choice" else ())
            continue
        if not data.startswith(prefix):
            continue
        rest = data[len(prefix):]
        if not rest:
            return None
        if arity == 1:
            return CallbackAction(action, (rest,))
        if arity == 2:
            record_id, sep, number = rest.rpartition("_")
            if not sep or not record_id or parse_positive_int(number) is None:
                return None
            return CallbackAction(action, (record_id, number))
        # edit_field_<kind>_<field>_<id>
        parts = rest.split("_", 2)
        if len(parts) != 3 or not parts[2]:
            return None
        kind, field_name, record_id = parts
        allowed = MOVIE_FIELDS if kind == "movie" else SERIES_FIELDS if kind == "series" else ()
        if field_name not in allowed:
            return None
        return CallbackAction(action, (kind, field_name, record_id))
    return None


class CommandRouter:
    def __init__(
        self,
        store,
        messenger,
        machine: ConversationMachine,
        frontend_url: Optional[str] = None,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._machine = machine
        self._frontend_url = frontend_url

    async def route(self, inbound: Inbound) -> None:
        if inbound.is_callback:
            UPDATES_HANDLED.labels(kind="callback").inc()
            await self._route_callback(inbound)
            return
        text = (inbound.text or "").strip()
        if text.startswith("/"):
            UPDATES_HANDLED.labels(kind="command").inc()
            await self._route_command(inbound, text)
        elif text in keyboards.MENU_LABELS:
            UPDATES_HANDLED.labels(kind="menu").inc()
            await self._route_menu(inbound, text)
        else:
            UPDATES_HANDLED.labels(kind="text").inc()
            handled = await self._machine.handle_text(inbound.chat_id, inbound.user_id, text)
            if not handled:
                await self._send(inbound.chat_id, MessageFormatter.format_help(), keyboards.main_menu())

    # --- Commands & menu ---

    async def _route_command(self, inbound: Inbound, text: str) -> None:
        # "/start@botname args" -> "start"
        command = text[1:].split()[0].split("@")[0].lower() if len(text) > 1 else ""
        chat_id = inbound.chat_id
        if command == "start":
            self._machine.discard(chat_id)
            await self._send(chat_id, MessageFormatter.format_start(), keyboards.main_menu())
        elif command == "cancel":
            await self._machine.cancel(chat_id)
        elif command == "stats":
            await self._show_stats(chat_id)
        else:
            await self._send(chat_id, MessageFormatter.format_help(), keyboards.main_menu())

    async def _route_menu(self, inbound: Inbound, label: str) -> None:
        chat_id = inbound.chat_id
        if label == keyboards.MENU_CANCEL:
            await self._machine.cancel(chat_id)
            return
        # A menu action replaces whatever flow was in progress.
        self._machine.discard(chat_id)
        if label == keyboards.MENU_ADD_MOVIE:
            await self._machine.start_movie(chat_id)
        elif label == keyboards.MENU_ADD_SERIES:
            await self._machine.start_series(chat_id)
        elif label == keyboards.MENU_EDIT_MOVIES:
            await self._show_list(chat_id, "movie")
        elif label == keyboards.MENU_EDIT_SERIES:
            await self._show_list(chat_id, "series")
        elif label == keyboards.MENU_STATS:
            await self._show_stats(chat_id)
        elif label == keyboards.MENU_FRONTEND:
            await self._send(chat_id, MessageFormatter.format_frontend(self._frontend_url))

    async def _show_stats(self, chat_id: int) -> None:
        try:
            stats = self._store.stats()
        except CatalogError:
            await self._send(chat_id, MessageFormatter.format_generic_error())
            return
        await self._send(chat_id, MessageFormatter.format_stats(stats))

    async def _show_list(self, chat_id: int, kind: str) -> None:
        try:
            if kind == "movie":
                records = self._store.list_movies(limit=LIST_LIMIT)
            else:
                records = self._store.list_series(limit=LIST_LIMIT)
        except CatalogError:
            await self._send(chat_id, MessageFormatter.format_generic_error())
            return
        if kind == "movie":
            text = MessageFormatter.format_movie_list(records)
        else:
            text = MessageFormatter.format_series_list(records)
        markup = keyboards.manage_list(kind, records) if records else None
        await self._send(chat_id, text, markup)

    # --- Callbacks ---

    async def _route_callback(self, inbound: Inbound) -> None:
        parsed = parse_callback(inbound.callback_data)
        ack: Optional[str] = None
        if parsed is None:
            logger.info("unroutable callback", extra={"data": inbound.callback_data})
            ack = "Unknown action"
        else:
            ack = await self._run_callback(inbound, parsed)
        await self._messenger.answer_callback(inbound.callback_id, text=ack)

    async def _run_callback(self, inbound: Inbound, parsed: CallbackAction) -> Optional[str]:
        """Perform a callback action; returns an optional acknowledgement text."""
        chat_id = inbound.chat_id
        action, args = parsed.action, parsed.args
        if action == "choice":
            handled = await self._machine.handle_choice(chat_id, inbound.user_id, args[0])
            return None if handled else "This button has expired"
        if action == "create_new_series":
            await self._machine.create_new_series(chat_id)
        elif action == "add_to_series":
            await self._machine.choose_existing_series(chat_id, args[0])
        elif action == "add_episode":
            await self._machine.start_add_episode(chat_id, args[0], int(args[1]))
        elif action == "edit_field":
            await self._machine.start_edit(chat_id, args[0], args[1], args[2])
        elif action == "edit_movie":
            await self._show_movie(chat_id, args[0])
        elif action == "edit_series":
            await self._show_series(chat_id, args[0])
        elif action == "select_season":
            await self._show_season(chat_id, args[0], int(args[1]))
        elif action.startswith("delete_"):
            await self._delete(chat_id, action[len("delete_"):], args[0])
        return None

    async def _show_movie(self, chat_id: int, movie_id: str) -> None:
        try:
            movie = self._store.get_movie(movie_id)
        except CatalogError:
            await self._send(chat_id, MessageFormatter.format_generic_error())
            return
        if not movie:
            await self._send(chat_id, MessageFormatter.format_not_found("movie"))
            return
        await self._send(
            chat_id,
            MessageFormatter.format_movie_details(movie),
            keyboards.field_picker("movie", movie["id"], MOVIE_FIELDS, MessageFormatter.FIELD_LABELS),
        )

    async def _show_series(self, chat_id: int, series_id: str) -> None:
        try:
            series = self._store.get_series(series_id)
        except CatalogError:
            await self._send(chat_id, MessageFormatter.format_generic_error())
            return
        if not series:
            await self._send(chat_id, MessageFormatter.format_not_found("series"))
            return
        await self._send(
            chat_id,
            MessageFormatter.format_series_details(series),
            keyboards.field_picker(
                "series",
                series["id"],
                SERIES_FIELDS,
                MessageFormatter.FIELD_LABELS,
                seasons=series.get("seasons") or [],
            ),
        )

    async def _show_season(self, chat_id: int, series_id: str, season_number: int) -> None:
        try:
            series = self._store.get_series(series_id)
            episodes = self._store.list_episodes(series_id, season_number) if series else []
        except CatalogError:
            await self._send(chat_id, MessageFormatter.format_generic_error())
            return
        if not series:
            await self._send(chat_id, MessageFormatter.format_not_found("series"))
            return
        await self._send(
            chat_id,
            MessageFormatter.format_season_episodes(series, season_number, episodes),
            keyboards.season_episodes(series["id"], season_number, episodes),
        )

    async def _delete(self, chat_id: int, kind: str, record_id: str) -> None:
        delete = {
            "movie": self._store.delete_movie,
            "series": self._store.delete_series,
            "episode": self._store.delete_episode,
        }[kind]
        try:
            deleted = delete(record_id)
        except CatalogError:
            await self._send(chat_id, MessageFormatter.format_deleted(kind, False))
            return
        if not deleted:
            await self._send(chat_id, MessageFormatter.format_not_found(kind))
            return
        RECORDS_DELETED.labels(kind=kind).inc()
        logger.info("record deleted", extra={"kind": kind, "id": record_id, "chat_id": chat_id})
        await self._send(chat_id, MessageFormatter.format_deleted(kind, True))

    async def _send(self, chat_id: int, text: str, reply_markup=None) -> None:
        await self._messenger.send_text(chat_id, text, reply_markup=reply_markup)
