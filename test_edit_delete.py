"""Edit and delete actions driven by inline buttons."""

import asyncio

from reelkeeper.bot.router import Inbound
from reelkeeper.conversation.states import State
from reelkeeper.utils import keyboards

CHAT = 300
USER = 5


def _say(router, text):
    asyncio.run(router.route(Inbound(chat_id=CHAT, user_id=USER, text=text)))


def _press(router, data, callback_id="cb"):
    asyncio.run(
        router.route(Inbound(chat_id=CHAT, user_id=USER, callback_id=callback_id, callback_data=data))
    )


def _payloads(markup):
    return [b.callback_data for row in markup.inline_keyboard for b in row]


def test_edit_movies_lists_records(router, store, messenger):
    movie_id = store.create_movie("Heat", "http://i/h", "http://s/h", added_by=USER)
    _say(router, keyboards.MENU_EDIT_MOVIES)
    assert f"edit_movie_{movie_id}" in _payloads(messenger.last_markup)
    assert f"delete_movie_{movie_id}" in _payloads(messenger.last_markup)


def test_empty_list_has_no_buttons(router, messenger):
    _say(router, keyboards.MENU_EDIT_SERIES)
    assert "No series" in messenger.last_text
    assert messenger.last_markup is None


def test_edit_movie_field(router, machine, store, messenger):
    movie_id = store.create_movie("Heat", "http://i/h", "http://s/h", added_by=USER)
    _press(router, f"edit_movie_{movie_id}")
    assert f"edit_field_movie_streamingUrl_{movie_id}" in _payloads(messenger.last_markup)

    _press(router, f"edit_field_movie_streamingUrl_{movie_id}")
    assert machine.state_of(CHAT) == State.NEW_VALUE
    _say(router, "http://s/new")
    assert machine.session(CHAT) is None
    assert store.movies[movie_id]["streamingUrl"] == "http://s/new"
    assert store.movies[movie_id]["name"] == "Heat"
    assert "Updated" in messenger.last_text


def test_edit_series_name(router, store, messenger):
    series_id = store.create_series("Drak", "http://i/d", added_by=USER)
    _press(router, f"edit_field_series_name_{series_id}")
    _say(router, "Dark")
    assert store.series[series_id]["name"] == "Dark"
    assert "Dark" in messenger.last_text


def test_edit_record_deleted_before_value(router, machine, store, messenger):
    movie_id = store.create_movie("Heat", "http://i/h", "http://s/h", added_by=USER)
    _press(router, f"edit_field_movie_name_{movie_id}")
    store.movies.clear()
    _say(router, "Heat 2")
    assert machine.session(CHAT) is None
    assert "not found" in messenger.last_text


def test_edit_unknown_record(router, machine, messenger):
    _press(router, "edit_field_movie_name_missing")
    assert machine.session(CHAT) is None
    assert "not found" in messenger.last_text


def test_delete_movie(router, store, messenger):
    movie_id = store.create_movie("Heat", "http://i/h", "http://s/h", added_by=USER)
    _press(router, f"delete_movie_{movie_id}")
    assert not store.movies
    assert "deleted successfully" in messenger.last_text


def test_delete_series_cascades_episodes(router, store):
    series_id = store.create_series("Dark", "http://i/d", added_by=USER)
    store.add_episode(series_id, 1, 1, "Secrets", "http://s/1", added_by=USER)
    store.add_episode(series_id, 1, 2, "Lies", "http://s/2", added_by=USER)
    other_id = store.create_series("Lost", "http://i/l", added_by=USER)
    store.add_episode(other_id, 1, 1, "Pilot", "http://s/p", added_by=USER)

    _press(router, f"delete_series_{series_id}")
    assert list(store.series) == [other_id]
    assert [e["seriesId"] for e in store.episodes.values()] == [other_id]


def test_delete_missing_record(router, messenger):
    _press(router, "delete_movie_nope")
    assert "not found" in messenger.last_text


def test_season_view_and_episode_delete(router, store, messenger):
    series_id = store.create_series("Dark", "http://i/d", added_by=USER)
    episode_id = store.add_episode(series_id, 2, 1, "Secrets", "http://s/1", added_by=USER)

    _press(router, f"edit_series_{series_id}")
    assert f"select_season_{series_id}_2" in _payloads(messenger.last_markup)

    _press(router, f"select_season_{series_id}_2")
    assert "Secrets" in messenger.last_text
    assert f"delete_episode_{episode_id}" in _payloads(messenger.last_markup)
    assert f"add_episode_{series_id}_2" in _payloads(messenger.last_markup)

    _press(router, f"delete_episode_{episode_id}")
    assert not store.episodes
    assert store.series[series_id]["seasons"] == []


def test_delete_failure_reports_error(router, store, messenger):
    movie_id = store.create_movie("Heat", "http://i/h", "http://s/h", added_by=USER)
    store.fail_writes = True
    _press(router, f"delete_movie_{movie_id}")
    assert "Error deleting movie" in messenger.last_text
    assert movie_id in store.movies


def test_every_callback_answered_once(router, store, messenger):
    movie_id = store.create_movie("Heat", "http://i/h", "http://s/h", added_by=USER)
    payloads = [
        f"edit_movie_{movie_id}",
        f"edit_field_movie_name_{movie_id}",
        "select_season_x_0",
        "garbage",
        f"delete_movie_{movie_id}",
    ]
    for i, data in enumerate(payloads):
        _press(router, data, callback_id=str(i))
    assert [cid for cid, _ in messenger.answers] == [str(i) for i in range(len(payloads))]
    assert messenger.answers[2][1] == "Unknown action"
    assert messenger.answers[3][1] == "Unknown action"


def test_stats_command(router, store, messenger):
    store.create_movie("Heat", "http://i/h", "http://s/h", added_by=USER)
    _say(router, "/stats")
    assert "Movies: 1" in messenger.last_text
    assert "Series: 0" in messenger.last_text


def test_frontend_link(router, messenger):
    _say(router, keyboards.MENU_FRONTEND)
    assert "https://media.example" in messenger.last_text
