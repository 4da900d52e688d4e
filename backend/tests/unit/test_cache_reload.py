"""
Unit tests for the cache_reload module.
"""
import json

import httpx
import pytest

from iptv_engine.models.account import AccountMode, AccountType
from iptv_engine.models.category import Category as CategoryModel, SeriesCategory, VodCategory
from iptv_engine.models.channel import Channel as ChannelModel
from iptv_engine.schemas import Category, Channel
from iptv_engine.services.cache_reload import (
    UNCATEGORIZED_ID, CacheReloadError, CacheReloadService, all_channels_params, partition_by_category,
)
from iptv_engine.services.catalog.factory import CatalogAdapterFactory
from fixtures.factories import make_account, make_xtream_account, mock_client

GENRES = {"js": [
    {"id": "*", "title": "All"},
    {"id": "10", "title": "News"},
    {"id": "20", "title": "Sports"},
]}


def envelope(rows, total=None, per_page=None):
    total = len(rows) if total is None else total
    return json.dumps({"js": {"total_items": total, "max_page_items": per_page or max(total, 1), "data": rows}})


class FakeSession:
    """Scripted stand-in for SessionManager."""

    def __init__(self, responder, connected=True):
        self.responder = responder
        self.connected = connected
        self.calls = []

    def connect(self, account):
        return self.connected

    def ensure_connected(self, account):
        return self.connected

    def fetch(self, account, params):
        self.calls.append(dict(params))
        return self.responder(params)


def stalker_responder(all_channels=None, ordered=None):
    def respond(params):
        action = params.get("action")
        if action == "get_genres":
            return json.dumps(GENRES)
        if action == "get_categories":
            return json.dumps({"js": [{"id": f"{params['type']}1", "title": params["type"].upper()}]})
        if action == "get_all_channels":
            return envelope(all_channels or [])
        if action == "get_ordered_list" and ordered:
            return ordered(params["genre"], int(params["p"]))
        return ""
    return respond


def make_service(store, session, http_client=None):
    client = http_client or mock_client(lambda request: httpx.Response(404))
    return CacheReloadService(store, CatalogAdapterFactory(session, client), session)


def xtream_client(routes):
    """``routes`` maps (action, category_id or None) to a JSON body or an HTTP status."""
    def handler(request):
        key = (request.url.params.get("action"), request.url.params.get("category_id"))
        value = routes.get(key, 404)
        if isinstance(value, int):
            return httpx.Response(value)
        return httpx.Response(200, json=value)
    return mock_client(handler)


class TestHelpers:
    def test_all_channels_params(self):
        assert "p" not in all_channels_params()
        params = all_channels_params(1, 99999)
        assert (params["type"], params["action"], params["p"], params["per_page"]) == \
            ("itv", "get_all_channels", "1", "99999")

    def test_partition_by_category(self):
        categories = [Category(category_id="10"), Category(category_id="20")]
        channels = [Channel(channel_id="a", category_id="10"), Channel(channel_id="b", category_id="99"),
                    Channel(channel_id="c", category_id="")]
        matched, orphans = partition_by_category(categories, channels)
        assert {k: [c.channel_id for c in v] for k, v in matched.items()} == {"10": ["a"]}
        assert [c.channel_id for c in orphans] == ["b", "c"]


class TestStalkerReload:
    """Tests for full Stalker portal reloads."""

    def test_get_all_channels_partitioned_with_uncategorized(self, store):
        session = FakeSession(stalker_responder(all_channels=[
            {"id": "1", "name": "N", "cmd": "c1", "tv_genre_id": "10"},
            {"id": "2", "name": "S", "cmd": "c2", "tv_genre_id": "20"},
            {"id": "3", "name": "O", "cmd": "c3", "tv_genre_id": "99"},
        ]))
        account = make_account()

        summary = make_service(store, session).reload_account(account)

        assert summary.status == "ok"
        assert summary.channels == 3
        titles = [c.title for c in store.fetch(CategoryModel, {"account_id": 1})]
        assert titles == ["News", "Sports", "Uncategorized"]
        assert store.count(ChannelModel, {"account_id": 1, "scope_id": "10"}) == 1
        assert store.count(ChannelModel, {"account_id": 1, "scope_id": "20"}) == 1
        assert store.count(ChannelModel, {"account_id": 1, "scope_id": UNCATEGORIZED_ID}) == 1
        uncategorized = store.fetch(CategoryModel, {"account_id": 1, "category_id": UNCATEGORIZED_ID})[0]
        assert uncategorized.active_sub is False

    def test_vod_and_series_categories_are_refreshed(self, store):
        session = FakeSession(stalker_responder(all_channels=[{"id": "1", "tv_genre_id": "10"}]))
        make_service(store, session).reload_account(make_account())

        assert [c.title for c in store.fetch(VodCategory, {"account_id": 1})] == ["VOD"]
        assert [c.title for c in store.fetch(SeriesCategory, {"account_id": 1})] == ["SERIES"]

    def test_get_all_channels_attempts(self, store):
        session = FakeSession(stalker_responder(all_channels=[]))
        make_service(store, session).reload_account(make_account())

        attempts = [(c.get("p"), c.get("per_page")) for c in session.calls if c["action"] == "get_all_channels"]
        assert attempts == [(None, None), ("0", "99999"), ("1", "99999")]

    def test_per_category_fallback_deduplicates(self, store):
        def ordered(genre, page):
            if genre == "10" and page == 0:
                return envelope([{"id": "a", "name": "A"}], total=2, per_page=1)
            if genre == "10" and page == 1:
                return envelope([{"id": "a", "name": "A"}, {"id": "b", "name": "B", "tv_genre_id": "10"}])
            if genre == "20" and page == 1:
                return envelope([{"id": "c", "name": "C", "tv_genre_id": "20"}])
            return envelope([])

        session = FakeSession(stalker_responder(ordered=ordered))
        summary = make_service(store, session).reload_account(make_account())

        assert summary.status == "ok"
        news = store.fetch(ChannelModel, {"account_id": 1, "scope_id": "10"})
        assert [c.channel_id for c in news] == ["a", "b"]
        assert news[0].category_id == "10"
        assert [c.channel_id for c in store.fetch(ChannelModel, {"account_id": 1, "scope_id": "20"})] == ["c"]
        assert [c.title for c in store.fetch(CategoryModel, {"account_id": 1})] == ["News", "Sports"]

    def test_nothing_found_keeps_existing_cache(self, store):
        store.replace(ChannelModel, {"account_id": 1, "scope_id": "10"}, [Channel(channel_id="old")])
        session = FakeSession(stalker_responder())

        summary = make_service(store, session).reload_account(make_account())

        assert summary.status == "empty"
        assert [c.channel_id for c in store.fetch(ChannelModel, {"account_id": 1})] == ["old"]

    def test_failed_handshake(self, store):
        session = FakeSession(stalker_responder(), connected=False)
        summary = make_service(store, session).reload_account(make_account())
        assert summary.status == "failed"
        assert session.calls == []

    def test_cancellation_stops_category_fallback(self, store):
        session = FakeSession(stalker_responder(ordered=lambda genre, page: envelope([])))
        summary = make_service(store, session).reload_account(make_account(), is_cancelled=lambda: True)
        assert summary.status == "empty"
        assert not [c for c in session.calls if c["action"] == "get_ordered_list"]


class TestXtreamReload:
    """Tests for full Xtream reloads."""

    CATEGORIES = [{"category_id": "1", "category_name": "News"}, {"category_id": "2", "category_name": "Sports"}]

    def test_global_lookup_is_partitioned(self, store):
        client = xtream_client({
            ("get_live_categories", None): self.CATEGORIES,
            ("get_live_streams", None): [
                {"stream_id": 11, "name": "N", "category_id": "1"},
                {"stream_id": 21, "name": "S", "category_id": "2"},
                {"stream_id": 91, "name": "X", "category_id": "9"},
            ],
            ("get_vod_categories", None): [{"category_id": "5", "category_name": "Movies"}],
            ("get_series_categories", None): [],
        })
        account = make_xtream_account()

        summary = make_service(store, FakeSession(lambda params: ""), client).reload_account(account)

        assert summary.status == "ok"
        assert summary.channels == 3
        assert store.count(ChannelModel, {"account_id": 2, "scope_id": "1"}) == 1
        assert store.count(ChannelModel, {"account_id": 2, "scope_id": UNCATEGORIZED_ID}) == 1
        assert [c.title for c in store.fetch(VodCategory, {"account_id": 2})] == ["Movies"]

    def test_falls_back_to_category_requests(self, store):
        client = xtream_client({
            ("get_live_categories", None): self.CATEGORIES,
            ("get_live_streams", None): [{"stream_id": 11, "name": "N"}],
            ("get_live_streams", "1"): [{"stream_id": 11, "name": "N", "category_id": "1"}],
            ("get_live_streams", "2"): 500,
        })

        summary = make_service(store, FakeSession(lambda params: ""), client).reload_account(make_xtream_account())

        assert summary.status == "ok"
        assert store.count(ChannelModel, {"account_id": 2, "scope_id": "1"}) == 1
        assert store.count(ChannelModel, {"account_id": 2, "scope_id": "2"}) == 0

    def test_every_category_failing_raises(self, store):
        client = xtream_client({
            ("get_live_categories", None): self.CATEGORIES,
            ("get_live_streams", None): 500,
            ("get_live_streams", "1"): 500,
            ("get_live_streams", "2"): 500,
        })
        with pytest.raises(CacheReloadError):
            make_service(store, FakeSession(lambda params: ""), client).reload_account(make_xtream_account())

    def test_empty_categories_keep_cache(self, store):
        client = xtream_client({
            ("get_live_categories", None): self.CATEGORIES,
            ("get_live_streams", None): [],
            ("get_live_streams", "1"): [],
            ("get_live_streams", "2"): [],
        })
        summary = make_service(store, FakeSession(lambda params: ""), client).reload_account(make_xtream_account())
        assert summary.status == "empty"

    def test_vod_mode_only_refreshes_categories(self, store):
        client = xtream_client({("get_vod_categories", None): [{"category_id": "5", "category_name": "Movies"}]})
        summary = make_service(store, FakeSession(lambda params: ""), client).reload_account(
            make_xtream_account(mode=AccountMode.VOD),
        )
        assert summary.status == "ok"
        assert store.count(VodCategory, {"account_id": 2}) == 1
        assert store.count(ChannelModel, {"account_id": 2}) == 0


PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="n1" group-title="News",News One
http://s/n1
#EXTINF:-1 tvg-id="s1" group-title="Sports",Sport One
http://s/s1
"""


class TestPlaylistReload:
    def test_channels_are_scoped_by_category_title(self, store):
        client = mock_client(lambda request: httpx.Response(200, text=PLAYLIST))
        account = make_account(type=AccountType.M3U8_URL, m3u8_path="http://lists/list.m3u")

        summary = make_service(store, FakeSession(lambda params: ""), client).reload_account(account)

        assert summary.status == "ok"
        assert store.count(ChannelModel, {"account_id": 1, "scope_id": "All"}) == 2
        assert store.count(ChannelModel, {"account_id": 1, "scope_id": "News"}) == 1
        assert store.count(ChannelModel, {"account_id": 1, "scope_id": "Sports"}) == 1


class TestAccountChecks:
    def test_verify_mac_address(self, store):
        assert make_service(store, FakeSession(lambda p: "")).verify_mac_address(make_account()) is True
        assert make_service(store, FakeSession(lambda p: "", connected=False)).verify_mac_address(make_account()) is False
        assert make_service(store, FakeSession(lambda p: "")).verify_mac_address(make_xtream_account()) is False

    def test_channel_count(self, store):
        store.replace(ChannelModel, {"account_id": 1, "scope_id": "10"}, [Channel(channel_id="a"), Channel(channel_id="b")])
        assert make_service(store, FakeSession(lambda p: "")).channel_count(make_account()) == 2
