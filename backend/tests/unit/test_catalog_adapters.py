"""
Unit tests for the per-provider catalog adapters.
"""
import json

import httpx

from iptv_engine.models.account import AccountMode, AccountType
from iptv_engine.schemas import Category, Channel
from iptv_engine.services.catalog.base import compare_episode, compare_season, sort_by_season_episode
from iptv_engine.services.catalog.factory import CatalogAdapterFactory, catalog_adapter_for
from iptv_engine.services.catalog.m3u import M3uCatalogAdapter
from iptv_engine.services.catalog.rss import RssCatalogAdapter
from iptv_engine.services.catalog.stalker import (
    StalkerCatalogAdapter, ordered_list_params, page_count, parse_pagination, parse_vod_channels,
)
from iptv_engine.services.catalog.xtream import XtreamCatalogAdapter
from iptv_engine.services.rss import parse_rss
from fixtures.factories import make_account, make_xtream_account, mock_client


class FakeSession:
    """Stands in for SessionManager: answers fetch() from a callable."""

    def __init__(self, responder, connected=True):
        self.responder = responder
        self.connected = connected
        self.calls = []

    def ensure_connected(self, account):
        return self.connected

    def fetch(self, account, params):
        self.calls.append(params)
        return self.responder(params)


def ordered_page(page, total=120, per_page=25, rows=None):
    if rows is None:
        rows = [{"id": f"{page}-{i}", "name": f"Ch {page}-{i}", "cmd": f"ffmpeg http://s/{page}/{i}",
                 "tv_genre_id": "10"} for i in range(2)]
    return json.dumps({"js": {"total_items": total, "max_page_items": per_page, "data": rows}})


class TestSortHelpers:
    def test_compare_season_and_episode(self):
        assert compare_season("Season 2 - Episode 5") == 2
        assert compare_episode("Season 2 - Episode 5") == 5
        assert compare_season("Movie") == 0
        assert compare_episode("Movie") == 0

    def test_sort_is_stable_for_equal_keys(self):
        rows = [Channel(channel_id="b", name="Zed"), Channel(channel_id="a", name="Alpha"),
                Channel(channel_id="c", name="Season 1 - Episode 2"), Channel(channel_id="d", name="Season 1 - Episode 1")]
        assert [c.channel_id for c in sort_by_season_episode(rows)] == ["b", "a", "d", "c"]


class TestStalkerAdapter:
    """Tests for Stalker portal catalog parsing and paging."""

    def test_page_count(self):
        assert page_count(120, 25) == 5
        assert page_count(100, 25) == 4
        assert page_count(10, 0) == 1

    def test_parse_pagination_needs_envelope(self):
        assert parse_pagination(ordered_page(1)) == 5
        assert parse_pagination('{"js":[]}') is None
        assert parse_pagination("") is None

    def test_fetches_every_page(self):
        session = FakeSession(lambda params: ordered_page(int(params["p"])))
        account = make_account()

        channels = StalkerCatalogAdapter(session).fetch_channels(account, "10")

        assert [params["p"] for params in session.calls] == ["1", "2", "3", "4", "5"]
        assert len(channels) == 10
        assert channels[0].category_id == "10"
        assert channels[0].cmd == "ffmpeg http://s/1/0"

    def test_cancellation_is_checked_between_pages(self):
        session = FakeSession(lambda params: ordered_page(int(params["p"])))

        channels = StalkerCatalogAdapter(session).fetch_channels(
            make_account(), "10", is_cancelled=lambda: len(session.calls) >= 2,
        )

        assert [params["p"] for params in session.calls] == ["1", "2"]
        assert len(channels) == 4

    def test_missing_envelope_gives_no_channels(self):
        session = FakeSession(lambda params: '{"js":[]}')
        assert StalkerCatalogAdapter(session).fetch_channels(make_account(), "10") == []

    def test_not_connected_gives_nothing(self):
        session = FakeSession(lambda params: ordered_page(1), connected=False)
        adapter = StalkerCatalogAdapter(session)
        assert adapter.fetch_categories(make_account()) == []
        assert adapter.fetch_channels(make_account(), "10") == []
        assert session.calls == []

    def test_categories(self):
        body = json.dumps({"js": [
            {"id": "*", "title": "All", "alias": "all", "active_sub": True, "censored": 0},
            {"id": "10", "title": "News", "alias": "news", "active_sub": "1", "censored": "1"},
        ]})
        session = FakeSession(lambda params: body)

        categories = StalkerCatalogAdapter(session).fetch_categories(make_account())

        assert session.calls[0]["action"] == "get_genres"
        assert [(c.category_id, c.title, c.active_sub, c.censored) for c in categories] == [
            ("*", "All", True, 0), ("10", "News", True, 1),
        ]

    def test_vod_categories_use_get_categories(self):
        session = FakeSession(lambda params: '{"js":[]}')
        StalkerCatalogAdapter(session).fetch_categories(make_account(mode=AccountMode.VOD))
        assert session.calls[0]["action"] == "get_categories"
        assert session.calls[0]["type"] == "vod"

    def test_series_params(self):
        params = ordered_list_params("7", 1, AccountMode.SERIES, movie_id="55")
        assert params["movie_id"] == "55"
        assert params["category"] == "7"
        assert params["season_id"] == "0"
        assert params["episode_id"] == "0"
        assert params["per_page"] == "999"
        assert "movie_id" not in ordered_list_params("7", 1, AccountMode.ITV)

    def test_series_rows_expand_into_episodes(self):
        body = ordered_page(1, total=1, rows=[{"id": "7", "name": "Show", "cmd": "/media/7.mpg", "series": [1, 2, 3]}])

        channels = parse_vod_channels(body, AccountMode.SERIES)

        assert [c.name for c in channels] == ["Show - Episode 1", "Show - Episode 2", "Show - Episode 3"]
        assert [c.channel_id for c in channels] == ["1", "2", "3"]
        assert {c.cmd for c in channels} == {"/media/7.mpg"}

    def test_vod_rows_use_o_name_and_screenshot(self):
        body = ordered_page(1, total=1, rows=[{"id": "9", "name": "", "o_name": "Original", "cmd": "/m/9",
                                               "screenshot_uri": "http://img/9.jpg", "series": [1]}])
        channel = parse_vod_channels(body, AccountMode.VOD)[0]
        assert channel.name == "Original"
        assert channel.logo == "http://img/9.jpg"
        assert channel.number == "9"

    def test_episodes_query_the_series_in_series_mode(self):
        session = FakeSession(lambda params: ordered_page(1, total=1))
        StalkerCatalogAdapter(session).fetch_episodes(make_account(mode=AccountMode.ITV), "7", "55")
        assert session.calls[0]["type"] == "series"
        assert session.calls[0]["movie_id"] == "55"


class TestXtreamAdapter:
    """Tests for Xtream catalog normalization."""

    def adapter(self, routes):
        def handler(request):
            action = request.url.params.get("action")
            if action not in routes:
                return httpx.Response(500)
            return httpx.Response(200, json=routes[action])

        return XtreamCatalogAdapter(mock_client(handler))

    def test_live_categories_and_channels(self):
        adapter = self.adapter({
            "get_live_categories": [{"category_id": 1, "category_name": "News"}],
            "get_live_streams": [{"stream_id": 11, "name": "N1", "num": 3, "category_id": "1",
                                  "stream_icon": "http://logo/n1.png"}],
        })
        account = make_xtream_account()

        categories = adapter.fetch_categories(account)
        channels = adapter.fetch_channels(account, "1")

        assert [(c.category_id, c.title) for c in categories] == [("1", "News")]
        assert channels[0].channel_id == "11"
        assert channels[0].number == "3"
        assert channels[0].logo == "http://logo/n1.png"
        assert channels[0].cmd == "http://xtream.example.com:8080/user/pass/11"

    def test_series_rows_use_series_id_and_cover(self):
        adapter = self.adapter({"get_series": [{"series_id": 5, "name": "Show", "cover": "http://c/5.jpg",
                                                "category_id": "3"}]})
        channels = adapter.fetch_channels(make_xtream_account(mode=AccountMode.SERIES), "3")
        assert channels[0].channel_id == "5"
        assert channels[0].logo == "http://c/5.jpg"

    def test_vod_cmd_is_movie_url(self):
        adapter = self.adapter({"get_vod_streams": [{"stream_id": 8, "name": "Film", "container_extension": "mkv"}]})
        channels = adapter.fetch_channels(make_xtream_account(mode=AccountMode.VOD), "2")
        assert channels[0].cmd == "http://xtream.example.com:8080/movie/user/pass/8.mkv"

    def test_episodes_from_series_info(self):
        adapter = self.adapter({"get_series_info": {"episodes": {"1": [{
            "id": "101", "episode_num": 1, "title": "Show S01E01", "container_extension": "mkv", "season": 1,
            "info": {"movie_image": "http://img/101.jpg", "plot": "Pilot", "duration": "00:42:00"},
        }]}}})

        episodes = adapter.fetch_episodes(make_xtream_account(mode=AccountMode.SERIES), "3", "5")

        assert len(episodes) == 1
        episode = episodes[0]
        assert episode.channel_id == "101"
        assert episode.cmd == "http://xtream.example.com:8080/series/user/pass/101.mkv"
        assert episode.season == "1"
        assert episode.episode_num == "1"
        assert episode.description == "Pilot"
        assert episode.category_id == "3"

    def test_provider_failures_give_empty_lists(self):
        adapter = self.adapter({})
        account = make_xtream_account()
        assert adapter.fetch_categories(account) == []
        assert adapter.fetch_channels(account, "1") == []
        assert adapter.fetch_episodes(account, "1", "5") == []


PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="news1" group-title="News",News One
http://streams.example.com/news1.m3u8
#EXTINF:-1 tvg-id="news1" group-title="News",News One
http://streams.example.com/news1.m3u8
#EXTINF:-1 tvg-id="sport1" group-title="Sports",Sport One
http://streams.example.com/sport1.m3u8
"""


class TestM3uAdapter:
    """Tests for playlist backed catalogs."""

    def test_url_playlist(self):
        client = mock_client(lambda request: httpx.Response(200, text=PLAYLIST))
        account = make_account(type=AccountType.M3U8_URL, m3u8_path="http://lists.example.com/list.m3u")
        adapter = M3uCatalogAdapter(client)

        categories = adapter.fetch_categories(account)
        news = adapter.fetch_channels(account, "News")

        assert [(c.category_id, c.title) for c in categories] == [("All", "All"), ("news1", "News"),
                                                                  ("sport1", "Sports")]
        assert [c.name for c in news] == ["News One"]
        assert news[0].category_id == "News"

    def test_local_playlist(self, tmp_path):
        path = tmp_path / "list.m3u"
        path.write_text(PLAYLIST, encoding="utf-8")
        account = make_account(type=AccountType.M3U8_LOCAL, m3u8_path=str(path))

        channels = M3uCatalogAdapter(mock_client(lambda request: httpx.Response(500))).fetch_channels(account, "All")

        assert [c.name for c in channels] == ["News One", "Sport One"]

    def test_scope_is_the_category_title(self):
        adapter = M3uCatalogAdapter(mock_client(lambda request: httpx.Response(500)))
        assert adapter.channel_scope(Category(category_id="news1", title="News")) == "News"

    def test_unreadable_playlist_gives_empty_lists(self):
        account = make_account(type=AccountType.M3U8_URL, m3u8_path="http://lists.example.com/list.m3u")
        adapter = M3uCatalogAdapter(mock_client(lambda request: httpx.Response(500)))
        assert adapter.fetch_categories(account) == []
        assert adapter.fetch_channels(account, "News") == []


RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel>
<title>Podcast</title><link>http://feed.example.com/</link>
<item><title>One</title><link>http://feed.example.com/1.html</link>
<enclosure url="http://media.example.com/1.mp3" type="audio/mpeg"/><description>First</description></item>
<item><title>Two</title><link>2.mp3</link></item>
<item><title>Three</title></item>
</channel></rss>"""


class TestRss:
    def test_parse_rss_prefers_enclosures_and_resolves_relative_links(self):
        items = parse_rss(RSS)
        assert [(i.title, i.link) for i in items] == [
            ("One", "http://media.example.com/1.mp3"),
            ("Two", "http://feed.example.com/2.mp3"),
        ]
        assert items[0].description == "First"

    def test_adapter_has_single_all_category(self):
        adapter = RssCatalogAdapter(mock_client(lambda request: httpx.Response(200, content=RSS)))
        account = make_account(type=AccountType.RSS_FEED, url="http://feed.example.com/rss")

        categories = adapter.fetch_categories(account)
        channels = adapter.fetch_channels(account, "All")

        assert [c.title for c in categories] == ["All"]
        assert [c.cmd for c in channels] == ["http://media.example.com/1.mp3", "http://feed.example.com/2.mp3"]
        assert all(c.category_id == "All" for c in channels)
        assert len({c.channel_id for c in channels}) == 2

    def test_feed_errors_give_no_channels(self):
        adapter = RssCatalogAdapter(mock_client(lambda request: httpx.Response(503)))
        account = make_account(type=AccountType.RSS_FEED, url="http://feed.example.com/rss")
        assert adapter.fetch_channels(account, "All") == []


class TestFactory:
    def test_adapter_per_account_type(self):
        factory = CatalogAdapterFactory(FakeSession(lambda params: ""), mock_client(lambda request: httpx.Response(404)))
        assert isinstance(catalog_adapter_for(make_account(), factory), StalkerCatalogAdapter)
        assert isinstance(catalog_adapter_for(make_xtream_account(), factory), XtreamCatalogAdapter)
        assert isinstance(catalog_adapter_for(make_account(type=AccountType.M3U8_LOCAL), factory), M3uCatalogAdapter)
        assert isinstance(catalog_adapter_for(make_account(type=AccountType.RSS_FEED), factory), RssCatalogAdapter)
