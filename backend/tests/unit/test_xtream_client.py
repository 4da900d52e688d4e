"""
Unit tests for the Xtream Codes API client.
"""
import httpx
import pytest

from iptv_engine.services.xtream import XtreamClient, XtreamError, base_url_candidates, normalize_base_url
from fixtures.factories import make_xtream_account, mock_client


class TestBaseUrls:
    def test_normalize_base_url(self):
        assert normalize_base_url("xtream.example.com") == "http://xtream.example.com/"
        assert normalize_base_url("http://x.com/player_api.php?username=a") == "http://x.com/"
        assert normalize_base_url("https://x.com/") == "https://x.com/"
        assert normalize_base_url("  ") == ""

    def test_candidates_are_deduplicated_and_ordered(self):
        assert base_url_candidates("http://alt.com", None, "http://alt.com/player_api.php", "http://main.com") == [
            "http://alt.com/", "http://main.com/",
        ]

    def test_alternate_url_is_tried_first(self):
        client = XtreamClient.for_account(make_xtream_account(m3u8_path="http://alt.example.com"))
        assert client.base_urls == ["http://alt.example.com/", "http://xtream.example.com:8080/"]


class TestRequests:
    """Tests for player_api.php calls."""

    def test_request_params(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        client = XtreamClient("http://x.com", "user", "pass", mock_client(handler))
        client.get_live_streams("12")

        params = seen[0].url.params
        assert seen[0].url.path == "/player_api.php"
        assert params["username"] == "user"
        assert params["password"] == "pass"
        assert params["action"] == "get_live_streams"
        assert params["category_id"] == "12"

    def test_404_falls_back_to_next_base_url(self):
        def handler(request):
            if request.url.host == "alt.example.com":
                return httpx.Response(404)
            return httpx.Response(200, json=[{"category_id": "1", "category_name": "News"}])

        account = make_xtream_account(m3u8_path="http://alt.example.com")
        client = XtreamClient.for_account(account, mock_client(handler))

        assert client.get_live_categories() == [{"category_id": "1", "category_name": "News"}]
        assert client.base_url == "http://xtream.example.com:8080/"

    def test_http_error_raises(self):
        client = XtreamClient("http://x.com", "u", "p", mock_client(lambda request: httpx.Response(500)))
        with pytest.raises(XtreamError):
            client.get_vod_categories()

    def test_404_on_last_candidate_raises(self):
        client = XtreamClient("http://x.com", "u", "p", mock_client(lambda request: httpx.Response(404)))
        with pytest.raises(XtreamError):
            client.get_series_categories()

    def test_blank_base_url_raises(self):
        client = XtreamClient("", "u", "p", mock_client(lambda request: httpx.Response(200, json=[])))
        with pytest.raises(XtreamError):
            client.get_live_categories()

    def test_invalid_json_raises(self):
        client = XtreamClient("http://x.com", "u", "p", mock_client(lambda request: httpx.Response(200, text="<html>")))
        with pytest.raises(XtreamError):
            client.get_live_categories()


class TestStreamUrls:
    def test_live_url_has_no_type_segment(self):
        client = XtreamClient("http://x.com", "u", "p")
        assert client.get_stream_url("", "11") == "http://x.com/u/p/11"

    def test_movie_url_uses_extension(self):
        client = XtreamClient("http://x.com", "u", "p")
        assert client.get_stream_url("movie", "11", "mkv") == "http://x.com/movie/u/p/11.mkv"
        assert client.get_stream_url("series", "12") == "http://x.com/series/u/p/12.ts"

    def test_missing_id_gives_blank_url(self):
        assert XtreamClient("http://x.com", "u", "p").get_stream_url("movie", "") == ""
