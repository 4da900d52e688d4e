import httpx
from typing import List, Dict, Optional, Any
import logging

logger = logging.getLogger(__name__)


class XtreamError(RuntimeError):
    pass


def normalize_base_url(source: Optional[str]) -> str:
    """http:// prefix, no player_api.php, trailing slash."""
    if not source or not source.strip():
        return ""
    trimmed = source.strip()
    if "://" not in trimmed:
        trimmed = "http://" + trimmed
    index = trimmed.lower().find("player_api.php")
    if index >= 0:
        trimmed = trimmed[:index]
    if not trimmed.endswith("/"):
        trimmed += "/"
    return trimmed


def base_url_candidates(*sources: Optional[str]) -> List[str]:
    candidates = []
    for source in sources:
        normalized = normalize_base_url(source)
        if normalized and normalized not in candidates:
            candidates.append(normalized)
    return candidates


class XtreamClient:
    def __init__(self, url: str, username: str, password: str,
                 http_client: Optional[httpx.Client] = None, alternate_url: Optional[str] = None):
        # The alternate URL (playlist path on the account) is tried first
        self.base_urls = base_url_candidates(alternate_url, url)
        self.base_url = self.base_urls[0] if self.base_urls else ""
        self.username = username or ""
        self.password = password or ""
        self.http_client = http_client

    @classmethod
    def for_account(cls, account, http_client: Optional[httpx.Client] = None) -> "XtreamClient":
        return cls(account.url, account.username, account.password, http_client, alternate_url=account.m3u8_path)

    def _get_params(self, action: str, **kwargs) -> Dict[str, str]:
        params = {
            "username": self.username,
            "password": self.password,
            "action": action
        }
        params.update(kwargs)
        return params

    def _request(self, action: str, **kwargs) -> Any:
        if not self.base_urls:
            raise XtreamError("Xtream base URL is blank.")
        owns_client = self.http_client is None
        client = self.http_client or httpx.Client(timeout=60.0, follow_redirects=True)
        params = self._get_params(action, **kwargs)
        last_error: Optional[Exception] = None
        try:
            for index, base_url in enumerate(self.base_urls):
                has_more = index + 1 < len(self.base_urls)
                try:
                    response = client.get(f"{base_url}player_api.php", params=params)
                except httpx.HTTPError as e:
                    logger.error(f"Error fetching {action} from {base_url}: {e}")
                    last_error = e
                    if has_more:
                        continue
                    break
                if response.status_code == 404 and has_more:
                    logger.info(f"{action} returned 404 on {base_url}, trying next base URL")
                    continue
                if not response.is_success:
                    logger.error(f"HTTP error for {action}: {response.status_code}")
                    raise XtreamError(f"Xtream API request failed with HTTP {response.status_code}")
                self.base_url = base_url
                try:
                    return response.json()
                except ValueError as e:
                    raise XtreamError(f"Invalid JSON for {action}: {e}") from e
        finally:
            if owns_client:
                client.close()
        raise XtreamError(f"Failed to call Xtream API for {action}: {last_error}")

    def get_vod_categories(self) -> List[Dict]:
        return self._request("get_vod_categories")

    def get_vod_streams(self, category_id: Optional[str] = None) -> List[Dict]:
        kwargs = {}
        if category_id:
            kwargs["category_id"] = category_id
        return self._request("get_vod_streams", **kwargs)

    def get_series_categories(self) -> List[Dict]:
        return self._request("get_series_categories")

    def get_series(self, category_id: Optional[str] = None) -> List[Dict]:
        kwargs = {}
        if category_id:
            kwargs["category_id"] = category_id
        return self._request("get_series", **kwargs)

    def get_series_info(self, series_id: str) -> Dict:
        return self._request("get_series_info", series_id=series_id)

    def get_vod_info(self, vod_id: str) -> Dict:
        return self._request("get_vod_info", vod_id=vod_id)

    def get_live_categories(self) -> List[Dict]:
        return self._request("get_live_categories")

    def get_live_streams(self, category_id: Optional[str] = None) -> List[Dict]:
        kwargs = {}
        if category_id:
            kwargs["category_id"] = category_id
        return self._request("get_live_streams", **kwargs)

    def get_stream_url(self, stream_type: str, stream_id: str, extension: Optional[str] = None) -> str:
        # stream_type: "movie", "series", or "" for live
        if not self.base_url or not stream_id:
            return ""
        if not stream_type:
            return f"{self.base_url}{self.username}/{self.password}/{stream_id}"
        return f"{self.base_url}{stream_type}/{self.username}/{self.password}/{stream_id}.{extension or 'ts'}"
