import httpx
import json
import logging
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# MAG set-top box identity expected by Stalker middleware
STB_USER_AGENT = (
    "Mozilla/5.0 (QtEmbedded; U; Linux; C) AppleWebKit/533.3 "
    "(KHTML, like Gecko) MAG200 stbapp ver: 2 rev: 250 Safari/533.3"
)
STB_X_USER_AGENT = "Model: MAG250; Link: WiFi"


def js_timestamp() -> str:
    """Cache-busting ``JsHttpRequest`` value."""
    return f"{int(time.time() * 1000)}-xml"


def stalker_headers(account, token: Optional[str] = None) -> Dict[str, str]:
    headers = {
        "User-Agent": STB_USER_AGENT,
        "X-User-Agent": STB_X_USER_AGENT,
        "Referer": account.url or "",
        "Accept": "*/*",
        "Pragma": "no-cache",
        "Cookie": f"mac={account.mac_address or ''}; stb_lang=en; timezone=GMT;",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def load_json(body: str) -> Optional[Any]:
    if not body or not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError as e:
        logger.warning(f"Unparseable provider response: {e}")
        return None


def js_payload(body: str) -> Optional[Any]:
    """Return the ``js`` member of a Stalker response (object or array)."""
    data = load_json(body)
    if isinstance(data, dict):
        return data.get("js")
    return None


def safe_str(data: Dict, key: str) -> str:
    value = data.get(key) if isinstance(data, dict) else None
    if value is None:
        return ""
    return str(value)


def safe_int(data: Dict, key: str, default: int = 0) -> int:
    value = data.get(key) if isinstance(data, dict) else None
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class StalkerClient:
    """Raw GET access to a Stalker portal's ``load.php``/``portal.php`` endpoint."""

    def __init__(self, http_client: httpx.Client):
        self.http_client = http_client

    def fetch(self, account, params: Dict[str, str], token: Optional[str] = None) -> str:
        """Returns the response body, or "" on any transport/HTTP failure."""
        url = account.server_portal_url
        action = params.get("action", "")
        if not url:
            logger.warning(f"No server portal URL for account {account.name}, skipping {action}")
            return ""
        try:
            response = self.http_client.get(url, params=params, headers=stalker_headers(account, token))
        except httpx.HTTPError as e:
            logger.error(f"Network error for {action} on {url}: {e}")
            return ""
        if response.status_code != 200:
            logger.warning(f"HTTP {response.status_code} for {action} on {url}")
            return ""
        return response.text
