import httpx
import logging
import re
from typing import Optional

from iptv_engine.services.stalker import STB_USER_AGENT, STB_X_USER_AGENT

logger = logging.getLogger(__name__)

# Common Stalker API paths, probed in order
PROBE_PATHS = [
    "/server/load.php",
    "/portal.php",
    "/c/portal.php",
    "/stalker_portal/server/load.php",
    "/stalker_portal/c/portal.php",
    "/server/portal.php",
    "/mag/c/portal.php",
]
HANDSHAKE_QUERY = "?type=stb&action=handshake&JsHttpRequest=1-xml"
DEFAULT_LOADER = "portal.php"

# Quoted path ending in portal.php / load.php inside xpcom.common.js
_LOADER_PATTERNS = [
    re.compile(r"""['"]([^'"\s]*?portal\.php)""", re.IGNORECASE),
    re.compile(r"""['"]([^'"\s]*?load\.php)""", re.IGNORECASE),
]


def ensure_absolute_url(url: Optional[str]) -> str:
    if not url or not url.strip():
        return "http://"
    url = url.strip()
    if "://" in url:
        return url if url.endswith("/") else url + "/"
    return "http://" + url


def combine_url_with_path(base_url: str, path: str) -> str:
    if not path:
        return base_url
    base = base_url if base_url.endswith("/") else base_url + "/"
    return base + path.lstrip("/")


def parse_portal_api_server(js_contents: str, url: str) -> Optional[str]:
    """Extract the API loader path from an xpcom.common.js body."""
    for pattern in _LOADER_PATTERNS:
        for match in pattern.finditer(js_contents or ""):
            path = match.group(1)
            # Skip protocol/host concatenation fragments such as "'://'"
            if "://" in path:
                if re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^/]+/", path):
                    return path
                continue
            return combine_url_with_path(ensure_absolute_url(url), path)
    return None


class PortalDiscovery:
    """Finds the Stalker API endpoint behind a user-supplied portal URL."""

    def __init__(self, http_client: httpx.Client, probe_timeout: float = 10.0):
        self.http_client = http_client
        self.probe_timeout = probe_timeout

    def discover(self, account) -> str:
        url = account.url or ""

        # 1. Direct handshake probes against well known paths
        found = self.probe_known_paths(url, account.mac_address)
        if found:
            logger.info(f"Found Stalker API via direct probe: {found}")
            return found

        # 2. Parse the portal's xpcom.common.js
        try:
            parsed = self._from_xpcom(url)
            if parsed:
                logger.info(f"Found Stalker API via xpcom.common.js: {parsed}")
                return parsed
        except httpx.HTTPError as e:
            logger.warning(f"xpcom.common.js lookup failed for {url}: {e}")

        # 3. Hard fallback
        fallback = combine_url_with_path(ensure_absolute_url(url), DEFAULT_LOADER)
        logger.info(f"Falling back to default portal endpoint: {fallback}")
        return fallback

    def probe_known_paths(self, base_url: str, mac_address: Optional[str]) -> Optional[str]:
        clean_base = ensure_absolute_url(base_url).rstrip("/")
        for path in PROBE_PATHS:
            target = clean_base + path
            if self._check_handshake(target, mac_address):
                return target
        return None

    def _check_handshake(self, api_url: str, mac_address: Optional[str]) -> bool:
        logger.debug(f"Checking handshake for: {api_url}")
        headers = {
            "User-Agent": STB_USER_AGENT,
            "X-User-Agent": STB_X_USER_AGENT,
            "Referer": api_url,
            "Cookie": f"mac={mac_address or ''}; stb_lang=en; timezone=GMT",
        }
        try:
            response = self.http_client.get(api_url + HANDSHAKE_QUERY, headers=headers, timeout=self.probe_timeout)
        except httpx.HTTPError:
            # Timeouts and refused connections are expected while probing
            return False
        if response.status_code != 200:
            return False
        body = response.text or ""
        return '"token"' in body or '"js"' in body

    def _from_xpcom(self, url: str) -> Optional[str]:
        ping_url = combine_url_with_path(ensure_absolute_url(url), "xpcom.common.js")
        response = self.http_client.get(ping_url, headers={"User-Agent": STB_USER_AGENT}, timeout=self.probe_timeout)
        if response.status_code != 200:
            return None
        return parse_portal_api_server(response.text.replace(" ", ""), url)
