import httpx
import logging
import re
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

EXTINF = "#EXTINF"
EXT_X_KEY = "#EXT-X-KEY"
KODIPROP_INPUTSTREAM_ADDON = "#KODIPROP:inputstreamaddon="
KODIPROP_MANIFEST_TYPE = "#KODIPROP:inputstream.adaptive.manifest_type="
KODIPROP_LICENSE_TYPE = "#KODIPROP:inputstream.adaptive.license_type="
KODIPROP_LICENSE_KEY = "#KODIPROP:inputstream.adaptive.license_key="

ALL_GROUP = "All"
UNCATEGORIZED_GROUP = "Uncategorized"

WIDEVINE = "com.widevine.alpha"
CLEARKEY = "org.w3.clearkey"
CLEARKEY_ALIASES = {"clearkey", "org.w3.clearkey", "com.clearkey.alpha"}

_KEYFORMAT = re.compile(r'KEYFORMAT="(.*?)"')
_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_WINDOWS_PATH = re.compile(r"^[a-zA-Z]:\\")
_MEDIA_FILE = re.compile(r"^.+\.(m3u8|mpd|ts|aac|mp3|mp4|m4s)(\?.*)?$", re.IGNORECASE)
_ESCAPES = [
    (re.compile(r"\\u002f", re.IGNORECASE), "/"),
    (re.compile(r"\\u003a", re.IGNORECASE), ":"),
    (re.compile(r"\\u003f", re.IGNORECASE), "?"),
    (re.compile(r"\\u003d", re.IGNORECASE), "="),
    (re.compile(r"\\u0026", re.IGNORECASE), "&"),
]


class PlaylistEntry(BaseModel):
    id: str = ""
    group_title: str = ""
    title: str = ""
    url: str = ""
    logo: str = ""
    drm_type: Optional[str] = None
    drm_license_url: Optional[str] = None
    clear_keys: Optional[Dict[str, str]] = None
    inputstream_addon: Optional[str] = None
    manifest_type: Optional[str] = None


# ============================================================================
# Line helpers
# ============================================================================

def parse_item(line: str, key: str) -> str:
    """Value of an attribute such as ``group-title="..."``."""
    parts = line.split(key, 1)
    if len(parts) > 1:
        return parts[1].split('"')[0]
    return ""


def parse_title(line: str) -> str:
    index = line.rfind(",")
    if index != -1 and index < len(line) - 1:
        return line[index + 1:].strip()
    return ""


def parse_drm_type(line: str) -> Optional[str]:
    match = _KEYFORMAT.search(line)
    if match and match.group(1).lower() == WIDEVINE:
        return WIDEVINE
    return None


def parse_clear_keys(value: str) -> Dict[str, str]:
    keys = {}
    for pair in value.split(";"):
        parts = pair.split(":")
        if len(parts) == 2:
            keys[parts[0].strip()] = parts[1].strip()
    return keys


def normalize_potential_url(value: str) -> str:
    if not value or not value.strip():
        return value
    normalized = value.strip().replace("\\/", "/")
    for pattern, replacement in _ESCAPES:
        normalized = pattern.sub(replacement, normalized)
    return normalized


def is_likely_stream_url(value: str) -> bool:
    if not value or not value.strip():
        return False
    candidate = value.strip()
    if candidate.startswith("#"):
        return False
    if _SCHEME.match(candidate):
        return True
    if candidate.startswith(("//", "/", "./", "../")) or _WINDOWS_PATH.match(candidate):
        return True
    if "/" in candidate:
        return True
    return bool(_MEDIA_FILE.match(candidate))


def entry_id(title: str, url: str) -> str:
    """Stable id for entries without a tvg-id."""
    return str(uuid.uuid3(uuid.NAMESPACE_URL, f"{title}{url}"))


# ============================================================================
# Parsers
# ============================================================================

def parse_m3u_categories(text: str) -> List[PlaylistEntry]:
    """Distinct groups of a playlist, always starting with ``All``."""
    categories = [PlaylistEntry(id=ALL_GROUP, group_title=ALL_GROUP)]
    seen = {ALL_GROUP.lower()}
    has_uncategorized = False
    for line in (text or "").splitlines():
        if not line.startswith(EXTINF):
            continue
        group_title = parse_item(line, 'group-title="')
        if group_title and group_title.lower() != ALL_GROUP.lower():
            if group_title.lower() == UNCATEGORIZED_GROUP.lower():
                has_uncategorized = True
            if group_title.lower() not in seen:
                seen.add(group_title.lower())
                categories.append(PlaylistEntry(id=parse_item(line, 'tvg-id="'), group_title=group_title))
        else:
            has_uncategorized = True
    if has_uncategorized and UNCATEGORIZED_GROUP.lower() not in seen:
        categories.append(PlaylistEntry(id=UNCATEGORIZED_GROUP, group_title=UNCATEGORIZED_GROUP))
    return categories


def parse_m3u_entries(text: str) -> List[PlaylistEntry]:
    lines = (text or "").splitlines()
    entries: List[PlaylistEntry] = []
    index = 0
    while index < len(lines):
        line = lines[index]
        index += 1
        if not line.startswith(EXTINF):
            continue

        entry = PlaylistEntry(
            id=parse_item(line, 'tvg-id="'),
            group_title=parse_item(line, 'group-title="'),
            title=parse_title(line),
            logo=parse_item(line, 'tvg-logo="'),
        )
        url = None
        while index < len(lines):
            next_line = lines[index]
            trimmed = next_line.strip()
            if trimmed.startswith(EXTINF):
                break
            index += 1
            if next_line.startswith(EXT_X_KEY):
                entry.drm_type = parse_drm_type(next_line)
                entry.drm_license_url = parse_item(next_line, 'URI="')
            elif next_line.startswith(KODIPROP_INPUTSTREAM_ADDON):
                entry.inputstream_addon = next_line[len(KODIPROP_INPUTSTREAM_ADDON):].strip()
            elif next_line.startswith(KODIPROP_MANIFEST_TYPE):
                entry.manifest_type = next_line[len(KODIPROP_MANIFEST_TYPE):].strip()
            elif next_line.startswith(KODIPROP_LICENSE_TYPE):
                license_type = next_line[len(KODIPROP_LICENSE_TYPE):].strip().lower()
                if license_type == WIDEVINE:
                    entry.drm_type = WIDEVINE
                elif license_type in CLEARKEY_ALIASES:
                    entry.drm_type = CLEARKEY
            elif next_line.startswith(KODIPROP_LICENSE_KEY):
                key = next_line[len(KODIPROP_LICENSE_KEY):].strip()
                if entry.drm_type == CLEARKEY:
                    entry.clear_keys = {**(entry.clear_keys or {}), **parse_clear_keys(key)}
                else:
                    entry.drm_license_url = key
            elif trimmed and not trimmed.startswith("#"):
                candidate = normalize_potential_url(trimmed)
                if is_likely_stream_url(candidate):
                    url = candidate
                    break

        if url:
            entry.url = url
            if not entry.id:
                entry.id = entry_id(entry.title, url)
            entries.append(entry)
    return entries


def filter_entries_by_category(entries: List[PlaylistEntry], category: str,
                               has_other_categories: bool) -> List[PlaylistEntry]:
    wanted = (category or "").strip().lower()
    result = []
    for entry in entries:
        group = (entry.group_title or "").strip()
        if wanted == ALL_GROUP.lower():
            result.append(entry)
        elif wanted == UNCATEGORIZED_GROUP.lower():
            if has_other_categories and (not group or group.lower() == UNCATEGORIZED_GROUP.lower()):
                result.append(entry)
        elif group.lower() == wanted or (entry.id and entry.id.lower() == wanted):
            result.append(entry)
    return result


# ============================================================================
# Sources
# ============================================================================

def read_m3u_url(url: str, http_client: httpx.Client) -> str:
    response = http_client.get(url)
    response.raise_for_status()
    return response.text


def read_m3u_file(path: str) -> str:
    return Path(path).read_text(encoding="utf-8", errors="replace")


def parse_m3u_url(url: str, http_client: httpx.Client) -> List[PlaylistEntry]:
    return parse_m3u_entries(read_m3u_url(url, http_client))


def parse_m3u_file(path: str) -> List[PlaylistEntry]:
    return parse_m3u_entries(read_m3u_file(path))
