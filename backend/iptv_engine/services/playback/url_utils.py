import logging
import re
from typing import List, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit

from iptv_engine.models.account import AccountMode, AccountType

logger = logging.getLogger(__name__)

FFMPEG_PREFIXES = ("ffmpeg ", "ffmpeg+", "ffmpeg%20")

_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_HOST_PATH = re.compile(r"^[a-zA-Z0-9.-]+(?::\d+)?/.*")
_EXTENSION = re.compile(r"^[a-zA-Z0-9]+$")


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def extract_playable_url(raw: Optional[str]) -> Optional[str]:
    """Drop an ``ffmpeg`` prefix, else keep the last space separated token."""
    if _blank(raw):
        return raw
    value = raw.strip()
    lower = value.lower()
    for prefix in FFMPEG_PREFIXES:
        if lower.startswith(prefix):
            return value[len(prefix):].strip()
    parts = value.split(" ")
    if len(parts) > 1:
        return parts[-1]
    return value


def _portal_parts(account):
    portal = (getattr(account, "server_portal_url", None) or "").strip()
    if not portal:
        return "http", None
    parsed = urlsplit(portal)
    return parsed.scheme or "http", parsed


def normalize_stream_url(account, url: Optional[str]) -> Optional[str]:
    if _blank(url):
        return url
    value = url.strip()
    scheme, portal = _portal_parts(account)

    if _SCHEME.match(value):
        lower = value.lower()
        if (account is not None and account.type == AccountType.STALKER_PORTAL
                and scheme.lower() == "http" and lower.startswith("https://")
                and ("/live/play/" in lower or "/play/movie.php" in lower)):
            return "http://" + value[len("https://"):]
        return value

    if value.startswith("//"):
        return f"{scheme}:{value}"

    if value.startswith("/"):
        if portal is not None and portal.hostname:
            try:
                port = portal.port
            except ValueError:
                port = None
            return f"{scheme}://{portal.hostname}{':' + str(port) if port else ''}{value}"
        return value

    if _HOST_PATH.match(value):
        return f"{scheme}://{value}"
    return value


def _strip_ffmpeg(value: str) -> str:
    lower = value.lower()
    for prefix in FFMPEG_PREFIXES:
        if lower.startswith(prefix):
            return lower[len(prefix):].strip()
    return lower


def is_usable_live_url(url: Optional[str]) -> bool:
    """False for blank URLs and for URLs carrying an empty ``stream`` query value."""
    if _blank(url):
        return False
    normalized = _strip_ffmpeg(url.strip())
    if "stream=&" in normalized:
        return False
    query = normalized.split("?", 1)[1] if "?" in normalized else ""
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == "stream" and not value.strip():
            return False
    return True


def channel_cmd_candidates(channel) -> List[str]:
    candidates = []
    for value in (channel.cmd, channel.cmd_1, channel.cmd_2, channel.cmd_3):
        if not _blank(value) and value not in candidates:
            candidates.append(value)
    return candidates


def resolve_best_channel_cmd(account, channel) -> str:
    if channel is None:
        return ""
    if account is not None and account.type == AccountType.STALKER_PORTAL and account.mode == AccountMode.ITV:
        for cmd in (channel.cmd, channel.cmd_1, channel.cmd_2, channel.cmd_3):
            if is_usable_live_url(cmd):
                return cmd
    return channel.cmd or ""


# ============================================================================
# Query recovery
# ============================================================================

def _cmd_prefix(cmd: str) -> str:
    return "ffmpeg" if cmd.strip().startswith("ffmpeg ") else ""


def _cmd_url(cmd: str) -> str:
    trimmed = cmd.strip()
    if trimmed.startswith("ffmpeg "):
        return trimmed[len("ffmpeg "):].strip()
    return trimmed


def _resolve_base(resolved_base: str, original_base: str) -> str:
    trimmed = resolved_base.strip()
    if not trimmed or _SCHEME.match(trimmed) or trimmed.startswith("//") or _blank(original_base):
        return trimmed
    original = urlsplit(original_base.strip())
    if not original.scheme or not original.netloc:
        return trimmed
    return urljoin(original_base.strip(), trimmed)


def merge_missing_query_params(resolved_cmd: Optional[str], original_cmd: Optional[str]) -> Optional[str]:
    """
    Fill blank or missing query values of ``resolved_cmd`` from
    ``original_cmd``. The resolved key order is kept and a relative
    resolved base is resolved against the original URL.
    """
    if _blank(resolved_cmd) or _blank(original_cmd):
        return resolved_cmd
    resolved_url = _cmd_url(resolved_cmd)
    original_url = _cmd_url(original_cmd)
    if "?" not in resolved_url or "?" not in original_url:
        return resolved_cmd

    resolved_base, resolved_query = resolved_url.split("?", 1)
    original_base, original_query = original_url.split("?", 1)
    params = dict(parse_qsl(resolved_query, keep_blank_values=True))
    for key, value in parse_qsl(original_query, keep_blank_values=True):
        if _blank(params.get(key)) and not _blank(value):
            params[key] = value

    merged = f"{_resolve_base(resolved_base, original_base)}?{urlencode(params)}"
    prefix = _cmd_prefix(resolved_cmd) or _cmd_prefix(original_cmd)
    return f"{prefix} {merged}" if prefix else merged


def extract_stream_token(series_param: Optional[str]) -> str:
    if _blank(series_param):
        return ""
    trimmed = series_param.strip()
    colon = trimmed.find(":")
    if colon > 0:
        trimmed = trimmed[:colon]
    return re.sub(r"[^0-9]", "", trimmed)


def normalize_series_stream_placeholder(resolved_cmd: Optional[str], series_param: Optional[str]) -> Optional[str]:
    """Put the episode stream index into a ``stream=.`` or empty ``stream=`` slot."""
    if _blank(resolved_cmd) or _blank(series_param):
        return resolved_cmd
    token = extract_stream_token(series_param)
    if not token:
        return resolved_cmd
    if "stream=.&" in resolved_cmd:
        return resolved_cmd.replace("stream=.&", f"stream={token}&")
    if resolved_cmd.endswith("stream=."):
        return resolved_cmd[:-len("stream=.")] + f"stream={token}"
    if "stream=&" in resolved_cmd:
        return resolved_cmd.replace("stream=&", f"stream={token}&")
    if resolved_cmd.endswith("stream="):
        return resolved_cmd + token
    return resolved_cmd


def infer_extension(cmd: Optional[str]) -> str:
    playable = extract_playable_url(cmd)
    if _blank(playable):
        return ""
    clean = playable.split("?", 1)[0].split("#", 1)[0]
    segment = clean.rsplit("/", 1)[-1]
    dot = segment.rfind(".")
    if dot <= 0 or dot >= len(segment) - 1:
        return ""
    extension = segment[dot + 1:]
    return extension if _EXTENSION.match(extension) else ""
