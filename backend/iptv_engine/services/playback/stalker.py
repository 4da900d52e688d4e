import logging
from typing import Callable, Dict, List, Optional

from iptv_engine.models.account import AccountMode
from iptv_engine.services.playback.base import PlaybackStrategy
from iptv_engine.services.playback.retry import RetryPolicy
from iptv_engine.services.playback.url_utils import (
    channel_cmd_candidates, is_usable_live_url, merge_missing_query_params,
    normalize_series_stream_placeholder, resolve_best_channel_cmd,
)
from iptv_engine.services.session import SessionManager
from iptv_engine.services.stalker import js_timestamp, load_json

logger = logging.getLogger(__name__)


def create_link_params(account, cmd: str, series_param: str) -> Dict[str, str]:
    is_series = account.mode == AccountMode.SERIES
    return {
        "type": AccountMode.VOD.value if is_series else account.mode.value,
        "action": "create_link",
        "cmd": cmd,
        "series": (series_param or "") if is_series else "",
        "forced_storage": "undefined",
        "disable_ad": "0",
        "download": "0",
        "JsHttpRequest": js_timestamp(),
    }


def parse_create_link(body: str) -> Optional[str]:
    """``js.cmd``, then ``js.url``, then a root ``cmd``."""
    root = load_json(body)
    if not isinstance(root, dict):
        return None
    js = root.get("js")
    if isinstance(js, dict):
        for key in ("cmd", "url"):
            value = js.get(key)
            if isinstance(value, str) and value.strip():
                return value
    cmd = root.get("cmd")
    return cmd if isinstance(cmd, str) and cmd.strip() else None


def rescue_with_candidates(resolved: Optional[str], candidates: List[str]) -> Optional[str]:
    """Merge query values from each original candidate until the URL becomes usable."""
    if not resolved or not candidates:
        return resolved
    fixed = resolved
    for candidate in candidates:
        fixed = merge_missing_query_params(fixed, candidate)
        if is_usable_live_url(fixed):
            return fixed
    return fixed


class StalkerPlaybackStrategy(PlaybackStrategy):
    def __init__(self, session_manager: SessionManager, ensure_portal_url: Callable[[object], Optional[str]],
                 retry_policy: Optional[RetryPolicy] = None):
        self.session = session_manager
        self.ensure_portal_url = ensure_portal_url
        self.retry_policy = retry_policy or RetryPolicy(max_retries=1)

    def raw_url(self, account, channel, series_param: str = "", parent_series_id: str = "") -> Optional[str]:
        logger.info(f"Resolving playback URL for Stalker Portal account: {account.name}")
        cmd = resolve_best_channel_cmd(account, channel)
        live = account.mode == AccountMode.ITV and channel is not None
        if not cmd.strip() and not (live and channel_cmd_candidates(channel)):
            # nothing to hand to create_link, skip the handshake
            return cmd
        self._ensure_session(account)
        if live:
            return self.resolve_live(account, channel, series_param)
        return self.fetch_portal_url(account, series_param, cmd)

    def _ensure_session(self, account) -> None:
        if not account.server_portal_url:
            self.ensure_portal_url(account)
        self.session.ensure_connected(account)

    def resolve_live(self, account, channel, series_param: str = "") -> Optional[str]:
        candidates = channel_cmd_candidates(channel)
        fallback_cmd = resolve_best_channel_cmd(account, channel)
        if not candidates and fallback_cmd:
            candidates.append(fallback_cmd)

        logger.info(f"Live create_link candidates: {len(candidates)}")
        for cmd in candidates:
            resolved = self.fetch_portal_url(account, series_param, cmd)
            if is_usable_live_url(resolved):
                return resolved
            rescued = rescue_with_candidates(resolved, candidates)
            if is_usable_live_url(rescued):
                logger.info("Recovered live URL by merging query values from an alternate cmd")
                return rescued

        logger.warning(f"No usable live URL for channel {channel.channel_id}, using original cmd")
        return fallback_cmd or channel.cmd

    def create_link(self, account, series_param: str, cmd: str) -> Optional[str]:
        body = self.session.fetch(account, create_link_params(account, cmd, series_param))
        resolved = parse_create_link(body)
        if not resolved:
            logger.info("create_link returned no cmd for the given command")
        return resolved

    def fetch_portal_url(self, account, series_param: str, original_cmd: Optional[str]) -> Optional[str]:
        if not original_cmd or not original_cmd.strip():
            return original_cmd

        resolved = self.retry_policy.call(
            lambda: self.create_link(account, series_param, original_cmd),
            on_retry=lambda: self.session.hard_token_refresh(account),
        )
        if not resolved:
            logger.warning("create_link failed after retry, using original channel cmd")
            return original_cmd

        resolved = normalize_series_stream_placeholder(resolved, series_param)
        merged = merge_missing_query_params(resolved, original_cmd)
        if merged != resolved:
            logger.info("create_link had missing query params, merged them from the original cmd")
        logger.info(f"create_link resolved URL: {merged}")
        return merged
