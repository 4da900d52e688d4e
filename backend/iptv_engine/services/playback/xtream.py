import logging
from typing import Optional

from iptv_engine.models.account import AccountMode
from iptv_engine.services.playback.base import PlaybackStrategy
from iptv_engine.services.playback.url_utils import infer_extension, resolve_best_channel_cmd

logger = logging.getLogger(__name__)


def xtream_playback_base(url: Optional[str]) -> str:
    base = (url or "").strip()
    if not base:
        return ""
    if base.endswith("player_api.php"):
        base = base[:-len("player_api.php")]
    if not base.endswith("/"):
        base += "/"
    return base


class XtreamPlaybackStrategy(PlaybackStrategy):
    """Builds ``base/type/user/pass/id.ext`` without a network round trip."""

    def raw_url(self, account, channel, series_param: str = "", parent_series_id: str = "") -> Optional[str]:
        if channel is None:
            return ""
        fallback_cmd = resolve_best_channel_cmd(account, channel)

        base = xtream_playback_base(account.url)
        if not base:
            logger.warning(f"Xtream base URL is blank for {account.name}, using channel cmd")
            return fallback_cmd
        if not account.username or not account.password or not channel.channel_id:
            logger.warning(f"Xtream URL parts missing for {account.name}, using channel cmd")
            return fallback_cmd

        extension = infer_extension(fallback_cmd)
        if (parent_series_id or "").strip() or account.mode == AccountMode.SERIES:
            stream_type = "series"
            extension = extension or "mp4"
        elif account.mode == AccountMode.VOD:
            stream_type = "movie"
            extension = extension or "mp4"
        else:
            stream_type = "live"
            extension = extension or "ts"
        return f"{base}{stream_type}/{account.username}/{account.password}/{channel.channel_id}.{extension}"
