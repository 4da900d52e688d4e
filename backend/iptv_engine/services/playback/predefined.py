import logging
from typing import Optional

from iptv_engine.services.playback.base import PlaybackStrategy
from iptv_engine.services.playback.url_utils import resolve_best_channel_cmd

logger = logging.getLogger(__name__)


class PredefinedPlaybackStrategy(PlaybackStrategy):
    """M3U and RSS channels already carry their stream URL."""

    def raw_url(self, account, channel, series_param: str = "", parent_series_id: str = "") -> Optional[str]:
        logger.info(f"Using direct channel command for {account.type.value} account {account.name}")
        return resolve_best_channel_cmd(account, channel)
