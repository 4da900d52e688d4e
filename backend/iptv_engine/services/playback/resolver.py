import logging

from iptv_engine.schemas import PlayerResponse
from iptv_engine.services.cache_store import CacheStoreError
from iptv_engine.services.playback.factory import PlaybackStrategyFactory, playback_strategy_for
from iptv_engine.services.playback.url_utils import extract_playable_url, normalize_stream_url

logger = logging.getLogger(__name__)


class PlaybackResolver:
    def __init__(self, strategies: PlaybackStrategyFactory):
        self.strategies = strategies

    def resolve(self, account, channel, series_param: str = "", parent_series_id: str = "") -> PlayerResponse:
        original_cmd = channel.cmd if channel is not None else None
        try:
            raw_url = playback_strategy_for(account, self.strategies).raw_url(
                account, channel, series_param or "", parent_series_id or "",
            )
        except CacheStoreError:
            raise
        except Exception as e:
            logger.error(f"Error resolving playback for {account.name}: {e}")
            raw_url = original_cmd

        url = normalize_stream_url(account, extract_playable_url(raw_url))
        logger.info(f"Final resolved URL: {url}")

        response = PlayerResponse(url=url)
        if channel is not None:
            response.drm_type = channel.drm_type
            response.drm_license_url = channel.drm_license_url
            response.clear_keys = channel.clear_keys
            response.inputstream_addon = channel.inputstream_addon
            response.manifest_type = channel.manifest_type
        return response
