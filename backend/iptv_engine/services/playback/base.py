from typing import Optional


class PlaybackStrategy:
    """Produces the raw (not yet normalized) playback URL for one provider kind."""

    def raw_url(self, account, channel, series_param: str = "", parent_series_id: str = "") -> Optional[str]:
        raise NotImplementedError
