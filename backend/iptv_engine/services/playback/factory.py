from typing import Dict

from iptv_engine.models.account import AccountType
from iptv_engine.services.playback.base import PlaybackStrategy
from iptv_engine.services.playback.predefined import PredefinedPlaybackStrategy
from iptv_engine.services.playback.stalker import StalkerPlaybackStrategy
from iptv_engine.services.playback.xtream import XtreamPlaybackStrategy


class PlaybackStrategyFactory:
    def __init__(self, stalker: StalkerPlaybackStrategy):
        predefined = PredefinedPlaybackStrategy()
        self._strategies: Dict[AccountType, PlaybackStrategy] = {
            AccountType.STALKER_PORTAL: stalker,
            AccountType.XTREME_API: XtreamPlaybackStrategy(),
            AccountType.M3U8_LOCAL: predefined,
            AccountType.M3U8_URL: predefined,
            AccountType.RSS_FEED: predefined,
        }

    def register(self, account_type: AccountType, strategy: PlaybackStrategy) -> None:
        self._strategies[account_type] = strategy

    def for_account(self, account) -> PlaybackStrategy:
        try:
            return self._strategies[account.type]
        except KeyError:
            raise ValueError(f"No playback strategy for account type {account.type}")


def playback_strategy_for(account, factory: PlaybackStrategyFactory) -> PlaybackStrategy:
    return factory.for_account(account)
