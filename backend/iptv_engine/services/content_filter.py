from typing import List

from iptv_engine.schemas import Category, Channel
from iptv_engine.services.configuration import ConfigurationService


def parse_blocklist(comma_separated: str) -> List[str]:
    return [word.strip().lower() for word in (comma_separated or "").split(",") if word.strip()]


def contains_blocked_word(text: str, blocked: List[str]) -> bool:
    value = (text or "").lower()
    return any(word in value for word in blocked)


class ContentFilter:
    """Drops censored categories/channels using the configured blocklists."""

    def __init__(self, configuration: ConfigurationService):
        self.configuration = configuration

    def filter_categories(self, categories: List[Category]) -> List[Category]:
        blocked = parse_blocklist(self.configuration.filter_categories_list)
        if not blocked or self.configuration.pause_filtering:
            return categories
        return [
            c for c in categories
            if not contains_blocked_word(c.title, blocked) and c.censored != 1
        ]

    def filter_channels(self, channels: List[Channel]) -> List[Channel]:
        blocked = parse_blocklist(self.configuration.filter_channels_list)
        if not blocked or self.configuration.pause_filtering:
            return channels
        return [
            c for c in channels
            if not contains_blocked_word(c.name, blocked) and c.censored != 1
        ]
