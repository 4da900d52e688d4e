import httpx
import logging
from typing import List

from lxml import etree
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RssItem(BaseModel):
    title: str = ""
    link: str = ""
    description: str = ""


def _text(element, tag: str) -> str:
    child = element.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def parse_rss(content: bytes) -> List[RssItem]:
    """Items of an RSS 2.0 document; enclosures win over <link>."""
    parser = etree.XMLParser(recover=True)
    root = etree.fromstring(content, parser=parser)
    if root is None:
        return []

    channel = root.find("channel")
    feed_link = _text(channel, "link") if channel is not None else ""

    items = []
    for item in root.iter("item"):
        link = _text(item, "link")
        enclosure = item.find("enclosure")
        if enclosure is not None and enclosure.get("url"):
            link = enclosure.get("url").strip()
        if not link:
            continue
        if not link.lower().startswith("http"):
            link = feed_link + link
        items.append(RssItem(
            title=_text(item, "title"),
            link=link,
            description=_text(item, "description"),
        ))
    return items


def read_rss_items(url: str, http_client: httpx.Client) -> List[RssItem]:
    response = http_client.get(url)
    response.raise_for_status()
    items = parse_rss(response.content)
    logger.info(f"Parsed {len(items)} RSS items from {url}")
    return items
