import feedparser
import httpx
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional
from sapience.core.config import settings
import logging

logger = logging.getLogger(__name__)


class FeedFetchError(Exception):
    """A feed document could not be fetched or parsed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


@dataclass
class FeedItem:
    title: str
    link: str
    description: str = ""
    content: Optional[str] = None
    author: str = ""
    categories: List[str] = field(default_factory=list)
    published: Optional[datetime] = None
    guid: Optional[str] = None
    external_id: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class ParsedFeed:
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    items: List[FeedItem] = field(default_factory=list)


class FeedSourceClient:
    """Fetches one feed document over HTTP and normalizes its entries."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.FEED_FETCH_TIMEOUT
        self.user_agent = user_agent or settings.FEED_USER_AGENT
        self.transport = transport

    async def fetch(self, url: str) -> ParsedFeed:
        """Fetch and parse a single feed.

        Raises:
            FeedFetchError: on network error, timeout, HTTP error status or an
                unparsable document.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FeedFetchError(url, f"timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise FeedFetchError(url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FeedFetchError(url, f"network error: {e}") from e

        return self.parse(url, response.text)

    def parse(self, url: str, document: str) -> ParsedFeed:
        parsed = feedparser.parse(document)

        # feedparser is lenient; only give up when nothing usable came out
        if parsed.bozo and not parsed.entries and not parsed.feed.get("title"):
            raise FeedFetchError(
                url, f"unparsable document: {parsed.get('bozo_exception')}"
            )

        feed_info = parsed.feed
        icon = None
        if feed_info.get("image"):
            icon = feed_info.image.get("href") or feed_info.image.get("url")
        icon = icon or feed_info.get("icon") or feed_info.get("logo")

        items = []
        for entry in parsed.entries:
            item = self._normalize_entry(entry)
            if item is not None:
                items.append(item)

        logger.debug(f"Parsed {len(items)} items from {url}")
        return ParsedFeed(
            url=url,
            title=feed_info.get("title"),
            description=feed_info.get("description") or feed_info.get("subtitle"),
            icon=icon,
            items=items,
        )

    def _normalize_entry(self, entry) -> Optional[FeedItem]:
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            return None

        content = None
        if entry.get("content"):
            content = entry.content[0].get("value") or None

        guid = entry.get("guid") or None
        # Atom <id> when the entry carries no RSS guid
        external_id = entry.get("id") or None

        return FeedItem(
            title=title,
            link=link,
            description=entry.get("summary", entry.get("description", "")) or "",
            content=content,
            author=entry.get("author", "") or "",
            categories=[
                tag.get("term") for tag in entry.get("tags", []) if tag.get("term")
            ],
            published=self._parse_date(
                entry.get("published", entry.get("updated"))
            ),
            guid=guid,
            external_id=external_id,
            image_url=self._extract_image(entry),
        )

    def _parse_date(self, date_string: Optional[str]) -> Optional[datetime]:
        """Parse RFC 2822 or ISO 8601 dates into naive UTC datetimes."""
        if not date_string:
            return None

        try:
            parsed = parsedate_to_datetime(date_string)
        except (TypeError, ValueError):
            try:
                parsed = datetime.fromisoformat(date_string.replace("Z", "+00:00"))
            except ValueError:
                logger.warning(f"Could not parse date: {date_string}")
                return None

        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    def _extract_image(self, entry) -> Optional[str]:
        """Pick the entry's image: enclosure first, then media content/thumbnail."""
        for enclosure in entry.get("enclosures", []) or []:
            url = enclosure.get("href") or enclosure.get("url")
            if url:
                return url

        for media in entry.get("media_content", []) or []:
            if media.get("url"):
                return media["url"]

        for thumb in entry.get("media_thumbnail", []) or []:
            if thumb.get("url"):
                return thumb["url"]

        return None
