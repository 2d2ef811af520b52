from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sapience.models.article import Article
from sapience.models.feed import Feed
from sapience.services.article_store import ArticleStore
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.content_backfill import ContentBackfill
from sapience.services.feed_client import FeedFetchError, FeedSourceClient, ParsedFeed
from sapience.core.logging_config import log_pipeline_event
import logging

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    success: int = 0
    failed: int = 0
    new_articles: int = 0
    new_article_ids: List[int] = field(default_factory=list)
    failed_feeds: List[int] = field(default_factory=list)


class FeedRefresher:
    def __init__(
        self,
        db: Session,
        client: Optional[FeedSourceClient] = None,
        backfill: Optional[ContentBackfill] = None,
        background: Optional[BackgroundTaskSet] = None,
    ):
        self.db = db
        self.client = client or FeedSourceClient()
        self.store = ArticleStore(db)
        self.backfill = backfill or ContentBackfill(db)
        self.background = background

    async def subscribe(
        self,
        url: str,
        category_id: Optional[int] = None,
        auto_refresh: bool = True,
    ) -> Feed:
        """Validate a feed URL by fetching it, then create the feed and its articles.

        Raises:
            FeedFetchError: if the document cannot be fetched or parsed.
        """
        parsed = await self.client.fetch(url)

        feed = Feed(
            url=url,
            title=parsed.title or "Untitled Feed",
            description=parsed.description or "",
            favicon=parsed.icon or "",
            category_id=category_id,
            auto_refresh=auto_refresh,
            last_fetched=datetime.utcnow(),
        )
        self.db.add(feed)
        self.db.commit()
        self.db.refresh(feed)

        created = self.store.ingest(feed, parsed.items)
        await self._backfill_new(created, detach=False)

        log_pipeline_event(
            "feed.subscribed",
            f"Subscribed to {url} with {len(created)} articles",
            feed_id=feed.id,
            new_articles=len(created),
        )
        return feed

    async def refresh_feed(self, feed: Feed, detach_backfill: bool = False) -> List[Article]:
        """Fetch one feed and store its new articles.

        Raises:
            FeedFetchError: if the feed could not be fetched or parsed.
        """
        logger.info(f"Refreshing feed: {feed.title} ({feed.url})")
        parsed = await self.client.fetch(feed.url)

        self._update_metadata(feed, parsed)
        created = self.store.ingest(feed, parsed.items)

        await self._backfill_new(created, detach=detach_backfill)

        logger.info(f"Fetched {len(created)} new articles from {feed.url}")
        return created

    async def refresh_all(
        self, auto_refresh_only: bool = False, detach_backfill: bool = True
    ) -> RefreshResult:
        """Refresh every feed; one failing feed never aborts its siblings."""
        query = self.db.query(Feed)
        if auto_refresh_only:
            query = query.filter(Feed.auto_refresh.isnot(False))
        feeds = query.order_by(Feed.id).all()

        result = RefreshResult()
        for feed in feeds:
            try:
                created = await self.refresh_feed(feed, detach_backfill=detach_backfill)
            except FeedFetchError as e:
                logger.warning(f"Error refreshing feed {feed.url}: {e.reason}")
                result.failed += 1
                result.failed_feeds.append(feed.id)
                continue
            except Exception as e:
                logger.error(f"Unexpected error refreshing feed {feed.url}: {str(e)}")
                self.db.rollback()
                result.failed += 1
                result.failed_feeds.append(feed.id)
                continue

            result.success += 1
            result.new_articles += len(created)
            result.new_article_ids.extend(article.id for article in created)

        log_pipeline_event(
            "feed.refresh_all.completed",
            f"Completed feed refresh. Added {result.new_articles} new articles.",
            success=result.success,
            failed=result.failed,
            new_articles=result.new_articles,
        )
        return result

    def _update_metadata(self, feed: Feed, parsed: ParsedFeed) -> None:
        if parsed.title:
            feed.title = parsed.title
        if parsed.description:
            feed.description = parsed.description
        if parsed.icon:
            feed.favicon = parsed.icon
        feed.last_fetched = datetime.utcnow()
        self.db.commit()

    async def _backfill_new(self, articles: List[Article], detach: bool) -> None:
        for article in articles:
            if not self.backfill.needs_backfill(article):
                continue
            if detach and self.background is not None:
                self.background.spawn(
                    self.backfill.backfill_detached(article.id),
                    name=f"backfill-{article.id}",
                )
            else:
                await self.backfill.backfill(article)
