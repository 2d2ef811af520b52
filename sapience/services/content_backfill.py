import httpx
from typing import Callable, Optional
from sqlalchemy.orm import Session
from sapience.core.config import settings
from sapience.core.database import SessionLocal
from sapience.models.article import Article
import logging

logger = logging.getLogger(__name__)


class ContentBackfill:
    """
    Best-effort fetch of an article's full page when the feed only carried an
    excerpt. Failures are logged and swallowed; the article keeps whatever
    body it already had.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.session_factory = session_factory
        self.transport = transport
        self.timeout = settings.CONTENT_FETCH_TIMEOUT
        self.min_length = settings.MIN_CONTENT_LENGTH

    def needs_backfill(self, article: Article) -> bool:
        return not article.content or len(article.content) < self.min_length

    async def fetch_body(self, url: str) -> Optional[str]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": settings.CONTENT_USER_AGENT},
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.text or None
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"HTTP error fetching content {url}: {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            logger.warning(f"Network error fetching content {url}: {str(e)}")
        return None

    async def backfill(self, article: Article, db: Optional[Session] = None) -> bool:
        """Fetch and store the article body inline. Returns True if stored."""
        db = db if db is not None else self.db
        if not self.needs_backfill(article):
            return False

        body = await self.fetch_body(article.link)
        if not body:
            return False

        try:
            article.content = body
            db.commit()
        except Exception as e:
            logger.warning(f"Failed to store content for article {article.id}: {e}")
            db.rollback()
            return False

        logger.debug(f"Stored full content for article {article.id} ({len(body)} chars)")
        return True

    async def backfill_detached(self, article_id: int) -> bool:
        """Backfill in a session of its own, for use as a background task."""
        db = self.session_factory()
        try:
            article = db.query(Article).filter(Article.id == article_id).first()
            if not article:
                logger.info(f"Article {article_id} vanished before backfill")
                return False
            return await self.backfill(article, db=db)
        finally:
            db.close()
