"""
Article persistence and deduplication.

An article's identity key is the feed item's guid, falling back to its external
id and then its link. Keys already stored for a feed are never inserted again,
which keeps repeated refreshes of the same document idempotent.
"""

from datetime import datetime
from typing import Iterable, List, Optional
from sqlalchemy import func, nulls_last, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sapience.models.article import Article
from sapience.models.article_summary import ArticleSummary, SUMMARY_ERROR_SENTINEL
from sapience.models.feed import Feed
from sapience.services.feed_client import FeedItem
import logging

logger = logging.getLogger(__name__)


def identity_key(item: FeedItem) -> str:
    return item.guid or item.external_id or item.link


class ArticleStore:
    def __init__(self, db: Session):
        self.db = db

    # Ingestion

    def existing_keys(self, feed_id: int) -> set:
        rows = self.db.query(Article.guid).filter(Article.feed_id == feed_id).all()
        return {guid for (guid,) in rows if guid}

    def ingest(self, feed: Feed, items: Iterable[FeedItem]) -> List[Article]:
        """Insert the items whose identity key is not yet stored for this feed.

        Returns the newly created articles.
        """
        seen = self.existing_keys(feed.id)
        created = []

        for item in items:
            key = identity_key(item)
            if key in seen:
                continue
            seen.add(key)

            try:
                article = Article(
                    feed_id=feed.id,
                    title=item.title,
                    link=item.link,
                    description=item.description or "",
                    content=item.content,
                    author=item.author or "",
                    category=", ".join(item.categories),
                    published_date=item.published,
                    guid=key,
                    image_url=item.image_url or "",
                    is_read=False,
                    is_favorite=False,
                )
                self.db.add(article)
                self.db.commit()
                created.append(article)
            except SQLAlchemyError as e:
                # e.g. the same guid already ingested through another feed
                logger.error(f"Skipping article {item.link}: {str(e)}")
                self.db.rollback()
                continue

        if created:
            logger.info(f"Stored {len(created)} new articles for feed {feed.id}")
        return created

    # Article read/write paths

    def get_article(self, article_id: int) -> Optional[Article]:
        return self.db.query(Article).filter(Article.id == article_id).first()

    def get_articles(
        self, feed_id: Optional[int] = None, skip: int = 0, limit: int = 100
    ) -> List[Article]:
        query = self.db.query(Article)
        if feed_id is not None:
            query = query.filter(Article.feed_id == feed_id)
        return (
            query.order_by(nulls_last(Article.published_date.desc()), Article.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_recent_articles(
        self, limit: int, exclude_id: Optional[int] = None
    ) -> List[Article]:
        """Most recently published articles across all feeds."""
        query = self.db.query(Article)
        if exclude_id is not None:
            query = query.filter(Article.id != exclude_id)
        return (
            query.order_by(nulls_last(Article.published_date.desc()), Article.id.desc())
            .limit(limit)
            .all()
        )

    def get_unprocessed_articles(self, limit: int) -> List[Article]:
        """
        Articles that have no summary row yet, oldest first.

        Articles with neither description nor content are left out until a
        backfill gives them text; otherwise they would hold the head of the
        queue forever.
        """
        return (
            self.db.query(Article)
            .outerjoin(ArticleSummary, ArticleSummary.article_id == Article.id)
            .filter(ArticleSummary.id.is_(None))
            .filter(
                or_(
                    func.length(func.trim(func.coalesce(Article.description, ""))) > 0,
                    func.length(func.trim(func.coalesce(Article.content, ""))) > 0,
                )
            )
            .order_by(Article.id)
            .limit(limit)
            .all()
        )

    def get_articles_with_error_summaries(self) -> List[Article]:
        return (
            self.db.query(Article)
            .join(ArticleSummary, ArticleSummary.article_id == Article.id)
            .filter(ArticleSummary.summary.like(SUMMARY_ERROR_SENTINEL))
            .order_by(Article.id)
            .all()
        )

    def update_content(self, article: Article, content: str) -> Article:
        article.content = content
        self.db.commit()
        return article

    def set_flags(
        self,
        article: Article,
        is_read: Optional[bool] = None,
        is_favorite: Optional[bool] = None,
    ) -> Article:
        if is_read is not None:
            article.is_read = is_read
        if is_favorite is not None:
            article.is_favorite = is_favorite
        self.db.commit()
        self.db.refresh(article)
        return article

    # Summaries

    def get_summary(self, article_id: int) -> Optional[ArticleSummary]:
        return (
            self.db.query(ArticleSummary)
            .filter(ArticleSummary.article_id == article_id)
            .first()
        )

    def list_summaries(self, include_errors: bool = False) -> List[ArticleSummary]:
        query = self.db.query(ArticleSummary)
        if not include_errors:
            query = query.filter(ArticleSummary.summary != SUMMARY_ERROR_SENTINEL)
        return query.order_by(ArticleSummary.article_id).all()

    def upsert_summary(
        self, article_id: int, summary: str, keywords: List[str]
    ) -> ArticleSummary:
        """Create or replace the single summary of an article."""
        existing = self.get_summary(article_id)
        if existing:
            existing.summary = summary
            existing.keywords = list(keywords)
            existing.processed_at = datetime.utcnow()
            self.db.commit()
            return existing

        record = ArticleSummary(
            article_id=article_id,
            summary=summary,
            keywords=list(keywords),
            processed_at=datetime.utcnow(),
        )
        self.db.add(record)
        self.db.commit()
        return record
