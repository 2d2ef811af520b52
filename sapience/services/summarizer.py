from typing import List, Optional
from sqlalchemy.orm import Session
from sapience.core.config import settings
from sapience.models.article import Article
from sapience.models.article_summary import ArticleSummary
from sapience.services.article_store import ArticleStore
from sapience.services.llm_client import LLMClient
import logging

logger = logging.getLogger(__name__)


def select_summary_input(article: Article) -> str:
    """The shorter of description and body; usually a human-written abstract."""
    candidates = [
        text.strip()
        for text in (article.description, article.content)
        if text and text.strip()
    ]
    if not candidates:
        return ""
    return min(candidates, key=len)


class ArticleSummarizer:
    def __init__(self, db: Session, llm_client: Optional[LLMClient] = None):
        self.db = db
        self.store = ArticleStore(db)
        self.llm = llm_client or LLMClient()

    async def summarize_article(self, article: Article) -> Optional[ArticleSummary]:
        """Summarize one article and upsert the result.

        Returns None when the article has nothing to summarize; it then stays
        in the unprocessed queue.
        """
        text = select_summary_input(article)
        if not text:
            logger.info(f"Skipping article {article.id} - no content to summarize")
            return None

        result = await self.llm.summarize(article.title, text)
        if result.failed:
            logger.warning(f"Storing error summary for article {article.id}")

        return self.store.upsert_summary(article.id, result.summary, result.keywords)

    async def summarize_batch(self, limit: Optional[int] = None) -> List[ArticleSummary]:
        """Summarize up to ``limit`` articles that have no summary yet."""
        limit = limit or settings.SUMMARY_BATCH_SIZE
        articles = self.store.get_unprocessed_articles(limit)
        logger.info(f"Found {len(articles)} unprocessed articles")
        return await self._summarize_all(articles)

    async def regenerate_error_summaries(self) -> List[ArticleSummary]:
        """Retry every article whose stored summary is the error sentinel."""
        articles = self.store.get_articles_with_error_summaries()
        logger.info(f"Found {len(articles)} articles with error summaries to regenerate")
        return await self._summarize_all(articles)

    async def _summarize_all(self, articles: List[Article]) -> List[ArticleSummary]:
        summaries = []
        for article in articles:
            try:
                summary = await self.summarize_article(article)
            except Exception as e:
                logger.error(f"Error summarizing article {article.id}: {str(e)}")
                self.db.rollback()
                continue
            if summary is not None:
                summaries.append(summary)
        return summaries
