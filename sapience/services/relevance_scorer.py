from typing import List, Optional
from sqlalchemy.orm import Session
from sapience.core.config import settings
from sapience.models.article import Article
from sapience.models.article_summary import ArticleSummary
from sapience.models.recommendation import ArticlePreference, Recommendation
from sapience.models.user import UserInterestProfile
from sapience.services.article_store import ArticleStore
from sapience.services.llm_client import LLMClient, RelevanceResult
from sapience.services.recommendation_store import RecommendationStore
import logging

logger = logging.getLogger(__name__)


class RelevanceScorer:
    """Scores articles against interest profiles and keeps recommendations in sync."""

    def __init__(self, db: Session, llm_client: Optional[LLMClient] = None):
        self.db = db
        self.articles = ArticleStore(db)
        self.recommendations = RecommendationStore(db)
        self.llm = llm_client or LLMClient()
        self.min_score = settings.MIN_RELEVANCE_SCORE

    def apply_result(
        self, user_id: int, article_id: int, result: RelevanceResult
    ) -> Optional[Recommendation]:
        """Upsert the recommendation when it clears the threshold, else remove it."""
        if result.is_relevant and result.relevance_score >= self.min_score:
            recommendation = self.recommendations.upsert_recommendation(
                user_id, article_id, result.relevance_score, result.reason
            )
            logger.info(
                f"Recommended article {article_id} to user {user_id} "
                f"(score {result.relevance_score})"
            )
            return recommendation

        if self.recommendations.delete_recommendation(user_id, article_id):
            logger.info(
                f"Removed recommendation for article {article_id} from user {user_id} "
                f"(score {result.relevance_score})"
            )
        else:
            logger.debug(
                f"Article {article_id} not relevant enough for user {user_id} "
                f"(score {result.relevance_score})"
            )
        return None

    async def score(
        self,
        profile: UserInterestProfile,
        article: Article,
        summary: ArticleSummary,
    ) -> Optional[Recommendation]:
        result = await self.llm.score_relevance(
            profile.interests,
            article.title,
            summary.summary,
            summary.keywords if isinstance(summary.keywords, list) else [],
        )
        return self.apply_result(profile.user_id, article.id, result)

    async def score_with_feedback(
        self,
        profile: UserInterestProfile,
        article: Article,
        summary: Optional[ArticleSummary],
        preference: ArticlePreference,
    ) -> Optional[Recommendation]:
        """Rescore with the user's vote and the previous recommendation as context."""
        previous = self.recommendations.get_recommendation(profile.user_id, article.id)
        keywords = []
        if summary is not None and isinstance(summary.keywords, list):
            keywords = summary.keywords

        result = await self.llm.rescore_with_feedback(
            profile.interests,
            article.title,
            summary.summary if summary is not None else None,
            keywords,
            preference.preference,
            preference.explanation,
            previous_score=previous.relevance_score if previous else None,
            previous_reason=previous.reason if previous else None,
        )
        return self.apply_result(profile.user_id, article.id, result)

    async def score_summaries(
        self, profile: UserInterestProfile, summaries: List[ArticleSummary]
    ) -> int:
        """Score each summary for one profile; failures are isolated per article."""
        scored = 0
        for summary in summaries:
            if summary.is_error:
                continue
            try:
                article = summary.article or self.articles.get_article(summary.article_id)
                if article is None:
                    logger.info(
                        f"Cannot score - article {summary.article_id} not found"
                    )
                    continue
                await self.score(profile, article, summary)
                scored += 1
            except Exception as e:
                logger.error(
                    f"Error scoring article {summary.article_id} "
                    f"for user {profile.user_id}: {str(e)}"
                )
                self.db.rollback()
        return scored

    async def score_unrecommended(self, profile: UserInterestProfile) -> int:
        """Score every summary this user has no recommendation for yet."""
        recommended = self.recommendations.recommended_article_ids(profile.user_id)
        pending = [
            summary
            for summary in self.articles.list_summaries()
            if summary.article_id not in recommended
        ]
        if not pending:
            logger.info(f"No new articles without recommendations for user {profile.user_id}")
            return 0
        logger.info(
            f"Found {len(pending)} articles without recommendations for user {profile.user_id}"
        )
        return await self.score_summaries(profile, pending)

    async def rescore_all(self, profile: UserInterestProfile) -> int:
        """Re-evaluate every summary for one user, e.g. after a profile change."""
        summaries = self.articles.list_summaries()
        logger.info(f"Regenerating recommendations for user {profile.user_id}")
        return await self.score_summaries(profile, summaries)
