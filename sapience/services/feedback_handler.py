"""
Feedback rescoring loop.

A like/dislike vote is recorded, then its effect is propagated in three
best-effort steps: the voted article is rescored with the vote as context,
a window of recently published articles is rescored for the same user, and
the user's interest profile is rewritten from their whole voting history.
Each step logs and absorbs its own failures so the next one still runs.
"""

from typing import Optional
from sqlalchemy.orm import Session
from sapience.core.config import settings
from sapience.core.logging_config import log_pipeline_event
from sapience.models.recommendation import Recommendation, Verdict
from sapience.models.user import UserInterestProfile
from sapience.services.article_store import ArticleStore
from sapience.services.llm_client import LLMClient
from sapience.services.recommendation_store import RecommendationStore
from sapience.services.relevance_scorer import RelevanceScorer
import logging

logger = logging.getLogger(__name__)


class FeedbackHandler:
    def __init__(self, db: Session, llm_client: Optional[LLMClient] = None):
        self.db = db
        self.llm = llm_client or LLMClient()
        self.articles = ArticleStore(db)
        self.recommendations = RecommendationStore(db)
        self.scorer = RelevanceScorer(db, self.llm)
        self.window = settings.RESCORE_WINDOW

    async def record_vote(
        self,
        user_id: int,
        article_id: int,
        verdict: Verdict,
        explanation: Optional[str] = None,
    ) -> Optional[Recommendation]:
        """
        Record a vote and propagate it.

        Storing the preference is the only step whose failure reaches the
        caller. Returns the voted article's recommendation after rescoring,
        or None if it no longer has one.
        """
        verdict = Verdict(verdict)
        preference = self.recommendations.upsert_preference(
            user_id, article_id, verdict.value, explanation or None
        )
        logger.info(
            f"Processing vote from user {user_id} for article {article_id}: {verdict.value}"
        )

        profile = self.recommendations.get_profile(user_id)
        if profile is None:
            logger.info(f"No profile found for user {user_id}, skipping vote processing")
            return self.recommendations.get_recommendation(user_id, article_id)

        await self._rescore_voted_article(profile, article_id, preference)
        touched = await self.rescore_recent_articles(profile, exclude_article_id=article_id)
        await self.evolve_profile(profile)

        log_pipeline_event(
            "feedback.processed",
            f"Vote on article {article_id} propagated to {touched} recent articles",
            user_id=user_id,
            article_id=article_id,
            verdict=verdict.value,
        )
        return self.recommendations.get_recommendation(user_id, article_id)

    async def _rescore_voted_article(self, profile, article_id, preference) -> None:
        try:
            article = self.articles.get_article(article_id)
            if article is None:
                logger.info(f"Article {article_id} not found, skipping rescore")
                return
            summary = self.articles.get_summary(article_id)
            logger.info(
                "Rescoring article based on user feedback: "
                f"{preference.explanation or 'No explanation provided'}"
            )
            await self.scorer.score_with_feedback(profile, article, summary, preference)
        except Exception as e:
            logger.error(f"Error rescoring voted article {article_id}: {str(e)}")
            self.db.rollback()

    async def rescore_recent_articles(
        self, profile: UserInterestProfile, exclude_article_id: Optional[int] = None
    ) -> int:
        """Rescore the most recently published articles for one user.

        Articles the user voted on are rescored with their vote as context;
        articles without a usable summary are skipped. Returns how many
        articles were rescored.
        """
        try:
            recent = self.articles.get_recent_articles(
                self.window, exclude_id=exclude_article_id
            )
        except Exception as e:
            logger.error(f"Error loading recent articles: {str(e)}")
            self.db.rollback()
            return 0

        logger.info(f"Rescoring {len(recent)} recent articles for user {profile.user_id}")
        rescored = 0
        for article in recent:
            try:
                summary = self.articles.get_summary(article.id)
                if summary is None or summary.is_error:
                    logger.debug(f"No summary found for article {article.id}, skipping rescore")
                    continue

                preference = self.recommendations.get_preference(
                    profile.user_id, article.id
                )
                if preference is not None:
                    await self.scorer.score_with_feedback(
                        profile, article, summary, preference
                    )
                else:
                    await self.scorer.score(profile, article, summary)
                rescored += 1
            except Exception as e:
                logger.error(f"Error rescoring article {article.id}: {str(e)}")
                self.db.rollback()

        logger.info(f"Completed rescoring recent articles for user {profile.user_id}")
        return rescored

    async def evolve_profile(self, profile: UserInterestProfile) -> Optional[UserInterestProfile]:
        """Rewrite the profile text from every vote the user has recorded."""
        try:
            preferences = self.recommendations.get_user_preferences(profile.user_id)
            if not preferences:
                logger.info(f"No preferences found for user {profile.user_id}, skipping profile update")
                return None

            history = []
            for pref in preferences:
                article = self.articles.get_article(pref.article_id)
                history.append(
                    {
                        "article_title": article.title if article else f"Article {pref.article_id}",
                        "preference": pref.preference,
                        "explanation": pref.explanation,
                    }
                )

            logger.info(
                f"Updating user profile based on {len(history)} article preferences"
            )
            interests = await self.llm.evolve_interests(profile.interests, history)
            if not interests:
                return None

            updated = self.recommendations.save_profile(profile.user_id, interests)
            logger.info(f"Updated interests profile for user {profile.user_id}")
            return updated
        except Exception as e:
            logger.error(f"Error updating user profile from preferences: {str(e)}")
            self.db.rollback()
            return None
