from dataclasses import dataclass
from typing import Callable, List, Optional
from sqlalchemy.orm import Session
from sapience.core.database import SessionLocal
from sapience.core.logging_config import log_pipeline_event
from sapience.models.user import UserInterestProfile
from sapience.services.llm_client import LLMClient
from sapience.services.recommendation_store import RecommendationStore
from sapience.services.relevance_scorer import RelevanceScorer
from sapience.services.summarizer import ArticleSummarizer
import logging

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    regenerated: int = 0
    summarized: int = 0
    scored: int = 0


class ArticleProcessor:
    """
    One processing pass: summarize a batch of new articles, then score
    articles for the given profiles.

    The profiles are passed in by the caller; this class never creates users
    or profiles.
    """

    def __init__(self, db: Session, llm_client: Optional[LLMClient] = None):
        self.db = db
        self.llm = llm_client or LLMClient()
        self.summarizer = ArticleSummarizer(db, self.llm)
        self.scorer = RelevanceScorer(db, self.llm)
        self.recommendations = RecommendationStore(db)

    def resolve_profiles(self, user_id: Optional[int] = None) -> List[UserInterestProfile]:
        """One user's profile when targeted, otherwise every active user's."""
        if user_id is None:
            return self.recommendations.list_active_profiles()
        profile = self.recommendations.get_profile(user_id)
        if profile is None:
            logger.info(f"No profile found for user {user_id}, skipping")
            return []
        return [profile]

    async def process_for_user(
        self, user_id: Optional[int] = None, force_regenerate: bool = False
    ) -> ProcessResult:
        """Entry point for the trigger-processing operation.

        A targeted user gets all of their recommendations re-evaluated, since
        this is how a profile change propagates.
        """
        profiles = self.resolve_profiles(user_id)
        return await self.process(
            profiles,
            rescore_all=user_id is not None,
            force_regenerate=force_regenerate,
        )

    async def process(
        self,
        profiles: List[UserInterestProfile],
        rescore_all: bool = False,
        force_regenerate: bool = False,
    ) -> ProcessResult:
        result = ProcessResult()
        logger.info("Starting processing of new articles...")

        if force_regenerate:
            regenerated = await self.summarizer.regenerate_error_summaries()
            result.regenerated = len(regenerated)

        new_summaries = await self.summarizer.summarize_batch()
        result.summarized = len(new_summaries)

        for profile in profiles:
            try:
                if rescore_all:
                    result.scored += await self.scorer.rescore_all(profile)
                elif new_summaries:
                    result.scored += await self.scorer.score_summaries(
                        profile, new_summaries
                    )
                else:
                    result.scored += await self.scorer.score_unrecommended(profile)
            except Exception as e:
                logger.error(f"Error scoring articles for user {profile.user_id}: {str(e)}")
                self.db.rollback()

        log_pipeline_event(
            "articles.processed",
            f"Processed articles: {result.summarized} summarized, "
            f"{result.regenerated} regenerated, {result.scored} scored",
            summarized=result.summarized,
            regenerated=result.regenerated,
            scored=result.scored,
            users=len(profiles),
        )
        return result


async def process_in_new_session(
    user_id: Optional[int] = None,
    force_regenerate: bool = False,
    llm_client: Optional[LLMClient] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> ProcessResult:
    """Run a processing pass in a session of its own, for background tasks."""
    db = session_factory()
    try:
        processor = ArticleProcessor(db, llm_client)
        return await processor.process_for_user(user_id, force_regenerate)
    finally:
        db.close()
