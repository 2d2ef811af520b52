from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import nulls_last
from sqlalchemy.orm import Session
from sapience.models.article import Article
from sapience.models.article_summary import ArticleSummary
from sapience.models.recommendation import ArticlePreference, Recommendation
from sapience.models.user import User, UserInterestProfile
import logging

logger = logging.getLogger(__name__)


class RecommendationStore:
    """Keyed reads and upserts for recommendations, preferences and profiles."""

    def __init__(self, db: Session):
        self.db = db

    # Profiles

    def get_profile(self, user_id: int) -> Optional[UserInterestProfile]:
        return (
            self.db.query(UserInterestProfile)
            .filter(UserInterestProfile.user_id == user_id)
            .first()
        )

    def list_active_profiles(self) -> List[UserInterestProfile]:
        """Profiles of active users; the subjects of a processing cycle."""
        return (
            self.db.query(UserInterestProfile)
            .join(User, User.id == UserInterestProfile.user_id)
            .filter(User.is_active.is_(True))
            .order_by(UserInterestProfile.user_id)
            .all()
        )

    def save_profile(self, user_id: int, interests: str) -> UserInterestProfile:
        profile = self.get_profile(user_id)
        if profile:
            profile.interests = interests
            profile.updated_at = datetime.utcnow()
        else:
            profile = UserInterestProfile(user_id=user_id, interests=interests)
            self.db.add(profile)
        self.db.commit()
        self.db.refresh(profile)
        return profile

    # Recommendations

    def get_recommendation(
        self, user_id: int, article_id: int
    ) -> Optional[Recommendation]:
        return (
            self.db.query(Recommendation)
            .filter(
                Recommendation.user_id == user_id,
                Recommendation.article_id == article_id,
            )
            .first()
        )

    def recommended_article_ids(self, user_id: int) -> set:
        rows = (
            self.db.query(Recommendation.article_id)
            .filter(Recommendation.user_id == user_id)
            .all()
        )
        return {article_id for (article_id,) in rows}

    def upsert_recommendation(
        self, user_id: int, article_id: int, relevance_score: int, reason: str
    ) -> Recommendation:
        existing = self.get_recommendation(user_id, article_id)
        if existing:
            existing.relevance_score = relevance_score
            existing.reason = reason
            self.db.commit()
            return existing

        recommendation = Recommendation(
            user_id=user_id,
            article_id=article_id,
            relevance_score=relevance_score,
            reason=reason,
            viewed=False,
        )
        self.db.add(recommendation)
        self.db.commit()
        return recommendation

    def delete_recommendation(self, user_id: int, article_id: int) -> bool:
        existing = self.get_recommendation(user_id, article_id)
        if not existing:
            return False
        self.db.delete(existing)
        self.db.commit()
        return True

    def get_recommended_articles(
        self, user_id: int
    ) -> List[Tuple[Article, Optional[ArticleSummary], Recommendation]]:
        """Unviewed recommendations, best score first, then newest."""
        return (
            self.db.query(Article, ArticleSummary, Recommendation)
            .join(Recommendation, Recommendation.article_id == Article.id)
            .outerjoin(ArticleSummary, ArticleSummary.article_id == Article.id)
            .filter(
                Recommendation.user_id == user_id,
                Recommendation.viewed.is_(False),
            )
            .order_by(
                Recommendation.relevance_score.desc(),
                nulls_last(Article.published_date.desc()),
            )
            .all()
        )

    def mark_viewed(
        self, recommendation_id: int, user_id: Optional[int] = None
    ) -> Optional[Recommendation]:
        query = self.db.query(Recommendation).filter(
            Recommendation.id == recommendation_id
        )
        if user_id is not None:
            query = query.filter(Recommendation.user_id == user_id)
        recommendation = query.first()
        if not recommendation:
            return None
        recommendation.viewed = True
        self.db.commit()
        return recommendation

    # Preferences

    def get_preference(
        self, user_id: int, article_id: int
    ) -> Optional[ArticlePreference]:
        return (
            self.db.query(ArticlePreference)
            .filter(
                ArticlePreference.user_id == user_id,
                ArticlePreference.article_id == article_id,
            )
            .first()
        )

    def upsert_preference(
        self,
        user_id: int,
        article_id: int,
        preference: str,
        explanation: Optional[str] = None,
    ) -> ArticlePreference:
        """Record a vote; a changed vote on the same article replaces the old one."""
        existing = self.get_preference(user_id, article_id)
        if existing:
            existing.preference = preference
            existing.explanation = explanation
            self.db.commit()
            return existing

        record = ArticlePreference(
            user_id=user_id,
            article_id=article_id,
            preference=preference,
            explanation=explanation,
        )
        self.db.add(record)
        self.db.commit()
        return record

    def get_user_preferences(self, user_id: int) -> List[ArticlePreference]:
        return (
            self.db.query(ArticlePreference)
            .filter(ArticlePreference.user_id == user_id)
            .order_by(ArticlePreference.created_at, ArticlePreference.id)
            .all()
        )
