from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from sapience.core.database import get_db
from sapience.core.auth import get_current_user
from sapience.models.user import User
from sapience.schemas.recommendation import (
    Recommendation as RecommendationSchema,
    RecommendedArticle,
)
from sapience.services.recommendation_store import RecommendationStore

router = APIRouter()


@router.get("/", response_model=List[RecommendedArticle])
def get_recommendations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Unviewed recommendations for the current user, best score first, then newest."""
    rows = RecommendationStore(db).get_recommended_articles(current_user.id)
    return [
        RecommendedArticle(
            recommendation_id=recommendation.id,
            article_id=article.id,
            feed_id=article.feed_id,
            title=article.title,
            link=article.link,
            author=article.author,
            image_url=article.image_url,
            published_date=article.published_date,
            summary=summary.summary if summary else None,
            keywords=(summary.keywords or []) if summary else [],
            relevance_score=recommendation.relevance_score,
            reason=recommendation.reason,
        )
        for article, summary, recommendation in rows
    ]


@router.post("/{recommendation_id}/viewed", response_model=RecommendationSchema)
def mark_recommendation_viewed(
    recommendation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Hide a recommendation from the list once the user has seen it."""
    recommendation = RecommendationStore(db).mark_viewed(
        recommendation_id, user_id=current_user.id
    )
    if not recommendation:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    return recommendation
