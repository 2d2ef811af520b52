from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
from sapience.api.deps import get_llm_client
from sapience.api.validation import FeedIdParam, LimitParam, SkipParam
from sapience.core.database import get_db
from sapience.core.auth import get_current_user
from sapience.models.user import User
from sapience.schemas.article import (
    Article as ArticleSchema,
    ArticleActionRequest,
    ArticleAction,
    ArticleDetail,
)
from sapience.schemas.recommendation import (
    Recommendation as RecommendationSchema,
    VoteRequest,
    VoteResponse,
)
from sapience.services.article_store import ArticleStore
from sapience.services.feedback_handler import FeedbackHandler
from sapience.services.llm_client import LLMClient
from slowapi import Limiter
from slowapi.util import get_remote_address

router = APIRouter()
logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

_ACTION_FLAGS = {
    ArticleAction.READ: {"is_read": True},
    ArticleAction.UNREAD: {"is_read": False},
    ArticleAction.FAVORITE: {"is_favorite": True},
    ArticleAction.UNFAVORITE: {"is_favorite": False},
}


@router.get("/", response_model=List[ArticleSchema])
def get_articles(
    skip: int = SkipParam,
    limit: int = LimitParam,
    feed_id: Optional[int] = FeedIdParam,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get articles, newest first, optionally for a single feed."""
    return ArticleStore(db).get_articles(feed_id=feed_id, skip=skip, limit=limit)


@router.get("/{article_id}", response_model=ArticleDetail)
def get_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a single article with its summary, if one exists."""
    article = ArticleStore(db).get_article(article_id)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@router.post("/{article_id}/action", response_model=ArticleSchema)
def article_action(
    article_id: int,
    body: ArticleActionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark an article read/unread or favorite/unfavorite."""
    store = ArticleStore(db)
    article = store.get_article(article_id)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return store.set_flags(article, **_ACTION_FLAGS[body.action])


@router.post("/{article_id}/vote", response_model=VoteResponse)
@limiter.limit("30/minute")
async def vote_on_article(
    article_id: int,
    request: Request,
    vote: VoteRequest,
    db: Session = Depends(get_db),
    llm_client: LLMClient = Depends(get_llm_client),
    current_user: User = Depends(get_current_user),
):
    """
    Like or dislike an article.

    The vote is stored first; rescoring and the profile update that follow
    are best effort and never fail the request.
    """
    if not ArticleStore(db).get_article(article_id):
        raise HTTPException(status_code=404, detail="Article not found")

    handler = FeedbackHandler(db, llm_client)
    recommendation = await handler.record_vote(
        current_user.id, article_id, vote.verdict, vote.explanation
    )
    return VoteResponse(
        article_id=article_id,
        verdict=vote.verdict,
        recommended=recommendation is not None,
        recommendation=(
            RecommendationSchema.model_validate(recommendation)
            if recommendation is not None
            else None
        ),
    )
