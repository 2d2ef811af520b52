from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from sapience.models.recommendation import Verdict


class Recommendation(BaseModel):
    id: int
    user_id: int
    article_id: int
    relevance_score: int
    reason: str
    viewed: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RecommendedArticle(BaseModel):
    """An unviewed recommendation joined with its article and summary."""

    recommendation_id: int
    article_id: int
    feed_id: int
    title: str
    link: str
    author: Optional[str] = None
    image_url: Optional[str] = None
    published_date: Optional[datetime] = None
    summary: Optional[str] = None
    keywords: List[str] = []
    relevance_score: int
    reason: str


class VoteRequest(BaseModel):
    verdict: Verdict
    explanation: Optional[str] = Field(None, max_length=2000)


class VoteResponse(BaseModel):
    article_id: int
    verdict: Verdict
    recommended: bool
    recommendation: Optional[Recommendation] = None
