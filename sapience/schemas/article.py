from pydantic import BaseModel
from datetime import datetime
from enum import Enum
from typing import Optional, List


class ArticleSummary(BaseModel):
    summary: str
    keywords: Optional[List[str]] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Article(BaseModel):
    id: int
    feed_id: int
    title: str
    link: str
    description: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    published_date: Optional[datetime] = None
    guid: Optional[str] = None
    image_url: Optional[str] = None
    is_read: bool = False
    is_favorite: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ArticleDetail(Article):
    summary: Optional[ArticleSummary] = None


class ArticleAction(str, Enum):
    READ = "read"
    UNREAD = "unread"
    FAVORITE = "favorite"
    UNFAVORITE = "unfavorite"


class ArticleActionRequest(BaseModel):
    action: ArticleAction
