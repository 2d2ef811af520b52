from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional
from sapience.api.validation import validate_feed_url


class FeedCreate(BaseModel):
    url: str
    category_id: Optional[int] = None
    auto_refresh: bool = True

    @field_validator("url")
    @classmethod
    def check_url(cls, v):
        return validate_feed_url(v)


class FeedUpdate(BaseModel):
    title: Optional[str] = None
    category_id: Optional[int] = None
    auto_refresh: Optional[bool] = None


class Feed(BaseModel):
    id: int
    url: str
    title: str
    description: Optional[str] = None
    favicon: Optional[str] = None
    category_id: Optional[int] = None
    auto_refresh: bool = True
    last_fetched: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RefreshAllResult(BaseModel):
    success: int
    failed: int
    new_articles: int
