from sapience.schemas.feed import Feed, FeedCreate, FeedUpdate, RefreshAllResult
from sapience.schemas.category import Category, CategoryCreate
from sapience.schemas.article import (
    Article,
    ArticleDetail,
    ArticleSummary,
    ArticleAction,
    ArticleActionRequest,
)
from sapience.schemas.recommendation import (
    Recommendation,
    RecommendedArticle,
    VoteRequest,
    VoteResponse,
)
from sapience.schemas.profile import Profile, ProfileUpdate

__all__ = [
    "Feed",
    "FeedCreate",
    "FeedUpdate",
    "RefreshAllResult",
    "Category",
    "CategoryCreate",
    "Article",
    "ArticleDetail",
    "ArticleSummary",
    "ArticleAction",
    "ArticleActionRequest",
    "Recommendation",
    "RecommendedArticle",
    "VoteRequest",
    "VoteResponse",
    "Profile",
    "ProfileUpdate",
]
