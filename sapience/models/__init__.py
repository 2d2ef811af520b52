from .category import Category
from .feed import Feed
from .article import Article
from .article_summary import ArticleSummary, SUMMARY_ERROR_SENTINEL
from .user import User, UserInterestProfile
from .recommendation import Recommendation, ArticlePreference, Verdict

__all__ = [
    "Category",
    "Feed",
    "Article",
    "ArticleSummary",
    "SUMMARY_ERROR_SENTINEL",
    "User",
    "UserInterestProfile",
    "Recommendation",
    "ArticlePreference",
    "Verdict",
]
