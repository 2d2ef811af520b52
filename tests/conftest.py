"""
Pytest configuration and fixtures for Sapience tests.
"""

import os

# Settings are read at import time; these must be in place first.
os.environ.setdefault("OPENAI_API_KEY", "test_key_123")
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import json
import pytest
import httpx
from datetime import datetime, timedelta
from typing import Dict, Generator, List, Optional
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from sapience.core.database import Base, get_db
from sapience.core.auth import create_access_token
from sapience.models import (
    Article,
    ArticleSummary,
    Feed,
    User,
    UserInterestProfile,
)
from sapience.services.llm_client import RelevanceResult, SummaryResult


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory bound to the test engine, for detached work."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# Fake LLM service


class FakeLLMClient:
    """
    Stand-in for LLMClient with scripted answers.

    ``scores`` maps article titles to (is_relevant, score); unknown titles get
    ``default_score``. ``fail_summaries_for`` lists titles whose summarization
    degrades to the error sentinel.
    """

    def __init__(
        self,
        scores: Optional[Dict[str, tuple]] = None,
        default_score: int = 80,
        feedback_scores: Optional[Dict[str, tuple]] = None,
        fail_summaries_for: Optional[List[str]] = None,
        evolved_interests: Optional[str] = "Evolved interests",
    ):
        self.scores = scores or {}
        self.default_score = default_score
        self.feedback_scores = feedback_scores or {}
        self.fail_summaries_for = set(fail_summaries_for or [])
        self.evolved_interests = evolved_interests
        self.summarize_calls = []
        self.relevance_calls = []
        self.feedback_calls = []
        self.evolve_calls = []

    async def summarize(self, title, content):
        self.summarize_calls.append(title)
        if title in self.fail_summaries_for:
            return SummaryResult.error()
        return SummaryResult(summary=f"Summary of {title}", keywords=["tech", "news"])

    async def score_relevance(self, interests, title, summary, keywords):
        self.relevance_calls.append((interests, title))
        relevant, score = self.scores.get(title, (True, self.default_score))
        return RelevanceResult(
            is_relevant=relevant, relevance_score=score, reason=f"Matches {interests}"
        )

    async def rescore_with_feedback(
        self,
        interests,
        title,
        summary,
        keywords,
        preference,
        explanation=None,
        previous_score=None,
        previous_reason=None,
    ):
        self.feedback_calls.append(
            {
                "title": title,
                "preference": preference,
                "explanation": explanation,
                "previous_score": previous_score,
            }
        )
        if title in self.feedback_scores:
            relevant, score = self.feedback_scores[title]
        elif preference == "dislike":
            relevant, score = False, 10
        else:
            relevant, score = True, 95
        return RelevanceResult(
            is_relevant=relevant, relevance_score=score, reason=f"User {preference}d it"
        )

    async def evolve_interests(self, current_interests, preferences):
        self.evolve_calls.append((current_interests, list(preferences)))
        return self.evolved_interests


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def make_fake_llm():
    return FakeLLMClient


def make_completion(payload, total_tokens: int = 120):
    """Build an object shaped like an OpenAI chat completion."""
    content = payload if isinstance(payload, str) else json.dumps(payload)
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    response.usage = Mock()
    response.usage.total_tokens = total_tokens
    return response


# Feed documents

RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
    <channel>
        <title>{title}</title>
        <link>https://example.com</link>
        <description>A test RSS feed</description>
        {items}
    </channel>
</rss>
"""

RSS_ITEM = """
        <item>
            <title>{title}</title>
            <link>{link}</link>
            <guid>{guid}</guid>
            <description>{description}</description>
            <pubDate>{pub_date}</pubDate>
            <author>author@example.com (Test Author)</author>
            <category>Technology</category>
        </item>
"""


def build_rss(items, title: str = "Test Feed") -> str:
    """Render an RSS 2.0 document from (title, link, guid, description, pub_date) dicts."""
    rendered = "".join(
        RSS_ITEM.format(
            title=item["title"],
            link=item["link"],
            guid=item.get("guid", item["link"]),
            description=item.get("description", "Short description"),
            pub_date=item.get("pub_date", "Mon, 01 Jan 2024 12:00:00 GMT"),
        )
        for item in items
    )
    return RSS_TEMPLATE.format(title=title, items=rendered)


@pytest.fixture
def mock_rss_feed_data() -> str:
    """Mock RSS feed data."""
    return build_rss(
        [
            {
                "title": "Test Article 1",
                "link": "https://example.com/article1",
                "guid": "article-1",
                "description": "Description of article 1",
                "pub_date": "Mon, 01 Jan 2024 12:00:00 GMT",
            },
            {
                "title": "Test Article 2",
                "link": "https://example.com/article2",
                "guid": "article-2",
                "description": "Description of article 2",
                "pub_date": "Tue, 02 Jan 2024 12:00:00 GMT",
            },
        ]
    )


def feed_transport(documents: Dict[str, str], page_body: str = "") -> httpx.MockTransport:
    """
    Serve feed documents by URL; any other URL is treated as an article page.

    URLs mapped to None answer 500.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in documents:
            if documents[url] is None:
                return httpx.Response(500, text="Server error")
            return httpx.Response(200, text=documents[url])
        return httpx.Response(200, text=page_body)

    return httpx.MockTransport(handler)


# Database fixtures


@pytest.fixture(scope="function")
def test_user(db_session) -> User:
    """Create a test user."""
    user = User(username="testuser", email="test@example.com", is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def test_profile(db_session, test_user) -> UserInterestProfile:
    profile = UserInterestProfile(
        user_id=test_user.id, interests="Python, databases and distributed systems"
    )
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture(scope="function")
def test_feed(db_session) -> Feed:
    """Create a test feed."""
    feed = Feed(
        url="https://example.com/feed.xml",
        title="Example Feed",
        description="A test feed",
        auto_refresh=True,
    )
    db_session.add(feed)
    db_session.commit()
    db_session.refresh(feed)
    return feed


@pytest.fixture(scope="function")
def test_article(db_session, test_feed) -> Article:
    """Create a test article."""
    article = Article(
        feed_id=test_feed.id,
        title="Test Article",
        link="https://example.com/article-1",
        description="This is a test article description",
        content="Full article content goes here",
        author="Test Author",
        published_date=datetime.utcnow(),
        guid="test-article-1",
    )
    db_session.add(article)
    db_session.commit()
    db_session.refresh(article)
    return article


@pytest.fixture(scope="function")
def multiple_articles(db_session, test_feed) -> List[Article]:
    """Create multiple test articles, newest first."""
    articles = []
    for i in range(5):
        article = Article(
            feed_id=test_feed.id,
            title=f"Test Article {i+1}",
            link=f"https://example.com/article-{i+1}",
            description=f"Description for article {i+1}",
            content=f"Content for article {i+1}",
            published_date=datetime.utcnow() - timedelta(hours=i),
            guid=f"article-{i+1}",
        )
        db_session.add(article)
        articles.append(article)

    db_session.commit()
    for article in articles:
        db_session.refresh(article)

    return articles


@pytest.fixture(scope="function")
def summarized_articles(db_session, multiple_articles) -> List[Article]:
    """The multiple_articles fixture, each with a stored summary."""
    for article in multiple_articles:
        db_session.add(
            ArticleSummary(
                article_id=article.id,
                summary=f"Summary of {article.title}",
                keywords=["tech"],
            )
        )
    db_session.commit()
    return multiple_articles


# API fixtures


@pytest.fixture(scope="function")
def test_app(db_session, fake_llm):
    """Create a FastAPI test app without lifespan events."""
    from fastapi import FastAPI
    from sapience.api.deps import get_background, get_llm_client
    from sapience.api.endpoints import (
        actions,
        articles,
        auth,
        categories,
        feeds,
        profile,
        recommendations,
    )

    # Create app without lifespan to avoid starting the scheduler
    test_app = FastAPI(title="Sapience - Test", version="1.0.0")

    test_app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    test_app.include_router(feeds.router, prefix="/api/feeds", tags=["feeds"])
    test_app.include_router(articles.router, prefix="/api/articles", tags=["articles"])
    test_app.include_router(
        categories.router, prefix="/api/categories", tags=["categories"]
    )
    test_app.include_router(
        recommendations.router, prefix="/api/recommendations", tags=["recommendations"]
    )
    test_app.include_router(profile.router, prefix="/api/profile", tags=["profile"])
    test_app.include_router(actions.router, prefix="/api/actions", tags=["actions"])

    @test_app.get("/health")
    def health():
        return {"status": "ok"}

    # Override database dependency
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    recorder = RecordingBackground()
    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_llm_client] = lambda: fake_llm
    test_app.dependency_overrides[get_background] = lambda: recorder
    test_app.state.recorder = recorder

    return test_app


class RecordingBackground:
    """Records spawned work instead of running it on the request's event loop."""

    def __init__(self):
        self.spawned = []

    def spawn(self, coro, name=None):
        self.spawned.append(name)
        coro.close()


@pytest.fixture(scope="function")
def client(test_app) -> TestClient:
    """Create a test client without entering context manager."""
    return TestClient(test_app, raise_server_exceptions=False)


@pytest.fixture(scope="function")
def auth_headers(test_user) -> dict:
    """Create authentication headers for test requests."""
    access_token = create_access_token(data={"sub": test_user.id})
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture(scope="function")
def authenticated_client(client, test_user) -> TestClient:
    """Create an authenticated test client."""
    access_token = create_access_token(data={"sub": test_user.id})
    client.cookies.set("auth_token", access_token)
    return client


@pytest.fixture
def rss():
    """The build_rss helper."""
    return build_rss


@pytest.fixture
def transport_for():
    """The feed_transport helper."""
    return feed_transport


@pytest.fixture
def completion():
    """The make_completion helper."""
    return make_completion
