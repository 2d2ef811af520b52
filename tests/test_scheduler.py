"""Tests for the pipeline scheduler and startup bootstrap."""

import pytest
from unittest.mock import AsyncMock, patch
from sapience.core.config import settings
from sapience.models import (
    Article,
    ArticleSummary,
    Feed,
    Recommendation,
    User,
    UserInterestProfile,
)
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.bootstrap import ensure_default_user
from sapience.services.feed_client import FeedSourceClient
from sapience.services.scheduler import PipelineScheduler, SchedulerConfig

FEED_URL = "https://news.example.com/feed.xml"
PAGE_BODY = "<html><body>" + ("Long page text. " * 50) + "</body></html>"


@pytest.fixture
def news_feed(rss):
    return rss(
        [
            {
                "title": f"Headline {i}",
                "link": f"https://news.example.com/headline-{i}",
                "guid": f"headline-{i}",
                "description": f"Short teaser {i}",
            }
            for i in range(3)
        ],
        title="News",
    )


@pytest.fixture
def make_scheduler(session_factory, transport_for, fake_llm):
    def make(documents):
        transport = transport_for(documents, page_body=PAGE_BODY)
        return PipelineScheduler(
            SchedulerConfig(feed_refresh_minutes=30, processing_minutes=10),
            session_factory=session_factory,
            llm_client=fake_llm,
            feed_client=FeedSourceClient(transport=transport),
            background=BackgroundTaskSet("test"),
            content_transport=transport,
        )

    return make


@pytest.mark.unit
class TestBootstrap:
    def test_creates_default_user_and_profile(self, db_session):
        user = ensure_default_user(db_session, settings)

        assert user.username == settings.DEFAULT_USERNAME
        profile = db_session.query(UserInterestProfile).one()
        assert profile.user_id == user.id
        assert profile.interests == settings.DEFAULT_INTERESTS

    def test_is_idempotent_and_keeps_existing_profile(self, db_session):
        user = ensure_default_user(db_session, settings)
        profile = db_session.query(UserInterestProfile).one()
        profile.interests = "Customized"
        db_session.commit()

        again = ensure_default_user(db_session, settings)

        assert again.id == user.id
        assert db_session.query(User).count() == 1
        assert db_session.query(UserInterestProfile).one().interests == "Customized"


@pytest.mark.integration
class TestPipelineScheduler:
    @pytest.mark.asyncio
    async def test_cold_start(self, db_session, make_scheduler, news_feed, fake_llm):
        ensure_default_user(db_session, settings)
        db_session.add(Feed(url=FEED_URL, title="Placeholder"))
        db_session.commit()
        scheduler = make_scheduler({FEED_URL: news_feed})

        await scheduler.run_startup_cycle()
        await scheduler.background.wait()

        db_session.expire_all()
        assert db_session.query(Article).count() == 3
        assert db_session.query(ArticleSummary).count() == 3
        assert db_session.query(Recommendation).count() == 3
        assert scheduler.background.completed == 3
        assert all(a.content == PAGE_BODY for a in db_session.query(Article).all())
        assert db_session.query(Feed).one().title == "News"

    @pytest.mark.asyncio
    async def test_refresh_without_new_articles_skips_processing(
        self, db_session, make_scheduler, news_feed, fake_llm
    ):
        ensure_default_user(db_session, settings)
        db_session.add(Feed(url=FEED_URL, title="Placeholder"))
        db_session.commit()
        scheduler = make_scheduler({FEED_URL: news_feed})
        await scheduler.run_refresh_cycle()
        await scheduler.background.wait()
        fake_llm.summarize_calls.clear()

        result = await scheduler.run_refresh_cycle()

        assert result.new_articles == 0
        assert fake_llm.summarize_calls == []

    @pytest.mark.asyncio
    async def test_processing_cycle_with_no_users(
        self, db_session, test_article, make_scheduler, fake_llm
    ):
        scheduler = make_scheduler({})

        result = await scheduler.run_processing_cycle()

        # Summaries are produced even before anyone is interested in them
        assert result.summarized == 1
        assert result.scored == 0
        assert db_session.query(User).count() == 0

    @pytest.mark.asyncio
    async def test_cycle_errors_are_contained(self, make_scheduler):
        scheduler = make_scheduler({})

        with patch(
            "sapience.services.scheduler.ArticleProcessor.process",
            new=AsyncMock(side_effect=RuntimeError("database gone")),
        ):
            assert await scheduler.run_processing_cycle() is None

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, make_scheduler):
        scheduler = make_scheduler({})

        scheduler.start()
        try:
            job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
            assert job_ids == {"refresh_feeds", "process_articles", "startup_cycle"}
            refresh_job = scheduler.scheduler.get_job("refresh_feeds")
            assert refresh_job.trigger.interval.total_seconds() == 30 * 60
            for job_id in ("refresh_feeds", "process_articles"):
                job = scheduler.scheduler.get_job(job_id)
                assert job.max_instances > 1
                assert job.coalesce is False
        finally:
            scheduler.shutdown()

    def test_config_from_settings(self):
        config = SchedulerConfig.from_settings()

        assert config.feed_refresh_minutes == settings.FEED_REFRESH_INTERVAL
        assert config.processing_minutes == settings.ARTICLE_PROCESSING_INTERVAL
