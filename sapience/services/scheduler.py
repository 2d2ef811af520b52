import httpx
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session
from sapience.core.config import settings
from sapience.core.database import SessionLocal
from sapience.core.logging_config import log_pipeline_event, new_correlation_id
from sapience.services.article_processor import ArticleProcessor, ProcessResult
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.content_backfill import ContentBackfill
from sapience.services.feed_client import FeedSourceClient
from sapience.services.feed_refresher import FeedRefresher, RefreshResult
from sapience.services.llm_client import LLMClient
from sapience.services.recommendation_store import RecommendationStore
import logging

logger = logging.getLogger(__name__)

# Cycles are not serialised; a slow run may overlap the next trigger.
OVERLAPPING_RUNS = 3


@dataclass
class SchedulerConfig:
    feed_refresh_minutes: int = 30
    processing_minutes: int = 10
    startup_delay_seconds: float = 1.0

    @classmethod
    def from_settings(cls) -> "SchedulerConfig":
        return cls(
            feed_refresh_minutes=settings.FEED_REFRESH_INTERVAL,
            processing_minutes=settings.ARTICLE_PROCESSING_INTERVAL,
        )


class PipelineScheduler:
    """
    Periodic driver for the pipeline.

    Two recurring jobs: refresh auto-refresh feeds (then process if anything
    new arrived) and run a processing pass for every active user. A one-off
    startup job runs a full cycle shortly after start. Each cycle works in its
    own session and logs its failures; nothing propagates into APScheduler.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        llm_client: Optional[LLMClient] = None,
        feed_client: Optional[FeedSourceClient] = None,
        background: Optional[BackgroundTaskSet] = None,
        content_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or SchedulerConfig.from_settings()
        self.session_factory = session_factory
        self.llm_client = llm_client
        self.feed_client = feed_client
        self.background = background or BackgroundTaskSet("backfill")
        self.content_transport = content_transport
        self.scheduler = AsyncIOScheduler()

    def _llm(self) -> LLMClient:
        if self.llm_client is None:
            self.llm_client = LLMClient()
        return self.llm_client

    async def _process_active_users(self, db: Session) -> ProcessResult:
        profiles = RecommendationStore(db).list_active_profiles()
        processor = ArticleProcessor(db, self._llm())
        return await processor.process(profiles)

    async def run_refresh_cycle(self) -> Optional[RefreshResult]:
        """Refresh auto-refresh feeds, then process if new articles arrived."""
        new_correlation_id("refresh")
        db = self.session_factory()
        try:
            refresher = FeedRefresher(
                db,
                client=self.feed_client,
                backfill=ContentBackfill(
                    db,
                    session_factory=self.session_factory,
                    transport=self.content_transport,
                ),
                background=self.background,
            )
            result = await refresher.refresh_all(auto_refresh_only=True)
            logger.info(
                f"Scheduled refresh completed: {result.new_articles} new articles, "
                f"{result.failed} feeds failed"
            )

            if result.new_articles > 0:
                await self._process_active_users(db)
            return result
        except Exception as e:
            logger.error(f"Error in scheduled feed refresh: {str(e)}")
            db.rollback()
            return None
        finally:
            db.close()

    async def run_processing_cycle(self) -> Optional[ProcessResult]:
        """Summarize pending articles and score them for every active user."""
        new_correlation_id("process")
        db = self.session_factory()
        try:
            return await self._process_active_users(db)
        except Exception as e:
            logger.error(f"Error in scheduled article processing: {str(e)}")
            db.rollback()
            return None
        finally:
            db.close()

    async def run_startup_cycle(self) -> None:
        logger.info("Running initial feed refresh and article processing")
        result = await self.run_refresh_cycle()
        # Nothing new from the feeds can still leave a backlog from last run
        if result is None or result.new_articles == 0:
            await self.run_processing_cycle()

    def start(self):
        """Start the scheduler."""
        self.scheduler.add_job(
            self.run_refresh_cycle,
            trigger=IntervalTrigger(minutes=self.config.feed_refresh_minutes),
            id="refresh_feeds",
            name="Refresh feeds",
            replace_existing=True,
            max_instances=OVERLAPPING_RUNS,
            coalesce=False,
        )
        self.scheduler.add_job(
            self.run_processing_cycle,
            trigger=IntervalTrigger(minutes=self.config.processing_minutes),
            id="process_articles",
            name="Summarize and score articles",
            replace_existing=True,
            max_instances=OVERLAPPING_RUNS,
            coalesce=False,
        )
        self.scheduler.add_job(
            self.run_startup_cycle,
            trigger=DateTrigger(
                run_date=datetime.now()
                + timedelta(seconds=self.config.startup_delay_seconds)
            ),
            id="startup_cycle",
            name="Initial refresh and processing",
            replace_existing=True,
        )
        self.scheduler.start()
        log_pipeline_event(
            "scheduler.started",
            f"Scheduler started: feeds every {self.config.feed_refresh_minutes} minutes, "
            f"processing every {self.config.processing_minutes} minutes",
            event_category="system",
        )

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown")
