"""
Shared endpoint dependencies.

Tests replace these through ``app.dependency_overrides`` to inject fakes for
the feed source, the article pages and the LLM service.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from sapience.core.database import get_db
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.content_backfill import ContentBackfill
from sapience.services.feed_client import FeedSourceClient
from sapience.services.llm_client import LLMClient

_llm_client = None


def get_feed_client() -> FeedSourceClient:
    return FeedSourceClient()


def get_content_backfill(db: Session = Depends(get_db)) -> ContentBackfill:
    return ContentBackfill(db)


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


def get_background(request: Request) -> BackgroundTaskSet:
    """The app-wide task set created at startup, or a fresh one."""
    background = getattr(request.app.state, "background", None)
    if background is None:
        background = BackgroundTaskSet("api")
        request.app.state.background = background
    return background
