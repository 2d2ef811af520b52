"""Tests for content backfill and the supervised background task set."""

import asyncio
import pytest
import httpx
from sapience.models import Article
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.content_backfill import ContentBackfill

LONG_BODY = "<html><body>" + ("Full article text. " * 60) + "</body></html>"


def _transport(status=200, body=LONG_BODY, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, text=body)

    return httpx.MockTransport(handler)


@pytest.mark.unit
class TestContentBackfill:
    def test_needs_backfill(self, db_session, test_article):
        backfill = ContentBackfill(db_session)

        test_article.content = None
        assert backfill.needs_backfill(test_article)
        test_article.content = "short"
        assert backfill.needs_backfill(test_article)
        test_article.content = "x" * 500
        assert not backfill.needs_backfill(test_article)

    @pytest.mark.asyncio
    async def test_backfill_stores_body(self, db_session, test_article):
        seen = []
        backfill = ContentBackfill(db_session, transport=_transport(seen=seen))

        stored = await backfill.backfill(test_article)

        assert stored is True
        db_session.refresh(test_article)
        assert test_article.content == LONG_BODY
        assert "Mozilla/5.0" in seen[0].headers["user-agent"]

    @pytest.mark.asyncio
    async def test_backfill_failure_keeps_existing_body(self, db_session, test_article):
        backfill = ContentBackfill(db_session, transport=_transport(status=503))

        stored = await backfill.backfill(test_article)

        assert stored is False
        db_session.refresh(test_article)
        assert test_article.content == "Full article content goes here"

    @pytest.mark.asyncio
    async def test_network_error_is_swallowed(self, db_session, test_article):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        backfill = ContentBackfill(
            db_session, transport=httpx.MockTransport(handler)
        )

        assert await backfill.backfill(test_article) is False

    @pytest.mark.asyncio
    async def test_long_body_is_not_refetched(self, db_session, test_article):
        seen = []
        test_article.content = "y" * 600
        db_session.commit()
        backfill = ContentBackfill(db_session, transport=_transport(seen=seen))

        assert await backfill.backfill(test_article) is False
        assert seen == []

    @pytest.mark.asyncio
    async def test_detached_backfill_uses_own_session(
        self, db_session, session_factory, test_article
    ):
        backfill = ContentBackfill(
            session_factory=session_factory, transport=_transport()
        )

        stored = await backfill.backfill_detached(test_article.id)

        assert stored is True
        db_session.expire_all()
        assert db_session.get(Article, test_article.id).content == LONG_BODY

    @pytest.mark.asyncio
    async def test_detached_backfill_missing_article(self, session_factory):
        backfill = ContentBackfill(
            session_factory=session_factory, transport=_transport()
        )

        assert await backfill.backfill_detached(9999) is False


@pytest.mark.unit
class TestBackgroundTaskSet:
    @pytest.mark.asyncio
    async def test_spawned_tasks_complete(self):
        tasks = BackgroundTaskSet("test")
        results = []

        async def work(n):
            await asyncio.sleep(0)
            results.append(n)

        tasks.spawn(work(1), name="one")
        tasks.spawn(work(2), name="two")
        assert tasks.pending == 2

        await tasks.wait()
        await asyncio.sleep(0)

        assert sorted(results) == [1, 2]
        assert tasks.completed == 2
        assert tasks.pending == 0

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(self, caplog):
        tasks = BackgroundTaskSet("test")

        async def boom():
            raise RuntimeError("backfill exploded")

        tasks.spawn(boom(), name="boom")
        await tasks.wait()
        await asyncio.sleep(0)

        assert tasks.failed == 1
        assert "backfill exploded" in caplog.text

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        tasks = BackgroundTaskSet("test")
        tasks.spawn(asyncio.sleep(60), name="sleeper")

        await tasks.cancel_all()
        await asyncio.sleep(0)

        assert tasks.pending == 0
        assert tasks.failed == 0
