"""Tests for a full processing pass."""

import pytest
from sapience.models import (
    ArticleSummary,
    Recommendation,
    SUMMARY_ERROR_SENTINEL,
    User,
    UserInterestProfile,
)
from sapience.services.article_processor import ArticleProcessor, process_in_new_session


def _add_user(db_session, name, interests, is_active=True):
    user = User(username=name, email=f"{name}@example.com", is_active=is_active)
    db_session.add(user)
    db_session.commit()
    db_session.add(UserInterestProfile(user_id=user.id, interests=interests))
    db_session.commit()
    return user


@pytest.mark.integration
class TestArticleProcessor:
    @pytest.mark.asyncio
    async def test_new_summaries_scored_for_every_profile(
        self, db_session, multiple_articles, fake_llm
    ):
        alice = _add_user(db_session, "alice", "Rust")
        bob = _add_user(db_session, "bob", "Gardening")
        processor = ArticleProcessor(db_session, fake_llm)

        result = await processor.process(processor.resolve_profiles())

        assert result.summarized == 5
        assert result.scored == 10
        for user in (alice, bob):
            assert (
                db_session.query(Recommendation)
                .filter(Recommendation.user_id == user.id)
                .count()
                == 5
            )

    @pytest.mark.asyncio
    async def test_inactive_users_are_not_scored(
        self, db_session, multiple_articles, fake_llm
    ):
        _add_user(db_session, "alice", "Rust")
        _add_user(db_session, "carol", "Chess", is_active=False)
        processor = ArticleProcessor(db_session, fake_llm)

        profiles = processor.resolve_profiles()

        assert [p.interests for p in profiles] == ["Rust"]

    @pytest.mark.asyncio
    async def test_without_new_summaries_unrecommended_are_scored(
        self, db_session, test_profile, summarized_articles, fake_llm
    ):
        processor = ArticleProcessor(db_session, fake_llm)

        result = await processor.process([test_profile])

        assert result.summarized == 0
        assert result.scored == 5
        assert db_session.query(Recommendation).count() == 5

    @pytest.mark.asyncio
    async def test_targeted_user_rescored_in_full(
        self, db_session, test_profile, summarized_articles, fake_llm
    ):
        processor = ArticleProcessor(db_session, fake_llm)
        await processor.process([test_profile])
        fake_llm.relevance_calls.clear()

        result = await processor.process_for_user(test_profile.user_id)

        assert result.scored == 5
        assert len(fake_llm.relevance_calls) == 5

    @pytest.mark.asyncio
    async def test_unknown_user_processes_nobody(self, db_session, summarized_articles, fake_llm):
        result = await ArticleProcessor(db_session, fake_llm).process_for_user(9999)

        assert result.scored == 0

    @pytest.mark.asyncio
    async def test_force_regenerate_retries_error_summaries(
        self, db_session, test_profile, multiple_articles, fake_llm
    ):
        for article in multiple_articles:
            db_session.add(
                ArticleSummary(
                    article_id=article.id, summary=SUMMARY_ERROR_SENTINEL, keywords=[]
                )
            )
        db_session.commit()

        result = await ArticleProcessor(db_session, fake_llm).process_for_user(
            test_profile.user_id, force_regenerate=True
        )

        assert result.regenerated == 5
        assert result.scored == 5
        assert (
            db_session.query(ArticleSummary)
            .filter(ArticleSummary.summary == SUMMARY_ERROR_SENTINEL)
            .count()
            == 0
        )

    @pytest.mark.asyncio
    async def test_process_in_new_session(
        self, db_session, session_factory, test_profile, multiple_articles, fake_llm
    ):
        result = await process_in_new_session(
            test_profile.user_id, llm_client=fake_llm, session_factory=session_factory
        )

        assert result.summarized == 5
        db_session.expire_all()
        assert db_session.query(Recommendation).count() == 5
