from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from typing import List
from sapience.api.deps import get_background, get_content_backfill, get_feed_client
from sapience.api.validation import LimitParam, SkipParam
from sapience.core.database import get_db
from sapience.core.auth import get_current_user
from sapience.models.feed import Feed
from sapience.models.user import User
from sapience.schemas.feed import (
    Feed as FeedSchema,
    FeedCreate,
    FeedUpdate,
    RefreshAllResult,
)
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.content_backfill import ContentBackfill
from sapience.services.feed_client import FeedFetchError, FeedSourceClient
from sapience.services.feed_refresher import FeedRefresher
from slowapi import Limiter
from slowapi.util import get_remote_address

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def _get_feed_or_404(db: Session, feed_id: int) -> Feed:
    feed = db.query(Feed).filter(Feed.id == feed_id).first()
    if not feed:
        raise HTTPException(status_code=404, detail="Feed not found")
    return feed


@router.get("/", response_model=List[FeedSchema])
def get_feeds(
    skip: int = SkipParam,
    limit: int = LimitParam,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get all subscribed feeds."""
    return db.query(Feed).order_by(Feed.id).offset(skip).limit(limit).all()


@router.post("/", response_model=FeedSchema)
@limiter.limit("30/minute")
async def create_feed(
    request: Request,
    feed: FeedCreate,
    db: Session = Depends(get_db),
    feed_client: FeedSourceClient = Depends(get_feed_client),
    backfill: ContentBackfill = Depends(get_content_backfill),
    current_user: User = Depends(get_current_user),
):
    """Subscribe to a feed: fetch it, store its metadata and its current articles."""
    existing = db.query(Feed).filter(Feed.url == feed.url).first()
    if existing:
        raise HTTPException(status_code=400, detail="Feed already exists")

    refresher = FeedRefresher(db, client=feed_client, backfill=backfill)
    try:
        return await refresher.subscribe(
            feed.url, category_id=feed.category_id, auto_refresh=feed.auto_refresh
        )
    except FeedFetchError as e:
        raise HTTPException(status_code=400, detail=f"Could not load feed: {e.reason}")


@router.post("/refresh-all", response_model=RefreshAllResult)
@limiter.limit("10/minute")
async def refresh_all_feeds(
    request: Request,
    db: Session = Depends(get_db),
    feed_client: FeedSourceClient = Depends(get_feed_client),
    backfill: ContentBackfill = Depends(get_content_backfill),
    background: BackgroundTaskSet = Depends(get_background),
    current_user: User = Depends(get_current_user),
):
    """Refresh every feed. Feeds that fail are counted, not raised."""
    refresher = FeedRefresher(
        db, client=feed_client, backfill=backfill, background=background
    )
    result = await refresher.refresh_all()
    return RefreshAllResult(
        success=result.success, failed=result.failed, new_articles=result.new_articles
    )


@router.get("/{feed_id}", response_model=FeedSchema)
def get_feed(
    feed_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a specific feed by ID."""
    return _get_feed_or_404(db, feed_id)


@router.put("/{feed_id}", response_model=FeedSchema)
def update_feed(
    feed_id: int,
    feed_update: FeedUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update a feed's title, category or auto-refresh flag."""
    feed = _get_feed_or_404(db, feed_id)

    update_data = feed_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(feed, key, value)

    db.commit()
    db.refresh(feed)
    return feed


@router.delete("/{feed_id}")
def delete_feed(
    feed_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a feed together with its articles, summaries and recommendations."""
    feed = _get_feed_or_404(db, feed_id)
    db.delete(feed)
    db.commit()
    return {"message": "Feed deleted successfully"}


@router.post("/{feed_id}/refresh")
@limiter.limit("30/minute")
async def refresh_feed(
    feed_id: int,
    request: Request,
    db: Session = Depends(get_db),
    feed_client: FeedSourceClient = Depends(get_feed_client),
    backfill: ContentBackfill = Depends(get_content_backfill),
    background: BackgroundTaskSet = Depends(get_background),
    current_user: User = Depends(get_current_user),
):
    """Refresh one feed now."""
    feed = _get_feed_or_404(db, feed_id)
    refresher = FeedRefresher(
        db, client=feed_client, backfill=backfill, background=background
    )
    try:
        created = await refresher.refresh_feed(feed, detach_backfill=True)
    except FeedFetchError as e:
        raise HTTPException(status_code=502, detail=f"Could not refresh feed: {e.reason}")
    return {"new_articles": len(created)}
