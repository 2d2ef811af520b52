from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sapience.api.deps import get_background, get_llm_client
from sapience.core.database import get_db
from sapience.core.auth import get_current_user
from sapience.models.user import User
from sapience.schemas.profile import Profile, ProfileUpdate
from sapience.services.article_processor import process_in_new_session
from sapience.services.background_tasks import BackgroundTaskSet
from sapience.services.llm_client import LLMClient
from sapience.services.recommendation_store import RecommendationStore
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=Profile)
def get_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get the current user's interest profile."""
    profile = RecommendationStore(db).get_profile(current_user.id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.put("/", response_model=Profile)
async def update_profile(
    update: ProfileUpdate,
    db: Session = Depends(get_db),
    llm_client: LLMClient = Depends(get_llm_client),
    background: BackgroundTaskSet = Depends(get_background),
    current_user: User = Depends(get_current_user),
):
    """
    Save the interest profile, creating it if needed, and re-evaluate the
    user's recommendations in the background.
    """
    profile = RecommendationStore(db).save_profile(
        current_user.id, update.interests.strip()
    )
    background.spawn(
        process_in_new_session(current_user.id, llm_client=llm_client),
        name=f"rescore-user-{current_user.id}",
    )
    logger.info(f"Profile updated for user {current_user.id}, rescoring scheduled")
    return profile
