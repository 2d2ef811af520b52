from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sapience.core.config import Settings, settings as default_settings
from sapience.core.logging_config import log_pipeline_event
from sapience.models.user import User, UserInterestProfile
import logging

logger = logging.getLogger(__name__)


def ensure_default_user(db: Session, settings: Optional[Settings] = None) -> User:
    """
    Create the default user and a starter interest profile if missing.

    Runs once at startup so the processing pipeline never has to create users
    on its own. An existing user keeps its profile untouched.
    """
    settings = settings or default_settings

    user = db.query(User).filter(User.username == settings.DEFAULT_USERNAME).first()
    if user is None:
        user = User(
            username=settings.DEFAULT_USERNAME,
            email=settings.DEFAULT_USER_EMAIL,
            is_active=True,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Another worker created it first
            db.rollback()
            user = (
                db.query(User)
                .filter(User.username == settings.DEFAULT_USERNAME)
                .one()
            )
        else:
            db.refresh(user)
            log_pipeline_event(
                "user.bootstrapped",
                f"Created default user {user.username}",
                user_id=user.id,
                event_category="system",
            )

    profile = (
        db.query(UserInterestProfile)
        .filter(UserInterestProfile.user_id == user.id)
        .first()
    )
    if profile is None:
        db.add(
            UserInterestProfile(
                user_id=user.id, interests=settings.DEFAULT_INTERESTS
            )
        )
        db.commit()
        logger.info(f"Created default interest profile for user {user.id}")

    return user
