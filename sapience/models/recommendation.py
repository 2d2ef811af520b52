import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from sapience.core.database import Base


class Verdict(str, enum.Enum):
    LIKE = "like"
    DISLIKE = "dislike"


class Recommendation(Base):
    __tablename__ = "recommendations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    article_id = Column(
        Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False
    )
    relevance_score = Column(Integer, nullable=False)  # 1-100
    reason = Column(Text, nullable=False)
    viewed = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="recommendations")
    article = relationship("Article", back_populates="recommendations")

    # At most one recommendation per (user, article)
    __table_args__ = (
        UniqueConstraint("user_id", "article_id", name="uq_recommendation_user_article"),
    )


class ArticlePreference(Base):
    __tablename__ = "article_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    article_id = Column(
        Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False
    )
    preference = Column(String, nullable=False)  # Verdict value
    explanation = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="preferences")
    article = relationship("Article", back_populates="preferences")

    __table_args__ = (
        UniqueConstraint("user_id", "article_id", name="uq_preference_user_article"),
    )
