from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from sapience.core.database import Base


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    feed_id = Column(
        Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Original article data from the feed
    title = Column(String, nullable=False)
    link = Column(String, nullable=False)
    description = Column(Text)
    content = Column(Text)  # Full body, may be backfilled after ingestion
    author = Column(String)
    category = Column(String)  # Comma-joined feed categories
    published_date = Column(DateTime, index=True)
    guid = Column(String, unique=True, nullable=True, index=True)  # Identity key
    image_url = Column(String)

    # Metadata
    is_read = Column(Boolean, default=False)
    is_favorite = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    feed = relationship("Feed", back_populates="articles")
    summary = relationship(
        "ArticleSummary",
        back_populates="article",
        uselist=False,
        cascade="all, delete-orphan",
    )
    recommendations = relationship(
        "Recommendation", back_populates="article", cascade="all, delete-orphan"
    )
    preferences = relationship(
        "ArticlePreference", back_populates="article", cascade="all, delete-orphan"
    )
