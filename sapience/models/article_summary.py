from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from sapience.core.database import Base

# Digest stored when the summarizer failed. Such summaries count as processed
# but are picked up again by forced regeneration.
SUMMARY_ERROR_SENTINEL = "Error generating summary"


class ArticleSummary(Base):
    __tablename__ = "article_summaries"

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(
        Integer,
        ForeignKey("articles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    summary = Column(Text, nullable=False)
    keywords = Column(JSON, default=list)
    processed_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    article = relationship("Article", back_populates="summary")

    @property
    def is_error(self) -> bool:
        return self.summary == SUMMARY_ERROR_SENTINEL
