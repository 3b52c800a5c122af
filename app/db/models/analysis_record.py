"""
Analysis record database model
Structured outcome of classification and full analysis for one document
"""

from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, ForeignKey, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from app.db.base import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class AnalysisRecord(Base):
    """
    Model for storing contract analysis results.

    A record with score NULL is partial (classification only); once score
    is set the record is terminal and must not be overwritten. The unique
    constraint on document_id keeps one record per document.
    """
    __tablename__ = "analyses"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # One record per document
    document_id = Column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    # Classification
    detected_type = Column(String(64), nullable=True)
    parties = Column(JSONType, nullable=False, default=list)  # [{name, role, description}]
    parties_detected_at = Column(DateTime(timezone=True), nullable=True)

    # Full analysis
    score = Column(Integer, nullable=True)  # NULL until full analysis completes
    favorable = Column(Boolean, nullable=True)
    clauses = Column(JSONType, nullable=True)
    risks = Column(JSONType, nullable=True)
    opportunities = Column(JSONType, nullable=True)
    summary = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)
    negotiation_points = Column(JSONType, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_analyses_score', 'score'),
    )

    @property
    def is_terminal(self) -> bool:
        return self.score is not None

    def __repr__(self):
        return f"<AnalysisRecord(id={self.id}, document_id={self.document_id}, score={self.score})>"
