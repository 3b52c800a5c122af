"""
Document database model
Extracted contract text owned by a user
"""

from sqlalchemy import Column, String, Integer, Text, DateTime, Index
from sqlalchemy.sql import func
from app.db.base import Base


class Document(Base):
    """
    Model for storing extracted contract text.

    Text is produced once by the extraction collaborator and never
    modified by the analysis pipeline; only the denormalized
    detected_type and the user's party selection change.
    """
    __tablename__ = "documents"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Ownership
    owner_id = Column(String(64), nullable=False, index=True)

    # Document content
    filename = Column(String(255), nullable=True)
    text = Column(Text, nullable=True)
    pages = Column(Integer, nullable=False, default=1)

    # Denormalized contract type (first confident detection wins)
    detected_type = Column(String(64), nullable=True)

    # Party the user represents, used to frame the full analysis
    user_selected_party = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_documents_owner_created', 'owner_id', 'created_at'),
    )

    def __repr__(self):
        return f"<Document(id={self.id}, owner_id='{self.owner_id}', detected_type='{self.detected_type}')>"
