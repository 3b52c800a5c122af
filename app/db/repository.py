"""
Contract repository
Narrow persistence interface used by the contract pipeline.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.analysis_record import AnalysisRecord
from app.db.models.document import Document

logger = logging.getLogger(__name__)


class AnalysisConflictError(Exception):
    """Another analysis record already exists for the document"""


class ContractRepository:
    """
    Reads and writes documents and analysis records.

    Every write commits immediately. Writes that could race across requests
    are conditional: inserts rely on the unique document_id constraint and
    updates only apply while the record is still partial (score IS NULL).
    Bulk updates do not refresh objects already loaded in the session.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_document(self, document_id: int) -> Optional[Document]:
        result = await self.db.execute(select(Document).where(Document.id == document_id))
        return result.scalar_one_or_none()

    async def get_latest_analysis(self, document_id: int) -> Optional[AnalysisRecord]:
        result = await self.db.execute(
            select(AnalysisRecord)
            .where(AnalysisRecord.document_id == document_id)
            .order_by(AnalysisRecord.created_at.desc(), AnalysisRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def insert_analysis(self, document_id: int, **fields: Any) -> AnalysisRecord:
        """
        Insert a new analysis record.

        Raises:
            AnalysisConflictError: If the document already has a record
        """
        record = AnalysisRecord(document_id=document_id, **fields)
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Analysis insert for document {document_id} lost a race: {e.orig}")
            raise AnalysisConflictError(f"Analysis already exists for document {document_id}") from e
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        await self.db.refresh(record)
        return record

    async def update_partial_analysis(self, analysis_id: int, **fields: Any) -> bool:
        """
        Update a record in place while it is still partial.

        Returns:
            True if the record was updated, False if it was already terminal
        """
        try:
            result = await self.db.execute(
                update(AnalysisRecord)
                .where(AnalysisRecord.id == analysis_id, AnalysisRecord.score.is_(None))
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return result.rowcount == 1

    async def set_document_type_if_unset(self, document_id: int, detected_type: str) -> bool:
        """Denormalize detected_type onto the document unless it already has one"""
        try:
            result = await self.db.execute(
                update(Document)
                .where(Document.id == document_id, Document.detected_type.is_(None))
                .values(detected_type=detected_type)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return result.rowcount == 1

    async def set_user_selected_party(self, document_id: int, party_name: Optional[str]) -> bool:
        try:
            result = await self.db.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(user_selected_party=party_name)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return result.rowcount == 1
