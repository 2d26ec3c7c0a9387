from datetime import datetime

from sqlalchemy import Column, BigInteger, DateTime, Integer, JSON, String, UniqueConstraint
from .database import Base


class DocumentRecord(Base):
    """One document of a collection (tasks, camps, customers, agents, ...)."""
    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc"),)

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    collection = Column(String(64), index=True, nullable=False)
    doc_id = Column(String(64), index=True, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
