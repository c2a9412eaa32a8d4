# job_document.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jobcrm.database import Base


class JobDocument(Base):
    __tablename__ = "job_documents"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), nullable=False)
    doc_type = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    doc_status = Column(String(20), nullable=False, default="processing")
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(50), nullable=True)
    tags = Column(JSON, nullable=True)
    memo = Column(Text, nullable=True)
    doc_metadata = Column("metadata", JSON, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    job = relationship("Job", back_populates="documents")
