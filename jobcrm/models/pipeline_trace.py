# pipeline_trace.py
from sqlalchemy import Column, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.sql import func
from jobcrm.database import Base


class PipelineTrace(Base):
    __tablename__ = "pipeline_traces"

    id = Column(Integer, primary_key=True, index=True)
    correlation_id = Column(String(64), nullable=False, index=True)
    job_id = Column(String(64), nullable=True)
    service_name = Column(String(50), nullable=False)
    operation = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False)
    duration_ms = Column(Float, nullable=True)
    trace_metadata = Column("metadata", JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
