# job.py
from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jobcrm.database import Base


JOB_STATUSES = ("new", "interested", "applied", "interviewing", "offer", "rejected", "archived")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(1024), unique=True, index=True, nullable=True)
    title = Column(String(500), nullable=True)
    company = Column(String(255), nullable=True)
    company_url = Column(String(1024), nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    source = Column(String(100), nullable=True)
    scraped_at = Column(DateTime(timezone=True), nullable=True)
    salary = Column(String(255), nullable=True)
    employment_type = Column(String(100), nullable=True)
    experience_level = Column(String(100), nullable=True)
    status = Column(String(50), nullable=False, default="new", index=True)
    interview_status = Column(String(50), nullable=True)
    current_interview_stage = Column(String(50), nullable=True)
    ai_fit_score = Column(Integer, nullable=True)
    scraper_raw_json = Column(JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    enrichment = relationship(
        "JobEnrichment",
        back_populates="job",
        uselist=False,
        cascade="all, delete-orphan",
    )
    interview_rounds = relationship(
        "InterviewRound",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="InterviewRound.round_number",
    )
    notes = relationship("JobNote", back_populates="job", cascade="all, delete-orphan")
    documents = relationship("JobDocument", back_populates="job", cascade="all, delete-orphan")
