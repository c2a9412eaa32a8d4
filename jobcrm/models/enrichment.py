# enrichment.py
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jobcrm.database import Base


class JobEnrichment(Base):
    __tablename__ = "job_enrichments"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), unique=True, nullable=False)
    profile_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    extracted_fields = Column(JSON, nullable=True)

    comp_min = Column(Float, nullable=True)
    comp_max = Column(Float, nullable=True)
    comp_currency = Column(String(10), nullable=True)
    tech_stack = Column(JSON, nullable=True)
    skills_sought = Column(JSON, nullable=True)
    remote_policy = Column(String(20), nullable=True)

    ai_fit_score = Column(Integer, nullable=True)
    dealbreaker_hit = Column(Boolean, nullable=True)
    skills_matched = Column(JSON, nullable=True)
    skills_gap = Column(JSON, nullable=True)
    ai_tailored_summary = Column(Text, nullable=True)
    ai_resume_tips = Column(JSON, nullable=True)
    confidence_score = Column(Integer, nullable=True)
    fit_reasoning = Column(Text, nullable=True)
    key_strengths = Column(JSON, nullable=True)
    concerns = Column(JSON, nullable=True)
    insights = Column(JSON, nullable=True)
    resume_bullet = Column(Text, nullable=True)
    risks = Column(JSON, nullable=True)

    culture_fit_score = Column(Integer, nullable=True)
    growth_potential_score = Column(Integer, nullable=True)
    work_life_balance_score = Column(Integer, nullable=True)
    compensation_competitiveness_score = Column(Integer, nullable=True)
    overall_recommendation_score = Column(Integer, nullable=True)

    raw_json = Column(JSON, nullable=True)
    last_error = Column(Text, nullable=True)
    error_count = Column(Integer, nullable=False, default=0)
    correlation_id = Column(String(64), nullable=True)
    enrichment_started_at = Column(DateTime(timezone=True), nullable=True)
    enrichment_completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="enrichment")
