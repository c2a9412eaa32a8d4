# interview_round.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jobcrm.database import Base


class InterviewRound(Base):
    __tablename__ = "interview_rounds"
    __table_args__ = (UniqueConstraint("job_id", "round_number", name="uq_interview_round_job_number"),)

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    round_number = Column(Integer, nullable=False)
    stage = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    interview_format = Column(String(20), nullable=True)
    interviewer_names = Column(JSON, nullable=True)
    next_steps = Column(Text, nullable=True)
    next_step_date = Column(DateTime(timezone=True), nullable=True)
    outcome = Column(String(20), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    feedback_summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="interview_rounds")
