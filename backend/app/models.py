from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, Integer, DateTime, Text, func, JSON
Base = declarative_base()

JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_COMPLETED_STUB = "completed_stub"
JOB_STATUS_DENIED = "denied"
JOB_STATUS_ERROR = "error"

class Job(Base):
    """One generation request/result pair. Written once, after the outcome is known."""
    __tablename__ = "jobs"
    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    app_id = Column(String, nullable=False, default="fit")
    person_path = Column(String, nullable=False)
    item_paths = Column(JSON, nullable=False, default=list)
    pose_id = Column(String, nullable=True)
    preview_path = Column(String, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    status = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class SimMetric(Base):
    __tablename__ = "sim_metrics"
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=False)
    duration_ms = Column(Integer, nullable=False)
    status = Column(String, nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
