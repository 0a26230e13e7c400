# models.py

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String, Text
from database import Base


class Job(Base):
    """Job model for tracking video render requests."""

    __tablename__ = "jobs"

    id = Column(String, primary_key=True, index=True)
    status = Column(String, nullable=False, default="queued")  # queued, processing, completed, error
    progress = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    config = Column(JSON, nullable=False)
    output_path = Column(String, nullable=True)
    file_size = Column(BigInteger, nullable=True)
    error = Column(Text, nullable=True)
    error_kind = Column(String, nullable=True)
