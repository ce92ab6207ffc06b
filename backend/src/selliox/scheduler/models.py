"""Scheduled job bookkeeping."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from selliox.storage.models import Base


class JobRun(Base):
    """One claimed run of a scheduled job.

    The unique (job_name, run_key) pair is the lock: whoever inserts the row
    owns the run for that period, every other trigger skips.
    """
    __tablename__ = "job_runs"
    __table_args__ = (
        UniqueConstraint("job_name", "run_key", name="uq_job_runs_job_key"),
    )

    id = Column(Integer, primary_key=True)
    job_name = Column(String(50), nullable=False)
    run_key = Column(String(50), nullable=False)

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    ok = Column(Boolean, nullable=True)
    detail = Column(Text, nullable=True)

    def __repr__(self):
        return f"<JobRun(job={self.job_name}, key={self.run_key}, ok={self.ok})>"

    def to_dict(self) -> dict:
        return {
            "job_name": self.job_name,
            "run_key": self.run_key,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "ok": self.ok,
            "detail": self.detail,
        }
