"""
@description 后台任务数据模型
@responsibility 持久化任务生命周期，进程重启后可据此恢复任务状态
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text

from foldersort.core.database import Base


class JobRecord(Base):
    __tablename__ = "jobs"

    id = Column(String(64), primary_key=True)
    type = Column(String(32), nullable=False)
    # waiting / active / completed / failed
    status = Column(String(20), nullable=False)
    progress = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=0)
    data = Column(JSON, nullable=True)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    logs = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_type", "type"),
    )
