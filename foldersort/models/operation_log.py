"""
@description 操作日志数据模型
@responsibility 只追加的审计记录，moved 记录携带足以撤销的全部信息
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String

from foldersort.core.database import Base


class OperationLog(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # scanned / moved / undone
    action = Column(String(20), nullable=False)
    file_id = Column(Integer, ForeignKey("files.id"), nullable=True)
    job_id = Column(String(64), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)
    # "metadata" 为 Declarative 保留属性名，列名保持 metadata
    details = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("ix_logs_action", "action"),
        Index("ix_logs_timestamp", "timestamp"),
    )
