"""
@description 文件记录数据模型
@responsibility 记录系统接管（移动或计算指纹）过的每个文件的位置与内容标识
"""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text

from foldersort.core.database import Base


class FileRecord(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(512), nullable=False)
    # 首次已知位置，只在创建时写入
    original_path = Column(Text, nullable=False)
    current_path = Column(Text, nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    extension = Column(String(50), nullable=False, default="")
    category = Column(String(255), nullable=True)
    hash = Column(String(64), nullable=True)
    # 最近一次移动该文件的任务，用于按任务撤销
    job_id = Column(String(64), nullable=True)
    scanned_at = Column(DateTime, nullable=False, default=datetime.now)
    # 非空当且仅当文件已被整理且尚未撤销
    organized_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("ix_files_hash", "hash"),
        Index("ix_files_category", "category"),
        Index("ix_files_current_path", "current_path"),
        Index("ix_files_job_id", "job_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "original_path": self.original_path,
            "current_path": self.current_path,
            "size": self.size,
            "extension": self.extension,
            "category": self.category,
            "hash": self.hash,
            "job_id": self.job_id,
            "scanned_at": self.scanned_at,
            "organized_at": self.organized_at,
            "updated_at": self.updated_at,
        }
