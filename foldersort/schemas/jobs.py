"""
@description 后台任务数据结构
@responsibility 定义任务类型、状态、各类型的输入/输出模型以及进度事件
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class JobType(str, Enum):
    ORGANIZE = "organize"
    DUPLICATE_SCAN = "duplicate-scan"


class JobStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class OrganizeJobData(BaseModel):
    source_path: str = Field(..., min_length=1, description="待整理的源目录")
    target_path: Optional[str] = Field(
        None, description="整理目标根目录（缺省使用配置中的 organized_root）"
    )


class DuplicateScanJobData(BaseModel):
    source_path: str = Field(..., min_length=1, description="待查重的目录")


class OrganizeJobResult(BaseModel):
    total_files: int = 0
    moved_files: int = 0
    failed_files: int = 0
    categories: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)


class DuplicateFileItem(BaseModel):
    path: str
    name: str
    size: int = 0


class DuplicateGroupItem(BaseModel):
    hash: str
    count: int
    total_size: int
    wasted_space: int
    files: list[DuplicateFileItem]


class DuplicateScanJobResult(BaseModel):
    total_files: int = 0
    hashed_files: int = 0
    duplicate_groups: int = 0
    total_duplicates: int = 0
    wasted_space: int = 0
    duplicates: list[DuplicateGroupItem] = Field(default_factory=list)


class Job(BaseModel):
    """内存中的任务对象，与 jobs 表一一对应"""

    id: str
    type: JobType
    status: JobStatus = JobStatus.WAITING
    progress: int = 0
    attempts: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    logs: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobEventKind(str, Enum):
    ACTIVE = "active"
    PROGRESS = "progress"
    LOG = "log"
    COMPLETED = "completed"
    FAILED = "failed"


class JobEvent(BaseModel):
    """任务向外推送的事件"""

    job_id: str
    kind: JobEventKind
    progress: Optional[int] = None
    message: Optional[str] = None
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
