"""
@description API 请求/响应模型
@responsibility 定义所有 API 接口的数据结构
"""

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from foldersort.schemas.jobs import Job, JobStatus, JobType


class CreateJobRequest(BaseModel):
    type: JobType = Field(..., description="任务类型（organize / duplicate-scan）")
    source_path: str = Field(..., min_length=1, description="源目录")
    target_path: Optional[str] = Field(None, description="整理目标目录（organize 可选）")


class CreateJobResponse(BaseModel):
    job_id: str = Field(..., description="任务 ID")
    status: JobStatus = Field(..., description="任务状态")


class JobItem(BaseModel):
    id: str = Field(..., description="任务 ID")
    type: JobType = Field(..., description="任务类型")
    status: JobStatus = Field(..., description="任务状态")
    progress: int = Field(..., description="进度（0-100）")
    attempts: int = Field(0, description="已执行次数")
    data: dict[str, Any] = Field(default_factory=dict, description="任务输入")
    result: Optional[dict[str, Any]] = Field(None, description="任务结果（完成时）")
    error: Optional[str] = Field(None, description="错误信息（失败时）")
    created_at: datetime = Field(..., description="创建时间")
    started_at: Optional[datetime] = Field(None, description="开始时间")
    completed_at: Optional[datetime] = Field(None, description="结束时间")

    @classmethod
    def from_job(cls, job: Job) -> "JobItem":
        return cls(**job.model_dump(exclude={"logs"}))


class JobListResponse(BaseModel):
    total: int = Field(..., description="任务总数")
    jobs: list[JobItem] = Field(..., description="任务列表")


class JobLogsResponse(BaseModel):
    job_id: str = Field(..., description="任务 ID")
    logs: list[str] = Field(..., description="任务日志")


class FileRecordItem(BaseModel):
    id: int = Field(..., description="文件记录 ID")
    name: str = Field(..., description="文件名")
    original_path: str = Field(..., description="原始路径")
    current_path: str = Field(..., description="当前路径")
    size: int = Field(0, description="文件大小（字节）")
    extension: str = Field("", description="扩展名")
    category: Optional[str] = Field(None, description="分类")
    hash: Optional[str] = Field(None, description="内容指纹")
    job_id: Optional[str] = Field(None, description="最近移动该文件的任务")
    organized_at: Optional[datetime] = Field(None, description="整理时间")

    model_config = {"from_attributes": True}


class UndoableFilesResponse(BaseModel):
    count: int = Field(..., description="可撤销文件数")
    files: list[FileRecordItem] = Field(..., description="可撤销文件列表")


class UndoRangeRequest(BaseModel):
    since: Optional[datetime] = Field(None, description="起始时间（默认 24 小时前）")
    limit: Optional[int] = Field(None, ge=1, description="最多撤销的文件数")
    job_id: Optional[str] = Field(None, description="只撤销该任务移动的文件")


class FileListResponse(BaseModel):
    total: int = Field(..., description="文件记录总数")
    files: list[FileRecordItem] = Field(..., description="文件记录列表")


class ScanPreviewRequest(BaseModel):
    source_path: str = Field(..., min_length=1, description="待预览的目录")


class ScannedFileItem(BaseModel):
    name: str = Field(..., description="文件名")
    path: str = Field(..., description="文件路径")
    size: int = Field(..., description="文件大小（字节）")
    extension: str = Field(..., description="扩展名")
    created_at: datetime = Field(..., description="创建时间")
    modified_at: datetime = Field(..., description="修改时间")

    model_config = {"from_attributes": True}


class ScanPreviewResponse(BaseModel):
    scanned_path: str = Field(..., description="扫描目录")
    scanned_at: datetime = Field(..., description="扫描时间")
    total_files: int = Field(..., description="文件总数")
    files: list[ScannedFileItem] = Field(..., description="文件列表")


class ClassifyPreviewResponse(BaseModel):
    scanned_path: str = Field(..., description="扫描目录")
    scanned_at: datetime = Field(..., description="扫描时间")
    total_files: int = Field(..., description="文件总数")
    categories: dict[str, list[ScannedFileItem]] = Field(..., description="按分类分组的文件")


class PathValidationResponse(BaseModel):
    valid: bool = Field(..., description="是否可作为源目录使用")
    exists: bool = Field(..., description="路径是否存在")
    is_directory: bool = Field(..., description="是否为目录")
    readable: bool = Field(..., description="是否可读")
    error: Optional[str] = Field(None, description="错误信息")


class OperationItem(BaseModel):
    id: int = Field(..., description="日志 ID")
    action: str = Field(..., description="操作类型")
    file_id: Optional[int] = Field(None, description="文件记录 ID")
    job_id: Optional[str] = Field(None, description="任务 ID")
    timestamp: datetime = Field(..., description="时间")
    metadata: Optional[dict[str, Any]] = Field(None, description="操作详情")
    file_name: Optional[str] = Field(None, description="文件名")
    category: Optional[str] = Field(None, description="分类")


class OperationListResponse(BaseModel):
    total: int = Field(..., description="记录数")
    operations: list[OperationItem] = Field(..., description="操作记录")


class ScheduleItem(BaseModel):
    name: str = Field(..., description="定时任务名称")
    pattern: str = Field(..., description="cron 表达式")
    enabled: bool = Field(..., description="是否启用")
    timezone: str = Field(..., description="时区")
    action: str = Field(..., description="触发动作")
    running: bool = Field(..., description="是否运行中")
    next_run: Optional[datetime] = Field(None, description="下次执行时间")
    last_run: Optional[datetime] = Field(None, description="上次执行时间")


class StatusResponse(BaseModel):
    orchestrator_running: bool = Field(..., description="任务队列是否运行中")
    queues: dict[str, dict[str, Any]] = Field(..., description="各队列状态")
    running_schedules: int = Field(..., description="运行中的定时任务数")


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""

    code: int = Field(..., description="响应码（0=成功，非0=错误）")
    message: str = Field(..., description="响应消息")
    data: Optional[T] = Field(None, description="响应数据")


def success_response(data: T, message: str = "操作成功") -> ApiResponse[T]:
    """创建成功响应"""
    return ApiResponse(code=0, message=message, data=data)


def error_response(code: int, message: str, data: Optional[T] = None) -> ApiResponse[T]:
    """创建错误响应"""
    return ApiResponse(code=code, message=message, data=data)
