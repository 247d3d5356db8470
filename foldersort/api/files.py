"""
@description 文件记录与撤销接口
@responsibility 目录预览与路径检查，查询文件记录、可撤销文件和操作历史，执行单个/批量/按任务撤销
"""

import os
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from foldersort.schemas.api import (
    ClassifyPreviewResponse,
    FileListResponse,
    FileRecordItem,
    OperationItem,
    OperationListResponse,
    PathValidationResponse,
    ScannedFileItem,
    ScanPreviewRequest,
    ScanPreviewResponse,
    UndoableFilesResponse,
    UndoRangeRequest,
    error_response,
    success_response,
)
from foldersort.services import file_store
from foldersort.services.classifier import classify_files
from foldersort.services.scanner import ScanError, ScanResult, scan_directory, validate_path
from foldersort.services.undo_ledger import (
    get_undoable_files,
    undo_file_move,
    undo_job,
    undo_recent_organization,
)

if TYPE_CHECKING:
    from foldersort.core.config import OrganizerConfig

router = APIRouter()

_organizer: Optional["OrganizerConfig"] = None


def init_files_router(organizer: "OrganizerConfig"):
    global _organizer
    _organizer = organizer


async def _scan(source_path: str) -> ScanResult:
    try:
        return await scan_directory(
            os.path.expanduser(source_path),
            ignored_folders=_organizer.ignored_folders,
            max_depth=_organizer.max_depth,
            recursive=_organizer.recursive,
        )
    except ScanError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/files")
async def list_files(
    limit: int = Query(100, ge=1, le=1000, description="返回数量"),
    offset: int = Query(0, ge=0, description="偏移量"),
):
    total, records = await file_store.list_files(limit, offset)
    items = [FileRecordItem.model_validate(record) for record in records]
    return success_response(
        data=FileListResponse(total=total, files=items), message="获取文件记录成功"
    )


@router.get("/files/validate-path")
async def check_path(path: str = Query(..., min_length=1, description="待检查的路径")):
    result = await validate_path(path)
    return success_response(data=PathValidationResponse(**result), message="路径检查完成")


@router.post("/files/scan")
async def preview_scan(request: ScanPreviewRequest):
    """只扫描不移动"""
    scan_result = await _scan(request.source_path)
    return success_response(
        data=ScanPreviewResponse(
            scanned_path=scan_result.scanned_path,
            scanned_at=scan_result.scanned_at,
            total_files=scan_result.total_files,
            files=[ScannedFileItem.model_validate(f) for f in scan_result.files],
        ),
        message="扫描完成",
    )


@router.post("/files/classify")
async def preview_classify(request: ScanPreviewRequest):
    """扫描并按分类分组，不移动文件"""
    scan_result = await _scan(request.source_path)
    categorized = classify_files(scan_result.files, _organizer.categories)
    return success_response(
        data=ClassifyPreviewResponse(
            scanned_path=scan_result.scanned_path,
            scanned_at=scan_result.scanned_at,
            total_files=scan_result.total_files,
            categories={
                category: [ScannedFileItem.model_validate(f) for f in files]
                for category, files in categorized.items()
            },
        ),
        message="分类预览完成",
    )


@router.get("/files/undoable")
async def list_undoable_files(
    since: Optional[datetime] = Query(None, description="起始时间（默认 24 小时前）"),
):
    records = await get_undoable_files(since)
    items = [FileRecordItem.model_validate(record) for record in records]
    return success_response(
        data=UndoableFilesResponse(count=len(items), files=items),
        message="获取可撤销文件成功",
    )


@router.get("/files/operations/recent")
async def get_recent_operations(
    limit: int = Query(10, ge=1, le=200, description="返回数量"),
):
    operations = await file_store.get_recent_operations(limit)
    items = [OperationItem(**op) for op in operations]
    return success_response(
        data=OperationListResponse(total=len(items), operations=items),
        message="获取操作记录成功",
    )


@router.post("/files/undo")
async def undo_range(request: UndoRangeRequest):
    if request.job_id:
        summary = await undo_job(request.job_id)
    else:
        summary = await undo_recent_organization(request.since, request.limit)
    return success_response(data=summary, message="批量撤销完成")


@router.post("/files/{file_id}/undo")
async def undo_file(file_id: int):
    record = await file_store.get_file_by_id(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"文件记录 '{file_id}' 不存在")

    result = await undo_file_move(file_id)
    if not result.success:
        # 文件无法撤销时仍返回撤销结果
        return JSONResponse(
            status_code=409,
            content=error_response(
                code=409, message=f"撤销失败: {result.error}", data=result.model_dump()
            ).model_dump(),
        )

    message = "文件已处于原始位置" if result.skipped else "撤销成功"
    return success_response(data=result, message=message)


@router.get("/files/{file_id}/history")
async def get_file_history(file_id: int):
    record = await file_store.get_file_by_id(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"文件记录 '{file_id}' 不存在")

    logs = await file_store.get_file_history(file_id)
    items = [
        OperationItem(
            id=log.id,
            action=log.action,
            file_id=log.file_id,
            job_id=log.job_id,
            timestamp=log.timestamp,
            metadata=log.details,
            file_name=record.name,
            category=record.category,
        )
        for log in logs
    ]
    return success_response(
        data=OperationListResponse(total=len(items), operations=items),
        message="获取文件历史成功",
    )
