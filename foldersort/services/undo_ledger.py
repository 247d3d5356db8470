"""
@description 撤销服务
@responsibility 将已整理的文件移回原始位置；可重复调用，已撤销的文件报告为跳过
"""

import asyncio
import os
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field

from foldersort.models.file_record import FileRecord
from foldersort.services import file_store
from foldersort.services.file_mover import move_file_safe

DEFAULT_UNDO_WINDOW = timedelta(hours=24)
DEFAULT_UNDO_LIMIT = 1000
MAX_REPORTED_ERRORS = 50


def _resolve_since(since: Optional[datetime]) -> datetime:
    """缺省为 24 小时前；带时区的时间转换为本地时间，与库中的 naive 时间比较"""
    if since is None:
        return datetime.now() - DEFAULT_UNDO_WINDOW
    if since.tzinfo is not None:
        return since.astimezone().replace(tzinfo=None)
    return since


class UndoResult(BaseModel):
    success: bool
    skipped: bool = False
    error: Optional[str] = None


class UndoSummary(BaseModel):
    success: bool = True
    undone_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    errors: list[str] = Field(default_factory=list)


async def undo_file_move(file_id: int) -> UndoResult:
    """
    撤销单个文件的移动

    Args:
        file_id: 文件记录 ID

    Returns:
        UndoResult；已处于原始位置时 success=True, skipped=True
    """
    try:
        record = await file_store.get_file_by_id(file_id)
        if record is None:
            return UndoResult(success=False, error="文件记录不存在")

        if record.current_path == record.original_path:
            return UndoResult(success=True, skipped=True)

        await asyncio.to_thread(
            os.makedirs, os.path.dirname(record.original_path), exist_ok=True
        )

        at_current = await asyncio.to_thread(os.path.exists, record.current_path)
        at_original = await asyncio.to_thread(os.path.exists, record.original_path)

        if not at_current:
            if at_original:
                logger.info(f"文件 {record.name} 已位于原始位置，修正记录")
                await file_store.repair_reverted(file_id)
                return UndoResult(success=True, skipped=True)
            return UndoResult(success=False, error="当前位置和原始位置均不存在该文件")

        if at_original:
            return UndoResult(
                success=False, error=f"原始位置已被其他文件占用: {record.original_path}"
            )

        await asyncio.to_thread(
            move_file_safe, record.current_path, record.original_path, record.hash
        )
        await file_store.record_undo(record, job_id=record.job_id)
        logger.info(f"已撤销: {record.current_path} -> {record.original_path}")
        return UndoResult(success=True)
    except Exception as e:
        logger.error(f"撤销文件移动失败 (file_id={file_id}): {e}")
        return UndoResult(success=False, error=str(e))


async def _undo_records(records: list[FileRecord]) -> UndoSummary:
    summary = UndoSummary()
    for record in records:
        result = await undo_file_move(record.id)
        if result.success:
            if result.skipped:
                summary.skipped_count += 1
            else:
                summary.undone_count += 1
        else:
            summary.failed_count += 1
            if result.error and len(summary.errors) < MAX_REPORTED_ERRORS:
                summary.errors.append(f"{record.name}: {result.error}")

    summary.success = summary.failed_count == 0
    return summary


async def undo_recent_organization(
    since: Optional[datetime] = None, limit: Optional[int] = None
) -> UndoSummary:
    """撤销 since（默认 24 小时前）之后整理的所有文件"""
    since = _resolve_since(since)
    records = await file_store.list_organized_since(since, limit=limit or DEFAULT_UNDO_LIMIT)
    logger.info(f"批量撤销: {len(records)} 个文件（since={since.isoformat()}）")
    return await _undo_records(records)


async def undo_job(job_id: str) -> UndoSummary:
    """撤销指定整理任务移动过的文件"""
    records = await file_store.list_organized_since(datetime.min, job_id=job_id)
    logger.info(f"撤销任务 {job_id}: {len(records)} 个文件")
    return await _undo_records(records)


async def get_undoable_files(since: Optional[datetime] = None) -> list[FileRecord]:
    since = _resolve_since(since)
    records = await file_store.list_organized_since(since)
    return [r for r in records if r.current_path != r.original_path]
