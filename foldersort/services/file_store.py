"""
@description 文件记录与操作日志的持久化
@responsibility 封装 files / logs 表的查询与写入，供移动、撤销、查重服务使用
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import desc, func, select

from foldersort.core.database import get_session
from foldersort.models.file_record import FileRecord
from foldersort.models.operation_log import OperationLog
from foldersort.services.scanner import FileInfo

ACTION_SCANNED = "scanned"
ACTION_MOVED = "moved"
ACTION_UNDONE = "undone"


async def get_file_by_id(file_id: int) -> Optional[FileRecord]:
    async with get_session() as session:
        return await session.get(FileRecord, file_id)


async def get_file_by_current_path(path: str) -> Optional[FileRecord]:
    async with get_session() as session:
        result = await session.execute(
            select(FileRecord)
            .where(FileRecord.current_path == path)
            .order_by(FileRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


async def record_move(
    file: FileInfo,
    category: str,
    new_path: str,
    file_hash: str,
    job_id: Optional[str] = None,
) -> FileRecord:
    """
    在同一事务中写入文件记录和 moved 日志

    已存在 current_path 等于源路径的记录时更新该记录（保留其 original_path），
    否则新建记录，original_path 为本次的源路径。
    """
    now = datetime.now()
    async with get_session() as session:
        result = await session.execute(
            select(FileRecord)
            .where(FileRecord.current_path == file.path)
            .order_by(FileRecord.id.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()

        if record is None:
            record = FileRecord(
                name=file.name,
                original_path=file.path,
                size=file.size,
                extension=file.extension,
                scanned_at=now,
            )
            session.add(record)

        record.current_path = new_path
        record.size = file.size
        record.category = category
        record.hash = file_hash
        record.job_id = job_id
        record.organized_at = now
        record.updated_at = now
        await session.flush()

        session.add(
            OperationLog(
                action=ACTION_MOVED,
                file_id=record.id,
                job_id=job_id,
                timestamp=now,
                details={
                    "category": category,
                    "original_path": record.original_path,
                    "previous_path": file.path,
                    "current_path": new_path,
                    "hash": file_hash,
                    "job_id": job_id,
                },
            )
        )
        await session.commit()
        return record


async def record_undo(record: FileRecord, job_id: Optional[str] = None) -> None:
    """撤销成功后更新记录并追加 undone 日志"""
    now = datetime.now()
    async with get_session() as session:
        db_record = await session.get(FileRecord, record.id)
        previous_path = db_record.current_path
        db_record.current_path = db_record.original_path
        db_record.organized_at = None
        db_record.updated_at = now

        session.add(
            OperationLog(
                action=ACTION_UNDONE,
                file_id=db_record.id,
                job_id=job_id,
                timestamp=now,
                details={
                    "previous_path": previous_path,
                    "restored_path": db_record.original_path,
                    "hash": db_record.hash,
                    "category": db_record.category,
                },
            )
        )
        await session.commit()


async def repair_reverted(file_id: int) -> None:
    """文件已位于原始位置时修正记录，不写日志"""
    async with get_session() as session:
        record = await session.get(FileRecord, file_id)
        record.current_path = record.original_path
        record.organized_at = None
        record.updated_at = datetime.now()
        await session.commit()


async def upsert_fingerprint(file: FileInfo, file_hash: str) -> FileRecord:
    """保存文件指纹，记录不存在时以当前路径新建并追加 scanned 日志"""
    now = datetime.now()
    async with get_session() as session:
        result = await session.execute(
            select(FileRecord)
            .where(FileRecord.current_path == file.path)
            .order_by(FileRecord.id.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
        created = record is None
        if created:
            record = FileRecord(
                name=file.name,
                original_path=file.path,
                current_path=file.path,
                extension=file.extension,
                scanned_at=now,
            )
            session.add(record)

        record.size = file.size
        record.hash = file_hash
        record.updated_at = now
        await session.flush()

        if created:
            session.add(
                OperationLog(
                    action=ACTION_SCANNED,
                    file_id=record.id,
                    timestamp=now,
                    details={"current_path": file.path, "hash": file_hash, "size": file.size},
                )
            )
        await session.commit()
        return record


async def find_by_hash(file_hash: str) -> list[FileRecord]:
    async with get_session() as session:
        result = await session.execute(
            select(FileRecord).where(FileRecord.hash == file_hash).order_by(FileRecord.id)
        )
        return list(result.scalars().all())


async def get_duplicate_hashes() -> list[tuple[str, int]]:
    """返回出现多于一次的指纹及其数量"""
    async with get_session() as session:
        result = await session.execute(
            select(FileRecord.hash, func.count().label("count"))
            .where(FileRecord.hash.is_not(None))
            .group_by(FileRecord.hash)
            .having(func.count() > 1)
        )
        return [(row[0], row[1]) for row in result.all()]


async def list_organized_since(
    since: datetime, limit: Optional[int] = None, job_id: Optional[str] = None
) -> list[FileRecord]:
    async with get_session() as session:
        stmt = select(FileRecord).where(FileRecord.organized_at.is_not(None))
        if job_id is not None:
            stmt = stmt.where(FileRecord.job_id == job_id)
        else:
            stmt = stmt.where(FileRecord.organized_at >= since)
        stmt = stmt.order_by(desc(FileRecord.organized_at))
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())


async def get_file_history(file_id: int) -> list[OperationLog]:
    async with get_session() as session:
        result = await session.execute(
            select(OperationLog)
            .where(OperationLog.file_id == file_id)
            .order_by(OperationLog.timestamp, OperationLog.id)
        )
        return list(result.scalars().all())


async def get_recent_operations(limit: int = 10) -> list[dict[str, Any]]:
    async with get_session() as session:
        result = await session.execute(
            select(OperationLog, FileRecord.name, FileRecord.category)
            .outerjoin(FileRecord, OperationLog.file_id == FileRecord.id)
            .order_by(desc(OperationLog.timestamp), desc(OperationLog.id))
            .limit(limit)
        )
        return [
            {
                "id": log.id,
                "action": log.action,
                "file_id": log.file_id,
                "job_id": log.job_id,
                "timestamp": log.timestamp,
                "metadata": log.details,
                "file_name": name,
                "category": category,
            }
            for log, name, category in result.all()
        ]


async def list_files(limit: int = 100, offset: int = 0) -> tuple[int, list[FileRecord]]:
    """分页列出所有文件记录，最近更新的在前"""
    async with get_session() as session:
        total = await session.scalar(select(func.count()).select_from(FileRecord))
        result = await session.execute(
            select(FileRecord)
            .order_by(desc(FileRecord.updated_at), desc(FileRecord.id))
            .offset(offset)
            .limit(limit)
        )
        return total or 0, list(result.scalars().all())
