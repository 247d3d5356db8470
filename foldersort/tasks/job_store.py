"""
@description 任务存储
@responsibility 以 jobs 表为准持久化任务；内存缓存只保存未结束的任务，供 worker 与取消操作共享同一对象
"""

import asyncio
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, select

from foldersort.core.database import get_session
from foldersort.models.job import JobRecord
from foldersort.schemas.jobs import Job, JobStatus, JobType


def _to_job(row: JobRecord) -> Job:
    return Job(
        id=row.id,
        type=JobType(row.type),
        status=JobStatus(row.status),
        progress=row.progress or 0,
        attempts=row.attempts or 0,
        data=row.data or {},
        result=row.result,
        error=row.error,
        logs=list(row.logs or []),
        created_at=row.created_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


def _apply(row: JobRecord, job: Job) -> None:
    row.type = job.type.value
    row.status = job.status.value
    row.progress = job.progress
    row.attempts = job.attempts
    row.data = job.data
    row.result = job.result
    row.error = job.error
    row.logs = list(job.logs)
    row.created_at = job.created_at
    row.started_at = job.started_at
    row.completed_at = job.completed_at


class JobStore:
    """任务存储：get / put / list_by_type"""

    def __init__(self):
        self._cache: dict[str, Job] = {}
        # 串行化 "读库后放入缓存" 与 "写库后移出缓存"，避免旧行被重新缓存
        self._lock = asyncio.Lock()

    async def get(self, job_id: str) -> Optional[Job]:
        cached = self._cache.get(job_id)
        if cached is not None:
            return cached

        async with self._lock:
            # 等锁期间可能已有其他协程放入缓存
            cached = self._cache.get(job_id)
            if cached is not None:
                return cached

            async with get_session() as session:
                row = await session.get(JobRecord, job_id)
                if row is None:
                    return None
                job = _to_job(row)

            if not job.status.is_terminal:
                self._cache[job_id] = job
            return job

    async def put(self, job: Job) -> None:
        """
        写入数据库

        提交完成前任务对象始终留在缓存中，并发的 get 拿到的是同一个对象；
        提交后再把已结束的任务移出缓存。
        """
        async with self._lock:
            self._cache[job.id] = job
            async with get_session() as session:
                row = await session.get(JobRecord, job.id)
                if row is None:
                    row = JobRecord(id=job.id)
                    session.add(row)
                _apply(row, job)
                await session.commit()

            if job.status.is_terminal:
                self._cache.pop(job.id, None)

    async def list_by_type(self, job_type: JobType) -> list[Job]:
        async with get_session() as session:
            result = await session.execute(
                select(JobRecord)
                .where(JobRecord.type == job_type.value)
                .order_by(JobRecord.created_at.desc())
            )
            rows = result.scalars().all()
        return [self._cache.get(row.id) or _to_job(row) for row in rows]

    async def list_by_status(self, statuses: Iterable[JobStatus]) -> list[Job]:
        async with get_session() as session:
            result = await session.execute(
                select(JobRecord)
                .where(JobRecord.status.in_([s.value for s in statuses]))
                .order_by(JobRecord.created_at)
            )
            rows = result.scalars().all()
        return [self._cache.get(row.id) or _to_job(row) for row in rows]

    async def delete_finished_before(self, cutoff: datetime) -> int:
        """删除 cutoff 之前结束的任务，返回删除数量"""
        async with get_session() as session:
            result = await session.execute(
                delete(JobRecord).where(
                    JobRecord.status.in_([JobStatus.COMPLETED.value, JobStatus.FAILED.value]),
                    JobRecord.completed_at.is_not(None),
                    JobRecord.completed_at < cutoff,
                )
            )
            await session.commit()
            return result.rowcount or 0
