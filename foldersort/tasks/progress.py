"""
@description 任务进度通道
@responsibility 流水线写入进度和日志事件，由调度器按写入顺序消费
"""

import asyncio
from typing import AsyncIterator, Optional

from foldersort.schemas.jobs import JobEvent, JobEventKind


class ProgressChannel:
    """单个任务的事件通道，写入端不阻塞"""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._queue: asyncio.Queue[Optional[JobEvent]] = asyncio.Queue()
        self._closed = False

    def progress(self, value: int) -> None:
        self._put(JobEvent(job_id=self.job_id, kind=JobEventKind.PROGRESS, progress=int(value)))

    def log(self, message: str) -> None:
        self._put(JobEvent(job_id=self.job_id, kind=JobEventKind.LOG, message=message))

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def _put(self, event: JobEvent) -> None:
        if self._closed:
            raise RuntimeError(f"任务 {self.job_id} 的进度通道已关闭")
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[JobEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
