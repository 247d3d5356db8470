"""
@description 后台任务调度核心逻辑
@responsibility 管理任务生命周期：创建、排队、执行、进度与日志、重试、取消，以及重启后的状态恢复
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger
from pydantic import BaseModel, ValidationError

from foldersort.core.config import Config, QueueConfig
from foldersort.schemas.jobs import Job, JobEvent, JobEventKind, JobStatus, JobType
from foldersort.services.file_mover import FileMover
from foldersort.tasks.job_store import JobStore
from foldersort.tasks.pipelines import JOB_SPECS, JobSpec, PipelineContext
from foldersort.tasks.progress import ProgressChannel
from foldersort.utils.helpers import generate_job_id

CANCELLED_REASON = "任务已被用户取消"
INTERRUPTED_REASON = "任务因进程重启而中断"


class JobQueue:
    """单一类型的任务队列，固定数量的 worker 从中领取任务 ID"""

    def __init__(
        self,
        job_type: JobType,
        settings: QueueConfig,
        handler: Callable[[str], Awaitable[None]],
    ):
        self.job_type = job_type
        self.settings = settings
        self._handler = handler
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not w.done() for w in self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            logger.warning(f"{self.job_type.value} 队列已在运行中")
            return
        self._workers = [
            asyncio.create_task(self._worker(index))
            for index in range(self.settings.concurrency)
        ]
        logger.info(
            f"{self.job_type.value} 队列已启动，并发数 {self.settings.concurrency}"
        )

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(f"{self.job_type.value} 队列已停止")

    def enqueue(self, job_id: str) -> None:
        self._queue.put_nowait(job_id)

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                await self._handler(job_id)
            except Exception as e:
                # 单个任务的异常不影响其他任务
                logger.exception(f"{self.job_type.value} worker {index} 处理任务 {job_id} 出错: {e}")
            finally:
                self._queue.task_done()


class JobOrchestrator:
    """任务调度器"""

    def __init__(
        self,
        config: Config,
        store: Optional[JobStore] = None,
        mover: Optional[FileMover] = None,
        specs: Optional[dict[JobType, JobSpec]] = None,
    ):
        self._config = config
        self._store = store or JobStore()
        self._mover = mover or FileMover()
        self._specs = specs or JOB_SPECS
        self._queues = {
            JobType.ORGANIZE: JobQueue(JobType.ORGANIZE, config.queues.organize, self._execute),
            JobType.DUPLICATE_SCAN: JobQueue(
                JobType.DUPLICATE_SCAN, config.queues.duplicate_scan, self._execute
            ),
        }
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def running(self) -> bool:
        return all(q.running for q in self._queues.values())

    def queue_status(self) -> dict[str, dict[str, Any]]:
        return {
            job_type.value: {
                "running": queue.running,
                "pending": queue.pending,
                "concurrency": queue.settings.concurrency,
            }
            for job_type, queue in self._queues.items()
        }

    async def start(self) -> None:
        """恢复持久化的任务并启动 worker"""
        await self.recover()
        for queue in self._queues.values():
            queue.start()

    async def stop(self) -> None:
        for queue in self._queues.values():
            await queue.stop()

    async def recover(self) -> None:
        """
        进程重启后的状态恢复

        waiting 任务重新入队；active 任务已无 worker 执行，标记为失败。
        """
        jobs = await self._store.list_by_status([JobStatus.WAITING, JobStatus.ACTIVE])
        for job in jobs:
            if job.status == JobStatus.WAITING:
                self._queues[job.type].enqueue(job.id)
                logger.info(f"任务 {job.id} 已重新入队")
            else:
                job.status = JobStatus.FAILED
                job.error = INTERRUPTED_REASON
                job.completed_at = datetime.now()
                await self._store.put(job)
                logger.warning(f"任务 {job.id} 在上次运行中被中断，已标记为失败")

    async def wait_idle(self) -> None:
        """等待所有已入队任务处理完毕"""
        await asyncio.gather(*(q.join() for q in self._queues.values()))

    async def create_job(
        self, job_type: Union[JobType, str], data: Union[BaseModel, dict[str, Any]]
    ) -> Job:
        """
        创建任务并立即返回，任务在后台执行

        Raises:
            ValueError: 未知的任务类型
            ValidationError: 任务参数不符合该类型的输入模型
        """
        job_type = JobType(job_type)
        spec = self._specs[job_type]
        if isinstance(data, BaseModel):
            data = data.model_dump()
        payload = spec.data_model.model_validate(data)

        job = Job(
            id=generate_job_id(spec.id_prefix),
            type=job_type,
            data=payload.model_dump(mode="json"),
        )
        await self._store.put(job)
        self._queues[job_type].enqueue(job.id)

        logger.info(f"任务已创建: {job.id} ({job_type.value})")
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self._store.get(job_id)

    async def list_jobs_by_type(self, job_type: Union[JobType, str]) -> list[Job]:
        return await self._store.list_by_type(JobType(job_type))

    async def get_logs(self, job_id: str) -> Optional[list[str]]:
        job = await self._store.get(job_id)
        if job is None:
            return None
        return list(job.logs)

    async def cancel_job(self, job_id: str) -> bool:
        """只能取消仍在等待中的任务"""
        job = await self._store.get(job_id)
        if job is None or job.status != JobStatus.WAITING:
            return False

        job.status = JobStatus.FAILED
        job.error = CANCELLED_REASON
        job.completed_at = datetime.now()
        await self._store.put(job)

        self._publish(JobEvent(job_id=job.id, kind=JobEventKind.FAILED, error=CANCELLED_REASON))
        logger.info(f"任务已取消: {job_id}")
        return True

    async def cleanup_jobs(self, days_to_keep: int) -> int:
        """删除 days_to_keep 天之前结束的任务"""
        cutoff = datetime.now() - timedelta(days=days_to_keep)
        deleted = await self._store.delete_finished_before(cutoff)
        logger.info(f"已清理 {deleted} 个历史任务（{days_to_keep} 天前结束）")
        return deleted

    def subscribe(self) -> asyncio.Queue:
        """订阅所有任务事件"""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def _publish(self, event: JobEvent) -> None:
        for queue in self._subscribers:
            queue.put_nowait(event)

    async def _execute(self, job_id: str) -> None:
        job = await self._store.get(job_id)
        if job is None:
            logger.warning(f"任务 {job_id} 不存在，跳过")
            return
        if job.status != JobStatus.WAITING:
            logger.info(f"任务 {job_id} 状态为 {job.status.value}，跳过")
            return

        spec = self._specs[job.type]
        settings = self._queues[job.type].settings

        # 领取任务：状态检查与修改之间没有 await，与 cancel_job 互斥
        job.status = JobStatus.ACTIVE
        job.started_at = datetime.now()
        await self._store.put(job)
        self._publish(JobEvent(job_id=job.id, kind=JobEventKind.ACTIVE))
        logger.info(f"任务开始: {job.id}")

        channel = ProgressChannel(job.id)
        drainer = asyncio.create_task(self._drain(job, channel))
        result: Optional[BaseModel] = None
        error: Optional[str] = None

        try:
            try:
                data = spec.data_model.model_validate(job.data)
            except ValidationError as e:
                error = f"任务参数无效: {e}"
            else:
                result, error = await self._run_with_retry(job, spec, data, channel, settings)
        finally:
            channel.close()
            await drainer

        job.completed_at = datetime.now()
        if error is None:
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.result = result.model_dump(mode="json")
            await self._store.put(job)
            self._publish(JobEvent(job_id=job.id, kind=JobEventKind.COMPLETED, result=job.result))
            logger.info(f"任务完成: {job.id}")
        else:
            job.status = JobStatus.FAILED
            job.error = error
            await self._store.put(job)
            self._publish(JobEvent(job_id=job.id, kind=JobEventKind.FAILED, error=error))
            logger.error(f"任务失败: {job.id}: {error}")

    async def _run_with_retry(
        self,
        job: Job,
        spec: JobSpec,
        data: BaseModel,
        channel: ProgressChannel,
        settings: QueueConfig,
    ) -> tuple[Optional[BaseModel], Optional[str]]:
        """执行流水线，整体失败时按指数退避重试"""
        ctx = PipelineContext(job_id=job.id, organizer=self._config.organizer, mover=self._mover)

        while True:
            job.attempts += 1
            try:
                output = await spec.pipeline(data, channel, ctx)
                return spec.result_model.model_validate(output), None
            except Exception as e:
                message = str(e) or type(e).__name__
                if job.attempts >= settings.attempts:
                    return None, message

                delay = settings.backoff_delay * 2 ** (job.attempts - 1)
                logger.warning(
                    f"任务 {job.id} 第 {job.attempts} 次执行失败，{delay} 秒后重试: {message}"
                )
                channel.log(f"第 {job.attempts} 次执行失败: {message}，{delay} 秒后重试")
                await asyncio.sleep(delay)

    async def _drain(self, job: Job, channel: ProgressChannel) -> None:
        """按写入顺序消费进度事件，逐条持久化并推送"""
        async for event in channel.events():
            if event.kind == JobEventKind.PROGRESS:
                value = max(0, min(100, event.progress))
                if value <= job.progress:
                    continue
                job.progress = value
                event.progress = value
            elif event.kind == JobEventKind.LOG:
                job.logs.append(f"[{event.timestamp.isoformat()}] {event.message}")

            try:
                await self._store.put(job)
            except Exception as e:
                logger.error(f"保存任务 {job.id} 进度失败: {e}")
            self._publish(event)
