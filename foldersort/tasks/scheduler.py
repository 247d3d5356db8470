"""
@description 定时任务管理
@responsibility 按 cron 表达式定时触发整理、查重和任务清理，支持启动、停止、手动触发和状态查询
"""

import asyncio
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from croniter import croniter
from loguru import logger

from foldersort.core.config import ScheduleConfig
from foldersort.schemas.jobs import JobType
from foldersort.tasks.job_queue import JobOrchestrator


class ScheduleManager:
    """定时任务管理器"""

    def __init__(self, orchestrator: JobOrchestrator, schedules: dict[str, ScheduleConfig]):
        self._orchestrator = orchestrator
        self._schedules = schedules
        self._tasks: dict[str, asyncio.Task] = {}
        self._stop_events: dict[str, asyncio.Event] = {}
        self._last_run: dict[str, datetime] = {}

    def start_schedule(self, name: str) -> bool:
        """启动指定定时任务，未启用或已在运行时返回 False"""
        schedule = self._schedules.get(name)
        if schedule is None:
            logger.error(f"定时任务 '{name}' 不存在")
            return False

        if not schedule.enabled:
            logger.warning(f"定时任务 '{name}' 未启用")
            return False

        task = self._tasks.get(name)
        if task is not None and not task.done():
            logger.warning(f"定时任务 '{name}' 已在运行中")
            return False

        stop_event = asyncio.Event()
        self._stop_events[name] = stop_event
        self._tasks[name] = asyncio.create_task(self._schedule_loop(name, schedule, stop_event))
        logger.info(f"定时任务 '{name}' 已启动 ({schedule.pattern})")
        return True

    async def stop_schedule(self, name: str) -> bool:
        """停止指定定时任务，未运行时返回 False"""
        task = self._tasks.pop(name, None)
        stop_event = self._stop_events.pop(name, None)
        if task is None or task.done():
            logger.warning(f"定时任务 '{name}' 未在运行")
            return False

        stop_event.set()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(f"等待定时任务 '{name}' 停止超时，强制取消")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info(f"定时任务 '{name}' 已停止")
        return True

    async def trigger_schedule(self, name: str) -> Any:
        """
        手动触发一次定时任务

        Raises:
            KeyError: 定时任务不存在
        """
        schedule = self._schedules.get(name)
        if schedule is None:
            raise KeyError(f"定时任务 '{name}' 不存在")

        logger.info(f"手动触发定时任务: {name}")
        return await self._run_handler(name, schedule)

    def get_status(self) -> list[dict[str, Any]]:
        status = []
        for name, schedule in self._schedules.items():
            task = self._tasks.get(name)
            status.append(
                {
                    "name": name,
                    "pattern": schedule.pattern,
                    "enabled": schedule.enabled,
                    "timezone": schedule.timezone,
                    "action": schedule.action,
                    "running": task is not None and not task.done(),
                    "next_run": self.next_run(name),
                    "last_run": self._last_run.get(name),
                }
            )
        return status

    def next_run(self, name: str) -> Optional[datetime]:
        schedule = self._schedules.get(name)
        if schedule is None:
            return None
        now = datetime.now(ZoneInfo(schedule.timezone))
        return croniter(schedule.pattern, now).get_next(datetime)

    def start_all(self) -> None:
        logger.info("启动所有已启用的定时任务...")
        for name, schedule in self._schedules.items():
            if schedule.enabled:
                self.start_schedule(name)

    async def stop_all(self) -> None:
        logger.info("停止所有定时任务...")
        for name in list(self._tasks):
            await self.stop_schedule(name)

    async def _schedule_loop(
        self, name: str, schedule: ScheduleConfig, stop_event: asyncio.Event
    ) -> None:
        tz = ZoneInfo(schedule.timezone)
        cron = croniter(schedule.pattern, datetime.now(tz))

        while not stop_event.is_set():
            next_time = cron.get_next(datetime)
            delay = max(0.0, (next_time - datetime.now(tz)).total_seconds())
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            logger.info(f"执行定时任务: {name}")
            try:
                await self._run_handler(name, schedule)
            except Exception as e:
                logger.error(f"定时任务 '{name}' 执行失败: {e}")

    async def _run_handler(self, name: str, schedule: ScheduleConfig) -> Any:
        self._last_run[name] = datetime.now()

        if schedule.action == "cleanup":
            return await self._orchestrator.cleanup_jobs(schedule.days_to_keep)

        if not schedule.source_path:
            raise ValueError(f"定时任务 '{name}' 未配置 source_path")

        if schedule.action == "organize":
            job = await self._orchestrator.create_job(
                JobType.ORGANIZE,
                {"source_path": schedule.source_path, "target_path": schedule.target_path},
            )
        else:
            job = await self._orchestrator.create_job(
                JobType.DUPLICATE_SCAN, {"source_path": schedule.source_path}
            )
        logger.info(f"定时任务 '{name}' 已创建任务 {job.id}")
        return job
