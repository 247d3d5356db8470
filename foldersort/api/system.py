"""
@description 系统状态接口
@responsibility 查询任务队列和定时任务的运行状态
"""

from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter

from foldersort.schemas.api import ApiResponse, StatusResponse, success_response

if TYPE_CHECKING:
    from foldersort.tasks.job_queue import JobOrchestrator
    from foldersort.tasks.scheduler import ScheduleManager

router = APIRouter()

_orchestrator: Optional["JobOrchestrator"] = None
_schedule_manager: Optional["ScheduleManager"] = None


def init_system_router(orchestrator: "JobOrchestrator", schedule_manager: "ScheduleManager"):
    global _orchestrator, _schedule_manager
    _orchestrator = orchestrator
    _schedule_manager = schedule_manager


@router.get("/status", response_model=ApiResponse[StatusResponse])
async def get_status():
    orchestrator_running = False
    queues = {}
    if _orchestrator is not None:
        orchestrator_running = _orchestrator.running
        queues = _orchestrator.queue_status()

    running_schedules = 0
    if _schedule_manager is not None:
        running_schedules = sum(1 for s in _schedule_manager.get_status() if s["running"])

    return success_response(
        data=StatusResponse(
            orchestrator_running=orchestrator_running,
            queues=queues,
            running_schedules=running_schedules,
        ),
        message="获取系统状态成功",
    )
