"""
@description 定时任务接口
@responsibility 查询定时任务状态，启动、停止和手动触发定时任务
"""

from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, HTTPException

from foldersort.schemas.api import ScheduleItem, success_response

if TYPE_CHECKING:
    from foldersort.tasks.scheduler import ScheduleManager

router = APIRouter()

_schedule_manager: Optional["ScheduleManager"] = None


def init_schedules_router(schedule_manager: "ScheduleManager"):
    global _schedule_manager
    _schedule_manager = schedule_manager


@router.get("/schedules")
async def list_schedules():
    items = [ScheduleItem(**status) for status in _schedule_manager.get_status()]
    return success_response(data=items, message="获取定时任务成功")


@router.post("/schedules/{name}/start")
async def start_schedule(name: str):
    if not _schedule_manager.start_schedule(name):
        raise HTTPException(status_code=409, detail=f"定时任务 '{name}' 无法启动")
    return success_response(data={"name": name}, message="定时任务已启动")


@router.post("/schedules/{name}/stop")
async def stop_schedule(name: str):
    if not await _schedule_manager.stop_schedule(name):
        raise HTTPException(status_code=409, detail=f"定时任务 '{name}' 未在运行")
    return success_response(data={"name": name}, message="定时任务已停止")


@router.post("/schedules/{name}/trigger")
async def trigger_schedule(name: str):
    try:
        outcome = await _schedule_manager.trigger_schedule(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"定时任务 '{name}' 不存在")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if isinstance(outcome, int):
        data = {"name": name, "deleted_jobs": outcome}
    else:
        data = {"name": name, "job_id": outcome.id}
    return success_response(data=data, message="定时任务已触发")
