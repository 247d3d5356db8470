"""
@description 后台任务接口
@responsibility 创建任务、查询任务状态与日志、推送任务事件流、取消等待中的任务
"""

from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from foldersort.schemas.api import (
    CreateJobRequest,
    CreateJobResponse,
    JobItem,
    JobListResponse,
    JobLogsResponse,
    success_response,
)
from foldersort.schemas.jobs import Job, JobEvent, JobEventKind, JobStatus, JobType

if TYPE_CHECKING:
    from foldersort.tasks.job_queue import JobOrchestrator

router = APIRouter()

_orchestrator: Optional["JobOrchestrator"] = None


def init_jobs_router(orchestrator: "JobOrchestrator"):
    global _orchestrator
    _orchestrator = orchestrator


@router.post("/jobs")
async def create_job(request: CreateJobRequest):
    data = {"source_path": request.source_path}
    if request.type == JobType.ORGANIZE:
        data["target_path"] = request.target_path

    job = await _orchestrator.create_job(request.type, data)
    return success_response(
        data=CreateJobResponse(job_id=job.id, status=job.status),
        message="任务创建成功",
    )


@router.get("/jobs")
async def list_jobs(type: JobType = Query(JobType.ORGANIZE, description="任务类型")):
    jobs = await _orchestrator.list_jobs_by_type(type)
    items = [JobItem.from_job(job) for job in jobs]
    return success_response(
        data=JobListResponse(total=len(items), jobs=items),
        message="获取任务列表成功",
    )


@router.get("/jobs/{job_id}")
async def get_job(job_id: str):
    job = await _orchestrator.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"任务 '{job_id}' 不存在")

    return success_response(data=JobItem.from_job(job), message="获取任务详情成功")


@router.get("/jobs/{job_id}/logs")
async def get_job_logs(job_id: str):
    logs = await _orchestrator.get_logs(job_id)
    if logs is None:
        raise HTTPException(status_code=404, detail=f"任务 '{job_id}' 不存在")

    return success_response(
        data=JobLogsResponse(job_id=job_id, logs=logs), message="获取任务日志成功"
    )


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str):
    job = await _orchestrator.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"任务 '{job_id}' 不存在")

    if not await _orchestrator.cancel_job(job_id):
        raise HTTPException(
            status_code=409, detail=f"任务 '{job_id}' 已开始执行或已结束，无法取消"
        )

    return success_response(data={"job_id": job_id}, message="任务已取消")


def _format_sse(event: JobEvent) -> str:
    return f"event: {event.kind.value}\ndata: {event.model_dump_json()}\n\n"


def _terminal_event(job: Job) -> JobEvent:
    if job.status == JobStatus.COMPLETED:
        return JobEvent(
            job_id=job.id, kind=JobEventKind.COMPLETED, progress=job.progress, result=job.result
        )
    return JobEvent(job_id=job.id, kind=JobEventKind.FAILED, progress=job.progress, error=job.error)


@router.get("/jobs/{job_id}/events")
async def stream_job_events(job_id: str):
    """以 Server-Sent Events 推送任务的状态、进度和日志，任务结束后关闭连接"""
    if await _orchestrator.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail=f"任务 '{job_id}' 不存在")

    async def event_stream():
        # 先订阅再读取状态，读取之后发生的结束事件一定会进入队列
        queue = _orchestrator.subscribe()
        try:
            job = await _orchestrator.get_job(job_id)
            if job is None:
                return
            if job.status.is_terminal:
                yield _format_sse(_terminal_event(job))
                return

            yield _format_sse(
                JobEvent(job_id=job.id, kind=JobEventKind.PROGRESS, progress=job.progress)
            )
            while True:
                event = await queue.get()
                if event.job_id != job_id:
                    continue
                yield _format_sse(event)
                if event.kind in (JobEventKind.COMPLETED, JobEventKind.FAILED):
                    return
        finally:
            _orchestrator.unsubscribe(queue)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
