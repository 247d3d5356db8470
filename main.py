"""
@description FastAPI 应用入口
@responsibility 初始化应用、集成路由、启动任务队列与定时任务
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from foldersort.api import duplicates, files, jobs, schedules, system
from foldersort.api.files import init_files_router
from foldersort.api.jobs import init_jobs_router
from foldersort.api.schedules import init_schedules_router
from foldersort.api.system import init_system_router
from foldersort.core.config import load_config
from foldersort.core.database import configure_database, dispose_db, init_db
from foldersort.core.logger import setup_logging
from foldersort.schemas.api import ApiResponse, success_response
from foldersort.tasks.job_queue import JobOrchestrator
from foldersort.tasks.scheduler import ScheduleManager


config_obj = None
orchestrator: Optional[JobOrchestrator] = None
schedule_manager: Optional[ScheduleManager] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global config_obj, orchestrator, schedule_manager

    config_obj = load_config()
    setup_logging(config_obj.logging.level)
    logger.info("应用启动中...")
    logger.info("配置加载完成")

    configure_database(config_obj.database.url)
    await init_db()
    logger.info("数据库初始化完成")

    orchestrator = JobOrchestrator(config_obj)
    schedule_manager = ScheduleManager(orchestrator, config_obj.schedules)

    init_files_router(config_obj.organizer)
    init_jobs_router(orchestrator)
    init_schedules_router(schedule_manager)
    init_system_router(orchestrator, schedule_manager)

    await orchestrator.start()
    logger.info("任务队列已启动")

    schedule_manager.start_all()

    yield

    if schedule_manager:
        await schedule_manager.stop_all()
        logger.info("定时任务已停止")

    if orchestrator:
        await orchestrator.stop()
        logger.info("任务队列已停止")

    await dispose_db()
    logger.info("应用已关闭")


app = FastAPI(
    title="文件整理服务",
    description="扫描目录、按类型整理文件、查找重复文件并支持撤销",
    version="1.0.0",
    lifespan=lifespan,
)


# 全局异常处理器
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """处理 HTTP 异常"""
    logger.info(f"HTTP 异常: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ApiResponse(
            code=exc.status_code, message=exc.detail, data=None
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """处理请求参数验证错误"""
    logger.info(f"请求参数验证失败: {len(exc.errors())} 个错误")
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ApiResponse(
            code=422, message="请求参数验证失败", data={"errors": errors}
        ).model_dump(),
    )


@app.exception_handler(ValidationError)
async def payload_validation_exception_handler(request: Request, exc: ValidationError):
    """处理任务参数验证错误"""
    logger.info(f"任务参数验证失败: {exc.error_count()} 个错误")
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ApiResponse(
            code=422, message="任务参数验证失败", data={"errors": errors}
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """处理通用异常"""
    logger.exception(f"服务器内部错误: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content=ApiResponse(code=500, message="服务器内部错误", data=None).model_dump(),
    )


app.include_router(jobs.router, prefix="/api", tags=["jobs"])
app.include_router(files.router, prefix="/api", tags=["files"])
app.include_router(duplicates.router, prefix="/api", tags=["duplicates"])
app.include_router(schedules.router, prefix="/api", tags=["schedules"])
app.include_router(system.router, prefix="/api", tags=["system"])


@app.get("/")
async def root():
    return success_response(
        data={"message": "文件整理服务 API", "version": "1.0.0"},
        message="服务运行中",
    )


@app.get("/health")
async def health_check():
    return success_response(data={"status": "healthy"}, message="健康检查通过")
