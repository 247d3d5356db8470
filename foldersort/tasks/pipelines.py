"""
@description 任务流水线
@responsibility 定义 organize / duplicate-scan 两类任务的执行流程，并按任务类型登记输入、输出模型
"""

import os
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger
from pydantic import BaseModel

from foldersort.core.config import OrganizerConfig
from foldersort.schemas.jobs import (
    DuplicateScanJobData,
    DuplicateScanJobResult,
    JobType,
    OrganizeJobData,
    OrganizeJobResult,
)
from foldersort.services.classifier import classify_files
from foldersort.services.duplicate_detector import find_duplicates, summarize_groups
from foldersort.services.file_mover import FileMover
from foldersort.services.scanner import scan_directory
from foldersort.tasks.progress import ProgressChannel
from foldersort.utils.helpers import format_size

MAX_RESULT_ERRORS = 50


@dataclass
class PipelineContext:
    job_id: str
    organizer: OrganizerConfig
    mover: FileMover


Pipeline = Callable[[BaseModel, ProgressChannel, PipelineContext], Awaitable[BaseModel]]


def _is_within(path: str, root: str) -> bool:
    path = os.path.abspath(path)
    root = os.path.abspath(root)
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


async def run_organize(
    data: OrganizeJobData, channel: ProgressChannel, ctx: PipelineContext
) -> OrganizeJobResult:
    """扫描 -> 分类 -> 逐个移动；单个文件失败只计入结果"""
    source_path = os.path.expanduser(data.source_path)
    target_path = os.path.expanduser(data.target_path or ctx.organizer.organized_root)

    channel.log("开始整理文件")
    channel.log(f"源目录: {source_path}")
    channel.log(f"目标目录: {target_path}")

    channel.progress(10)
    channel.log("扫描源目录...")
    scan_result = await scan_directory(
        source_path,
        ignored_folders=ctx.organizer.ignored_folders,
        max_depth=ctx.organizer.max_depth,
        recursive=ctx.organizer.recursive,
    )
    # 目标目录位于源目录内时，不重复整理已整理过的文件
    files = [f for f in scan_result.files if not _is_within(f.path, target_path)]
    total_files = len(files)
    channel.log(f"共发现 {total_files} 个待整理文件")

    if total_files == 0:
        return OrganizeJobResult()

    channel.progress(20)
    channel.log("按文件类型分类...")
    categorized = classify_files(files, ctx.organizer.categories)
    channel.log(f"文件分为 {len(categorized)} 类")

    result = OrganizeJobResult(
        total_files=total_files,
        categories={category: len(items) for category, items in categorized.items()},
    )
    errors: list[str] = []
    processed = 0

    for category, items in categorized.items():
        channel.log(f"处理分类 {category}: {len(items)} 个文件")
        for file in items:
            move_result = await ctx.mover.move_file(file, category, target_path, ctx.job_id)
            if move_result.success:
                result.moved_files += 1
                channel.log(f"  已移动: {file.name}")
            else:
                result.failed_files += 1
                errors.append(f"{file.name}: {move_result.error}")
                channel.log(f"  移动失败: {file.name} - {move_result.error}")

            processed += 1
            channel.progress(20 + (processed * 75) // total_files)

    result.errors = errors[:MAX_RESULT_ERRORS]
    channel.progress(100)
    channel.log(f"整理完成: 成功 {result.moved_files}, 失败 {result.failed_files}")
    logger.info(
        f"任务 {ctx.job_id} 整理完成: 成功 {result.moved_files}, 失败 {result.failed_files}"
    )
    return result


async def run_duplicate_scan(
    data: DuplicateScanJobData, channel: ProgressChannel, ctx: PipelineContext
) -> DuplicateScanJobResult:
    """扫描 -> 计算指纹 -> 分组"""
    source_path = os.path.expanduser(data.source_path)

    channel.log("开始查找重复文件")
    channel.log(f"源目录: {source_path}")

    channel.progress(10)
    channel.log("扫描目录...")
    scan_result = await scan_directory(
        source_path,
        ignored_folders=ctx.organizer.ignored_folders,
        max_depth=ctx.organizer.max_depth,
        recursive=ctx.organizer.recursive,
    )
    channel.log(f"共发现 {scan_result.total_files} 个文件")

    if scan_result.total_files == 0:
        return DuplicateScanJobResult()

    channel.progress(30)
    channel.log("计算文件指纹（可能需要较长时间）...")

    async def on_progress(done: int, total: int) -> None:
        channel.progress(30 + (done * 50) // total)

    groups, hashed = await find_duplicates(scan_result.files, on_progress=on_progress)
    channel.progress(80)
    channel.log(f"指纹计算完成: {hashed}/{scan_result.total_files}")

    summary = summarize_groups(groups)
    result = DuplicateScanJobResult(
        total_files=scan_result.total_files,
        hashed_files=hashed,
        duplicates=groups,
        **summary,
    )

    channel.progress(100)
    channel.log(f"发现 {result.duplicate_groups} 组重复文件")
    channel.log(f"可释放空间: {format_size(result.wasted_space)}")
    return result


@dataclass(frozen=True)
class JobSpec:
    """任务类型登记项"""

    data_model: type[BaseModel]
    result_model: type[BaseModel]
    pipeline: Pipeline
    id_prefix: str


JOB_SPECS: dict[JobType, JobSpec] = {
    JobType.ORGANIZE: JobSpec(
        data_model=OrganizeJobData,
        result_model=OrganizeJobResult,
        pipeline=run_organize,
        id_prefix="org",
    ),
    JobType.DUPLICATE_SCAN: JobSpec(
        data_model=DuplicateScanJobData,
        result_model=DuplicateScanJobResult,
        pipeline=run_duplicate_scan,
        id_prefix="dup",
    ),
}
