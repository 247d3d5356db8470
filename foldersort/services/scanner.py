"""
@description 目录扫描服务
@responsibility 遍历源目录，返回文件元数据列表；单个文件不可访问时跳过而不中断扫描
"""

import asyncio
import errno
import os
import stat
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from loguru import logger

DEFAULT_MAX_DEPTH = 10
UNKNOWN_EXTENSION = ".unknown"

# 文件被占用或无权限，属于常见的临时性访问问题
TRANSIENT_ERRNOS = {errno.EBUSY, errno.EPERM, errno.EACCES}


class ScanError(Exception):
    """扫描根目录不存在或不是目录"""


@dataclass
class FileInfo:
    name: str
    path: str
    size: int
    extension: str
    created_at: datetime
    modified_at: datetime


@dataclass
class ScanResult:
    files: list[FileInfo]
    scanned_path: str
    scanned_at: datetime = field(default_factory=datetime.now)

    @property
    def total_files(self) -> int:
        return len(self.files)


def get_extension(file_name: str) -> str:
    extension = os.path.splitext(file_name)[1].lower()
    return extension or UNKNOWN_EXTENSION


def _file_info(entry: os.DirEntry) -> FileInfo:
    stats = entry.stat()
    # st_birthtime 仅部分平台提供
    created = getattr(stats, "st_birthtime", stats.st_ctime)
    return FileInfo(
        name=entry.name,
        path=entry.path,
        size=stats.st_size,
        extension=get_extension(entry.name),
        created_at=datetime.fromtimestamp(created),
        modified_at=datetime.fromtimestamp(stats.st_mtime),
    )


def _list_directory(dir_path: str, ignored: frozenset) -> tuple[list[FileInfo], list[str]]:
    """列出单个目录：返回 (文件列表, 待递归的子目录列表)"""
    files: list[FileInfo] = []
    subdirs: list[str] = []

    with os.scandir(dir_path) as entries:
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name in ignored:
                        logger.debug(f"跳过忽略目录: {entry.path}")
                        continue
                    subdirs.append(entry.path)
                elif entry.is_file():
                    files.append(_file_info(entry))
            except OSError as e:
                if e.errno in TRANSIENT_ERRNOS:
                    logger.debug(f"跳过不可访问的文件: {entry.path} ({e.strerror})")
                else:
                    logger.warning(f"无法读取文件信息: {entry.path}: {e}")

    return files, subdirs


async def scan_directory(
    root_path: str,
    ignored_folders: Optional[Iterable[str]] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    recursive: bool = True,
) -> ScanResult:
    """
    扫描目录，返回扁平的文件列表（顺序不保证）

    Args:
        root_path: 扫描根目录
        ignored_folders: 需要整体跳过的目录名
        max_depth: 最大递归深度，根目录深度为 0
        recursive: False 时只扫描根目录第一层

    Returns:
        ScanResult

    Raises:
        ScanError: 根目录不存在或不是目录
    """
    ignored = frozenset(ignored_folders or [])

    if not await asyncio.to_thread(os.path.isdir, root_path):
        if await asyncio.to_thread(os.path.exists, root_path):
            raise ScanError(f"路径 {root_path} 不是目录")
        raise ScanError(f"路径 {root_path} 不存在")

    result = ScanResult(files=[], scanned_path=root_path)
    pending: list[tuple[str, int]] = [(root_path, 0)]

    while pending:
        dir_path, depth = pending.pop()
        try:
            files, subdirs = await asyncio.to_thread(_list_directory, dir_path, ignored)
        except OSError as e:
            if dir_path == root_path:
                logger.error(f"扫描目录失败: {dir_path}: {e}")
                raise ScanError(f"无法读取目录 {dir_path}: {e}") from e
            logger.warning(f"跳过无法读取的子目录: {dir_path}: {e}")
            continue

        result.files.extend(files)

        if not recursive:
            continue
        for subdir in subdirs:
            if depth + 1 > max_depth:
                logger.warning(f"达到最大递归深度，跳过: {subdir}")
                continue
            pending.append((subdir, depth + 1))

    logger.info(f"扫描完成: {root_path}，共 {result.total_files} 个文件")
    return result


def _check_path(path: str) -> dict:
    try:
        stats = os.stat(path)
    except OSError as e:
        return {
            "valid": False,
            "exists": e.errno != errno.ENOENT,
            "is_directory": False,
            "readable": False,
            "error": e.strerror or str(e),
        }

    readable = os.access(path, os.R_OK)
    return {
        "valid": readable,
        "exists": True,
        "is_directory": stat.S_ISDIR(stats.st_mode),
        "readable": readable,
        "error": None if readable else "没有读取权限",
    }


async def validate_path(path: str) -> dict:
    """
    检查路径是否存在、是否为目录、是否可读

    Returns:
        {valid, exists, is_directory, readable, error}
    """
    return await asyncio.to_thread(_check_path, os.path.expanduser(path))
