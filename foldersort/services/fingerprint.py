"""
@description 文件内容指纹服务
@responsibility 以流式方式计算文件 SHA-256，读取期间文件被改动或删除时报错而不是返回错误的指纹
"""

import asyncio
import hashlib
import os

from loguru import logger

CHUNK_SIZE = 64 * 1024


class FingerprintError(Exception):
    """计算指纹失败（I/O 错误或读取期间文件被并发修改）"""


def compute_file_hash(file_path: str) -> str:
    """
    同步计算文件 SHA-256（在 worker 线程中调用）

    Args:
        file_path: 文件路径

    Returns:
        64 位小写 hex 摘要

    Raises:
        FingerprintError: 读取失败，或读取前后文件大小/修改时间不一致
    """
    try:
        before = os.stat(file_path)
        digest = hashlib.sha256()
        bytes_read = 0
        with open(file_path, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                digest.update(chunk)
                bytes_read += len(chunk)
        after = os.stat(file_path)
    except OSError as e:
        raise FingerprintError(f"读取文件失败 {file_path}: {e}") from e

    if (
        before.st_size != after.st_size
        or before.st_mtime_ns != after.st_mtime_ns
        or bytes_read != before.st_size
    ):
        raise FingerprintError(f"文件在读取期间被修改: {file_path}")

    return digest.hexdigest()


async def generate_file_hash(file_path: str) -> str:
    """异步计算文件指纹"""
    try:
        file_hash = await asyncio.to_thread(compute_file_hash, file_path)
    except FingerprintError as e:
        logger.error(f"计算指纹失败: {e}")
        raise
    logger.debug(f"文件指纹 {file_path}: {file_hash}")
    return file_hash
