"""
@description 通用工具函数
@responsibility 提供项目级别的辅助功能
"""

from __future__ import annotations

import time
import uuid


def generate_job_id(prefix: str) -> str:
    """
    生成全局唯一的任务 ID

    格式为 {prefix}_{毫秒时间戳}_{9 位随机串}

    Examples:
        >>> generate_job_id("org")  # doctest: +SKIP
        'org_1700000000000_3f9a1c2b7'
    """
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def format_size(size_bytes: float) -> str:
    """
    将字节数格式化为易读字符串

    Examples:
        >>> format_size(0)
        '0 B'
        >>> format_size(1536)
        '1.50 KB'
        >>> format_size(5 * 1024 * 1024)
        '5.00 MB'
    """
    if size_bytes < 1024:
        return f"{int(size_bytes)} B"
    for unit in ("KB", "MB", "GB", "TB"):
        size_bytes /= 1024
        if size_bytes < 1024 or unit == "TB":
            return f"{size_bytes:.2f} {unit}"
    return f"{size_bytes:.2f} TB"
