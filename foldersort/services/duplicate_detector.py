"""
@description 重复文件检测服务
@responsibility 计算文件指纹并按指纹分组，保存指纹以便后续按文件快速查找重复项
"""

from typing import Awaitable, Callable, Optional, Sequence

from loguru import logger

from foldersort.schemas.jobs import DuplicateFileItem, DuplicateGroupItem
from foldersort.services import file_store
from foldersort.services.fingerprint import FingerprintError, generate_file_hash
from foldersort.services.scanner import FileInfo

ProgressCallback = Callable[[int, int], Awaitable[None]]


def wasted_space(total_size: int, count: int) -> int:
    """除保留的一份外，其余副本占用的空间"""
    if count < 2:
        return 0
    return int((total_size / count) * (count - 1))


def build_group(file_hash: str, members: Sequence[FileInfo]) -> DuplicateGroupItem:
    total_size = sum(f.size for f in members)
    return DuplicateGroupItem(
        hash=file_hash,
        count=len(members),
        total_size=total_size,
        wasted_space=wasted_space(total_size, len(members)),
        files=[DuplicateFileItem(path=f.path, name=f.name, size=f.size) for f in members],
    )


async def find_duplicates(
    files: Sequence[FileInfo],
    on_progress: Optional[ProgressCallback] = None,
    persist: bool = True,
) -> tuple[list[DuplicateGroupItem], int]:
    """
    对文件逐个计算指纹并分组

    Args:
        files: 扫描得到的文件列表
        on_progress: 每处理一个文件后回调 (已处理数, 总数)
        persist: 是否把指纹写入文件记录

    Returns:
        (至少包含两个成员的分组列表, 成功计算指纹的文件数)
    """
    by_hash: dict[str, list[FileInfo]] = {}
    hashed = 0

    for index, file in enumerate(files, start=1):
        try:
            file_hash = await generate_file_hash(file.path)
        except FingerprintError as e:
            logger.warning(f"跳过无法计算指纹的文件 {file.path}: {e}")
        else:
            hashed += 1
            by_hash.setdefault(file_hash, []).append(file)
            if persist:
                try:
                    await file_store.upsert_fingerprint(file, file_hash)
                except Exception as e:
                    logger.error(f"保存指纹失败 {file.path}: {e}")

        if on_progress is not None:
            await on_progress(index, len(files))

    groups = [
        build_group(file_hash, members)
        for file_hash, members in by_hash.items()
        if len(members) > 1
    ]
    for group in groups:
        logger.info(f"发现 {group.count} 个重复文件，指纹 {group.hash}")
    return groups, hashed


def summarize_groups(groups: Sequence[DuplicateGroupItem]) -> dict:
    return {
        "duplicate_groups": len(groups),
        "total_duplicates": sum(g.count - 1 for g in groups),
        "wasted_space": sum(g.wasted_space for g in groups),
    }


async def get_all_duplicates() -> list[dict]:
    """从数据库中读取所有重复分组"""
    groups = []
    for file_hash, _ in await file_store.get_duplicate_hashes():
        records = await file_store.find_by_hash(file_hash)
        total_size = sum(r.size or 0 for r in records)
        groups.append(
            {
                "hash": file_hash,
                "count": len(records),
                "total_size": total_size,
                "wasted_space": wasted_space(total_size, len(records)),
                "files": [r.to_dict() for r in records],
            }
        )
    return groups


async def find_duplicates_of_file(file_id: int) -> Optional[dict]:
    """
    查找与指定文件内容相同的其他文件

    Returns:
        None 表示文件记录不存在；文件尚未计算指纹时 duplicates 为空且 hashed=False
    """
    record = await file_store.get_file_by_id(file_id)
    if record is None:
        return None
    if not record.hash:
        return {"file": record.to_dict(), "hashed": False, "duplicates": [], "count": 0}

    duplicates = [r for r in await file_store.find_by_hash(record.hash) if r.id != file_id]
    return {
        "file": record.to_dict(),
        "hashed": True,
        "duplicates": [r.to_dict() for r in duplicates],
        "count": len(duplicates),
    }
