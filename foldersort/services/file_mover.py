"""
@description 文件移动服务
@responsibility 将单个文件移入分类目录：处理重名、跨文件系统移动，并记录可撤销的操作日志
"""

import asyncio
import errno
import os
import shutil
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from foldersort.services import file_store
from foldersort.services.fingerprint import compute_file_hash, generate_file_hash
from foldersort.services.scanner import FileInfo


class MoveResult(BaseModel):
    success: bool
    original_path: str
    new_path: Optional[str] = None
    fingerprint: Optional[str] = None
    file_id: Optional[int] = None
    error: Optional[str] = None


def generate_unique_path(file_path: str) -> str:
    """目标已存在时在扩展名前追加 " (n)"，n 从 1 递增直到不冲突"""
    if not os.path.exists(file_path):
        return file_path

    directory, file_name = os.path.split(file_path)
    base_name, ext = os.path.splitext(file_name)
    counter = 1
    while True:
        candidate = os.path.join(directory, f"{base_name} ({counter}){ext}")
        if not os.path.exists(candidate):
            return candidate
        counter += 1


def move_file_safe(source: str, dest: str, expected_hash: Optional[str] = None) -> None:
    """
    移动文件，跨文件系统时回退为 复制 -> 校验 -> 删除源文件

    Args:
        source: 源路径
        dest: 目标路径
        expected_hash: 源文件指纹，提供时用于校验复制结果

    Raises:
        OSError: 重命名失败（非跨设备）或回退流程中的 I/O 错误，源文件保持不动
    """
    try:
        os.rename(source, dest)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    logger.info(f"检测到跨文件系统移动，使用复制+删除: {source}")

    copied = False
    try:
        # copy2 保留权限位和访问/修改时间
        shutil.copy2(source, dest)
        copied = True

        if expected_hash is not None:
            if compute_file_hash(dest) != expected_hash:
                raise OSError(errno.EIO, f"复制后指纹校验失败: {dest}")
        elif os.path.getsize(dest) != os.path.getsize(source):
            raise OSError(errno.EIO, f"复制后文件大小不一致: {dest}")

        os.unlink(source)
    except Exception:
        if copied or os.path.exists(dest):
            try:
                os.unlink(dest)
                logger.info(f"已清理不完整的副本: {dest}")
            except OSError as cleanup_error:
                logger.warning(f"清理不完整副本失败 {dest}: {cleanup_error}")
        raise

    logger.info(f"跨文件系统移动完成: {source} -> {dest}")


class FileMover:
    """文件移动服务"""

    def __init__(self):
        # 串行化 "选择目标文件名 -> 移动"，避免并发任务选中同一个空闲文件名
        self._lock = asyncio.Lock()

    async def move_file(
        self,
        file: FileInfo,
        category: str,
        organized_root: str,
        job_id: Optional[str] = None,
    ) -> MoveResult:
        """
        将文件移动到 organized_root/category/ 下

        Args:
            file: 扫描得到的文件元数据
            category: 分类名
            organized_root: 整理目标根目录
            job_id: 发起移动的任务 ID

        Returns:
            MoveResult，失败时 success=False 并带有 error，不抛出异常
        """
        original_path = file.path
        target_path = os.path.join(organized_root, category, file.name)
        target_dir = os.path.dirname(target_path)

        try:
            await asyncio.to_thread(os.makedirs, target_dir, exist_ok=True)

            # 移动前计算指纹，移动失败时指纹依然可用
            file_hash = await generate_file_hash(original_path)

            async with self._lock:
                final_path = await asyncio.to_thread(generate_unique_path, target_path)
                if final_path != target_path:
                    logger.warning(f"目标已存在 {target_path}，改用 {final_path}")

                logger.debug(f"移动文件: {original_path} -> {final_path}")
                await asyncio.to_thread(move_file_safe, original_path, final_path, file_hash)
        except Exception as e:
            logger.error(f"文件 {file.name} 移动失败: {e}")
            return MoveResult(success=False, original_path=original_path, error=str(e))

        try:
            record = await file_store.record_move(file, category, final_path, file_hash, job_id)
        except Exception as e:
            logger.error(f"文件 {file.name} 记录保存失败，回滚移动: {e}")
            try:
                await asyncio.to_thread(move_file_safe, final_path, original_path, file_hash)
            except OSError as rollback_error:
                logger.error(f"回滚移动失败，文件仍位于 {final_path}: {rollback_error}")
                return MoveResult(
                    success=False,
                    original_path=original_path,
                    new_path=final_path,
                    fingerprint=file_hash,
                    error=f"记录保存失败且回滚失败: {e}",
                )
            return MoveResult(
                success=False,
                original_path=original_path,
                fingerprint=file_hash,
                error=f"记录保存失败: {e}",
            )

        logger.info(f"文件 {file.name} 已移动到 {final_path}")
        return MoveResult(
            success=True,
            original_path=original_path,
            new_path=final_path,
            fingerprint=file_hash,
            file_id=record.id,
        )
