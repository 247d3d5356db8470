"""
@description 文件分类服务
@responsibility 按有序规则表将文件扩展名映射为分类名，第一条命中的规则生效
"""

from typing import Optional, Sequence

from foldersort.core.config import CategoryConfig, default_categories
from foldersort.services.scanner import FileInfo

FALLBACK_CATEGORY = "Others"

_DEFAULT_CATEGORIES = default_categories()


def classify_file(
    file: FileInfo, categories: Optional[Sequence[CategoryConfig]] = None
) -> str:
    """
    返回文件的分类名（纯函数，结果只取决于扩展名和规则表）

    Args:
        file: 文件元数据
        categories: 有序分类规则，缺省使用内置规则表

    Returns:
        第一条包含该扩展名的规则名称，未命中返回 "Others"
    """
    extension = file.extension.lower()
    for category in categories if categories is not None else _DEFAULT_CATEGORIES:
        if extension in category.extensions:
            return category.name
    return FALLBACK_CATEGORY


def classify_files(
    files: Sequence[FileInfo], categories: Optional[Sequence[CategoryConfig]] = None
) -> dict[str, list[FileInfo]]:
    """按分类分组，分组顺序为分类首次出现的顺序"""
    categorized: dict[str, list[FileInfo]] = {}
    for file in files:
        categorized.setdefault(classify_file(file, categories), []).append(file)
    return categorized
