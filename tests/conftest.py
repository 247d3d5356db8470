"""
@description 测试公共夹具
@responsibility 为每个测试提供独立的临时 SQLite 数据库和文件目录
"""

import os
from datetime import datetime

import pytest
import pytest_asyncio

from foldersort.core import database
from foldersort.services.scanner import FileInfo, get_extension


@pytest_asyncio.fixture
async def db(tmp_path):
    """每个测试使用独立的数据库文件"""
    database.configure_database(f"sqlite+aiosqlite:///{tmp_path / 'db' / 'test.db'}")
    await database.init_db()
    yield
    await database.dispose_db()


@pytest.fixture
def source_dir(tmp_path):
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def organized_dir(tmp_path):
    return tmp_path / "organized"


def write_file(path, content: bytes = b"content") -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)
    return str(path)


def make_file_info(path) -> FileInfo:
    path = str(path)
    stats = os.stat(path)
    name = os.path.basename(path)
    return FileInfo(
        name=name,
        path=path,
        size=stats.st_size,
        extension=get_extension(name),
        created_at=datetime.fromtimestamp(stats.st_ctime),
        modified_at=datetime.fromtimestamp(stats.st_mtime),
    )
