"""
@description 撤销服务测试
@responsibility 验证单文件撤销的幂等性、批量撤销、按任务撤销和冲突处理
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_file_info, write_file
from foldersort.services import file_store
from foldersort.services.file_mover import FileMover
from foldersort.services.undo_ledger import (
    get_undoable_files,
    undo_file_move,
    undo_job,
    undo_recent_organization,
)


async def _organize(path, organized_dir, category="Documents", job_id=None):
    result = await FileMover().move_file(make_file_info(path), category, str(organized_dir), job_id)
    assert result.success
    return result


class TestUndoFileMove:
    @pytest.mark.asyncio
    async def test_round_trip(self, db, source_dir, organized_dir):
        src = write_file(source_dir / "report.pdf", b"pdf")
        moved = await _organize(src, organized_dir)

        result = await undo_file_move(moved.file_id)

        assert result.success and not result.skipped
        assert os.path.exists(src)
        assert not os.path.exists(moved.new_path)

        record = await file_store.get_file_by_id(moved.file_id)
        assert record.current_path == record.original_path == src
        assert record.organized_at is None

        actions = [log.action for log in await file_store.get_file_history(moved.file_id)]
        assert actions == ["moved", "undone"]

    @pytest.mark.asyncio
    async def test_second_undo_is_skipped(self, db, source_dir, organized_dir):
        src = write_file(source_dir / "a.txt")
        moved = await _organize(src, organized_dir)

        first = await undo_file_move(moved.file_id)
        second = await undo_file_move(moved.file_id)

        assert first.success and not first.skipped
        assert second.success and second.skipped
        actions = [log.action for log in await file_store.get_file_history(moved.file_id)]
        assert actions.count("undone") == 1

    @pytest.mark.asyncio
    async def test_missing_record(self, db):
        result = await undo_file_move(9999)
        assert not result.success
        assert result.error == "文件记录不存在"

    @pytest.mark.asyncio
    async def test_file_already_back_repairs_record(self, db, source_dir, organized_dir):
        src = write_file(source_dir / "a.txt")
        moved = await _organize(src, organized_dir)
        # 用户在外部手动把文件移了回去
        os.rename(moved.new_path, src)

        result = await undo_file_move(moved.file_id)

        assert result.success and result.skipped
        record = await file_store.get_file_by_id(moved.file_id)
        assert record.current_path == src
        assert record.organized_at is None

    @pytest.mark.asyncio
    async def test_file_missing_everywhere(self, db, source_dir, organized_dir):
        src = write_file(source_dir / "a.txt")
        moved = await _organize(src, organized_dir)
        os.remove(moved.new_path)

        result = await undo_file_move(moved.file_id)

        assert not result.success
        assert "均不存在" in result.error

    @pytest.mark.asyncio
    async def test_original_path_occupied(self, db, source_dir, organized_dir):
        src = write_file(source_dir / "a.txt", b"mine")
        moved = await _organize(src, organized_dir)
        write_file(src, b"someone else's")

        result = await undo_file_move(moved.file_id)

        assert not result.success
        assert "占用" in result.error
        with open(src, "rb") as f:
            assert f.read() == b"someone else's"
        assert os.path.exists(moved.new_path)

    @pytest.mark.asyncio
    async def test_recreates_missing_source_directory(self, db, source_dir, organized_dir):
        src = write_file(source_dir / "nested" / "a.txt")
        moved = await _organize(src, organized_dir)
        os.rmdir(source_dir / "nested")

        result = await undo_file_move(moved.file_id)

        assert result.success
        assert os.path.exists(src)


class TestUndoRecentOrganization:
    @pytest.mark.asyncio
    async def test_undo_all_recent(self, db, source_dir, organized_dir):
        paths = [write_file(source_dir / f"f{i}.txt", str(i).encode()) for i in range(3)]
        for path in paths:
            await _organize(path, organized_dir)

        summary = await undo_recent_organization()

        assert summary.success
        assert summary.undone_count == 3
        assert summary.skipped_count == 0
        assert summary.failed_count == 0
        assert all(os.path.exists(p) for p in paths)
        assert await get_undoable_files() == []

    @pytest.mark.asyncio
    async def test_future_since_undoes_nothing(self, db, source_dir, organized_dir):
        await _organize(write_file(source_dir / "a.txt"), organized_dir)

        summary = await undo_recent_organization(since=datetime.now() + timedelta(days=1))

        assert summary.undone_count == 0
        assert summary.skipped_count == 0
        assert summary.failed_count == 0
        assert summary.errors == []

    @pytest.mark.asyncio
    async def test_limit(self, db, source_dir, organized_dir):
        for i in range(3):
            await _organize(write_file(source_dir / f"f{i}.txt", str(i).encode()), organized_dir)

        summary = await undo_recent_organization(limit=2)

        assert summary.undone_count == 2
        assert len(await get_undoable_files()) == 1

    @pytest.mark.asyncio
    async def test_failures_are_reported(self, db, source_dir, organized_dir):
        ok = write_file(source_dir / "ok.txt", b"ok")
        broken = write_file(source_dir / "broken.txt", b"broken")
        await _organize(ok, organized_dir)
        moved = await _organize(broken, organized_dir)
        os.remove(moved.new_path)

        summary = await undo_recent_organization()

        assert not summary.success
        assert summary.undone_count == 1
        assert summary.failed_count == 1
        assert summary.errors[0].startswith("broken.txt: ")

    @pytest.mark.asyncio
    async def test_timezone_aware_since(self, db, source_dir, organized_dir):
        await _organize(write_file(source_dir / "a.txt"), organized_dir)
        # 同一时刻换成 UTC+14 表示，不能按字面时间比较
        an_hour_ago = (datetime.now(timezone.utc) - timedelta(hours=1)).astimezone(
            timezone(timedelta(hours=14))
        )

        assert len(await get_undoable_files(an_hour_ago)) == 1
        summary = await undo_recent_organization(since=an_hour_ago)
        assert summary.undone_count == 1

    @pytest.mark.asyncio
    async def test_timezone_aware_future_since(self, db, source_dir, organized_dir):
        await _organize(write_file(source_dir / "a.txt"), organized_dir)
        tomorrow = (datetime.now(timezone.utc) + timedelta(days=1)).astimezone(
            timezone(timedelta(hours=-12))
        )

        summary = await undo_recent_organization(since=tomorrow)

        assert summary.undone_count == 0


class TestUndoJob:
    @pytest.mark.asyncio
    async def test_only_job_files_are_undone(self, db, source_dir, organized_dir):
        a = write_file(source_dir / "a.txt", b"a")
        b = write_file(source_dir / "b.txt", b"b")
        await _organize(a, organized_dir, job_id="org_a")
        moved_b = await _organize(b, organized_dir, job_id="org_b")

        summary = await undo_job("org_a")

        assert summary.undone_count == 1
        assert os.path.exists(a)
        assert not os.path.exists(b)
        assert os.path.exists(moved_b.new_path)

    @pytest.mark.asyncio
    async def test_unknown_job(self, db):
        summary = await undo_job("org_missing")
        assert summary.success
        assert summary.undone_count == 0


class TestGetUndoableFiles:
    @pytest.mark.asyncio
    async def test_lists_organized_files(self, db, source_dir, organized_dir):
        moved = await _organize(write_file(source_dir / "a.txt"), organized_dir)

        records = await get_undoable_files()

        assert [r.id for r in records] == [moved.file_id]

    @pytest.mark.asyncio
    async def test_future_since(self, db, source_dir, organized_dir):
        await _organize(write_file(source_dir / "a.txt"), organized_dir)
        assert await get_undoable_files(datetime.now() + timedelta(hours=1)) == []
