"""
@description API 接口测试
@responsibility 测试所有 FastAPI 接口的正确性和统一响应格式
"""

import json
import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import make_file_info, write_file
from foldersort.api.files import init_files_router
from foldersort.api.jobs import init_jobs_router
from foldersort.api.schedules import init_schedules_router
from foldersort.api.system import init_system_router
from foldersort.core.config import Config, ScheduleConfig
from foldersort.services.duplicate_detector import find_duplicates
from foldersort.services.file_mover import FileMover
from foldersort.tasks.job_queue import JobOrchestrator
from foldersort.tasks.scheduler import ScheduleManager
from main import app


@pytest_asyncio.fixture
async def orchestrator(db, organized_dir):
    config = Config(
        organizer={"organized_root": str(organized_dir)},
        queues={
            "organize": {"concurrency": 1, "attempts": 1, "backoff_delay": 0},
            "duplicate_scan": {"concurrency": 1, "attempts": 1, "backoff_delay": 0},
        },
        schedules={},
    )
    orch = JobOrchestrator(config)
    init_files_router(config.organizer)
    yield orch
    await orch.stop()


@pytest.fixture
def schedule_manager(orchestrator, source_dir):
    schedules = {
        "nightly": ScheduleConfig(
            pattern="0 2 * * *", enabled=True, action="organize", source_path=str(source_dir)
        ),
        "cleanup": ScheduleConfig(pattern="0 0 * * *", action="cleanup"),
    }
    return ScheduleManager(orchestrator, schedules)


@pytest_asyncio.fixture
async def client(orchestrator, schedule_manager):
    init_jobs_router(orchestrator)
    init_schedules_router(schedule_manager)
    init_system_router(orchestrator, schedule_manager)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await schedule_manager.stop_all()


async def _organize(path, organized_dir, job_id=None):
    result = await FileMover().move_file(make_file_info(path), "Documents", str(organized_dir), job_id)
    assert result.success
    return result


class TestRoot:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["code"] == 0


class TestJobs:
    @pytest.mark.asyncio
    async def test_create_and_get_job(self, client, orchestrator, source_dir):
        write_file(source_dir / "a.pdf")
        await orchestrator.start()

        response = await client.post(
            "/api/jobs", json={"type": "organize", "source_path": str(source_dir)}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == 0
        job_id = data["data"]["job_id"]
        assert job_id.startswith("org_")

        await orchestrator.wait_idle()

        response = await client.get(f"/api/jobs/{job_id}")
        assert response.status_code == 200
        job = response.json()["data"]
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["result"]["moved_files"] == 1
        assert "logs" not in job

        response = await client.get(f"/api/jobs/{job_id}/logs")
        assert response.status_code == 200
        assert len(response.json()["data"]["logs"]) > 0

    @pytest.mark.asyncio
    async def test_create_job_invalid_type(self, client):
        response = await client.post("/api/jobs", json={"type": "compress", "source_path": "/tmp"})

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == 422
        assert data["data"]["errors"]

    @pytest.mark.asyncio
    async def test_create_job_missing_source(self, client):
        response = await client.post("/api/jobs", json={"type": "organize"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_jobs(self, client, source_dir):
        await client.post("/api/jobs", json={"type": "organize", "source_path": str(source_dir)})
        await client.post(
            "/api/jobs", json={"type": "duplicate-scan", "source_path": str(source_dir)}
        )

        response = await client.get("/api/jobs", params={"type": "duplicate-scan"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["jobs"][0]["type"] == "duplicate-scan"
        assert data["jobs"][0]["status"] == "waiting"

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, client):
        response = await client.get("/api/jobs/org_missing")

        assert response.status_code == 404
        assert response.json()["code"] == 404

    @pytest.mark.asyncio
    async def test_cancel_waiting_job(self, client, source_dir):
        response = await client.post(
            "/api/jobs", json={"type": "organize", "source_path": str(source_dir)}
        )
        job_id = response.json()["data"]["job_id"]

        response = await client.delete(f"/api/jobs/{job_id}")
        assert response.status_code == 200

        response = await client.get(f"/api/jobs/{job_id}")
        assert response.json()["data"]["status"] == "failed"

        response = await client.delete(f"/api/jobs/{job_id}")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, client):
        response = await client.delete("/api/jobs/org_missing")
        assert response.status_code == 404


class TestFiles:
    @pytest.mark.asyncio
    async def test_undoable_and_undo(self, client, source_dir, organized_dir):
        src = write_file(source_dir / "a.txt")
        moved = await _organize(src, organized_dir)

        response = await client.get("/api/files/undoable")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["count"] == 1
        assert data["files"][0]["id"] == moved.file_id

        response = await client.post(f"/api/files/{moved.file_id}/undo")
        assert response.status_code == 200
        assert response.json()["data"]["success"]
        assert os.path.exists(src)

        response = await client.post(f"/api/files/{moved.file_id}/undo")
        assert response.status_code == 200
        assert response.json()["data"]["skipped"]

        response = await client.get(f"/api/files/{moved.file_id}/history")
        actions = [op["action"] for op in response.json()["data"]["operations"]]
        assert actions == ["moved", "undone"]

    @pytest.mark.asyncio
    async def test_undo_missing_file(self, client):
        response = await client.post("/api/files/999/undo")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_undo_range_by_job(self, client, source_dir, organized_dir):
        a = write_file(source_dir / "a.txt", b"a")
        b = write_file(source_dir / "b.txt", b"b")
        await _organize(a, organized_dir, job_id="org_a")
        await _organize(b, organized_dir, job_id="org_b")

        response = await client.post("/api/files/undo", json={"job_id": "org_b"})

        assert response.status_code == 200
        summary = response.json()["data"]
        assert summary["undone_count"] == 1
        assert os.path.exists(b)
        assert not os.path.exists(a)

    @pytest.mark.asyncio
    async def test_undo_range_future_since(self, client, source_dir, organized_dir):
        await _organize(write_file(source_dir / "a.txt"), organized_dir)

        response = await client.post("/api/files/undo", json={"since": "2999-01-01T00:00:00"})

        summary = response.json()["data"]
        assert summary["undone_count"] == 0
        assert summary["skipped_count"] == 0
        assert summary["failed_count"] == 0

    @pytest.mark.asyncio
    async def test_recent_operations(self, client, source_dir, organized_dir):
        await _organize(write_file(source_dir / "a.txt", b"a"), organized_dir)
        await _organize(write_file(source_dir / "b.txt", b"b"), organized_dir)

        response = await client.get("/api/files/operations/recent", params={"limit": 1})

        data = response.json()["data"]
        assert data["total"] == 1
        assert data["operations"][0]["action"] == "moved"
        assert data["operations"][0]["file_name"] == "b.txt"


class TestDuplicates:
    @pytest.mark.asyncio
    async def test_list_duplicates(self, client, source_dir):
        paths = [write_file(source_dir / f"{i}.bin", b"same") for i in range(2)]
        await find_duplicates([make_file_info(p) for p in paths])

        response = await client.get("/api/duplicates")

        data = response.json()["data"]
        assert data["count"] == 1
        assert data["duplicates"][0]["count"] == 2

        file_id = data["duplicates"][0]["files"][0]["id"]
        response = await client.get(f"/api/duplicates/file/{file_id}")
        assert response.status_code == 200
        assert response.json()["data"]["count"] == 1

    @pytest.mark.asyncio
    async def test_duplicates_of_missing_file(self, client):
        response = await client.get("/api/duplicates/file/404")
        assert response.status_code == 404


class TestSchedules:
    @pytest.mark.asyncio
    async def test_list_start_stop(self, client):
        response = await client.get("/api/schedules")
        names = [s["name"] for s in response.json()["data"]]
        assert names == ["nightly", "cleanup"]

        response = await client.post("/api/schedules/nightly/start")
        assert response.status_code == 200

        response = await client.post("/api/schedules/nightly/start")
        assert response.status_code == 409

        response = await client.post("/api/schedules/nightly/stop")
        assert response.status_code == 200

        response = await client.post("/api/schedules/nightly/stop")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_trigger(self, client):
        response = await client.post("/api/schedules/nightly/trigger")
        assert response.status_code == 200
        assert response.json()["data"]["job_id"].startswith("org_")

        response = await client.post("/api/schedules/cleanup/trigger")
        assert response.json()["data"]["deleted_jobs"] == 0

    @pytest.mark.asyncio
    async def test_trigger_unknown(self, client):
        response = await client.post("/api/schedules/missing/trigger")
        assert response.status_code == 404


class TestStatus:
    @pytest.mark.asyncio
    async def test_get_status(self, client, orchestrator):
        await orchestrator.start()

        response = await client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == 0
        assert data["message"] == "获取系统状态成功"
        assert data["data"]["orchestrator_running"]
        assert set(data["data"]["queues"]) == {"organize", "duplicate-scan"}
        assert data["data"]["running_schedules"] == 0


def _parse_sse(text: str) -> list[tuple[str, dict]]:
    events = []
    for block in text.strip().split("\n\n"):
        fields = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((fields["event"], json.loads(fields["data"])))
    return events


class TestJobEvents:
    @pytest.mark.asyncio
    async def test_stream_until_completed(self, client, orchestrator, source_dir):
        for i in range(3):
            write_file(source_dir / f"f{i}.txt", str(i).encode())
        response = await client.post(
            "/api/jobs", json={"type": "organize", "source_path": str(source_dir)}
        )
        job_id = response.json()["data"]["job_id"]
        await orchestrator.start()

        response = await client.get(f"/api/jobs/{job_id}/events")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(response.text)
        assert all(data["job_id"] == job_id for _, data in events)
        assert events[-1][0] == "completed"
        assert events[-1][1]["result"]["moved_files"] == 3
        progress = [data["progress"] for kind, data in events if kind == "progress"]
        assert progress == sorted(progress)
        assert orchestrator._subscribers == set()

    @pytest.mark.asyncio
    async def test_stream_finished_job(self, client, orchestrator, source_dir):
        response = await client.post(
            "/api/jobs", json={"type": "organize", "source_path": str(source_dir)}
        )
        job_id = response.json()["data"]["job_id"]
        await client.delete(f"/api/jobs/{job_id}")

        response = await client.get(f"/api/jobs/{job_id}/events")

        events = _parse_sse(response.text)
        assert len(events) == 1
        assert events[0][0] == "failed"
        assert events[0][1]["error"] == "任务已被用户取消"
        assert orchestrator._subscribers == set()

    @pytest.mark.asyncio
    async def test_stream_unknown_job(self, client):
        response = await client.get("/api/jobs/org_missing/events")
        assert response.status_code == 404


class TestUndoFailure:
    @pytest.mark.asyncio
    async def test_undo_conflict_returns_result(self, client, source_dir, organized_dir):
        src = write_file(source_dir / "a.txt", b"mine")
        moved = await _organize(src, organized_dir)
        write_file(src, b"someone else's")

        response = await client.post(f"/api/files/{moved.file_id}/undo")

        assert response.status_code == 409
        data = response.json()
        assert data["code"] == 409
        assert data["data"]["success"] is False
        assert data["data"]["skipped"] is False
        assert "占用" in data["data"]["error"]


class TestFilePreview:
    @pytest.mark.asyncio
    async def test_list_files(self, client, source_dir, organized_dir):
        for name in ("a.txt", "b.txt", "c.txt"):
            await _organize(write_file(source_dir / name, name.encode()), organized_dir)

        response = await client.get("/api/files", params={"limit": 2})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 3
        assert len(data["files"]) == 2

        response = await client.get("/api/files", params={"limit": 2, "offset": 2})
        assert len(response.json()["data"]["files"]) == 1

    @pytest.mark.asyncio
    async def test_validate_path(self, client, source_dir, tmp_path):
        response = await client.get("/api/files/validate-path", params={"path": str(source_dir)})

        data = response.json()["data"]
        assert data["valid"] and data["is_directory"] and data["readable"]

        response = await client.get(
            "/api/files/validate-path", params={"path": str(tmp_path / "missing")}
        )
        data = response.json()["data"]
        assert not data["valid"]
        assert not data["exists"]

    @pytest.mark.asyncio
    async def test_scan_preview_does_not_move(self, client, source_dir):
        write_file(source_dir / "a.pdf")
        write_file(source_dir / "sub" / "b.jpg")

        response = await client.post("/api/files/scan", json={"source_path": str(source_dir)})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_files"] == 2
        assert sorted(f["name"] for f in data["files"]) == ["a.pdf", "b.jpg"]
        assert os.path.exists(source_dir / "a.pdf")

    @pytest.mark.asyncio
    async def test_classify_preview(self, client, source_dir, organized_dir):
        for i in range(3):
            write_file(source_dir / f"doc{i}.pdf")
        for i in range(2):
            write_file(source_dir / f"img{i}.jpg")

        response = await client.post("/api/files/classify", json={"source_path": str(source_dir)})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_files"] == 5
        assert {k: len(v) for k, v in data["categories"].items()} == {"Documents": 3, "Images": 2}
        assert len(os.listdir(source_dir)) == 5
        assert not os.path.exists(organized_dir)

    @pytest.mark.asyncio
    async def test_scan_missing_directory(self, client, tmp_path):
        response = await client.post(
            "/api/files/classify", json={"source_path": str(tmp_path / "missing")}
        )

        assert response.status_code == 400
        assert response.json()["code"] == 400
