import pytest
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

import api.uploads.controller.upload_controller as ctrl
from api.exceptions import register_exception_handlers
from api.orchestrator.db.models import Job, JobStatus
from api.orchestrator.media.combiner import ProcessingError
from api.orchestrator.models.dto import AudioOption, LayoutOption
from api.orchestrator.storage.blob_store import StorageError
from api.uploads.service.upload_service import EnqueueError
from shared.services import get_session

JOB_ID = UUID("00000000-0000-0000-0000-000000000123")


def _files(first_type="video/mp4", second_type="video/mp4"):
    return {
        "video1": ("first.mp4", b"first", first_type),
        "video2": ("second.mp4", b"second", second_type),
    }


@pytest.fixture
def submit(monkeypatch):
    mock = AsyncMock(return_value=JOB_ID)
    monkeypatch.setattr(ctrl, "submit_job", mock)
    return mock


@pytest.fixture
def app(db_session):
    app = FastAPI()
    app.include_router(ctrl.router)
    register_exception_handlers(app)
    app.dependency_overrides[get_session] = lambda: db_session
    return app


@pytest.fixture
def client_for(app):
    def _client():
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return _client


# =============================================================================
# POST /upload
# =============================================================================

@pytest.mark.asyncio
async def test_upload_queues_job_and_returns_id(client_for, submit):
    async with client_for() as client:
        r = await client.post(
            "/upload",
            files=_files(),
            data={"audioOption": "audioBoth", "layoutOption": "horizontal"},
        )

    assert r.status_code == 200
    assert r.json() == {"message": "Files uploaded and job queued", "jobId": str(JOB_ID)}

    submission = submit.await_args.kwargs["submission"]
    assert submission.audio is AudioOption.MIX_BOTH
    assert submission.layout is LayoutOption.HORIZONTAL
    assert submission.video1.filename == "first.mp4"
    assert submission.video2.filename == "second.mp4"


@pytest.mark.asyncio
async def test_upload_without_layout_defaults_to_vertical(client_for, submit):
    async with client_for() as client:
        r = await client.post("/upload", files=_files(), data={"audioOption": "audio1"})

    assert r.status_code == 200
    assert submit.await_args.kwargs["submission"].layout is LayoutOption.VERTICAL


@pytest.mark.asyncio
async def test_upload_missing_file_is_rejected(client_for, submit):
    files = _files()
    del files["video2"]

    async with client_for() as client:
        r = await client.post("/upload", files=files, data={"audioOption": "audio1"})

    assert r.status_code == 400
    assert r.json() == {"detail": "Please upload two files."}
    submit.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_non_video_is_rejected(client_for, submit):
    async with client_for() as client:
        r = await client.post(
            "/upload",
            files=_files(second_type="text/plain"),
            data={"audioOption": "audio1"},
        )

    assert r.status_code == 400
    assert r.json()["detail"] == "Only video files are allowed."
    submit.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("audio", ["audio3", "both", ""])
async def test_upload_unknown_audio_option_is_rejected(client_for, submit, audio):
    async with client_for() as client:
        r = await client.post("/upload", files=_files(), data={"audioOption": audio})

    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid audio option selected."
    submit.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        StorageError("Blob store put failed for video1-1-abc.mp4: AccessDenied"),
        EnqueueError("Failed to enqueue job: broker down"),
    ],
)
async def test_upload_pipeline_failure_is_plain_text_500(client_for, monkeypatch, error):
    monkeypatch.setattr(ctrl, "submit_job", AsyncMock(side_effect=error))

    async with client_for() as client:
        r = await client.post("/upload", files=_files(), data={"audioOption": "audio2"})

    assert r.status_code == 500
    assert r.headers["content-type"].startswith("text/plain")
    assert r.text == str(error)


# =============================================================================
# POST /upload/sync
# =============================================================================

@pytest.mark.asyncio
async def test_sync_upload_returns_output_locator(client_for, monkeypatch):
    process = AsyncMock(return_value="http://test/files/run-merged.mp4")
    monkeypatch.setattr(ctrl, "process_sync", process)

    async with client_for() as client:
        r = await client.post(
            "/upload/sync",
            files=_files(),
            data={"audioOption": "audio1", "layoutOption": "horizontal"},
        )

    assert r.status_code == 200
    assert r.json() == {"message": "Files uploaded and processed", "output": "http://test/files/run-merged.mp4"}
    assert process.await_args.args[0].layout is LayoutOption.HORIZONTAL


@pytest.mark.asyncio
async def test_sync_upload_ffmpeg_failure_is_plain_text_500(client_for, monkeypatch):
    monkeypatch.setattr(
        ctrl, "process_sync", AsyncMock(side_effect=ProcessingError("ffmpeg exited with code 1: moov atom not found"))
    )

    async with client_for() as client:
        r = await client.post("/upload/sync", files=_files(), data={"audioOption": "audio1"})

    assert r.status_code == 500
    assert r.text == "ffmpeg exited with code 1: moov atom not found"


@pytest.mark.asyncio
async def test_sync_upload_validates_like_async(client_for, monkeypatch):
    process = AsyncMock()
    monkeypatch.setattr(ctrl, "process_sync", process)

    async with client_for() as client:
        r = await client.post("/upload/sync", files=_files(first_type="image/jpeg"), data={"audioOption": "audio1"})

    assert r.status_code == 400
    process.assert_not_awaited()


# =============================================================================
# GET /status/{job_id}
# =============================================================================

async def _add_job(db_session, status, **fields) -> Job:
    job = Job(
        id=uuid4(),
        status=status,
        video1_url="http://test/files/a.mp4",
        video2_url="http://test/files/b.mp4",
        audio_option="audio1",
        layout_option="vertical",
        **fields,
    )
    db_session.add(job)
    await db_session.commit()
    return job


@pytest.mark.asyncio
async def test_status_of_completed_job_has_url(client_for, db_session):
    job = await _add_job(db_session, JobStatus.COMPLETED, output_url="http://test/files/x-merged.mp4")

    async with client_for() as client:
        r = await client.get(f"/status/{job.id}")

    assert r.status_code == 200
    assert r.json() == {"status": "completed", "url": "http://test/files/x-merged.mp4"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [JobStatus.QUEUED, JobStatus.RUNNING])
async def test_status_of_unfinished_job_is_processing(client_for, db_session, status):
    job = await _add_job(db_session, status)

    async with client_for() as client:
        r = await client.get(f"/status/{job.id}")

    assert r.json() == {"status": "processing"}


@pytest.mark.asyncio
async def test_status_of_failed_job_has_error(client_for, db_session):
    job = await _add_job(db_session, JobStatus.FAILED, error_message="ffmpeg exited with code 1")

    async with client_for() as client:
        r = await client.get(f"/status/{job.id}")

    assert r.json() == {"status": "failed", "error": "ffmpeg exited with code 1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("job_id", [str(uuid4()), "not-a-uuid"])
async def test_status_of_unknown_job_is_processing(client_for, job_id):
    async with client_for() as client:
        r = await client.get(f"/status/{job_id}")

    assert r.status_code == 200
    assert r.json() == {"status": "processing"}
