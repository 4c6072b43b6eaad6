"""Tests for API endpoints (storage, index and queue are mocked)."""

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_blob_store, get_index, get_queue
from src.api.main import app
from src.api.routes.sermons import title_from_id
from src.errors import ArtifactNotFoundError

client = TestClient(app)
client_no_raise = TestClient(app, raise_server_exceptions=False)

SERMON = {
    "pdfUrl": "https://example.com/grace.pdf",
    "audioUrl": "https://example.com/grace.mp3",
    "language": "en",
}


@pytest.fixture
def queue() -> Iterator[MagicMock]:
    mock = MagicMock()
    mock.add = AsyncMock(side_effect=["job-1", "job-2"])
    mock.counts = AsyncMock(
        return_value={"wait": 1, "active": 2, "delayed": 0, "failed": 3, "completed": 4}
    )
    app.dependency_overrides[get_queue] = lambda: mock
    yield mock
    app.dependency_overrides.clear()


@pytest.fixture
def index() -> Iterator[MagicMock]:
    mock = MagicMock()
    mock.lookup = AsyncMock(return_value=None)
    mock.get_metadata = AsyncMock(return_value={})
    mock.all_entries = AsyncMock(return_value={})
    mock.rebuild = AsyncMock(return_value=0)
    app.dependency_overrides[get_index] = lambda: mock
    yield mock
    app.dependency_overrides.clear()


@pytest.fixture
def blob_store() -> Iterator[MagicMock]:
    mock = MagicMock()
    mock.get_artifact = AsyncMock()
    app.dependency_overrides[get_blob_store] = lambda: mock
    yield mock
    app.dependency_overrides.clear()


def test_health():
    response = client.get("/health")
    assert response.status_code == 200


# --- Bulk submission ---


def test_bulk_submit_queues_each_sermon(queue):
    second = {**SERMON, "audioUrl": "https://example.com/hope.mp3"}
    response = client.post("/api/sermons/bulk", json={"sermons": [SERMON, second]})

    assert response.status_code == 202
    assert response.json()["job_ids"] == ["job-1", "job-2"]
    assert "background" in response.json()["message"]
    queue.add.assert_any_await("process-sermon", {"sermon": SERMON})
    assert queue.add.await_count == 2


def test_bulk_submit_accepts_empty_list(queue):
    response = client.post("/api/sermons/bulk", json={"sermons": []})
    assert response.status_code == 202
    assert response.json()["job_ids"] == []


@pytest.mark.parametrize(
    "body",
    [{}, {"sermons": "not a list"}, {"sermons": [{"pdfUrl": "p", "language": "en"}]}],
)
def test_bulk_submit_validation(queue, body):
    response = client.post("/api/sermons/bulk", json=body)
    assert response.status_code == 422
    queue.add.assert_not_awaited()


def test_bulk_submit_queue_failure_is_500(queue):
    queue.add.side_effect = ConnectionError("redis down")
    response = client_no_raise.post("/api/sermons/bulk", json={"sermons": [SERMON]})
    assert response.status_code == 500


# --- Listing and retrieval ---


def test_list_sermons_uses_index_titles(blob_store, index):
    async def iter_keys():
        for key in ["amazing_grace_en_abc123.json", "audio_url_index.json", "notes.txt",
                    "old_sermon_fr_zzz999.json"]:
            yield key

    blob_store.iter_keys = iter_keys
    index.get_metadata.side_effect = lambda sermon_id: (
        {"title": "Amazing Grace"} if sermon_id.startswith("amazing") else {}
    )

    response = client.get("/api/sermons")

    assert response.status_code == 200
    assert response.json() == [
        {"id": "amazing_grace_en_abc123", "title": "Amazing Grace"},
        {"id": "old_sermon_fr_zzz999", "title": "old sermon"},
    ]


def test_get_sermon(blob_store):
    blob_store.get_artifact.return_value = {"id": "grace_en_abc123", "alignment": {}}
    response = client.get("/api/sermons/grace_en_abc123")

    assert response.status_code == 200
    assert response.json()["id"] == "grace_en_abc123"
    blob_store.get_artifact.assert_awaited_once_with("grace_en_abc123")


def test_get_sermon_not_found(blob_store):
    blob_store.get_artifact.side_effect = ArtifactNotFoundError("missing")
    response = client.get("/api/sermons/missing")
    assert response.status_code == 404


def test_lookup_by_audio_url(index):
    index.lookup.return_value = "grace_en_abc123"
    index.get_metadata.return_value = {"title": "Grace", "audioUrl": SERMON["audioUrl"]}

    response = client.get("/api/sermons/lookup", params={"audioUrl": SERMON["audioUrl"]})

    assert response.status_code == 200
    assert response.json() == {"id": "grace_en_abc123", "title": "Grace"}
    index.lookup.assert_awaited_once_with(SERMON["audioUrl"])


def test_lookup_unknown_audio_url(index):
    response = client.get("/api/sermons/lookup", params={"audioUrl": "https://nowhere"})
    assert response.status_code == 404


def test_lookup_requires_audio_url(index):
    response = client.get("/api/sermons/lookup")
    assert response.status_code == 422


# --- Admin ---


def test_rebuild_index(blob_store, index):
    index.rebuild.return_value = 7
    response = client.post("/api/admin/index/rebuild")

    assert response.status_code == 200
    assert response.json() == {"indexed": 7}
    index.rebuild.assert_awaited_once_with(blob_store)


def test_read_index(index):
    index.all_entries.return_value = {SERMON["audioUrl"]: "grace_en_abc123"}
    response = client.get("/api/admin/index")
    assert response.json() == {SERMON["audioUrl"]: "grace_en_abc123"}


def test_queue_counts(queue):
    response = client.get("/api/admin/queue")
    assert response.json() == {"wait": 1, "active": 2, "delayed": 0, "failed": 3, "completed": 4}


class TestTitleFromId:
    def test_drops_language_and_random_suffix(self) -> None:
        assert title_from_id("amazing_grace_en_abc123") == "amazing grace"

    def test_short_id(self) -> None:
        assert title_from_id("en_abc123") == "Untitled Sermon"
