"""Tests for the HTTP processing backend and idea lookup."""

import json

import httpx
import pytest

from duet.backend.rest import HttpIdeaLookup, HttpProcessingBackend, build_client
from duet.errors.exceptions import BackendError
from duet.models.enums import JobStatus

from conftest import START


def _client(handler, token=None):
    return build_client("http://backend.test/", api_token=token, transport=httpx.MockTransport(handler))


@pytest.fixture
def requests_seen():
    return []


def _recording(requests_seen, response):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        return response(request) if callable(response) else response

    return handler


# ---------------------------------------------------------------------------
# start_job
# ---------------------------------------------------------------------------


class TestStartJob:
    async def test_personal_submission(self, requests_seen, clock):
        handler = _recording(requests_seen, httpx.Response(
            202, json={"processing_id": "proc_1", "message": "Video processing started", "status": "queued"},
        ))
        backend = HttpProcessingBackend(_client(handler, token="tok"), clock=clock)

        job = await backend.start_job("https://youtu.be/abc", "user_1")

        request = requests_seen[0]
        assert request.method == "POST"
        assert request.url.path == "/summarise"
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content) == {"url": "https://youtu.be/abc", "user_id": "user_1", "public": False}

        assert job.id == "proc_1"
        assert job.status == JobStatus.QUEUED
        assert job.progress_message == "Video processing started"
        assert job.created_at == START
        assert job.group_id is None

    async def test_publish_default(self, requests_seen):
        handler = _recording(requests_seen, httpx.Response(202, json={"processing_id": "proc_1"}))
        backend = HttpProcessingBackend(_client(handler), default_publish_ideas=True)

        await backend.start_job("https://youtu.be/abc", "user_1")

        assert json.loads(requests_seen[0].content)["public"] is True

    async def test_group_submission_is_private(self, requests_seen):
        handler = _recording(requests_seen, httpx.Response(202, json={"processing_id": "proc_2", "status": "downloading"}))
        backend = HttpProcessingBackend(_client(handler), default_publish_ideas=True)

        job = await backend.start_job("https://youtu.be/abc", "user_1", group_id="G1")

        request = requests_seen[0]
        assert request.url.path == "/groups/add-url"
        assert json.loads(request.content) == {
            "url": "https://youtu.be/abc", "user_id": "user_1", "group_id": "G1", "public": False,
        }
        assert job.group_id == "G1"
        assert job.status == JobStatus.DOWNLOADING

    @pytest.mark.parametrize("status", ["completed", "failed", "mystery", None])
    async def test_non_active_status_reported_as_queued(self, status):
        body = {"processing_id": "proc_3"}
        if status is not None:
            body["status"] = status
        backend = HttpProcessingBackend(_client(lambda r: httpx.Response(202, json=body)))

        job = await backend.start_job("https://youtu.be/abc", "user_1")

        assert job.status == JobStatus.QUEUED

    async def test_missing_processing_id(self):
        backend = HttpProcessingBackend(_client(lambda r: httpx.Response(202, json={"message": "ok"})))

        with pytest.raises(BackendError, match="processing_id"):
            await backend.start_job("https://youtu.be/abc", "user_1")

    @pytest.mark.parametrize("body, expected", [
        ({"detail": "Not enough credits"}, "Not enough credits"),
        ({"detail": {"code": "QUOTA", "message": "Quota exceeded"}}, "Quota exceeded"),
        ({"error": "Bad URL"}, "Bad URL"),
        ({}, "HTTP 402"),
    ])
    async def test_error_messages(self, body, expected):
        backend = HttpProcessingBackend(_client(lambda r: httpx.Response(402, json=body)))

        with pytest.raises(BackendError) as exc_info:
            await backend.start_job("https://youtu.be/abc", "user_1")

        assert exc_info.value.message == expected
        assert exc_info.value.status_code == 402

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend = HttpProcessingBackend(_client(handler))

        with pytest.raises(BackendError) as exc_info:
            await backend.start_job("https://youtu.be/abc", "user_1")

        assert exc_info.value.status_code is None
        assert "connection refused" in exc_info.value.message

    async def test_non_json_body(self):
        backend = HttpProcessingBackend(_client(lambda r: httpx.Response(200, text="<html>")))

        with pytest.raises(BackendError, match="non-JSON"):
            await backend.start_job("https://youtu.be/abc", "user_1")


# ---------------------------------------------------------------------------
# retry / delete
# ---------------------------------------------------------------------------


class TestRetryDelete:
    async def test_retry(self, requests_seen, make_job):
        doc = make_job(id="proc_1", status="queued").to_document()
        backend = HttpProcessingBackend(_client(_recording(requests_seen, httpx.Response(200, json=doc))))

        job = await backend.retry_job("proc_1")

        assert requests_seen[0].method == "POST"
        assert requests_seen[0].url.path == "/processing/proc_1/retry"
        assert job.id == "proc_1"
        assert job.status == JobStatus.QUEUED

    async def test_retry_malformed_response(self):
        backend = HttpProcessingBackend(_client(lambda r: httpx.Response(200, json={"id": "proc_1"})))

        with pytest.raises(BackendError, match="Malformed"):
            await backend.retry_job("proc_1")

    async def test_retry_conflict(self):
        backend = HttpProcessingBackend(_client(lambda r: httpx.Response(409, json={"detail": "Job is not retryable"})))

        with pytest.raises(BackendError) as exc_info:
            await backend.retry_job("proc_1")
        assert exc_info.value.status_code == 409

    async def test_delete(self, requests_seen):
        backend = HttpProcessingBackend(_client(_recording(requests_seen, httpx.Response(204))))

        await backend.delete_job("proc_1")

        assert requests_seen[0].method == "DELETE"
        assert requests_seen[0].url.path == "/processing/proc_1"

    async def test_delete_not_found(self):
        backend = HttpProcessingBackend(_client(lambda r: httpx.Response(404, json={"detail": "Job 'x' not found"})))

        with pytest.raises(BackendError) as exc_info:
            await backend.delete_job("x")
        assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# HttpIdeaLookup
# ---------------------------------------------------------------------------


class TestIdeaLookup:
    async def test_title_from_summary(self, requests_seen):
        body = {"id": 42, "summary": {"title": "Best ramen in Osaka", "places": 7}}
        lookup = HttpIdeaLookup(_client(_recording(requests_seen, httpx.Response(200, json=body))))

        idea = await lookup.get_idea("42")

        assert requests_seen[0].url.path == "/activities/42"
        assert idea.id == "42"
        assert idea.title == "Best ramen in Osaka"

    async def test_missing_title(self):
        lookup = HttpIdeaLookup(_client(lambda r: httpx.Response(200, json={"id": "a1"})))
        assert (await lookup.get_idea("a1")).title == "New Idea"

    async def test_not_found(self):
        lookup = HttpIdeaLookup(_client(lambda r: httpx.Response(404, json={"detail": "Not found"})))

        with pytest.raises(BackendError):
            await lookup.get_idea("missing")

    async def test_malformed(self):
        lookup = HttpIdeaLookup(_client(lambda r: httpx.Response(200, json={"title": "no id"})))

        with pytest.raises(BackendError, match="Malformed"):
            await lookup.get_idea("a1")
