import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
import sys

from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from backend import config
from backend.main import app
from backend.services.job_manager import JobManager
from pipeline.events import STATUS_COMPLETED, STATUS_TRANSCRIBING, ProgressEvent
from pipeline.models import JobState, Segment, TranscriptionResult


class FakeOrchestrator:
    def __init__(self):
        self.sources = []

    def run(self, job, sink, cancel_event=None):
        self.sources.append(job.source)
        job.attempt = 1
        sink.publish(ProgressEvent(STATUS_TRANSCRIBING, "working"))
        job.status = JobState.COMPLETED
        result = TranscriptionResult.succeeded("你好", [Segment("你好", 0.0, 1.5)])
        sink.publish(ProgressEvent(STATUS_COMPLETED, "done", result=result))
        return result


class TestApi(unittest.TestCase):
    def setUp(self) -> None:
        self.orchestrator = FakeOrchestrator()
        self.manager = JobManager(self.orchestrator)
        app.state.job_manager = self.manager
        # no context manager: the lifespan (and the real model) stays off
        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.manager.shutdown(timeout=2)

    def test_health(self) -> None:
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})

    def test_submit_url_job_and_read_result(self) -> None:
        response = self.client.post(
            "/api/jobs",
            json={"sourceType": "url", "url": "https://www.douyin.com/video/1"},
        )
        self.assertEqual(response.status_code, 200)
        job_id = response.json()["job_id"]
        self.manager.wait(job_id, timeout=2)

        body = self.client.get(f"/api/jobs/{job_id}").json()
        self.assertEqual(body["state"], "completed")
        self.assertEqual(body["source_type"], "url")
        self.assertEqual(body["result"]["text"], "你好")
        self.assertEqual(body["result"]["segments"], [{"text": "你好", "start": 0.0, "end": 1.5}])

        listed = self.client.get("/api/jobs").json()
        self.assertEqual([j["job_id"] for j in listed], [job_id])

    def test_invalid_request(self) -> None:
        response = self.client.post("/api/jobs", json={"sourceType": "url", "url": "ftp://x"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["code"], "INVALID_REQUEST")

        response = self.client.post("/api/jobs", json={"sourceType": "file"})
        self.assertEqual(response.status_code, 400)

        response = self.client.post("/api/jobs", json={"sourceType": "ftp"})
        self.assertEqual(response.status_code, 422)

    def test_unknown_job_is_404(self) -> None:
        for response in (
            self.client.get("/api/jobs/nope"),
            self.client.get("/api/jobs/nope/events"),
            self.client.get("/api/jobs/nope/stream"),
            self.client.post("/api/jobs/nope/cancel"),
        ):
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()["detail"]["code"], "JOB_NOT_FOUND")

    def test_events_and_stream(self) -> None:
        job_id = self.client.post("/api/jobs", json={"sourceType": "file", "path": "/media/a.mp4"}).json()["job_id"]
        self.manager.wait(job_id, timeout=2)

        events = self.client.get(f"/api/jobs/{job_id}/events").json()
        self.assertEqual([e["status"] for e in events], ["transcribing", "completed"])
        self.assertEqual(events[1]["result"]["text"], "你好")

        later = self.client.get(f"/api/jobs/{job_id}/events", params={"after": 1}).json()
        self.assertEqual(len(later), 1)

        response = self.client.get(f"/api/jobs/{job_id}/stream")
        self.assertEqual(response.status_code, 200)
        lines = [json.loads(line) for line in response.text.splitlines() if line]
        self.assertEqual([e["message"] for e in lines], ["working", "done"])

    def test_cancel_finished_job(self) -> None:
        job_id = self.client.post("/api/jobs", json={"sourceType": "file", "path": "a.wav"}).json()["job_id"]
        self.manager.wait(job_id, timeout=2)

        body = self.client.post(f"/api/jobs/{job_id}/cancel").json()
        self.assertFalse(body["cancelled"])
        self.assertEqual(body["job"]["state"], "completed")

    def test_upload(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, patch.object(config, "TEMP_UPLOAD_DIR", tmp):
            response = self.client.post(
                "/api/jobs/upload",
                files={"file": ("clip.mp3", b"ID3fake-bytes", "audio/mpeg")},
            )
            self.assertEqual(response.status_code, 200)
            self.manager.wait(response.json()["job_id"], timeout=2)

            source = self.orchestrator.sources[0]
            self.assertTrue(source.temporary)
            self.assertTrue(source.path.startswith(tmp))
            self.assertTrue(source.path.endswith(".mp3"))

    def test_empty_upload_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp, patch.object(config, "TEMP_UPLOAD_DIR", tmp):
            response = self.client.post(
                "/api/jobs/upload",
                files={"file": ("clip.mp3", b"", "audio/mpeg")},
            )

            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["detail"]["code"], "INVALID_UPLOAD")
            self.assertEqual(os.listdir(tmp), [])


if __name__ == "__main__":
    unittest.main()
