"""
Tests for ZPL PDF Backend API endpoints.

Tests cover:
- Health check
- Configuration defaults
- Conversion submission (inline content and file upload)
- Explicit processing, status polling and download
- Job listing and detail
"""

from io import BytesIO

from zpl_pdf_backend.messages import translate
from zpl_pdf_backend.validator import MISSING_BLOCK_REASON, MISSING_CONTENT_REASON


def _submit(client, content, **data):
    response = client.post("/zpl/convert", data={"zplContent": content, **data})
    assert response.status_code == 202
    return response.json()["jobId"]


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestConfigDefaults:
    """Tests for the /config/defaults endpoint."""

    def test_get_config_defaults(self, client):
        """Should return the label size table and service defaults."""
        response = client.get("/config/defaults")
        assert response.status_code == 200

        data = response.json()
        sizes = {row["value"]: (row["width_pt"], row["height_pt"]) for row in data["label_sizes"]}
        assert sizes == {"2x1": (144, 72), "2x4": (144, 288), "4x2": (288, 144), "4x6": (288, 432)}
        assert data["defaults"]["unsupported_policy"] == "warn"
        assert "s3_bucket_name" not in data["defaults"]
        assert data["languages"] == ["en", "es"]


class TestConvert:
    """Tests for the /zpl/convert endpoint."""

    def test_inline_content_is_accepted(self, client, single_label):
        response = client.post("/zpl/convert", data={"zplContent": single_label, "labelSize": "4x6"})
        assert response.status_code == 202

        data = response.json()
        assert data["statusUrl"] == f"/zpl/status/{data['jobId']}"
        assert data["message"] == translate("accepted", "en")

        detail = client.get(f"/jobs/{data['jobId']}").json()
        assert detail["label_size"] == "4x6"
        assert detail["status"] == "pending"

    def test_file_upload_is_accepted(self, client, two_labels):
        response = client.post(
            "/zpl/convert",
            files={"file": ("labels.zpl", BytesIO(two_labels.encode()), "text/plain")},
        )
        assert response.status_code == 202
        job_id = response.json()["jobId"]
        assert client.get(f"/jobs/{job_id}").json()["source_length"] == len(two_labels)

    def test_file_wins_over_inline_content(self, client, single_label, two_labels):
        response = client.post(
            "/zpl/convert",
            data={"zplContent": single_label},
            files={"file": ("labels.zpl", BytesIO(two_labels.encode()), "text/plain")},
        )
        job_id = response.json()["jobId"]
        assert client.get(f"/jobs/{job_id}").json()["source_length"] == len(two_labels)

    def test_spanish_acknowledgement(self, client, single_label):
        response = client.post("/zpl/convert", data={"zplContent": single_label, "language": "es"})
        assert response.json()["message"] == translate("accepted", "es")

    def test_missing_content_is_rejected(self, client):
        response = client.post("/zpl/convert", data={"labelSize": "2x1"})
        assert response.status_code == 400
        assert response.json()["detail"] == MISSING_CONTENT_REASON

    def test_content_without_block_is_rejected(self, client):
        """No job should be created for content that fails the pre-check."""
        before = len(client.get("/jobs").json())
        response = client.post("/zpl/convert", data={"zplContent": "^FO50,50^FDHello^FS"})
        assert response.status_code == 400
        assert response.json()["detail"] == MISSING_BLOCK_REASON
        assert len(client.get("/jobs").json()) == before

    def test_unknown_label_size_is_rejected(self, client, single_label):
        response = client.post("/zpl/convert", data={"zplContent": single_label, "labelSize": "3x3"})
        assert response.status_code == 422

    def test_oversized_upload_is_rejected(self, client):
        payload = b"^XA" + b" " * (1024 * 1024) + b"^XZ"
        response = client.post("/zpl/convert", files={"file": ("big.zpl", BytesIO(payload), "text/plain")})
        assert response.status_code == 413

    def test_non_utf8_upload_is_rejected(self, client):
        response = client.post(
            "/zpl/convert",
            files={"file": ("labels.zpl", BytesIO(b"^XA^FD\xff\xfe^FS^XZ"), "text/plain")},
        )
        assert response.status_code == 400


class TestProcessAndDownload:
    """Tests for /zpl/process, /zpl/status, /zpl/download and /zpl/files."""

    def test_full_round_trip(self, client, two_labels):
        job_id = _submit(client, two_labels, labelSize="4x6")
        assert client.get(f"/zpl/status/{job_id}").json() == {
            "status": "pending",
            "progress": 0,
            "message": translate("queued", "en"),
        }

        response = client.post("/zpl/process", json={"jobId": job_id})
        assert response.status_code == 200
        assert response.json() == {"status": "completed", "message": translate("completed", "en")}

        status = client.get(f"/zpl/status/{job_id}").json()
        assert status["status"] == "completed"
        assert status["progress"] == 100

        reference = client.get(f"/zpl/download/{job_id}").json()
        assert reference == {"url": f"/zpl/files/{job_id}", "filename": f"label-{job_id}.pdf"}

        pdf = client.get(reference["url"])
        assert pdf.status_code == 200
        assert pdf.headers["content-type"] == "application/pdf"
        assert pdf.content.startswith(b"%PDF")

    def test_processing_twice_conflicts(self, client, single_label):
        job_id = _submit(client, single_label)
        assert client.post("/zpl/process", json={"jobId": job_id}).status_code == 200
        response = client.post("/zpl/process", json={"jobId": job_id})
        assert response.status_code == 409

    def test_malformed_job_fails_and_has_no_download(self, client, unterminated_label):
        job_id = _submit(client, unterminated_label)
        response = client.post("/zpl/process", json={"jobId": job_id})
        assert response.status_code == 200
        assert response.json()["status"] == "failed"

        assert client.get(f"/zpl/download/{job_id}").status_code == 404
        assert client.get(f"/zpl/files/{job_id}").status_code == 404

    def test_pending_job_has_no_download(self, client, single_label):
        job_id = _submit(client, single_label)
        response = client.get(f"/zpl/download/{job_id}")
        assert response.status_code == 404
        assert response.json()["detail"] == "PDF not found or conversion not completed"

    def test_unknown_job(self, client):
        assert client.post("/zpl/process", json={"jobId": "nope"}).status_code == 404
        assert client.get("/zpl/status/nope").status_code == 404
        assert client.get("/zpl/download/nope").status_code == 404
        assert client.get("/jobs/nope").status_code == 404

    def test_process_requires_job_id(self, client):
        assert client.post("/zpl/process", json={}).status_code == 422
        assert client.post("/zpl/process", json={"jobId": ""}).status_code == 422


class TestJobs:
    """Tests for the /jobs endpoints."""

    def test_job_detail_lists_events(self, client, single_label):
        job_id = _submit(client, single_label)
        client.post("/zpl/process", json={"jobId": job_id})

        detail = client.get(f"/jobs/{job_id}").json()
        assert detail["id"] == job_id
        assert detail["filename"] == f"label-{job_id}.pdf"
        assert [event["message"] for event in detail["events"]][0] == translate("queued", "en")
        assert detail["events"][-1]["message"] == translate("completed", "en")

    def test_list_includes_submitted_job(self, client, single_label):
        job_id = _submit(client, single_label)
        assert job_id in {job["id"] for job in client.get("/jobs").json()}


class TestCORS:
    """Tests for CORS configuration."""

    def test_cors_headers_present(self, client):
        response = client.options(
            "/healthz",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
        )
        assert response.status_code == 200
        assert "access-control-allow-origin" in response.headers
