"""
Pytest configuration and fixtures for the ZPL PDF Backend tests.
"""

import os
import shutil
import tempfile

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["ZPL_OUTPUT_ROOT"] = tempfile.mkdtemp(prefix="zpl_test_output_")
os.environ["ZPL_STORAGE_BACKEND"] = "local"
os.environ["ZPL_AUTO_PROCESS"] = "false"
os.environ.pop("ZPL_DATABASE_PATH", None)

from zpl_pdf_backend.artifact_store import LocalArtifactStore
from zpl_pdf_backend.engine import ConversionEngine
from zpl_pdf_backend.job_manager import JobManager
from zpl_pdf_backend.job_store import JobStore
from zpl_pdf_backend.main import app


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup the app's output directory after all tests."""
    output_dir = os.environ["ZPL_OUTPUT_ROOT"]

    yield {"output": output_dir}

    shutil.rmtree(output_dir, ignore_errors=True)


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def manager(tmp_path):
    """A job manager with its own store and artifact directory; processing is driven by the test."""
    job_manager = JobManager(
        store=JobStore(),
        engine=ConversionEngine(),
        artifacts=LocalArtifactStore(tmp_path / "artifacts"),
        max_workers=2,
    )
    yield job_manager
    job_manager.shutdown()


@pytest.fixture
def single_label():
    return "^XA^FO50,50^A0N,30,30^FDHello World^FS^XZ"


@pytest.fixture
def two_labels():
    """Two complete labels with text, a barcode and a box."""
    return (
        "^XA\n"
        "^FO20,20^GB760,1160,4^FS\n"
        "^FO50,50^A0N,40,40^FDShip To: ACME Corp^FS\n"
        "^BY2,3,100\n"
        "^FO50,150^BCN,100,Y,N,N^FD12345678^FS\n"
        "^XZ\n"
        "^XA\n"
        "^FO50,50^ADN,36,20^FDSecond label^FS\n"
        "^FO50,150^BQN,2,4^FDQA,https://example.com/track/42^FS\n"
        "^XZ\n"
    )


@pytest.fixture
def unterminated_label():
    """Passes the structural pre-check (it has ^XA ... ^XZ) but the second block never ends."""
    return "^XA^FO50,50^FDFirst^FS^XZ^XA^FO50,50^FDSecond^FS"
