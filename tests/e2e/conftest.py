"""E2E test configuration and fixtures.

These fixtures start the real application with:
- One destination folder ("files") in a temporary directory
- Password authentication configured
- The in-process fake swarm serving torrents (FETCHBAY_TESTING_FAKE_SWARM=true)
- The HTTP engine pointed at an in-process upstream instead of the network
"""

import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, Generator

import httpx
import pytest
from fastapi.testclient import TestClient

E2E_PASSWORD = "e2e-password"
MAGNET = "magnet:?xt=urn:btih:0123456789abcdef0123456789abcdef01234567"

UPSTREAM_FILES: Dict[str, bytes] = {
    "/sample.txt": b"sample file served by the fake upstream\n",
    "/archive.zip": b"PK\x03\x04" + b"\x00" * 4096,
}


def fake_upstream(request: httpx.Request) -> httpx.Response:
    """Serve UPSTREAM_FILES; everything else is a 404."""
    body = UPSTREAM_FILES.get(request.url.path)
    if body is None:
        return httpx.Response(404)
    return httpx.Response(200, content=body)


@pytest.fixture(scope="module")
def temp_downloads_dir() -> Generator[str, None, None]:
    """Create a temporary directory for downloads."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(scope="module")
def files_dir(temp_downloads_dir: str) -> Path:
    """Folder behind the 'files' key (created on first use)."""
    return Path(temp_downloads_dir) / "files"


@pytest.fixture(scope="module")
def e2e_env(temp_downloads_dir: str, files_dir: Path) -> Generator[None, None, None]:
    """Set up environment variables for E2E testing."""
    original_env: dict[str, str | None] = {}
    env_vars = {
        "FETCHBAY_CONFIG": str(Path(temp_downloads_dir) / "missing-config.yaml"),
        "FETCHBAY_STORAGE_DOWNLOAD_FOLDERS": f"files:{files_dir}",
        "FETCHBAY_STORAGE_ALLOWED_EXTENSIONS": ".txt,.zip,.pdf",
        "FETCHBAY_STORAGE_MAX_UPLOAD_SIZE": "1mb",
        "FETCHBAY_SECURITY_PASSWORD": E2E_PASSWORD,
        "FETCHBAY_LOGGING_LEVEL": "WARNING",
        "FETCHBAY_LOGGING_LOG_DIR": str(Path(temp_downloads_dir) / "logs"),
        "FETCHBAY_DOWNLOADS_PROGRESS_INTERVAL": "0.01",
        "FETCHBAY_TESTING_FAKE_SWARM": "true",
    }

    for key, value in env_vars.items():
        original_env[key] = os.environ.get(key)
        os.environ[key] = value

    yield

    for key in original_env:
        original_value = original_env[key]
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


@pytest.fixture(scope="module")
def e2e_client(e2e_env: None) -> Generator[TestClient, None, None]:
    """Create a test client running the full application lifespan.

    The HTTP engine is swapped for one backed by ``fake_upstream`` once
    startup has wired the orchestrator.
    """
    from fetchbay.engines.http import HttpRetrievalEngine
    from fetchbay.main import create_app
    from fetchbay.services.orchestrator import get_orchestrator

    app = create_app()

    with TestClient(app) as client:
        get_orchestrator().http_engine = HttpRetrievalEngine(
            transport=httpx.MockTransport(fake_upstream)
        )
        yield client


@pytest.fixture(scope="module")
def auth_headers(e2e_client: TestClient) -> dict:
    """Authentication headers carrying a session token."""
    response = e2e_client.post("/api/auth", json={"password": E2E_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def magnet_link() -> str:
    """Magnet link served by the fake swarm."""
    return MAGNET


@pytest.fixture
def wait_for_job(e2e_client: TestClient) -> Callable[..., dict]:
    """Return a poller for GET /api/status/{id} until the job is terminal."""

    def wait(job_id: str, headers: dict, timeout: float = 10.0) -> dict:
        deadline = time.time() + timeout
        while True:
            response = e2e_client.get(f"/api/status/{job_id}", headers=headers)
            assert response.status_code == 200
            job = response.json()
            if job["status"] in ("done", "error", "cancelled"):
                return job
            if time.time() > deadline:
                raise AssertionError(f"job {job_id} stuck in {job['status']}")
            time.sleep(0.02)

    return wait
