"""E2E tests for Prometheus metrics collection.

Tests that metrics are properly recorded for:
- HTTP requests
- Job admissions
- Admission rejections
"""

import re

import pytest
from fastapi.testclient import TestClient


def get_counter_sum(
    content: str, metric_name: str, label_filter: dict[str, str] | None = None
) -> float:
    """Sum all counter values for a metric, optionally filtering by labels.

    Args:
        content: The raw Prometheus metrics text
        metric_name: The name of the metric to find
        label_filter: Optional dict of label key-value pairs that must be present

    Returns:
        Sum of all matching counter values
    """
    total = 0.0
    # Pattern to match metric lines with labels and values
    pattern = rf"^{re.escape(metric_name)}\{{([^}}]*)\}}\s+([\d.]+(?:e[+-]?\d+)?)"

    for line in content.split("\n"):
        match = re.match(pattern, line)
        if match:
            labels_str = match.group(1)
            value = float(match.group(2))

            # If filter specified, parse labels and check matches
            if label_filter:
                labels = dict(re.findall(r'(\w+)="([^"]*)"', labels_str))
                if all(labels.get(k) == v for k, v in label_filter.items()):
                    total += value
            else:
                total += value

    return total


@pytest.mark.e2e
class TestMetricsEndpoint:
    """E2E tests for /metrics endpoint."""

    def test_metrics_endpoint_accessible(self, e2e_client: TestClient) -> None:
        """Test /metrics endpoint returns Prometheus format."""
        response = e2e_client.get("/metrics")

        assert response.status_code == 200
        assert response.headers.get("content-type", "").startswith("text/plain")
        assert "# TYPE http_requests_total counter" in response.text

    def test_metrics_need_no_session(self, e2e_client: TestClient) -> None:
        """Test that scraping works without a bearer token."""
        assert e2e_client.get("/metrics").status_code == 200


@pytest.mark.e2e
class TestMetricsRecording:
    """E2E tests for metrics being recorded correctly."""

    def test_request_increments_counter(self, e2e_client: TestClient, auth_headers: dict) -> None:
        """Test that requests are counted under the route template."""
        labels = {"method": "GET", "endpoint": "/api/status/{job_id}"}
        initial = get_counter_sum(e2e_client.get("/metrics").text, "http_requests_total", labels)

        e2e_client.get("/api/status/some-job", headers=auth_headers)

        updated = get_counter_sum(e2e_client.get("/metrics").text, "http_requests_total", labels)
        assert updated >= initial + 1, (
            f"http_requests_total for GET /api/status/{{job_id}} should have incremented. "
            f"Initial: {initial}, Updated: {updated}"
        )

    def test_admissions_are_counted(self, e2e_client: TestClient, auth_headers: dict) -> None:
        """Test that an upload increments jobs_admitted_total."""
        initial = get_counter_sum(
            e2e_client.get("/metrics").text, "jobs_admitted_total", {"kind": "upload"}
        )

        e2e_client.post(
            "/api/upload",
            files={"file": ("counted.txt", b"x", "text/plain")},
            data={"folderKey": "files"},
            headers=auth_headers,
        )

        updated = get_counter_sum(
            e2e_client.get("/metrics").text, "jobs_admitted_total", {"kind": "upload"}
        )
        assert updated == initial + 1

    def test_rejections_are_counted(self, e2e_client: TestClient, auth_headers: dict) -> None:
        """Test that a refused admission increments admissions_rejected_total."""
        labels = {"error_code": "DISALLOWED_SCHEME"}
        initial = get_counter_sum(
            e2e_client.get("/metrics").text, "admissions_rejected_total", labels
        )

        response = e2e_client.post(
            "/api/download",
            json={"url": "ftp://example.com/a.txt", "folderKey": "files"},
            headers=auth_headers,
        )
        assert response.status_code == 400

        updated = get_counter_sum(
            e2e_client.get("/metrics").text, "admissions_rejected_total", labels
        )
        assert updated == initial + 1
