import sqlite3

import pytest
from fastapi.testclient import TestClient

import main
from conftest import sample_analysis, sample_summary
from exceptions import AllModelsUnavailableError, QuotaExceededError


@pytest.fixture
def client(temp_db, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    with TestClient(main.app) as test_client:
        yield test_client


def _stub_pipeline(monkeypatch, summary=None, analysis=None, error=None):
    seen = {}

    def fake_extract(url, cancel=None):
        seen["url"] = url
        seen["cancel"] = cancel
        return summary if summary is not None else sample_summary(url=url)

    def fake_analyze(page, client=None, cancel=None):
        seen["analyze_cancel"] = cancel
        seen["client"] = client
        if error is not None:
            raise error
        return analysis if analysis is not None else sample_analysis()

    monkeypatch.setattr(main, "extract_page", fake_extract)
    monkeypatch.setattr(main, "analyze_page", fake_analyze)
    return seen


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_url_is_rejected(client):
    response = client.post("/analyze", json={"url": "  "})

    assert response.status_code == 400


def test_empty_extraction_is_unprocessable(client, monkeypatch):
    _stub_pipeline(monkeypatch, summary=sample_summary(title="", content=""))

    response = client.post("/analyze", json={"url": "https://example.com/"})

    assert response.status_code == 422


def test_analyze_returns_analysis_and_stores_report(client, monkeypatch):
    seen = _stub_pipeline(monkeypatch)

    response = client.post("/analyze", json={"url": "https://example.com/"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == sample_analysis()
    assert body["metadata"] == {"title": "Example", "description": "An example page"}
    assert body["report_id"] is not None
    assert seen["cancel"] is seen["analyze_cancel"]
    assert seen["client"] is main.app.state.scoring_client

    report = client.get(f"/report/{body['report_id']}").json()
    assert report["analysis"] == sample_analysis()
    assert report["url"] == "https://example.com/"

    history = client.get("/reports").json()
    assert [item["id"] for item in history] == [body["report_id"]]
    assert history[0]["authority_score"] == 72


def test_quota_failure_maps_to_429(client, monkeypatch):
    _stub_pipeline(monkeypatch, error=QuotaExceededError())

    response = client.post("/analyze", json={"url": "https://example.com/"})

    assert response.status_code == 429
    assert "Quota" in response.json()["detail"]


def test_unavailable_failure_maps_to_503(client, monkeypatch):
    _stub_pipeline(monkeypatch, error=AllModelsUnavailableError())

    response = client.post("/analyze", json={"url": "https://example.com/"})

    assert response.status_code == 503
    assert "congested" in response.json()["detail"]


def test_unexpected_analysis_shape_is_passed_through(client, monkeypatch):
    odd = sample_analysis(authority_score="85/100", confidence="low")
    odd["growth_roadmap"] = [{"step": 1, "action": "Fix canonical tags", "impact": "High"}]
    del odd["metrics"]
    _stub_pipeline(monkeypatch, analysis=odd)

    response = client.post("/analyze", json={"url": "https://example.com/"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"] == odd
    assert "metrics" not in body["data"]

    report = client.get(f"/report/{body['report_id']}").json()
    assert report["analysis"] == odd


def test_storage_failure_still_returns_analysis(client, monkeypatch):
    _stub_pipeline(monkeypatch)

    def broken_insert(**_kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(main, "insert_report", broken_insert)

    response = client.post("/analyze", json={"url": "https://example.com/"})

    assert response.status_code == 200
    assert response.json()["report_id"] is None
    assert response.json()["data"]["authority_score"] == 72


def test_unknown_report_is_404(client):
    assert client.get("/report/12345").status_code == 404
