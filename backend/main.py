"""Authority Audit API: FastAPI app wiring extractor, scorer and storage."""

import os
import sqlite3

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from ai_service import ScoringClient, analyze_page
from cancellation import CancelToken
from database import get_report, init_db, insert_report, list_reports
from exceptions import AIUnavailableError, QuotaExceededError
from logger import get_module_logger
from scraper import extract_page
from schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    PageMetadata,
    ReportHistoryItem,
    ReportResponse,
)

logger = get_module_logger("api")

ANALYZE_DEADLINE_SECONDS = float(os.getenv("ANALYZE_DEADLINE_SECONDS", "60"))

app = FastAPI(
    title="Authority Audit API",
    description="AI niche authority audit for a single page",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup() -> None:
    init_db()
    app.state.scoring_client = ScoringClient()


@app.post("/analyze", response_model=AnalyzeResponse)
def analyze(body: AnalyzeRequest, request: Request) -> AnalyzeResponse:
    """
    Pipeline: extract page -> AI audit -> store -> return analysis.
    """
    if not body.url:
        raise HTTPException(status_code=400, detail="Valid URL is required")

    # One deadline for the whole request, honored by the fetch and every model retry
    cancel = CancelToken(timeout=ANALYZE_DEADLINE_SECONDS)

    # 1. Extract
    summary = extract_page(body.url, cancel=cancel)
    if not summary["title"] and not summary["content"]:
        raise HTTPException(
            status_code=422,
            detail="Failed to extract useful data from the site. It may be blocking our scraper or is empty.",
        )

    # 2. Score
    try:
        analysis = analyze_page(summary, client=request.app.state.scoring_client, cancel=cancel)
    except QuotaExceededError as e:
        raise HTTPException(status_code=429, detail=e.message)
    except AIUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message)

    # 3. Store; the analysis is returned even when this fails
    report_id = None
    try:
        report_id = insert_report(url=body.url, summary=summary, analysis=analysis)
    except sqlite3.Error as e:
        logger.error(f"Database save failed for {body.url}: {e}")

    return AnalyzeResponse(
        success=True,
        data=analysis,
        metadata=PageMetadata(title=summary["title"], description=summary["description"]),
        report_id=report_id,
    )


@app.get("/report/{report_id}", response_model=ReportResponse)
def get_report_result(report_id: int) -> ReportResponse:
    """Return the full stored audit for a report."""
    row = get_report(report_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Report not found")

    return ReportResponse(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        description=row["description"],
        created_at=row["created_at"],
        analysis=row["analysis"],
    )


@app.get("/reports", response_model=list[ReportHistoryItem])
def get_reports(limit: int = 20) -> list[ReportHistoryItem]:
    """Return recent reports for the dashboard."""
    return [ReportHistoryItem(**row) for row in list_reports(limit=limit)]


@app.get("/health")
def health() -> dict:
    """Health check for deployment."""
    return {"status": "ok"}
