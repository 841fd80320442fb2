"""Pydantic schemas for API request/response."""

from typing import Any, Optional

from pydantic import BaseModel, field_validator


class AnalyzeRequest(BaseModel):
    """Request body for POST /analyze."""

    url: str = ""

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, value: object) -> str:
        return str(value or "").strip()


class PageMetadata(BaseModel):
    title: str = ""
    description: str = ""


class AnalyzeResponse(BaseModel):
    """Response for POST /analyze."""

    success: bool
    data: dict[str, Any]
    metadata: PageMetadata
    report_id: Optional[int] = None


class ReportResponse(BaseModel):
    """Full stored audit returned by GET /report/{id}."""

    id: int
    url: str
    title: str
    description: str
    created_at: str
    analysis: dict[str, Any]


class ReportHistoryItem(BaseModel):
    """Summary row for the dashboard list."""

    id: int
    url: str
    title: str
    authority_score: int
    verdict: str
    created_at: str
