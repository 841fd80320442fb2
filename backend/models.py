"""Data models and types used across the backend.

Database table definitions are in database.py.
Types for the page extractor and AI output live here.
"""

from typing import Literal, TypedDict

HEADING_LEVELS = ("h1", "h2", "h3", "h4", "h5", "h6")


class ImageAltTag(TypedDict):
    src: str
    alt: str


class LoadSpeedIndicator(TypedDict):
    """Coarse resource counts taken straight from the markup."""

    image_count: int
    script_count: int
    css_count: int


class PageSummary(TypedDict):
    """Structured extraction of a single fetched page, or its restricted sentinel."""

    url: str
    title: str
    description: str
    headings: dict[str, list[str]]
    internal_link_count: int
    external_link_count: int
    image_alt_tags: list[ImageAltTag]
    content: str
    load_speed_indicator: LoadSpeedIndicator
    is_simulated: bool


class Metrics(TypedDict):
    quality: int
    authority: int
    technical: int
    structure: int
    velocity: int


class RoadmapStep(TypedDict):
    step: int
    action: str
    impact: Literal["High", "Med", "Low"]
    rationale: str


class AnalysisResult(TypedDict):
    """Structured JSON returned by the AI service."""

    authority_score: int
    executive_summary: str
    metrics: Metrics
    growth_roadmap: list[RoadmapStep]
    niche_verdict: str
    is_simulated: bool
