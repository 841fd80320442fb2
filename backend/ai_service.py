"""
Claude API key must be defined in a .env file in the backend root:

ANTHROPIC_API_KEY=your_real_key_here

The app loads environment variables automatically using python-dotenv.
"""

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
import re
import time
from typing import Callable, Optional

from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

import anthropic
from anthropic import Anthropic

from cancellation import CancelToken
from exceptions import (
    AllModelsUnavailableError,
    MalformedResponseError,
    ModelInvocationError,
    QuotaExceededError,
)
from logger import get_module_logger
from models import AnalysisResult, PageSummary
from scraper import RESTRICTED_CONTENT

logger = get_module_logger("ai_service")


def _dedupe_models(values: list[str]) -> list[str]:
    out: list[str] = []
    for value in values:
        model = value.strip()
        if model and model not in out:
            out.append(model)
    return out


# Most capable first; later entries are availability fallbacks only.
MODEL_CANDIDATES = _dedupe_models(
    [
        os.getenv("CLAUDE_MODEL", ""),
        "claude-sonnet-4-20250514",
        "claude-3-5-sonnet-latest",
        "claude-3-5-haiku-latest",
    ]
)
TEMPERATURE = float(os.getenv("CLAUDE_TEMPERATURE", "0.2"))
MAX_TOKENS = int(os.getenv("CLAUDE_MAX_TOKENS", "2048"))
MAX_ATTEMPTS = int(os.getenv("CLAUDE_MAX_ATTEMPTS", "2"))
RETRY_BASE_SECONDS = float(os.getenv("CLAUDE_RETRY_BASE_SECONDS", "10"))
REQUEST_TIMEOUT_SECONDS = float(os.getenv("CLAUDE_TIMEOUT_SECONDS", "60"))

RETRYABLE_STATUS_CODES = {429, 500, 503}
RETRYABLE_MESSAGE_TOKENS = (
    "quota",
    "fetch failed",
    "timeout",
    "timed out",
    "connect_timeout",
    "service unavailable",
)

SYSTEM_MESSAGE = """You are a Senior SEO Strategist and Niche Authority Expert with 15 years of experience in digital growth.
Return ONLY valid raw JSON that matches the schema exactly.
Do not include markdown, code fences, or text outside JSON."""

RESTRICTED_INSTRUCTIONS = """
Critical Instruction (Restricted Access):
The Content Preview is "Access restricted", which means the domain blocked direct crawling.
Perform a Competitive Intelligence Audit based on the URL and your own knowledge of the brand instead:
- Analyze the brand strength of the domain.
- Estimate current authority based on known niche positioning.
- Provide a roadmap based on typical growth patterns for this specific industry.
- Set "is_simulated" to true.
"""

USER_TEMPLATE = """Analyze the scraped website data below and deliver a boardroom-ready SEO audit.

Tone & Style:
- Professional, clinical, and data-driven.
- Avoid fluff or generic advice like "create quality content".
- Be specific, aggressive about growth, and highly analytical.
{restricted_instructions}
Analysis Criteria:
1. Niche Authority Score (0-100): how well the site owns its topic, judged from keyword focus in headings and content depth.
2. Semantic Gaps: what the site is not talking about that a market leader should be.
3. Technical Friction: exactly where the metadata or link structure is failing the user journey.

Input Data:
URL: {url}
Title: {title}
Description: {description}
Headings: {headings}
Internal Links: {internal_links}
External Links: {external_links}
Image Alt Tags Count: {image_count}
Load Speed Indicators: {load_speed}
Content Preview: {content}

Return ONLY this JSON structure:

{{
  "authority_score": number,
  "executive_summary": "One powerful paragraph on current standing",
  "metrics": {{
    "quality": number (0-100),
    "authority": number (0-100),
    "technical": number (0-100),
    "structure": number (0-100),
    "velocity": number (0-100)
  }},
  "growth_roadmap": [
    {{ "step": 1, "action": "Specific technical fix", "impact": "High | Med | Low", "rationale": "Why this matters" }}
  ],
  "niche_verdict": "One sentence: is this site a Leader, Challenger, or Laggard?",
  "is_simulated": boolean
}}

The growth_roadmap must contain exactly 3 steps.
No additional text."""


def build_prompt(summary: PageSummary) -> str:
    restricted = summary.get("content") == RESTRICTED_CONTENT
    return USER_TEMPLATE.format(
        restricted_instructions=RESTRICTED_INSTRUCTIONS if restricted else "",
        url=summary.get("url", ""),
        title=summary.get("title", ""),
        description=summary.get("description", ""),
        headings=json.dumps(summary.get("headings", {})),
        internal_links=summary.get("internal_link_count", 0),
        external_links=summary.get("external_link_count", 0),
        image_count=len(summary.get("image_alt_tags", [])),
        load_speed=json.dumps(summary.get("load_speed_indicator", {})),
        content=summary.get("content", ""),
    )


# --- Response sanitization ---

_OPENING_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```\s*$")
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _span_end(text: str, start: int) -> int:
    """Index just past the brace span opened at ``text[start]``, or len(text) if it never closes."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return len(text)


def _first_json_object(text: str) -> dict | None:
    # Only top-level spans are tried; a nested object is never returned on its own
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict):
            return obj
        start = text.find("{", _span_end(text, start))
    return None


def parse_analysis_json(text: str) -> dict:
    """Recover the first balanced top-level JSON object from a model reply.

    Code fences are removed first. Text around the object, including stray
    braces, is ignored. Raises MalformedResponseError when nothing parses.
    """
    cleaned = _strip_code_fence(text or "")
    parsed = _first_json_object(cleaned)
    if parsed is None:
        normalized = cleaned.translate(_SMART_QUOTES)
        if normalized != cleaned:
            parsed = _first_json_object(normalized)
    if parsed is None:
        raise MalformedResponseError("AI response did not contain a valid JSON object", raw_text=text or "")
    return parsed


# --- Error classification ---

def _status_code(exc: BaseException) -> Optional[int]:
    for value in (
        getattr(exc, "status_code", None),
        getattr(getattr(exc, "response", None), "status_code", None),
        getattr(exc, "status", None),
    ):
        if isinstance(value, int):
            return value
    return None


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, MalformedResponseError):
        return False
    if isinstance(exc, ModelInvocationError) and exc.retryable:
        return True
    if isinstance(exc, (anthropic.APITimeoutError, anthropic.APIConnectionError)):
        return True
    if _status_code(exc) in RETRYABLE_STATUS_CODES:
        return True
    message = str(exc).lower()
    return any(token in message for token in RETRYABLE_MESSAGE_TOKENS)


def is_quota_error(exc: BaseException | None) -> bool:
    if exc is None:
        return False
    return _status_code(exc) == 429 or "quota" in str(exc).lower()


# --- Candidate loop ---

@dataclass
class RetryPolicy:
    max_attempts: int = MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_SECONDS
    multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = is_retryable_error


@dataclass
class AttemptRecord:
    model: str
    attempt: int
    status: str
    error: Optional[str] = None


@dataclass
class ScoreSuccess:
    result: dict
    model: str
    attempts: list[AttemptRecord] = field(default_factory=list)


@dataclass
class ScoreExhausted:
    last_error: Optional[BaseException]
    attempts: list[AttemptRecord] = field(default_factory=list)
    cancelled: bool = False

    @property
    def quota_exceeded(self) -> bool:
        return is_quota_error(self.last_error)


ScoreOutcome = ScoreSuccess | ScoreExhausted


def _plain_sleep(seconds: float) -> bool:
    time.sleep(seconds)
    return True


def run_candidates(
    candidates: list[str],
    invoke: Callable[[str], str],
    policy: RetryPolicy | None = None,
    cancel: CancelToken | None = None,
    sleep: Callable[[float], bool] | None = None,
    parse: Callable[[str], dict] = parse_analysis_json,
) -> ScoreOutcome:
    """Try each candidate model in order until one yields a parsed analysis.

    ``invoke(model)`` returns the raw reply text. ``sleep(seconds)`` returns
    False when the wait was interrupted by cancellation. Provider errors are
    never raised; they end up in the returned ScoreExhausted.
    """
    policy = policy or RetryPolicy()
    if sleep is None:
        sleep = cancel.sleep if cancel is not None else _plain_sleep
    max_attempts = max(1, int(policy.max_attempts))
    attempts: list[AttemptRecord] = []
    last_error: Optional[BaseException] = None

    for model in candidates:
        delay = policy.base_delay
        logger.info(f"Starting analysis with model: {model}")

        for attempt in range(1, max_attempts + 1):
            if cancel is not None and cancel.cancelled:
                attempts.append(AttemptRecord(model, attempt, "cancelled"))
                logger.warning(f"Analysis cancelled before model={model} attempt={attempt}")
                return ScoreExhausted(last_error, attempts, cancelled=True)

            try:
                text = invoke(model)
                logger.debug(f"Raw AI response ({model}): {text}")
                result = parse(text)
            except MalformedResponseError as e:
                last_error = e
                attempts.append(AttemptRecord(model, attempt, "fatal_error", e.message))
                logger.warning(f"Model {model} returned unparseable output, skipping to next model")
                break
            except Exception as e:
                last_error = e
                retryable = policy.is_retryable(e)
                attempts.append(
                    AttemptRecord(model, attempt, "retryable_error" if retryable else "fatal_error", str(e)[:500])
                )
                if retryable:
                    # Backs off after the last attempt too, before the next candidate
                    logger.warning(f"Model {model} attempt {attempt} failed ({e}). Waiting {delay:.1f}s")
                    if not sleep(delay):
                        logger.warning(f"Backoff for model={model} interrupted by cancellation")
                        return ScoreExhausted(last_error, attempts, cancelled=True)
                    delay *= policy.multiplier
                    continue
                break
            else:
                attempts.append(AttemptRecord(model, attempt, "success"))
                return ScoreSuccess(result, model, attempts)

        logger.warning(f"Model {model} exhausted. Trying fallback if available.")

    return ScoreExhausted(last_error, attempts)


# --- Client ---

def _extract_response_text(response: object) -> str:
    content = ""
    for block in getattr(response, "content", []) or []:
        text = getattr(block, "text", None)
        if text:
            content += text
    return content.strip()


class ScoringClient:
    """Claude messages client, constructed once per process and injected.

    A missing API key is logged; calls then fail and surface through the
    candidate loop as non-retryable errors.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_tokens: int = MAX_TOKENS,
        temperature: float = TEMPERATURE,
        client: Optional[Anthropic] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            logger.error("ANTHROPIC_API_KEY not found in environment.")
        self.max_tokens = max_tokens
        self.temperature = temperature
        # The candidate loop owns retries, so the SDK's own retry layer is off
        self._client = client if client is not None else Anthropic(api_key=self.api_key or None, max_retries=0)

    def generate(self, model: str, prompt: str, timeout: Optional[float] = None) -> str:
        kwargs = {
            "model": model,
            "max_tokens": self.max_tokens,
            "system": SYSTEM_MESSAGE,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
        }
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = self._client.messages.create(**kwargs)
        if getattr(response, "stop_reason", None) == "max_tokens":
            logger.warning(f"Output hit max_tokens for model={model}")
        return _extract_response_text(response)


def _call_timeout(cancel: CancelToken | None) -> float:
    if cancel is None:
        return REQUEST_TIMEOUT_SECONDS
    remaining = cancel.remaining()
    if remaining is None:
        return REQUEST_TIMEOUT_SECONDS
    return max(1.0, min(REQUEST_TIMEOUT_SECONDS, remaining))


def analyze_page(
    summary: PageSummary,
    client: ScoringClient | None = None,
    cancel: CancelToken | None = None,
    policy: RetryPolicy | None = None,
    candidates: list[str] | None = None,
) -> AnalysisResult:
    """
    Score a PageSummary with the first candidate model that answers.
    Raises QuotaExceededError or AllModelsUnavailableError once all candidates are exhausted.
    """
    client = client or ScoringClient()
    prompt = build_prompt(summary)

    outcome = run_candidates(
        candidates if candidates is not None else MODEL_CANDIDATES,
        lambda model: client.generate(model, prompt, timeout=_call_timeout(cancel)),
        policy=policy,
        cancel=cancel,
    )

    if isinstance(outcome, ScoreExhausted):
        logger.error(f"AI analysis failed after cycling through all models: {outcome.last_error}")
        if outcome.quota_exceeded:
            raise QuotaExceededError(attempts=outcome.attempts, last_error=outcome.last_error)
        raise AllModelsUnavailableError(attempts=outcome.attempts, last_error=outcome.last_error)

    result = outcome.result
    # Simulation is a property of the input, not something the model decides
    result["is_simulated"] = bool(summary.get("is_simulated", False))
    logger.info(f"Analysis complete with model={outcome.model} after {len(outcome.attempts)} attempt(s)")
    return result
