"""SQLite database setup and audit report storage.

Table: reports
- id (integer, primary key)
- url (text)
- title, description (text, from the page summary)
- authority_score (integer), verdict, executive_summary (text)
- full_analysis (text, serialized AnalysisResult)
- created_at (datetime)
"""

import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

from models import AnalysisResult, PageSummary

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

DB_PATH = Path(os.getenv("AUDIT_DB_PATH", "") or Path(__file__).parent / "authority_audit.db")


def get_connection() -> sqlite3.Connection:
    """Return a connection to the SQLite database."""
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create the reports table if it does not exist."""
    conn = get_connection()
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                authority_score INTEGER NOT NULL DEFAULT 0,
                verdict TEXT NOT NULL DEFAULT '',
                executive_summary TEXT NOT NULL DEFAULT '',
                full_analysis TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()


def _score(value: object) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def insert_report(url: str, summary: PageSummary, analysis: AnalysisResult) -> int:
    """Store a new report and return its id."""
    conn = get_connection()
    try:
        cursor = conn.execute(
            """
            INSERT INTO reports (
                url, title, description, authority_score, verdict,
                executive_summary, full_analysis, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                url,
                summary.get("title", "") or "",
                summary.get("description", "") or "",
                _score(analysis.get("authority_score")),
                str(analysis.get("niche_verdict") or ""),
                str(analysis.get("executive_summary") or ""),
                json.dumps(analysis),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def get_report(report_id: int) -> dict | None:
    """Fetch a report by id with its analysis deserialized, or None."""
    conn = get_connection()
    try:
        row = conn.execute(
            """
            SELECT id, url, title, description, authority_score, verdict,
                   executive_summary, full_analysis, created_at
            FROM reports WHERE id = ?
            """,
            (report_id,),
        ).fetchone()
        if row is None:
            return None
        return {
            "id": row["id"],
            "url": row["url"],
            "title": row["title"],
            "description": row["description"],
            "authority_score": row["authority_score"],
            "verdict": row["verdict"],
            "executive_summary": row["executive_summary"],
            "analysis": json.loads(row["full_analysis"]),
            "created_at": row["created_at"],
        }
    finally:
        conn.close()


def list_reports(limit: int = 20) -> list[dict]:
    """Return recent reports for the dashboard, newest first."""
    safe_limit = max(1, min(100, int(limit)))
    conn = get_connection()
    try:
        rows = conn.execute(
            """
            SELECT id, url, title, authority_score, verdict, created_at
            FROM reports
            ORDER BY id DESC
            LIMIT ?
            """,
            (safe_limit,),
        ).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()
