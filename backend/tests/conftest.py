import pytest

import database


def sample_analysis(**overrides) -> dict:
    data = {
        "authority_score": 72,
        "executive_summary": "Solid topical focus with thin supporting content.",
        "metrics": {"quality": 70, "authority": 65, "technical": 80, "structure": 75, "velocity": 40},
        "growth_roadmap": [
            {"step": 1, "action": "Add FAQ schema to pricing", "impact": "High", "rationale": "Rich results"},
            {"step": 2, "action": "Split the guide into a hub", "impact": "Med", "rationale": "Topical depth"},
            {"step": 3, "action": "Compress hero images", "impact": "Low", "rationale": "Faster LCP"},
        ],
        "niche_verdict": "A Challenger closing in on the category leaders.",
        "is_simulated": False,
    }
    data.update(overrides)
    return data


def sample_summary(**overrides) -> dict:
    data = {
        "url": "https://example.com/",
        "title": "Example",
        "description": "An example page",
        "headings": {"h1": ["Welcome"], "h2": [], "h3": [], "h4": [], "h5": [], "h6": []},
        "internal_link_count": 4,
        "external_link_count": 2,
        "image_alt_tags": [{"src": "/hero.png", "alt": "Hero"}],
        "content": "Welcome to the example page.",
        "load_speed_indicator": {"image_count": 1, "script_count": 3, "css_count": 1},
        "is_simulated": False,
    }
    data.update(overrides)
    return data


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    db_path = tmp_path / "audit.db"
    monkeypatch.setattr(database, "DB_PATH", db_path)
    database.init_db()
    return db_path
