import json
from pathlib import Path
from typing import Any

import pytest


def write_prd(path: Path, *, branch: str = "ralph/test", passes: list[bool] | None = None) -> Path:
    stories: list[dict[str, Any]] = []
    for index, passed in enumerate(passes if passes is not None else [True, False], start=1):
        stories.append(
            {
                "id": f"US-{index:03d}",
                "title": f"Story {index}",
                "description": "As a user...",
                "acceptanceCriteria": [f"Criteria {index}"],
                "priority": index,
                "passes": passed,
                "notes": "",
            }
        )
    payload = {
        "project": "Test Project",
        "branchName": branch,
        "description": "Test description",
        "userStories": stories,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def run_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "ralph"
    directory.mkdir()
    return directory
