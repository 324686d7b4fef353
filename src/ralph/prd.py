from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ralph.errors import TaskListError


@dataclass(slots=True)
class UserStory:
    id: str
    title: str
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    priority: int = 0
    passes: bool = False
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> UserStory:
        if not isinstance(data, dict):
            raise ValueError(f"user story must be an object, got {type(data).__name__}")
        criteria = data.get("acceptanceCriteria", [])
        if not isinstance(criteria, list):
            raise ValueError("acceptanceCriteria must be a list")
        passes = data.get("passes", False)
        if not isinstance(passes, bool):
            raise ValueError(f"story {data.get('id')!r}: passes must be true or false")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            acceptance_criteria=[str(item) for item in criteria],
            priority=int(data.get("priority", 0)),
            passes=passes,
            notes=str(data.get("notes", "")),
        )

    def display(self) -> str:
        return f"{self.id} - {self.title}"


@dataclass(slots=True)
class Prd:
    """Task list read by the run engine: branch identifier plus story counts."""

    project: str
    branch_name: str
    description: str = ""
    user_stories: list[UserStory] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Prd:
        if not isinstance(data, dict):
            raise ValueError("top-level value must be an object")
        branch_name = data.get("branchName")
        if not isinstance(branch_name, str):
            raise ValueError("missing string field 'branchName'")
        stories = data.get("userStories")
        if not isinstance(stories, list):
            raise ValueError("missing list field 'userStories'")
        return cls(
            project=str(data.get("project", "")),
            branch_name=branch_name,
            description=str(data.get("description", "")),
            user_stories=[UserStory.from_dict(item) for item in stories],
        )

    @classmethod
    def from_file(cls, path: Path) -> Prd:
        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise TaskListError(
                f"Failed to load PRD from {path}: not valid UTF-8 ({exc.reason})", path=str(path)
            ) from exc
        except OSError as exc:
            raise TaskListError(
                f"Failed to load PRD from {path}: {exc.strerror or exc}", path=str(path)
            ) from exc
        try:
            return cls.from_dict(json.loads(raw))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise TaskListError(f"Failed to load PRD from {path}: {exc}", path=str(path)) from exc

    @property
    def total_stories(self) -> int:
        return len(self.user_stories)

    @property
    def completed_stories(self) -> int:
        return sum(1 for story in self.user_stories if story.passes)

    @property
    def pending_stories(self) -> int:
        return self.total_stories - self.completed_stories

    def highest_priority_pending(self) -> UserStory | None:
        pending = [story for story in self.user_stories if not story.passes]
        if not pending:
            return None
        return min(pending, key=lambda story: story.priority)
