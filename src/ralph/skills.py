from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path

from ralph.agents import AMP, Agent
from ralph.errors import SkillInstallError

# Skill folder name -> bundled template under ralph/prompts.
SKILL_TEMPLATES: dict[str, str] = {
    "ralph": "ralph_skill.md",
    "prd": "prd_skill.md",
}
SKILL_FILE_NAME = "SKILL.md"


@dataclass(frozen=True, slots=True)
class SkillInstall:
    skill: str
    path: Path
    written: bool


def _config_home() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def global_skills_dir(agent: Agent) -> Path:
    """Directory the agent scans for user-wide skills."""
    if agent == AMP:
        return _config_home() / "amp" / "skills"
    return Path.home() / f".{agent.command}" / "skills"


def skill_content(skill: str) -> str:
    template = SKILL_TEMPLATES[skill]
    return resources.files("ralph.prompts").joinpath(template).read_text(encoding="utf-8")


def install_skills(
    agent: Agent, *, force: bool = False, skills_dir: Path | None = None
) -> list[SkillInstall]:
    """Write every bundled skill under `<skills_dir>/<skill>/SKILL.md`.

    Existing files are left alone unless `force` is set; the returned entries
    record which files were written.
    """
    root = skills_dir or global_skills_dir(agent)
    installs: list[SkillInstall] = []
    for skill in SKILL_TEMPLATES:
        target = root / skill / SKILL_FILE_NAME
        if target.exists() and not force:
            installs.append(SkillInstall(skill=skill, path=target, written=False))
            continue
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(skill_content(skill), encoding="utf-8")
        except OSError as exc:
            raise SkillInstallError(
                f"Failed to install {skill} skill to {target}: {exc.strerror or exc}"
            ) from exc
        installs.append(SkillInstall(skill=skill, path=target, written=True))
    return installs
