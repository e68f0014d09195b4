"""
Agent skill install.

Copies the bundled SKILL.md into <skills_path>/opensoul/ so the agent
can drive the CLI itself.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from ..config import ClientConfig

logger = logging.getLogger("opensoul.client.skill")

SKILL_DIR_NAME = "opensoul"
SKILL_FILENAME = "SKILL.md"
BUNDLED_SKILL = Path(__file__).resolve().parent.parent / SKILL_FILENAME


@dataclass
class InstallResult:
    path: Path
    updated: bool


class SkillInstaller:
    def __init__(self, config: ClientConfig, source: Path = BUNDLED_SKILL):
        self.config = config
        self.source = Path(source)

    @property
    def skill_dir(self) -> Path:
        return Path(self.config.skills_path).expanduser() / SKILL_DIR_NAME

    @property
    def skill_path(self) -> Path:
        return self.skill_dir / SKILL_FILENAME

    def is_installed(self) -> bool:
        return self.skill_path.is_file()

    def install(self) -> InstallResult:
        """Write (or overwrite) the skill file."""
        updated = self.is_installed()
        self.skill_dir.mkdir(parents=True, exist_ok=True)
        self.skill_path.write_text(self.source.read_text(encoding="utf-8"), encoding="utf-8")

        logger.info(f"{'Updated' if updated else 'Installed'} skill at {self.skill_path}")
        return InstallResult(path=self.skill_path, updated=updated)

    def uninstall(self) -> bool:
        if not self.is_installed():
            return False

        shutil.rmtree(self.skill_dir)
        logger.info(f"Removed skill from {self.skill_dir}")
        return True
