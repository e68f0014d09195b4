"""
Swap Engine

The active SOUL.md is in one of two states:

    ORIGINAL  the user's own file (or no file at all)
    SWAPPED   first line is the swap marker

Swapping from ORIGINAL copies the active file byte-for-byte into a single
backup slot. Swapping again from SWAPPED never touches the backup, so the
backup always holds the user's own document. Rollback copies the backup
back and keeps it, so it can be repeated.
"""

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config import ClientConfig

logger = logging.getLogger("opensoul.client.swap")

SWAP_MARKER = "<!-- opensoul:swapped -->"
SOUL_FILENAME = "SOUL.md"
BACKUP_FILENAME = "SOUL.md.original"


class SoulState(str, Enum):
    ORIGINAL = "original"
    SWAPPED = "swapped"


@dataclass
class SwapResult:
    path: Path
    backed_up: bool


@dataclass
class SwapStatus:
    path: Path
    state: SoulState
    exists: bool
    has_backup: bool
    preview: Optional[str] = None


class SwapEngine:
    """Swap, backup and rollback of the active soul document."""

    def __init__(self, config: ClientConfig):
        self.config = config

    @property
    def soul_path(self) -> Path:
        """Configured path; a directory means <dir>/SOUL.md."""
        path = Path(self.config.soul_path).expanduser()
        if path.is_dir():
            return path / SOUL_FILENAME
        return path

    @property
    def backup_path(self) -> Path:
        return Path(self.config.backup_dir).expanduser() / BACKUP_FILENAME

    def is_swapped(self) -> bool:
        path = self.soul_path
        if not path.is_file():
            return False
        return path.read_bytes().startswith(SWAP_MARKER.encode("utf-8"))

    def has_backup(self) -> bool:
        return self.backup_path.is_file()

    def read_current(self) -> Optional[str]:
        path = self.soul_path
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8", errors="replace")

    def swap(self, content: str) -> SwapResult:
        """Write content as the active soul, backing up an original first."""
        path = self.soul_path
        backed_up = False

        if path.is_file() and not self.is_swapped():
            self.backup_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, self.backup_path)
            backed_up = True
            logger.info(f"Backed up {path} to {self.backup_path}")

        path.parent.mkdir(parents=True, exist_ok=True)
        # newline="" keeps the document's own line endings
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(f"{SWAP_MARKER}\n{content}")

        logger.info(f"Swapped soul at {path}")
        return SwapResult(path=path, backed_up=backed_up)

    def rollback(self) -> bool:
        """Restore the backup. False, with nothing touched, if there is none."""
        if not self.has_backup():
            return False

        path = self.soul_path
        path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.backup_path, path)

        logger.info(f"Restored {path} from {self.backup_path}")
        return True

    def status(self) -> SwapStatus:
        path = self.soul_path
        content = self.read_current()
        swapped = content is not None and content.startswith(SWAP_MARKER)

        preview = None
        if swapped:
            body = content.split("\n", 1)[1] if "\n" in content else ""
            stripped = body.strip()
            preview = stripped.split("\n")[0] if stripped else ""

        return SwapStatus(
            path=path,
            state=SoulState.SWAPPED if swapped else SoulState.ORIGINAL,
            exists=content is not None,
            has_backup=self.has_backup(),
            preview=preview,
        )
