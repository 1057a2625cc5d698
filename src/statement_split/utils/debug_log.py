"""Append-only per-stage debug log for statement parsing."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
import json
import logging

logger = logging.getLogger(__name__)


class StageLog:
    """
    Writes one JSON line per call to ``extraction-debug-<stage>.log``.

    Diagnostic only: a failing write is logged and never interrupts parsing.
    """

    def __init__(self, directory: Optional[Path] = None, enabled: bool = False):
        self.directory = Path(directory) if directory else Path("data")
        self.enabled = enabled

    def path_for(self, stage: str) -> Path:
        return self.directory / f"extraction-debug-{stage}.log"

    def write(self, stage: str, payload: dict[str, Any]) -> None:
        if not self.enabled:
            return

        line = f"[{datetime.now(timezone.utc).isoformat()}] {json.dumps(payload, default=str)}\n"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(stage), "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.warning(f"Could not write debug log for stage '{stage}': {e}")
