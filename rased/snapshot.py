from __future__ import annotations
import copy
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from .utils import load_json, save_json

logger = logging.getLogger(__name__)


class SnapshotKeeper:
    """
    Trend baseline. Captured once, the first time a non-empty summary is
    observed, and only replaced by an explicit reset. Not a rolling window.
    """

    def __init__(self, snapshot: Optional[Dict[str, Any]] = None, captured_at: Optional[str] = None):
        self.snapshot = snapshot
        self.captured_at = captured_at

    def observe(self, summary: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.snapshot is None and summary:
            self._capture(summary)
        return self.snapshot

    def reset(self, summary: Dict[str, Any]) -> Dict[str, Any]:
        self._capture(summary)
        return self.snapshot

    def clear(self) -> None:
        self.snapshot = None
        self.captured_at = None

    def _capture(self, summary: Dict[str, Any]) -> None:
        self.snapshot = copy.deepcopy(summary)
        self.captured_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        logger.info("snapshot captured at %s (%d grades)", self.captured_at, len(summary))

    def to_json(self) -> Dict[str, Any]:
        return {"captured_at": self.captured_at, "snapshot": self.snapshot}

    @classmethod
    def from_json(cls, obj: Optional[Dict[str, Any]]) -> "SnapshotKeeper":
        if not isinstance(obj, dict):
            return cls()
        return cls(snapshot=obj.get("snapshot"), captured_at=obj.get("captured_at"))

    @classmethod
    def load(cls, path: Path) -> "SnapshotKeeper":
        return cls.from_json(load_json(path, None))

    def save(self, path: Path) -> None:
        save_json(path, self.to_json())
