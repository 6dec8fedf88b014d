"""JSON state snapshots: portfolio, action log and performance history."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .models import PortfolioSummary, to_jsonable

logger = logging.getLogger(__name__)

PORTFOLIO_FILE = "portfolio_state.json"
ACTIONS_FILE = "bot_actions.json"
PERFORMANCE_FILE = "performance_log.jsonl"


class StateStore:
    """Write process state under ``data_dir``."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)

    def save_state(
        self, summary: PortfolioSummary, actions: list[dict[str, Any]]
    ) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._write_json(self.data_dir / PORTFOLIO_FILE, summary.to_dict())
        self._write_json(self.data_dir / ACTIONS_FILE, actions)
        logger.info("State saved to %s", self.data_dir)

    def append_performance(self, record: dict[str, Any]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.data_dir / PERFORMANCE_FILE
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(to_jsonable(record), separators=(",", ":")) + "\n")

    def load_portfolio_state(self) -> dict[str, Any] | None:
        path = self.data_dir / PORTFOLIO_FILE
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_json(path: Path, payload: Any) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(path)
