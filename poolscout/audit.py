"""Action records and the bounded in-memory action log."""
from __future__ import annotations

import dataclasses
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Union

from .models import to_jsonable, utcnow

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    POOL_DETECTED = "pool_detected"
    POOL_EVALUATED = "pool_evaluated"
    POSITION_ENTERED = "position_entered"
    POSITION_MONITORED = "position_monitored"
    POSITION_EXITED = "position_exited"
    CYCLE_FAILED = "cycle_failed"


@dataclass(frozen=True)
class DetectionDetails:
    symbols: str
    apy: float
    tvl: float
    volume_24h: float


@dataclass(frozen=True)
class EvaluationDetails:
    apy: float
    tvl: float
    volume_24h: float
    age_hours: float


@dataclass(frozen=True)
class EntryDetails:
    position_id: str
    amount: float
    entry_price: float
    entry_yield: float
    symbols: str


@dataclass(frozen=True)
class MonitorDetails:
    position_id: str
    current_value: float
    pnl: float
    pnl_percentage: float
    current_yield: float


@dataclass(frozen=True)
class ExitDetails:
    position_id: str
    exit_reason: str
    pnl: float
    pnl_percentage: float
    hours_held: float
    final_value: float


@dataclass(frozen=True)
class FailureDetails:
    stage: str
    error: str


ActionDetails = Union[
    DetectionDetails,
    EvaluationDetails,
    EntryDetails,
    MonitorDetails,
    ExitDetails,
    FailureDetails,
]

_DETAILS_BY_TYPE: dict[ActionType, type] = {
    ActionType.POOL_DETECTED: DetectionDetails,
    ActionType.POOL_EVALUATED: EvaluationDetails,
    ActionType.POSITION_ENTERED: EntryDetails,
    ActionType.POSITION_MONITORED: MonitorDetails,
    ActionType.POSITION_EXITED: ExitDetails,
    ActionType.CYCLE_FAILED: FailureDetails,
}


@dataclass(frozen=True)
class ActionRecord:
    """One audit-log entry. ``details`` must match ``action_type``."""

    action_type: ActionType
    pool_id: str
    details: ActionDetails
    success: bool = True
    error: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        expected = _DETAILS_BY_TYPE[self.action_type]
        if not isinstance(self.details, expected):
            raise TypeError(
                f"{self.action_type.value} requires {expected.__name__}, "
                f"got {type(self.details).__name__}"
            )

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(dataclasses.asdict(self))


class ActionLog:
    """Ring buffer of recent actions plus cumulative per-type counters.

    Implements the ``AuditSink`` protocol.
    """

    def __init__(self, max_actions: int = 1000) -> None:
        self._actions: deque[ActionRecord] = deque(maxlen=max_actions)
        self._counts: Counter[ActionType] = Counter()

    @property
    def max_actions(self) -> int:
        return self._actions.maxlen or 0

    def record(self, action: ActionRecord) -> None:
        self._actions.append(action)
        self._counts[action.action_type] += 1
        if not action.success:
            logger.warning(
                "Action %s failed for %s: %s",
                action.action_type.value,
                action.pool_id,
                action.error,
            )

    def count(self, action_type: ActionType) -> int:
        """Total recorded for ``action_type``, including entries already dropped."""
        return self._counts[action_type]

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def recent(self, limit: int | None = None) -> list[ActionRecord]:
        items = list(self._actions)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def to_list(self) -> list[dict[str, Any]]:
        return [a.to_dict() for a in self._actions]

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[ActionRecord]:
        return iter(list(self._actions))
