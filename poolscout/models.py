"""Data models.

Pool data, evaluations and summaries are frozen (immutable). ``Position`` is
the one mutable model: the ledger re-prices it in place while it is active.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Decision(str, Enum):
    ENTER = "ENTER"
    SKIP = "SKIP"


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class PositionStatus(str, Enum):
    ACTIVE = "active"
    EXITED = "exited"


class ExitTrigger(str, Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    YIELD_COLLAPSE = "yield_collapse"
    MAX_HOLDING_TIME = "max_holding_time"
    YIELD_DECLINE = "yield_decline"
    LIQUIDITY_RISK = "liquidity_risk"
    HOLD = "hold"


@dataclass(frozen=True)
class TokenInfo:
    """One side of a liquidity pair."""

    mint: str
    symbol: str
    decimals: int = 9
    amount: float = 0.0


@dataclass(frozen=True)
class PoolSnapshot:
    """Point-in-time pool metrics used to re-price open positions."""

    pool_id: str
    apy: float
    tvl: float
    volume_24h: float
    price: float
    fees_24h: float = 0.0
    price_change_24h: float = 0.0
    apy_change_24h: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PoolRecord:
    """Normalized snapshot of a liquidity pool's economics."""

    pool_id: str
    base_token: TokenInfo
    quote_token: TokenInfo
    tvl: float
    volume_24h: float
    fees_24h: float
    apy: float
    created_at: datetime
    lp_token_supply: float = 0.0
    price: float = 0.0

    @property
    def symbols(self) -> str:
        return f"{self.base_token.symbol}/{self.quote_token.symbol}"

    @property
    def pair_key(self) -> tuple[str, str]:
        return (self.base_token.mint, self.quote_token.mint)

    def age_hours(self, now: datetime | None = None) -> float:
        now = now or utcnow()
        return (now - self.created_at).total_seconds() / 3600

    def snapshot(self, timestamp: datetime | None = None) -> PoolSnapshot:
        return PoolSnapshot(
            pool_id=self.pool_id,
            apy=self.apy,
            tvl=self.tvl,
            volume_24h=self.volume_24h,
            price=self.price,
            fees_24h=self.fees_24h,
            timestamp=timestamp or utcnow(),
        )


@dataclass(frozen=True)
class EntryEvaluation:
    """Scorer output for one pool."""

    pool_id: str
    decision: Decision
    score: int
    reasons: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    risk_score: int = 0
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def should_enter(self) -> bool:
        return self.decision is Decision.ENTER


@dataclass(frozen=True)
class ExitDecision:
    should_exit: bool
    reason: str
    urgency: Urgency
    trigger: ExitTrigger = ExitTrigger.HOLD


@dataclass
class Position:
    """A simulated capital allocation into one pool."""

    id: str
    pool_id: str
    entry_time: datetime
    entry_price: float
    entry_yield: float
    amount: float
    current_value: float
    current_yield: float
    label: str = ""
    pnl: float = 0.0
    pnl_percentage: float = 0.0
    status: PositionStatus = PositionStatus.ACTIVE
    exit_time: datetime | None = None
    exit_price: float | None = None
    exit_reason: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status is PositionStatus.ACTIVE

    def hours_held(self, now: datetime | None = None) -> float:
        end = now or self.exit_time or utcnow()
        return (end - self.entry_time).total_seconds() / 3600

    def copy(self) -> Position:
        return dataclasses.replace(self)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(dataclasses.asdict(self))


@dataclass(frozen=True)
class PortfolioSummary:
    total_value: float
    available_cash: float
    total_invested: float
    total_pnl: float
    total_pnl_percentage: float
    max_positions: int
    starting_cash: float
    active_positions: tuple[Position, ...] = ()
    closed_positions: tuple[Position, ...] = ()

    @property
    def unrealized_pnl(self) -> float:
        return sum(p.pnl for p in self.active_positions)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(dataclasses.asdict(self))


@dataclass(frozen=True)
class PerformanceStats:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    sharpe_ratio: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(dataclasses.asdict(self))


@dataclass(frozen=True)
class BotStats:
    pools_evaluated: int = 0
    positions_entered: int = 0
    positions_exited: int = 0
    current_positions: int = 0
    total_actions: int = 0


def to_jsonable(value: Any) -> Any:
    """Convert datetimes, enums and infinities into JSON-friendly values."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float) and value in (float("inf"), float("-inf")):
        return "Infinity" if value > 0 else "-Infinity"
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value
