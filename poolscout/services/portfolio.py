"""Virtual portfolio: capital, open positions and closed-trade history."""
from __future__ import annotations

import logging
import math
import threading
import uuid
from datetime import datetime
from typing import Callable

from ..audit import ActionRecord, ActionType, EntryDetails, ExitDetails
from ..config import PortfolioConfig
from ..interfaces.audit_sink import AuditSink
from ..models import (
    PerformanceStats,
    PoolRecord,
    PoolSnapshot,
    PortfolioSummary,
    Position,
    PositionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

# Interim marks carry half of the price move; exits realize all of it.
INTERIM_PRICE_EXPOSURE = 0.5
EXIT_PRICE_EXPOSURE = 1.0


def _mark_to_model(
    position: Position, price: float, hours_held: float, exposure: float
) -> float:
    """Principal + pro-rated hourly yield accrual + exposed price delta."""
    yield_accrual = (position.entry_yield / 100 / 365 / 24) * hours_held * position.amount
    price_delta = 0.0
    if position.entry_price > 0 and price > 0:
        price_delta = (
            (price - position.entry_price) / position.entry_price * position.amount * exposure
        )
    return position.amount + yield_accrual + price_delta


class PortfolioLedger:
    """Owns cash, open positions and closed history.

    Every mutation runs under one ledger-wide lock.
    """

    def __init__(
        self,
        config: PortfolioConfig,
        audit: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._audit = audit
        self._clock = clock
        self._lock = threading.RLock()

        self.available_cash = config.starting_cash
        self.total_invested = 0.0
        self._active: list[Position] = []
        self._closed: list[Position] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def config(self) -> PortfolioConfig:
        return self._config

    def get_position(self, position_id: str) -> Position | None:
        return next((p for p in self._active if p.id == position_id), None)

    def get_active_positions(self) -> list[Position]:
        return list(self._active)

    def get_closed_positions(self) -> list[Position]:
        return list(self._closed)

    def has_position_in_pool(self, pool_id: str) -> bool:
        return any(p.pool_id == pool_id for p in self._active)

    def can_enter_new_position(self) -> bool:
        cfg = self._config
        return (
            len(self._active) < cfg.max_positions
            and self.available_cash >= cfg.position_size
            and self.total_invested < cfg.max_total_investment
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enter_position(self, pool: PoolRecord) -> Position | None:
        """Open a simulated position in ``pool``; ``None`` if any limit blocks it."""
        with self._lock:
            if not self.can_enter_new_position():
                logger.info(
                    "Cannot enter %s: max positions reached or insufficient capital",
                    pool.symbols,
                )
                return None

            if self.has_position_in_pool(pool.pool_id):
                logger.info("Already have a position in pool %s", pool.pool_id)
                return None

            amount = min(self._config.position_size, self.available_cash)
            if self.total_invested + amount > self._config.max_total_investment:
                logger.info(
                    "Cannot enter %s: would exceed max total investment $%.2f",
                    pool.symbols,
                    self._config.max_total_investment,
                )
                return None

            position = Position(
                id=uuid.uuid4().hex,
                pool_id=pool.pool_id,
                label=pool.symbols,
                entry_time=self._clock(),
                entry_price=pool.price,
                entry_yield=pool.apy,
                amount=amount,
                current_value=amount,
                current_yield=pool.apy,
            )
            self._active.append(position)
            self.available_cash -= amount
            self.total_invested += amount

        self._record(
            ActionRecord(
                action_type=ActionType.POSITION_ENTERED,
                pool_id=pool.pool_id,
                details=EntryDetails(
                    position_id=position.id,
                    amount=amount,
                    entry_price=pool.price,
                    entry_yield=pool.apy,
                    symbols=pool.symbols,
                ),
                timestamp=position.entry_time,
            )
        )
        logger.info(
            "Entered position in %s: $%.2f at %.2f%% APY (cash left $%.2f)",
            pool.symbols,
            amount,
            pool.apy,
            self.available_cash,
        )
        return position

    def exit_position(
        self, position_id: str, snapshot: PoolSnapshot, reason: str
    ) -> Position | None:
        """Close an active position at full price exposure; ``None`` if not found."""
        with self._lock:
            position = self.get_position(position_id)
            if position is None:
                logger.warning("Position %s not found", position_id)
                return None

            now = self._clock()
            hours_held = position.hours_held(now)
            position.current_value = _mark_to_model(
                position, snapshot.price, hours_held, EXIT_PRICE_EXPOSURE
            )
            position.current_yield = snapshot.apy
            position.pnl = position.current_value - position.amount
            position.pnl_percentage = position.pnl / position.amount * 100
            position.status = PositionStatus.EXITED
            position.exit_time = now
            position.exit_price = snapshot.price
            position.exit_reason = reason

            self.available_cash += position.current_value
            self.total_invested -= position.amount
            self._active.remove(position)
            self._closed.append(position)

        self._record(
            ActionRecord(
                action_type=ActionType.POSITION_EXITED,
                pool_id=position.pool_id,
                details=ExitDetails(
                    position_id=position.id,
                    exit_reason=reason,
                    pnl=position.pnl,
                    pnl_percentage=position.pnl_percentage,
                    hours_held=hours_held,
                    final_value=position.current_value,
                ),
                timestamp=now,
            )
        )
        logger.info(
            "Exited position in %s (%s): P&L $%+.2f (%.2f%%) after %.1fh",
            position.label or position.pool_id,
            reason,
            position.pnl,
            position.pnl_percentage,
            hours_held,
        )
        return position

    def update_position(self, position: Position, snapshot: PoolSnapshot) -> None:
        """Re-price an active position in place at interim price exposure."""
        with self._lock:
            if not position.is_active:
                return
            hours_held = position.hours_held(self._clock())
            position.current_value = _mark_to_model(
                position, snapshot.price, hours_held, INTERIM_PRICE_EXPOSURE
            )
            position.current_yield = snapshot.apy
            position.pnl = position.current_value - position.amount
            position.pnl_percentage = position.pnl / position.amount * 100

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_portfolio_summary(self) -> PortfolioSummary:
        with self._lock:
            active = tuple(p.copy() for p in self._active)
            closed = tuple(p.copy() for p in self._closed)
            cash = self.available_cash
            invested = self.total_invested

        total_value = cash + sum(p.current_value for p in active)
        total_pnl = sum(p.pnl for p in active) + sum(p.pnl for p in closed)
        principal = self._config.starting_cash
        total_pnl_pct = total_pnl / principal * 100 if principal > 0 else 0.0
        return PortfolioSummary(
            total_value=total_value,
            available_cash=cash,
            total_invested=invested,
            total_pnl=total_pnl,
            total_pnl_percentage=total_pnl_pct,
            max_positions=self._config.max_positions,
            starting_cash=principal,
            active_positions=active,
            closed_positions=closed,
        )

    def get_performance_stats(self) -> PerformanceStats:
        closed = self.get_closed_positions()
        total = len(closed)
        if total == 0:
            return PerformanceStats()

        wins = [p.pnl for p in closed if p.pnl > 0]
        losses = [p.pnl for p in closed if p.pnl < 0]
        gross_profit = sum(wins)
        gross_loss = abs(sum(losses))

        if gross_loss > 0:
            profit_factor = gross_profit / gross_loss
        elif gross_profit > 0:
            profit_factor = math.inf
        else:
            profit_factor = 0.0

        returns = [p.pnl_percentage for p in closed]
        mean = sum(returns) / total
        std = math.sqrt(sum((r - mean) ** 2 for r in returns) / total)

        return PerformanceStats(
            total_trades=total,
            winning_trades=len(wins),
            losing_trades=len(losses),
            win_rate=len(wins) / total * 100,
            avg_win=gross_profit / len(wins) if wins else 0.0,
            avg_loss=gross_loss / len(losses) if losses else 0.0,
            profit_factor=profit_factor,
            sharpe_ratio=mean / std if std > 0 else 0.0,
        )

    def _record(self, action: ActionRecord) -> None:
        if self._audit is not None:
            self._audit.record(action)
