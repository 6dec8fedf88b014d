"""Exit policy: ordered hard triggers, first match wins."""
from __future__ import annotations

from datetime import datetime

from ..config import ExitConfig
from ..models import ExitDecision, ExitTrigger, PoolSnapshot, Position, Urgency


class ExitPolicy:
    """Decide whether an open position should be closed.

    Order: stop-loss, take-profit, yield floor, max holding time, relative
    yield decline, liquidity risk. Nothing fired means hold.
    """

    def __init__(self, config: ExitConfig) -> None:
        self._config = config

    def evaluate_exit(
        self,
        position: Position,
        snapshot: PoolSnapshot,
        now: datetime | None = None,
    ) -> ExitDecision:
        cfg = self._config

        if position.pnl_percentage <= cfg.stop_loss_pct:
            return ExitDecision(
                True,
                f"Stop loss triggered: {position.pnl_percentage:.2f}% loss",
                Urgency.HIGH,
                ExitTrigger.STOP_LOSS,
            )

        if position.pnl_percentage >= cfg.take_profit_pct:
            return ExitDecision(
                True,
                f"Take profit triggered: {position.pnl_percentage:.2f}% gain",
                Urgency.MEDIUM,
                ExitTrigger.TAKE_PROFIT,
            )

        if snapshot.apy < cfg.exit_yield_floor:
            return ExitDecision(
                True,
                f"APY dropped to {snapshot.apy:.2f}%, below threshold {cfg.exit_yield_floor:g}%",
                Urgency.MEDIUM,
                ExitTrigger.YIELD_COLLAPSE,
            )

        hours_held = position.hours_held(now)
        if hours_held >= cfg.max_holding_hours:
            return ExitDecision(
                True,
                f"Maximum holding time reached: {hours_held:.1f}h",
                Urgency.LOW,
                ExitTrigger.MAX_HOLDING_TIME,
            )

        if position.entry_yield > 0:
            decline = (position.entry_yield - snapshot.apy) / position.entry_yield * 100
            if decline > cfg.yield_decline_pct:
                return ExitDecision(
                    True,
                    f"Significant APY decline: {decline:.1f}% drop",
                    Urgency.MEDIUM,
                    ExitTrigger.YIELD_DECLINE,
                )

        if snapshot.tvl < position.amount * cfg.liquidity_multiple:
            return ExitDecision(
                True,
                "Low liquidity relative to position size",
                Urgency.HIGH,
                ExitTrigger.LIQUIDITY_RISK,
            )

        return ExitDecision(
            False, "Position meets holding criteria", Urgency.LOW, ExitTrigger.HOLD
        )
