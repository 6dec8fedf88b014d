"""Discovery → evaluation → entry → monitoring → exit, on repeating cadences."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from ..audit import (
    ActionLog,
    ActionRecord,
    ActionType,
    DetectionDetails,
    FailureDetails,
    MonitorDetails,
)
from ..config import AppConfig
from ..interfaces.pool_source import PoolSource
from ..models import (
    BotStats,
    EntryEvaluation,
    PerformanceStats,
    PoolRecord,
    PoolSnapshot,
    PortfolioSummary,
    Position,
    utcnow,
)
from ..sources import DemoPoolSource, RaydiumPoolSource
from ..storage import StateStore
from .exit_policy import ExitPolicy
from .portfolio import PortfolioLedger
from .scoring import PoolScorer

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    STOPPED = "stopped"
    SCANNING = "scanning"
    IDLE = "idle"


def format_evaluation(pool: PoolRecord, evaluation: EntryEvaluation) -> str:
    lines = [
        f"{evaluation.decision.value}: {pool.symbols} ({pool.pool_id})",
        f"  Score: {evaluation.score} · Risk: {evaluation.risk_score}/100"
        f" · APY: {pool.apy:.2f}% · TVL: ${pool.tvl:,.0f}",
    ]
    lines.extend(f"  {reason}" for reason in evaluation.reasons)
    lines.extend(f"  {warning}" for warning in evaluation.warnings)
    return "\n".join(lines)


def format_portfolio_status(summary: PortfolioSummary, stats: PerformanceStats) -> str:
    lines = [
        "💼 PORTFOLIO STATUS",
        f"Total Value: ${summary.total_value:,.2f}",
        f"Available Cash: ${summary.available_cash:,.2f}",
        f"Total Invested: ${summary.total_invested:,.2f}",
        f"Total P&L: ${summary.total_pnl:+,.2f} ({summary.total_pnl_percentage:.2f}%)",
        f"Active Positions: {len(summary.active_positions)}/{summary.max_positions}",
    ]
    if stats.total_trades > 0:
        lines += [
            "",
            "📊 PERFORMANCE STATS",
            f"Total Trades: {stats.total_trades}",
            f"Win Rate: {stats.win_rate:.1f}%",
            f"Avg Win: ${stats.avg_win:,.2f}",
            f"Avg Loss: ${stats.avg_loss:,.2f}",
            f"Profit Factor: {stats.profit_factor:.2f}",
            f"Sharpe Ratio: {stats.sharpe_ratio:.2f}",
        ]
    return "\n".join(lines)


class Orchestrator:
    """Drives pool discovery and position monitoring against one virtual portfolio."""

    def __init__(
        self,
        config: AppConfig,
        source: PoolSource | None = None,
        fallback: PoolSource | None = None,
        store: StateStore | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._monitor_cfg = config.monitor
        self._clock = clock
        self._monotonic = monotonic

        self.actions = ActionLog(config.monitor.max_actions)
        self.scorer = PoolScorer(config.scoring, self.actions)
        self.exit_policy = ExitPolicy(config.exit)
        self.ledger = PortfolioLedger(config.portfolio, self.actions, clock=clock)

        self._source: PoolSource = source or RaydiumPoolSource(config.data_sources.raydium)
        self._fallback: PoolSource = fallback or DemoPoolSource(config.data_sources.demo)
        self._store = store or StateStore(config.state.data_dir)

        # Pools already evaluated, and the source each one came from
        self.pool_cache: dict[str, PoolRecord] = {}
        self._pool_sources: dict[str, PoolSource] = {}

        self.state = OrchestratorState.STOPPED
        self._last_scan: float | None = None
        self._last_performance_log: float | None = None
        self._failure_count = 0
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def watchlist(self) -> set[str]:
        return {p.pool_id for p in self.ledger.get_active_positions()}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def deduplicate_pools(pools: list[PoolRecord]) -> list[PoolRecord]:
        """One pool per (base mint, quote mint) pair, keeping the newest."""
        unique: dict[tuple[str, str], PoolRecord] = {}
        for pool in pools:
            existing = unique.get(pool.pair_key)
            if existing is None or existing.created_at < pool.created_at:
                unique[pool.pair_key] = pool
        return list(unique.values())

    def _record_failure(self, stage: str, error: Exception, pool_id: str = "unknown") -> None:
        self.actions.record(
            ActionRecord(
                action_type=ActionType.CYCLE_FAILED,
                pool_id=pool_id,
                details=FailureDetails(stage=stage, error=str(error)),
                success=False,
                error=str(error),
                timestamp=self._clock(),
            )
        )

    def _fallback_due(self) -> bool:
        return (
            self._monitor_cfg.demo_mode
            or self._failure_count > self._monitor_cfg.max_source_failures
        )

    async def _fetch_candidates(self) -> tuple[list[PoolRecord], PoolSource]:
        """Pull candidates from the primary source, or the fallback when due."""
        if self._fallback_due():
            if not self._monitor_cfg.demo_mode:
                logger.warning(
                    "Primary source %s failed %d times in a row, using %s",
                    self._source.name,
                    self._failure_count,
                    self._fallback.name,
                )
                self._failure_count = 0
            return await self._fallback.fetch_pools(), self._fallback

        try:
            pools = await self._source.fetch_pools()
        except Exception as e:
            logger.error("Error fetching pools from %s: %s", self._source.name, e)
            self._record_failure(f"discovery:{self._source.name}", e)
            pools = []

        if pools:
            self._failure_count = 0
            return pools, self._source

        self._failure_count += 1
        logger.warning(
            "No pools from %s (%d consecutive failures), falling back to %s",
            self._source.name,
            self._failure_count,
            self._fallback.name,
        )
        return await self._fallback.fetch_pools(), self._fallback

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    def evaluate_and_enter(
        self, pool: PoolRecord, source: PoolSource | None = None
    ) -> EntryEvaluation | None:
        """Score a newly seen pool and open a position on ENTER."""
        if pool.pool_id in self.pool_cache:
            return None

        self.pool_cache[pool.pool_id] = pool

        now = self._clock()
        self.actions.record(
            ActionRecord(
                action_type=ActionType.POOL_DETECTED,
                pool_id=pool.pool_id,
                details=DetectionDetails(
                    symbols=pool.symbols,
                    apy=pool.apy,
                    tvl=pool.tvl,
                    volume_24h=pool.volume_24h,
                ),
                timestamp=now,
            )
        )

        evaluation = self.scorer.evaluate(pool, now)
        if evaluation.should_enter:
            position = self.ledger.enter_position(pool)
            if position is not None:
                self._pool_sources[pool.pool_id] = source or self._source
                logger.info(format_evaluation(pool, evaluation))
        else:
            logger.debug(format_evaluation(pool, evaluation))
        return evaluation

    async def scan_for_new_pools(self) -> list[EntryEvaluation]:
        """Run one discovery cycle. No-op if called again within the scan interval."""
        started = self._monotonic()
        if (
            self._last_scan is not None
            and started - self._last_scan < self._monitor_cfg.scan_interval_seconds
        ):
            logger.debug("Scan skipped: last scan %.1fs ago", started - self._last_scan)
            return []
        self._last_scan = started

        self.state = OrchestratorState.SCANNING
        evaluations: list[EntryEvaluation] = []
        try:
            pools, source = await self._fetch_candidates()
            candidates = [p for p in self.deduplicate_pools(pools) if source.validate(p)]
            logger.info(
                "Discovery: %d pools from %s, %d valid and unique",
                len(pools),
                source.name,
                len(candidates),
            )
            for pool in candidates:
                evaluation = self.evaluate_and_enter(pool, source)
                if evaluation is not None:
                    evaluations.append(evaluation)
        except Exception as e:
            logger.error("Error scanning pools: %s", e)
            self._record_failure("discovery", e)
        finally:
            self.state = (
                OrchestratorState.IDLE if self.is_running else OrchestratorState.STOPPED
            )
        return evaluations

    async def _fetch_snapshot(self, pool_id: str) -> PoolSnapshot | None:
        source = self._pool_sources.get(pool_id, self._source)
        return await source.fetch_metrics(pool_id)

    async def monitor_positions(self) -> list[Position]:
        """Re-price every active position and close those that hit an exit rule."""
        exited: list[Position] = []
        for position in self.ledger.get_active_positions():
            try:
                snapshot = await self._fetch_snapshot(position.pool_id)
                if snapshot is None:
                    logger.debug("No metrics for %s this cycle", position.pool_id)
                    continue

                self.ledger.update_position(position, snapshot)
                now = self._clock()
                self.actions.record(
                    ActionRecord(
                        action_type=ActionType.POSITION_MONITORED,
                        pool_id=position.pool_id,
                        details=MonitorDetails(
                            position_id=position.id,
                            current_value=position.current_value,
                            pnl=position.pnl,
                            pnl_percentage=position.pnl_percentage,
                            current_yield=snapshot.apy,
                        ),
                        timestamp=now,
                    )
                )

                decision = self.exit_policy.evaluate_exit(position, snapshot, now)
                if decision.should_exit:
                    logger.info(
                        "Exit signal for %s [%s]: %s",
                        position.label or position.pool_id,
                        decision.urgency.value,
                        decision.reason,
                    )
                    closed = self.ledger.exit_position(position.id, snapshot, decision.reason)
                    if closed is not None:
                        self._pool_sources.pop(closed.pool_id, None)
                        exited.append(closed)
            except Exception as e:
                logger.error("Error monitoring position %s: %s", position.id, e)
                self._record_failure("monitoring", e, pool_id=position.pool_id)
        return exited

    def log_performance(self) -> bool:
        """Log portfolio status and append a performance record (rate-limited)."""
        now = self._monotonic()
        interval = self._monitor_cfg.performance_log_interval_seconds
        if self._last_performance_log is not None and now - self._last_performance_log < interval:
            return False
        self._last_performance_log = now

        summary = self.ledger.get_portfolio_summary()
        stats = self.ledger.get_performance_stats()
        logger.info(format_portfolio_status(summary, stats))
        try:
            self._store.append_performance(
                {
                    "timestamp": self._clock(),
                    "portfolio": summary.to_dict(),
                    "stats": stats.to_dict(),
                }
            )
        except OSError as e:
            logger.error("Error saving performance data: %s", e)
        return True

    def get_bot_stats(self) -> BotStats:
        return BotStats(
            pools_evaluated=self.actions.count(ActionType.POOL_EVALUATED),
            positions_entered=self.actions.count(ActionType.POSITION_ENTERED),
            positions_exited=self.actions.count(ActionType.POSITION_EXITED),
            current_positions=len(self.ledger.get_active_positions()),
            total_actions=self.actions.total,
        )

    def save_state(self) -> None:
        try:
            self._store.save_state(self.ledger.get_portfolio_summary(), self.actions.to_list())
        except OSError as e:
            logger.error("Error saving state: %s", e)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _run_periodic(
        self, name: str, interval: float, job: Callable[[], Awaitable[Any]]
    ) -> None:
        """Run ``job`` every ``interval`` seconds until the stop event is set."""
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            try:
                await job()
            except Exception as e:
                logger.error("Error in %s loop: %s", name, e)
        logger.debug("%s loop stopped", name)

    async def _performance_job(self) -> None:
        self.log_performance()

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Orchestrator is already running")
            return

        self._stop_event = asyncio.Event()
        self.state = OrchestratorState.IDLE
        cfg = self._monitor_cfg
        logger.info(
            "Starting pool scout (scan every %ss, positions every %ss, source: %s)",
            cfg.scan_interval_seconds,
            cfg.position_update_interval_seconds,
            self._fallback.name if cfg.demo_mode else self._source.name,
        )
        logger.info(
            format_portfolio_status(
                self.ledger.get_portfolio_summary(), self.ledger.get_performance_stats()
            )
        )

        await self.scan_for_new_pools()

        self._tasks = [
            asyncio.create_task(
                self._run_periodic("discovery", cfg.scan_interval_seconds, self.scan_for_new_pools)
            ),
            asyncio.create_task(
                self._run_periodic(
                    "position monitoring",
                    cfg.position_update_interval_seconds,
                    self.monitor_positions,
                )
            ),
            asyncio.create_task(
                self._run_periodic(
                    "performance logging",
                    cfg.performance_log_interval_seconds,
                    self._performance_job,
                )
            ),
        ]

    def request_stop(self) -> None:
        """Signal the cadences to stop after their current cycle."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self) -> None:
        """Stop all cadences, letting in-flight cycles finish, then save state."""
        if self._stop_event is None:
            return
        self._stop_event.set()
        tasks, self._tasks = self._tasks, []
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self.state is OrchestratorState.STOPPED and not tasks:
            return

        self.state = OrchestratorState.STOPPED
        logger.info("Pool scout stopped")
        logger.info(
            format_portfolio_status(
                self.ledger.get_portfolio_summary(), self.ledger.get_performance_stats()
            )
        )
        self.save_state()

    async def run(self, duration_seconds: float | None = None) -> None:
        """Start, wait for the duration (or a stop request), then stop."""
        await self.start()
        assert self._stop_event is not None
        try:
            if duration_seconds is None:
                await self._stop_event.wait()
            else:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=duration_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.stop()
