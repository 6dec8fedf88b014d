"""Integration tests for the Orchestrator with mocked sources and storage."""
from __future__ import annotations

import asyncio
import dataclasses
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from poolscout.audit import ActionType
from poolscout.config import AppConfig, MonitorConfig
from poolscout.models import Decision, PoolRecord, PoolSnapshot
from poolscout.services.orchestrator import (
    Orchestrator,
    OrchestratorState,
    format_evaluation,
    format_portfolio_status,
)
from poolscout.storage import StateStore


def _mock_source(name: str, pools: list[PoolRecord] | None = None) -> MagicMock:
    source = MagicMock()
    source.name = name
    source.fetch_pools = AsyncMock(return_value=pools or [])
    source.fetch_metrics = AsyncMock(return_value=None)
    source.validate = MagicMock(return_value=True)
    return source


@pytest.fixture()
def store() -> MagicMock:
    return MagicMock(spec=StateStore)


@pytest.fixture()
def primary(balanced_pool: PoolRecord) -> MagicMock:
    return _mock_source("primary", [balanced_pool])


@pytest.fixture()
def fallback(make_pool: Callable[..., PoolRecord]) -> MagicMock:
    return _mock_source("fallback", [make_pool("fallback_pool")])


@pytest.fixture()
def orchestrator(
    sample_app_config: AppConfig, primary: MagicMock, fallback: MagicMock, store: MagicMock, clock
) -> Orchestrator:
    return Orchestrator(
        sample_app_config,
        source=primary,
        fallback=fallback,
        store=store,
        clock=clock,
        monotonic=clock.monotonic,
    )


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_scan_enters_qualifying_pool(
        self, orchestrator: Orchestrator, balanced_pool: PoolRecord
    ) -> None:
        evaluations = await orchestrator.scan_for_new_pools()

        assert len(evaluations) == 1
        assert evaluations[0].decision is Decision.ENTER
        assert orchestrator.watchlist == {balanced_pool.pool_id}
        assert orchestrator.pool_cache[balanced_pool.pool_id] == balanced_pool
        assert orchestrator.actions.count(ActionType.POOL_DETECTED) == 1
        assert orchestrator.actions.count(ActionType.POOL_EVALUATED) == 1
        assert orchestrator.actions.count(ActionType.POSITION_ENTERED) == 1
        assert orchestrator.state is OrchestratorState.STOPPED

    @pytest.mark.asyncio
    async def test_scan_rate_limited(
        self, orchestrator: Orchestrator, primary: MagicMock, clock
    ) -> None:
        await orchestrator.scan_for_new_pools()
        clock.advance(seconds=10)
        assert await orchestrator.scan_for_new_pools() == []
        primary.fetch_pools.assert_awaited_once()

        clock.advance(seconds=30)
        await orchestrator.scan_for_new_pools()
        assert primary.fetch_pools.await_count == 2

    @pytest.mark.asyncio
    async def test_known_pool_not_reevaluated(
        self, orchestrator: Orchestrator, clock
    ) -> None:
        await orchestrator.scan_for_new_pools()
        clock.advance(seconds=60)
        assert await orchestrator.scan_for_new_pools() == []
        assert orchestrator.actions.count(ActionType.POOL_EVALUATED) == 1

    @pytest.mark.asyncio
    async def test_skipped_pool_not_entered(
        self, orchestrator: Orchestrator, primary: MagicMock, make_pool: Callable[..., PoolRecord]
    ) -> None:
        primary.fetch_pools.return_value = [make_pool("weak", apy=3.0)]
        evaluations = await orchestrator.scan_for_new_pools()
        assert evaluations[0].decision is Decision.SKIP
        assert orchestrator.ledger.get_active_positions() == []
        assert "weak" in orchestrator.pool_cache

    @pytest.mark.asyncio
    async def test_invalid_pools_filtered(
        self, orchestrator: Orchestrator, primary: MagicMock
    ) -> None:
        primary.validate.return_value = False
        assert await orchestrator.scan_for_new_pools() == []
        assert orchestrator.pool_cache == {}

    @pytest.mark.asyncio
    async def test_duplicates_collapsed_to_newest(
        self, orchestrator: Orchestrator, primary: MagicMock, make_pool: Callable[..., PoolRecord]
    ) -> None:
        older = make_pool("older", base_mint="SAME", age_hours=10.0)
        newer = make_pool("newer", base_mint="SAME", age_hours=3.0)
        primary.fetch_pools.return_value = [older, newer]
        evaluations = await orchestrator.scan_for_new_pools()
        assert [e.pool_id for e in evaluations] == ["newer"]

    def test_deduplicate_pools(self, make_pool: Callable[..., PoolRecord]) -> None:
        pools = [
            make_pool("a", base_mint="X", age_hours=5.0),
            make_pool("b", base_mint="X", age_hours=1.0),
            make_pool("c", base_mint="Y"),
        ]
        unique = Orchestrator.deduplicate_pools(pools)
        assert sorted(p.pool_id for p in unique) == ["b", "c"]


class TestSourceFallback:
    @pytest.mark.asyncio
    async def test_primary_error_uses_fallback_for_cycle(
        self, orchestrator: Orchestrator, primary: MagicMock, fallback: MagicMock
    ) -> None:
        primary.fetch_pools.side_effect = RuntimeError("api down")
        evaluations = await orchestrator.scan_for_new_pools()

        fallback.fetch_pools.assert_awaited_once()
        assert [e.pool_id for e in evaluations] == ["fallback_pool"]
        assert orchestrator.failure_count == 1
        assert orchestrator.actions.count(ActionType.CYCLE_FAILED) == 1
        failure = [
            a for a in orchestrator.actions if a.action_type is ActionType.CYCLE_FAILED
        ][0]
        assert failure.success is False
        assert failure.details.stage == "discovery:primary"

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(
        self, orchestrator: Orchestrator, primary: MagicMock, balanced_pool: PoolRecord, clock
    ) -> None:
        primary.fetch_pools.return_value = []
        await orchestrator.scan_for_new_pools()
        assert orchestrator.failure_count == 1

        primary.fetch_pools.return_value = [balanced_pool]
        clock.advance(seconds=30)
        await orchestrator.scan_for_new_pools()
        assert orchestrator.failure_count == 0

    @pytest.mark.asyncio
    async def test_switches_to_fallback_after_repeated_failures(
        self,
        sample_app_config: AppConfig,
        primary: MagicMock,
        fallback: MagicMock,
        store: MagicMock,
        clock,
    ) -> None:
        config = dataclasses.replace(
            sample_app_config,
            monitor=dataclasses.replace(sample_app_config.monitor, max_source_failures=1),
        )
        orchestrator = Orchestrator(
            config, primary, fallback, store, clock=clock, monotonic=clock.monotonic
        )
        primary.fetch_pools.return_value = []

        for _ in range(3):
            await orchestrator.scan_for_new_pools()
            clock.advance(seconds=30)

        # Two failed attempts, then the fallback is used without asking the primary
        assert primary.fetch_pools.await_count == 2
        assert fallback.fetch_pools.await_count == 3
        assert orchestrator.failure_count == 0

    @pytest.mark.asyncio
    async def test_demo_mode_never_calls_primary(
        self,
        sample_app_config: AppConfig,
        primary: MagicMock,
        fallback: MagicMock,
        store: MagicMock,
        clock,
    ) -> None:
        config = dataclasses.replace(
            sample_app_config,
            monitor=dataclasses.replace(sample_app_config.monitor, demo_mode=True),
        )
        orchestrator = Orchestrator(
            config, primary, fallback, store, clock=clock, monotonic=clock.monotonic
        )
        await orchestrator.scan_for_new_pools()
        primary.fetch_pools.assert_not_awaited()
        fallback.fetch_pools.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scan_error_recorded(
        self, orchestrator: Orchestrator, primary: MagicMock
    ) -> None:
        primary.validate.side_effect = ValueError("bad record")
        assert await orchestrator.scan_for_new_pools() == []
        assert orchestrator.actions.count(ActionType.CYCLE_FAILED) == 1
        assert orchestrator.state is OrchestratorState.STOPPED


class TestMonitoring:
    @pytest.mark.asyncio
    async def test_yield_collapse_exits_position(
        self,
        orchestrator: Orchestrator,
        primary: MagicMock,
        make_snapshot: Callable[..., PoolSnapshot],
        clock,
    ) -> None:
        await orchestrator.scan_for_new_pools()
        primary.fetch_metrics.return_value = make_snapshot(apy=5.0)
        clock.advance(hours=1)

        exited = await orchestrator.monitor_positions()

        assert len(exited) == 1
        assert "APY dropped" in exited[0].exit_reason
        assert orchestrator.ledger.get_active_positions() == []
        assert orchestrator.actions.count(ActionType.POSITION_MONITORED) == 1
        assert orchestrator.actions.count(ActionType.POSITION_EXITED) == 1
        primary.fetch_metrics.assert_awaited_once_with("pool_1")

    @pytest.mark.asyncio
    async def test_source_mapping_tracks_open_positions_only(
        self,
        orchestrator: Orchestrator,
        primary: MagicMock,
        make_pool: Callable[..., PoolRecord],
        make_snapshot: Callable[..., PoolSnapshot],
        clock,
    ) -> None:
        primary.fetch_pools.return_value = [make_pool("pool_1"), make_pool("weak", apy=3.0)]
        await orchestrator.scan_for_new_pools()
        assert set(orchestrator._pool_sources) == {"pool_1"}

        primary.fetch_metrics.return_value = make_snapshot(apy=5.0)
        clock.advance(hours=1)
        await orchestrator.monitor_positions()

        assert orchestrator._pool_sources == {}
        assert {"pool_1", "weak"} <= set(orchestrator.pool_cache)

    @pytest.mark.asyncio
    async def test_healthy_position_kept_and_repriced(
        self,
        orchestrator: Orchestrator,
        primary: MagicMock,
        make_snapshot: Callable[..., PoolSnapshot],
        clock,
    ) -> None:
        await orchestrator.scan_for_new_pools()
        primary.fetch_metrics.return_value = make_snapshot(apy=18.0, price=1.1)
        clock.advance(hours=1)

        assert await orchestrator.monitor_positions() == []
        position = orchestrator.ledger.get_active_positions()[0]
        assert position.current_value > 1000.0
        assert position.current_yield == 18.0

    @pytest.mark.asyncio
    async def test_metrics_come_from_discovering_source(
        self,
        orchestrator: Orchestrator,
        primary: MagicMock,
        fallback: MagicMock,
        make_snapshot: Callable[..., PoolSnapshot],
    ) -> None:
        primary.fetch_pools.return_value = []
        await orchestrator.scan_for_new_pools()
        fallback.fetch_metrics.return_value = make_snapshot("fallback_pool")

        await orchestrator.monitor_positions()

        fallback.fetch_metrics.assert_awaited_once_with("fallback_pool")
        primary.fetch_metrics.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_metrics_skip_position(
        self, orchestrator: Orchestrator
    ) -> None:
        await orchestrator.scan_for_new_pools()
        assert await orchestrator.monitor_positions() == []
        assert len(orchestrator.ledger.get_active_positions()) == 1
        assert orchestrator.actions.count(ActionType.POSITION_MONITORED) == 0

    @pytest.mark.asyncio
    async def test_metrics_error_isolated_per_position(
        self, orchestrator: Orchestrator, primary: MagicMock
    ) -> None:
        await orchestrator.scan_for_new_pools()
        primary.fetch_metrics.side_effect = RuntimeError("timeout")

        assert await orchestrator.monitor_positions() == []
        assert len(orchestrator.ledger.get_active_positions()) == 1
        failures = [a for a in orchestrator.actions if a.action_type is ActionType.CYCLE_FAILED]
        assert failures[0].pool_id == "pool_1"
        assert failures[0].details.stage == "monitoring"


class TestReporting:
    def test_log_performance_rate_limited(
        self, orchestrator: Orchestrator, store: MagicMock, clock
    ) -> None:
        assert orchestrator.log_performance() is True
        assert orchestrator.log_performance() is False
        clock.advance(seconds=300)
        assert orchestrator.log_performance() is True
        assert store.append_performance.call_count == 2
        record = store.append_performance.call_args[0][0]
        assert record["portfolio"]["starting_cash"] == 10000.0

    def test_log_performance_survives_write_error(
        self, orchestrator: Orchestrator, store: MagicMock
    ) -> None:
        store.append_performance.side_effect = OSError("disk full")
        assert orchestrator.log_performance() is True

    @pytest.mark.asyncio
    async def test_bot_stats(self, orchestrator: Orchestrator) -> None:
        await orchestrator.scan_for_new_pools()
        stats = orchestrator.get_bot_stats()
        assert stats.pools_evaluated == 1
        assert stats.positions_entered == 1
        assert stats.positions_exited == 0
        assert stats.current_positions == 1
        assert stats.total_actions == 3

    def test_save_state_survives_write_error(
        self, orchestrator: Orchestrator, store: MagicMock
    ) -> None:
        store.save_state.side_effect = OSError("read-only")
        orchestrator.save_state()
        store.save_state.assert_called_once()

    @pytest.mark.asyncio
    async def test_format_helpers(self, orchestrator: Orchestrator, balanced_pool: PoolRecord) -> None:
        evaluations = await orchestrator.scan_for_new_pools()
        text = format_evaluation(balanced_pool, evaluations[0])
        assert text.startswith("ENTER: TKN/USDC (pool_1)")
        status = format_portfolio_status(
            orchestrator.ledger.get_portfolio_summary(),
            orchestrator.ledger.get_performance_stats(),
        )
        assert "Active Positions: 1/5" in status
        assert "PERFORMANCE STATS" not in status


class TestLifecycle:
    @pytest.fixture()
    def fast_config(self, sample_app_config: AppConfig) -> AppConfig:
        return dataclasses.replace(
            sample_app_config,
            monitor=MonitorConfig(
                scan_interval_seconds=0.01,
                position_update_interval_seconds=0.01,
                performance_log_interval_seconds=0.01,
            ),
        )

    @pytest.mark.asyncio
    async def test_run_for_duration_then_stop(
        self, fast_config: AppConfig, primary: MagicMock, fallback: MagicMock, store: MagicMock
    ) -> None:
        orchestrator = Orchestrator(fast_config, primary, fallback, store)
        await orchestrator.run(duration_seconds=0.1)

        assert orchestrator.state is OrchestratorState.STOPPED
        assert not orchestrator.is_running
        assert len(orchestrator.ledger.get_active_positions()) == 1
        primary.fetch_metrics.assert_awaited()
        store.save_state.assert_called_once()

    @pytest.mark.asyncio
    async def test_request_stop_ends_run(
        self, fast_config: AppConfig, primary: MagicMock, fallback: MagicMock, store: MagicMock
    ) -> None:
        orchestrator = Orchestrator(fast_config, primary, fallback, store)
        task = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0.05)
        assert orchestrator.is_running
        assert orchestrator.state is OrchestratorState.IDLE

        orchestrator.request_stop()
        await asyncio.wait_for(task, timeout=2)
        assert orchestrator.state is OrchestratorState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(
        self, fast_config: AppConfig, primary: MagicMock, fallback: MagicMock, store: MagicMock
    ) -> None:
        orchestrator = Orchestrator(fast_config, primary, fallback, store)
        await orchestrator.start()
        await orchestrator.stop()
        await orchestrator.stop()
        store.save_state.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(
        self, orchestrator: Orchestrator, store: MagicMock
    ) -> None:
        await orchestrator.stop()
        store.save_state.assert_not_called()
