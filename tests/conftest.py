"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from poolscout.config import (
    AppConfig,
    ExitConfig,
    MonitorConfig,
    PortfolioConfig,
    SCORING_PRESETS,
    ScoringConfig,
    StateConfig,
)
from poolscout.models import PoolRecord, PoolSnapshot, TokenInfo

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock and monotonic clock that only move when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start
        self.seconds = 0.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.seconds

    def advance(self, hours: float = 0.0, seconds: float = 0.0) -> None:
        delta = hours * 3600 + seconds
        self.now += timedelta(seconds=delta)
        self.seconds += delta


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def scoring_config() -> ScoringConfig:
    return SCORING_PRESETS["market"]


@pytest.fixture()
def demo_scoring_config() -> ScoringConfig:
    return SCORING_PRESETS["demo"]


@pytest.fixture()
def exit_config() -> ExitConfig:
    return ExitConfig()


@pytest.fixture()
def portfolio_config() -> PortfolioConfig:
    return PortfolioConfig(
        starting_cash=10000.0,
        position_size=1000.0,
        max_positions=5,
        max_total_investment=10000.0,
    )


@pytest.fixture()
def sample_app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        scoring=SCORING_PRESETS["demo"],
        monitor=MonitorConfig(
            scan_interval_seconds=30,
            position_update_interval_seconds=60,
            performance_log_interval_seconds=300,
            max_source_failures=3,
            max_actions=100,
        ),
        state=StateConfig(data_dir=str(tmp_path / "data")),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


def build_pool(
    pool_id: str = "pool_1",
    *,
    apy: float = 18.5,
    tvl: float = 75000.0,
    volume_24h: float = 25000.0,
    age_hours: float = 2.0,
    price: float = 1.0,
    base_amount: float = 37500.0,
    quote_amount: float = 37500.0,
    base_mint: str | None = None,
    quote_mint: str = "USDC_MINT",
    now: datetime = NOW,
    **overrides: Any,
) -> PoolRecord:
    """A pool that is balanced at ``price`` unless amounts are overridden."""
    fields: dict[str, Any] = dict(
        pool_id=pool_id,
        base_token=TokenInfo(base_mint or f"{pool_id}_MINT", "TKN", 9, base_amount),
        quote_token=TokenInfo(quote_mint, "USDC", 6, quote_amount),
        tvl=tvl,
        volume_24h=volume_24h,
        fees_24h=volume_24h * 0.0025,
        apy=apy,
        created_at=now - timedelta(hours=age_hours),
        lp_token_supply=1000000.0,
        price=price,
    )
    fields.update(overrides)
    return PoolRecord(**fields)


@pytest.fixture()
def make_pool() -> Callable[..., PoolRecord]:
    return build_pool


@pytest.fixture()
def balanced_pool() -> PoolRecord:
    return build_pool()


def build_snapshot(
    pool_id: str = "pool_1",
    *,
    apy: float = 18.5,
    tvl: float = 75000.0,
    volume_24h: float = 25000.0,
    price: float = 1.0,
) -> PoolSnapshot:
    return PoolSnapshot(
        pool_id=pool_id,
        apy=apy,
        tvl=tvl,
        volume_24h=volume_24h,
        price=price,
        timestamp=NOW,
    )


@pytest.fixture()
def make_snapshot() -> Callable[..., PoolSnapshot]:
    return build_snapshot


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    scoring:
      preset: demo
      min_score_to_enter: 75
    portfolio:
      starting_cash: 5000
      position_size: 500
      max_positions: 3
      max_total_investment: 1500
    exit:
      stop_loss_pct: -10
      take_profit_pct: 30
    monitor:
      scan_interval_seconds: 15
      position_update_interval_seconds: 45
      performance_log_interval_seconds: 120
      max_source_failures: 2
      max_actions: 500
      demo_mode: true
    data_sources:
      raydium:
        api_url: "https://raydium.example.com/"
        timeout: 5
        page_size: 20
      demo:
        sample_size: 3
        seed: 7
    state:
      data_dir: "${POOLSCOUT_TEST_DATA_DIR}"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Sample Raydium API data
# ---------------------------------------------------------------------------


@pytest.fixture()
def raydium_pool_entry() -> Callable[..., dict]:
    def _entry(
        pool_id: str = "RAYpool111",
        *,
        open_time: int,
        tvl: float = 50000.0,
        volume: float = 20000.0,
        fee: float = 50.0,
        apr: float = 36.5,
    ) -> dict:
        return {
            "id": pool_id,
            "type": "Standard",
            "mintA": {"address": "mintA111", "symbol": "BONK", "decimals": 5},
            "mintB": {"address": "So11111111111111111111111111111111111111112", "symbol": "WSOL", "decimals": 9},
            "price": 0.0002,
            "mintAmountA": 125000000.0,
            "mintAmountB": 150.0,
            "tvl": tvl,
            "openTime": str(open_time),
            "day": {"volume": volume, "volumeFee": fee, "apr": apr},
            "lpMint": {"address": "lp111", "supply": 42000.0},
        }

    return _entry
