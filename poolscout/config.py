"""Configuration loader: reads config.yaml, interpolates env vars and validates."""
from __future__ import annotations

import dataclasses
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoringConfig:
    """Entry thresholds and point weights for the pool scorer."""

    # Hard gates
    min_yield: float = 20.0
    min_tvl: float = 100.0
    min_volume_24h: float = 1000.0
    yield_points: int = 25
    tvl_points: int = 20
    volume_points: int = 20

    # Pool age (hours)
    min_age_hours: float = 1.0
    max_age_hours: float = 72.0
    sweet_spot_age_hours: float = 24.0
    age_window_points: int = 15
    sweet_spot_points: int = 5
    age_outside_points: int = 5

    # Liquidity balance (1.0 = perfect 50/50)
    min_liquidity_ratio: float = 0.3
    balanced_liquidity_points: int = 10
    unbalanced_liquidity_points: int = 3

    # Bonuses
    exceptional_yield_multiple: float = 2.0
    exceptional_yield_points: int = 10
    high_volume_multiple: float = 5.0
    high_volume_points: int = 5

    # Red flags
    yield_ceiling: float = 100.0
    yield_ceiling_penalty: int = 20
    min_tvl_to_volume_ratio: float = 0.1
    thin_tvl_penalty: int = 10

    min_score_to_enter: int = 70


@dataclass(frozen=True)
class ExitConfig:
    exit_yield_floor: float = 10.0
    stop_loss_pct: float = -15.0
    take_profit_pct: float = 25.0
    max_holding_hours: float = 168.0
    yield_decline_pct: float = 50.0
    liquidity_multiple: float = 10.0


@dataclass(frozen=True)
class PortfolioConfig:
    starting_cash: float = 10000.0
    position_size: float = 1000.0
    max_positions: int = 5
    max_total_investment: float = 10000.0


@dataclass(frozen=True)
class MonitorConfig:
    scan_interval_seconds: float = 30.0
    position_update_interval_seconds: float = 60.0
    performance_log_interval_seconds: float = 300.0
    max_source_failures: int = 3
    max_actions: int = 1000
    demo_mode: bool = False


@dataclass(frozen=True)
class RaydiumConfig:
    api_url: str = "https://api-v3.raydium.io"
    timeout: int = 15
    page_size: int = 50
    max_pool_age_hours: float = 72.0
    max_apy: float = 1000.0


@dataclass(frozen=True)
class DemoConfig:
    sample_size: int = 4
    seed: int | None = None


@dataclass(frozen=True)
class DataSourcesConfig:
    raydium: RaydiumConfig = field(default_factory=RaydiumConfig)
    demo: DemoConfig = field(default_factory=DemoConfig)


@dataclass(frozen=True)
class StateConfig:
    data_dir: str = "data"


@dataclass(frozen=True)
class AppConfig:
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    exit: ExitConfig = field(default_factory=ExitConfig)
    portfolio: PortfolioConfig = field(default_factory=PortfolioConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    data_sources: DataSourcesConfig = field(default_factory=DataSourcesConfig)
    state: StateConfig = field(default_factory=StateConfig)


# ---------------------------------------------------------------------------
# Scoring presets
# ---------------------------------------------------------------------------

# "market": live Raydium listings. "incentive": fresh high-APR incentive
# pools, where APY in the hundreds is the point rather than a red flag.
# "demo": lenient thresholds for the bundled demo dataset.
SCORING_PRESETS: dict[str, ScoringConfig] = {
    "market": ScoringConfig(),
    "incentive": ScoringConfig(
        min_yield=100.0,
        min_tvl=50.0,
        min_volume_24h=500.0,
        yield_points=30,
        age_window_points=10,
        sweet_spot_points=10,
        age_outside_points=0,
        exceptional_yield_points=25,
        high_volume_multiple=10.0,
        high_volume_points=15,
        yield_ceiling=1000.0,
        yield_ceiling_penalty=0,
        min_score_to_enter=100,
    ),
    "demo": ScoringConfig(
        min_yield=12.0,
        min_tvl=100.0,
        min_volume_24h=500.0,
    ),
}

DEFAULT_PRESET = "market"


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")
_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"not a boolean: {value!r}")
    return bool(value)


def _coerce_fields(cls: type, base: Any, raw: dict[str, Any]) -> dict[str, Any]:
    """Cast raw YAML values to the types of ``base``'s fields, ignoring unknown keys.

    Nulls and empty strings (an unset ``${VAR}``) keep the default.
    """
    values: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if f.name not in raw:
            continue
        default = getattr(base, f.name)
        value = raw[f.name]
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        try:
            if isinstance(default, bool):
                values[f.name] = _parse_bool(value)
            elif isinstance(default, int):
                values[f.name] = int(value)
            elif isinstance(default, float):
                values[f.name] = float(value)
            else:
                values[f.name] = value
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for {cls.__name__}.{f.name}: {value!r}") from e
    return values


def build_scoring(raw: dict[str, Any], preset: str | None = None) -> ScoringConfig:
    """Start from a named preset and apply field overrides on top."""
    name = preset or raw.get("preset") or DEFAULT_PRESET
    if name not in SCORING_PRESETS:
        raise ValueError(
            f"Unknown scoring preset '{name}' "
            f"(expected one of: {', '.join(sorted(SCORING_PRESETS))})"
        )
    base = SCORING_PRESETS[name]
    overrides = _coerce_fields(ScoringConfig, base, raw)
    return dataclasses.replace(base, **overrides)


def _build_exit(raw: dict[str, Any]) -> ExitConfig:
    return ExitConfig(**_coerce_fields(ExitConfig, ExitConfig(), raw))


def _build_portfolio(raw: dict[str, Any]) -> PortfolioConfig:
    return PortfolioConfig(**_coerce_fields(PortfolioConfig, PortfolioConfig(), raw))


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(**_coerce_fields(MonitorConfig, MonitorConfig(), raw))


def _build_data_sources(raw: dict[str, Any]) -> DataSourcesConfig:
    ray = raw.get("raydium") or {}
    demo = raw.get("demo") or {}
    # seed defaults to None, so type it against an int template
    demo_values = _coerce_fields(DemoConfig, DemoConfig(seed=0), demo)
    return DataSourcesConfig(
        raydium=RaydiumConfig(**_coerce_fields(RaydiumConfig, RaydiumConfig(), ray)),
        demo=DemoConfig(**demo_values),
    )


def _build_state(raw: dict[str, Any]) -> StateConfig:
    return StateConfig(data_dir=str(raw.get("data_dir") or "data"))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    config_path: str | Path | None = None, preset: str | None = None
) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
        preset: Scoring preset name overriding ``scoring.preset`` in the file.
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        scoring=build_scoring(raw.get("scoring", {}), preset),
        exit=_build_exit(raw.get("exit", {})),
        portfolio=_build_portfolio(raw.get("portfolio", {})),
        monitor=_build_monitor(raw.get("monitor", {})),
        data_sources=_build_data_sources(raw.get("data_sources", {})),
        state=_build_state(raw.get("state", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    scoring = cfg.scoring
    if not scoring.min_age_hours <= scoring.max_age_hours:
        raise ValueError("scoring.min_age_hours must not exceed max_age_hours")
    if not scoring.min_age_hours <= scoring.sweet_spot_age_hours <= scoring.max_age_hours:
        raise ValueError("scoring.sweet_spot_age_hours must lie inside the age window")
    if min(scoring.min_yield, scoring.min_tvl, scoring.min_volume_24h) < 0:
        raise ValueError("scoring minimums must be non-negative")

    if cfg.exit.stop_loss_pct >= 0:
        raise ValueError("exit.stop_loss_pct must be negative")
    if cfg.exit.take_profit_pct <= 0:
        raise ValueError("exit.take_profit_pct must be positive")

    portfolio = cfg.portfolio
    if portfolio.position_size <= 0:
        raise ValueError("portfolio.position_size must be positive")
    if portfolio.max_positions < 1:
        raise ValueError("portfolio.max_positions must be at least 1")
    if portfolio.starting_cash < 0:
        raise ValueError("portfolio.starting_cash must be non-negative")

    monitor = cfg.monitor
    if min(
        monitor.scan_interval_seconds,
        monitor.position_update_interval_seconds,
        monitor.performance_log_interval_seconds,
    ) <= 0:
        raise ValueError("monitor intervals must be positive")
    if monitor.max_actions < 1:
        raise ValueError("monitor.max_actions must be at least 1")
