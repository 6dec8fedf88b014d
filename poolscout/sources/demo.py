"""Demo pool source: bundled sample pools with simulated drift.

Used when demo mode is on and as the fallback when the live source keeps
failing. Pools are stamped with creation times relative to the fetch time.
"""
from __future__ import annotations

import dataclasses
import logging
import random
from datetime import timedelta

from ..config import DemoConfig
from ..models import PoolRecord, PoolSnapshot, TokenInfo, utcnow
from .validation import validate_pool

logger = logging.getLogger(__name__)

SOL = TokenInfo("So11111111111111111111111111111111111111112", "SOL", 9)

# (pool_id, base token, quote token, tvl, volume_24h, fees_24h, apy, age_hours, lp supply, price)
_DEMO_POOLS = (
    (
        "demo_pool_1_high_apy",
        dataclasses.replace(SOL, amount=300),
        TokenInfo("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "USDC", 6, 50000),
        75000, 25000, 62.5, 18.5, 2.0, 1000000, 167.5,
    ),
    (
        "demo_pool_2_medium_apy",
        TokenInfo("4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", "RAY", 6, 100000),
        dataclasses.replace(SOL, amount=150),
        45000, 15000, 37.5, 14.2, 4.0, 750000, 0.45,
    ),
    (
        "demo_pool_3_low_apy",
        TokenInfo("orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE", "ORCA", 6, 80000),
        dataclasses.replace(SOL, amount=120),
        30000, 8000, 20, 8.5, 6.0, 500000, 2.5,
    ),
    (
        "demo_pool_4_very_high_apy",
        TokenInfo("memeToken123456789", "MEME", 9, 1000000),
        dataclasses.replace(SOL, amount=50),
        12000, 35000, 87.5, 125.0, 0.5, 2000000, 0.012,
    ),
    (
        "demo_pool_5_low_liquidity",
        TokenInfo("lowLiqToken987654321", "LOW", 6, 5000),
        dataclasses.replace(SOL, amount=25),
        5500, 2000, 5, 22.0, 3.0, 100000, 0.22,
    ),
    (
        "demo_pool_6_balanced",
        TokenInfo("Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", "USDT", 6, 60000),
        TokenInfo("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "USDC", 6, 58000),
        118000, 40000, 100, 16.8, 12.0, 1500000, 1.03,
    ),
)


def demo_pools() -> list[PoolRecord]:
    """All bundled demo pools, aged relative to now."""
    now = utcnow()
    return [
        PoolRecord(
            pool_id=pool_id,
            base_token=base,
            quote_token=quote,
            tvl=float(tvl),
            volume_24h=float(volume),
            fees_24h=float(fees),
            apy=float(apy),
            created_at=now - timedelta(hours=age_hours),
            lp_token_supply=float(supply),
            price=float(price),
        )
        for pool_id, base, quote, tvl, volume, fees, apy, age_hours, supply, price in _DEMO_POOLS
    ]


class DemoPoolSource:
    """Serve random subsets of the demo pools and drift their metrics over time."""

    def __init__(self, config: DemoConfig | None = None, rng: random.Random | None = None) -> None:
        config = config or DemoConfig()
        self.sample_size = config.sample_size
        self._rng = rng or random.Random(config.seed)
        self._latest: dict[str, PoolRecord] = {}

    @property
    def name(self) -> str:
        return "demo"

    async def fetch_pools(self) -> list[PoolRecord]:
        pools = demo_pools()
        count = min(self.sample_size, len(pools))
        chosen = self._rng.sample(pools, count)
        for pool in chosen:
            self._latest.setdefault(pool.pool_id, pool)
        logger.info("Demo source: serving %d pools", len(chosen))
        return chosen

    def validate(self, pool: PoolRecord) -> bool:
        return validate_pool(pool)

    def simulate_changes(self, pool: PoolRecord) -> PoolRecord:
        """Random walk: APY +/-2 points, volume +/-20%, price +/-5%."""
        rng = self._rng
        volume = max(0.0, pool.volume_24h * (1 + (rng.random() - 0.5) * 0.4))
        return dataclasses.replace(
            pool,
            apy=max(0.0, pool.apy + (rng.random() - 0.5) * 4),
            volume_24h=volume,
            price=max(0.001, pool.price * (1 + (rng.random() - 0.5) * 0.1)),
            fees_24h=volume * 0.0025,
        )

    async def fetch_metrics(self, pool_id: str) -> PoolSnapshot | None:
        pool = self._latest.get(pool_id)
        if pool is None:
            return None
        pool = self.simulate_changes(pool)
        self._latest[pool_id] = pool
        return pool.snapshot()
