"""Raydium v3 API pool source."""
from __future__ import annotations

import logging
import ssl
from datetime import datetime, timezone
from typing import Any

import aiohttp
import certifi

from ..config import RaydiumConfig
from ..models import PoolRecord, PoolSnapshot, TokenInfo, utcnow
from .validation import validate_pool

logger = logging.getLogger(__name__)

_HEADERS = {"Accept": "application/json", "User-Agent": "poolscout/0.1"}


def calculate_apy(fees_24h: float, tvl: float, volume_24h: float = 0.0) -> float:
    """Annualize one day of fees against TVL, plus a small volume boost."""
    if tvl <= 0:
        return 0.0
    apy = fees_24h / tvl * 365 * 100
    volume_boost = min(volume_24h / tvl, 2) * 0.1
    return max(0.0, apy + volume_boost)


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _decimals(mint: dict[str, Any], default: int = 9) -> int:
    value = mint.get("decimals")
    return default if value is None else int(value)


class RaydiumPoolSource:
    """Discover recent standard pools and fetch per-pool metrics from Raydium."""

    def __init__(self, config: RaydiumConfig) -> None:
        self.api_url = config.api_url.rstrip("/")
        self.timeout = config.timeout
        self.page_size = config.page_size
        self.max_pool_age_hours = config.max_pool_age_hours
        self.max_apy = config.max_apy

    @property
    def name(self) -> str:
        return "raydium"

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.get(
                f"{self.api_url}{path}",
                params=params,
                headers=_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    raise RuntimeError(f"Raydium HTTP {response.status} for {path}")
                data = await response.json()

        if not data.get("success"):
            raise RuntimeError(f"Raydium API error: {data.get('msg', 'unknown error')}")
        return data

    def _parse_pool(self, raw: dict[str, Any], now: datetime) -> PoolRecord | None:
        """Turn one list entry into a PoolRecord, or None if it is filtered out."""
        mint_a = raw.get("mintA") or {}
        mint_b = raw.get("mintB") or {}
        if not raw.get("id") or not mint_a or not mint_b:
            logger.debug("Raydium pool missing required fields: %s", raw.get("id"))
            return None

        open_time = datetime.fromtimestamp(int(_float(raw.get("openTime"))), tz=timezone.utc)
        age_hours = (now - open_time).total_seconds() / 3600
        if age_hours > self.max_pool_age_hours:
            logger.debug("Raydium pool %s too old (%.0fh)", raw["id"], age_hours)
            return None

        day = raw.get("day") or {}
        tvl = _float(raw.get("tvl"))
        volume_24h = _float(day.get("volume"))
        fees_24h = _float(day.get("volumeFee"))
        apr_24h = _float(day.get("apr"))

        if not (tvl > 100 and volume_24h > 0 and 0 < apr_24h < 50000):
            logger.debug(
                "Raydium pool %s filtered out (TVL $%.0f, vol $%.0f, APR %.2f%%)",
                raw["id"],
                tvl,
                volume_24h,
                apr_24h,
            )
            return None

        return PoolRecord(
            pool_id=raw["id"],
            base_token=TokenInfo(
                mint=mint_a.get("address", ""),
                symbol=mint_a.get("symbol") or "UNKNOWN",
                decimals=_decimals(mint_a),
                amount=_float(raw.get("mintAmountA")),
            ),
            quote_token=TokenInfo(
                mint=mint_b.get("address", ""),
                symbol=mint_b.get("symbol") or "UNKNOWN",
                decimals=_decimals(mint_b),
                amount=_float(raw.get("mintAmountB")),
            ),
            tvl=tvl,
            volume_24h=volume_24h,
            fees_24h=fees_24h,
            apy=min(apr_24h, self.max_apy),
            created_at=open_time,
            lp_token_supply=_float((raw.get("lpMint") or {}).get("supply")),
            price=_float(raw.get("price")),
        )

    async def fetch_pools(self) -> list[PoolRecord]:
        """Fetch the highest-APR standard pools and keep the recent ones."""
        params = {
            "poolType": "standard",
            "poolSortField": "apr24h",
            "sortType": "desc",
            "pageSize": self.page_size,
            "page": 1,
        }
        try:
            data = await self._get("/pools/info/list", params)
        except Exception as e:
            logger.error("Error fetching pools from Raydium: %s", e)
            return []

        raw_pools = (data.get("data") or {}).get("data") or []
        now = utcnow()
        pools: list[PoolRecord] = []
        for raw in raw_pools[: self.page_size]:
            try:
                pool = self._parse_pool(raw, now)
            except (TypeError, ValueError, KeyError) as e:
                logger.warning("Skipping malformed Raydium pool %s: %s", raw.get("id"), e)
                continue
            if pool is not None:
                pools.append(pool)

        logger.info("Raydium: %d qualifying pools of %d listed", len(pools), len(raw_pools))
        return pools

    def validate(self, pool: PoolRecord) -> bool:
        return validate_pool(pool)

    async def fetch_metrics(self, pool_id: str) -> PoolSnapshot | None:
        """Fetch current metrics for one pool; None when unavailable."""
        try:
            data = await self._get("/pools/info/ids", {"ids": pool_id})
        except Exception as e:
            logger.error("Error fetching Raydium metrics for %s: %s", pool_id, e)
            return None

        entries = data.get("data") or []
        if not entries or not entries[0]:
            logger.warning("No Raydium data found for pool %s", pool_id)
            return None

        raw = entries[0]
        day = raw.get("day") or {}
        tvl = _float(raw.get("tvl"))
        volume_24h = _float(day.get("volume"))
        fees_24h = _float(day.get("volumeFee"))
        return PoolSnapshot(
            pool_id=pool_id,
            apy=calculate_apy(fees_24h, tvl, volume_24h),
            tvl=tvl,
            volume_24h=volume_24h,
            price=_float(raw.get("price")),
            fees_24h=fees_24h,
        )
