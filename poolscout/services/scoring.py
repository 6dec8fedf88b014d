"""Pool entry scoring: additive points with early rejection on hard gates."""
from __future__ import annotations

import logging
from datetime import datetime

from ..audit import ActionRecord, ActionType, EvaluationDetails
from ..config import ScoringConfig
from ..interfaces.audit_sink import AuditSink
from ..models import Decision, EntryEvaluation, PoolRecord, utcnow

logger = logging.getLogger(__name__)


def liquidity_ratio(pool: PoolRecord) -> float:
    """Balance of the two reserves in quote terms; 1.0 is a perfect 50/50 split."""
    base_value = pool.base_token.amount * pool.price
    quote_value = pool.quote_token.amount
    total_value = base_value + quote_value
    if total_value == 0:
        return 0.0
    return 2 * min(base_value, quote_value) / total_value


class PoolScorer:
    """Map a pool record to an ENTER/SKIP decision with reasons and warnings."""

    def __init__(self, config: ScoringConfig, audit: AuditSink | None = None) -> None:
        self._config = config
        self._audit = audit

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def evaluate(self, pool: PoolRecord, now: datetime | None = None) -> EntryEvaluation:
        """Score ``pool`` against the configured thresholds.

        Hard gates (yield, TVL, volume) short-circuit: the first one that
        fails returns SKIP with that gate's reason only, and the score holds
        just the points of the gates passed before it.
        """
        cfg = self._config
        now = now or utcnow()
        age_hours = pool.age_hours(now)

        if self._audit is not None:
            self._audit.record(
                ActionRecord(
                    action_type=ActionType.POOL_EVALUATED,
                    pool_id=pool.pool_id,
                    details=EvaluationDetails(
                        apy=pool.apy,
                        tvl=pool.tvl,
                        volume_24h=pool.volume_24h,
                        age_hours=age_hours,
                    ),
                    timestamp=now,
                )
            )

        reasons: list[str] = []
        warnings: list[str] = []
        score = 0

        if pool.apy < cfg.min_yield:
            return self._skip(
                pool, score, f"✗ APY {pool.apy:.2f}% below minimum {cfg.min_yield:g}%", now
            )
        score += cfg.yield_points
        reasons.append(f"✓ APY {pool.apy:.2f}% meets minimum {cfg.min_yield:g}%")

        if pool.tvl < cfg.min_tvl:
            return self._skip(
                pool, score, f"✗ TVL ${pool.tvl:,.0f} below minimum ${cfg.min_tvl:,.0f}", now
            )
        score += cfg.tvl_points
        reasons.append(f"✓ TVL ${pool.tvl:,.0f} meets minimum ${cfg.min_tvl:,.0f}")

        if pool.volume_24h < cfg.min_volume_24h:
            return self._skip(
                pool,
                score,
                f"✗ 24h volume ${pool.volume_24h:,.0f} below minimum ${cfg.min_volume_24h:,.0f}",
                now,
            )
        score += cfg.volume_points
        reasons.append(
            f"✓ 24h volume ${pool.volume_24h:,.0f} meets minimum ${cfg.min_volume_24h:,.0f}"
        )

        # Age
        if cfg.min_age_hours <= age_hours <= cfg.max_age_hours:
            score += cfg.age_window_points
            reasons.append(f"✓ Pool age {age_hours:.1f}h within acceptable range")
            if age_hours <= cfg.sweet_spot_age_hours:
                score += cfg.sweet_spot_points
                reasons.append(
                    f"✓ Pool age {age_hours:.1f}h in {cfg.sweet_spot_age_hours:g}h sweet spot"
                )
        elif age_hours < cfg.min_age_hours:
            score += cfg.age_outside_points
            warnings.append(f"⚠ Pool is very new ({age_hours:.1f}h), higher risk")
        else:
            score += cfg.age_outside_points
            warnings.append(f"⚠ Pool is old ({age_hours:.1f}h), potentially less profitable")

        # Liquidity balance
        ratio = liquidity_ratio(pool)
        if ratio >= cfg.min_liquidity_ratio:
            score += cfg.balanced_liquidity_points
            reasons.append(f"✓ Good liquidity balance (ratio: {ratio:.2f})")
        else:
            score += cfg.unbalanced_liquidity_points
            warnings.append(f"⚠ Unbalanced liquidity (ratio: {ratio:.2f})")

        # Exceptional metrics
        if pool.apy > cfg.min_yield * cfg.exceptional_yield_multiple:
            score += cfg.exceptional_yield_points
            reasons.append(f"🚀 Exceptional APY ({pool.apy:.2f}%)")
        if pool.volume_24h > cfg.min_volume_24h * cfg.high_volume_multiple:
            score += cfg.high_volume_points
            reasons.append("📈 High volume activity")

        # Red flags
        if pool.apy > cfg.yield_ceiling:
            score -= cfg.yield_ceiling_penalty
            warnings.append(
                f"🚨 Extremely high APY ({pool.apy:.2f}%) - possible rug pull risk"
            )
        if pool.tvl < pool.volume_24h * cfg.min_tvl_to_volume_ratio:
            score -= cfg.thin_tvl_penalty
            warnings.append("🚨 Low TVL relative to volume - high volatility risk")

        decision = Decision.ENTER if score >= cfg.min_score_to_enter else Decision.SKIP
        logger.info(
            "Pool evaluation %s (%s): score %d/%d -> %s",
            pool.symbols,
            pool.pool_id,
            score,
            cfg.min_score_to_enter,
            decision.value,
        )
        return EntryEvaluation(
            pool_id=pool.pool_id,
            decision=decision,
            score=score,
            reasons=tuple(reasons),
            warnings=tuple(warnings),
            risk_score=self.risk_score(pool, now),
            timestamp=now,
        )

    def _skip(
        self, pool: PoolRecord, score: int, reason: str, now: datetime
    ) -> EntryEvaluation:
        logger.debug("Pool %s skipped at hard gate: %s", pool.pool_id, reason)
        return EntryEvaluation(
            pool_id=pool.pool_id,
            decision=Decision.SKIP,
            score=score,
            reasons=(reason,),
            risk_score=self.risk_score(pool, now),
            timestamp=now,
        )

    @staticmethod
    def risk_score(pool: PoolRecord, now: datetime | None = None) -> int:
        """Heuristic risk score, 0-100 (higher is riskier)."""
        risk = 0

        age_hours = pool.age_hours(now)
        if age_hours < 1:
            risk += 30
        elif age_hours < 24:
            risk += 20
        elif age_hours > 168:
            risk += 10

        if pool.apy > 100:
            risk += 25
        elif pool.apy > 50:
            risk += 15
        elif pool.apy > 30:
            risk += 5

        ratio = liquidity_ratio(pool)
        if ratio < 0.3:
            risk += 20
        elif ratio < 0.5:
            risk += 10

        if pool.tvl > 0:
            volume_to_tvl = pool.volume_24h / pool.tvl
            if volume_to_tvl > 2:
                risk += 15
            elif volume_to_tvl > 1:
                risk += 5

        return min(100, risk)
