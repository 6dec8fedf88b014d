"""Pool record validity check shared by all sources."""
import logging

from ..models import PoolRecord

logger = logging.getLogger(__name__)


def validate_pool(pool: PoolRecord) -> bool:
    """True if the record is usable for scoring."""
    is_valid = (
        pool.tvl > 0
        and pool.apy >= 0
        and pool.volume_24h >= 0
        and pool.base_token.amount >= 0
        and pool.quote_token.amount >= 0
        and pool.lp_token_supply >= 0
        and pool.price > 0
    )
    if not is_valid:
        logger.debug("Pool %s failed validation", pool.pool_id)
    return is_valid
