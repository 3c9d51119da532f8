import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from exceptions import ConflictError, NotFoundError
from models import Market, PlatformStats, User, Wager, utcnow
from .parsing import parse_non_negative

logger = logging.getLogger(__name__)

# Counter fields and the error code used when a supplied value is invalid
STATS_FIELDS = {
    "total_fees_collected": "INVALID_TOTAL_FEES_COLLECTED",
    "total_volume": "INVALID_TOTAL_VOLUME",
    "total_markets": "INVALID_TOTAL_MARKETS",
    "total_users": "INVALID_TOTAL_USERS",
    "total_bets": "INVALID_TOTAL_BETS",
    "pool_balance": "INVALID_POOL_BALANCE",
}
INTEGER_FIELDS = {"total_markets", "total_users", "total_bets"}


def _find_stats(db: Session):
    return db.query(PlatformStats).order_by(PlatformStats.id).first()


def get_platform_stats(db: Session) -> PlatformStats:
    stats = _find_stats(db)
    if stats is None:
        raise NotFoundError("Platform stats not found", "STATS_NOT_FOUND")
    return stats


def ensure_platform_stats(db: Session) -> PlatformStats:
    """Return the singleton row, creating it the first time."""
    stats = _find_stats(db)
    if stats is None:
        stats = PlatformStats(
            total_fees_collected=0.0,
            total_volume=0.0,
            total_markets=0,
            total_users=0,
            total_bets=0,
            pool_balance=0.0,
            last_updated=utcnow(),
        )
        db.add(stats)
        db.flush()
        logger.info("platform stats row created")
    return stats


def _parse_updates(values: dict) -> dict:
    updates = {}
    for key, code in STATS_FIELDS.items():
        if values.get(key) is None:
            continue
        number = parse_non_negative(values[key], key, code)
        updates[key] = int(number) if key in INTEGER_FIELDS else number
    return updates


def create_platform_stats(db: Session, **values) -> PlatformStats:
    if _find_stats(db) is not None:
        raise ConflictError("Platform stats already exist", "STATS_ALREADY_EXIST")
    updates = _parse_updates(values)
    stats = ensure_platform_stats(db)
    for key, value in updates.items():
        setattr(stats, key, value)
    return stats


def update_platform_stats(db: Session, **values) -> PlatformStats:
    stats = _find_stats(db)
    if stats is None:
        raise NotFoundError(
            "Platform stats not found. Create stats first.", "STATS_NOT_FOUND"
        )
    updates = _parse_updates(values)
    for key, value in updates.items():
        setattr(stats, key, value)
    stats.last_updated = utcnow()
    return stats


def recompute_platform_stats(db: Session) -> PlatformStats:
    """Rebuild every counter from the ledger tables."""
    stats = ensure_platform_stats(db)

    total_volume, total_fees, total_bets = db.query(
        func.coalesce(func.sum(Wager.amount), 0.0),
        func.coalesce(func.sum(Wager.platform_fee), 0.0),
        func.count(Wager.id),
    ).one()
    paid_out = db.query(
        func.coalesce(func.sum(Wager.actual_payout), 0.0)
    ).filter(Wager.is_settled.is_(True)).scalar()

    stats.total_volume = round(float(total_volume), 4)
    stats.total_fees_collected = round(float(total_fees), 4)
    stats.total_bets = int(total_bets)
    stats.total_markets = db.query(Market).count()
    stats.total_users = db.query(User).count()
    stats.pool_balance = round(float(total_volume) - float(paid_out), 4)
    stats.last_updated = utcnow()

    logger.info("platform stats recomputed: bets=%d markets=%d",
                stats.total_bets, stats.total_markets)
    return stats
