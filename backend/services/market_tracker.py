import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from exceptions import NotFoundError, ValidationError
from models import ChartPoint, Market, MarketStatus, PlatformStats, Prediction, User, Wager, utcnow
from .parsing import MAX_PAGE_SIZE, parse_int_id, parse_non_negative, parse_probability
from .platform_stats import ensure_platform_stats
from .users import get_or_create_user

logger = logging.getLogger(__name__)

VOLUME_WINDOW = timedelta(hours=24)
PRICE_SUM_TOLERANCE = 1e-6
MAX_TRENDING = 50


def compute_prices(total_yes: float, total_no: float) -> tuple[float, float]:
    """Share of stake on each side. An empty market sits at 0.50 / 0.50."""
    total = total_yes + total_no
    if total <= 0:
        return 0.5, 0.5
    yes_price = total_yes / total
    return yes_price, 1.0 - yes_price


def refresh_volume_24h(db: Session, market: Market, now: Optional[datetime] = None) -> float:
    """Recompute the rolling 24h volume from the wagers already applied."""
    now = now or utcnow()
    volume = db.query(
        func.coalesce(func.sum(Wager.amount), 0.0)
    ).filter(
        Wager.market_id == market.id,
        Wager.exposure_applied.is_(True),
        Wager.timestamp >= now - VOLUME_WINDOW,
    ).scalar()
    market.volume_24h = round(float(volume), 6)
    return market.volume_24h


def apply_wager_exposure(db: Session, wager_id: int, now: Optional[datetime] = None) -> bool:
    """
    Fold one wager into every aggregate that depends on it.

    Updates the market's staked totals, prices and 24h volume, appends a
    chart point, creates the bettor on first interaction and adds to their
    volume, and bumps platform totals. Keyed by wager id: a second call for
    the same wager changes nothing and returns False.
    """
    wager = db.query(Wager).filter(Wager.id == wager_id).first()
    if wager is None:
        raise NotFoundError("Wager not found", "WAGER_NOT_FOUND")
    if wager.exposure_applied:
        return False

    claimed = db.query(Wager).filter(
        Wager.id == wager.id,
        Wager.exposure_applied.is_(False),
    ).update({Wager.exposure_applied: True}, synchronize_session=False)
    if claimed == 0:
        return False
    db.refresh(wager)

    # Totals move in SQL; the re-read under lock then prices off the latest row
    column = Market.total_yes_amount if wager.prediction == Prediction.YES else Market.total_no_amount
    db.query(Market).filter(Market.id == wager.market_id).update(
        {column: column + wager.amount}, synchronize_session=False
    )
    market = (
        db.query(Market)
        .filter(Market.id == wager.market_id)
        .populate_existing()
        .with_for_update()
        .one()
    )
    market.yes_price, market.no_price = compute_prices(
        market.total_yes_amount, market.total_no_amount
    )
    refresh_volume_24h(db, market, now)

    db.add(ChartPoint(
        market_id=market.id,
        timestamp=wager.timestamp,
        yes_price=market.yes_price,
        no_price=market.no_price,
        volume=wager.amount,
    ))

    user = get_or_create_user(db, wager.user_wallet)
    user.total_volume = User.total_volume + wager.amount
    user.updated_at = utcnow()

    stats = ensure_platform_stats(db)
    stats.total_bets = PlatformStats.total_bets + 1
    stats.total_volume = PlatformStats.total_volume + wager.amount
    stats.total_fees_collected = PlatformStats.total_fees_collected + wager.platform_fee
    stats.pool_balance = PlatformStats.pool_balance + wager.amount
    stats.last_updated = utcnow()

    db.flush()
    logger.info(
        "exposure applied: wager=%s market=%s yes_price=%.4f",
        wager.id, market.id, market.yes_price,
    )
    return True


def reconcile_pending_exposure(db: Session) -> int:
    """Apply every committed wager whose exposure step never ran."""
    pending = db.query(Wager.id).filter(
        Wager.exposure_applied.is_(False)
    ).order_by(Wager.timestamp, Wager.id).all()

    applied = 0
    for (wager_id,) in pending:
        if apply_wager_exposure(db, wager_id):
            applied += 1
    return applied


def record_chart_point(
    db: Session,
    market_id,
    yes_price,
    no_price,
    volume=None,
    timestamp: Optional[datetime] = None,
) -> ChartPoint:
    market_id = parse_int_id(market_id)
    yes = parse_probability(yes_price, "yesPrice", "INVALID_YES_PRICE")
    no = parse_probability(no_price, "noPrice", "INVALID_NO_PRICE")
    vol = 0.0 if volume is None else parse_non_negative(volume, "volume", "INVALID_VOLUME")

    if not math.isclose(yes + no, 1.0, abs_tol=PRICE_SUM_TOLERANCE):
        raise ValidationError("yesPrice and noPrice must sum to 1", "PRICE_SUM_MISMATCH")

    if db.query(Market.id).filter(Market.id == market_id).first() is None:
        raise NotFoundError("Market not found", "MARKET_NOT_FOUND")

    point = ChartPoint(
        market_id=market_id,
        timestamp=timestamp or utcnow(),
        yes_price=yes,
        no_price=no,
        volume=vol,
    )
    db.add(point)
    db.flush()
    return point


def query_chart_range(
    db: Session,
    market_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = MAX_PAGE_SIZE,
) -> list[ChartPoint]:
    """Points in ascending time inside the inclusive [start, end] window."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    if start is not None and end is not None and start > end:
        return []

    query = db.query(ChartPoint).filter(ChartPoint.market_id == market_id)
    if start is not None:
        query = query.filter(ChartPoint.timestamp >= start)
    if end is not None:
        query = query.filter(ChartPoint.timestamp <= end)

    return query.order_by(ChartPoint.timestamp.asc(), ChartPoint.id.asc()).limit(limit).all()


def get_trending_markets(
    db: Session,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> list[Market]:
    """
    Active markets ranked by stake placed in the trailing 24 hours.

    The window is summed in the query itself, so a market whose wagers have
    all aged out ranks by 0 even if nothing has touched its row since. The
    stored ``volume_24h`` of each returned market is brought up to date.
    """
    limit = max(1, min(limit, MAX_TRENDING))
    now = now or utcnow()

    recent_volume = (
        select(func.coalesce(func.sum(Wager.amount), 0.0))
        .where(
            Wager.market_id == Market.id,
            Wager.exposure_applied.is_(True),
            Wager.timestamp >= now - VOLUME_WINDOW,
        )
        .correlate(Market)
        .scalar_subquery()
        .label("recent_volume")
    )

    rows = db.query(Market, recent_volume).filter(
        Market.status == MarketStatus.ACTIVE
    ).order_by(recent_volume.desc(), Market.id.asc()).limit(limit).all()

    markets = []
    for market, volume in rows:
        market.volume_24h = round(float(volume), 6)
        markets.append(market)
    return markets
