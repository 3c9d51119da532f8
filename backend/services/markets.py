import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from exceptions import NotFoundError, ValidationError
from models import Market, MarketStatus, PlatformStats, utcnow
from .platform_stats import ensure_platform_stats

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "title": Market.title,
    "status": Market.status,
    "category": Market.category,
    "createdAt": Market.created_at,
    "closesAt": Market.closes_at,
    "volume24h": Market.volume_24h,
    "totalYesAmount": Market.total_yes_amount,
    "totalNoAmount": Market.total_no_amount,
}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def get_market(db: Session, market_id: int) -> Market:
    market = db.query(Market).filter(Market.id == market_id).first()
    if market is None:
        raise NotFoundError("Market not found", "MARKET_NOT_FOUND")
    return market


def create_market(
    db: Session,
    title: str,
    created_by: str,
    description: Optional[str] = None,
    image_url: Optional[str] = None,
    category: Optional[str] = None,
    closes_at: Optional[datetime] = None,
) -> Market:
    """New markets open ACTIVE at 0.50 / 0.50 with nothing staked."""
    title = _clean(title)
    if not title:
        raise ValidationError("Title is required and must be a non-empty string", "MISSING_TITLE")
    created_by = _clean(created_by)
    if not created_by:
        raise ValidationError("CreatedBy is required and must be a non-empty string", "MISSING_CREATED_BY")

    market = Market(
        title=title,
        description=_clean(description),
        image_url=_clean(image_url),
        category=_clean(category),
        created_by=created_by,
        created_at=utcnow(),
        closes_at=closes_at,
        status=MarketStatus.ACTIVE,
        total_yes_amount=0.0,
        total_no_amount=0.0,
        yes_price=0.5,
        no_price=0.5,
        volume_24h=0.0,
    )
    db.add(market)

    stats = ensure_platform_stats(db)
    stats.total_markets = PlatformStats.total_markets + 1

    db.flush()
    logger.info("market created: id=%s", market.id)
    return market


def list_markets(
    db: Session,
    search: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    sort: str = "createdAt",
    order: str = "desc",
    limit: int = 10,
    offset: int = 0,
) -> list[Market]:
    query = db.query(Market)
    if search:
        query = query.filter(Market.title.contains(search.strip()))
    if status:
        try:
            query = query.filter(Market.status == MarketStatus(status.strip().lower()))
        except ValueError:
            raise ValidationError(
                "status must be one of active, closed, resolved", "INVALID_STATUS"
            ) from None
    if category:
        query = query.filter(Market.category == category.strip())

    column = SORT_COLUMNS.get(sort, Market.created_at)
    if order == "asc":
        query = query.order_by(column.asc(), Market.id.asc())
    else:
        query = query.order_by(column.desc(), Market.id.desc())

    return query.offset(offset).limit(limit).all()
