import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from exceptions import MarketNotActiveError, NotFoundError
from models import Market, MarketStatus, Wager, utcnow
from .parsing import (
    MAX_PAGE_SIZE,
    parse_int_id,
    parse_non_negative,
    parse_positive_amount,
    parse_prediction,
    parse_probability,
    parse_wallet,
)

logger = logging.getLogger(__name__)


@dataclass
class WagerQuote:
    stake: float
    platform_fee: float
    net_stake: float
    price: float
    settlement_fee: float
    potential_payout: float


def quote_wager(
    stake: float,
    price: float,
    fee_percentage: float,
    settlement_fee_percentage: float = 0.0,
) -> WagerQuote:
    """
    Fee and contracted payout for a stake at a given outcome price.

    The platform fee comes off the top; the rest buys the outcome at
    ``price``. A winning wager pays net stake / price, less the settlement
    fee taken from that gross payout.
    """
    stake = parse_positive_amount(stake)
    price = parse_probability(price, "priceAtBet", "INVALID_PRICE_AT_BET")
    platform_fee = stake * (fee_percentage / 100)
    net_stake = stake - platform_fee
    gross_payout = net_stake / price if price > 0 else 0.0
    settlement_fee = gross_payout * (settlement_fee_percentage / 100)
    return WagerQuote(
        stake=stake,
        platform_fee=round(platform_fee, 6),
        net_stake=round(net_stake, 6),
        price=price,
        settlement_fee=round(settlement_fee, 6),
        potential_payout=round(gross_payout - settlement_fee, 6),
    )


def place_wager(
    db: Session,
    market_id,
    wallet,
    stake,
    prediction,
    price_at_bet,
    potential_payout,
    platform_fee,
    tx_ref: Optional[str] = None,
) -> Wager:
    """
    Validate and insert a wager.

    Every precondition is checked before the row is added, so a rejected
    wager leaves nothing behind. Market and user aggregates are not touched
    here; the caller runs the exposure step in the same transaction.
    """
    market_id = parse_int_id(market_id)
    wallet = parse_wallet(wallet)
    amount = parse_positive_amount(stake)
    side = parse_prediction(prediction)
    price = parse_probability(price_at_bet, "priceAtBet", "INVALID_PRICE_AT_BET")
    payout = parse_non_negative(potential_payout, "potentialPayout", "INVALID_POTENTIAL_PAYOUT")
    fee = parse_non_negative(platform_fee, "platformFee", "INVALID_PLATFORM_FEE")

    # Row lock serializes this against resolve/close on the same market
    market = db.query(Market).filter(Market.id == market_id).with_for_update().first()
    if market is None:
        raise NotFoundError("Market not found", "MARKET_NOT_FOUND")

    if market.status != MarketStatus.ACTIVE:
        raise MarketNotActiveError("Market is not active", "MARKET_NOT_ACTIVE")

    now = utcnow()
    if market.closes_at is not None and now >= market.closes_at:
        raise MarketNotActiveError("Market has closed for betting", "MARKET_CLOSED")

    if tx_ref is not None:
        tx_ref = tx_ref.strip() or None

    wager = Wager(
        market_id=market.id,
        user_wallet=wallet,
        amount=amount,
        prediction=side,
        price_at_bet=price,
        potential_payout=payout,
        actual_payout=0.0,
        platform_fee=fee,
        transaction_signature=tx_ref,
        timestamp=now,
        is_settled=False,
        exposure_applied=False,
    )
    db.add(wager)
    db.flush()

    # A resolve committed between the check above and this insert would
    # strand an unsettled wager on a resolved market.
    status = (
        db.query(Market.status)
        .filter(Market.id == market.id)
        .with_for_update()
        .scalar()
    )
    if status != MarketStatus.ACTIVE:
        raise MarketNotActiveError("Market is not active", "MARKET_NOT_ACTIVE")

    logger.info("wager %s recorded on market %s", wager.id, market.id)
    return wager


def get_wager(db: Session, wager_id: int) -> Wager:
    wager = db.query(Wager).filter(Wager.id == wager_id).first()
    if wager is None:
        raise NotFoundError("Wager not found", "WAGER_NOT_FOUND")
    return wager


def list_wagers(
    db: Session,
    market_id: Optional[int] = None,
    wallet: Optional[str] = None,
    settled: Optional[bool] = None,
    limit: int = 10,
    offset: int = 0,
) -> list[Wager]:
    """Newest first, at most MAX_PAGE_SIZE rows per page."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    query = db.query(Wager)
    if market_id is not None:
        query = query.filter(Wager.market_id == market_id)
    if wallet:
        query = query.filter(Wager.user_wallet == wallet)
    if settled is not None:
        query = query.filter(Wager.is_settled.is_(settled))

    return query.order_by(
        Wager.timestamp.desc(), Wager.id.desc()
    ).offset(offset).limit(limit).all()
