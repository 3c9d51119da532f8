import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from exceptions import AlreadyResolvedError, MarketNotActiveError, NotFoundError
from models import Market, MarketStatus, PlatformStats, Prediction, User, Wager, utcnow
from .parsing import parse_int_id, parse_prediction
from .platform_stats import ensure_platform_stats
from .users import find_user

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    wager_id: int
    user_wallet: str
    prediction: str
    stake: float
    actual_payout: float
    won: bool


@dataclass
class MarketSettlementSummary:
    market: Market
    outcome: str
    total_payout: float
    wagers_settled: int
    settled_wagers: list[Wager]
    results: list[SettlementResult]


def compute_payout(wager: Wager, outcome: Prediction) -> float:
    """The full contracted payout if the wager backed the outcome, else 0."""
    if wager.prediction == outcome:
        return wager.potential_payout
    return 0.0


def settle_wager(wager: Wager, outcome: Prediction) -> SettlementResult:
    """The only place a wager becomes settled."""
    payout = compute_payout(wager, outcome)
    wager.actual_payout = payout
    wager.is_settled = True

    return SettlementResult(
        wager_id=wager.id,
        user_wallet=wager.user_wallet,
        prediction=wager.prediction.value,
        stake=wager.amount,
        actual_payout=payout,
        won=wager.prediction == outcome,
    )


def resolve_market(db: Session, market_id, outcome) -> MarketSettlementSummary:
    """
    Fix a market's outcome and settle all of its open wagers.

    Nothing is committed here: the market row and every wager change in the
    caller's transaction, so either all of it lands or none of it does.
    A market that is already resolved raises AlreadyResolvedError and is
    left untouched.
    """
    market_id = parse_int_id(market_id)
    winning_side = parse_prediction(outcome, "outcome", "INVALID_OUTCOME")

    market = db.query(Market).filter(Market.id == market_id).with_for_update().first()
    if market is None:
        raise NotFoundError("Market not found", "MARKET_NOT_FOUND")

    if market.status == MarketStatus.RESOLVED:
        raise AlreadyResolvedError("Market is already resolved", "MARKET_ALREADY_RESOLVED")

    # Only one resolver can move the row out of its unresolved state
    flipped = db.query(Market).filter(
        Market.id == market_id,
        Market.status != MarketStatus.RESOLVED,
    ).update(
        {
            Market.status: MarketStatus.RESOLVED,
            Market.outcome: winning_side,
            Market.resolved_at: utcnow(),
        },
        synchronize_session=False,
    )
    if flipped == 0:
        raise AlreadyResolvedError("Market is already resolved", "MARKET_ALREADY_RESOLVED")
    db.refresh(market)

    # Read after the flip: a placement that commits later sees RESOLVED and backs out
    open_wagers = db.query(Wager).filter(
        Wager.market_id == market_id,
        Wager.is_settled.is_(False),
    ).order_by(Wager.id).all()

    results = []
    winnings: dict[str, float] = {}
    total_payout = 0.0

    for wager in open_wagers:
        result = settle_wager(wager, winning_side)
        results.append(result)
        total_payout += result.actual_payout
        if result.actual_payout > 0:
            winnings[result.user_wallet] = winnings.get(result.user_wallet, 0.0) + result.actual_payout

    for wallet, amount in winnings.items():
        user = find_user(db, wallet)
        if user is not None:
            user.total_winnings = User.total_winnings + amount
            user.updated_at = utcnow()

    stats = ensure_platform_stats(db)
    stats.pool_balance = PlatformStats.pool_balance - total_payout
    stats.last_updated = utcnow()

    db.flush()
    logger.info(
        "market %s resolved %s: %d wagers settled",
        market.id, winning_side.value, len(results),
    )

    return MarketSettlementSummary(
        market=market,
        outcome=winning_side.value,
        total_payout=round(total_payout, 6),
        wagers_settled=len(results),
        settled_wagers=open_wagers,
        results=results,
    )


def close_market(db: Session, market_id) -> Market:
    """Stop accepting wagers ahead of resolution."""
    market_id = parse_int_id(market_id)
    market = db.query(Market).filter(Market.id == market_id).with_for_update().first()
    if market is None:
        raise NotFoundError("Market not found", "MARKET_NOT_FOUND")

    if market.status != MarketStatus.ACTIVE:
        raise MarketNotActiveError("Market is not active", "MARKET_NOT_ACTIVE")

    market.status = MarketStatus.CLOSED
    db.flush()
    logger.info("market %s closed", market.id)
    return market
