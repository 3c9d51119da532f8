from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config import Settings, get_settings
from database import commit, get_db
from exceptions import ValidationError
from models import ChartPoint, Market, PlatformStats, User, Wager
from services import (
    place_wager,
    list_wagers,
    get_wager,
    quote_wager,
    apply_wager_exposure,
    record_chart_point,
    query_chart_range,
    get_trending_markets,
    resolve_market,
    close_market,
    get_portfolio,
    get_leaderboard,
    register_user,
    get_user,
    list_users,
    update_user,
    create_market,
    get_market,
    list_markets,
    get_platform_stats,
    create_platform_stats,
    update_platform_stats,
    recompute_platform_stats,
)
from services.parsing import (
    clamp_limit,
    parse_bool_flag,
    parse_int_id,
    parse_offset,
    parse_timestamp,
    parse_wallet,
    to_naive_utc,
)
from .schemas import (
    ChartPointCreate,
    MarketCreate,
    ResolveRequest,
    StatsPayload,
    UserCreate,
    UserUpdate,
    WagerCreate,
)

router = APIRouter()


# =============================================================================
# Serializers
# =============================================================================

def _iso(value):
    return value.isoformat() if value is not None else None


def wager_to_dict(w: Wager) -> dict:
    return {
        "id": w.id,
        "marketId": w.market_id,
        "userWallet": w.user_wallet,
        "amount": w.amount,
        "prediction": w.prediction.value,
        "priceAtBet": w.price_at_bet,
        "potentialPayout": w.potential_payout,
        "actualPayout": w.actual_payout,
        "platformFee": w.platform_fee,
        "transactionSignature": w.transaction_signature,
        "timestamp": _iso(w.timestamp),
        "isSettled": w.is_settled,
    }


def market_to_dict(m: Market) -> dict:
    return {
        "id": m.id,
        "title": m.title,
        "description": m.description,
        "imageUrl": m.image_url,
        "category": m.category,
        "status": m.status.value,
        "totalYesAmount": m.total_yes_amount,
        "totalNoAmount": m.total_no_amount,
        "yesPrice": m.yes_price,
        "noPrice": m.no_price,
        "outcome": m.outcome.value if m.outcome else None,
        "createdBy": m.created_by,
        "createdAt": _iso(m.created_at),
        "closesAt": _iso(m.closes_at),
        "resolvedAt": _iso(m.resolved_at),
        "volume24h": m.volume_24h,
    }


def chart_point_to_dict(p: ChartPoint) -> dict:
    return {
        "id": p.id,
        "marketId": p.market_id,
        "timestamp": _iso(p.timestamp),
        "yesPrice": p.yes_price,
        "noPrice": p.no_price,
        "volume": p.volume,
    }


def user_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "walletAddress": u.wallet_address,
        "balance": u.balance,
        "totalVolume": u.total_volume,
        "totalWinnings": u.total_winnings,
        "createdAt": _iso(u.created_at),
        "updatedAt": _iso(u.updated_at),
    }


def stats_to_dict(s: PlatformStats) -> dict:
    return {
        "id": s.id,
        "totalFeesCollected": s.total_fees_collected,
        "totalVolume": s.total_volume,
        "totalMarkets": s.total_markets,
        "totalUsers": s.total_users,
        "totalBets": s.total_bets,
        "poolBalance": s.pool_balance,
        "lastUpdated": _iso(s.last_updated),
    }


# =============================================================================
# Wager Endpoints
# =============================================================================

@router.post("/bets", status_code=201)
def place_wager_endpoint(data: WagerCreate, db: Session = Depends(get_db)):
    wager = place_wager(
        db,
        market_id=data.market_id,
        wallet=data.user_wallet,
        stake=data.amount,
        prediction=data.prediction,
        price_at_bet=data.price_at_bet,
        potential_payout=data.potential_payout,
        platform_fee=data.platform_fee,
        tx_ref=data.transaction_signature,
    )
    # Same transaction: the wager never commits without its exposure
    apply_wager_exposure(db, wager.id)
    commit(db, "place wager")
    return wager_to_dict(wager)


@router.get("/bets")
def list_wagers_endpoint(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    market_id: Optional[str] = Query(None, alias="marketId"),
    user_wallet: Optional[str] = Query(None, alias="userWallet"),
    settled: Optional[str] = None,
    db: Session = Depends(get_db),
):
    wagers = list_wagers(
        db,
        market_id=parse_int_id(market_id) if market_id else None,
        wallet=user_wallet,
        settled=parse_bool_flag(settled),
        limit=clamp_limit(limit, default=10),
        offset=parse_offset(offset),
    )
    return [wager_to_dict(w) for w in wagers]


@router.get("/bets/quote")
def quote_wager_endpoint(
    amount: Optional[str] = None,
    price: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    quote = quote_wager(
        amount,
        price,
        settings.platform_fee_percentage,
        settings.settlement_fee_percentage,
    )
    return {
        "amount": quote.stake,
        "platformFee": quote.platform_fee,
        "netAmount": quote.net_stake,
        "priceAtBet": quote.price,
        "settlementFee": quote.settlement_fee,
        "potentialPayout": quote.potential_payout,
    }


@router.get("/bets/market/{market_id}")
def list_market_wagers(
    market_id: str,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
):
    wagers = list_wagers(
        db,
        market_id=parse_int_id(market_id),
        limit=clamp_limit(limit, default=50),
        offset=parse_offset(offset),
    )
    return [wager_to_dict(w) for w in wagers]


@router.get("/bets/user/{wallet}")
def list_user_wagers(
    wallet: str,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
):
    wagers = list_wagers(
        db,
        wallet=parse_wallet(wallet, "MISSING_WALLET"),
        limit=clamp_limit(limit, default=50),
        offset=parse_offset(offset),
    )
    return [wager_to_dict(w) for w in wagers]


@router.get("/bets/{wager_id}")
def get_wager_endpoint(wager_id: str, db: Session = Depends(get_db)):
    wager = get_wager(db, parse_int_id(wager_id, "id", "INVALID_ID"))
    return wager_to_dict(wager)


# =============================================================================
# Market Endpoints
# =============================================================================

@router.post("/markets", status_code=201)
def create_market_endpoint(data: MarketCreate, db: Session = Depends(get_db)):
    market = create_market(
        db,
        title=data.title,
        created_by=data.created_by,
        description=data.description,
        image_url=data.image_url,
        category=data.category,
        closes_at=to_naive_utc(data.closes_at),
    )
    commit(db, "create market")
    return market_to_dict(market)


@router.get("/markets")
def list_markets_endpoint(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    sort: str = "createdAt",
    order: str = "desc",
    db: Session = Depends(get_db),
):
    markets = list_markets(
        db,
        search=search,
        status=status,
        category=category,
        sort=sort,
        order=order,
        limit=clamp_limit(limit, default=10),
        offset=parse_offset(offset),
    )
    return [market_to_dict(m) for m in markets]


@router.get("/markets/trending")
def trending_markets(limit: Optional[str] = None, db: Session = Depends(get_db)):
    markets = get_trending_markets(db, clamp_limit(limit, default=10, maximum=50))
    payload = [market_to_dict(m) for m in markets]
    commit(db, "refresh trending volume")
    return payload


@router.post("/markets/resolve")
def resolve_market_endpoint(data: ResolveRequest, db: Session = Depends(get_db)):
    if data.market_id is None:
        raise ValidationError("Market ID is required", "MISSING_MARKET_ID")

    summary = resolve_market(db, data.market_id, data.outcome)
    commit(db, "resolve market")

    return {
        "success": True,
        "marketId": summary.market.id,
        "outcome": summary.outcome,
        "totalBetsSettled": summary.wagers_settled,
        "totalPayouts": summary.total_payout,
        "market": market_to_dict(summary.market),
        "settledBets": [wager_to_dict(w) for w in summary.settled_wagers],
    }


@router.get("/markets/{market_id}")
def get_market_endpoint(market_id: str, db: Session = Depends(get_db)):
    market = get_market(db, parse_int_id(market_id, "id", "INVALID_ID"))
    return market_to_dict(market)


@router.post("/markets/{market_id}/close")
def close_market_endpoint(market_id: str, db: Session = Depends(get_db)):
    market = close_market(db, market_id)
    commit(db, "close market")
    return market_to_dict(market)


# =============================================================================
# Chart Data Endpoints
# =============================================================================

@router.post("/chart-data", status_code=201)
def record_chart_point_endpoint(data: ChartPointCreate, db: Session = Depends(get_db)):
    point = record_chart_point(
        db,
        market_id=data.market_id,
        yes_price=data.yes_price,
        no_price=data.no_price,
        volume=data.volume,
        timestamp=to_naive_utc(data.timestamp),
    )
    commit(db, "record chart point")
    return chart_point_to_dict(point)


@router.get("/chart-data/{market_id}")
def query_chart_range_endpoint(
    market_id: str,
    start: Optional[str] = Query(None, alias="from"),
    end: Optional[str] = Query(None, alias="to"),
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
):
    points = query_chart_range(
        db,
        parse_int_id(market_id),
        start=parse_timestamp(start, "from", "INVALID_FROM"),
        end=parse_timestamp(end, "to", "INVALID_TO"),
        limit=clamp_limit(limit, default=100),
    )
    return [chart_point_to_dict(p) for p in points]


# =============================================================================
# User & Portfolio Endpoints
# =============================================================================

@router.post("/users", status_code=201)
def register_user_endpoint(data: UserCreate, db: Session = Depends(get_db)):
    user = register_user(db, data.wallet_address)
    commit(db, "register user")
    return user_to_dict(user)


@router.get("/users")
def list_users_endpoint(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    users = list_users(
        db,
        search=search,
        limit=clamp_limit(limit, default=10),
        offset=parse_offset(offset),
    )
    return [user_to_dict(u) for u in users]


@router.put("/users")
def update_user_endpoint(
    data: UserUpdate,
    wallet: Optional[str] = None,
    db: Session = Depends(get_db),
):
    user = update_user(
        db,
        parse_wallet(wallet, "MISSING_WALLET_ADDRESS"),
        balance=data.balance,
        total_volume=data.total_volume,
        total_winnings=data.total_winnings,
    )
    commit(db, "update user")
    return user_to_dict(user)


@router.get("/users/{wallet}")
def get_user_endpoint(wallet: str, db: Session = Depends(get_db)):
    return user_to_dict(get_user(db, wallet))


@router.get("/users/{wallet}/portfolio")
def get_portfolio_endpoint(wallet: str, db: Session = Depends(get_db)):
    portfolio = get_portfolio(db, wallet)
    metrics = portfolio.metrics

    bets = []
    for wager in portfolio.wagers:
        entry = wager_to_dict(wager)
        market = portfolio.markets.get(wager.market_id)
        entry["market"] = {
            "title": market.title,
            "status": market.status.value,
            "outcome": market.outcome.value if market.outcome else None,
            "yesPrice": market.yes_price,
            "noPrice": market.no_price,
            "closesAt": _iso(market.closes_at),
        } if market else None
        bets.append(entry)

    return {
        "user": {
            "walletAddress": portfolio.user.wallet_address,
            "balance": portfolio.user.balance,
            "totalVolume": portfolio.user.total_volume,
            "totalWinnings": portfolio.user.total_winnings,
        },
        "portfolio": {
            "totalInvested": metrics.total_invested,
            "totalReturns": metrics.total_returns,
            "unrealizedValue": metrics.unrealized_value,
            "profitLoss": metrics.profit_loss,
            "totalBets": metrics.total_bets,
            "activeBets": metrics.active_bets,
            "settledBets": metrics.settled_bets,
        },
        "bets": bets,
    }


# =============================================================================
# Leaderboard
# =============================================================================

@router.get("/leaderboard")
def leaderboard(
    sort: str = "winnings",
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
):
    result = get_leaderboard(db, sort, clamp_limit(limit, default=50))
    return {
        "leaderboard": [
            {
                "rank": e.rank,
                "walletAddress": e.wallet_address,
                "balance": e.balance,
                "totalVolume": e.total_volume,
                "totalWinnings": e.total_winnings,
                "totalBets": e.total_bets,
                "wonBets": e.won_bets,
                "lostBets": e.lost_bets,
                "activeBets": e.active_bets,
                "totalInvested": e.total_invested,
                "profit": e.profit,
                "winRate": e.win_rate,
                "roi": e.roi,
                "createdAt": _iso(e.created_at),
            }
            for e in result.entries
        ],
        "totalTraders": result.total_traders,
        "sortBy": result.sort_by,
    }


# =============================================================================
# Platform Stats
# =============================================================================

@router.get("/platform-stats")
def platform_stats(db: Session = Depends(get_db)):
    return stats_to_dict(get_platform_stats(db))


@router.post("/platform-stats", status_code=201)
def create_platform_stats_endpoint(data: StatsPayload, db: Session = Depends(get_db)):
    stats = create_platform_stats(db, **data.model_dump())
    commit(db, "create platform stats")
    return stats_to_dict(stats)


@router.put("/platform-stats")
def update_platform_stats_endpoint(data: StatsPayload, db: Session = Depends(get_db)):
    stats = update_platform_stats(db, **data.model_dump())
    commit(db, "update platform stats")
    return stats_to_dict(stats)


@router.post("/platform-stats/recompute")
def recompute_platform_stats_endpoint(db: Session = Depends(get_db)):
    stats = recompute_platform_stats(db)
    commit(db, "recompute platform stats")
    return stats_to_dict(stats)


# =============================================================================
# Network
# =============================================================================

@router.get("/network")
def network_info(settings: Settings = Depends(get_settings)):
    network = settings.network
    return {
        "network": network.name,
        "rpcEndpoint": network.rpc_endpoint,
        "clusterName": network.cluster_name,
    }
