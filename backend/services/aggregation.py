from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from exceptions import ValidationError
from models import Market, User, Wager
from .parsing import MAX_PAGE_SIZE
from .users import get_user

SORT_KEYS = ("winnings", "volume", "profit", "winrate", "bets")


@dataclass
class PortfolioMetrics:
    total_invested: float = 0.0
    total_returns: float = 0.0
    unrealized_value: float = 0.0
    profit_loss: float = 0.0
    total_bets: int = 0
    active_bets: int = 0
    settled_bets: int = 0


@dataclass
class Portfolio:
    user: User
    metrics: PortfolioMetrics
    wagers: list[Wager]
    markets: dict[int, Market] = field(default_factory=dict)


@dataclass
class LeaderboardEntry:
    wallet_address: str
    balance: float
    total_volume: float
    total_winnings: float
    total_bets: int
    won_bets: int
    lost_bets: int
    active_bets: int
    total_invested: float
    total_returns: float
    profit: float
    win_rate: float
    roi: float
    created_at: object
    rank: int = 0


@dataclass
class LeaderboardResult:
    entries: list[LeaderboardEntry]
    sort_by: str

    @property
    def total_traders(self) -> int:
        return len(self.entries)


def compute_portfolio(wagers: Iterable[Wager]) -> PortfolioMetrics:
    """
    Portfolio metrics for one wallet's wagers.

    Settled wagers count what they actually paid; open wagers count what
    they would pay if they win.
    """
    metrics = PortfolioMetrics()
    for wager in wagers:
        metrics.total_bets += 1
        metrics.total_invested += wager.amount
        if wager.is_settled:
            metrics.settled_bets += 1
            metrics.total_returns += wager.actual_payout or 0.0
        else:
            metrics.active_bets += 1
            metrics.unrealized_value += wager.potential_payout or 0.0

    metrics.profit_loss = metrics.total_returns - metrics.total_invested
    return metrics


def get_portfolio(db: Session, wallet: str) -> Portfolio:
    user = get_user(db, wallet)
    wagers = db.query(Wager).filter(
        Wager.user_wallet == user.wallet_address
    ).order_by(Wager.timestamp.desc(), Wager.id.desc()).all()

    market_ids = {w.market_id for w in wagers}
    markets = {}
    if market_ids:
        markets = {
            m.id: m for m in db.query(Market).filter(Market.id.in_(market_ids)).all()
        }

    return Portfolio(
        user=user,
        metrics=compute_portfolio(wagers),
        wagers=wagers,
        markets=markets,
    )


def build_leaderboard_entry(user: User, wagers: list[Wager]) -> LeaderboardEntry:
    won = lost = active = 0
    for wager in wagers:
        if not wager.is_settled:
            active += 1
        # A payout exactly equal to the stake counts as neither
        elif (wager.actual_payout or 0.0) > wager.amount:
            won += 1
        elif (wager.actual_payout or 0.0) < wager.amount:
            lost += 1

    metrics = compute_portfolio(wagers)
    win_rate = won / ((won + lost) or 1)
    roi = (metrics.profit_loss / metrics.total_invested * 100) if metrics.total_invested > 0 else 0.0

    return LeaderboardEntry(
        wallet_address=user.wallet_address,
        balance=user.balance,
        total_volume=user.total_volume,
        total_winnings=metrics.total_returns,
        total_bets=metrics.total_bets,
        won_bets=won,
        lost_bets=lost,
        active_bets=active,
        total_invested=metrics.total_invested,
        total_returns=metrics.total_returns,
        profit=metrics.profit_loss,
        win_rate=win_rate,
        roi=roi,
        created_at=user.created_at,
    )


_SORTERS = {
    "winnings": lambda e: e.total_winnings,
    "volume": lambda e: e.total_volume,
    "profit": lambda e: e.profit,
    "winrate": lambda e: e.win_rate,
    "bets": lambda e: e.total_bets,
}


def rank_entries(entries: list[LeaderboardEntry], sort_by: str, limit: int) -> list[LeaderboardEntry]:
    """Stable descending sort, drop inactive users, truncate, assign ranks."""
    ordered = sorted(entries, key=_SORTERS[sort_by], reverse=True)
    active = [e for e in ordered if e.total_bets > 0 or e.total_volume > 0]
    ranked = active[:limit]
    for index, entry in enumerate(ranked, start=1):
        entry.rank = index
    return ranked


def get_leaderboard(db: Session, sort_by: Optional[str] = "winnings", limit: int = 50) -> LeaderboardResult:
    """
    Rank traders from the wager ledger.

    Everything is recomputed per call. Users are read in registration
    order, which is the tie-break for equal sort keys.
    """
    sort_by = (sort_by or "winnings").strip().lower()
    if sort_by not in SORT_KEYS:
        raise ValidationError(
            f"sort must be one of {', '.join(SORT_KEYS)}", "INVALID_SORT"
        )
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    wallets_with_wagers = select(Wager.user_wallet).distinct()
    users = db.query(User).filter(
        or_(User.total_volume > 0, User.wallet_address.in_(wallets_with_wagers))
    ).order_by(User.id.asc()).all()

    by_wallet: dict[str, list[Wager]] = {u.wallet_address: [] for u in users}
    if by_wallet:
        for wager in db.query(Wager).filter(
            Wager.user_wallet.in_(list(by_wallet))
        ).order_by(Wager.id).all():
            by_wallet[wager.user_wallet].append(wager)

    entries = [build_leaderboard_entry(u, by_wallet[u.wallet_address]) for u in users]
    return LeaderboardResult(entries=rank_entries(entries, sort_by, limit), sort_by=sort_by)
