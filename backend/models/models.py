# =============================================================================
# Ledger Data Models
# =============================================================================
# These models represent the wager ledger of a binary prediction market:
# - Users, keyed by wallet address
# - Markets (yes/no questions with staked totals and a derived price)
# - Wagers (stakes placed on an outcome at a given price)
# - Chart points (append-only price history per market)
# - Platform stats (a single aggregate row)
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Float, Integer, Boolean, DateTime,
    ForeignKey, Enum as SQLEnum, CheckConstraint, Index
)
from sqlalchemy.orm import relationship, declarative_base, validates

from exceptions import ConflictError

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# =============================================================================
# Enums
# =============================================================================

class Prediction(str, Enum):
    """
    Which outcome a wager backs.

    Every market has two outcomes, and the market's YES and NO prices
    always sum to 1.00.
    """
    YES = "yes"
    NO = "no"


class MarketStatus(str, Enum):
    """
    Lifecycle of a market.

    ACTIVE: Wagers are accepted
    CLOSED: Betting stopped, awaiting resolution (optional step)
    RESOLVED: Outcome fixed, wagers settled. Terminal.
    """
    ACTIVE = "active"
    CLOSED = "closed"
    RESOLVED = "resolved"


# =============================================================================
# User Model
# =============================================================================

class User(Base):
    """
    A participant, identified by wallet address.

    Users are created on their first wager (or explicit registration). They
    own no wagers; the wallet is only the lookup key wagers carry.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_address = Column(String(128), nullable=False, unique=True)

    balance = Column(Float, default=0.0, nullable=False)
    total_volume = Column(Float, default=0.0, nullable=False)
    total_winnings = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="non_negative_balance"),
        CheckConstraint("total_volume >= 0", name="non_negative_volume"),
        CheckConstraint("total_winnings >= 0", name="non_negative_winnings"),
    )

    @validates("wallet_address")
    def _freeze_wallet(self, key, value):
        if self.wallet_address is not None and value != self.wallet_address:
            raise ConflictError("Wallet address is immutable", "WALLET_IMMUTABLE")
        return value


# =============================================================================
# Market Model
# =============================================================================

class Market(Base):
    """
    A binary proposition with staked totals and a derived price.

    Price discovery is pari-mutuel: the YES price is the share of all stake
    that sits on YES. A market with no stake trades at 0.50 / 0.50.

    The outcome, the resolution timestamp and the RESOLVED status are set
    together or not at all.
    """
    __tablename__ = "markets"

    id = Column(Integer, primary_key=True, autoincrement=True)

    title = Column(String(500), nullable=False)
    description = Column(String(2000), nullable=True)
    image_url = Column(String(1000), nullable=True)
    category = Column(String(100), nullable=True)

    status = Column(
        SQLEnum(MarketStatus, values_callable=_enum_values, native_enum=False, length=16),
        default=MarketStatus.ACTIVE,
        nullable=False,
    )

    total_yes_amount = Column(Float, default=0.0, nullable=False)
    total_no_amount = Column(Float, default=0.0, nullable=False)
    yes_price = Column(Float, default=0.5, nullable=False)
    no_price = Column(Float, default=0.5, nullable=False)

    # yes / no once resolved, NULL before
    outcome = Column(
        SQLEnum(Prediction, values_callable=_enum_values, native_enum=False, length=8),
        nullable=True,
    )

    created_by = Column(String(128), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    closes_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    volume_24h = Column(Float, default=0.0, nullable=False)

    # Relationships
    wagers = relationship(
        "Wager", back_populates="market", cascade="all, delete-orphan"
    )
    chart_points = relationship(
        "ChartPoint", back_populates="market", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("yes_price >= 0 AND yes_price <= 1", name="valid_yes_price"),
        CheckConstraint("no_price >= 0 AND no_price <= 1", name="valid_no_price"),
        CheckConstraint(
            "(status = 'resolved' AND outcome IS NOT NULL AND resolved_at IS NOT NULL) OR "
            "(status != 'resolved' AND outcome IS NULL AND resolved_at IS NULL)",
            name="resolution_consistent",
        ),
        Index("ix_markets_status_volume", "status", "volume_24h"),
    )


# =============================================================================
# Wager Model
# =============================================================================

class Wager(Base):
    """
    A stake placed by a wallet on one outcome of a market.

    Anatomy of a wager:
    - amount: the stake (> 0)
    - prediction: yes or no
    - price_at_bet: the market price of that outcome when placed
    - potential_payout: what it pays if the prediction wins, frozen at
      placement
    - platform_fee: fee charged at placement, frozen

    actual_payout stays 0 until settlement fixes it. After is_settled flips,
    the financial fields can no longer change.

    exposure_applied records that the stake has been folded into the
    market's totals, prices and volume. It turns that update into an
    idempotent step keyed by the wager id.
    """
    __tablename__ = "bets"

    id = Column(Integer, primary_key=True, autoincrement=True)

    market_id = Column(Integer, ForeignKey("markets.id"), nullable=False)
    user_wallet = Column(String(128), nullable=False)

    amount = Column(Float, nullable=False)
    prediction = Column(
        SQLEnum(Prediction, values_callable=_enum_values, native_enum=False, length=8),
        nullable=False,
    )
    price_at_bet = Column(Float, nullable=False)
    potential_payout = Column(Float, nullable=False)
    actual_payout = Column(Float, default=0.0, nullable=False)
    platform_fee = Column(Float, nullable=False)

    # Opaque external payment reference
    transaction_signature = Column(String(256), nullable=True)

    timestamp = Column(DateTime, default=utcnow, nullable=False)
    is_settled = Column(Boolean, default=False, nullable=False)
    exposure_applied = Column(Boolean, default=False, nullable=False)

    # Relationships
    market = relationship("Market", back_populates="wagers")

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_amount"),
        CheckConstraint("platform_fee >= 0", name="non_negative_fee"),
        CheckConstraint("price_at_bet >= 0 AND price_at_bet <= 1", name="valid_price_at_bet"),
        CheckConstraint("actual_payout >= 0", name="non_negative_payout"),
        Index("ix_bets_market_settled", "market_id", "is_settled"),
        Index("ix_bets_wallet", "user_wallet"),
        Index("ix_bets_timestamp", "timestamp"),
    )

    @validates("market_id")
    def _freeze_market(self, key, value):
        if self.market_id is not None and value != self.market_id:
            raise ConflictError("A wager cannot move to another market", "WAGER_IMMUTABLE")
        return value

    @validates("amount", "prediction", "price_at_bet", "potential_payout",
               "platform_fee", "actual_payout")
    def _freeze_when_settled(self, key, value):
        current = getattr(self, key)
        if self.is_settled and current is not None and value != current:
            raise ConflictError(
                f"Settled wager {self.id} cannot change {key}", "WAGER_SETTLED"
            )
        return value

    @validates("is_settled")
    def _settle_once(self, key, value):
        if self.is_settled and not value:
            raise ConflictError(
                f"Settled wager {self.id} cannot be reopened", "WAGER_SETTLED"
            )
        return value


# =============================================================================
# Chart Point Model
# =============================================================================

class ChartPoint(Base):
    """
    One sample of a market's price history.

    Append-only. Read back in ascending timestamp order per market.
    """
    __tablename__ = "market_chart_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    market_id = Column(Integer, ForeignKey("markets.id"), nullable=False)

    timestamp = Column(DateTime, default=utcnow, nullable=False)
    yes_price = Column(Float, nullable=False)
    no_price = Column(Float, nullable=False)
    volume = Column(Float, default=0.0, nullable=False)

    market = relationship("Market", back_populates="chart_points")

    __table_args__ = (
        CheckConstraint("yes_price >= 0 AND yes_price <= 1", name="valid_chart_yes_price"),
        CheckConstraint("no_price >= 0 AND no_price <= 1", name="valid_chart_no_price"),
        CheckConstraint("volume >= 0", name="non_negative_chart_volume"),
        Index("ix_chart_market_ts", "market_id", "timestamp"),
    )


# =============================================================================
# Platform Stats Model
# =============================================================================

class PlatformStats(Base):
    """
    Platform-wide totals. Exactly one row; created once, then only updated.
    """
    __tablename__ = "platform_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)

    total_fees_collected = Column(Float, default=0.0, nullable=False)
    total_volume = Column(Float, default=0.0, nullable=False)
    total_markets = Column(Integer, default=0, nullable=False)
    total_users = Column(Integer, default=0, nullable=False)
    total_bets = Column(Integer, default=0, nullable=False)
    pool_balance = Column(Float, default=0.0, nullable=False)

    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# =============================================================================
# Summary
# =============================================================================
#
# Data flow when a wager is placed (one transaction):
#
# 1. Wager row inserted (actual_payout=0, is_settled=False)
# 2. Exposure applied: market yes/no totals, prices and 24h volume updated,
#    chart point appended, user volume and platform totals updated,
#    exposure_applied=True
#
# When a market resolves (one transaction):
# 1. Market status -> RESOLVED, outcome and resolved_at set
# 2. Every unsettled wager: actual_payout = potential_payout if it backed
#    the outcome, else 0; is_settled=True
# 3. Winners' total_winnings credited, pool balance debited
# =============================================================================
