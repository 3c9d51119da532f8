import logging
from typing import Optional

from sqlalchemy.orm import Session

from exceptions import ConflictError, NotFoundError
from models import PlatformStats, User, utcnow
from .parsing import parse_non_negative, parse_wallet
from .platform_stats import ensure_platform_stats

logger = logging.getLogger(__name__)


def find_user(db: Session, wallet: str) -> Optional[User]:
    return db.query(User).filter(User.wallet_address == wallet).first()


def get_user(db: Session, wallet: str) -> User:
    wallet = parse_wallet(wallet, "INVALID_WALLET_ADDRESS")
    user = find_user(db, wallet)
    if user is None:
        raise NotFoundError("User not found", "USER_NOT_FOUND")
    return user


def _new_user(db: Session, wallet: str) -> User:
    now = utcnow()
    user = User(
        wallet_address=wallet,
        balance=0.0,
        total_volume=0.0,
        total_winnings=0.0,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    stats = ensure_platform_stats(db)
    # Incremented in SQL so concurrent registrations both count
    stats.total_users = PlatformStats.total_users + 1
    db.flush()
    return user


def register_user(db: Session, wallet) -> User:
    wallet = parse_wallet(wallet, "MISSING_WALLET_ADDRESS")
    if find_user(db, wallet) is not None:
        raise ConflictError("Wallet address already exists", "DUPLICATE_WALLET_ADDRESS")
    user = _new_user(db, wallet)
    logger.info("user registered")
    return user


def get_or_create_user(db: Session, wallet: str) -> User:
    """Users come into existence on their first interaction."""
    user = find_user(db, wallet)
    if user is None:
        user = _new_user(db, wallet)
    return user


def list_users(
    db: Session,
    search: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
) -> list[User]:
    query = db.query(User)
    if search:
        query = query.filter(User.wallet_address.contains(search.strip()))
    return query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()


def update_user(
    db: Session,
    wallet,
    balance=None,
    total_volume=None,
    total_winnings=None,
) -> User:
    """Set counters explicitly. Every supplied value must be non-negative."""
    user = get_user(db, wallet)

    # Validate everything before touching the row
    updates = {}
    if balance is not None:
        updates["balance"] = parse_non_negative(balance, "balance", "INVALID_BALANCE")
    if total_volume is not None:
        updates["total_volume"] = parse_non_negative(
            total_volume, "totalVolume", "INVALID_TOTAL_VOLUME"
        )
    if total_winnings is not None:
        updates["total_winnings"] = parse_non_negative(
            total_winnings, "totalWinnings", "INVALID_TOTAL_WINNINGS"
        )

    for key, value in updates.items():
        setattr(user, key, value)
    user.updated_at = utcnow()
    return user
