from .models import (
    Base,
    User,
    Market,
    Wager,
    ChartPoint,
    PlatformStats,
    Prediction,
    MarketStatus,
    utcnow,
)

__all__ = [
    "Base",
    "User",
    "Market",
    "Wager",
    "ChartPoint",
    "PlatformStats",
    "Prediction",
    "MarketStatus",
    "utcnow",
]
