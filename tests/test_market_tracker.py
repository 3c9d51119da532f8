"""Market price tracker tests: exposure, chart series, trending."""

from datetime import datetime, timedelta

import pytest

from exceptions import NotFoundError, ValidationError
from models import ChartPoint, MarketStatus, User, utcnow
from services import (
    apply_wager_exposure,
    get_platform_stats,
    get_trending_markets,
    place_wager,
    query_chart_range,
    reconcile_pending_exposure,
    record_chart_point,
    resolve_market,
)
from services.market_tracker import compute_prices, refresh_volume_24h


def test_compute_prices_empty_market_is_even():
    assert compute_prices(0, 0) == (0.5, 0.5)


def test_exposure_moves_prices_and_totals(db, make_market, bet):
    market = make_market()
    bet(market, "alice", 30, "yes")
    bet(market, "bob", 10, "no")
    db.refresh(market)

    assert market.total_yes_amount == 30
    assert market.total_no_amount == 10
    assert market.yes_price == pytest.approx(0.75)
    assert market.no_price == pytest.approx(0.25)
    assert market.yes_price + market.no_price == pytest.approx(1.0)
    assert market.volume_24h == 40


def test_exposure_appends_chart_points_that_sum_to_one(db, make_market, bet):
    market = make_market()
    bet(market, "alice", 30, "yes")
    bet(market, "bob", 10, "no")

    points = query_chart_range(db, market.id)
    assert [p.volume for p in points] == [30, 10]
    assert points[0].yes_price == 1.0
    assert points[1].yes_price == pytest.approx(0.75)
    for p in points:
        assert p.yes_price + p.no_price == pytest.approx(1.0)


def test_exposure_is_idempotent_per_wager(db, make_market, bet):
    market = make_market()
    wager = bet(market, "alice", 25, "yes", fee=0.5)

    assert apply_wager_exposure(db, wager.id) is False
    db.commit()
    db.refresh(market)

    assert market.total_yes_amount == 25
    assert db.query(ChartPoint).count() == 1
    user = db.query(User).filter(User.wallet_address == "alice").one()
    assert user.total_volume == 25

    stats = get_platform_stats(db)
    assert stats.total_bets == 1
    assert stats.total_volume == 25
    assert stats.total_fees_collected == 0.5
    assert stats.pool_balance == 25


def test_exposure_creates_user_on_first_wager(db, make_market, bet):
    market = make_market()
    bet(market, "alice", 5, "yes")
    bet(market, "alice", 7, "no")

    users = db.query(User).all()
    assert len(users) == 1
    assert users[0].total_volume == 12
    assert get_platform_stats(db).total_users == 1


def test_exposure_unknown_wager(db):
    with pytest.raises(NotFoundError):
        apply_wager_exposure(db, 12345)


def test_reconcile_applies_only_pending_wagers(db, make_market, bet):
    market = make_market()
    bet(market, "alice", 10, "yes")
    pending = place_wager(db, market.id, "bob", 30, "no", 0.5, 60, 0)
    db.commit()

    assert reconcile_pending_exposure(db) == 1
    db.commit()
    assert reconcile_pending_exposure(db) == 0

    db.refresh(market)
    db.refresh(pending)
    assert pending.exposure_applied is True
    assert market.total_no_amount == 30
    assert market.yes_price == pytest.approx(0.25)


def test_volume_24h_ignores_old_wagers(db, make_market, bet):
    market = make_market()
    old = bet(market, "alice", 100, "yes")
    old.timestamp = utcnow() - timedelta(days=2)
    db.commit()
    bet(market, "bob", 20, "no")

    db.refresh(market)
    assert market.volume_24h == 20
    assert refresh_volume_24h(db, market, now=utcnow() + timedelta(days=5)) == 0


def test_record_chart_point_validates(db, make_market):
    market = make_market()

    with pytest.raises(ValidationError) as excinfo:
        record_chart_point(db, market.id, 1.2, -0.2)
    assert excinfo.value.code == "INVALID_YES_PRICE"

    with pytest.raises(ValidationError) as excinfo:
        record_chart_point(db, market.id, 0.5, "x")
    assert excinfo.value.code == "INVALID_NO_PRICE"

    with pytest.raises(ValidationError) as excinfo:
        record_chart_point(db, market.id, 0.5, 0.5, volume=-1)
    assert excinfo.value.code == "INVALID_VOLUME"

    with pytest.raises(ValidationError) as excinfo:
        record_chart_point(db, market.id, 0.6, 0.6)
    assert excinfo.value.code == "PRICE_SUM_MISMATCH"

    with pytest.raises(NotFoundError):
        record_chart_point(db, 999, 0.5, 0.5)

    assert db.query(ChartPoint).count() == 0


def test_chart_range_ascending_window_and_limit(db, make_market):
    market = make_market()
    base = datetime(2024, 1, 1)
    # Inserted out of order on purpose
    for hours in (5, 1, 3, 2, 4):
        record_chart_point(db, market.id, 0.4, 0.6, volume=hours, timestamp=base + timedelta(hours=hours))
    db.commit()

    points = query_chart_range(db, market.id)
    assert [p.volume for p in points] == [1, 2, 3, 4, 5]

    window = query_chart_range(
        db, market.id, start=base + timedelta(hours=2), end=base + timedelta(hours=4)
    )
    assert [p.volume for p in window] == [2, 3, 4]

    assert [p.volume for p in query_chart_range(db, market.id, limit=2)] == [1, 2]


def test_chart_range_from_after_to_is_empty(db, make_market):
    market = make_market()
    record_chart_point(db, market.id, 0.5, 0.5, timestamp=datetime(2024, 1, 1, 12))
    db.commit()

    assert query_chart_range(
        db, market.id, start=datetime(2024, 1, 2), end=datetime(2024, 1, 1)
    ) == []


def test_chart_range_limit_clamped_to_100(db, make_market):
    market = make_market()
    base = datetime(2024, 1, 1)
    for i in range(105):
        record_chart_point(db, market.id, 0.5, 0.5, timestamp=base + timedelta(minutes=i))
    db.commit()

    assert len(query_chart_range(db, market.id, limit=1000)) == 100


def test_trending_only_active_by_volume(db, make_market, bet):
    quiet = make_market(title="Quiet market")
    busy = make_market(title="Busy market")
    settled = make_market(title="Settled market")
    bet(quiet, "alice", 5, "yes")
    bet(busy, "alice", 50, "yes")
    bet(settled, "alice", 500, "yes")
    resolve_market(db, settled.id, "yes")
    db.commit()

    trending = get_trending_markets(db)
    assert [m.title for m in trending] == ["Busy market", "Quiet market"]
    assert all(m.status == MarketStatus.ACTIVE for m in trending)
    assert len(get_trending_markets(db, limit=0)) == 1
    assert len(get_trending_markets(db, limit=999)) == 2


def test_trending_ranks_by_trailing_window_not_stored_volume(db, make_market, bet):
    stale = make_market(title="Stale market")
    fresh = make_market(title="Fresh market")
    old = bet(stale, "alice", 100, "yes")
    old.timestamp = utcnow() - timedelta(days=2)
    db.commit()
    bet(fresh, "bob", 20, "no")

    # The stored figure still counts the backdated wager
    db.refresh(stale)
    assert stale.volume_24h == 100

    trending = get_trending_markets(db)
    assert [m.title for m in trending] == ["Fresh market", "Stale market"]
    assert trending[0].volume_24h == 20
    assert trending[1].volume_24h == 0


def test_trending_window_follows_now(db, make_market, bet):
    market = make_market()
    bet(market, "alice", 10, "yes")

    later = get_trending_markets(db, now=utcnow() + timedelta(hours=25))
    assert [m.id for m in later] == [market.id]
    assert later[0].volume_24h == 0
