"""Placement, settlement and exposure running in separate sessions."""

import pytest

import services.wagers as wagers_module
from exceptions import AlreadyResolvedError, MarketNotActiveError
from models import Market, MarketStatus, User, Wager
from services import (
    apply_wager_exposure,
    get_platform_stats,
    place_wager,
    register_user,
    resolve_market,
)


def _in_other_session(session_factory, work):
    other = session_factory()
    try:
        result = work(other)
        other.commit()
        return result
    finally:
        other.close()


def test_resolve_between_status_check_and_insert_rejects_the_wager(
    db, session_factory, make_market, monkeypatch
):
    market_id = make_market().id
    real_utcnow = wagers_module.utcnow

    # utcnow runs right after the status check, before the insert
    def resolve_then_now():
        monkeypatch.setattr(wagers_module, "utcnow", real_utcnow)
        _in_other_session(session_factory, lambda s: resolve_market(s, market_id, "no"))
        return real_utcnow()

    monkeypatch.setattr(wagers_module, "utcnow", resolve_then_now)

    with pytest.raises(MarketNotActiveError) as excinfo:
        place_wager(db, market_id, "alice", 10, "yes", 0.5, 20, 0)
    assert excinfo.value.code == "MARKET_NOT_ACTIVE"
    db.rollback()

    assert db.query(Wager).count() == 0
    market = db.get(Market, market_id)
    assert market.status == MarketStatus.RESOLVED
    assert db.query(Wager).filter(Wager.is_settled.is_(False)).count() == 0


def test_second_resolver_loses_even_with_a_stale_read(db, session_factory, make_market, bet):
    market = make_market()
    bet(market, "alice", 10, "yes")
    db.refresh(market)
    assert market.status == MarketStatus.ACTIVE

    _in_other_session(session_factory, lambda s: resolve_market(s, market.id, "yes"))

    # db still holds the ACTIVE copy; the conditional flip must refuse
    with pytest.raises(AlreadyResolvedError):
        resolve_market(db, market.id, "no")
    db.rollback()

    db.refresh(market)
    assert market.outcome.value == "yes"
    wager = db.query(Wager).one()
    assert wager.actual_payout == 20


def test_concurrent_placements_each_add_their_stake_once(db, session_factory, make_market, bet):
    market = make_market()
    db.refresh(market)
    stats = get_platform_stats(db)
    assert market.total_yes_amount == 0
    assert stats.total_bets == 0

    def bob_bets(session):
        wager = place_wager(session, market.id, "bob", 30, "no", 0.5, 60, 0.5)
        apply_wager_exposure(session, wager.id)

    _in_other_session(session_factory, bob_bets)

    # db's cached market and stats rows predate bob's commit
    bet(market, "alice", 10, "yes", fee=0.25)

    db.refresh(market)
    assert market.total_yes_amount == 10
    assert market.total_no_amount == 30
    assert market.yes_price == pytest.approx(0.25)
    assert market.no_price == pytest.approx(0.75)

    stats = get_platform_stats(db)
    assert stats.total_bets == 2
    assert stats.total_volume == 40
    assert stats.total_fees_collected == pytest.approx(0.75)
    assert stats.pool_balance == 40


def test_same_bettor_in_two_sessions_keeps_both_volumes(db, session_factory, make_market, bet):
    market = make_market()
    bet(market, "alice", 5, "yes")
    alice = db.query(User).filter(User.wallet_address == "alice").one()
    assert alice.total_volume == 5

    def alice_again(session):
        wager = place_wager(session, market.id, "alice", 7, "no", 0.5, 14, 0)
        apply_wager_exposure(session, wager.id)

    _in_other_session(session_factory, alice_again)
    bet(market, "alice", 3, "yes")

    db.refresh(alice)
    assert alice.total_volume == 15


def test_user_counter_survives_registrations_before_flush(db, make_market):
    make_market()
    register_user(db, "carol")
    register_user(db, "dave")
    db.commit()
    assert get_platform_stats(db).total_users == 2
