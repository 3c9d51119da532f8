import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db
from main import app
from models import Base
from services import apply_wager_exposure, create_market, place_wager


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_market(db):
    def _make(title="Will it rain tomorrow?", created_by="creator-wallet", **kwargs):
        market = create_market(db, title=title, created_by=created_by, **kwargs)
        db.commit()
        return market
    return _make


@pytest.fixture
def bet(db):
    """Place a wager and apply its exposure, committed like the API does."""
    def _bet(market, wallet, stake, prediction, price=0.5, payout=None, fee=0.0):
        wager = place_wager(
            db,
            market_id=market.id,
            wallet=wallet,
            stake=stake,
            prediction=prediction,
            price_at_bet=price,
            potential_payout=payout if payout is not None else stake / price,
            platform_fee=fee,
        )
        apply_wager_exposure(db, wager.id)
        db.commit()
        return wager
    return _bet
