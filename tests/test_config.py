import pytest

from config import NETWORKS, Settings


def test_defaults(monkeypatch):
    for name in ("DATABASE_URL", "LEDGER_NETWORK", "PLATFORM_FEE_PERCENTAGE", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_env()
    assert settings.database_url.startswith("sqlite")
    assert settings.network == NETWORKS["mainnet"]
    assert settings.platform_fee_percentage == 2.5
    assert settings.settlement_fee_percentage == 3.0


def test_postgres_scheme_rewritten(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@host/db")
    assert Settings.from_env().database_url == "postgresql://u:p@host/db"


def test_network_and_origins_from_env(monkeypatch):
    monkeypatch.setenv("LEDGER_NETWORK", " Testnet ")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    settings = Settings.from_env()
    assert settings.network.cluster_name == "testnet"
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_unknown_network_rejected(monkeypatch):
    monkeypatch.setenv("LEDGER_NETWORK", "devnet")
    with pytest.raises(RuntimeError):
        Settings.from_env()


def test_bad_fee_rejected(monkeypatch):
    monkeypatch.setenv("PLATFORM_FEE_PERCENTAGE", "lots")
    with pytest.raises(RuntimeError):
        Settings.from_env()
