import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    rpc_endpoint: str
    cluster_name: str


NETWORKS = {
    "mainnet": NetworkConfig(
        name="mainnet",
        rpc_endpoint="https://solana-rpc.publicnode.com",
        cluster_name="mainnet-beta",
    ),
    "testnet": NetworkConfig(
        name="testnet",
        rpc_endpoint="https://solana-testnet-rpc.publicnode.com",
        cluster_name="testnet",
    ),
}

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def _list_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """
    Process configuration, read once from the environment.

    The network is chosen here and handed to whatever needs an external
    endpoint. Nothing mutates it at runtime.
    """
    database_url: str = "sqlite:///./ledger.db"
    log_level: str = "INFO"
    log_json: bool = False
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ORIGINS))
    network_name: str = "mainnet"
    platform_fee_percentage: float = 2.5
    settlement_fee_percentage: float = 3.0

    @property
    def network(self) -> NetworkConfig:
        return NETWORKS[self.network_name]

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL", "sqlite:///./ledger.db")
        # Render/Heroku style URLs use postgres://
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        network_name = (os.getenv("LEDGER_NETWORK") or "mainnet").strip().lower()
        if network_name not in NETWORKS:
            raise RuntimeError(
                f"LEDGER_NETWORK must be one of {sorted(NETWORKS)}, got {network_name!r}"
            )

        return cls(
            database_url=database_url,
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            log_json=os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes"),
            cors_origins=_list_env("CORS_ORIGINS", DEFAULT_ORIGINS),
            network_name=network_name,
            platform_fee_percentage=_float_env("PLATFORM_FEE_PERCENTAGE", 2.5),
            settlement_fee_percentage=_float_env("SETTLEMENT_FEE_PERCENTAGE", 3.0),
        )


@lru_cache
def get_settings() -> Settings:
    """Dependency for FastAPI routes."""
    return Settings.from_env()
