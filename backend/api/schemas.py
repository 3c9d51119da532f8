"""
Request bodies for the ledger API.

Fields are typed with the shared annotated types from ``services.parsing``,
so pydantic does the coercion and range checks. Each validated field carries
its error code in ``json_schema_extra``; ``FIELD_ERROR_CODES`` collects them
by wire name for the request-validation handler.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from services.parsing import (
    NonNegativeAmount,
    NonNegativeCount,
    PositiveAmount,
    Probability,
    RecordId,
    Side,
    WalletAddress,
)


def _code(code: str) -> dict:
    return {"code": code}


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WagerCreate(CamelModel):
    market_id: RecordId = Field(alias="marketId", json_schema_extra=_code("INVALID_MARKET_ID"))
    user_wallet: WalletAddress = Field(alias="userWallet", json_schema_extra=_code("MISSING_USER_WALLET"))
    amount: PositiveAmount = Field(json_schema_extra=_code("INVALID_AMOUNT"))
    prediction: Side = Field(json_schema_extra=_code("INVALID_PREDICTION"))
    price_at_bet: Probability = Field(alias="priceAtBet", json_schema_extra=_code("INVALID_PRICE_AT_BET"))
    potential_payout: NonNegativeAmount = Field(
        alias="potentialPayout", json_schema_extra=_code("INVALID_POTENTIAL_PAYOUT")
    )
    platform_fee: NonNegativeAmount = Field(
        alias="platformFee", json_schema_extra=_code("INVALID_PLATFORM_FEE")
    )
    transaction_signature: Optional[str] = Field(None, alias="transactionSignature", max_length=256)


class ResolveRequest(CamelModel):
    # Missing marketId has its own code, raised by the route
    market_id: Optional[RecordId] = Field(None, alias="marketId", json_schema_extra=_code("INVALID_MARKET_ID"))
    outcome: Optional[Side] = Field(None, json_schema_extra=_code("INVALID_OUTCOME"))


class ChartPointCreate(CamelModel):
    market_id: RecordId = Field(alias="marketId", json_schema_extra=_code("INVALID_MARKET_ID"))
    yes_price: Probability = Field(alias="yesPrice", json_schema_extra=_code("INVALID_YES_PRICE"))
    no_price: Probability = Field(alias="noPrice", json_schema_extra=_code("INVALID_NO_PRICE"))
    volume: Optional[NonNegativeAmount] = Field(None, json_schema_extra=_code("INVALID_VOLUME"))
    timestamp: Optional[datetime] = Field(None, json_schema_extra=_code("INVALID_TIMESTAMP"))


class MarketCreate(CamelModel):
    title: Optional[str] = Field(None, max_length=500)
    created_by: Optional[str] = Field(None, alias="createdBy", max_length=128)
    description: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, alias="imageUrl", max_length=1000)
    category: Optional[str] = Field(None, max_length=100)
    closes_at: Optional[datetime] = Field(None, alias="closesAt", json_schema_extra=_code("INVALID_CLOSES_AT"))


class UserCreate(CamelModel):
    wallet_address: WalletAddress = Field(
        alias="walletAddress", json_schema_extra=_code("MISSING_WALLET_ADDRESS")
    )


class UserUpdate(CamelModel):
    balance: Optional[NonNegativeAmount] = Field(None, json_schema_extra=_code("INVALID_BALANCE"))
    total_volume: Optional[NonNegativeAmount] = Field(
        None, alias="totalVolume", json_schema_extra=_code("INVALID_TOTAL_VOLUME")
    )
    total_winnings: Optional[NonNegativeAmount] = Field(
        None, alias="totalWinnings", json_schema_extra=_code("INVALID_TOTAL_WINNINGS")
    )


class StatsPayload(CamelModel):
    total_fees_collected: Optional[NonNegativeAmount] = Field(
        None, alias="totalFeesCollected", json_schema_extra=_code("INVALID_TOTAL_FEES_COLLECTED")
    )
    total_volume: Optional[NonNegativeAmount] = Field(
        None, alias="totalVolume", json_schema_extra=_code("INVALID_TOTAL_VOLUME")
    )
    total_markets: Optional[NonNegativeCount] = Field(
        None, alias="totalMarkets", json_schema_extra=_code("INVALID_TOTAL_MARKETS")
    )
    total_users: Optional[NonNegativeCount] = Field(
        None, alias="totalUsers", json_schema_extra=_code("INVALID_TOTAL_USERS")
    )
    total_bets: Optional[NonNegativeCount] = Field(
        None, alias="totalBets", json_schema_extra=_code("INVALID_TOTAL_BETS")
    )
    pool_balance: Optional[NonNegativeAmount] = Field(
        None, alias="poolBalance", json_schema_extra=_code("INVALID_POOL_BALANCE")
    )


def field_error_codes(*models: type[BaseModel]) -> dict[str, str]:
    """Map each field's wire name to the error code it declares."""
    codes = {}
    for model in models:
        for name, info in model.model_fields.items():
            extra = info.json_schema_extra
            if isinstance(extra, dict) and "code" in extra:
                codes[info.alias or name] = extra["code"]
    return codes


FIELD_ERROR_CODES = field_error_codes(
    WagerCreate,
    ResolveRequest,
    ChartPointCreate,
    MarketCreate,
    UserCreate,
    UserUpdate,
    StatsPayload,
)
