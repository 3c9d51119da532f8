"""
Typed parsing of raw request values.

Clients send amounts and ids as numbers or strings. The annotated types
below describe each kind of field once; the request schemas use them
directly, and the ``parse_*`` helpers run them through a pydantic
TypeAdapter so Python callers get a ValidationError with the caller's code.
There is exactly one failure kind per field.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional

from pydantic import BeforeValidator, Field, StringConstraints, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from exceptions import ValidationError
from models import Prediction

MAX_PAGE_SIZE = 100


def _scalar(value: Any) -> Any:
    # bool is an int subclass; never let True through as 1
    if isinstance(value, bool):
        raise ValueError("expected a number, got a boolean")
    if isinstance(value, str):
        return value.strip()
    return value


def _choice(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


FiniteNumber = Annotated[float, BeforeValidator(_scalar), Field(allow_inf_nan=False)]
PositiveAmount = Annotated[float, BeforeValidator(_scalar), Field(gt=0, allow_inf_nan=False)]
NonNegativeAmount = Annotated[float, BeforeValidator(_scalar), Field(ge=0, allow_inf_nan=False)]
NonNegativeCount = Annotated[int, BeforeValidator(_scalar), Field(ge=0)]
Probability = Annotated[float, BeforeValidator(_scalar), Field(ge=0, le=1, allow_inf_nan=False)]
RecordId = Annotated[int, BeforeValidator(_scalar)]
Side = Annotated[Literal["yes", "no"], BeforeValidator(_choice)]
WalletAddress = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Flag = Annotated[bool, BeforeValidator(_choice)]

_number = TypeAdapter(FiniteNumber)
_positive = TypeAdapter(PositiveAmount)
_non_negative = TypeAdapter(NonNegativeAmount)
_probability = TypeAdapter(Probability)
_record_id = TypeAdapter(RecordId)
_side = TypeAdapter(Side)
_wallet = TypeAdapter(WalletAddress)
_flag = TypeAdapter(Flag)
_datetime = TypeAdapter(datetime)


def _validate(adapter: TypeAdapter, value: Any, message: str, code: str):
    try:
        return adapter.validate_python(value)
    except PydanticValidationError:
        raise ValidationError(message, code) from None


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def parse_number(value: Any, field: str, code: str) -> float:
    """Parse a finite float from an int, float or numeric string."""
    return _validate(_number, value, f"{field} must be a valid number", code)


def parse_positive_amount(value: Any, field: str = "amount", code: str = "INVALID_AMOUNT") -> float:
    return _validate(_positive, value, f"{field} must be a number greater than 0", code)


def parse_non_negative(value: Any, field: str, code: str) -> float:
    return _validate(_non_negative, value, f"{field} must be a non-negative number", code)


def parse_probability(value: Any, field: str, code: str) -> float:
    return _validate(_probability, value, f"{field} must be a number between 0 and 1", code)


def parse_prediction(value: Any, field: str = "prediction", code: str = "INVALID_PREDICTION") -> Prediction:
    """Accept yes/no in any case, surrounding whitespace ignored."""
    if isinstance(value, Prediction):
        return value
    return Prediction(_validate(_side, value, f'{field} must be "yes" or "no"', code))


def parse_wallet(value: Any, code: str = "MISSING_USER_WALLET") -> str:
    return _validate(_wallet, value, "wallet address is required", code)


def parse_int_id(value: Any, field: str = "marketId", code: str = "INVALID_MARKET_ID") -> int:
    return _validate(_record_id, value, f"{field} must be a valid integer", code)


def clamp_limit(value: Any, default: int, maximum: int = MAX_PAGE_SIZE, minimum: int = 1) -> int:
    """Clamp a page size into [minimum, maximum]; None means ``default``."""
    if _missing(value):
        return default
    limit = parse_int_id(value, "limit", "INVALID_LIMIT")
    return max(minimum, min(limit, maximum))


def parse_offset(value: Any) -> int:
    if _missing(value):
        return 0
    offset = parse_int_id(value, "offset", "INVALID_OFFSET")
    if offset < 0:
        raise ValidationError("offset must be non-negative", "INVALID_OFFSET")
    return offset


def parse_bool_flag(value: Any, field: str = "settled", code: str = "INVALID_SETTLED") -> Optional[bool]:
    if _missing(value):
        return None
    return _validate(_flag, value, f"{field} must be true or false", code)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Every DateTime column stores naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: Any, field: str = "timestamp", code: str = "INVALID_TIMESTAMP") -> Optional[datetime]:
    """Parse an ISO-8601 string or datetime into naive UTC."""
    if _missing(value):
        return None
    if isinstance(value, str):
        value = value.strip()
    parsed = _validate(_datetime, value, f"{field} must be an ISO-8601 timestamp", code)
    return to_naive_utc(parsed)
