from datetime import datetime

import pytest

from api.schemas import FIELD_ERROR_CODES
from exceptions import ValidationError
from models import Prediction
from services.parsing import (
    clamp_limit,
    parse_bool_flag,
    parse_int_id,
    parse_number,
    parse_offset,
    parse_positive_amount,
    parse_prediction,
    parse_probability,
    parse_timestamp,
    parse_wallet,
)


@pytest.mark.parametrize("raw,expected", [
    (3, 3.0),
    (2.5, 2.5),
    ("7", 7.0),
    (" 0.125 ", 0.125),
])
def test_parse_number_accepts_numbers_and_numeric_strings(raw, expected):
    assert parse_number(raw, "amount", "INVALID_AMOUNT") == expected


@pytest.mark.parametrize("raw", [None, "", "  ", "abc", True, [], float("nan"), "inf"])
def test_parse_number_rejects_everything_else(raw):
    with pytest.raises(ValidationError) as excinfo:
        parse_number(raw, "amount", "INVALID_AMOUNT")
    assert excinfo.value.code == "INVALID_AMOUNT"


def test_parse_probability_bounds():
    assert parse_probability(0, "p", "BAD") == 0.0
    assert parse_probability("1", "p", "BAD") == 1.0
    with pytest.raises(ValidationError):
        parse_probability(1.0001, "p", "BAD")


def test_parse_prediction_is_case_insensitive():
    assert parse_prediction("Yes") is Prediction.YES
    assert parse_prediction(" no ") is Prediction.NO
    with pytest.raises(ValidationError) as excinfo:
        parse_prediction("y", "outcome", "INVALID_OUTCOME")
    assert excinfo.value.code == "INVALID_OUTCOME"


def test_parse_wallet_strips_and_requires_text():
    assert parse_wallet("  abc ") == "abc"
    with pytest.raises(ValidationError) as excinfo:
        parse_wallet(42)
    assert excinfo.value.code == "MISSING_USER_WALLET"


def test_parse_int_id():
    assert parse_int_id("12") == 12
    assert parse_int_id(4.0) == 4
    for raw in ("1.5", "x", None, False, 2.5):
        with pytest.raises(ValidationError) as excinfo:
            parse_int_id(raw)
        assert excinfo.value.code == "INVALID_MARKET_ID"


def test_clamp_limit():
    assert clamp_limit(None, default=10) == 10
    assert clamp_limit("500", default=10) == 100
    assert clamp_limit("0", default=10) == 1
    assert clamp_limit(30, default=10, maximum=50) == 30
    with pytest.raises(ValidationError) as excinfo:
        clamp_limit("many", default=10)
    assert excinfo.value.code == "INVALID_LIMIT"


def test_parse_offset():
    assert parse_offset(None) == 0
    assert parse_offset("5") == 5
    with pytest.raises(ValidationError):
        parse_offset("-1")


def test_parse_bool_flag():
    assert parse_bool_flag(None) is None
    assert parse_bool_flag("TRUE") is True
    assert parse_bool_flag("false") is False
    with pytest.raises(ValidationError):
        parse_bool_flag("sometimes")


def test_parse_timestamp_normalises_to_naive_utc():
    assert parse_timestamp(None) is None
    assert parse_timestamp("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12)
    assert parse_timestamp("2024-03-01T14:00:00+02:00") == datetime(2024, 3, 1, 12)
    with pytest.raises(ValidationError) as excinfo:
        parse_timestamp("yesterday", "from", "INVALID_FROM")
    assert excinfo.value.code == "INVALID_FROM"


@pytest.mark.parametrize("raw", [[1], {"value": 1}, "NaN", float("-inf")])
def test_positive_amount_rejects_non_scalars_and_non_finite(raw):
    with pytest.raises(ValidationError) as excinfo:
        parse_positive_amount(raw)
    assert excinfo.value.code == "INVALID_AMOUNT"


def test_request_fields_declare_their_codes():
    assert FIELD_ERROR_CODES["amount"] == "INVALID_AMOUNT"
    assert FIELD_ERROR_CODES["prediction"] == "INVALID_PREDICTION"
    assert FIELD_ERROR_CODES["outcome"] == "INVALID_OUTCOME"
    assert FIELD_ERROR_CODES["poolBalance"] == "INVALID_POOL_BALANCE"
    assert "title" not in FIELD_ERROR_CODES
