from decimal import Decimal

import pytest

from loanbook.logic import (
    cents_to_amount,
    check_password_strength,
    currency_for_country,
    format_money,
    hash_password,
    parse_amount_to_cents,
    supported_currencies,
    validate_currency,
    validate_email,
    validate_password,
    validate_phone,
    validate_transaction_type,
    verify_password,
)
from loanbook.models import TransactionType


@pytest.mark.parametrize(
    "s,expected",
    [
        ("0.01", 1),
        ("1", 100),
        ("1.2", 120),
        ("1.20", 120),
        ("10.05", 1005),
    ],
)
def test_parse_amount_to_cents_ok(s, expected):
    assert parse_amount_to_cents(s) == expected


@pytest.mark.parametrize("s", ["", "-1", "abc", "1.234", "NaN", "Infinity"])
def test_parse_amount_to_cents_bad(s):
    with pytest.raises(ValueError):
        parse_amount_to_cents(s)


def test_cents_to_amount_is_exact():
    assert cents_to_amount(1005) == Decimal("10.05")


def test_format_money():
    assert format_money(Decimal("1234.5"), "LKR") == "LKR 1,234.50"


@pytest.mark.parametrize(
    "s,expected",
    [("loan", TransactionType.LOAN), ("repayment", TransactionType.REPAYMENT)],
)
def test_validate_transaction_type_ok(s, expected):
    assert validate_transaction_type(s) is expected


@pytest.mark.parametrize("s", ["Loan", "repay", "", "income"])
def test_validate_transaction_type_bad(s):
    with pytest.raises(ValueError):
        validate_transaction_type(s)


def test_password_strength_score():
    strength = check_password_strength("abc")
    assert strength.lowercase
    assert not strength.uppercase
    assert strength.score == 1

    assert check_password_strength("Sup3r$ecret").score == 5


@pytest.mark.parametrize("pw", ["short1!A", "Abcdefg1!"])
def test_validate_password_ok(pw):
    assert validate_password(pw) == pw


@pytest.mark.parametrize("pw", ["password", "Password1", "PASSWORD1!", "Pa1!"])
def test_validate_password_bad(pw):
    with pytest.raises(ValueError):
        validate_password(pw)


@pytest.mark.parametrize("s", ["a@b.co", " Someone@Example.com "])
def test_validate_email_ok(s):
    assert validate_email(s) == s.strip().lower()


@pytest.mark.parametrize("s", ["", "a@b", "a b@c.d", "@b.co"])
def test_validate_email_bad(s):
    with pytest.raises(ValueError):
        validate_email(s)


def test_validate_phone():
    assert validate_phone("+94", "771234567") == "+94771234567"
    with pytest.raises(ValueError, match="9 digits"):
        validate_phone("+94", "77123456")
    with pytest.raises(ValueError):
        validate_phone("+94", "77123456a")
    with pytest.raises(ValueError, match="unsupported country code"):
        validate_phone("+999", "123")


def test_currency_for_country():
    assert currency_for_country("+44") == "GBP"
    assert currency_for_country("+999") == "USD"


def test_password_hash_round_trip():
    stored = hash_password("Sup3r$ecret")
    assert "Sup3r$ecret" not in stored
    assert verify_password("Sup3r$ecret", stored)
    assert not verify_password("wrong", stored)


@pytest.mark.parametrize("value,expected", [("lkr", "LKR"), (" EUR ", "EUR"), ("USD", "USD")])
def test_validate_currency_ok(value, expected):
    assert validate_currency(value) == expected


@pytest.mark.parametrize("value", ["", "XYZ", "dollars"])
def test_validate_currency_bad(value):
    with pytest.raises(ValueError):
        validate_currency(value)


def test_supported_currencies_are_sorted_and_unique():
    currencies = supported_currencies()
    assert currencies == sorted(set(currencies))
    assert "USD" in currencies
