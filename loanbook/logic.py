import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .models import TransactionType

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SPECIAL_CHARS = '!@#$%^&*(),.?":{}|<>'
PBKDF2_ITERATIONS = 200_000

# dial code -> (local number length, currency)
COUNTRIES = {
    "+94": (9, "LKR"),
    "+91": (10, "INR"),
    "+1": (10, "USD"),
    "+44": (10, "GBP"),
    "+61": (9, "AUD"),
    "+81": (10, "JPY"),
    "+49": (11, "EUR"),
    "+33": (9, "EUR"),
    "+7": (10, "RUB"),
    "+34": (9, "EUR"),
    "+39": (10, "EUR"),
    "+86": (11, "CNY"),
    "+971": (9, "AED"),
    "+880": (10, "BDT"),
    "+92": (10, "PKR"),
    "+966": (9, "SAR"),
    "+20": (10, "EGP"),
    "+234": (10, "NGN"),
    "+27": (9, "ZAR"),
    "+62": (10, "IDR"),
    "+63": (10, "PHP"),
    "+55": (11, "BRL"),
    "+82": (10, "KRW"),
    "+972": (9, "ILS"),
    "+90": (10, "TRY"),
    "+48": (9, "PLN"),
    "+380": (9, "UAH"),
    "+351": (9, "EUR"),
    "+358": (9, "EUR"),
    "+46": (9, "SEK"),
    "+31": (9, "EUR"),
    "+32": (9, "EUR"),
    "+47": (8, "NOK"),
    "+420": (9, "CZK"),
    "+36": (9, "HUF"),
    "+43": (10, "EUR"),
    "+41": (9, "CHF"),
    "+65": (8, "SGD"),
    "+66": (9, "THB"),
    "+60": (9, "MYR"),
    "+64": (9, "NZD"),
    "+998": (9, "UZS"),
    "+84": (9, "VND"),
    "+855": (9, "KHR"),
    "+856": (9, "LAK"),
    "+95": (9, "MMK"),
}


@dataclass(frozen=True)
class PasswordStrength:
    length: bool
    lowercase: bool
    uppercase: bool
    numbers: bool
    special: bool

    @property
    def score(self) -> int:
        return sum(
            [self.length, self.lowercase, self.uppercase, self.numbers, self.special]
        )

    @property
    def is_strong(self) -> bool:
        return self.score == 5


def validate_transaction_type(s: str) -> TransactionType:
    txn_type = TransactionType.coerce(s)
    if txn_type is None:
        raise ValueError("type must be loan or repayment")
    return txn_type


def parse_amount_to_cents(s: str) -> int:
    if not isinstance(s, str) or not s.strip():
        raise ValueError("amount required")
    try:
        d = Decimal(s)
    except InvalidOperation as e:
        raise ValueError("amount invalid") from e
    if not d.is_finite():
        raise ValueError("amount invalid")
    if d < 0:
        raise ValueError("amount must be non-negative")
    cents = (d * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    if (d * 100) != cents:
        raise ValueError("amount supports up to 2 decimals")
    return int(cents)


def cents_to_amount(cents: int) -> Decimal:
    return Decimal(int(cents)) / 100


def format_money(amount, currency: str = "USD") -> str:
    value = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{currency} {value:,.2f}"


def check_password_strength(password: str) -> PasswordStrength:
    return PasswordStrength(
        length=len(password) >= 8,
        lowercase=re.search(r"[a-z]", password) is not None,
        uppercase=re.search(r"[A-Z]", password) is not None,
        numbers=re.search(r"\d", password) is not None,
        special=any(ch in SPECIAL_CHARS for ch in password),
    )


def validate_password(password: str) -> str:
    if not check_password_strength(password).is_strong:
        raise ValueError(
            "password needs 8+ characters with upper, lower, digit and special character"
        )
    return password


def validate_email(s: str) -> str:
    email = s.strip()
    if not EMAIL_RE.match(email):
        raise ValueError("email invalid")
    return email.lower()


def validate_phone(country_code: str, phone: str) -> str:
    if country_code not in COUNTRIES:
        raise ValueError("unsupported country code")
    digits, _ = COUNTRIES[country_code]
    local = phone.strip()
    if not local.isdigit() or len(local) != digits:
        raise ValueError(f"phone number must be {digits} digits")
    return f"{country_code}{local}"


def currency_for_country(country_code: str) -> str:
    return COUNTRIES.get(country_code, (0, "USD"))[1]


def supported_currencies() -> list[str]:
    return sorted({currency for _, currency in COUNTRIES.values()} | {"USD"})


def validate_currency(s: str) -> str:
    currency = s.strip().upper()
    if currency not in supported_currencies():
        raise ValueError("unsupported currency")
    return currency


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), bytes.fromhex(salt), PBKDF2_ITERATIONS
    )
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, _, expected = password_hash.partition("$")
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), bytes.fromhex(salt), PBKDF2_ITERATIONS
    )
    return hmac.compare_digest(digest.hex(), expected)
