from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")


class TransactionType(str, Enum):
    LOAN = "loan"
    REPAYMENT = "repayment"

    @classmethod
    def coerce(cls, value) -> "TransactionType | None":
        """Return the matching member, or ``None`` for an unknown variant."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class UnknownTypePolicy(str, Enum):
    """What the aggregator does with a friend seen only through unknown-typed transactions."""

    INCLUDE = "include"
    OMIT = "omit"


@dataclass(frozen=True)
class Transaction:
    id: int | str
    friend_id: int | str
    type: TransactionType | str
    amount: Decimal
    transaction_date: str = ""
    description: str | None = None


@dataclass(frozen=True)
class FriendBalance:
    friend_id: int | str
    total_borrowed: Decimal = ZERO
    total_repaid: Decimal = ZERO
    remaining_balance: Decimal = ZERO

    def accumulate(self, txn_type: TransactionType, amount: Decimal) -> "FriendBalance":
        borrowed = self.total_borrowed
        repaid = self.total_repaid
        if txn_type is TransactionType.LOAN:
            borrowed += amount
        elif txn_type is TransactionType.REPAYMENT:
            repaid += amount
        return FriendBalance(
            friend_id=self.friend_id,
            total_borrowed=borrowed,
            total_repaid=repaid,
            remaining_balance=borrowed - repaid,
        )

    @property
    def is_settled(self) -> bool:
        return self.remaining_balance == 0

    def to_dict(self) -> dict:
        return {
            "total_borrowed": str(self.total_borrowed),
            "total_repaid": str(self.total_repaid),
            "remaining_balance": str(self.remaining_balance),
        }


@dataclass(frozen=True)
class PortfolioSummary:
    friend_count: int
    total_lent: Decimal
    total_repaid: Decimal
    total_outstanding: Decimal
    outstanding_count: int
    all_settled: bool


@dataclass(frozen=True)
class Admin:
    id: int
    full_name: str
    email: str
    whatsapp_number: str
    preferred_currency: str
    created_at: str


@dataclass(frozen=True)
class Friend:
    id: int
    admin_id: int
    full_name: str
    whatsapp_number: str
    tracking_url: str
    tracking_code: str
    created_at: str
