"""Turn a transaction snapshot into per-friend balances.

Everything here is a pure function of its arguments: no I/O, no module
state, nothing cached between calls. Callers hand in the full snapshot and
get a freshly built result back.
"""

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal, Inexact, InvalidOperation, getcontext, localcontext

from .exceptions import InvalidTransactionError
from .models import (
    ZERO,
    FriendBalance,
    PortfolioSummary,
    Transaction,
    TransactionType,
    UnknownTypePolicy,
)

logger = logging.getLogger(__name__)

BALANCE_FILTERS = ("all", "outstanding", "settled")


def validate_amount(value, *, clamp_negative: bool = False, transaction_id=None) -> Decimal:
    """Return ``value`` as a finite, non-negative ``Decimal``.

    Negative amounts are rejected unless ``clamp_negative`` is set, in which
    case they become zero. Non-finite amounts are always rejected.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidTransactionError("amount must be a number", transaction_id)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidTransactionError("amount must be a number", transaction_id) from exc
    if not amount.is_finite():
        raise InvalidTransactionError("amount must be finite", transaction_id)
    if amount < 0:
        if not clamp_negative:
            raise InvalidTransactionError("amount must be non-negative", transaction_id)
        return ZERO
    return amount


def _validated_amounts(
    transactions: list[Transaction], clamp_negative: bool
) -> list[Decimal]:
    amounts = []
    for txn in transactions:
        try:
            amounts.append(
                validate_amount(
                    txn.amount, clamp_negative=clamp_negative, transaction_id=txn.id
                )
            )
        except InvalidTransactionError:
            logger.warning(
                "Rejected transaction snapshot",
                extra={"transaction_id": txn.id, "friend_id": txn.friend_id},
            )
            raise
    return amounts


def _exact_context(values: list[Decimal]):
    """A decimal context wide enough to add up ``values`` without rounding.

    Inexact is trapped as well, so any rounding that still slips through
    raises instead of returning a truncated total.
    """
    ctx = getcontext().copy()
    if values:
        top = max(v.adjusted() for v in values)
        bottom = min([0] + [v.as_tuple().exponent for v in values])
        ctx.prec = max(ctx.prec, top - bottom + len(str(len(values))) + 2)
    ctx.traps[Inexact] = True
    return localcontext(ctx)


def aggregate_balances(
    transactions: Iterable[Transaction],
    *,
    unknown_type_policy: UnknownTypePolicy = UnknownTypePolicy.INCLUDE,
    clamp_negative: bool = False,
) -> dict:
    """Sum loans and repayments per friend.

    The whole snapshot is validated before anything is summed, so a bad
    record never leaves a partially accumulated result behind. Transactions
    whose type is neither loan nor repayment add nothing; ``unknown_type_policy``
    decides whether they still make their friend show up with zero totals.
    Sums are exact whatever the magnitude or scale of the amounts.
    """
    snapshot = list(transactions)
    amounts = _validated_amounts(snapshot, clamp_negative)

    balances: dict = {}
    with _exact_context(amounts):
        for txn, amount in zip(snapshot, amounts):
            txn_type = TransactionType.coerce(txn.type)
            if txn_type is None:
                logger.debug(
                    "Skipping transaction with unknown type",
                    extra={"transaction_id": txn.id, "type": str(txn.type)},
                )
                if unknown_type_policy is UnknownTypePolicy.INCLUDE:
                    balances.setdefault(txn.friend_id, FriendBalance(friend_id=txn.friend_id))
                continue
            current = balances.get(txn.friend_id) or FriendBalance(friend_id=txn.friend_id)
            try:
                balances[txn.friend_id] = current.accumulate(txn_type, amount)
            except Inexact as exc:
                raise InvalidTransactionError(
                    "amount cannot be summed exactly", txn.id
                ) from exc
    return balances


def balance_for(balances: Mapping, friend_id) -> FriendBalance:
    """The friend's balance, or an all-zero one when they have no transactions."""
    return balances.get(friend_id) or FriendBalance(friend_id=friend_id)


def summarize_portfolio(balances: Mapping) -> PortfolioSummary:
    totals = [b.total_borrowed for b in balances.values()] + [
        b.total_repaid for b in balances.values()
    ]
    with _exact_context(totals):
        total_lent = sum((b.total_borrowed for b in balances.values()), ZERO)
        total_repaid = sum((b.total_repaid for b in balances.values()), ZERO)
        total_outstanding = total_lent - total_repaid
    return PortfolioSummary(
        friend_count=len(balances),
        total_lent=total_lent,
        total_repaid=total_repaid,
        total_outstanding=total_outstanding,
        outstanding_count=sum(1 for b in balances.values() if b.remaining_balance > 0),
        all_settled=all(b.is_settled for b in balances.values()),
    )


def filter_balances(balances: Mapping, status: str) -> dict:
    if status not in BALANCE_FILTERS:
        raise ValueError("status must be all, outstanding or settled")
    if status == "outstanding":
        return {k: b for k, b in balances.items() if b.remaining_balance > 0}
    if status == "settled":
        return {k: b for k, b in balances.items() if b.is_settled}
    return dict(balances)
