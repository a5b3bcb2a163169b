"""Greedy debt simplification.

Debtors and creditors are each sorted by magnitude, largest first, and the
largest remaining debtor always pays the largest remaining creditor. For k
participants with a non-zero balance this never emits more than k - 1
transfers.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Sequence

from splitpay.logging import get_logger
from splitpay.services.balances import BalanceInput
from splitpay.utils.money import ZERO, to_cents

# Balances at or below this magnitude count as settled.
SETTLED_THRESHOLD = Decimal("0.01")
# Allowed drift of the balance sum away from zero before warning.
SUM_TOLERANCE = Decimal("0.1")
# Allowed per-person mismatch when validating a set of transfers.
NET_TOLERANCE = Decimal("0.02")

log = get_logger(__name__)


@dataclass(slots=True)
class DebtEdge:
    from_user: str
    from_name: str
    to_user: str
    to_name: str
    amount: Decimal


@dataclass(slots=True)
class ValidationReport:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _Party:
    user_id: str
    user_name: str
    remaining: Decimal


def non_zero_balances(balances: Iterable[BalanceInput]) -> list[BalanceInput]:
    return [b for b in balances if abs(Decimal(b.amount)) > SETTLED_THRESHOLD]


def balance_drift(balances: Iterable[BalanceInput]) -> Decimal:
    """Sum of the non-settled balances; ~0 for consistent group data."""
    return sum((Decimal(b.amount) for b in non_zero_balances(balances)), ZERO)


def simplify_debts(balances: Sequence[BalanceInput]) -> List[DebtEdge]:
    nonzero = non_zero_balances(balances)
    if not nonzero:
        return []

    drift = balance_drift(nonzero)
    if abs(drift) > SUM_TOLERANCE:
        log.warning("simplify.balance_sum_drift", balance_sum=str(to_cents(drift)))

    debtors = [_Party(b.user_id, b.user_name, -Decimal(b.amount)) for b in nonzero if b.amount < 0]
    creditors = [_Party(b.user_id, b.user_name, Decimal(b.amount)) for b in nonzero if b.amount > 0]

    debtors.sort(key=lambda p: p.remaining, reverse=True)
    creditors.sort(key=lambda p: p.remaining, reverse=True)

    transfers: list[DebtEdge] = []
    i, j = 0, 0

    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]

        transfer_amount = to_cents(min(debtor.remaining, creditor.remaining))
        if transfer_amount > SETTLED_THRESHOLD:
            transfers.append(
                DebtEdge(
                    from_user=debtor.user_id,
                    from_name=debtor.user_name,
                    to_user=creditor.user_id,
                    to_name=creditor.user_name,
                    amount=transfer_amount,
                )
            )

        debtor.remaining = to_cents(debtor.remaining - transfer_amount)
        creditor.remaining = to_cents(creditor.remaining - transfer_amount)

        # Both sides advance together on an exact match.
        if debtor.remaining < SETTLED_THRESHOLD:
            i += 1
        if creditor.remaining < SETTLED_THRESHOLD:
            j += 1

    return transfers


def validate_simplification(balances: Sequence[BalanceInput], transfers: Sequence[DebtEdge]) -> ValidationReport:
    """Check a transfer set against the balances it is meant to settle.

    Reports every violation: too many transfers for the number of non-zero
    participants, and any participant whose transfer net differs from their
    balance by more than NET_TOLERANCE.
    """
    errors: list[str] = []

    max_transfers = max(len(non_zero_balances(balances)) - 1, 0)
    if len(transfers) > max_transfers:
        errors.append(f"Too many transfers: {len(transfers)} (max {max_transfers})")

    transfer_net: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in transfers:
        transfer_net[t.from_user] -= Decimal(t.amount)
        transfer_net[t.to_user] += Decimal(t.amount)

    for b in balances:
        expected = Decimal(b.amount)
        if abs(expected) <= SETTLED_THRESHOLD:
            continue
        actual = transfer_net.get(b.user_id, ZERO)
        if abs(expected - actual) > NET_TOLERANCE:
            errors.append(f"User {b.user_id}: expected net {to_cents(expected):.2f}, got {to_cents(actual):.2f}")

    return ValidationReport(valid=not errors, errors=errors)
