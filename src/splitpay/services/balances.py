from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from splitpay.db.models import Expense, Member
from splitpay.utils.money import ZERO, to_cents

UNKNOWN_NAME = "Unknown"


@dataclass(slots=True)
class BalanceInput:
    user_id: str
    user_name: str
    amount: Decimal  # positive = is owed money, negative = owes money

    @property
    def status(self) -> str:
        if self.amount > 0:
            return "is owed"
        if self.amount < 0:
            return "owes"
        return "settled up"


def calculate_group_balances(expenses: Iterable[Expense], members: Sequence[Member]) -> list[BalanceInput]:
    """Net balance per member from the group's expenses and unsettled splits.

    The payer is credited with the full expense total. Each unsettled split
    debits its owner; settled splits were already paid off by an earlier
    settlement and are skipped.
    """
    net: dict[str, Decimal] = {member.user_id: ZERO for member in members}

    for expense in expenses:
        net[expense.paid_by] = net.get(expense.paid_by, ZERO) + Decimal(expense.total_amount)
        for split in expense.splits:
            if split.is_settled:
                continue
            net[split.user_id] = net.get(split.user_id, ZERO) - Decimal(split.amount)

    names = {member.user_id: member.display_name for member in members}
    entries = [
        BalanceInput(user_id=user_id, user_name=names.get(user_id) or UNKNOWN_NAME, amount=to_cents(amount))
        for user_id, amount in net.items()
    ]
    entries.sort(key=lambda entry: entry.amount)
    return entries


def balance_sum(balances: Iterable[BalanceInput]) -> Decimal:
    return sum((Decimal(b.amount) for b in balances), ZERO)
