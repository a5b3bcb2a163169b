from __future__ import annotations

from typing import Iterable

from splitpay.services.balances import BalanceInput
from splitpay.services.settlement import PlanEmpty, PlanInconsistent, PlanResult
from splitpay.services.simplify import DebtEdge
from splitpay.utils.money import format_amount


def describe_balance(balance: BalanceInput, currency: str = "USD") -> str:
    if balance.amount > 0:
        return f"{balance.user_name} is owed {format_amount(balance.amount, currency)}"
    if balance.amount < 0:
        return f"{balance.user_name} owes {format_amount(-balance.amount, currency)}"
    return f"{balance.user_name} is settled up"


def format_balances(group_name: str, balances: Iterable[BalanceInput], currency: str = "USD") -> str:
    lines = [f"Balances in {group_name}"]
    lines.extend(describe_balance(b, currency) for b in balances)
    return "\n".join(lines)


def format_transfer(transfer: DebtEdge, currency: str = "USD") -> str:
    return f"{transfer.from_name} → {transfer.to_name}: {format_amount(transfer.amount, currency)}"


def format_plan(group_name: str, result: PlanResult, currency: str = "USD") -> str:
    if isinstance(result, PlanEmpty):
        return f"Everyone in {group_name} is settled up."

    lines = [f"Settlement plan for {group_name}"]
    lines.extend(format_transfer(t, currency) for t in result.plan.transfers)
    lines.append(
        f"{result.plan.transaction_count} transfer(s), {format_amount(result.plan.total_amount, currency)} in total"
    )
    if isinstance(result, PlanInconsistent):
        lines.append("Warning: group balances do not add up.")
        lines.extend(f"- {w}" for w in result.warnings)
    return "\n".join(lines)


def format_reminder(group_name: str, transfers: Iterable[DebtEdge], currency: str = "USD") -> str:
    lines = [f"Reminder: you have open debts in {group_name}"]
    lines.extend(format_transfer(t, currency) for t in transfers)
    return "\n".join(lines)
