from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Sequence, Union

from splitpay.services.balances import BalanceInput
from splitpay.services.simplify import (
    SUM_TOLERANCE,
    DebtEdge,
    balance_drift,
    simplify_debts,
    validate_simplification,
)
from splitpay.utils.money import ZERO, to_cents

MEMO_PREFIX = "sp|"
MEMO_GROUP_ID_LENGTH = 8
# The encoded memo is padded to 32 bytes; one byte stays reserved.
MEMO_MAX_LENGTH = 31
MEMO_ENCODED_LENGTH = 32


@dataclass(slots=True)
class SettlementPlan:
    transfers: List[DebtEdge] = field(default_factory=list)
    total_amount: Decimal = ZERO
    transaction_count: int = 0


@dataclass(slots=True)
class PlanReady:
    plan: SettlementPlan


@dataclass(slots=True)
class PlanEmpty:
    pass


@dataclass(slots=True)
class PlanInconsistent:
    plan: SettlementPlan
    warnings: list[str]


PlanResult = Union[PlanReady, PlanEmpty, PlanInconsistent]


def compute_settlement_plan(balances: Sequence[BalanceInput]) -> SettlementPlan:
    transfers = simplify_debts(balances)
    total = to_cents(sum((t.amount for t in transfers), ZERO))
    return SettlementPlan(transfers=transfers, total_amount=total, transaction_count=len(transfers))


def plan_settlement(balances: Sequence[BalanceInput]) -> PlanResult:
    """Compute a plan and classify it for presentation.

    Inconsistent input still yields a plan; the warnings explain why it may
    not zero out every balance.
    """
    plan = compute_settlement_plan(balances)

    warnings: list[str] = []
    drift = balance_drift(balances)
    if abs(drift) > SUM_TOLERANCE:
        warnings.append(f"Balance sum is {to_cents(drift):.2f}, expected ~0")
    warnings.extend(validate_simplification(balances, plan.transfers).errors)

    if warnings:
        return PlanInconsistent(plan=plan, warnings=warnings)
    if not plan.transfers:
        return PlanEmpty()
    return PlanReady(plan=plan)


def transfers_for(plan: SettlementPlan, user_id: str) -> list[DebtEdge]:
    """Transfers in which ``user_id`` is the paying side."""
    return [t for t in plan.transfers if t.from_user == user_id]


def build_settlement_memo(group_id: str, description: str) -> str:
    """Compact transfer memo: ``sp|<group id prefix>|<description>``.

    The description is cut to whatever is left of the 31 character budget,
    and further if multi-byte characters would push the encoded memo past
    31 bytes. A multi-byte group id prefix is cut as well once the
    description is gone.
    """
    short_group_id = group_id[:MEMO_GROUP_ID_LENGTH]
    short_desc = description[: max(MEMO_MAX_LENGTH - len(MEMO_PREFIX) - len(short_group_id) - 1, 0)]
    memo = f"{MEMO_PREFIX}{short_group_id}|{short_desc}"
    while len(memo.encode("utf-8")) > MEMO_MAX_LENGTH:
        if short_desc:
            short_desc = short_desc[:-1]
        else:
            short_group_id = short_group_id[:-1]
        memo = f"{MEMO_PREFIX}{short_group_id}|{short_desc}"
    return memo


def encode_memo(memo: str) -> bytes:
    raw = memo.encode("utf-8")
    if len(raw) > MEMO_MAX_LENGTH:
        raise ValueError(f"memo exceeds {MEMO_MAX_LENGTH} bytes: {memo!r}")
    return raw.ljust(MEMO_ENCODED_LENGTH, b"\0")
