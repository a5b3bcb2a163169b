from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class SettlementStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ActivityType(str, Enum):
    EXPENSE_ADDED = "expense_added"
    SETTLEMENT = "settlement"


@dataclass(slots=True)
class Group:
    id: str
    name: str
    description: Optional[str]
    created_by: str
    created_at: datetime


@dataclass(slots=True)
class Member:
    user_id: str
    display_name: Optional[str]
    wallet_address: Optional[str] = None
    tg_id: Optional[int] = None


@dataclass(slots=True)
class ExpenseSplit:
    expense_id: str
    user_id: str
    amount: Decimal
    is_settled: bool = False
    settled_tx_hash: Optional[str] = None
    settled_at: Optional[datetime] = None


@dataclass(slots=True)
class Expense:
    id: str
    group_id: str
    paid_by: str
    total_amount: Decimal
    splits: list[ExpenseSplit] = field(default_factory=list)
    title: str = ""
    description: Optional[str] = None
    currency: str = "USD"
    created_at: Optional[datetime] = None
    paid_by_name: Optional[str] = None


@dataclass(slots=True)
class SettlementRecord:
    group_id: str
    from_user: str
    to_user: str
    amount: Decimal
    tx_hash: str
    memo: str
    status: SettlementStatus = SettlementStatus.COMPLETED
