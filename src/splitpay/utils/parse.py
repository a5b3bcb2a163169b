from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from uuid import UUID

from splitpay.utils.money import to_cents

_AMOUNT_RE = re.compile(r"^\$?\s*(\d+(?:[.,]\d{1,2})?)\s*([A-Za-z]{3})?$")


def parse_amount(text: str) -> tuple[Decimal, str | None]:
    """
    Parse a user-typed amount with an optional currency code.

    Supported forms:
    - 12
    - 12.50
    - 12,50 USD
    - $12.50
    """
    match = _AMOUNT_RE.match(text.strip())
    if not match:
        raise ValueError("Expected an amount like 12.50 or 12.50 USD")

    try:
        amount = to_cents(match.group(1).replace(",", "."))
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc

    if amount <= 0:
        raise ValueError("Amount must be greater than zero")

    currency = match.group(2).upper() if match.group(2) else None
    return amount, currency


def parse_group_id(text: str) -> str:
    try:
        return str(UUID(text.strip()))
    except ValueError as exc:
        raise ValueError("Unknown group id") from exc
