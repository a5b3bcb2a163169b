from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Sequence

from splitpay.utils.money import CENT, to_cents


def split_amount(total: Decimal, user_ids: Sequence[str]) -> dict[str, Decimal]:
    """Equal split of ``total`` that always sums back to ``total``.

    Leftover cents go one by one to the first users in order.
    """
    if total < 0:
        raise ValueError("total must be non-negative")
    if not user_ids:
        raise ValueError("user_ids must not be empty")

    total = to_cents(total)
    n = len(user_ids)
    base_share = (total / n).quantize(CENT, rounding=ROUND_DOWN)

    shares = [base_share for _ in user_ids]
    remainder = total - base_share * n

    idx = 0
    while remainder > 0:
        shares[idx] += CENT
        remainder -= CENT
        idx = (idx + 1) % n

    return {user_id: share for user_id, share in zip(user_ids, shares)}
