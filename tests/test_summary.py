from decimal import Decimal

from splitpay.services.balances import BalanceInput
from splitpay.services.settlement import plan_settlement
from splitpay.services.summary import describe_balance, format_balances, format_plan


def _balances(**amounts: str) -> list[BalanceInput]:
    return [BalanceInput(user_id=k, user_name=k.title(), amount=Decimal(v)) for k, v in amounts.items()]


def test_describe_balance():
    owes, owed, even = _balances(alice="-12.5", bob="12.5", carol="0")
    assert describe_balance(owes) == "Alice owes $12.50"
    assert describe_balance(owed) == "Bob is owed $12.50"
    assert describe_balance(even) == "Carol is settled up"


def test_describe_balance_other_currency():
    (owes,) = _balances(alice="-3")
    assert describe_balance(owes, "eur") == "Alice owes EUR 3.00"


def test_format_balances():
    text = format_balances("Ski trip", _balances(alice="-20", bob="20"))
    assert text.splitlines() == ["Balances in Ski trip", "Alice owes $20.00", "Bob is owed $20.00"]


def test_format_plan_ready():
    text = format_plan("Ski trip", plan_settlement(_balances(alice="-25", bob="5", charlie="20")))
    assert text.splitlines() == [
        "Settlement plan for Ski trip",
        "Alice → Charlie: $20.00",
        "Alice → Bob: $5.00",
        "2 transfer(s), $25.00 in total",
    ]


def test_format_plan_empty():
    assert format_plan("Ski trip", plan_settlement(_balances(alice="0"))) == "Everyone in Ski trip is settled up."


def test_format_plan_inconsistent():
    text = format_plan("Ski trip", plan_settlement(_balances(alice="-20", bob="15")))
    assert "Warning: group balances do not add up." in text
    assert "- Balance sum is -5.00, expected ~0" in text
