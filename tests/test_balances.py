from decimal import Decimal

from splitpay.db.models import Expense, ExpenseSplit, Member
from splitpay.services.balances import balance_sum, calculate_group_balances

MEMBERS = [
    Member(user_id="a", display_name="Alice"),
    Member(user_id="b", display_name="Bob"),
    Member(user_id="c", display_name="Charlie"),
]


def _expense(expense_id: str, paid_by: str, total: str, shares: dict[str, str], settled: set[str] = frozenset()) -> Expense:
    return Expense(
        id=expense_id,
        group_id="g1",
        paid_by=paid_by,
        total_amount=Decimal(total),
        splits=[
            ExpenseSplit(expense_id=expense_id, user_id=user_id, amount=Decimal(amount), is_settled=user_id in settled)
            for user_id, amount in shares.items()
        ],
    )


def test_payer_credited_and_splits_debited():
    expenses = [
        _expense("e1", "a", "30", {"a": "10", "b": "10", "c": "10"}),
        _expense("e2", "b", "15", {"a": "7.50", "b": "7.50"}),
    ]

    balances = {b.user_id: b.amount for b in calculate_group_balances(expenses, MEMBERS)}

    assert balances == {"a": Decimal("12.50"), "b": Decimal("-2.50"), "c": Decimal("-10.00")}
    assert balance_sum(calculate_group_balances(expenses, MEMBERS)) == 0


def test_sorted_most_owing_first():
    expenses = [_expense("e1", "a", "30", {"a": "10", "b": "10", "c": "10"})]

    balances = calculate_group_balances(expenses, MEMBERS)

    assert [b.user_name for b in balances][-1] == "Alice"
    assert balances[0].amount == Decimal("-10.00")


def test_settled_splits_are_skipped():
    expenses = [_expense("e1", "a", "30", {"a": "10", "b": "10", "c": "10"}, settled={"b"})]

    balances = {b.user_id: b.amount for b in calculate_group_balances(expenses, MEMBERS)}

    assert balances["b"] == Decimal("0.00")
    assert balances["c"] == Decimal("-10.00")
    assert balances["a"] == Decimal("20.00")


def test_member_without_activity_is_zero():
    members = MEMBERS + [Member(user_id="d", display_name="Diana")]
    expenses = [_expense("e1", "a", "20", {"a": "10", "b": "10"})]

    balances = {b.user_id: b for b in calculate_group_balances(expenses, members)}

    assert balances["d"].amount == Decimal("0.00")
    assert balances["d"].status == "settled up"


def test_no_expenses():
    balances = calculate_group_balances([], MEMBERS)

    assert [b.amount for b in balances] == [Decimal("0.00")] * 3


def test_unknown_user_gets_placeholder_name():
    expenses = [_expense("e1", "a", "20", {"a": "10", "z": "10"})]

    balances = {b.user_id: b for b in calculate_group_balances(expenses, MEMBERS)}

    assert balances["z"].user_name == "Unknown"
    assert balances["z"].amount == Decimal("-10.00")


def test_amounts_rounded_to_cents():
    expenses = [_expense("e1", "a", "10", {"a": "3.333", "b": "3.333", "c": "3.334"})]

    balances = {b.user_id: b.amount for b in calculate_group_balances(expenses, MEMBERS)}

    assert balances["b"] == Decimal("-3.33")
    assert balances["a"] == Decimal("6.67")
    assert all(amount.as_tuple().exponent == -2 for amount in balances.values())


def test_status_labels():
    expenses = [_expense("e1", "a", "20", {"a": "10", "b": "10"})]

    balances = {b.user_id: b for b in calculate_group_balances(expenses, MEMBERS)}

    assert balances["a"].status == "is owed"
    assert balances["b"].status == "owes"
