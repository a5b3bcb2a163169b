from decimal import Decimal

import pytest
from structlog.testing import capture_logs

from splitpay.services.balances import BalanceInput
from splitpay.services.simplify import DebtEdge, simplify_debts, validate_simplification


def _balances(*entries: tuple[str, str]) -> list[BalanceInput]:
    return [BalanceInput(user_id=name[0].lower(), user_name=name, amount=Decimal(amount)) for name, amount in entries]


def _net(transfers: list[DebtEdge]) -> dict[str, Decimal]:
    net: dict[str, Decimal] = {}
    for t in transfers:
        net[t.from_user] = net.get(t.from_user, Decimal("0")) - t.amount
        net[t.to_user] = net.get(t.to_user, Decimal("0")) + t.amount
    return net


SCENARIOS = {
    "two_people": _balances(("Alice", "-20"), ("Bob", "20")),
    "three_person_chain": _balances(("Alice", "-25"), ("Bob", "5"), ("Charlie", "20")),
    "five_person": _balances(("Alice", "-40"), ("Bob", "-10"), ("Charlie", "25"), ("Diana", "15"), ("Eve", "10")),
    "all_settled": _balances(("Alice", "0"), ("Bob", "0")),
    "one_debtor_three_creditors": _balances(("Alice", "-30"), ("Bob", "10"), ("Charlie", "10"), ("Diana", "10")),
    "restaurant_split": _balances(("Alice", "-33.33"), ("Bob", "-33.33"), ("Charlie", "66.66")),
}


def test_two_people_single_transfer():
    transfers = simplify_debts(SCENARIOS["two_people"])

    assert transfers == [DebtEdge(from_user="a", from_name="Alice", to_user="b", to_name="Bob", amount=Decimal("20.00"))]


def test_three_person_chain():
    transfers = simplify_debts(SCENARIOS["three_person_chain"])

    assert len(transfers) <= 2
    assert [(t.to_name, t.amount) for t in transfers] == [("Charlie", Decimal("20")), ("Bob", Decimal("5"))]


def test_five_person_at_most_four_transfers():
    transfers = simplify_debts(SCENARIOS["five_person"])

    assert len(transfers) <= 4
    assert _net(transfers) == {
        "a": Decimal("-40"),
        "b": Decimal("-10"),
        "c": Decimal("25"),
        "d": Decimal("15"),
        "e": Decimal("10"),
    }


def test_all_settled_produces_nothing():
    assert simplify_debts(SCENARIOS["all_settled"]) == []
    assert simplify_debts([]) == []


def test_one_debtor_three_creditors():
    transfers = simplify_debts(SCENARIOS["one_debtor_three_creditors"])

    assert len(transfers) == 3
    assert all(t.from_user == "a" for t in transfers)


def test_restaurant_decimal_split():
    transfers = simplify_debts(SCENARIOS["restaurant_split"])

    assert len(transfers) == 2
    received = sum(t.amount for t in transfers if t.to_user == "c")
    assert abs(received - Decimal("66.66")) <= Decimal("0.02")


@pytest.mark.parametrize("name", sorted(SCENARIOS))
def test_scenarios_validate(name):
    balances = SCENARIOS[name]
    transfers = simplify_debts(balances)

    report = validate_simplification(balances, transfers)

    assert report.valid, report.errors
    assert report.errors == []


@pytest.mark.parametrize("name", sorted(SCENARIOS))
def test_transfers_positive_and_cent_rounded(name):
    for t in simplify_debts(SCENARIOS[name]):
        assert t.amount > Decimal("0.01")
        assert t.amount.as_tuple().exponent == -2


def test_near_zero_balances_are_ignored():
    balances = _balances(("Alice", "-0.01"), ("Bob", "0.01"), ("Charlie", "-5"), ("Diana", "5"))

    transfers = simplify_debts(balances)

    assert [(t.from_user, t.to_user, t.amount) for t in transfers] == [("c", "d", Decimal("5.00"))]


def test_equal_debtor_and_creditor_advance_together():
    balances = _balances(("Alice", "-10"), ("Bob", "-5"), ("Charlie", "10"), ("Diana", "5"))

    transfers = simplify_debts(balances)

    assert [(t.from_user, t.to_user) for t in transfers] == [("a", "c"), ("b", "d")]


def test_thirds_do_not_leave_dust_transfers():
    balances = _balances(("Alice", "-3.33"), ("Bob", "-3.33"), ("Charlie", "-3.34"), ("Diana", "10"))

    transfers = simplify_debts(balances)

    assert len(transfers) == 3
    assert sum(t.amount for t in transfers) == Decimal("10.00")


def test_drift_is_logged_not_raised():
    balances = _balances(("Alice", "-10"), ("Bob", "5"))

    with capture_logs() as logs:
        transfers = simplify_debts(balances)

    assert [(t.from_user, t.to_user, t.amount) for t in transfers] == [("a", "b", Decimal("5.00"))]
    assert any(entry["event"] == "simplify.balance_sum_drift" and entry["log_level"] == "warning" for entry in logs)


def test_consistent_input_logs_no_warning():
    with capture_logs() as logs:
        simplify_debts(SCENARIOS["five_person"])

    assert logs == []


def test_input_is_not_mutated():
    balances = SCENARIOS["five_person"]
    before = [(b.user_id, b.amount) for b in balances]

    simplify_debts(balances)

    assert [(b.user_id, b.amount) for b in balances] == before


def test_validation_reports_every_error():
    balances = _balances(("Alice", "-20"), ("Bob", "20"))
    transfers = [
        DebtEdge("a", "Alice", "b", "Bob", Decimal("15")),
        DebtEdge("a", "Alice", "b", "Bob", Decimal("10")),
    ]

    report = validate_simplification(balances, transfers)

    assert report.valid is False
    assert len(report.errors) == 3
    assert report.errors[0] == "Too many transfers: 2 (max 1)"
    assert "User a: expected net -20.00, got -25.00" in report.errors


def test_validation_tolerates_rounding():
    balances = _balances(("Alice", "-20"), ("Bob", "20"))
    transfers = [DebtEdge("a", "Alice", "b", "Bob", Decimal("19.99"))]

    assert validate_simplification(balances, transfers).valid


def test_validation_skips_near_zero_participants():
    balances = _balances(("Alice", "-20"), ("Bob", "20"), ("Charlie", "0.01"))
    transfers = simplify_debts(balances)

    assert validate_simplification(balances, transfers).valid
