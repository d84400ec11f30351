"""
Tests for the pure balance and settlement computation.

Spends are built as transient ORM objects; nothing touches a database.
"""
import random
from datetime import date, datetime
from decimal import Decimal
from app.core.currency import allocate
from app.models.spend import Spend, SpendAssignment
from app.models.trip import Trip
from app.models.user import User
from app.services.balance_service import accumulate_net_balances, minimize_transfers, round_balances, summarize

D = Decimal


def make_spend(spend_id, payer_id, normalized, shares, on=date(2024, 3, 1),
               currency="USD", fx_rate="1", payer=None):
    spend = Spend(
        id=spend_id,
        trip_id=1,
        paid_by_id=payer_id,
        paid_by=payer,
        date=on,
        amount=D(normalized) if normalized is not None else D(0),
        currency=currency,
        fx_rate=D(fx_rate) if fx_rate is not None else None,
        normalized_amount=D(normalized) if normalized is not None else None
    )
    for user_id, share in shares.items():
        spend.assignments.append(SpendAssignment(
            user_id=user_id,
            normalized_share_amount=D(share) if share is not None else None
        ))
    return spend


def make_trip(base_currency="USD"):
    return Trip(id=7, name="Test trip", base_currency=base_currency)


def transfers_of(summary):
    return [(s.from_user_id, s.to_user_id, s.amount) for s in summary.settlements]


def net_of(summary):
    return {b.user_id: b.net_balance for b in summary.balances}


def test_empty_trip():
    """Test a trip without spends."""
    summary = summarize(make_trip(), [])
    assert summary.balances == []
    assert summary.settlements == []
    assert summary.total_spent == D("0")
    assert summary.skipped_records == 0


def test_two_people_equal_split():
    """Test U1 pays 100 split evenly with U2."""
    summary = summarize(make_trip(), [make_spend(1, 1, "100.00", {1: "50.00", 2: "50.00"})])
    assert net_of(summary) == {1: D("50.00"), 2: D("-50.00")}
    assert transfers_of(summary) == [(2, 1, D("50.00"))]
    assert summary.settlements[0].id == "7-1"


def test_two_spends_net_to_one_transfer():
    """Test a second spend by U2 reduces what U2 owes U1."""
    summary = summarize(make_trip(), [
        make_spend(1, 1, "100.00", {1: "50.00", 2: "50.00"}),
        make_spend(2, 2, "30.00", {1: "15.00", 2: "15.00"}),
    ])
    assert net_of(summary) == {1: D("35.00"), 2: D("-35.00")}
    assert transfers_of(summary) == [(2, 1, D("35.00"))]


def test_three_people_cross_spending():
    """Test three spends that net to a single transfer."""
    spends = [
        make_spend(1, 1, "90", {1: "30", 2: "30", 3: "30"}),
        make_spend(2, 2, "60", {1: "20", 2: "20", 3: "20"}),
        make_spend(3, 3, "30", {1: "10", 2: "10", 3: "10"}),
    ]
    summary = summarize(make_trip(), spends)
    assert net_of(summary) == {1: D("30.00"), 2: D("0.00"), 3: D("-30.00")}
    assert transfers_of(summary) == [(3, 1, D("30.00"))]
    assert summary.total_spent == D("180.00")


def test_chain_settlement_is_minimal():
    """Test four people with two creditors and two debtors."""
    summary = summarize(make_trip(), [
        make_spend(1, 1, "100", {1: "25", 2: "25", 3: "25", 4: "25"}),
        make_spend(2, 2, "60", {1: "15", 2: "15", 3: "15", 4: "15"}),
    ])
    assert net_of(summary) == {1: D("60.00"), 2: D("20.00"), 3: D("-40.00"), 4: D("-40.00")}
    assert transfers_of(summary) == [
        (3, 1, D("40.00")),
        (4, 1, D("20.00")),
        (4, 2, D("20.00")),
    ]


def test_multi_currency_uses_normalized_amounts():
    """Test a EUR spend in a USD trip counts at its normalized value."""
    spend = make_spend(1, 1, "11.00", {1: "5.50", 2: "5.50"}, currency="EUR", fx_rate="1.10")
    summary = summarize(make_trip("USD"), [spend])
    assert summary.base_currency == "USD"
    assert transfers_of(summary) == [(2, 1, D("5.50"))]


def test_partial_assignment_within_tolerance():
    """Test that sub-cent residue from incomplete assignment is absorbed."""
    summary = summarize(make_trip(), [make_spend(1, 1, "100.00", {1: "50.00", 2: "49.999999"})])
    assert transfers_of(summary) == [(2, 1, D("50.00"))]


def test_residue_below_tolerance_produces_no_settlement():
    """Test that a payer left with a sub-cent balance is considered settled."""
    summary = summarize(make_trip(), [make_spend(1, 1, "100.00", {1: "99.999999"})])
    assert summary.settlements == []
    assert net_of(summary) == {1: D("0.00")}


def test_sub_cent_balances_settle_exactly():
    """Test that sub-cent shares still give balances the transfers clear."""
    summary = summarize(make_trip(), [
        make_spend(1, 1, "5.004", {3: "5.004"}),
        make_spend(2, 2, "5.004", {3: "5.004"}),
    ])
    balances = net_of(summary)
    assert balances == {1: D("5.01"), 2: D("5.00"), 3: D("-10.01")}
    assert transfers_of(summary) == [(3, 1, D("5.01")), (3, 2, D("5.00"))]

    remaining = dict(balances)
    for s in summary.settlements:
        remaining[s.from_user_id] += s.amount
        remaining[s.to_user_id] -= s.amount
    assert all(v == 0 for v in remaining.values())


def test_round_balances_keeps_rounded_total():
    """Test per-user rounding does not change the rounded sum."""
    rounded = round_balances({1: D("0.333"), 2: D("0.333"), 3: D("-0.666")}, "USD")
    assert rounded == {1: D("0.33"), 2: D("0.33"), 3: D("-0.66")}

    rounded = round_balances({1: D("100"), 2: D("-59.996"), 3: D("-0.004")}, "USD")
    assert sum(rounded.values()) == D("40.00")
    assert rounded == {1: D("100.00"), 2: D("-60.00"), 3: D("0.00")}


def test_fully_self_assigned_trip():
    """Test that everyone paying only for themselves needs no transfers."""
    summary = summarize(make_trip(), [
        make_spend(1, 1, "40", {1: "40"}),
        make_spend(2, 2, "25.50", {2: "25.50"}),
    ])
    assert summary.settlements == []
    assert all(b.net_balance == 0 for b in summary.balances)
    assert summary.total_spent == D("65.50")


def test_partially_assigned_spend_keeps_payer_credit():
    """Test that an unassigned remainder stays with the payer."""
    summary = summarize(make_trip(), [make_spend(1, 1, "100", {2: "60"})])
    assert net_of(summary) == {1: D("100.00"), 2: D("-60.00")}
    assert transfers_of(summary) == [(2, 1, D("60.00"))]


def test_deleted_spends_are_ignored():
    """Test that soft-deleted spends do not count."""
    deleted = make_spend(2, 2, "80", {1: "80"})
    deleted.deleted_at = datetime(2024, 3, 2)
    summary = summarize(make_trip(), [make_spend(1, 1, "10", {2: "10"}), deleted])
    assert transfers_of(summary) == [(2, 1, D("10.00"))]
    assert summary.skipped_records == 0


def test_malformed_records_are_skipped_and_counted():
    """Test that spends and assignments with integrity problems are skipped."""
    spends = [
        make_spend(1, 1, "30", {1: "15", 2: "15"}),
        make_spend(2, None, "50", {1: "50"}),                                   # no payer
        make_spend(3, 2, None, {1: "10"}),                                      # not normalized
        make_spend(4, 2, "20", {1: "20"}, currency="EUR", fx_rate=None),        # no fx rate
        make_spend(5, 1, "10", {None: "5", 2: None, 3: "5"}),                   # bad assignments
    ]
    summary = summarize(make_trip(), spends)
    assert summary.skipped_records == 5
    assert summary.total_spent == D("40.00")
    assert net_of(summary) == {1: D("25.00"), 2: D("-15.00"), 3: D("-5.00")}


def test_deleted_user_is_skipped():
    """Test that a soft-deleted payer invalidates the spend."""
    gone = User(id=2, username="gone", deleted_at=datetime(2024, 1, 1))
    summary = summarize(make_trip(), [make_spend(1, 2, "10", {1: "10"}, payer=gone)])
    assert summary.skipped_records == 1
    assert summary.settlements == []


def test_zero_decimal_currency_precision():
    """Test JPY balances and transfers are whole units."""
    summary = summarize(make_trip("JPY"), [make_spend(1, 1, "1000", {1: "333", 2: "333", 3: "334"})])
    assert transfers_of(summary) == [(3, 1, D("334")), (2, 1, D("333"))]


def test_tie_break_by_user_id():
    """Test equal balances are matched lowest user id first."""
    balances = {3: D("10"), 1: D("10"), 4: D("-10"), 2: D("-10")}
    transfers = minimize_transfers(balances, "USD")
    assert [(t.from_user_id, t.to_user_id, t.amount) for t in transfers] == [
        (2, 1, D("10.00")),
        (4, 3, D("10.00")),
    ]


def test_largest_creditor_and_debtor_first():
    """Test that the largest amounts are matched first."""
    balances = {1: D("5"), 2: D("30"), 3: D("-20"), 4: D("-15")}
    transfers = minimize_transfers(balances, "USD")
    assert [(t.from_user_id, t.to_user_id, t.amount) for t in transfers] == [
        (3, 2, D("20.00")),
        (4, 2, D("10.00")),
        (4, 1, D("5.00")),
    ]


def test_debt_age_is_oldest_contributing_spend():
    """Test oldest_debt_date for a direct debt."""
    summary = summarize(make_trip(), [
        make_spend(1, 1, "10", {2: "10"}, on=date(2024, 3, 5)),
        make_spend(2, 1, "20", {2: "20"}, on=date(2024, 3, 2)),
        make_spend(3, 1, "0", {2: "0"}, on=date(2024, 2, 1)),
    ])
    assert summary.settlements[0].oldest_debt_date == date(2024, 3, 2)


def test_debt_age_missing_for_netted_edge():
    """Test that a transfer created only by netting has no debt date."""
    summary = summarize(make_trip(), [
        make_spend(1, 1, "10", {2: "10"}, on=date(2024, 3, 1)),
        make_spend(2, 2, "10", {3: "10"}, on=date(2024, 3, 2)),
    ])
    assert transfers_of(summary) == [(3, 1, D("10.00"))]
    assert summary.settlements[0].oldest_debt_date is None


def test_accumulate_tracks_paid_and_owed():
    """Test per-user paid and owed totals."""
    sheet = accumulate_net_balances([
        make_spend(1, 1, "90", {1: "30", 2: "60"}),
        make_spend(2, 2, "12", {1: "12"}),
    ], "USD")
    assert sheet.entries[1].total_paid == D("90")
    assert sheet.entries[1].total_owed == D("42")
    assert sheet.entries[2].net == D("-48")
    assert sheet.debt_ages == {(2, 1): date(2024, 3, 1), (1, 2): date(2024, 3, 1)}


def _random_trip(seed, share_currency="USD"):
    rng = random.Random(seed)
    users = list(range(1, rng.randint(2, 7) + 1))
    spends = []
    for spend_id in range(1, rng.randint(1, 30) + 1):
        payer = rng.choice(users)
        total = D(rng.randint(1, 500000)) / 1000 if share_currency == "KWD" else D(rng.randint(1, 50000)) / 100
        assignees = sorted(rng.sample(users, rng.randint(1, len(users))))
        parts = allocate(total, [1] * len(assignees), share_currency)
        spends.append(make_spend(spend_id, payer, total, dict(zip(assignees, parts)),
                                 on=date(2024, 1, 1 + spend_id % 28)))
    return users, spends


def test_settlement_properties_hold_for_random_trips():
    """Test zero-sum, positivity, no self-transfers and the transfer bound."""
    for seed in range(50):
        users, spends = _random_trip(seed)
        summary = summarize(make_trip(), spends)
        balances = net_of(summary)
        assert sum(balances.values()) == 0

        remaining = dict(balances)
        for s in summary.settlements:
            assert s.amount > 0
            assert s.from_user_id != s.to_user_id
            remaining[s.from_user_id] += s.amount
            remaining[s.to_user_id] -= s.amount
        assert all(abs(v) <= D("0.005") for v in remaining.values())

        nonzero = [u for u, v in balances.items() if v != 0]
        assert len(summary.settlements) <= max(len(nonzero) - 1, 0)


def test_calculation_is_deterministic():
    """Test identical input gives identical settlements."""
    _, spends = _random_trip(99)
    first = summarize(make_trip(), spends)
    second = summarize(make_trip(), list(reversed(spends)))
    assert transfers_of(first) == transfers_of(second)
    assert [s.oldest_debt_date for s in first.settlements] == [s.oldest_debt_date for s in second.settlements]


def test_sub_cent_trips_settle_exactly():
    """Test that shares finer than a cent still settle every reported balance to zero."""
    for seed in range(50):
        _, spends = _random_trip(seed, share_currency="KWD")
        summary = summarize(make_trip(), spends)
        balances = net_of(summary)
        assert sum(balances.values()) == 0

        remaining = dict(balances)
        for s in summary.settlements:
            assert s.amount > 0
            remaining[s.from_user_id] += s.amount
            remaining[s.to_user_id] -= s.amount
        assert all(v == 0 for v in remaining.values())
