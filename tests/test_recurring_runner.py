from collections import Counter
from datetime import datetime
from decimal import Decimal

import pytest

from sharedbudget.data.repositories import recurring_repository
from sharedbudget.data.repositories.income_repository import IncomeORM
from sharedbudget.data.repositories.purchase_repository import PurchaseORM
from sharedbudget.data.repositories.recurring_repository import RecurringRuleORM
from sharedbudget.domain.errors import ConflictError, ValidationError
from sharedbudget.domain.models import Recurrence, RuleKind
from sharedbudget.domain.services.income_service import create_income
from sharedbudget.domain.services.purchase_service import create_purchase
from sharedbudget.domain.services.recurring_service import (
    run_due_rules,
    set_rule_active,
)


def _recurring_purchase(db, budget, user, amount, recurrence, start, now, **extra):
    return create_purchase(
        db,
        budget,
        user.id,
        item_name="Internet",
        category_id=budget.categories[0].id,
        amount=Decimal(amount),
        paid_at=start,
        recurring={"recurrence": recurrence, "interval": 1, "start_at": start, **extra},
        now=now,
    )


def _rule(db, purchase):
    return db.get(RecurringRuleORM, purchase.recurring_rule_id)


def _generated(db, rule_id):
    return (
        db.query(PurchaseORM)
        .filter(PurchaseORM.recurring_rule_id == rule_id)
        .order_by(PurchaseORM.paid_at)
        .all()
    )


def test_first_run_is_after_creation(make_budget, db):
    budget, (alice, *_) = make_budget("alice", "bob", "carol")
    purchase = _recurring_purchase(
        db, budget, alice, "90", Recurrence.MONTHLY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 10),
    )
    rule = _rule(db, purchase)
    assert rule.next_run_at == datetime(2024, 2, 1)
    assert rule.last_run_at is None
    assert rule.kind == RuleKind.EXPENSE


def test_run_due_materializes_equal_split(make_budget, db):
    budget, (alice, bob, carol) = make_budget("alice", "bob", "carol")
    purchase = _recurring_purchase(
        db, budget, alice, "90", Recurrence.MONTHLY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 10),
    )

    result = run_due_rules(db, budget, RuleKind.EXPENSE, bob.id, now=datetime(2024, 2, 1, 12))

    assert result.created_count == 1
    created = db.get(PurchaseORM, result.created_ids[0])
    assert created.paid_at == datetime(2024, 2, 1)
    assert created.shared is True
    assert created.created_by_id == bob.id
    assert created.paid_by_id == alice.id
    assert created.amount == Decimal("90.00")
    assert Counter(s.percent for s in created.shares) == Counter({34: 1, 33: 2})
    assert {s.user_id for s in created.shares} == {alice.id, bob.id, carol.id}

    rule = _rule(db, purchase)
    assert rule.last_run_at == datetime(2024, 2, 1)
    assert rule.next_run_at == datetime(2024, 3, 1)


def test_second_run_creates_nothing(make_budget, db):
    budget, (alice, bob) = make_budget("alice", "bob")
    _recurring_purchase(
        db, budget, alice, "30", Recurrence.WEEKLY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 10),
    )
    now = datetime(2024, 1, 8, 10)

    assert run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=now).created_count == 1
    assert run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=now).created_count == 0


def test_overdue_occurrences_are_caught_up(make_budget, db):
    budget, (alice, bob) = make_budget("alice", "bob")
    purchase = _recurring_purchase(
        db, budget, alice, "5", Recurrence.DAILY,
        datetime(2024, 1, 1, 12), now=datetime(2024, 1, 1, 13),
    )

    result = run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=datetime(2024, 1, 5, 12))

    assert result.created_count == 4
    paid = [p.paid_at for p in _generated(db, purchase.recurring_rule_id)]
    assert paid == [
        datetime(2024, 1, 1, 12),
        datetime(2024, 1, 2, 12),
        datetime(2024, 1, 3, 12),
        datetime(2024, 1, 4, 12),
        datetime(2024, 1, 5, 12),
    ]
    rule = _rule(db, purchase)
    assert rule.next_run_at == datetime(2024, 1, 6, 12)
    assert rule.last_run_at == datetime(2024, 1, 5, 12)


def test_single_member_budget_pays_everything(make_budget, db):
    budget, (alice,) = make_budget("alice")
    _recurring_purchase(
        db, budget, alice, "12", Recurrence.MONTHLY,
        datetime(2024, 1, 15), now=datetime(2024, 1, 15, 1),
    )

    result = run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=datetime(2024, 2, 20))

    created = db.get(PurchaseORM, result.created_ids[0])
    assert created.shared is False
    assert [(s.user_id, s.percent) for s in created.shares] == [(alice.id, 100)]


def test_inactive_and_ended_rules_are_skipped(make_budget, db):
    budget, (alice, bob) = make_budget("alice", "bob")
    paused = _recurring_purchase(
        db, budget, alice, "10", Recurrence.DAILY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 1),
    )
    set_rule_active(db, budget, paused.recurring_rule_id, False)
    _recurring_purchase(
        db, budget, alice, "10", Recurrence.DAILY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 1),
        end_at=datetime(2024, 1, 3),
    )

    result = run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=datetime(2024, 1, 10))

    assert result.created_count == 0


def test_income_rules_run_separately(make_budget, db):
    budget, (alice, bob) = make_budget("alice", "bob")
    income = create_income(
        db,
        budget,
        alice.id,
        item_name="Salary",
        amount=Decimal("2500"),
        received_at=datetime(2024, 1, 25),
        received_by_id=bob.id,
        recurring={"recurrence": "MONTHLY", "start_at": datetime(2024, 1, 25)},
        now=datetime(2024, 1, 25, 9),
    )

    assert run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=datetime(2024, 2, 26)).created_count == 0
    result = run_due_rules(db, budget, RuleKind.INCOME, alice.id, now=datetime(2024, 2, 26))

    assert result.created_count == 1
    created = db.get(IncomeORM, result.created_ids[0])
    assert created.received_at == datetime(2024, 2, 25)
    assert created.received_by_id == bob.id
    assert created.recurring_rule_id == income.recurring_rule_id


def test_lost_race_rolls_back_the_whole_run(make_budget, db, monkeypatch):
    budget, (alice, bob) = make_budget("alice", "bob")
    purchase = _recurring_purchase(
        db, budget, alice, "10", Recurrence.DAILY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 1),
    )
    monkeypatch.setattr(recurring_repository, "advance_rule", lambda *args, **kwargs: 0)

    with pytest.raises(ConflictError):
        run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=datetime(2024, 1, 4))

    # only the purchase that created the rule is left
    assert [p.id for p in _generated(db, purchase.recurring_rule_id)] == [purchase.id]
    assert _rule(db, purchase).next_run_at == datetime(2024, 1, 2)


def test_advance_rule_checks_the_seen_value(make_budget, db):
    budget, (alice,) = make_budget("alice")
    purchase = _recurring_purchase(
        db, budget, alice, "10", Recurrence.DAILY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 1),
    )
    updated = recurring_repository.advance_rule(
        db,
        purchase.recurring_rule_id,
        seen_next_run_at=datetime(2023, 12, 31),
        last_run_at=datetime(2024, 1, 2),
        next_run_at=datetime(2024, 1, 3),
    )
    assert updated == 0


def test_rule_end_before_start_is_rejected(make_budget, db):
    budget, (alice,) = make_budget("alice")
    with pytest.raises(ValidationError):
        _recurring_purchase(
            db, budget, alice, "10", Recurrence.DAILY,
            datetime(2024, 1, 10), now=datetime(2024, 1, 1),
            end_at=datetime(2024, 1, 5),
        )


def test_unknown_time_zone_is_rejected(make_budget, db):
    budget, (alice,) = make_budget("alice")
    with pytest.raises(ValidationError):
        _recurring_purchase(
            db, budget, alice, "10", Recurrence.DAILY,
            datetime(2024, 1, 1), now=datetime(2024, 1, 1),
            time_zone="Mars/Olympus",
        )


def test_interval_past_the_calendar_is_rejected(make_budget, db):
    budget, (alice,) = make_budget("alice")
    with pytest.raises(ValidationError):
        _recurring_purchase(
            db, budget, alice, "10", Recurrence.YEARLY,
            datetime(2024, 1, 1), now=datetime(2024, 1, 2),
            interval=9000,
        )
    with pytest.raises(ValidationError):
        _recurring_purchase(
            db, budget, alice, "10", Recurrence.DAILY,
            datetime(2030, 1, 1), now=datetime(2024, 1, 2),
            interval=10**12,
        )


def test_rule_stops_at_the_end_of_the_calendar(make_budget, db):
    budget, (alice,) = make_budget("alice")
    purchase = _recurring_purchase(
        db, budget, alice, "10", Recurrence.YEARLY,
        datetime(2024, 1, 1), now=datetime(2024, 1, 1, 1),
    )
    rule = _rule(db, purchase)
    rule.next_run_at = datetime(9999, 6, 1)
    db.commit()

    result = run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=datetime(9999, 7, 1))

    assert result.created_count == 1
    rule = _rule(db, purchase)
    assert rule.last_run_at == datetime(9999, 6, 1)
    assert rule.next_run_at == datetime.max
    assert run_due_rules(db, budget, RuleKind.EXPENSE, alice.id, now=datetime(9999, 12, 31)).created_count == 0
