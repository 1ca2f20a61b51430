from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from sharedbudget.data.repositories.budget_repository import BudgetORM
from sharedbudget.data.repositories.income_repository import sum_by_receiver
from sharedbudget.data.repositories.purchase_repository import (
    purchase_points,
    sum_by_category,
    sum_paid_by_payer,
    unsettled_debtor_shares,
)
from sharedbudget.data.repositories.user_repository import get_users
from sharedbudget.domain.errors import ValidationError
from sharedbudget.domain.helpers.dates import (
    end_of_month,
    end_of_week,
    start_of_month,
    start_of_week,
    utcnow,
)
from sharedbudget.domain.helpers.money import as_float, share_of, to_money
from sharedbudget.domain.helpers.trend import (
    build_buckets,
    build_change,
    compute_ranges,
    sum_into_buckets,
    sum_map,
    to_series,
)
from sharedbudget.domain.models import TrendPeriod

TOTAL = "TOTAL"


def _user_ref(users: dict, user_id: int) -> dict:
    user = users.get(user_id)
    return {"id": user_id, "name": user.name if user else "Unknown"}


def current_balance(
    db: Session,
    budget: BudgetORM,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> Dict[str, Any]:
    """
    What each payer paid, who owes whom on open shares, and for two-member
    budgets the single net amount between them.
    """
    member_ids = budget.member_ids()
    totals = sum_paid_by_payer(db, budget.id, date_from, date_to)

    debts: Dict[tuple, Decimal] = defaultdict(Decimal)
    for debtor_id, payer_id, amount, percent, fixed_amount in unsettled_debtor_shares(
        db, budget.id, date_from, date_to
    ):
        if debtor_id == payer_id:
            continue
        if fixed_amount is not None:
            owed = Decimal(str(fixed_amount))
        else:
            owed = share_of(amount, percent)
        debts[(debtor_id, payer_id)] += owed

    owed_to_payer: Dict[int, Decimal] = defaultdict(Decimal)
    for (_, payer_id), owed in debts.items():
        owed_to_payer[payer_id] += owed

    user_ids = set(member_ids) | {uid for pair in debts for uid in pair}
    users = get_users(db, user_ids)

    payer_ids = [
        uid for uid in member_ids if uid in totals or uid in owed_to_payer
    ]
    payers = sorted(
        (
            {
                "payer": _user_ref(users, uid),
                "totalPaid": as_float(totals.get(uid, 0)),
                "owedToPayer": as_float(owed_to_payer.get(uid, 0)),
            }
            for uid in payer_ids
        ),
        key=lambda p: p["totalPaid"],
        reverse=True,
    )

    pairs = sorted(
        (
            {
                "from": _user_ref(users, debtor_id),
                "to": _user_ref(users, payer_id),
                "amount": as_float(owed),
            }
            for (debtor_id, payer_id), owed in debts.items()
        ),
        key=lambda p: p["amount"],
        reverse=True,
    )

    net = None
    if len(member_ids) == 2:
        u1, u2 = member_ids
        net_amount = to_money(debts.get((u2, u1), 0)) - to_money(debts.get((u1, u2), 0))
        if net_amount > 0:
            debtor, creditor = u2, u1
        else:
            debtor, creditor = u1, u2
        net = {
            "from": _user_ref(users, debtor),
            "to": _user_ref(users, creditor),
            "amount": as_float(abs(net_amount)),
        }

    return {"payers": payers, "pairs": pairs, "netBetweenTwoUsers": net}


def category_totals(
    db: Session, budget: BudgetORM, period: str = "month", anchor: datetime | None = None
) -> Dict[str, Any]:
    anchor = anchor or utcnow()
    if period == "week":
        start, end = start_of_week(anchor), end_of_week(anchor)
    elif period == "month":
        start, end = start_of_month(anchor), end_of_month(anchor)
    else:
        raise ValidationError("period must be 'week' or 'month'")

    totals = sum_by_category(db, budget.id, start, end)
    rows = [
        (c, totals.get(c.id, Decimal("0.00"))) for c in budget.categories
    ]
    rows.sort(key=lambda r: (-r[1], r[0].sort_order or 0, r[0].name))
    items = [
        {
            "id": c.id,
            "slug": c.slug,
            "name": c.name,
            "color": c.color,
            "total": as_float(total),
        }
        for c, total in rows
    ]
    grand_total = sum((total for _, total in rows), Decimal("0.00"))
    return {
        "period": period,
        "range": {"from": start, "to": end},
        "items": items,
        "grandTotal": as_float(grand_total),
    }


def income_totals(
    db: Session,
    budget: BudgetORM,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> Dict[str, Any]:
    member_ids = budget.member_ids()
    users = get_users(db, member_ids)
    by_user = sum_by_receiver(db, budget.id, date_from, date_to)
    rows = sorted(
        (
            {
                "user": _user_ref(users, uid),
                "totalIncome": as_float(by_user.get(uid, 0)),
            }
            for uid in member_ids
        ),
        key=lambda r: r["totalIncome"],
        reverse=True,
    )
    return {
        "rows": rows,
        "totalIncome": as_float(sum(by_user.values(), Decimal("0.00"))),
        "dateFrom": date_from,
        "dateTo": date_to,
    }


def _category_ids(budget: BudgetORM, raw: List[str]) -> List[int]:
    known = {c.id: c for c in budget.categories}
    ids = []
    for value in raw:
        try:
            category_id = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid category: {value}")
        if category_id not in known:
            raise ValidationError(f"Category {category_id} does not belong to this budget")
        if category_id not in ids:
            ids.append(category_id)
    return ids


def spending_trend(
    db: Session,
    budget: BudgetORM,
    period: TrendPeriod = TrendPeriod.MONTH,
    mode: str = "single",
    category: str = TOTAL,
    categories: str | None = None,
    combine: bool = False,
    now: datetime | None = None,
) -> Dict[str, Any]:
    """
    Bucketed spending for the current window next to the previous one.
    """
    period = TrendPeriod(period)
    now = now or utcnow()
    if mode == "single":
        selected = [] if category == TOTAL else _category_ids(budget, [category])
    elif mode == "multiple":
        raw = [s.strip() for s in (categories or "").split(",") if s.strip()]
        selected = _category_ids(budget, raw)
    else:
        raise ValidationError("mode must be 'single' or 'multiple'")

    ranges = compute_ranges(period, now)
    rows = purchase_points(db, budget.id, ranges.prev_start, ranges.end, selected or None)
    current = [r for r in rows if ranges.start <= r.paid_at <= ranges.end]
    previous = [r for r in rows if ranges.prev_start <= r.paid_at <= ranges.prev_end]
    buckets = build_buckets(ranges.start, ranges.end, ranges.step)

    def bucketed(items, category_ids):
        chosen = [
            (r.paid_at, r.amount)
            for r in items
            if not category_ids or r.category_id in category_ids
        ]
        return sum_into_buckets(chosen, ranges.step)

    result: Dict[str, Any] = {
        "mode": mode,
        "period": period.value,
        "range": {"from": ranges.start, "to": ranges.end},
        "prevRange": {"from": ranges.prev_start, "to": ranges.prev_end},
    }
    if mode == "single":
        result["category"] = category
    else:
        result["categories"] = selected
        result["combine"] = combine

    if mode == "single" or combine:
        current_by_key = bucketed(current, selected)
        previous_by_key = bucketed(previous, selected)
        current_total = sum_map(current_by_key)
        previous_total = sum_map(previous_by_key)
        result["points"] = to_series(buckets, current_by_key)
    else:
        names = {c.id: c.name for c in budget.categories}
        series = []
        for category_id in selected:
            current_by_key = bucketed(current, [category_id])
            previous_by_key = bucketed(previous, [category_id])
            series.append(
                {
                    "key": category_id,
                    "label": names[category_id],
                    "points": to_series(buckets, current_by_key),
                    "currentTotal": sum_map(current_by_key),
                    "previousTotal": sum_map(previous_by_key),
                }
            )
        current_total = round(sum(s["currentTotal"] for s in series), 2)
        previous_total = round(sum(s["previousTotal"] for s in series), 2)
        result["series"] = series

    result["currentTotal"] = current_total
    result["previousTotal"] = previous_total
    result["change"] = build_change(current_total, previous_total)
    return result
