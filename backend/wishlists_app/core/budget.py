"""
Budget arithmetic over a user's gifts.

Routes turn claims and external gifts into ``BudgetEntry`` values; every
aggregate below works on those entries only, so it needs no database.
A budget period is always the calendar year.
"""
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from wishlists_app.core.config import settings
from wishlists_app.core.formatting import format_percentage, format_price
from wishlists_app.models.models import BudgetTypeEnum

ANNUAL = BudgetTypeEnum.ANNUAL.value
SOURCE_IN_APP = "in-app"
SOURCE_EXTERNAL = "external"

GREEN = "green"
ORANGE = "orange"
RED = "red"


def _num(value: float | Decimal | None) -> float:
    return float(value) if value is not None else 0.0


def effective_total(
    paid_amount: float | Decimal | None,
    price: float | Decimal | None,
    shipping_cost: float | Decimal | None,
) -> float:
    """What a gift cost: the paid amount when known, else price plus shipping."""
    if paid_amount is not None:
        return float(paid_amount)
    return _num(price) + _num(shipping_cost)


def budget_name(budget_type: str, year: int) -> str:
    if budget_type == ANNUAL:
        return f"Budget {year}"
    return budget_type


def budget_progress(spent: float, limit: float | Decimal | None) -> int:
    if not limit:
        return 0
    percentage = Decimal(str(spent)) / Decimal(str(limit)) * 100
    return int(percentage.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def budget_threshold(spent: float, limit: float | Decimal | None) -> str:
    if not limit:
        return GREEN
    percentage = spent / float(limit) * 100
    if percentage < settings.budget_orange_threshold:
        return GREEN
    if percentage < settings.budget_red_threshold:
        return ORANGE
    return RED


@dataclass
class BudgetEntry:
    id: int
    source: str
    title: str
    total: float
    date: datetime | date
    theme: str | None
    recipient_key: str
    recipient_name: str
    announced_price: float = 0.0
    shipping_cost: float = 0.0
    paid_amount: float | None = None
    wishlist_name: str | None = None
    wishlist_slug: str | None = None

    @property
    def year(self) -> int:
        return self.date.year

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "title": self.title,
            "total_price": round(self.total, 2),
            "announced_price": round(self.announced_price, 2),
            "shipping_cost": round(self.shipping_cost, 2),
            "paid_amount": self.paid_amount,
            "date": self.date.isoformat(),
            "theme": self.theme,
            "recipient_id": self.recipient_key,
            "recipient_name": self.recipient_name,
            "wishlist_name": self.wishlist_name,
            "wishlist_slug": self.wishlist_slug,
        }


def entries_for(entries: Iterable[BudgetEntry], budget_type: str, year: int) -> list[BudgetEntry]:
    return [
        entry
        for entry in entries
        if entry.year == year and (budget_type == ANNUAL or entry.theme == budget_type)
    ]


def summarize(budget_type: str, year: int, entries: list[BudgetEntry], limit: float | Decimal | None, goal_id: int | None = None) -> dict:
    spent = round(sum(entry.total for entry in entries), 2)
    return {
        "id": goal_id,
        "name": budget_name(budget_type, year),
        "type": budget_type,
        "year": year,
        "limit_amount": float(limit) if limit is not None else None,
        "spent": spent,
        "items_count": len(entries),
        "progress": budget_progress(spent, limit),
        "threshold": budget_threshold(spent, limit),
    }


def build_budgets(entries: list[BudgetEntry], year: int, limits: dict[str, tuple[int, float | None]]) -> list[dict]:
    """
    Annual budget first, then one budget per theme used in ``year``.

    ``limits`` maps a budget type to ``(goal_id, limit_amount)``. Theme
    budgets without gifts are left out even when a limit exists for them.
    """
    annual_goal = limits.get(ANNUAL, (None, None))
    budgets = [summarize(ANNUAL, year, entries_for(entries, ANNUAL, year), annual_goal[1], annual_goal[0])]

    themes_used: list[str] = []
    for entry in entries_for(entries, ANNUAL, year):
        if entry.theme and entry.theme not in themes_used:
            themes_used.append(entry.theme)
    for theme in sorted(themes_used):
        goal_id, limit = limits.get(theme, (None, None))
        budgets.append(summarize(theme, year, entries_for(entries, theme, year), limit, goal_id))
    return budgets


@dataclass
class RecipientGroup:
    recipient_id: str
    recipient_name: str
    total_spent: float = 0.0
    gifts: list[BudgetEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "recipient_id": self.recipient_id,
            "recipient_name": self.recipient_name,
            "total_spent": round(self.total_spent, 2),
            "gift_count": len(self.gifts),
            "gifts": [gift.to_dict() for gift in self.gifts],
        }


def group_by_recipient(entries: list[BudgetEntry]) -> list[RecipientGroup]:
    groups: dict[str, RecipientGroup] = {}
    for entry in entries:
        key = entry.recipient_key or "unknown"
        group = groups.setdefault(key, RecipientGroup(key, entry.recipient_name))
        group.gifts.append(entry)
        group.total_spent += entry.total
    return sorted(groups.values(), key=lambda g: g.total_spent, reverse=True)


def detail_stats(entries: list[BudgetEntry]) -> dict:
    totals = [entry.total for entry in entries]
    in_app = [entry for entry in entries if entry.source == SOURCE_IN_APP]
    discounts = [
        entry.announced_price + entry.shipping_cost - entry.paid_amount
        for entry in in_app
        if entry.paid_amount is not None
    ]
    return {
        "count": len(entries),
        "average": round(sum(totals) / len(totals), 2) if totals else 0.0,
        "min": min(totals) if totals else 0.0,
        "max": max(totals) if totals else 0.0,
        "total_shipping": round(sum(entry.shipping_cost for entry in in_app), 2),
        "gifts_without_paid_amount": sum(1 for entry in in_app if entry.paid_amount is None),
        "biggest_discount": round(max(discounts + [0.0]), 2),
    }


def budget_status_message(status: str, spent: float, limit: float | Decimal | None) -> str:
    if not limit:
        return f"Vous avez dépensé {format_price(spent)}."
    used = format_percentage(spent / float(limit) * 100)
    remaining = float(limit) - spent
    if status == "exceeded":
        return f"Aïe aïe aïe ! Vous avez dépassé votre budget de {format_price(spent - float(limit))} ({used} utilisés)."
    if status == "warning":
        return f"Attention ! Il ne vous reste que {format_price(remaining)} avant de dépasser votre budget ({used} utilisés)."
    return f"Bravo ! Vous êtes dans votre budget. Il vous reste {format_price(remaining)} à dépenser ({used} utilisés)."


def detail_insights(spent: float, limit: float | Decimal | None, groups: list[RecipientGroup], missing_prices: int) -> dict:
    if not limit:
        status = "safe"
    elif spent >= float(limit):
        status = "exceeded"
    elif spent >= float(limit) * settings.budget_orange_threshold / 100:
        status = "warning"
    else:
        status = "safe"

    insights: dict = {
        "budget_status": status,
        "message": budget_status_message(status, spent, limit),
        "missing_prices_count": missing_prices,
        "imbalance": None,
    }
    if len(groups) >= 2:
        first, lowest = groups[0], groups[-1]
        if first.total_spent > lowest.total_spent * 2:
            insights["imbalance"] = {
                "recipient1": first.recipient_name,
                "amount1": round(first.total_spent, 2),
                "recipient2": lowest.recipient_name,
                "amount2": round(lowest.total_spent, 2),
            }
    return insights


def build_detail(entries: list[BudgetEntry], budget_type: str, year: int, limit: float | Decimal | None) -> dict:
    selected = sorted(entries_for(entries, budget_type, year), key=_entry_sort_key, reverse=True)
    groups = group_by_recipient(selected)
    stats = detail_stats(selected)
    summary = summarize(budget_type, year, selected, limit)
    return {
        **summary,
        "gifts": [entry.to_dict() for entry in selected],
        "recipients": [group.to_dict() for group in groups],
        "stats": stats,
        "insights": detail_insights(summary["spent"], limit, groups, stats["gifts_without_paid_amount"]),
    }


def _entry_sort_key(entry: BudgetEntry) -> str:
    # dates and datetimes compare through their ISO prefix
    return entry.date.isoformat()
