from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from wishlists_app.core.budget import (
    SOURCE_EXTERNAL,
    SOURCE_IN_APP,
    BudgetEntry,
    budget_name,
    budget_progress,
    budget_threshold,
    build_budgets,
    build_detail,
    detail_insights,
    detail_stats,
    effective_total,
    entries_for,
    group_by_recipient,
)


def _entry(id, total, when, theme, recipient, name, source=SOURCE_IN_APP, price=0.0, shipping=0.0, paid=None):
    return BudgetEntry(
        id=id,
        source=source,
        title=f"Cadeau {id}",
        total=total,
        date=when,
        theme=theme,
        recipient_key=recipient,
        recipient_name=name,
        announced_price=price,
        shipping_cost=shipping,
        paid_amount=paid,
    )


ENTRIES = [
    _entry(1, 35.0, datetime(2025, 3, 1, tzinfo=timezone.utc), "birthday", "user:1", "Alice", price=30.0, shipping=5.0),
    _entry(2, 90.0, datetime(2025, 12, 20, tzinfo=timezone.utc), "christmas", "user:2", "Bob", price=100.0, paid=90.0),
    _entry(3, 15.0, date(2025, 12, 24), "christmas", "user:1", "Mamie", source=SOURCE_EXTERNAL, paid=15.0),
    _entry(4, 50.0, datetime(2024, 12, 20, tzinfo=timezone.utc), "christmas", "user:2", "Bob", price=50.0),
]


class TestAmounts:
    def test_effective_total(self):
        assert effective_total(None, 30, 5) == 35.0
        assert effective_total(20, 30, 5) == 20.0
        assert effective_total(Decimal("0"), 30, 5) == 0.0
        assert effective_total(None, Decimal("12.50"), None) == 12.5
        assert effective_total(None, None, None) == 0.0

    def test_budget_name(self):
        assert budget_name("annual", 2025) == "Budget 2025"
        assert budget_name("christmas", 2025) == "christmas"

    def test_progress(self):
        assert budget_progress(50, 200) == 25
        assert budget_progress(140, Decimal("150")) == 93
        assert budget_progress(50, None) == 0
        assert budget_progress(50, 0) == 0

    @pytest.mark.parametrize(
        ("spent", "limit", "expected"),
        [(25, 200, 13), (177, 200, 89), (1, 200, 1), (4.5, 900, 1), (24.9, 200, 12)],
    )
    def test_progress_rounds_halves_up(self, spent, limit, expected):
        assert budget_progress(spent, limit) == expected

    @pytest.mark.parametrize(
        ("spent", "limit", "expected"),
        [(10, None, "green"), (89, 100, "green"), (90, 100, "orange"), (99.9, 100, "orange"), (100, 100, "red"), (150, 100, "red")],
    )
    def test_threshold(self, spent, limit, expected):
        assert budget_threshold(spent, limit) == expected


def test_entries_for_filters_year_and_theme():
    assert [e.id for e in entries_for(ENTRIES, "annual", 2025)] == [1, 2, 3]
    assert [e.id for e in entries_for(ENTRIES, "christmas", 2025)] == [2, 3]
    assert [e.id for e in entries_for(ENTRIES, "christmas", 2024)] == [4]
    assert entries_for(ENTRIES, "wedding", 2025) == []


def test_build_budgets_annual_first_then_used_themes():
    budgets = build_budgets(ENTRIES, 2025, {"annual": (7, 150.0), "wedding": (8, 100.0)})

    assert [(b["type"], b["spent"], b["items_count"]) for b in budgets] == [
        ("annual", 140.0, 3),
        ("birthday", 35.0, 1),
        ("christmas", 105.0, 2),
    ]
    annual = budgets[0]
    assert annual["id"] == 7
    assert annual["name"] == "Budget 2025"
    assert annual["progress"] == 93
    assert annual["threshold"] == "orange"
    assert budgets[1]["limit_amount"] is None


def test_build_budgets_empty_year_has_annual_only():
    budgets = build_budgets(ENTRIES, 2023, {})
    assert len(budgets) == 1
    assert budgets[0]["spent"] == 0
    assert budgets[0]["threshold"] == "green"


def test_group_by_recipient_sorted_by_spent():
    groups = group_by_recipient(entries_for(ENTRIES, "annual", 2025))

    assert [(g.recipient_id, g.total_spent, len(g.gifts)) for g in groups] == [
        ("user:2", 90.0, 1),
        ("user:1", 50.0, 2),
    ]
    assert groups[1].recipient_name == "Alice"
    assert groups[1].to_dict()["gift_count"] == 2


def test_detail_stats():
    stats = detail_stats(entries_for(ENTRIES, "annual", 2025))

    assert stats == {
        "count": 3,
        "average": 46.67,
        "min": 15.0,
        "max": 90.0,
        "total_shipping": 5.0,
        "gifts_without_paid_amount": 1,
        "biggest_discount": 10.0,
    }


def test_detail_stats_empty():
    stats = detail_stats([])
    assert stats["count"] == 0
    assert stats["average"] == 0.0
    assert stats["biggest_discount"] == 0.0


class TestInsights:
    def test_status(self):
        assert detail_insights(140, 150, [], 0)["budget_status"] == "warning"
        assert detail_insights(150, 150, [], 0)["budget_status"] == "exceeded"
        assert detail_insights(10, 150, [], 0)["budget_status"] == "safe"
        assert detail_insights(10, None, [], 0)["budget_status"] == "safe"

    def test_status_message(self):
        assert detail_insights(140, 150, [], 0)["message"] == (
            "Attention ! Il ne vous reste que 10,00\xa0€ avant de dépasser votre budget (93% utilisés)."
        )
        assert detail_insights(155, 150, [], 0)["message"] == (
            "Aïe aïe aïe ! Vous avez dépassé votre budget de 5,00\xa0€ (103% utilisés)."
        )
        assert detail_insights(10, 150, [], 0)["message"] == (
            "Bravo ! Vous êtes dans votre budget. Il vous reste 140,00\xa0€ à dépenser (7% utilisés)."
        )
        assert detail_insights(10, None, [], 0)["message"] == "Vous avez dépensé 10,00\xa0€."

    def test_imbalance(self):
        groups = group_by_recipient(
            [
                _entry(1, 90.0, date(2025, 1, 1), None, "a", "Alice"),
                _entry(2, 40.0, date(2025, 1, 1), None, "b", "Bob"),
            ]
        )

        insights = detail_insights(130, None, groups, 2)

        assert insights["missing_prices_count"] == 2
        assert insights["imbalance"] == {"recipient1": "Alice", "amount1": 90.0, "recipient2": "Bob", "amount2": 40.0}

    def test_no_imbalance_when_close(self):
        groups = group_by_recipient(entries_for(ENTRIES, "annual", 2025))
        assert detail_insights(140, None, groups, 0)["imbalance"] is None


def test_build_detail_newest_first():
    detail = build_detail(ENTRIES, "christmas", 2025, None)

    assert detail["spent"] == 105.0
    assert [g["id"] for g in detail["gifts"]] == [3, 2]
    assert detail["gifts"][0]["source"] == "external"
    assert detail["gifts"][0]["total_price"] == 15.0
    assert detail["gifts"][0]["date"] == "2025-12-24"
    assert detail["insights"]["budget_status"] == "safe"
    assert len(detail["recipients"]) == 2


def test_entry_year():
    assert ENTRIES[2].year == 2025
    assert ENTRIES[3].year == 2024
