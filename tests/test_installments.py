"""Tests for the installment projector."""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from goal_ledger.goals import InstallmentProjector
from goal_ledger.models.goal import Installments

from conftest import make_goal


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def projector():
    return InstallmentProjector()


class TestProject:
    """Tests for InstallmentProjector.project."""

    def test_even_split(self, projector):
        """Test 1200 over six months is 200 a month."""
        result = projector.project(Decimal("1200"), Decimal("0"), date(2025, 7, 15), NOW)
        assert result.quantity == 6
        assert result.amount == Decimal("200")

    def test_day_of_month_ignored(self, projector):
        """Test only calendar months count, not days."""
        result = projector.project(Decimal("1200"), Decimal("0"), date(2025, 7, 1), NOW)
        assert result.quantity == 6

    def test_uses_remaining_amount(self, projector):
        """Test contributions already made reduce the installment."""
        result = projector.project(Decimal("1000"), Decimal("400"), date(2025, 4, 10), NOW)
        assert result.quantity == 3
        assert result.amount == Decimal("200")

    def test_amount_is_not_rounded(self, projector):
        """Test uneven splits keep full decimal precision."""
        result = projector.project(Decimal("100"), Decimal("0"), date(2025, 4, 15), NOW)
        assert result.quantity == 3
        assert result.amount == Decimal("100") / 3

    def test_empty_when_deadline_passed(self, projector):
        """Test a past deadline gives no plan."""
        result = projector.project(Decimal("1200"), Decimal("0"), date(2024, 12, 31), NOW)
        assert result == Installments()
        assert result.is_empty

    def test_empty_when_deadline_today(self, projector):
        """Test a deadline of today gives no plan."""
        assert projector.project(Decimal("1200"), Decimal("0"), NOW.date(), NOW).is_empty

    def test_empty_within_same_month(self, projector):
        """Test less than one calendar month left gives no plan."""
        assert projector.project(Decimal("1200"), Decimal("0"), date(2025, 1, 31), NOW).is_empty

    def test_empty_when_target_met(self, projector):
        """Test a met or exceeded target gives no plan."""
        assert projector.project(Decimal("500"), Decimal("500"), date(2025, 7, 15), NOW).is_empty
        assert projector.project(Decimal("500"), Decimal("600"), date(2025, 7, 15), NOW).is_empty

    def test_project_for_goal(self, projector):
        """Test projecting from a goal's own fields."""
        goal = make_goal(target_amount=Decimal("1200"), deadline=date(2025, 7, 15))
        assert projector.project_for(goal, NOW) == Installments(amount=Decimal("200"), quantity=6)


class TestMonthsBetween:
    """Tests for calendar month counting."""

    def test_across_year_boundary(self):
        assert InstallmentProjector.months_between(date(2024, 11, 30), date(2025, 2, 1)) == 3

    def test_same_month(self):
        assert InstallmentProjector.months_between(date(2025, 3, 1), date(2025, 3, 31)) == 0
