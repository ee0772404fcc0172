"""Tests for totals, leaderboard and expense filters."""

from datetime import date, datetime, timedelta
from decimal import Decimal

from donations import aggregates, crud, models
from donations.aggregates import DonationFilter, ExpenseFilter
from donations.forms import DonationForm, ExpenseForm


def add_donation(db, name, amount, method="cash", campaign="c1", created_at=None):
    d = crud.create_donation(db, campaign, DonationForm.parse(name, amount, method))
    if created_at is not None:
        d.created_at = created_at
        db.commit()
    return d


def expense(concept, amount, category="other", note="", created_at=None):
    return models.Expense(
        campaign_id="c1",
        concept=concept,
        amount=Decimal(amount),
        category=category,
        note=note,
        created_at=created_at,
        status=models.STATUS_ACTIVE,
    )


class TestDonationTotals:
    def test_empty_campaign(self, db):
        totals = aggregates.donation_totals(db, "nothing-here")
        assert totals.total == Decimal("0.00")
        assert totals.count == 0
        assert totals.average == Decimal("0.00")

    def test_sums_across_pages(self, db):
        for i in range(7):
            add_donation(db, f"D{i}", "10")
        add_donation(db, "Elsewhere", "1000", campaign="c2")

        totals = aggregates.donation_totals(db, "c1", page_size=3)
        assert totals.count == 7
        assert totals.total == Decimal("70.00")
        assert totals.average == Decimal("10.00")

    def test_average_rounds_to_cents(self, db):
        add_donation(db, "A", "10")
        add_donation(db, "B", "10")
        add_donation(db, "C", "20")
        assert aggregates.donation_totals(db, "c1").average == Decimal("13.33")

    def test_ignores_deleted(self, db):
        add_donation(db, "A", "10")
        gone = add_donation(db, "B", "90")
        crud.delete_donation(db, gone)
        totals = aggregates.donation_totals(db, "c1")
        assert (totals.total, totals.count) == (Decimal("10.00"), 1)

    def test_name_and_method_filters(self, db):
        add_donation(db, "Juan", "10", method="cash")
        add_donation(db, "Juana", "20", method="card")
        add_donation(db, "Pedro", "40", method="card")

        by_name = aggregates.donation_totals(db, "c1", DonationFilter(name_query="JUAN"))
        assert (by_name.total, by_name.count) == (Decimal("30.00"), 2)

        by_method = aggregates.donation_totals(db, "c1", DonationFilter(method="card"))
        assert (by_method.total, by_method.count) == (Decimal("60.00"), 2)

        both = aggregates.donation_totals(
            db, "c1", DonationFilter(name_query="juan", method="card")
        )
        assert (both.total, both.count) == (Decimal("20.00"), 1)

    def test_date_range_is_inclusive(self, db):
        add_donation(db, "A", "1", created_at=datetime(2024, 3, 1, 0, 0))
        add_donation(db, "B", "2", created_at=datetime(2024, 3, 2, 23, 59))
        add_donation(db, "C", "4", created_at=datetime(2024, 3, 3, 12, 0))

        flt = DonationFilter(date_from=date(2024, 3, 1), date_to=date(2024, 3, 2))
        assert aggregates.donation_totals(db, "c1", flt).total == Decimal("3.00")

        only_from = DonationFilter(date_from=date(2024, 3, 2))
        assert aggregates.donation_totals(db, "c1", only_from).total == Decimal("6.00")


class TestTopDonors:
    def test_groups_by_lowercase_name(self, db):
        add_donation(db, "juan", "10", created_at=datetime(2024, 1, 1))
        add_donation(db, "Juan", "15", created_at=datetime(2024, 1, 2))
        add_donation(db, "Pedro", "20")
        add_donation(db, "Anonymous", "500")

        board = aggregates.top_donors(db, "c1")
        assert [(e.name, e.total, e.count) for e in board] == [
            ("Juan", Decimal("25.00"), 2),
            ("Pedro", Decimal("20.00"), 1),
        ]

    def test_ties_sorted_by_name_and_limited(self, db):
        add_donation(db, "Zoe", "10")
        add_donation(db, "adam", "10")
        add_donation(db, "Mia", "5")

        board = aggregates.top_donors(db, "c1", limit=2)
        assert [e.name for e in board] == ["adam", "Zoe"]


class TestExpenseFilters:
    NOW = datetime(2024, 5, 10, 15, 0)

    def rows(self):
        return [
            expense("Insulin", "100", "medicines", created_at=datetime(2024, 5, 10, 9, 0)),
            expense("Taxi", "30", "transport", note="to hospital", created_at=datetime(2024, 5, 6)),
            expense("X-ray", "500", "studies", created_at=datetime(2024, 4, 1)),
        ]

    def test_all_preset_keeps_everything(self):
        assert len(aggregates.filter_expenses(self.rows(), ExpenseFilter(), now=self.NOW)) == 3

    def test_today_preset(self):
        out = aggregates.filter_expenses(self.rows(), ExpenseFilter(preset="TODAY"), now=self.NOW)
        assert [r.concept for r in out] == ["Insulin"]

    def test_seven_day_preset(self):
        out = aggregates.filter_expenses(self.rows(), ExpenseFilter(preset="7D"), now=self.NOW)
        assert [r.concept for r in out] == ["Insulin", "Taxi"]

    def test_query_matches_concept_or_note(self):
        out = aggregates.filter_expenses(self.rows(), ExpenseFilter(query="HOSPITAL"), now=self.NOW)
        assert [r.concept for r in out] == ["Taxi"]

    def test_category(self):
        out = aggregates.filter_expenses(self.rows(), ExpenseFilter(category="studies"), now=self.NOW)
        assert [r.concept for r in out] == ["X-ray"]

    def test_missing_date_only_in_all(self):
        rows = [expense("Undated", "1")]
        assert aggregates.filter_expenses(rows, ExpenseFilter(preset="ALL"), now=self.NOW)
        assert not aggregates.filter_expenses(rows, ExpenseFilter(preset="7D"), now=self.NOW)

    def test_categories_and_sum(self):
        rows = self.rows() + [expense("Syrup", "12.5", "medicines")]
        assert aggregates.expense_categories(rows) == ["ALL", "medicines", "transport", "studies"]
        assert aggregates.sum_amounts(rows) == Decimal("642.5")


class TestShareText:
    def test_format(self):
        rows = [expense("Insulin", "1234.5", "medicines"), expense("Taxi", "30", "transport")]
        text = aggregates.expense_share_text("raul", rows)
        assert text.splitlines() == [
            "Expenses - Campaign raul",
            "Total: $1,264.50 · Records: 2",
            "",
            "=== Detail ===",
            "1. Insulin · $1,234.50 · medicines",
            "2. Taxi · $30.00 · transport",
        ]

    def test_currency_symbol(self):
        text = aggregates.expense_share_text("c", [expense("A", "5")], symbol="MX$")
        assert "Total: MX$5.00" in text


class TestCampaignSummary:
    def test_balance(self, db):
        add_donation(db, "A", "100")
        add_donation(db, "B", "50")
        gone = add_donation(db, "C", "1000")
        crud.delete_donation(db, gone)
        crud.create_expense(db, "c1", ExpenseForm.parse("Taxi", "30", "transport"))
        crud.create_expense(db, "other", ExpenseForm.parse("Taxi", "999", "transport"))

        s = aggregates.campaign_summary(db, "c1")
        assert s.donations_total == Decimal("150.00")
        assert s.donations_count == 2
        assert s.expenses_total == Decimal("30.00")
        assert s.expenses_count == 1
        assert s.balance == Decimal("120.00")

    def test_empty(self, db):
        s = aggregates.campaign_summary(db, "empty")
        assert s.balance == Decimal("0.00")
        assert s.donations_count == 0


def test_iter_expenses_pages_through_everything(db):
    base = models.utcnow()
    for i in range(5):
        e = crud.create_expense(db, "c1", ExpenseForm.parse(f"E{i}", "1", "other"))
        e.created_at = base - timedelta(minutes=i)
    db.commit()
    assert [e.concept for e in aggregates.iter_expenses(db, "c1", page_size=2)] == [
        "E0", "E1", "E2", "E3", "E4"
    ]
