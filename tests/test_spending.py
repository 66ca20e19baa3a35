"""Tests for spending anomaly detection."""

import asyncio
from datetime import date

from bizledger.models.finance import Category, TransactionDirection
from bizledger.models.notification import AlertSeverity, SpendingAlertType
from bizledger.services.notifications import SpendingMonitor, detect_spending_anomalies
from bizledger.services.notifications.spending import _months_back

TODAY = date(2024, 6, 15)


def office_history(tx_factory, office):
    return [
        tx_factory(100, date(2024, 3, 10), office),
        tx_factory(110, date(2024, 4, 10), office),
        tx_factory(90, date(2024, 5, 10), office),
    ]


class TestMonthsBack:
    """Tests for the history window helper."""

    def test_crosses_year_boundary(self):
        """Test six months before June is December of the previous year."""
        assert _months_back(TODAY, 6) == date(2023, 12, 1)

    def test_same_month(self):
        """Test zero months back is the first of the month."""
        assert _months_back(TODAY, 0) == date(2024, 6, 1)


class TestDetectSpendingAnomalies:
    """Tests for the detectors working together."""

    def test_no_transactions_no_alerts(self, categories, app_settings):
        """Test an empty ledger raises nothing."""
        assert detect_spending_anomalies([], categories.values(), TODAY, app_settings) == []

    def test_overspending_and_large_and_new_category(self, categories, tx_factory, app_settings):
        """Test a spike, a large payment and a new category are all reported, high first."""
        office, fuel = categories["office"], categories["fuel"]
        transactions = office_history(tx_factory, office) + [
            tx_factory(400, date(2024, 6, 3), office),
            tx_factory(600, date(2024, 6, 4), fuel),
        ]

        alerts = detect_spending_anomalies(transactions, categories.values(), TODAY, app_settings)
        types = [a.type for a in alerts]

        assert types[0] == SpendingAlertType.OVERSPENDING
        assert alerts[0].severity == AlertSeverity.HIGH
        assert alerts[0].category_name == "Office"
        assert alerts[0].difference_percent == 300.0
        assert SpendingAlertType.LARGE_TRANSACTION in types
        assert SpendingAlertType.UNUSUAL_CATEGORY in types

        unusual = next(a for a in alerts if a.type == SpendingAlertType.UNUSUAL_CATEGORY)
        assert unusual.category_name == "Fuel"
        assert unusual.severity == AlertSeverity.MEDIUM

    def test_normal_month_is_quiet(self, categories, tx_factory, app_settings):
        """Test spending in line with history raises nothing."""
        office = categories["office"]
        transactions = office_history(tx_factory, office) + [
            tx_factory(105, date(2024, 6, 3), office),
        ]
        assert detect_spending_anomalies(transactions, categories.values(), TODAY, app_settings) == []

    def test_single_month_history_is_not_judged(self, categories, tx_factory, app_settings):
        """Test overspending needs at least two months of history."""
        office = categories["office"]
        transactions = [
            tx_factory(100, date(2024, 5, 10), office),
            tx_factory(400, date(2024, 6, 3), office),
        ]
        alerts = detect_spending_anomalies(transactions, categories.values(), TODAY, app_settings)
        assert SpendingAlertType.OVERSPENDING not in [a.type for a in alerts]

    def test_monthly_totals_are_summed(self, categories, tx_factory, app_settings):
        """Test several payments in one history month count as one monthly total."""
        office = categories["office"]
        transactions = [
            tx_factory(50, date(2024, 4, 1), office),
            tx_factory(50, date(2024, 4, 20), office),
            tx_factory(100, date(2024, 5, 10), office),
            tx_factory(130, date(2024, 6, 3), office),
        ]
        alerts = detect_spending_anomalies(transactions, categories.values(), TODAY, app_settings)
        # Average is 100 a month, so 130 is only 30% above: not an overspend
        assert SpendingAlertType.OVERSPENDING not in [a.type for a in alerts]

    def test_income_is_ignored(self, categories, tx_factory, app_settings):
        """Test incomes never trigger spending alerts."""
        sales = categories["sales"]
        transactions = [
            tx_factory(5000, date(2024, 6, 3), sales, direction=TransactionDirection.INCOME),
        ]
        assert detect_spending_anomalies(transactions, categories.values(), TODAY, app_settings) == []


def payments(tx_factory, category, month, count):
    return [tx_factory(10, date(2024, month, day), category) for day in range(1, count + 1)]


def frequency_alerts(transactions, categories, app_settings):
    alerts = detect_spending_anomalies(transactions, categories, TODAY, app_settings)
    return [a for a in alerts if a.type == SpendingAlertType.HIGH_FREQUENCY]


class TestHighFrequency:
    """Tests for the payment-frequency detector."""

    def test_many_more_payments_is_high(self, categories, tx_factory, app_settings):
        """Test 5 payments against a usual 2 is a high-severity alert."""
        office = categories["office"]
        transactions = (
            payments(tx_factory, office, 4, 2)
            + payments(tx_factory, office, 5, 2)
            + payments(tx_factory, office, 6, 5)
        )

        alerts = frequency_alerts(transactions, categories.values(), app_settings)

        assert len(alerts) == 1
        assert alerts[0].category_name == "Office"
        assert alerts[0].severity == AlertSeverity.HIGH
        assert alerts[0].difference_percent == 150
        assert "5 this month (usually 2)" in alerts[0].message

    def test_doubling_is_medium(self, categories, tx_factory, app_settings):
        """Test exactly a 100% increase stays medium."""
        office = categories["office"]
        transactions = (
            payments(tx_factory, office, 4, 2)
            + payments(tx_factory, office, 5, 2)
            + payments(tx_factory, office, 6, 4)
        )

        alerts = frequency_alerts(transactions, categories.values(), app_settings)

        assert [a.severity for a in alerts] == [AlertSeverity.MEDIUM]

    def test_needs_one_and_a_half_times_the_mean(self, categories, tx_factory, app_settings):
        """Test 5 payments against a steady 4 is not flagged, though above mean + 2 stddev."""
        office = categories["office"]
        transactions = (
            payments(tx_factory, office, 4, 4)
            + payments(tx_factory, office, 5, 4)
            + payments(tx_factory, office, 6, 5)
        )
        assert frequency_alerts(transactions, categories.values(), app_settings) == []

    def test_needs_two_months_of_history(self, categories, tx_factory, app_settings):
        """Test a single history month is not enough to judge frequency."""
        office = categories["office"]
        transactions = payments(tx_factory, office, 5, 1) + payments(tx_factory, office, 6, 5)
        assert frequency_alerts(transactions, categories.values(), app_settings) == []

    def test_at_most_two_alerts(self, company_id, tx_factory, app_settings):
        """Test three busy categories produce only two alerts."""
        busy = [Category(company_id=company_id, name=name) for name in ("Taxi", "Food", "Post")]
        transactions = []
        for category in busy:
            transactions += (
                payments(tx_factory, category, 4, 1)
                + payments(tx_factory, category, 5, 1)
                + payments(tx_factory, category, 6, 3)
            )

        assert len(frequency_alerts(transactions, busy, app_settings)) == 2


class TestSpendingMonitor:
    """Tests for the storage-backed monitor."""

    def test_detect_loads_company_transactions(self, storage, company_id, account, categories,
                                               tx_factory, app_settings):
        """Test the monitor finds the new category from stored data."""
        fuel = categories["fuel"]

        async def run():
            await storage.save_account(account)
            for category in categories.values():
                await storage.save_category(category)
            await storage.save_transactions([tx_factory(700, date(2024, 6, 2), fuel)])
            return await SpendingMonitor(storage, app_settings).detect(company_id, TODAY)

        alerts = asyncio.run(run())

        assert len(alerts) == 1
        assert alerts[0].type == SpendingAlertType.UNUSUAL_CATEGORY
        assert alerts[0].category_name == "Fuel"
