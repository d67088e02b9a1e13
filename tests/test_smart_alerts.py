import unittest
from datetime import date

from smart_alerts import compute_smart_alerts, filter_by_month


class SmartAlertsTests(unittest.TestCase):
    def setUp(self):
        self.transactions = [
            {"amount": 1000, "type": "income", "date": "2026-02-01"},
            {"amount": 1500, "type": "expense", "date": "2026-02-10"},
            {"amount": 200, "date": "2026-02-12"},  # missing type counts as expense
            {"amount": 9999, "type": "income", "date": "2026-01-15"},
        ]

    def test_empty_input(self):
        self.assertEqual(compute_smart_alerts([]), [])
        self.assertEqual(compute_smart_alerts(None, "2026-02"), [])

    def test_filter_keeps_month_and_undated(self):
        rows = self.transactions + [{"amount": 5, "type": "expense"}]
        kept = filter_by_month(rows, date(2026, 2, 20))
        self.assertEqual(len(kept), 4)
        self.assertNotIn(self.transactions[3], kept)

    def test_overspend_for_selected_month(self):
        alerts = compute_smart_alerts(self.transactions, "2026-02", currency="TZS ")
        ids = [a.id for a in alerts]

        self.assertEqual(ids, ["summary", "overspend"])
        self.assertEqual(alerts[0].severity, "info")
        self.assertEqual(alerts[0].message, "Income: TZS 1,000 • Expenses: TZS 1,700")
        self.assertEqual(alerts[1].severity, "warning")
        self.assertEqual(alerts[1].emoji, "⚠️")

    def test_no_month_uses_everything(self):
        alerts = compute_smart_alerts(self.transactions)
        self.assertEqual([a.id for a in alerts], ["summary"])
        self.assertIn("10,999", alerts[0].message)

    def test_no_income(self):
        alerts = compute_smart_alerts([{"amount": 12.5, "type": "expense", "date": "2026-03-01"}], "2026-03-15")
        self.assertEqual([a.id for a in alerts], ["summary", "no-income"])
        self.assertEqual(alerts[0].message, "Income: 0 • Expenses: 12.5")

    def test_other_month_only_gives_summary(self):
        alerts = compute_smart_alerts(self.transactions, date(2025, 12, 1))
        self.assertEqual([a.id for a in alerts], ["summary"])
        self.assertEqual(alerts[0].as_dict()["message"], "Income: 0 • Expenses: 0")


if __name__ == "__main__":
    unittest.main()
