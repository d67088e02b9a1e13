import unittest
from datetime import date
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import crud
import depreciation
from database import Base, DepreciationLine, User
from errors import ValidationError


class ChargeTests(unittest.TestCase):
    def test_annual_charge_caps_at_remaining_value(self):
        self.assertEqual(depreciation.annual_charge(1000, 0.375, 0), 375)
        self.assertEqual(depreciation.annual_charge(1000, 0.375, 750), 250)
        self.assertEqual(depreciation.annual_charge(1000, 0.375, 1000), 0)
        self.assertEqual(depreciation.annual_charge(1000, 0.0, 0), 0)

    def test_apply_annual_updates_asset(self):
        asset = SimpleNamespace(cost=800, rate=0.125, accumulated_depreciation=0, nbv=800, last_depreciation_year=None)
        charge = depreciation.apply_annual(asset, 2025)
        self.assertEqual(charge, 100)
        self.assertEqual(asset.nbv, 700)
        self.assertEqual(asset.last_depreciation_year, 2025)

    def test_validate_asset_messages(self):
        cases = [
            (("", date(2025, 1, 1), 100, 0.1), "Please enter asset name."),
            (("Laptop", None, 100, 0.1), "Please select purchase date."),
            (("Laptop", date(2025, 1, 1), 0, 0.1), "Enter a valid cost."),
            (("Laptop", date(2025, 1, 1), "abc", 0.1), "Enter a valid cost."),
            (("Laptop", date(2025, 1, 1), 100, 12.5), "Rate must be a decimal between 0 and 1 (e.g. 0.125)."),
            (("Laptop", date(2025, 1, 1), 100, -0.1), "Rate must be a decimal between 0 and 1 (e.g. 0.125)."),
        ]
        for args, message in cases:
            with self.assertRaises(ValidationError) as ctx:
                depreciation.validate_asset(*args)
            self.assertEqual(ctx.exception.message, message)

        self.assertEqual(depreciation.validate_asset(" Laptop ", date(2025, 1, 1), "100", "0.375"), ("Laptop", 100.0, 0.375))

    def test_yearly_history_keeps_last_six_years(self):
        lines = [SimpleNamespace(year=y, amount=10) for y in range(2015, 2026)]
        lines.append(SimpleNamespace(year=2025, amount=5))
        history = depreciation.yearly_history(lines)
        self.assertEqual(history["Year"].tolist(), [2020, 2021, 2022, 2023, 2024, 2025])
        self.assertEqual(history["Amount"].tolist()[-1], 15)
        self.assertTrue(depreciation.yearly_history([]).empty)


class DepreciationRunTests(unittest.TestCase):
    def setUp(self):
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.db = sessionmaker(bind=engine)()
        self.user = User(email="a@example.com", username="a", password_hash="x")
        self.db.add(self.user)
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_new_asset_starts_at_cost(self):
        asset = depreciation.register_asset(
            self.db, self.user.id, "Laptop", "Computers & data handling equipment", date(2024, 5, 1), 1000, 0.375
        )
        self.assertEqual(asset.nbv, 1000)
        self.assertEqual(asset.accumulated_depreciation, 0)
        self.assertEqual(asset.method, "SL")

    def test_run_never_goes_below_zero(self):
        asset = depreciation.register_asset(self.db, self.user.id, "Laptop", "Custom", date(2022, 1, 1), 1000, 0.375)

        totals = [depreciation.run_annual_depreciation(self.db, self.user.id, y)["total"] for y in (2022, 2023, 2024, 2025)]

        self.assertEqual(totals, [375, 375, 250, 0])
        self.db.refresh(asset)
        self.assertEqual(asset.nbv, 0)
        self.assertEqual(asset.accumulated_depreciation, 1000)
        self.assertEqual(asset.last_depreciation_year, 2025)

    def test_rerun_adds_to_existing_line(self):
        asset = depreciation.register_asset(
            self.db, self.user.id, "Desk", "Furniture & fittings", date(2025, 1, 1), 800, 0.125
        )
        depreciation.run_annual_depreciation(self.db, self.user.id, 2025)
        depreciation.run_annual_depreciation(self.db, self.user.id, 2025)

        lines = crud.list_dep_lines(self.db, self.user.id)
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].amount, 200)
        self.db.refresh(asset)
        self.assertEqual(asset.accumulated_depreciation, sum(line.amount for line in lines))
        self.assertEqual(asset.nbv, 600)

        history = depreciation.yearly_history(lines)
        self.assertEqual(history.loc[history["Year"] == 2025, "Amount"].iloc[0], 200)

    def test_run_without_assets(self):
        with self.assertRaises(ValidationError):
            depreciation.run_annual_depreciation(self.db, self.user.id, 2025)

    def test_summary_and_delete(self):
        asset = depreciation.register_asset(self.db, self.user.id, "Van", "Motor vehicles & plant", date(2025, 1, 1), 4000, 0.25)
        depreciation.run_annual_depreciation(self.db, self.user.id, 2025)

        summary = depreciation.asset_summary(
            crud.list_assets(self.db, self.user.id), crud.list_dep_lines(self.db, self.user.id), 2025
        )
        self.assertEqual(summary, {"count": 1, "total_nbv": 3000, "this_year": 1000, "last_run_year": 2025})

        crud.delete_asset(self.db, self.user.id, asset.id)
        self.assertEqual(self.db.query(DepreciationLine).count(), 0)
        self.assertEqual(crud.list_assets(self.db, self.user.id), [])


if __name__ == "__main__":
    unittest.main()
