"""
Monthly closing, remittance and expense ledger tests.
"""

from datetime import date, datetime

import pytest

from mikropanel.models import Adjustment, AdjustmentArchive, MonthlyClosing, Remittance
from mikropanel.models.billing import ADJUSTMENT_EXPENSE, ADJUSTMENT_MANUAL
from mikropanel.services import adjustment_service, closing_service, expense_service, zone_service
from mikropanel.validation import NotFoundError, ValidationError

from conftest import make_client


MONTH = "2025-05"


def _manual(db_session, amount, year_month=MONTH):
    adj = Adjustment(year_month=year_month, amount_cents=amount, label="manual", origin=ADJUSTMENT_MANUAL)
    db_session.add(adj)
    db_session.commit()
    return adj


class TestFigures:
    def test_premium_zone(self, db_session, zones):
        make_client(zone_id="santos-suarez", units=50)

        figures = closing_service.compute_month_figures(MONTH)

        assert figures["active_clients"] == 1
        assert figures["gross_cents"] == 35000
        assert figures["margin_cents"] == 26250
        assert figures["technician_cents"] == 8750
        assert figures["net_cents"] == 13250

    def test_standard_zone_and_adjustments(self, db_session, zones):
        make_client(zone_id="carvajal", units=10, ip_host=11)
        make_client(name="Beto", zone_id="carvajal", units=4, ip_host=12, is_active=False)
        _manual(db_session, 1000)
        _manual(db_session, 99999, year_month="2025-04")

        figures = closing_service.compute_month_figures(MONTH)

        assert figures["gross_cents"] == 5000
        assert figures["margin_cents"] == 3750
        assert figures["technician_cents"] == 1250
        assert figures["adjustments_cents"] == 1000
        assert figures["net_cents"] == 3750 - 13000 + 1000

    def test_technician_share_never_negative(self, db_session, zones):
        zone_service.save_tariffs(tariffs={"carvajal": 0}, actor="admin")
        db_session.commit()
        make_client(zone_id="carvajal", units=3)

        figures = closing_service.compute_month_figures(MONTH)

        assert figures["gross_cents"] == 0
        assert figures["technician_cents"] == 0

    def test_rejects_bad_month(self, db_session):
        with pytest.raises(ValidationError):
            closing_service.compute_month_figures("2025-13")


class TestRemittances:
    @pytest.fixture
    def closing(self, db_session, zones):
        make_client(zone_id="santos-suarez", units=50)
        closing = closing_service.save_closing(MONTH, actor="admin")
        db_session.commit()
        return closing

    def test_saving_marks_net_ready(self, closing):
        assert closing.net_cents == 13250
        assert closing.remittance_total_cents == 13250
        assert closing.remittance_remaining_cents == 13250

    def test_partial_then_overpaid(self, db_session, closing):
        closing_service.record_remittance(year_month=MONTH, amount_cents=5000, note=" first ", actor="admin")
        db_session.commit()
        assert closing.remittance_remaining_cents == 8250

        closing_service.record_remittance(year_month=MONTH, amount_cents=10000, actor="admin")
        db_session.commit()
        assert closing.remittance_remaining_cents == 0

        notes = {r.note for r in closing_service.list_remittances(MONTH)}
        assert notes == {None, "first"}

    def test_remittance_needs_closing(self, db_session):
        with pytest.raises(NotFoundError):
            closing_service.record_remittance(year_month="2025-01", amount_cents=100, actor="admin")

    @pytest.mark.parametrize("amount", [0, -5, "1.5", None])
    def test_remittance_amount_validated(self, closing, amount):
        with pytest.raises(ValidationError):
            closing_service.record_remittance(year_month=MONTH, amount_cents=amount, actor="admin")

    def test_saving_again_discards_remittances(self, db_session, closing):
        closing_service.record_remittance(year_month=MONTH, amount_cents=5000, actor="admin")
        db_session.commit()

        closing = closing_service.save_closing(MONTH, actor="admin")
        db_session.commit()

        assert closing.remittance_remaining_cents == 13250
        assert db_session.query(Remittance).count() == 0
        assert db_session.query(MonthlyClosing).count() == 1


class TestReset:
    def test_reset_archives_and_clears(self, db_session, zones):
        make_client(zone_id="carvajal", units=10)
        _manual(db_session, 700)
        _manual(db_session, -200)
        closing_service.save_closing(MONTH, actor="admin")
        closing_service.record_remittance(year_month=MONTH, amount_cents=100, actor="admin")
        db_session.commit()

        result = closing_service.reset_month(MONTH, actor="admin")
        db_session.commit()

        assert result == {
            "year_month": MONTH,
            "closing_deleted": True,
            "adjustments_archived": 2,
            "remittances_deleted": 1,
        }
        assert closing_service.get_closing(MONTH) is None
        assert adjustment_service.month_total(MONTH) == 0
        archive = db_session.get(AdjustmentArchive, MONTH)
        assert archive.total_cents == 500
        assert len(archive.items) == 2

    def test_reset_without_closing(self, db_session):
        result = closing_service.reset_month(MONTH, actor="admin")
        assert result["closing_deleted"] is False
        assert result["adjustments_archived"] == 0


class TestAutoClose:
    def test_runs_once_on_cycle_day(self, db_session, zones):
        make_client(zone_id="santos-suarez", units=50)
        _manual(db_session, 1000)

        first = closing_service.auto_close(date(2025, 5, 5))
        db_session.commit()

        assert first == {"year_month": MONTH, "saved": True, "reset": True}
        closing = closing_service.get_closing(MONTH)
        assert closing.net_cents == 14250
        assert closing.actor == "system"
        assert adjustment_service.month_total(MONTH) == 0

        _manual(db_session, 500)
        second = closing_service.auto_close(date(2025, 5, 5))
        db_session.commit()

        assert second == {"year_month": MONTH, "saved": False, "reset": False}
        assert closing_service.get_closing(MONTH).net_cents == 14250
        assert adjustment_service.month_total(MONTH) == 500

    def test_other_days_do_nothing(self, db_session, zones):
        make_client(zone_id="carvajal", units=10)

        result = closing_service.auto_close(date(2025, 5, 6))

        assert result == {"year_month": MONTH, "saved": False, "reset": False}
        assert closing_service.get_closing(MONTH) is None

    def test_manual_reset_reenables(self, db_session, zones):
        closing_service.auto_close(date(2025, 5, 5))
        closing_service.reset_month(MONTH, actor="admin")
        db_session.commit()

        again = closing_service.auto_close(date(2025, 5, 5))

        assert again["saved"] is True


class TestHistory:
    def test_series_covers_twelve_months(self, db_session, zones):
        make_client(zone_id="santos-suarez", units=50)
        closing_service.save_closing(MONTH, actor="admin")
        db_session.commit()

        series = closing_service.closing_series(12, today=date(2025, 5, 20))

        assert len(series) == 12
        assert series[0] == {"year_month": "2024-06", "technician_cents": 0, "net_cents": 0}
        assert series[-1] == {"year_month": MONTH, "technician_cents": 8750, "net_cents": 13250}


class TestExpenses:
    def test_expense_mirrors_into_adjustment(self, db_session):
        expense = expense_service.create_expense(
            reason="  Fuel ", amount_cents=2500, actor="tech", occurred_at=datetime(2025, 5, 10, 12, 0),
        )
        db_session.commit()

        assert expense.reason == "Fuel"
        mirrored = db_session.query(Adjustment).filter_by(expense_id=expense.id).one()
        assert mirrored.origin == ADJUSTMENT_EXPENSE
        assert mirrored.amount_cents == -2500
        assert mirrored.year_month == MONTH
        assert adjustment_service.month_total(MONTH) == -2500

    def test_delete_removes_adjustment(self, db_session):
        expense = expense_service.create_expense(
            reason="Cable", amount_cents=900, actor="tech", occurred_at=datetime(2025, 5, 1),
        )
        db_session.commit()

        expense_service.delete_expense(expense_id=expense.id, actor="admin")
        db_session.commit()

        assert db_session.query(Adjustment).count() == 0
        with pytest.raises(NotFoundError):
            expense_service.delete_expense(expense_id=expense.id, actor="admin")

    @pytest.mark.parametrize("reason, amount", [("", 100), ("Fuel", 0), ("Fuel", -1), ("Fuel", "12.5")])
    def test_invalid_expense(self, db_session, reason, amount):
        with pytest.raises(ValidationError):
            expense_service.create_expense(reason=reason, amount_cents=amount, actor="tech")

    def test_list_totals_by_month(self, db_session):
        expense_service.create_expense(reason="Fuel", amount_cents=100, actor="tech",
                                       occurred_at=datetime(2025, 4, 3))
        expense_service.create_expense(reason="Fuel", amount_cents=200, actor="tech",
                                       occurred_at=datetime(2025, 5, 3))
        expense_service.create_expense(reason="Ladder", amount_cents=50, actor="admin",
                                       occurred_at=datetime(2025, 5, 4))
        db_session.commit()

        listing = expense_service.list_expenses()
        assert listing["total_cents"] == 350
        assert listing["by_month"] == [
            {"year_month": "2025-05", "total_cents": 250},
            {"year_month": "2025-04", "total_cents": 100},
        ]

        fuel = expense_service.list_expenses(search="fuel")
        assert fuel["total_cents"] == 300
        may = expense_service.list_expenses(date_from=date(2025, 5, 1), date_to=date(2025, 5, 3))
        assert may["total_cents"] == 200

    def test_reconcile(self, db_session):
        kept = expense_service.create_expense(reason="Fuel", amount_cents=100, actor="tech",
                                              occurred_at=datetime(2025, 5, 3))
        db_session.commit()
        db_session.query(Adjustment).filter_by(expense_id=kept.id).delete()
        db_session.add(Adjustment(year_month=MONTH, amount_cents=-40, label="stale",
                                  origin=ADJUSTMENT_EXPENSE, expense_id=999))
        db_session.commit()

        assert expense_service.reconcile_expense_adjustments() == {"created": 1, "removed": 1}
        db_session.commit()
        assert expense_service.reconcile_expense_adjustments() == {"created": 0, "removed": 0}
        assert adjustment_service.month_total(MONTH) == -100

    def test_reconcile_skips_archived_month(self, db_session):
        expense_service.create_expense(reason="Fuel", amount_cents=100, actor="tech",
                                       occurred_at=datetime(2025, 5, 3))
        db_session.commit()
        adjustment_service.archive_and_reset_month(MONTH, actor="admin")
        db_session.commit()

        assert expense_service.reconcile_expense_adjustments() == {"created": 0, "removed": 0}
        assert adjustment_service.month_total(MONTH) == 0
