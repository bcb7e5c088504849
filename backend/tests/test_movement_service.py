"""
Movement ledger tests.

Verifies:
- The router paid toggle keeps exactly one AUTO adjustment while paid
- A sale accepts one manual gain; a second one is a conflict
- Deleting a movement returns the unit to stock and drops its adjustments
- Sales bonus counts nano ac sales and paid routers since the reset day
"""

from datetime import date, datetime

import pytest

from mikropanel.models import Adjustment, AdjustmentArchive, Equipment, Movement
from mikropanel.models.billing import ADJUSTMENT_AUTO, ADJUSTMENT_MANUAL
from mikropanel.models.inventory import EQUIPMENT_AVAILABLE, EQUIPMENT_SOLD, MOVEMENT_SALE
from mikropanel.services import adjustment_service, inventory_service, movement_service, zone_service
from mikropanel.time_utils import month_key, utcnow
from mikropanel.validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError

from conftest import add_stock, make_client


@pytest.fixture
def ana(db_session):
    zone_service.create_zone(name="North", tariff_cents=500)
    db_session.commit()
    return make_client(name="Ana", zone_id="north", units=10)


def _auto_count(movement_id):
    return len(adjustment_service.for_movement(movement_id, ADJUSTMENT_AUTO))


class TestRouterPaidToggle:
    def test_true_false_true_leaves_exactly_one(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(label="router", client_id=ana.id, actor="tech")
        db_session.commit()
        assert _auto_count(movement.id) == 0

        movement_service.set_router_paid(movement_id=movement.id, paid=True, actor="admin")
        db_session.commit()
        assert _auto_count(movement.id) == 1

        movement_service.set_router_paid(movement_id=movement.id, paid=False, actor="admin")
        db_session.commit()
        assert _auto_count(movement.id) == 0

        movement_service.set_router_paid(movement_id=movement.id, paid=True, actor="admin")
        db_session.commit()
        assert _auto_count(movement.id) == 1

        adjustment = adjustment_service.for_movement(movement.id, ADJUSTMENT_AUTO)[0]
        assert adjustment.amount_cents == 1500
        assert adjustment.client_id == ana.id

    def test_repeated_true_is_idempotent(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(label="router", client_id=ana.id, actor="tech")
        db_session.commit()

        for _ in range(3):
            movement_service.set_router_paid(movement_id=movement.id, paid=True, actor="admin")
            db_session.commit()

        assert _auto_count(movement.id) == 1
        assert db_session.query(Adjustment).count() == 1

    def test_fee_lands_in_movement_month(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(label="router", client_id=ana.id, actor="tech")
        movement.occurred_at = datetime(2020, 1, 10, 12, 0)
        db_session.commit()

        movement_service.set_router_paid(movement_id=movement.id, paid=True, actor="admin")
        db_session.commit()

        assert adjustment_service.for_movement(movement.id, ADJUSTMENT_AUTO)[0].year_month == "2020-01"

    def test_fee_for_archived_month_lands_in_current_month(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(label="router", client_id=ana.id, actor="tech")
        movement.occurred_at = datetime(2020, 1, 10, 12, 0)
        db_session.commit()
        adjustment_service.archive_and_reset_month("2020-01", actor="system")
        db_session.commit()

        movement_service.set_router_paid(movement_id=movement.id, paid=True, actor="admin")
        db_session.commit()

        adjustment = adjustment_service.for_movement(movement.id, ADJUSTMENT_AUTO)[0]
        assert adjustment.year_month == month_key()
        assert adjustment_service.month_total("2020-01") == 0
        assert db_session.get(AdjustmentArchive, "2020-01").total_cents == 0

    def test_paid_up_front_creates_fee(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(
            label="router", client_id=ana.id, actor="tech", is_paid=True,
        )
        db_session.commit()

        assert movement.is_paid is True
        assert _auto_count(movement.id) == 1

    def test_switch_has_no_paid_flag(self, db_session, ana):
        add_stock("switch", 1)
        movement = movement_service.register_assignment(label="switch", client_id=ana.id, actor="tech")
        db_session.commit()

        with pytest.raises(ValidationError):
            movement_service.set_router_paid(movement_id=movement.id, paid=True, actor="admin")

    def test_paid_must_be_boolean(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(label="router", client_id=ana.id, actor="tech")
        db_session.commit()

        with pytest.raises(ValidationError):
            movement_service.set_router_paid(movement_id=movement.id, paid="true", actor="admin")


class TestSaleGain:
    def test_second_gain_is_rejected(self, db_session):
        add_stock("Nano AC", 1)
        movement = movement_service.register_sale(label="Nano AC", actor="tech")[0]
        db_session.commit()

        adjustment_service.record_sale_gain(movement_id=movement.id, amount_cents=2500, actor="admin")
        db_session.commit()

        with pytest.raises(ConflictError):
            adjustment_service.record_sale_gain(movement_id=movement.id, amount_cents=900, actor="admin")
        db_session.rollback()

        gains = adjustment_service.for_movement(movement.id, ADJUSTMENT_MANUAL)
        assert len(gains) == 1
        assert gains[0].amount_cents == 2500

    def test_unique_constraint_backs_the_guard(self, db_session):
        add_stock("Nano AC", 1)
        movement = movement_service.register_sale(label="Nano AC", actor="tech")[0]
        db_session.commit()

        first = Adjustment(year_month="2025-05", amount_cents=100, label="gain", origin=ADJUSTMENT_MANUAL,
                           movement_id=movement.id)
        second = Adjustment(year_month="2025-05", amount_cents=200, label="gain", origin=ADJUSTMENT_MANUAL,
                            movement_id=movement.id)

        assert adjustment_service.insert_unique(first) is True
        assert adjustment_service.insert_unique(second) is False
        db_session.commit()
        assert len(adjustment_service.for_movement(movement.id, ADJUSTMENT_MANUAL)) == 1

    def test_gain_only_on_sales(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(label="router", client_id=ana.id, actor="tech")
        db_session.commit()

        with pytest.raises(ValidationError):
            adjustment_service.record_sale_gain(movement_id=movement.id, amount_cents=100, actor="admin")

    def test_negative_gain_rejected(self, db_session):
        add_stock("Nano AC", 1)
        movement = movement_service.register_sale(label="Nano AC", actor="tech")[0]
        db_session.commit()

        with pytest.raises(ValidationError):
            adjustment_service.record_sale_gain(movement_id=movement.id, amount_cents=-5, actor="admin")

    def test_unknown_movement(self, db_session):
        with pytest.raises(NotFoundError):
            adjustment_service.record_sale_gain(movement_id=404, amount_cents=100, actor="admin")


class TestDeleteMovement:
    def test_sale_delete_restores_stock_and_drops_gain(self, db_session):
        add_stock("Nano AC", 2)
        movement = movement_service.register_sale(label="nano ac", actor="tech")[0]
        adjustment_service.record_sale_gain(movement_id=movement.id, amount_cents=2500, actor="admin")
        db_session.commit()
        assert inventory_service.count_available("nano ac") == 1

        unit = movement_service.delete_movement(movement_id=movement.id, actor="admin")
        db_session.commit()

        assert unit.state == EQUIPMENT_AVAILABLE
        assert inventory_service.count_available("nano ac") == 2
        assert db_session.query(Movement).count() == 0
        assert db_session.query(Adjustment).filter_by(movement_id=movement.id).count() == 0

    def test_assignment_delete_clears_client_and_fee(self, db_session, ana):
        add_stock("router", 1)
        movement = movement_service.register_assignment(
            label="router", client_id=ana.id, actor="tech", is_paid=True,
        )
        db_session.commit()
        unit_id = movement.equipment_id

        movement_service.delete_movement(movement_id=movement.id, actor="admin")
        db_session.commit()

        unit = db_session.get(Equipment, unit_id)
        assert unit.state == EQUIPMENT_AVAILABLE
        assert unit.client_id is None
        assert unit.client_name is None
        assert db_session.query(Adjustment).count() == 0

        groups = {g.key: g for g in inventory_service.group_inventory()}
        assert groups["router"].quantity == 1
        assert groups["router"].assigned == 0

    def test_unknown_movement(self, db_session):
        with pytest.raises(NotFoundError):
            movement_service.delete_movement(movement_id=404, actor="admin")


class TestRegister:
    def test_sale_takes_units_in_id_order(self, db_session):
        units = add_stock("Nano AC", 3)
        movements = movement_service.register_sale(label="  NANO ac ", qty=2, actor="tech", amount_cents=9000)
        db_session.commit()

        assert [m.equipment_id for m in movements] == [units[0].id, units[1].id]
        assert all(m.kind == MOVEMENT_SALE and m.amount_cents == 9000 for m in movements)
        assert db_session.get(Equipment, units[0].id).state == EQUIPMENT_SOLD
        assert inventory_service.count_available("nano ac") == 1

    def test_sale_over_stock_fails_whole(self, db_session):
        add_stock("Nano AC", 1)
        with pytest.raises(InsufficientStockError):
            movement_service.register_sale(label="Nano AC", qty=2, actor="tech")
        db_session.rollback()
        assert inventory_service.count_available("nano ac") == 1
        assert db_session.query(Movement).count() == 0

    def test_only_router_or_switch_assignable(self, db_session, ana):
        add_stock("Nano AC", 1)
        with pytest.raises(ValidationError):
            movement_service.register_assignment(label="Nano AC", client_id=ana.id, actor="tech")

    def test_generic_movement_accepts_aliases(self, db_session, ana):
        unit = add_stock("router", 1)[0]
        movement = movement_service.record_movement(
            equipment_id=unit.id,
            kind="asignacion",
            client_id=ana.id,
            detail={"note": "installed"},
            actor="tech",
        )
        db_session.commit()

        assert movement.client_name == "Ana"
        assert movement.detail == {"note": "installed"}
        assert movement.is_paid is False

    def test_generic_movement_needs_available_unit(self, db_session):
        unit = add_stock("Nano AC", 1)[0]
        movement_service.record_movement(equipment_id=unit.id, kind="sale", actor="tech")
        db_session.commit()

        with pytest.raises(ValidationError):
            movement_service.record_movement(equipment_id=unit.id, kind="sale", actor="tech")

    @pytest.mark.parametrize("kind", ["", "rental", None])
    def test_generic_movement_rejects_unknown_kind(self, db_session, kind):
        unit = add_stock("Nano AC", 1)[0]
        with pytest.raises(ValidationError):
            movement_service.record_movement(equipment_id=unit.id, kind=kind, actor="tech")

    def test_list_filters(self, db_session, ana):
        add_stock("router", 2)
        add_stock("Nano AC", 1)
        paid = movement_service.register_assignment(label="router", client_id=ana.id, actor="tech", is_paid=True)
        movement_service.register_assignment(label="router", client_id=ana.id, actor="envios")
        movement_service.register_sale(label="Nano AC", actor="tech")
        db_session.commit()

        assert len(movement_service.list_movements()) == 3
        assert len(movement_service.list_movements(actor="ENV")) == 1
        assert len(movement_service.list_movements(kind="sale")) == 1
        assert [m.id for m in movement_service.list_movements(paid=True)] == [paid.id]
        assert len(movement_service.list_movements(paid=False)) == 1
        today = utcnow().date()
        assert len(movement_service.list_movements(date_from=today, date_to=today)) == 3


class TestSalesBonus:
    def test_period_starts_on_reset_day(self):
        assert movement_service.bonus_period_start(date(2025, 5, 7), 7) == date(2025, 5, 7)
        assert movement_service.bonus_period_start(date(2025, 5, 6), 7) == date(2025, 4, 7)
        assert movement_service.bonus_period_start(date(2025, 1, 3), 7) == date(2024, 12, 7)

    def test_summary_counts_nano_and_paid_routers(self, db_session, ana):
        add_stock("Nano AC", 2)
        add_stock("router", 2)
        movement_service.register_sale(label="Nano AC", qty=2, actor="tech")
        movement_service.register_assignment(label="router", client_id=ana.id, actor="tech", is_paid=True)
        movement_service.register_assignment(label="router", client_id=ana.id, actor="tech")
        db_session.commit()

        summary = movement_service.sales_bonus_summary(utcnow().date())

        assert summary["nano_ac_count"] == 2
        assert summary["router_paid_count"] == 1
        assert summary["total_cents"] == 2 * 14000 + 1500
