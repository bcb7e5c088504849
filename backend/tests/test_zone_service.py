"""
Zone and tariff table tests.
"""

import pytest

from mikropanel.models import Tariff, Zone
from mikropanel.services import zone_service
from mikropanel.validation import ConflictError, NotFoundError, ValidationError

from conftest import make_client


class TestZones:
    def test_id_is_slug_of_name(self, db_session):
        zone = zone_service.create_zone(name="  Zona Norte ", tariff_cents=650, actor="admin")
        db_session.commit()

        assert zone.id == "zona-norte"
        assert zone.name == "Zona Norte"
        assert zone_service.get_tariff_map() == {"zona-norte": 650}

    def test_duplicate_slug_conflicts(self, db_session, zones):
        with pytest.raises(ConflictError):
            zone_service.create_zone(name="Santos Suarez", tariff_cents=900, actor="admin")

    @pytest.mark.parametrize("name, tariff", [("", 500), ("---", 500), ("Este", 0), ("Este", -10)])
    def test_invalid_zone(self, db_session, name, tariff):
        with pytest.raises(ValidationError):
            zone_service.create_zone(name=name, tariff_cents=tariff, actor="admin")

    def test_delete_blocked_while_clients_reference_it(self, db_session, zones):
        make_client(zone_id="carvajal", is_active=False)

        with pytest.raises(ConflictError):
            zone_service.delete_zone(zone_id="carvajal", actor="admin")
        db_session.rollback()

        assert db_session.get(Zone, "carvajal") is not None

    def test_delete_removes_tariff(self, db_session, zones):
        zone_service.delete_zone(zone_id="buenos-aires", actor="admin")
        db_session.commit()

        assert db_session.get(Zone, "buenos-aires") is None
        assert db_session.get(Tariff, "buenos-aires") is None
        assert "buenos-aires" not in zone_service.get_tariff_map()

    def test_delete_unknown_zone(self, db_session):
        with pytest.raises(NotFoundError):
            zone_service.delete_zone(zone_id="nowhere", actor="admin")


class TestTariffs:
    def test_save_replaces_whole_table(self, db_session, zones):
        saved = zone_service.save_tariffs(
            tariffs={"carvajal": 650, "santos-suarez": -3, "san-francisco": "abc"},
            actor="admin",
        )
        db_session.commit()

        assert saved == {
            "carvajal": 650,
            "santos-suarez": 0,
            "san-francisco": 0,
            "buenos-aires": 0,
        }

    def test_numeric_strings_accepted(self, db_session, zones):
        saved = zone_service.save_tariffs(tariffs={"carvajal": " 800 "}, actor="admin")
        assert saved["carvajal"] == 800

    def test_unknown_zone_rejected_without_changes(self, db_session, zones):
        with pytest.raises(ValidationError):
            zone_service.save_tariffs(tariffs={"carvajal": 900, "mars": 100}, actor="admin")
        db_session.rollback()

        assert zone_service.get_tariff_map()["carvajal"] == 500

    def test_unmapped_zone_bills_zero(self, db_session, zones):
        assert zone_service.tariff_for_zone("nowhere") == 0
        assert zone_service.tariff_for_zone(None) == 0

    def test_summary_counts_active_units(self, db_session, zones):
        make_client(zone_id="santos-suarez", units=4, ip_host=11)
        make_client(name="Beto", zone_id="santos-suarez", units=6, ip_host=12, is_active=False)

        row = next(r for r in zone_service.zone_summary() if r["zone_id"] == "santos-suarez")

        assert row["total"] == 2
        assert row["active"] == 1
        assert row["active_units"] == 4
        assert row["estimated_income_cents"] == 2800
