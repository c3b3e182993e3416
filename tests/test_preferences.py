import json

import pytest

from services import preferences
from services.preferences import DEFAULT_KPI_SLOTS, DEFAULT_OBJECTIVES


def write_preferences_file(data):
    preferences.PREFERENCES_FILE.write_text(json.dumps(data), encoding="utf-8")


class TestKpiSlots:
    def test_defaults(self):
        assert preferences.get_kpi_slots("act_1") == DEFAULT_KPI_SLOTS

    def test_set_and_get_per_platform(self):
        slots = ["roas", "spend", "revenue", "conversions", "clicks", "impressions", "ctr", "cpm"]
        preferences.set_kpi_slots("act_1", "meta", slots)

        assert preferences.get_kpi_slots("act_1", "meta") == slots
        assert preferences.get_kpi_slots("act_1", "google") == DEFAULT_KPI_SLOTS
        assert preferences.get_kpi_slots("act_2", "meta") == DEFAULT_KPI_SLOTS

    def test_set_rejects_unknown_metric(self):
        with pytest.raises(ValueError):
            preferences.set_kpi_slots("act_1", "all", ["spend", "likes"])

    def test_set_removes_duplicates(self):
        saved = preferences.set_kpi_slots("act_1", "all", ["roas", "roas"])
        assert saved == ["roas", "conversions", "clicks", "impressions", "ctr", "cpc", "cpm"]

    def test_stored_duplicates_are_removed_on_read(self):
        write_preferences_file({"kpi_slots": {"act_1:all": ["spend", "spend", "clicks"]}})
        assert preferences.get_kpi_slots("act_1") == ["spend", "clicks", "impressions", "ctr", "cpc", "cpm"]

    def test_stored_invalid_entry_takes_slot_default(self):
        write_preferences_file({"kpi_slots": {"act_1:all": ["bogus"]}})
        assert preferences.get_kpi_slots("act_1") == DEFAULT_KPI_SLOTS

    def test_stored_non_list_uses_defaults(self):
        write_preferences_file({"kpi_slots": {"act_1:all": "spend"}})
        assert preferences.get_kpi_slots("act_1") == DEFAULT_KPI_SLOTS

    def test_stored_non_string_entries_take_slot_default(self):
        write_preferences_file({"kpi_slots": {"act_1:all": [{"x": 1}, "roas", ["ctr"]]}})
        assert preferences.get_kpi_slots("act_1") == [
            "spend", "roas", "conversions", "clicks", "impressions", "ctr", "cpc", "cpm",
        ]

    def test_set_rejects_non_string_entries(self):
        with pytest.raises(ValueError):
            preferences.set_kpi_slots("act_1", "all", ["spend", ["roas"]])


class TestObjectives:
    def test_defaults(self):
        assert preferences.get_objectives("act_1") == DEFAULT_OBJECTIVES

    def test_set_objectives(self):
        result = preferences.set_objectives("act_1", obj1_metric="revenue", obj1_target="1500", unknown="x")
        assert result["obj1_metric"] == "revenue"
        assert result["obj1_target"] == 1500.0
        assert "unknown" not in result
        assert preferences.get_objectives("act_1") == result

    def test_invalid_metric_raises(self):
        with pytest.raises(ValueError):
            preferences.set_objectives("act_1", ind1_metric="likes")

    def test_non_numeric_target_becomes_zero(self):
        assert preferences.set_objectives("act_1", obj2_target="abc")["obj2_target"] == 0.0

    def test_stored_bad_values_fall_back(self):
        write_preferences_file({"objectives": {"act_1": {"obj1_target": "nan", "obj2_metric": "likes"}}})
        result = preferences.get_objectives("act_1")
        assert result["obj1_target"] == 0.0
        assert result["obj2_metric"] == DEFAULT_OBJECTIVES["obj2_metric"]

    def test_stored_non_string_metric_falls_back(self):
        write_preferences_file({"objectives": {"act_1": {"obj1_metric": ["roas"], "ind2_metric": {"m": "cpa"}}}})
        result = preferences.get_objectives("act_1")
        assert result["obj1_metric"] == DEFAULT_OBJECTIVES["obj1_metric"]
        assert result["ind2_metric"] == DEFAULT_OBJECTIVES["ind2_metric"]


class TestDatePreset:
    def test_default(self):
        assert preferences.get_date_preset() == "mtd"

    def test_set_and_get(self):
        preferences.set_date_preset("last_7")
        assert preferences.get_date_preset() == "last_7"

    def test_invalid_preset(self):
        with pytest.raises(ValueError):
            preferences.set_date_preset("forever")

    def test_stored_non_string_preset(self):
        write_preferences_file({"date_preset": ["last_7"]})
        assert preferences.get_date_preset() == "mtd"

    @pytest.mark.parametrize("version", ["1", None, [2], 1.5])
    def test_write_with_malformed_schema_version(self, version):
        write_preferences_file({"schema_version": version, "date_preset": "yesterday"})
        assert preferences.set_date_preset("last_7") == "last_7"

        saved = json.loads(preferences.PREFERENCES_FILE.read_text(encoding="utf-8"))
        assert saved["schema_version"] == preferences.SCHEMA_VERSION
        assert saved["date_preset"] == "last_7"

    def test_write_keeps_newer_schema_version(self):
        write_preferences_file({"schema_version": 5})
        preferences.set_date_preset("last_7")
        saved = json.loads(preferences.PREFERENCES_FILE.read_text(encoding="utf-8"))
        assert saved["schema_version"] == 5

    def test_malformed_file(self):
        preferences.PREFERENCES_FILE.write_text("[1, 2", encoding="utf-8")
        assert preferences.get_date_preset() == "mtd"
        assert preferences.get_kpi_slots("act_1") == DEFAULT_KPI_SLOTS


def test_get_all():
    preferences.set_date_preset("yesterday")
    assert preferences.get_all() == {"date_preset": "yesterday"}

    everything = preferences.get_all("act_1", "meta")
    assert everything["kpi_slots"] == DEFAULT_KPI_SLOTS
    assert everything["objectives"] == DEFAULT_OBJECTIVES
