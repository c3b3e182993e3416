"""Tests for the view assembly service (account totals, campaign trees, client
dashboard, monitor and overview) against an in-memory store.

Run with: pytest tests/test_data_loader.py -v
"""

import json
from datetime import date

import pytest

from services import data_loader, goal_store, preferences
from services.metrics import AggregatedTotals, MetricKey

MARCH = ("2024-03-01", "2024-03-31")


def insight(account_id, level, entity_id, day, platform="meta", **fields):
    return {
        "account_id": account_id,
        "level": level,
        "entity_id": entity_id,
        "date": day,
        "platform": platform,
        **fields,
    }


@pytest.fixture
def account_rows(fake_store):
    fake_store.insights = [
        insight("act_1", "campaign", "c1", "2024-03-01", impressions=1000, clicks=20, spend=50),
        insight("act_1", "campaign", "c2", "2024-03-02", "google", impressions=500, clicks=5, spend=10),
        # no entity id: rejected, never counted
        {"account_id": "act_1", "level": "campaign", "date": "2024-03-03", "spend": 999},
        insight("act_1", "adset", "s1", "2024-03-01", spend=1000),
        insight("act_2", "campaign", "c9", "2024-03-01", spend=1000),
        insight("act_1", "campaign", "c1", "2024-02-28", spend=1000),
    ]
    return fake_store


@pytest.fixture
def meta_rows(fake_store):
    fake_store.meta_front = [
        {"account_id": "act_123", "entity_id": "c1", "entity_name": "Camp 1", "date": "2024-03-01",
         "spend": 30, "impressions": 1000, "clicks": 10, "conv": 2},
        {"account_id": "act_123", "entity_id": "c1", "entity_name": None, "date": "2024-03-02",
         "spend": 20, "conv": 1},
        {"account_id": "act_123", "entity_id": "c2", "date": "2024-03-01", "spend": 80},
    ]
    fake_store.statuses = {"c1": "ACTIVE"}
    fake_store.insights = [
        insight("act_123", "adset", "s1", "2024-03-01", spend=30, raw={"campaign_id": "c1"}),
        insight("act_123", "adset", "s2", "2024-03-01", spend=5, raw={}),
        insight("act_123", "ad", "ad123456789", "2024-03-01", spend=30, raw=json.dumps({"adset_id": "s1"})),
    ]
    fake_store.names["adsets"] = {"s1": "Conjunto A"}
    return fake_store


@pytest.fixture
def google_rows(fake_store):
    fake_store.google_front = [
        {"account_id": "555", "campaign_id": "g1", "campaign_name": "Old", "status": "ENABLED",
         "date": "2024-03-01", "spend": 10, "conv": 1},
        {"account_id": "555", "campaign_id": "g1", "campaign_name": "New", "status": None,
         "date": "2024-03-02", "spend": 5, "conv": 0.5},
        {"account_id": "555", "campaign_id": "g2", "campaign_name": None, "date": "2024-03-01", "spend": 40},
    ]
    fake_store.google_ads = [
        {"account_id": "555", "campaign_id": "g1", "campaign_name": "New", "ad_id": "a1", "ad_name": None,
         "date": "2024-03-01", "spend": 3},
        {"account_id": "555", "campaign_id": "g2", "campaign_name": None, "ad_id": "a2", "ad_name": None,
         "date": "2024-03-01", "spend": 4},
        {"account_id": "555", "campaign_id": "g1", "campaign_name": "New", "ad_id": "a3", "ad_name": "Banner",
         "date": "2024-03-02", "spend": 1},
    ]
    return fake_store


class TestAccountTotals:
    def test_sums_campaign_rows_in_window(self, account_rows):
        result = data_loader.get_account_totals("act_1", *MARCH)
        totals = result["totals"]

        assert "error" not in result
        assert totals["spend"] == 60
        assert totals["impressions"] == 1500
        assert totals["clicks"] == 25
        assert totals["ctr"] == pytest.approx(1.6667, rel=1e-3)
        assert totals["cpc"] == pytest.approx(2.4)
        assert totals["cpm"] == pytest.approx(40)

    def test_platform_filter(self, account_rows):
        totals = data_loader.get_account_totals("act_1", *MARCH, platform="meta")["totals"]
        assert totals["spend"] == 50

    def test_store_failure_is_reported(self, account_rows):
        account_rows.fail = {"insights"}
        result = data_loader.get_account_totals("act_1", *MARCH)
        assert result["totals"] is None
        assert "boom" in result["error"]


class TestKpiGrid:
    def test_duplicate_slots_are_removed(self, account_rows):
        grid = data_loader.get_kpi_grid("act_1", *MARCH, slots=["spend", "spend", "ctr"])
        assert [c["metric"] for c in grid["cards"]] == ["spend", "ctr"]
        assert grid["cards"][0]["display"] == "$ 60,00"
        assert grid["cards"][1]["display"] == "1,67%"
        assert grid["cards"][0]["label"] == "Inversión"

    def test_saved_slots_are_used(self, account_rows):
        preferences.set_kpi_slots("act_1", "all", ["roas", "cpc"])
        grid = data_loader.get_kpi_grid("act_1", *MARCH)
        # the default "cpc" slot is dropped as a duplicate
        assert [c["metric"] for c in grid["cards"]] == [
            "roas", "cpc", "conversions", "clicks", "impressions", "ctr", "cpm",
        ]

    def test_store_failure_keeps_cards(self, account_rows):
        account_rows.fail = {"insights"}
        grid = data_loader.get_kpi_grid("act_1", *MARCH, slots=["spend", "ctr"])
        assert grid["error"]
        assert [c["display"] for c in grid["cards"]] == ["—", "—"]
        assert all(c["value"] is None for c in grid["cards"])


def test_objectives_panel(account_rows):
    preferences.set_objectives("act_1", obj1_metric="spend", obj1_target=100)
    panel = data_loader.get_objectives_panel("act_1", *MARCH)

    obj1, obj2 = panel["objectives"]
    assert obj1["metric"] == "spend"
    assert obj1["progress_pct"] == 100.0
    assert obj1["display_actual"] == "$ 60,00"
    assert obj1["display_target"] == "$ 100,00"

    # default ROAS objective has a zero target
    assert obj2["metric"] == "roas"
    assert obj2["actual"] == 0.0
    assert obj2["progress_pct"] == 0.0

    ind1, ind2 = panel["indicators"]
    assert ind1["metric"] == "conversions"
    assert ind1["display"] == "0"
    assert ind2["display"] == "0,00x"


class TestMetaCampaignTree:
    def test_tree(self, meta_rows):
        result = data_loader.get_meta_campaign_tree("123", *MARCH)
        assert result["account_id"] == "act_123"

        c1, c2 = result["campaigns"]
        assert c1["id"] == "c1"
        assert c1["name"] == "Camp 1"
        assert c1["status"] == "Activa"
        assert c1["spend"] == 50
        assert c1["conversions"] == 3
        assert c1["platform"] == "meta"

        adset = c1["children"][0]
        assert adset["name"] == "Conjunto A"
        assert adset["parent_id"] == "c1"
        assert adset["children"][0]["name"] == "Ad 456789"
        assert adset["children"][0]["parent_id"] == "s1"

        assert c2["name"] == "Campaña sin nombre"
        assert c2["status"] == "—"
        assert "children" not in c2

    def test_child_rows_failure_is_not_fatal(self, meta_rows):
        meta_rows.fail = {"insights", "campaigns"}
        result = data_loader.get_meta_campaign_tree("act_123", *MARCH)
        assert "error" not in result
        assert [c["id"] for c in result["campaigns"]] == ["c1", "c2"]
        assert all("children" not in c for c in result["campaigns"])

    def test_campaign_failure(self, meta_rows):
        meta_rows.fail = {"meta_front"}
        result = data_loader.get_meta_campaign_tree("act_123", *MARCH)
        assert result["campaigns"] == []
        assert result["error"]


class TestGoogleCampaigns:
    def test_campaigns_and_ads(self, google_rows):
        result = data_loader.get_google_campaigns("555", *MARCH)
        g1, g2 = result["campaigns"]

        assert g1["name"] == "New"
        assert g1["status"] == "ENABLED"
        assert g1["spend"] == 15
        assert g1["conversions"] == 1.5
        assert [a["name"] for a in g1["children"]] == ["[New] a1", "Banner"]

        assert g2["name"] == "Campaña sin nombre"
        assert g2["status"] == "—"
        assert g2["children"][0]["name"] == "Ad a2"

    def test_ad_failure_is_not_fatal(self, google_rows):
        google_rows.fail = {"google_ads"}
        result = data_loader.get_google_campaigns("555", *MARCH)
        assert "error" not in result
        assert len(result["campaigns"]) == 2

    def test_no_campaigns_skips_ad_query(self, fake_store):
        result = data_loader.get_google_campaigns("555", *MARCH)
        assert result["campaigns"] == []
        assert "google_ads" not in fake_store.calls


class TestEntityTable:
    def test_meta_campaigns(self, meta_rows):
        table = data_loader.get_entity_table("123", "meta", "campaign", *MARCH)
        assert table["account_id"] == "act_123"
        assert [r["id"] for r in table["rows"]] == ["c2", "c1"]
        assert all("children" not in r and r["parent_name"] is None for r in table["rows"])

    def test_meta_adsets_and_ads_carry_parent_name(self, meta_rows):
        adsets = data_loader.get_entity_table("act_123", "meta", "adset", *MARCH)["rows"]
        assert [(r["name"], r["parent_name"]) for r in adsets] == [("Conjunto A", "Camp 1")]

        ads = data_loader.get_entity_table("act_123", "meta", "ad", *MARCH)["rows"]
        assert [(r["name"], r["parent_name"]) for r in ads] == [("Ad 456789", "Conjunto A")]

    def test_google_ads_sorted_by_spend(self, google_rows):
        rows = data_loader.get_entity_table("555", "google", "ad", *MARCH)["rows"]
        assert [(r["id"], r["parent_name"]) for r in rows] == [
            ("a2", "Campaña sin nombre"),
            ("a1", "New"),
            ("a3", "New"),
        ]

    @pytest.mark.parametrize("platform,level", [("google", "adset"), ("tiktok", "campaign"), ("meta", "keyword")])
    def test_invalid_platform_or_level(self, fake_store, platform, level):
        with pytest.raises(ValueError):
            data_loader.get_entity_table("act_1", platform, level, *MARCH)

    def test_store_failure(self, meta_rows):
        meta_rows.fail = {"meta_front"}
        table = data_loader.get_entity_table("act_123", "meta", "ad", *MARCH)
        assert table["rows"] == []
        assert table["error"]


class TestKpiHealth:
    meta = AggregatedTotals(key="meta", spend=100, conversions=5)
    google = AggregatedTotals(key="google", spend=50, conversions=10)

    def test_cost_metric_over_both_platforms(self):
        kpi = data_loader.compute_kpi_health(10, "cpa", "cost_per_conversion", "CPA", self.meta, self.google)
        assert kpi["metric"] == "cpa"
        assert kpi["value"] == pytest.approx(10)
        assert kpi["health"] == "good"
        assert kpi["lower_is_better"] is True

    def test_defaults_to_conversions(self):
        kpi = data_loader.compute_kpi_health("20", None, None, "Ventas", self.meta, self.google)
        assert kpi["metric"] == "conversions"
        assert kpi["value"] == 15
        assert kpi["health"] == "warn"

    def test_cost_micros_is_spend(self):
        kpi = data_loader.compute_kpi_health(100, None, "cost_micros", "Gasto", self.meta, self.google)
        assert kpi["metric"] == "spend"
        assert kpi["health"] == "bad"

    @pytest.mark.parametrize("target", [None, "", "abc"])
    def test_missing_target_is_unavailable(self, target):
        kpi = data_loader.compute_kpi_health(target, "cpa", None, "CPA", self.meta, self.google)
        assert kpi["health"] == "unavailable"
        assert kpi["value"] is None

    def test_resolve_platform_metric(self):
        assert data_loader.resolve_platform_metric("cpm", None) == MetricKey.CPM
        assert data_loader.resolve_platform_metric(None, "impressions") == MetricKey.IMPRESSIONS
        assert data_loader.resolve_platform_metric("likes", None) == MetricKey.CONVERSIONS


@pytest.fixture
def client_rows(meta_rows, google_rows):
    meta_rows.clients = {
        "cl1": {
            "id": "cl1",
            "name": "Acme",
            "meta_account_id": "123",
            "google_account_id": "555",
            "budget": 500,
            "kpi1_name": "CPA",
            "kpi1_target": 20,
            "meta_kpi1_metric": "cpa",
            "google_kpi1_metric": "cost_per_conversion",
            "kpi2_name": None,
        },
    }
    return meta_rows


class TestClientDashboard:
    def test_all_platforms(self, client_rows):
        dashboard = data_loader.get_client_dashboard("cl1", *MARCH)

        assert "error" not in dashboard
        assert [c["id"] for c in dashboard["campaigns"]] == ["c2", "c1", "g2", "g1"]
        assert dashboard["totals"]["spend"] == 185
        assert dashboard["budget"] == {"budget": 500.0, "spend": 185, "available": 315.0}

        assert len(dashboard["kpis"]) == 1
        kpi = dashboard["kpis"][0]
        assert kpi["slot"] == "kpi1"
        assert kpi["value"] == pytest.approx(185 / 4.5)
        assert kpi["health"] == "bad"

    def test_platform_view_filters_campaigns_not_budget(self, client_rows):
        dashboard = data_loader.get_client_dashboard("cl1", *MARCH, view="google")
        assert [c["id"] for c in dashboard["campaigns"]] == ["g2", "g1"]
        assert dashboard["totals"]["spend"] == 55
        assert dashboard["budget"]["spend"] == 185

    def test_campaign_goals_are_attached(self, client_rows):
        goal_store.upsert_goal("meta:c1", "conversions", 6, title="Ventas")
        dashboard = data_loader.get_client_dashboard("cl1", *MARCH)

        c1 = next(c for c in dashboard["campaigns"] if c["id"] == "c1")
        assert c1["goal_key"] == "meta:c1"
        assert c1["goals"][0]["title"] == "Ventas"
        assert c1["goals"][0]["progress_pct"] == pytest.approx(50)

        c2 = next(c for c in dashboard["campaigns"] if c["id"] == "c2")
        assert c2["goals"] == []

    def test_malformed_stored_goal_is_ignored(self, client_rows):
        goal_store.GOALS_FILE.write_text(json.dumps({
            "schema_version": 2,
            "goals": [
                {"id": 1, "entity_key": "meta:c1", "metric": ["conversions"], "target": 6},
                {"id": 2, "entity_key": "meta:c1", "metric": "conversions", "target": 6},
            ],
        }), encoding="utf-8")
        dashboard = data_loader.get_client_dashboard("cl1", *MARCH)

        c1 = next(c for c in dashboard["campaigns"] if c["id"] == "c1")
        assert [g["id"] for g in c1["goals"]] == [2]

    def test_second_kpi_only_with_name(self, client_rows):
        client_rows.clients["cl1"].update({"kpi2_name": "Gasto", "kpi2_target": 200, "google_kpi2_metric": "cost_micros"})
        kpis = data_loader.get_client_dashboard("cl1", *MARCH)["kpis"]
        assert [k["slot"] for k in kpis] == ["kpi1", "kpi2"]
        assert kpis[1]["metric"] == "spend"
        assert kpis[1]["health"] == "good"

    def test_partial_failure(self, client_rows):
        client_rows.fail = {"google_front"}
        dashboard = data_loader.get_client_dashboard("cl1", *MARCH)
        assert dashboard["error"].startswith("Google:")
        assert [c["id"] for c in dashboard["campaigns"]] == ["c2", "c1"]

    def test_unknown_client(self, client_rows):
        assert data_loader.get_client_dashboard("nope", *MARCH) is None

    def test_client_load_failure(self, client_rows):
        client_rows.fail = {"clients"}
        result = data_loader.get_client_dashboard("cl1", *MARCH)
        assert "client" not in result
        assert result["error"]

    def test_invalid_view(self, client_rows):
        with pytest.raises(ValueError):
            data_loader.get_client_dashboard("cl1", *MARCH, view="tiktok")


class TestGoalProgress:
    def test_google_campaign_goal(self, google_rows):
        goal = goal_store.upsert_goal("google:g1", "conversions", 3)
        result = data_loader.get_goal_progress(goal, "555", *MARCH)
        assert result["progress"]["actual"] == 1.5
        assert result["progress"]["progress_pct"] == pytest.approx(50)

    def test_account_goal(self, account_rows):
        goal = goal_store.upsert_goal("act_1", "spend", 100)
        result = data_loader.get_goal_progress(goal, "act_1", *MARCH)
        assert result["progress"]["actual"] == 60
        assert result["progress"]["progress_pct"] == 100.0

    def test_missing_campaign_is_no_data(self, meta_rows):
        goal = goal_store.upsert_goal("meta:gone", "spend", 100)
        result = data_loader.get_goal_progress(goal, "123", *MARCH)
        assert result["progress"]["status"] == "no-data"


class TestTodayMonitor:
    def test_rows_are_merged_per_campaign(self, fake_store):
        fake_store.today = [
            {"campaign_id": "c1", "campaign_name": "Camp 1", "platform": "meta", "impressions": 100, "is_active": True},
            {"campaign_id": "c1", "impressions": 50},
            {"campaign_id": "c2", "campaign_name": "Camp 2", "impressions": 0},
            {"campaign_id": "c3", "impressions": 10},
            {"campaign_id": None, "impressions": 99},
        ]
        monitor = data_loader.get_today_monitor("act_1", today=date(2024, 3, 15))

        assert monitor["date"] == "2024-03-15"
        by_id = {c["campaign_id"]: c for c in monitor["campaigns"]}
        assert list(by_id) == ["c1", "c2", "c3"]
        assert by_id["c1"]["impressions"] == 150
        assert by_id["c1"]["is_active"] is True
        assert by_id["c2"]["is_active"] is False
        assert by_id["c3"]["is_active"] is True

    def test_failure(self, fake_store):
        fake_store.fail = {"today"}
        monitor = data_loader.get_today_monitor("act_1", today=date(2024, 3, 15))
        assert monitor["campaigns"] == []
        assert monitor["error"]


@pytest.mark.parametrize("counters,score", [
    ((0, 0, 0, 0), None),
    ((100, 1000, 20, 0), 35),
    ((100, 1000, 20, 5), 90),
    ((100, 1000, 15, 5), 80),
    ((0, 1000, 10, 0), 70),
])
def test_health_score(counters, score):
    assert data_loader.health_score(*counters) == score


class TestAccountsOverview:
    def test_overview(self, fake_store):
        fake_store.accounts = [
            {"id": "a1", "name": "Uno", "is_active": True, "monthly_budget": 1000, "platforms": ["meta", "google"]},
            {"id": "a2", "name": None, "is_active": False, "monthly_budget": None},
            {"id": "a3", "name": "Tres", "is_active": True, "monthly_budget": "500"},
        ]
        fake_store.insights = [
            insight("a1", "campaign", "x", "2024-03-02", impressions=1000, clicks=20, spend=100, conversions=5),
            insight("a3", "campaign", "y", "2024-03-05", impressions=100, spend=300),
            insight("a1", "campaign", "x", "2024-02-20", spend=999),
        ]

        overview = data_loader.get_accounts_overview(today=date(2024, 3, 15))
        assert overview["period"] == {"from": "2024-03-01", "to": "2024-03-15"}

        a3, a1, a2 = overview["accounts"]
        assert (a3["id"], a3["spend_mtd"], a3["available"], a3["health_score"]) == ("a3", 300, 200.0, 35)
        assert (a1["id"], a1["spend_mtd"], a1["available"], a1["health_score"]) == ("a1", 100, 900.0, 90)
        assert a2["name"] == "(sin nombre)"
        assert a2["platforms"] == ["meta"]
        assert a2["available"] is None
        assert a2["health_score"] is None

        assert overview["totals"] == {"budget": 1500.0, "spent": 400, "available": 1100.0}

    def test_failure(self, fake_store):
        fake_store.fail = {"accounts"}
        overview = data_loader.get_accounts_overview(today=date(2024, 3, 15))
        assert overview["accounts"] == []
        assert overview["totals"]["spent"] == 0.0
        assert overview["error"]


def test_account_options(fake_store):
    fake_store.ad_accounts = [
        {"id": "act_1", "name": "Uno"},
        {"id": "act_2", "name": None, "account_num": "222"},
    ]
    fake_store.google_accounts = [{"account_id": "555", "label": "Acme Google"}]
    fake_store.fail = {"google_accounts"}

    options = data_loader.get_account_options()
    assert options["meta"] == [{"id": "act_1", "label": "Uno"}, {"id": "act_2", "label": "222"}]
    assert options["google"] == []
    assert options["error"]
