import pytest

from services import data_loader, goal_store, preferences
from supabase_insights import InsightsStoreError


class FakeStore:
    """In-memory stand-in for SupabaseInsightsConnector."""

    TREE_ROW_LIMIT = 500000

    def __init__(self):
        self.insights = []
        self.meta_front = []
        self.google_front = []
        self.google_ads = []
        self.statuses = {}
        self.names = {"adsets": {}, "ads": {}}
        self.today = []
        self.accounts = []
        self.ad_accounts = []
        self.google_accounts = []
        self.clients = {}
        self.fail = set()
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if name in self.fail or "*" in self.fail:
            raise InsightsStoreError(f"{name} failed: boom")

    @staticmethod
    def _in_range(row, date_from, date_to):
        return date_from <= row.get("date", "") <= date_to

    def get_insights(self, account_id, level, date_from, date_to, platform=None, columns=None, limit=None):
        self._check("insights")
        return [
            r for r in self.insights
            if (account_id is None or r.get("account_id") == account_id)
            and (level is None or r.get("level") == level)
            and (not platform or platform == "all" or r.get("platform") == platform)
            and self._in_range(r, date_from, date_to)
        ]

    def get_meta_campaign_insights(self, account_id, date_from, date_to):
        self._check("meta_front")
        return [
            r for r in self.meta_front
            if r.get("account_id") == account_id and self._in_range(r, date_from, date_to)
        ]

    def get_google_campaign_insights(self, account_id, date_from, date_to):
        self._check("google_front")
        return [
            r for r in self.google_front
            if r.get("account_id") == account_id and self._in_range(r, date_from, date_to)
        ]

    def get_google_ad_rows(self, account_id, campaign_ids, date_from, date_to):
        self._check("google_ads")
        return [
            r for r in self.google_ads
            if r.get("account_id") == account_id
            and r.get("campaign_id") in campaign_ids
            and self._in_range(r, date_from, date_to)
        ]

    def get_campaign_statuses(self, campaign_ids):
        self._check("campaigns")
        return {cid: s for cid, s in self.statuses.items() if cid in campaign_ids}

    def get_entity_names(self, table, entity_ids):
        self._check(table)
        return {i: n for i, n in self.names[table].items() if i in entity_ids}

    def get_today_campaigns(self, account_id, today):
        self._check("today")
        return [r for r in self.today if r.get("account_id", account_id) == account_id]

    def list_accounts(self):
        self._check("accounts")
        return list(self.accounts)

    def list_ad_accounts(self):
        self._check("ad_accounts")
        return list(self.ad_accounts)

    def list_google_accounts(self):
        self._check("google_accounts")
        return list(self.google_accounts)

    def list_clients(self):
        self._check("clients")
        return sorted(self.clients.values(), key=lambda c: c.get("name") or "")

    def get_client(self, client_id):
        self._check("clients")
        return self.clients.get(client_id)

    def create_client(self, payload):
        self._check("clients")
        client_id = f"client-{len(self.clients) + 1}"
        row = {"id": client_id, **payload}
        self.clients[client_id] = row
        return row

    def delete_client(self, client_id):
        self._check("clients")
        return self.clients.pop(client_id, None) is not None


@pytest.fixture(autouse=True)
def tmp_stores(tmp_path, monkeypatch):
    """Point the JSON stores at a temporary directory."""
    monkeypatch.setattr(goal_store, "GOALS_FILE", tmp_path / "goals.json")
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", tmp_path / "preferences.json")
    return tmp_path


@pytest.fixture
def fake_store():
    store = FakeStore()
    data_loader.set_store(store)
    yield store
    data_loader.set_store(None)
