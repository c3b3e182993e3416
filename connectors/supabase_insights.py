"""
Supabase connector for the Perfo insights store.

Reads daily Meta Ads / Google Ads performance rows, campaign statuses, ad
accounts and the client registry. Queries go to the configured schema
(default "perfo") and fall back to "public" once when that fails, since
some deployments only expose the tables through the public schema.
"""

import os
from typing import Callable, Optional

from dotenv import load_dotenv
from supabase import create_client

load_dotenv()


class InsightsStoreError(Exception):
    """Raised when the insights store fails a query."""


def normalize_meta_account_id(account_id: Optional[str]) -> Optional[str]:
    """Meta ad account ids are stored with the "act_" prefix."""
    if not account_id:
        return None
    account_id = str(account_id).strip()
    if not account_id:
        return None
    if not account_id.startswith("act_"):
        account_id = f"act_{account_id}"
    return account_id


class SupabaseInsightsConnector:
    """Connector for the Supabase-hosted insights store."""

    DEFAULT_SCHEMA = "perfo"
    FALLBACK_SCHEMA = "public"

    # Row ceilings (safety bounds, not pagination)
    ACCOUNT_ROW_LIMIT = 50000
    TREE_ROW_LIMIT = 500000
    STATUS_ROW_LIMIT = 5000
    NAMES_ROW_LIMIT = 20000
    ACCOUNTS_LIMIT = 500

    INSIGHTS_COLUMNS = (
        "entity_id, entity_name, account_id, level, platform, date, "
        "spend, impressions, clicks, conversions, revenue, results_arr, raw"
    )
    META_FRONT_COLUMNS = "account_id, level, entity_id, entity_name, spend, impressions, clicks, conv, date"
    GOOGLE_FRONT_COLUMNS = "account_id, campaign_id, campaign_name, status, spend, impressions, clicks, conv, date"
    GOOGLE_AD_COLUMNS = (
        "campaign_id, campaign_name, ad_id, ad_name, status, "
        "impressions, clicks, spend, conversions, date"
    )
    CLIENT_COLUMNS = (
        "id, name, budget, meta_account_id, google_account_id, "
        "kpi1_name, kpi1_target, meta_kpi1_metric, google_kpi1_metric, "
        "kpi2_name, kpi2_target, meta_kpi2_metric, google_kpi2_metric"
    )

    def __init__(self, client=None):
        self.url = os.getenv("SUPABASE_URL")
        self.key = os.getenv("SUPABASE_KEY")
        self.schema = os.getenv("SUPABASE_SCHEMA", self.DEFAULT_SCHEMA)
        self.client = client

    def _check_credentials(self):
        """Verify all required credentials are present."""
        missing = []
        if not self.url:
            missing.append("SUPABASE_URL")
        if not self.key:
            missing.append("SUPABASE_KEY")

        if missing:
            raise ValueError(f"Missing credentials: {', '.join(missing)}")

        return True

    def connect(self):
        """Create the Supabase client on first use."""
        if self.client is None:
            self._check_credentials()
            self.client = create_client(self.url, self.key)
            print(f"[Store] Connected to Supabase (schema: {self.schema})")
        return self.client

    def _schemas(self, fallback: bool) -> list[str]:
        if not fallback or self.schema == self.FALLBACK_SCHEMA:
            return [self.schema]
        return [self.schema, self.FALLBACK_SCHEMA]

    def _execute(self, table: str, build: Callable, description: str, fallback: bool = True) -> list[dict]:
        """
        Run a query against the configured schema, then the fallback schema.

        Args:
            table: Table or view name
            build: Function receiving the table query builder and returning
                the filtered query
            description: Human-readable name used in log lines and errors

        Returns:
            List of row dicts
        """
        client = self.connect()
        last_error = None

        for schema in self._schemas(fallback):
            try:
                response = build(client.schema(schema).table(table)).execute()
                return list(response.data or [])
            except Exception as e:
                print(f"[Store] {description} failed on {schema}.{table}: {e}")
                last_error = e

        raise InsightsStoreError(f"{description} failed: {last_error}") from last_error

    # ------------------------------------------------------------------
    # Performance rows
    # ------------------------------------------------------------------

    def get_insights(
        self,
        account_id: Optional[str],
        level: Optional[str],
        date_from: str,
        date_to: str,
        platform: Optional[str] = None,
        columns: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Daily rows from the insights table.

        Args:
            account_id: Account to filter on (None = every account)
            level: "campaign", "adset" or "ad" (None = every level)
            date_from / date_to: Inclusive YYYY-MM-DD bounds
            platform: "meta" or "google"; "all"/None applies no filter
        """
        def build(q):
            q = q.select(columns or self.INSIGHTS_COLUMNS)
            if account_id:
                q = q.eq("account_id", account_id)
            if level:
                q = q.eq("level", level)
            q = q.gte("date", date_from).lte("date", date_to)
            if platform and platform != "all":
                q = q.eq("platform", platform)
            return q.limit(limit or self.ACCOUNT_ROW_LIMIT)

        return self._execute("insights", build, f"insights ({level or 'all levels'})")

    def get_meta_campaign_insights(self, account_id: str, date_from: str, date_to: str) -> list[dict]:
        """Campaign-level Meta rows from the front-end view."""
        def build(q):
            return (
                q.select(self.META_FRONT_COLUMNS)
                .eq("account_id", account_id)
                .eq("level", "campaign")
                .gte("date", date_from)
                .lte("date", date_to)
                .limit(self.TREE_ROW_LIMIT)
            )

        return self._execute("view_meta_insights_front", build, "Meta campaign insights")

    def get_google_campaign_insights(self, account_id: str, date_from: str, date_to: str) -> list[dict]:
        """Campaign-level Google Ads rows from the front-end view."""
        def build(q):
            return (
                q.select(self.GOOGLE_FRONT_COLUMNS)
                .eq("account_id", account_id)
                .gte("date", date_from)
                .lte("date", date_to)
                .limit(self.TREE_ROW_LIMIT)
            )

        return self._execute("view_google_insights_front", build, "Google campaign insights")

    def get_google_ad_rows(
        self,
        account_id: str,
        campaign_ids: list[str],
        date_from: str,
        date_to: str,
    ) -> list[dict]:
        """Ad-level Google Ads rows for the given campaigns."""
        if not campaign_ids:
            return []

        def build(q):
            return (
                q.select(self.GOOGLE_AD_COLUMNS)
                .eq("account_id", account_id)
                .gte("date", date_from)
                .lte("date", date_to)
                .in_("campaign_id", campaign_ids)
                .limit(self.TREE_ROW_LIMIT)
            )

        return self._execute("google_ads", build, "Google ad rows")

    def get_campaign_statuses(self, campaign_ids: list[str]) -> dict[str, str]:
        """Map campaign id -> raw platform status."""
        if not campaign_ids:
            return {}

        def build(q):
            return q.select("id, status").in_("id", campaign_ids).limit(self.STATUS_ROW_LIMIT)

        rows = self._execute("campaigns", build, "Campaign statuses")
        statuses = {}
        for row in rows:
            cid = str(row.get("id") or "").strip()
            if cid:
                statuses[cid] = row.get("status") or ""
        return statuses

    def get_entity_names(self, table: str, entity_ids: list[str]) -> dict[str, str]:
        """Map id -> name from the "adsets" or "ads" table."""
        if not entity_ids:
            return {}

        def build(q):
            return q.select("id, name").in_("id", entity_ids).limit(self.NAMES_ROW_LIMIT)

        rows = self._execute(table, build, f"{table} names")
        return {str(row["id"]): row.get("name") or "" for row in rows if row.get("id")}

    def get_today_campaigns(self, account_id: str, today: str) -> list[dict]:
        """
        Today's rows per campaign.

        Reads the public "insights_today_campaign" view; when that view is not
        available, falls back to the Meta front view filtered on today's date
        (those rows carry no is_active flag and may repeat a campaign).
        """
        def build_view(q):
            return (
                q.select("campaign_id, campaign_name, platform, impressions, is_active")
                .eq("account_id", account_id)
            )

        def build_fallback(q):
            return (
                q.select("campaign_id, campaign_name, impressions, clicks, spend, date")
                .eq("account_id", account_id)
                .eq("date", today)
                .limit(self.TREE_ROW_LIMIT)
            )

        try:
            return self._execute("insights_today_campaign", build_view, "Today campaigns", fallback=False)
        except InsightsStoreError as e:
            print(f"[Store] Today view unavailable, using view_meta_insights_front: {e}")
            return self._execute("view_meta_insights_front", build_fallback, "Meta insights for today")

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def list_ad_accounts(self) -> list[dict]:
        """Meta ad accounts."""
        return self._execute(
            "ad_accounts",
            lambda q: q.select("id, account_num, name"),
            "Meta ad accounts",
        )

    def list_google_accounts(self) -> list[dict]:
        """
        Google Ads accounts, derived from named campaigns.

        Returns:
            One {"account_id", "label"} per account; the first campaign name
            seen is used as the label.
        """
        rows = self._execute(
            "google_campaigns",
            lambda q: q.select("account_id, name").not_.is_("name", "null"),
            "Google accounts",
        )

        accounts = {}
        for row in rows:
            account_id = str(row.get("account_id") or "").strip()
            if not account_id or account_id in accounts:
                continue
            accounts[account_id] = {"account_id": account_id, "label": row.get("name") or account_id}
        return list(accounts.values())

    def list_accounts(self) -> list[dict]:
        """Managed accounts with their monthly budgets."""
        return self._execute(
            "accounts",
            lambda q: q.select("id, name, is_active, monthly_budget, platforms").limit(self.ACCOUNTS_LIMIT),
            "Accounts",
        )

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def list_clients(self) -> list[dict]:
        return self._execute(
            "clients",
            lambda q: q.select(self.CLIENT_COLUMNS).order("name"),
            "Clients",
        )

    def get_client(self, client_id: str) -> Optional[dict]:
        rows = self._execute(
            "clients",
            lambda q: q.select(self.CLIENT_COLUMNS).eq("id", client_id).limit(1),
            "Client",
        )
        return rows[0] if rows else None

    def create_client(self, payload: dict) -> dict:
        """Insert a client and return the stored row."""
        rows = self._execute(
            "clients",
            lambda q: q.insert(payload),
            "Create client",
            fallback=False,
        )
        if not rows:
            raise InsightsStoreError("Create client returned no row")
        return rows[0]

    def delete_client(self, client_id: str) -> bool:
        rows = self._execute(
            "clients",
            lambda q: q.delete().eq("id", client_id),
            "Delete client",
            fallback=False,
        )
        return len(rows) > 0


def main():
    """Test the connector."""
    connector = SupabaseInsightsConnector()

    try:
        accounts = connector.list_ad_accounts()
        print(f"Found {len(accounts)} Meta ad accounts")
        for acc in accounts[:10]:
            print(f"  {acc.get('account_num')}: {acc.get('name')}")
    except ValueError as e:
        print(f"Configuration error: {e}")
        print("\nPlease set SUPABASE_URL and SUPABASE_KEY in your .env file.")
    except InsightsStoreError as e:
        print(f"Error: {e}")


if __name__ == "__main__":
    main()
