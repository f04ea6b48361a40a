from __future__ import annotations

import sqlite3

from models.lead_record import HISTORY_SLOTS


def _history_column_ddl() -> str:
    cols = []
    for i in range(1, HISTORY_SLOTS + 1):
        cols.extend([
            f"  company_{i}_name TEXT,\n",
            f"  company_{i}_position TEXT,\n",
            f"  company_{i}_start_date TEXT,\n",
            f"  company_{i}_end_date TEXT,\n",
            f"  company_{i}_is_current INTEGER NOT NULL DEFAULT 0,\n",
            f"  company_{i}_linkedin_id TEXT,\n",
            f"  company_{i}_duration_months INTEGER,\n",
        ])
    return "".join(cols)


def bootstrap(conn: sqlite3.Connection) -> None:
    """Create pipeline tables, indexes, and views (idempotent)."""
    cur = conn.cursor()

    # Scraper export, consumed by the ingestion filter
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS posts_raw (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  dataset_id TEXT NOT NULL,\n"
            "  urn TEXT,\n"
            "  url TEXT,\n"
            "  text TEXT,\n"
            "  title TEXT,\n"
            "  posted_at_iso TEXT,\n"
            "  posted_at_timestamp INTEGER,\n"
            "  author_type TEXT,\n"
            "  author_profile_url TEXT,\n"
            "  author_profile_id TEXT,\n"
            "  author_name TEXT,\n"
            "  author_headline TEXT,\n"
            "  is_repost INTEGER NOT NULL DEFAULT 0,\n"
            "  raw_data_json TEXT,\n"
            "  processed INTEGER,\n"
            "  created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_posts_raw_dataset_processed ON posts_raw(dataset_id, processed);")

    # Pipeline unit of work
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS posts (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  dataset_id TEXT NOT NULL,\n"
            "  urn TEXT,\n"
            "  url TEXT NOT NULL UNIQUE,\n"
            "  text TEXT NOT NULL,\n"
            "  title TEXT,\n"
            "  posted_at_iso TEXT,\n"
            "  posted_at_timestamp INTEGER,\n"
            "  author_type TEXT,\n"
            "  author_profile_url TEXT,\n"
            "  author_profile_id TEXT NOT NULL,\n"
            "  author_name TEXT NOT NULL,\n"
            "  author_headline TEXT,\n"
            "  raw_data_json TEXT,\n"
            "  status TEXT NOT NULL,\n"
            "  gate1_verdict TEXT,\n"
            "  gate1_roles TEXT,\n"
            "  gate1_response_json TEXT,\n"
            "  gate2_verdict TEXT,\n"
            "  gate2_language TEXT,\n"
            "  gate2_location TEXT,\n"
            "  gate2_reason TEXT,\n"
            "  gate2_response_json TEXT,\n"
            "  gate3_category TEXT,\n"
            "  gate3_selected_roles_json TEXT,\n"
            "  gate3_justification TEXT,\n"
            "  gate3_response_json TEXT,\n"
            "  enrichment_company TEXT,\n"
            "  enrichment_position TEXT,\n"
            "  enrichment_company_id TEXT,\n"
            "  enrichment_payload_json TEXT,\n"
            "  enrichment_account_id TEXT,\n"
            "  enriched_at TEXT,\n"
            "  lead_id INTEGER,\n"
            "  retry_count INTEGER NOT NULL DEFAULT 0,\n"
            "  last_error TEXT,\n"
            "  created_at TEXT NOT NULL,\n"
            "  last_updated_at TEXT NOT NULL,\n"
            "  last_retry_at TEXT,\n"
            "  FOREIGN KEY(lead_id) REFERENCES leads(id) ON DELETE SET NULL\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_posts_status_dataset ON posts(status, dataset_id);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_posts_urn ON posts(urn);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_posts_author_profile_id ON posts(author_profile_id);")

    # Materialized leads, one per author
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS leads (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  author_profile_id TEXT NOT NULL UNIQUE,\n"
            "  author_name TEXT NOT NULL,\n"
            "  first_name TEXT,\n"
            "  last_name TEXT,\n"
            "  author_headline TEXT,\n"
            "  author_profile_url TEXT,\n"
            "  dataset_id TEXT,\n"
            "  latest_post_urn TEXT,\n"
            "  latest_post_url TEXT,\n"
            "  latest_post_date TEXT,\n"
            "  text TEXT,\n"
            "  title TEXT,\n"
            "  posted_at_iso TEXT,\n"
            "  posted_at_timestamp INTEGER,\n"
            "  gate2_location TEXT,\n"
            "  gate3_category TEXT,\n"
            "  gate3_selected_roles_json TEXT,\n"
            "  gate3_justification TEXT,\n"
            "  company_name TEXT,\n"
            "  company_position TEXT,\n"
            "  company_linkedin_id TEXT,\n"
            "  phone_number TEXT,\n"
            + _history_column_ddl() +
            "  is_client_lead INTEGER NOT NULL DEFAULT 0,\n"
            "  matched_client_id INTEGER,\n"
            "  matched_client_name TEXT,\n"
            "  has_previous_client_company INTEGER NOT NULL DEFAULT 0,\n"
            "  previous_client_companies_json TEXT,\n"
            "  client_history_alert TEXT,\n"
            "  processing_status TEXT NOT NULL DEFAULT 'completed',\n"
            "  created_at TEXT NOT NULL\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_leads_company_name ON leads(company_name);")

    # Client directory (read-only for the pipeline)
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS clients (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  company_name TEXT NOT NULL,\n"
            "  company_linkedin_id TEXT,\n"
            "  tracking_enabled INTEGER NOT NULL DEFAULT 1\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_clients_linkedin_id ON clients(company_linkedin_id);")

    # Rotating enrichment credentials
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS enrichment_accounts (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  account_id TEXT NOT NULL UNIQUE,\n"
            "  label TEXT,\n"
            "  is_active INTEGER NOT NULL DEFAULT 1,\n"
            "  usage_count INTEGER NOT NULL DEFAULT 0,\n"
            "  last_used_at TEXT\n"
            ")"
        )
    )

    # Counts per status and dataset for diagnostics
    cur.execute("DROP VIEW IF EXISTS v_post_status_counts;")
    cur.execute(
        (
            "CREATE VIEW v_post_status_counts AS\n"
            "SELECT dataset_id, status, COUNT(*) AS n, MIN(last_updated_at) AS oldest_update\n"
            "FROM posts GROUP BY dataset_id, status;"
        )
    )

    conn.commit()
