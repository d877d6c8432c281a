"""DuckDB warehouse for ad-hoc analysis of the event log.

Day-files stay the source of truth; the warehouse is a disposable copy that
can be rebuilt at any time. Loading is idempotent: each record gets a content
key (MD5 of its canonical JSON plus its occurrence number among identical
records in the batch), and records whose key is already present are skipped.
"""

import hashlib
import json
from datetime import date
from pathlib import Path

import duckdb

from variantlab.collector.sink import EventSource

SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    event_key        VARCHAR PRIMARY KEY,
    event            VARCHAR NOT NULL,
    entity_id        VARCHAR NOT NULL,
    slide_index      INTEGER,
    url              VARCHAR,
    interaction_type VARCHAR,
    data             VARCHAR,
    ts               BIGINT NOT NULL
)
"""


def get_connection(path: str = ":memory:") -> duckdb.DuckDBPyConnection:
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(path)


def init_db(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(SCHEMA)


def _event_keys(records: list[dict]) -> list[str]:
    seen: dict[str, int] = {}
    keys = []
    for record in records:
        canonical = json.dumps(record, sort_keys=True)
        n = seen.get(canonical, 0)
        seen[canonical] = n + 1
        keys.append(hashlib.md5(f"{canonical}#{n}".encode()).hexdigest())
    return keys


def insert_events(conn: duckdb.DuckDBPyConnection, records: list[dict]) -> tuple[int, int]:
    """Insert day-file records. Returns (inserted, duplicates_skipped)."""
    if not records:
        return 0, 0
    rows = [
        (
            key,
            r["event"],
            r.get("entity_id", r.get("carousel_id")),
            r.get("slide_index"),
            r.get("url"),
            r.get("interaction_type"),
            json.dumps(r["data"]) if "data" in r else None,
            r["timestamp"],
        )
        for key, r in zip(_event_keys(records), records)
    ]
    before = conn.execute("SELECT count(*) FROM events").fetchone()[0]
    conn.executemany(
        "INSERT OR IGNORE INTO events VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        rows,
    )
    after = conn.execute("SELECT count(*) FROM events").fetchone()[0]
    inserted = after - before
    return inserted, len(records) - inserted


def load_store(
    conn: duckdb.DuckDBPyConnection,
    store: EventSource,
    first_day: date,
    last_day: date,
) -> tuple[int, int]:
    """Copy every event in [first_day, last_day] from the store."""
    records = [e.to_record() for e in store.iter_events(first_day, last_day)]
    return insert_events(conn, records)


def entity_summary(
    conn: duckdb.DuckDBPyConnection,
    entity_id: str,
    start_ts: int | None = None,
    end_ts: int | None = None,
) -> dict:
    where = ["entity_id = ?"]
    params: list = [entity_id]
    if start_ts is not None:
        where.append("ts >= ?")
        params.append(start_ts)
    if end_ts is not None:
        where.append("ts <= ?")
        params.append(end_ts)

    impressions, clicks, interactions = conn.execute(
        f"""
        SELECT
            count(*) FILTER (WHERE event = 'impression'),
            count(*) FILTER (WHERE event = 'click'),
            count(*) FILTER (WHERE event = 'interaction')
        FROM events
        WHERE {' AND '.join(where)}
        """,
        params,
    ).fetchone()
    return {
        "entity_id": entity_id,
        "impressions": impressions,
        "clicks": clicks,
        "interactions": interactions,
        "ctr": round(clicks / impressions, 4) if impressions else 0.0,
    }
