"""Bulk-load the ``colleges`` table from a CSV or JSON file.

Runs outside the Streamlit app with the service role key, so it needs
``SUPABASE_URL`` and ``SUPABASE_SERVICE_ROLE_KEY`` in the environment.

    python scripts/import_colleges.py colleges.csv
    python scripts/import_colleges.py colleges.json --batch-size 500
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd
from postgrest.exceptions import APIError

from theunoia import db_tables
from theunoia.utils.supa import service_client

TABLE = db_tables.COLLEGES
BATCH_SIZE = 1000
DEFAULT_COUNTRY = "India"
# source headers seen in the wild -> column
COLUMN_ALIASES = {
    "name": "name",
    "state": "state",
    "city": "city",
    "country": "country",
    "is_active": "is_active",
    "isactive": "is_active",
    "active": "is_active",
}


def read_frame(path: Path) -> pd.DataFrame:
    if path.suffix.lower() == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            payload = payload.get("colleges", [payload])
        return pd.DataFrame(payload)
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def _is_active(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value or "").strip()
    return text.upper() == "TRUE" if text else True


def normalize(frame: pd.DataFrame) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    """Clean rows, drop invalid ones and de-duplicate by case-folded name."""
    frame = frame.rename(columns=lambda c: COLUMN_ALIASES.get(str(c).strip().lower(), str(c).strip().lower()))
    stats = {"received": len(frame), "invalid": 0, "duplicates": 0}
    seen = set()
    rows: List[Dict[str, Any]] = []
    for record in frame.to_dict(orient="records"):
        name = str(record.get("name") or "").strip()
        state = str(record.get("state") or "").strip()
        city = str(record.get("city") or "").strip()
        if not name or name.lower() == "name":
            continue
        if not state or not city:
            stats["invalid"] += 1
            continue
        key = " ".join(name.lower().split())
        if key in seen:
            stats["duplicates"] += 1
            continue
        seen.add(key)
        rows.append(
            {
                "name": name,
                "state": state,
                "city": city,
                "country": str(record.get("country") or "").strip() or DEFAULT_COUNTRY,
                "is_active": _is_active(record.get("is_active")),
            }
        )
    return rows, stats


def import_rows(client, rows: List[Dict[str, Any]], batch_size: int = BATCH_SIZE) -> Dict[str, Any]:
    """Upsert in batches; a failed batch is retried row by row."""
    inserted = 0
    failed = 0
    errors: List[str] = []
    for start in range(0, len(rows), batch_size):
        batch = rows[start : start + batch_size]
        number = start // batch_size + 1
        try:
            client.table(TABLE).upsert(batch, on_conflict="name", ignore_duplicates=True).execute()
            inserted += len(batch)
            continue
        except APIError as exc:
            errors.append(f"Batch {number}: {getattr(exc, 'message', None) or exc}")
        for row in batch:
            try:
                client.table(TABLE).upsert([row], on_conflict="name", ignore_duplicates=True).execute()
                inserted += 1
            except APIError as exc:
                failed += 1
                print(f"[import_colleges] row {row['name']!r} failed: {exc}")
    return {
        "success": failed == 0,
        "totalInserted": inserted,
        "totalReceived": len(rows),
        "failed": failed,
        "errors": errors or None,
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import colleges into Supabase")
    parser.add_argument("path", help="CSV (Name, State, CITY, Country, is_active) or JSON file")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    parser.add_argument("--dry-run", action="store_true", help="Parse and report without writing")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    rows, stats = normalize(read_frame(Path(args.path)))
    print(
        f"Parsed {stats['received']} rows ({len(rows)} unique, "
        f"{stats['invalid']} invalid, {stats['duplicates']} duplicates)"
    )
    if args.dry_run or not rows:
        return 0 if rows else 1
    result = import_rows(service_client(), rows, args.batch_size)
    print(json.dumps(result, indent=2))
    return 0 if result["success"] else 1


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
