import importlib.util
from pathlib import Path

import pandas as pd
import pytest

from conftest import FakeClient, api_error

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "import_colleges.py"


@pytest.fixture(scope="module")
def importer():
    spec = importlib.util.spec_from_file_location("import_colleges", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_normalize_cleans_and_dedupes(importer):
    frame = pd.DataFrame(
        [
            {"Name": "Name", "State": "State", "CITY": "City", "isActive": ""},
            {"Name": "IIT Bombay", "State": "Maharashtra", "CITY": "Mumbai", "isActive": "TRUE"},
            {"Name": "iit  bombay", "State": "Maharashtra", "CITY": "Mumbai", "isActive": "TRUE"},
            {"Name": "Goa College of Art", "State": "Goa", "CITY": "", "isActive": ""},
            {"Name": "NIFT Delhi", "State": "Delhi", "CITY": "New Delhi", "isActive": "false"},
        ]
    )

    rows, stats = importer.normalize(frame)

    assert stats == {"received": 5, "invalid": 1, "duplicates": 1}
    assert [r["name"] for r in rows] == ["IIT Bombay", "NIFT Delhi"]
    assert rows[0]["country"] == "India"
    assert rows[0]["is_active"] is True
    assert rows[1]["is_active"] is False


def test_read_frame_json(importer, tmp_path):
    path = tmp_path / "colleges.json"
    path.write_text('{"colleges": [{"name": "BITS Pilani", "state": "Rajasthan", "city": "Pilani"}]}', "utf-8")
    rows, _ = importer.normalize(importer.read_frame(path))
    assert rows == [
        {"name": "BITS Pilani", "state": "Rajasthan", "city": "Pilani", "country": "India", "is_active": True}
    ]


def _rows(count):
    return [{"name": f"College {i}", "state": "Kerala", "city": "Kochi"} for i in range(count)]


def test_import_rows_batches(importer):
    client = FakeClient()
    result = importer.import_rows(client, _rows(5), batch_size=2)
    upserts = client.calls_to("colleges", "upsert")
    assert [len(q.payload()) for q in upserts] == [2, 2, 1]
    assert upserts[0].op("upsert")[1] == {"on_conflict": "name", "ignore_duplicates": True}
    assert result == {"success": True, "totalInserted": 5, "totalReceived": 5, "failed": 0, "errors": None}


def test_import_rows_falls_back_to_single_rows(importer):
    client = FakeClient()
    client.queue("colleges", api_error("batch too large"), [], api_error("bad row"))
    result = importer.import_rows(client, _rows(2), batch_size=2)
    assert result["totalInserted"] == 1
    assert result["failed"] == 1
    assert result["success"] is False
    assert result["errors"] == ["Batch 1: batch too large"]
