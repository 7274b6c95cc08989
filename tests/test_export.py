"""
Tests for `services/export_service.py`.

Covers:
- Leading formula characters are stripped from user-supplied text.
- CSV carries one header row plus one row per lead, lists joined with "; ".
- JSON is a list of lead records with ISO UTC timestamps.
- Unsupported formats are a ValidationError.
"""

from __future__ import annotations

import csv
import json
from io import StringIO

import pytest

from domain.errors import ValidationError
from services.export_service import export_leads, generate_csv, generate_json, sanitize_csv_field
from tests.fakes import make_lead


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("=HYPERLINK(\"http://x\")", "HYPERLINK(\"http://x\")"),
        ("+91 98450 12345", "91 98450 12345"),
        ("-@=cmd", "cmd"),
        ("  plain text  ", "plain text"),
        (None, ""),
        ("", ""),
    ],
)
def test_sanitize_csv_field(raw, expected) -> None:
    assert sanitize_csv_field(raw, "customer_name") == expected


def test_generate_csv_rows() -> None:
    """Verify header, sanitized text and joined vendor lists."""

    leads = [
        make_lead("l-1", customer_name="=SUM(A1:A2)", assigned_vendors=("v-1", "v-2")),
        make_lead("l-2", "Electrical"),
    ]

    rows = list(csv.reader(StringIO(generate_csv(leads))))

    assert rows[0][:3] == ["Lead ID", "Customer Name", "Phone"]
    assert len(rows) == 3
    header = rows[0]
    first = dict(zip(header, rows[1]))
    assert first["Lead ID"] == "l-1"
    assert first["Customer Name"] == "SUM(A1:A2)"
    assert first["Assigned Vendors"] == "v-1; v-2"
    assert first["City"] == "Pune"
    assert first["Created At"] == "2025-01-01T12:00:00+00:00"
    assert dict(zip(header, rows[2]))["Service"] == "Electrical"


def test_generate_json_records() -> None:
    data = json.loads(generate_json([make_lead("l-1", assigned_vendors=("v-9",))]))
    assert data[0]["lead_id"] == "l-1"
    assert data[0]["assigned_vendors"] == ["v-9"]
    assert data[0]["status"] == "pending"
    assert data[0]["updated_at"] is None


def test_export_leads_filenames_and_formats() -> None:
    csv_file = export_leads([make_lead("l-1")], "CSV", stamp="20250101T120000Z")
    assert csv_file.filename == "leads-20250101T120000Z.csv"
    assert csv_file.media_type == "text/csv"

    with pytest.raises(ValidationError):
        export_leads([], "xml")
