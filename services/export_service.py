"""
Lead export service.

Generates CSV or JSON exports of lead details. Export never mutates leads.

Security:
- CSV Injection Prevention: Sanitizes all text fields to prevent formula execution
- Security Logging: Logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass
from io import StringIO
from typing import Any, Dict, List, Sequence

from domain.errors import ValidationError
from domain.lead import Lead
from domain.time import to_iso_utc

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")

_DANGEROUS_LEADING_CHARS = {'=', '+', '-', '@', '\t', '\r'}


def sanitize_csv_field(value: str | None, field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    Args:
        value: Field value to sanitize
        field_name: Name of the field being sanitized (for logging)

    Returns:
        Sanitized string safe for CSV export

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "customer_name")
        # Returns "HYPERLINK(...)" and logs warning about stripped "=" character

        sanitize_csv_field("+91 98450 12345", "customer_phone")
        # Returns "91 98450 12345"
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text

    stripped_chars = []
    while text and text[0] in _DANGEROUS_LEADING_CHARS:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention"
            }
        )

    return text


@dataclass(frozen=True, slots=True)
class ExportFile:
    filename: str
    media_type: str
    content: str


_COLUMNS = [
    ("Lead ID", "lead_id"),
    ("Customer Name", "customer_name"),
    ("Phone", "customer_phone"),
    ("Email", "customer_email"),
    ("Address", "address"),
    ("City", "city"),
    ("Service", "service"),
    ("Sub-Service", "sub_service"),
    ("Description", "description"),
    ("Status", "status"),
    ("Priority", "priority"),
    ("Assigned Vendors", "assigned_vendors"),
    ("Taken By", "taken_by"),
    ("Created At", "created_at"),
    ("Updated At", "updated_at"),
]

# Values the engine generates itself; never user-supplied text
_TRUSTED_FIELDS = {"lead_id", "status", "priority", "created_at", "updated_at"}


def lead_export_record(lead: Lead) -> Dict[str, Any]:
    return {
        "lead_id": lead.lead_id,
        "customer_name": lead.customer_name,
        "customer_phone": lead.customer_phone,
        "customer_email": lead.customer_email,
        "address": lead.address,
        "city": lead.city,
        "service": lead.service,
        "sub_service": lead.sub_service,
        "description": lead.description,
        "status": lead.status.value,
        "priority": lead.priority.value,
        "assigned_vendors": list(lead.assigned_vendors),
        "taken_by": lead.taken_by,
        "created_at": to_iso_utc(lead.created_at, name="created_at"),
        "updated_at": to_iso_utc(lead.updated_at, name="updated_at") if lead.updated_at else None,
    }


def generate_csv(leads: Sequence[Lead]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow([header for header, _ in _COLUMNS])

    for lead in leads:
        record = lead_export_record(lead)
        row: List[str] = []
        for _, key in _COLUMNS:
            value = record[key]
            if isinstance(value, list):
                value = "; ".join(value)
            if key in _TRUSTED_FIELDS:
                row.append("" if value is None else str(value))
            else:
                row.append(sanitize_csv_field(value, key))
        writer.writerow(row)

    return output.getvalue()


def generate_json(leads: Sequence[Lead]) -> str:
    return json.dumps([lead_export_record(lead) for lead in leads], indent=2)


def export_leads(leads: Sequence[Lead], fmt: str, *, stamp: str = "export") -> ExportFile:
    """
    Render leads in the requested format.

    Raises:
        ValidationError: unsupported format
    """
    fmt = (fmt or "").lower()
    if fmt == "csv":
        return ExportFile(filename=f"leads-{stamp}.csv", media_type="text/csv", content=generate_csv(leads))
    if fmt == "json":
        return ExportFile(
            filename=f"leads-{stamp}.json", media_type="application/json", content=generate_json(leads)
        )
    raise ValidationError(f"format must be one of {', '.join(EXPORT_FORMATS)}", field="format")


__all__ = [
    "EXPORT_FORMATS",
    "ExportFile",
    "export_leads",
    "generate_csv",
    "generate_json",
    "lead_export_record",
    "sanitize_csv_field",
]
