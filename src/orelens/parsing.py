from __future__ import annotations

from datetime import date, datetime


def parse_number(value: str | int | float | None) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip()
    if s == "" or s.lower() in {"na", "n/a", "null", "none", "-"}:
        return None
    # Example: "1,234.5"
    s = s.replace(",", "").replace(" ", "")
    try:
        return float(s)
    except ValueError:
        return None


def parse_date(value: str | None) -> date | None:
    if not value:
        return None
    s = value.strip()

    # Examples:
    # - "2024-02-28"           (EDGAR full-text search `file_date`)
    # - "20240228"             (archive index headers)
    # - "2024-02-28T00:00:00Z"
    # - "02/28/2024"
    for fmt in (
        "%Y-%m-%d",
        "%Y%m%d",
        "%Y-%m-%dT%H:%M:%SZ",
        "%Y-%m-%dT%H:%M:%S",
        "%m/%d/%Y",
    ):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None
