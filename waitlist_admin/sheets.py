"""Google Sheets readers for the tenant directory, unit dashboard and property list.

Directory and dashboard data come from the public gviz endpoint, which answers
with JSON wrapped in a JavaScript callback::

    /*O_o*/
    google.visualization.Query.setResponse({...});

Columns are read by fixed index; the layouts are owned by the leasing team's
sheets and documented next to each reader.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from .config import settings

logger = logging.getLogger(__name__)

_GVIZ_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq"
_VALUES_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{range}"

_PREFIX_RE = re.compile(r"^[^(]*\(")
_SUFFIX_RE = re.compile(r"\);?\s*$")
_GVIZ_DATE_RE = re.compile(r"Date\((\d+),(\d+),(\d+)")
_SLASH_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_UNIT_RE = re.compile(r"Unit:\s*(\S+)", re.IGNORECASE)
_DIGITS_RE = re.compile(r"(\d+)")


class SheetsError(RuntimeError):
    """Spreadsheet could not be fetched or parsed."""


# Sheet property codes -> the nicknames used everywhere else.
PROPERTY_CODE_NAMES: dict[str, str] = {
    "Broadway": "Broadway",
    "Countryside_T": "Countryside T",
    "Countryside_C": "Countryside C",
    "Fullerton": "Fullerton",
    "Green_Bay_246": "Green Bay 246",
    "Green_Bay_440": "Green Bay 440",
    "Green_Bay_546": "Green Bay 546",
    "Greenleaf": "Greenleaf",
    "Kedzie": "Kedzie",
    "Kennedy": "Kennedy",
    "Liberty": "Liberty",
    "N_Clark": "North Clark",
    "Park": "Park",
    "Rogers": "Rogers",
    "Sheffield": "Sheffield",
    "Talman": "Talman",
    "Warren": "Warren",
    "W_Chicago": "W. Chicago",
    "W_Montrose": "W. Montrose",
    "Elston": "Elston",
}


@dataclass(frozen=True)
class DirectoryEntry:
    tenantCode: str
    residentName: str
    unitNumber: str | None = None
    property: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class SheetUnit:
    property: str
    unit_number: str
    unit_type: str
    bedrooms: int | float
    bathrooms: int | float
    sq_footage: int | float
    available_date: str | None
    rent_price: float
    status: str
    address: str
    unique_id: str


@dataclass(frozen=True)
class Property:
    fullName: str
    nickname: str
    shortCode: str
    isActive: bool = True


FALLBACK_PROPERTIES: tuple[Property, ...] = (
    Property("HIGHPOINT Countryside Residences", "Countryside C", "CC"),
    Property("HIGHPOINT Countryside Townhomes", "Countryside T", "CT"),
    Property("HIGHPOINT Avondale", "Elston", "EL"),
    Property("HIGHPOINT Jefferson Park", "Kennedy", "KE"),
    Property("HIGHPOINT Lincoln Park on Clark", "North Clark", "NC"),
    Property("HIGHPOINT Clarendon Hills", "Park", "PK"),
    Property("HIGHPOINT Downers Grove on Rogers", "Rogers", "RO"),
    Property("HIGHPOINT Wicker Park", "Talman", "TA"),
    Property("HIGHPOINT Highwood Station 246", "Green Bay 246", "GB246"),
    Property("HIGHPOINT Highwood Station 440", "Green Bay 440", "GB440"),
    Property("HIGHPOINT Highwood Station 546", "Green Bay 546", "GB546"),
    Property("HIGHPOINT Wilmette", "Greenleaf", "GL"),
    Property("HIGHPOINT Barrington", "Liberty", "LI"),
    Property("HIGHPOINT Buena Park", "Broadway", "BR"),
    Property("HIGHPOINT Lincoln Park on Fullerton", "Fullerton", "FU"),
    Property("HIGHPOINT Albany Park on Kedzie", "Kedzie", "KD"),
    Property("HIGHPOINT Lakeview on Sheffield", "Sheffield", "SH"),
    Property("HIGHPOINT West Loop", "Warren", "WA"),
    Property("HIGHPOINT West Town", "W. Chicago", "WC"),
    Property("HIGHPOINT Albany Park on Montrose", "W. Montrose", "WM"),
)


# ---- gviz plumbing ----
def parse_gviz_response(text: str) -> dict[str, Any]:
    """Strip the callback wrapper and return the ``table`` object."""
    body = _SUFFIX_RE.sub("", _PREFIX_RE.sub("", text.strip(), count=1), count=1)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise SheetsError(f"Unparseable gviz response: {e}") from e
    table = data.get("table") if isinstance(data, dict) else None
    if not isinstance(table, dict):
        raise SheetsError("gviz response has no table")
    return table


def fetch_gviz_table(sheet_id: str, sheet: str, *, client: httpx.Client | None = None) -> dict[str, Any]:
    url = _GVIZ_URL.format(sheet_id=sheet_id)
    params = {"tqx": "out:json", "sheet": sheet}
    try:
        if client is not None:
            resp = client.get(url, params=params)
        else:
            with httpx.Client(timeout=settings.sheets_timeout_s, follow_redirects=True) as c:
                resp = c.get(url, params=params)
    except httpx.HTTPError as e:
        raise SheetsError(f"Failed to fetch sheet {sheet!r}: {type(e).__name__}: {e}") from e
    if resp.status_code != 200:
        raise SheetsError(f"Failed to fetch sheet {sheet!r}: {resp.status_code}")
    return parse_gviz_response(resp.text)


def _cell(cells: list[Any], idx: int) -> dict[str, Any]:
    if idx >= len(cells):
        return {}
    c = cells[idx]
    return c if isinstance(c, dict) else {}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _cell_text(cells: list[Any], idx: int, *, formatted_fallback: bool = False) -> str:
    c = _cell(cells, idx)
    s = _text(c.get("v"))
    if not s and formatted_fallback:
        s = _text(c.get("f"))
    return s


def _number(value: Any) -> int | float:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value) if isinstance(value, float) and value.is_integer() else value
    return 0


# ---- Directory sheet ----
def title_case(name: str) -> str:
    """``"WEST MONTROSE"`` -> ``"West Montrose"``."""
    return " ".join(w[:1].upper() + w[1:] for w in name.lower().split(" "))


def parse_directory(table: dict[str, Any]) -> list[DirectoryEntry]:
    """Directory layout: B unit number, C tenant code, D resident name, R property.

    gviz already drops the header row. Rows missing a code or a name are skipped.
    """
    entries: list[DirectoryEntry] = []
    for row in table.get("rows") or []:
        cells = (row or {}).get("c")
        if not cells:
            continue
        unit_number = _cell_text(cells, 1, formatted_fallback=True)
        tenant_code = _cell_text(cells, 2)
        resident_name = _cell_text(cells, 3)
        property_raw = _cell_text(cells, 17)
        if not tenant_code or not resident_name:
            continue
        entries.append(
            DirectoryEntry(
                tenantCode=tenant_code,
                residentName=resident_name,
                unitNumber=unit_number or None,
                property=title_case(property_raw) if property_raw else None,
            )
        )
    return entries


def fetch_directory(*, client: httpx.Client | None = None) -> list[DirectoryEntry]:
    table = fetch_gviz_table(settings.directory_spreadsheet_id, "Directory", client=client)
    return parse_directory(table)


# ---- DASH sheet (available units) ----
def parse_google_date(raw: Any) -> str | None:
    """``"Date(2026,1,1)"`` (0-based month) or ``"2/15/2026"`` -> ``"2026-02-01"``."""
    if not raw:
        return None
    s = str(raw)
    m = _GVIZ_DATE_RE.search(s)
    if m:
        year, month, day = int(m.group(1)), int(m.group(2)) + 1, int(m.group(3))
        return f"{year:04d}-{month:02d}-{day:02d}"
    m = _SLASH_DATE_RE.search(s)
    if m:
        month, day, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        return f"{year:04d}-{month:02d}-{day:02d}"
    return None


def parse_rent_price(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return float(raw)
    cleaned = str(raw).replace("$", "").replace(",", "").strip()
    m = re.match(r"-?\d+(\.\d+)?", cleaned)
    return float(m.group(0)) if m else 0.0


def map_property_name(code: str) -> str:
    return PROPERTY_CODE_NAMES.get(code) or code.replace("_", " ")


def bedrooms_to_unit_type(bedrooms: Any) -> str:
    if isinstance(bedrooms, str):
        m = _DIGITS_RE.search(bedrooms)
        if m:
            n = int(m.group(1))
            return "Studio" if n == 0 else f"{n}BR"
        if "studio" in bedrooms.lower():
            return "Studio"
        return bedrooms
    if not bedrooms:
        return "Studio"
    return f"{_text(bedrooms)}BR"


def extract_unit_number(address_and_apt: str) -> str:
    m = _UNIT_RE.search(address_and_apt or "")
    return m.group(1) if m else ""


def _has_unit_type_marker(value: Any, markers: tuple[str, ...]) -> bool:
    return isinstance(value, str) and any(mark in value for mark in markers)


def _positive_bedrooms(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, (int, float)):
        return value > 0
    try:
        return float(str(value).strip()) > 0
    except ValueError:
        return False


def _infer_unit_type_from_size(sq_footage: int | float) -> str:
    if sq_footage >= 1800:
        return "3BR"
    if sq_footage >= 1000:
        return "2BR"
    if sq_footage >= 600:
        return "1BR"
    return "Studio"


def parse_dashboard_units(table: dict[str, Any]) -> list[SheetUnit]:
    """DASH layout: A property code, E unique id, F status, G address + "Unit: N",
    H bedrooms, I baths, J sq ft, K available date, L rent; a free-text unit type
    ("3BD + Den") may sit anywhere in M..U.

    Only rows with status ``Available`` are returned.
    """
    units: list[SheetUnit] = []
    for row in table.get("rows") or []:
        cells = (row or {}).get("c")
        if not cells or not cells[0]:
            continue

        status = _cell_text(cells, 5)
        if status != "Available":
            continue

        property_raw = _cell_text(cells, 0)
        address_and_apt = _cell_text(cells, 6)
        bed_cell = _cell(cells, 7)
        bedrooms = bed_cell.get("v") if bed_cell.get("v") is not None else bed_cell.get("f")
        bathrooms = _number(_cell(cells, 8).get("v"))
        sq_footage = _number(_cell(cells, 9).get("v"))
        available_raw = _cell(cells, 10).get("v") or _cell(cells, 10).get("f")
        rent_raw = _cell(cells, 11).get("v") or _cell(cells, 11).get("f") or 0
        unique_id = _cell_text(cells, 4)

        unit_type_raw: str | None = None
        for i in range(12, 21):
            c = _cell(cells, i)
            val = c.get("v") or c.get("f")
            if _has_unit_type_marker(val, ("BD", "BR", "Studio")):
                unit_type_raw = val
                break
        if unit_type_raw is None and isinstance(bed_cell.get("f"), str):
            unit_type_raw = bed_cell["f"]

        if _has_unit_type_marker(unit_type_raw, ("BD", "BR", "Den")):
            unit_type = str(unit_type_raw)
        elif _positive_bedrooms(bedrooms):
            unit_type = bedrooms_to_unit_type(bedrooms)
        else:
            # Bedroom cell is empty on some rows; size is a decent proxy.
            unit_type = _infer_unit_type_from_size(sq_footage)

        if isinstance(bedrooms, (int, float)) and not isinstance(bedrooms, bool):
            bedrooms_n: int | float = _number(bedrooms)
        else:
            m = _DIGITS_RE.match(str(bedrooms or "").strip())
            bedrooms_n = int(m.group(1)) if m else 0

        units.append(
            SheetUnit(
                property=map_property_name(property_raw),
                unit_number=extract_unit_number(address_and_apt),
                unit_type=unit_type,
                bedrooms=bedrooms_n,
                bathrooms=bathrooms,
                sq_footage=sq_footage,
                available_date=parse_google_date(available_raw),
                rent_price=parse_rent_price(rent_raw),
                status="Available",
                address=address_and_apt.split("\n")[0],
                unique_id=unique_id,
            )
        )
    return units


def fetch_available_units(*, client: httpx.Client | None = None) -> list[SheetUnit]:
    table = fetch_gviz_table(settings.dashboard_spreadsheet_id, "DASH", client=client)
    return parse_dashboard_units(table)


# ---- Properties tab (Sheets API v4) ----
def parse_property_rows(rows: list[list[Any]]) -> list[Property]:
    """Rows after the header: full name, nickname, short code, active flag (default TRUE)."""
    out: list[Property] = []
    for row in rows[1:]:
        cols = [str(c) if c is not None else "" for c in row] + [""] * 4
        full_name, nickname, short_code, active = cols[0], cols[1], cols[2], cols[3]
        if not full_name or not nickname:
            continue
        out.append(
            Property(
                fullName=full_name,
                nickname=nickname,
                shortCode=short_code,
                isActive=(active or "TRUE").upper() == "TRUE",
            )
        )
    return out


def fetch_properties(*, client: httpx.Client | None = None) -> list[Property]:
    """Property list from the Properties tab; the built-in list when unavailable."""
    if not settings.google_api_key:
        return list(FALLBACK_PROPERTIES)

    url = _VALUES_URL.format(sheet_id=settings.directory_spreadsheet_id, range="Properties!A:D")
    params = {"key": settings.google_api_key}
    try:
        if client is not None:
            resp = client.get(url, params=params)
        else:
            with httpx.Client(timeout=settings.sheets_timeout_s) as c:
                resp = c.get(url, params=params)
        if resp.status_code != 200:
            logger.info("Properties tab unavailable (status=%s); using fallback list", resp.status_code)
            return list(FALLBACK_PROPERTIES)
        rows = resp.json().get("values") or []
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        logger.warning("Error fetching properties from sheet; using fallback list. error=%s", e)
        return list(FALLBACK_PROPERTIES)

    properties = parse_property_rows(rows) if len(rows) > 1 else []
    return properties or list(FALLBACK_PROPERTIES)
