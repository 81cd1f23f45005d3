"""
HTML extractors for LogiTycoon pages.

Each extractor takes the raw HTML of one page and returns a list of
``EntityRecord`` objects. Extraction never fails a whole page: a missing
section gives an empty list, an unparsable number gives ``None`` and a
row without a numeric id is dropped (and reported through the optional
``dropped`` list) before it can reach the evaluators.
"""

import logging
import re
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from bs4 import BeautifulSoup

from entities import (
    EMPLOYEE, FREIGHT, TRAILER, TRIP, TRUCK,
    EntityRecord, FinancialLine, FreightButton, ProgressBar,
)
from errors import MissingIdentifier

logger = logging.getLogger(__name__)

FULL_PERCENTAGE = 100.0

# Column indexes per employee table, keyed by the portlet caption
DEFAULT_EMPLOYEE_TABLES = {
    "Truckers": {
        "salary": 2,
        "location": 3,
        "sleep": 4,
        "id_card": 5,
        "action": 6,
        "available": 7,
        "pallet": 8,
    },
    "Warehouse Employees": {
        "salary": 2,
        "location": 3,
        "sleep": 4,
        "action": 5,
        "available": 6,
        "pallet": 7,
    },
}

TRIP_COLUMNS = {
    "earnings": 1,
    "departure": 2,
    "destination": 3,
    "distance": 4,
    "trip_type": 8,
}
TRIP_MIN_CELLS = 9

FREIGHT_VOCABULARY = ("load", "drive", "unload", "finish", "continue driving")
RANDOM_ACTION = "random"
DEFAULT_STATUS_SELECTOR = "span.badge, span.label"

_NUMBER_JUNK = re.compile(r"[\s$€£%,]")
_PROGRESS_BAR = re.compile(
    r"new\s+ProgressBar\(\s*([^,]*?)\s*,"
    r"\s*(-?\d+(?:\.\d+)?)\s*,"
    r"\s*(-?\d+(?:\.\d+)?)\s*,"
    r"\s*(-?\d+(?:\.\d+)?)\s*\)"
)
_ELEMENT_REF = re.compile(r"getElementById\(\s*['\"]([^'\"]*)['\"]\s*\)")


# ── text and number helpers ───────────────────────────────────────────────────

def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def clean_text(element) -> str:
    """Trimmed text content of an element, with images stripped and whitespace collapsed"""
    if element is None:
        return ""
    for img in element.find_all("img"):
        img.decompose()
    return " ".join(element.get_text().split())


def parse_number(text: Optional[str]) -> Optional[float]:
    """Parse '$1,234.50', '45%' or '12' into a float; None when unparsable"""
    if text is None:
        return None
    cleaned = _NUMBER_JUNK.sub("", str(text))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_percent(text: Optional[str]) -> Optional[float]:
    """Like parse_number, but values outside [0, 100] count as unknown"""
    value = parse_number(text)
    if value is None or not 0 <= value <= 100:
        return None
    return value


def _as_int(value: Optional[float]) -> Optional[int]:
    return None if value is None else int(value)


def _match_id(pattern: str, text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    m = re.search(pattern, text)
    return m.group(1) if m else None


def _drop(kind: str, reason: str, dropped: Optional[List[MissingIdentifier]]):
    logger.warning(f"Skipping {kind} without id ({reason})")
    if dropped is not None:
        dropped.append(MissingIdentifier(f"{kind}: {reason}"))


# ── progress bars ─────────────────────────────────────────────────────────────

def _bar_element_id(target: str) -> str:
    """Element id from a ProgressBar target: 'fuel1', fuel1 or document.getElementById("fuel1")"""
    m = _ELEMENT_REF.search(target)
    if m:
        return m.group(1)
    return target.strip().strip("'\"").lstrip("#")


def parse_progress_bar(text: Optional[str], bar_id: Optional[str] = None) -> Optional[ProgressBar]:
    """
    Find a ``new ProgressBar(id, min, max, current)`` call in inline script text.

    With ``bar_id`` only a call for that element id matches; otherwise the
    first call on the page wins.
    """
    if not text:
        return None
    for m in _PROGRESS_BAR.finditer(text):
        found_id = _bar_element_id(m.group(1))
        if bar_id is not None and found_id != bar_id:
            continue
        return ProgressBar(
            bar_id=found_id,
            minimum=float(m.group(2)),
            maximum=float(m.group(3)),
            current=float(m.group(4)),
        )
    return None


def progress_percentage(text: Optional[str], bar_id: Optional[str] = None,
                        default: Optional[float] = FULL_PERCENTAGE) -> Optional[float]:
    """
    Percentage filled of a progress bar.

    When no bar is found (or its range is empty) the bar is assumed full,
    so an unreadable page never triggers an action. Pass ``default=None``
    to get "unknown" instead.
    """
    bar = parse_progress_bar(text, bar_id)
    if bar is None or bar.percentage is None:
        return default
    return bar.percentage


# ── generic structure readers ─────────────────────────────────────────────────

def read_columns(cells: Sequence, mapping: Mapping[str, int]) -> Dict[str, str]:
    """Read ``{field: column_index}`` from a row's cells; missing cells read as ''"""
    return {
        name: clean_text(cells[index]) if index < len(cells) else ""
        for name, index in mapping.items()
    }


def read_static_info(container, lowercase: bool = False) -> Dict[str, str]:
    """Read the ``div.row.static-info`` label/value rows of a portlet"""
    info = {}
    for row in container.select("div.row.static-info"):
        label_el = row.select_one("div.name")
        value_el = row.select_one("div.value")
        if label_el is None or value_el is None:
            continue
        label = clean_text(label_el).replace(":", "", 1).strip()
        if lowercase:
            label = label.lower()
        info[label] = clean_text(value_el)
    return info


def _find_portlet(soup: BeautifulSoup, heading: str):
    for portlet in soup.select("div.portlet"):
        if heading in portlet.get_text():
            return portlet
    return None


# ── employees ─────────────────────────────────────────────────────────────────

def extract_employees(html: str, table_mappings: Optional[Mapping[str, Mapping[str, int]]] = None,
                      dropped: Optional[List[MissingIdentifier]] = None) -> List[EntityRecord]:
    """Employees from the Truckers and Warehouse Employees tables"""
    mappings = table_mappings or DEFAULT_EMPLOYEE_TABLES
    soup = parse_html(html)
    employees = []

    for portlet in soup.select("div.portlet.light.bordered"):
        caption = portlet.select_one("div.portlet-title .caption .caption-subject")
        if caption is None:
            continue
        title = clean_text(caption)
        table_name = next((name for name in mappings if name in title), None)
        if table_name is None:
            continue
        mapping = mappings[table_name]

        for row in portlet.select("table.table tbody tr"):
            link = row.select_one("a[href*='index.php?a=employees_select&e=']")
            employee_id = _match_id(r"e=(\d+)", link.get("href") if link else None)
            if not employee_id:
                _drop(EMPLOYEE, f"row in '{table_name}' has no employee link", dropped)
                continue

            fields = {"name": clean_text(link), "table": table_name}
            fields.update(read_columns(row.find_all("td"), mapping))
            fields["sleep_percent"] = _as_int(parse_percent(fields.get("sleep")))
            employees.append(EntityRecord(EMPLOYEE, employee_id, fields))

    return employees


# ── garage ────────────────────────────────────────────────────────────────────

_GARAGE_SECTIONS = (
    ("Trucks", TRUCK, "garage_truck&t="),
    ("Trailers", TRAILER, "garage_trailer&t="),
)


def extract_garage(html: str, dropped: Optional[List[MissingIdentifier]] = None) -> List[EntityRecord]:
    """Trucks and trailers listed on the Garage page"""
    soup = parse_html(html)
    vehicles = []

    for portlet in soup.select("div.portlet.light"):
        title_el = portlet.select_one("div.portlet-title")
        if title_el is None:
            continue
        title = clean_text(title_el)
        section = next((s for s in _GARAGE_SECTIONS if s[0] in title), None)
        if section is None:
            continue
        _, kind, marker = section

        for entry in portlet.select("div.mt-action"):
            info_btn = entry.select_one(f"button[onclick*='{marker}']")
            vehicle_id = _match_id(r"t=(\d+)", info_btn.get("onclick") if info_btn else None)
            if not vehicle_id:
                _drop(kind, "no information button", dropped)
                continue
            name_el = entry.select_one("span.mt-action-author") or entry.select_one("a")
            fields = {"name": clean_text(name_el) if name_el else f"Unknown {kind.title()}"}
            fields.update(read_static_info(entry, lowercase=True))
            vehicles.append(EntityRecord(kind, vehicle_id, fields))

    return vehicles


def extract_vehicle_detail(html: str, kind: str = TRUCK) -> Dict[str, object]:
    """
    Condition fields from a truck/trailer detail page.

    ``condition`` comes from the first progress bar on the page and stays
    ``None`` when there is none, so an unreadable page never triggers a
    repair. Trucks also carry tire condition and tire type.
    """
    fields = {"condition": _as_int(progress_percentage(html, default=None))}
    if kind == TRUCK:
        fields["tire_condition"] = _as_int(progress_percentage(html, "tirecondition", default=None))
        tire_label = parse_html(html).select_one("span.label-warning")
        fields["tire_type"] = clean_text(tire_label) if tire_label else "Unknown"
    return fields


# ── fuel station ──────────────────────────────────────────────────────────────

def extract_fuel_trucks(html: str, dropped: Optional[List[MissingIdentifier]] = None) -> List[EntityRecord]:
    """Trucks on the Fuel Station page, with fuel level from their progress bar"""
    soup = parse_html(html)
    trucks = []

    for tbody in soup.select("tbody[id^='truck-']"):
        truck_id = tbody.get("id", "").split("truck-", 1)[-1]
        if not truck_id.isdigit():
            _drop(TRUCK, f"bad tbody id {tbody.get('id')!r}", dropped)
            continue

        fields = {}
        first_row = tbody.find("tr")
        if first_row is not None:
            link = first_row.select_one("a[href*='fuelstation']")
            fields["name"] = clean_text(link or first_row)

        span = tbody.select_one("span[id^='fuel']")
        bar = parse_progress_bar(span.decode_contents()) if span is not None else None
        if bar is not None and bar.percentage is not None:
            fields.update(
                fuel_min=bar.minimum,
                fuel_max=bar.maximum,
                fuel_current=bar.current,
                fuel_percentage=bar.percentage,
            )
        else:
            fields["fuel_percentage"] = FULL_PERCENTAGE

        trucks.append(EntityRecord(TRUCK, truck_id, fields))

    return trucks


# ── trips ─────────────────────────────────────────────────────────────────────

def extract_trips(html: str, dropped: Optional[List[MissingIdentifier]] = None) -> List[EntityRecord]:
    """Available trips from ``table#rectrips`` in document order"""
    soup = parse_html(html)
    table = soup.select_one("table#rectrips")
    if table is None:
        logger.warning("Trips table not found")
        return []

    trips = []
    for row in table.select("tbody tr"):
        cells = row.find_all("td")
        if len(cells) < TRIP_MIN_CELLS:
            continue
        radio = cells[0].select_one("input[type='radio']")
        trip_id = (radio.get("value") or "").strip() if radio else ""
        if not trip_id.isdigit():
            _drop(TRIP, "no radio input value", dropped)
            continue

        type_span = cells[TRIP_COLUMNS["trip_type"]].find("span")
        trips.append(EntityRecord(TRIP, trip_id, {
            "earnings": parse_number(cells[TRIP_COLUMNS["earnings"]].get_text()),
            "departure": clean_text(cells[TRIP_COLUMNS["departure"]]),
            "destination": clean_text(cells[TRIP_COLUMNS["destination"]]),
            "distance": clean_text(cells[TRIP_COLUMNS["distance"]]),
            "trip_type": clean_text(type_span) if type_span else "",
        }))
    return trips


# ── freight ───────────────────────────────────────────────────────────────────

def _is_freight_button(button: FreightButton, vocabulary: Iterable[str]) -> bool:
    if button.action == RANDOM_ACTION or button.action in vocabulary:
        return True
    if "freight" in button.action:
        return True
    return "freight" in (button.onclick or "") or "freight" in (button.href or "")


def extract_freight_buttons(soup: BeautifulSoup, vocabulary: Sequence[str] = FREIGHT_VOCABULARY):
    buttons = []
    seen = set()
    for el in soup.select("button, a, [onclick]"):
        button = FreightButton(
            tag=el.name.upper(),
            label=clean_text(el),
            onclick=el.get("onclick"),
            href=el.get("href"),
        )
        if button in seen or not _is_freight_button(button, vocabulary):
            continue
        seen.add(button)
        buttons.append(button)
    return tuple(buttons)


def extract_freight_detail(html: str, vocabulary: Sequence[str] = FREIGHT_VOCABULARY,
                           status_selector: str = DEFAULT_STATUS_SELECTOR,
                           dropped: Optional[List[MissingIdentifier]] = None) -> List[EntityRecord]:
    """
    Everything on a freight detail page: details, financial overview,
    action buttons and status indicators. Returns an empty list when the
    page title carries no freight number.
    """
    soup = parse_html(html)
    title = soup.select_one("h1.page-title")
    freight_id = _match_id(r"#(\d+)", title.get_text() if title else None)
    if not freight_id:
        _drop(FREIGHT, "page title has no freight number", dropped)
        return []

    details_portlet = _find_portlet(soup, "Freight Details")
    details = read_static_info(details_portlet) if details_portlet is not None else {}

    financial = []
    fin_portlet = _find_portlet(soup, "Financial Overview")
    fin_table = fin_portlet.select_one("table.table-bordered") if fin_portlet is not None else None
    if fin_table is not None:
        for row in fin_table.select("tbody tr"):
            cells = [clean_text(td) for td in row.find_all("td")]
            if len(cells) >= 5:
                financial.append(FinancialLine(*cells[:5]))

    status = tuple(
        text for text in (clean_text(el) for el in soup.select(status_selector)) if text
    )

    return [EntityRecord(FREIGHT, freight_id, {
        "details": MappingProxyType(details),
        "financial_overview": tuple(financial),
        "buttons": extract_freight_buttons(soup, vocabulary),
        "status_indicators": status,
    })]


def extract_warehouse_freights(html: str, dropped: Optional[List[MissingIdentifier]] = None) -> List[EntityRecord]:
    """Freights waiting in the warehouse (``tbody#tbody-available``)"""
    soup = parse_html(html)
    tbody = soup.select_one("tbody#tbody-available")
    if tbody is None:
        logger.warning("Warehouse freight table (tbody#tbody-available) not found")
        return []

    freights = []
    for row in tbody.find_all("tr"):
        cells = row.find_all(["td", "th"], recursive=False)
        id_cell = next(
            (c for c in cells if "hidden-xs" in (c.get("class") or []) and clean_text(c).startswith("#")),
            None,
        )
        freight_id = clean_text(id_cell).lstrip("#").strip() if id_cell else ""
        if not freight_id.isdigit():
            _drop(FREIGHT, "warehouse row without '#<id>' cell", dropped)
            continue

        fields = {}
        if len(cells) > 1:
            fields["earnings"] = parse_number(cells[1].get_text())
        visible = [c for c in cells if "visible-sm" in (c.get("class") or [])]
        if visible:
            fields["departure"] = clean_text(visible[0])
        if len(visible) > 1:
            fields["destination"] = clean_text(visible[1])
        distance = next((c for c in cells if clean_text(c).endswith("km")), None)
        if distance is not None:
            fields["distance"] = clean_text(distance)
        type_cell = next(
            (c for c in cells if "hidden-xs" in (c.get("class") or []) and "default" in c.get_text().lower()),
            None,
        )
        if type_cell is not None:
            fields["trip_type"] = clean_text(type_cell.find("span") or type_cell)
        freights.append(EntityRecord(FREIGHT, freight_id, fields))

    return freights
