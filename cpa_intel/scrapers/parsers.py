"""Directory response parsers: result grids, single-member detail pages, embedded JSON arrays."""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from bs4 import BeautifulSoup

from cpa_intel.utils.text_processing import (
    clean_text,
    is_designation_token,
    split_full_name,
    split_last_first,
    strip_trailing_designation,
)

logger = logging.getLogger("cpa_intel.scrapers.parsers")

MAX_NAME_LENGTH = 100

TOO_MANY_PATTERN = re.compile(
    r"too many (results|records|matches|members)|refine your search|narrow your search"
    r"|more than \d[\d,]* (results|records|matches)",
    re.I,
)
NO_RESULTS_PATTERN = re.compile(
    r"no (results|records|members|matches|data)( were)? (found|to display|returned)"
    r"|no matching (records|members|results)|0 (results|records) found|aucun r[ée]sultat",
    re.I,
)
CHROME_ROW_CLASS = re.compile(r"header|pager|footer|empty|paging|nav", re.I)


class ParseStatus(str, Enum):
    RESULTS = "results"
    TOO_MANY = "too_many"
    NO_RESULTS = "no_results"
    UNRECOGNIZED = "unrecognized"


@dataclass
class ParsedPerson:
    """A partial professional record; hashing and dedup are the caller's job."""

    first_name: str
    last_name: str
    full_name: str
    city: str = ""
    designation: str = ""
    firm_name: str = ""


@dataclass
class ParseOutcome:
    status: ParseStatus
    records: list[ParsedPerson] = field(default_factory=list)

    @classmethod
    def results(cls, records: list[ParsedPerson]) -> "ParseOutcome":
        return cls(ParseStatus.RESULTS, records)


def _plausible_name(full_name: str) -> bool:
    return bool(full_name) and len(full_name) <= MAX_NAME_LENGTH and bool(re.search(r"[A-Za-zÀ-ÿ]", full_name))


def _make_person(
    first: str,
    last: str,
    city: str = "",
    designation: str = "",
    firm: str = "",
) -> Optional[ParsedPerson]:
    first, last = clean_text(first), clean_text(last)
    full_name = clean_text(f"{first} {last}")
    if not _plausible_name(full_name):
        return None
    return ParsedPerson(
        first_name=first,
        last_name=last,
        full_name=full_name,
        city=clean_text(city),
        designation=clean_text(designation),
        firm_name=clean_text(firm),
    )


def _person_from_name_text(text: str, last_first: bool, designation_in_name: bool) -> tuple[str, str, str]:
    """Return (first, last, designation) from a single name cell."""
    if last_first:
        last, first, designation = split_last_first(text)
        return first, last, designation
    designation = ""
    if designation_in_name:
        text, designation = strip_trailing_designation(text)
    first, last = split_full_name(text)
    return first, last, designation


def _sentinel_status(soup: BeautifulSoup) -> Optional[ParseStatus]:
    """Look for "too many results" / "no results" messages in headings and alert boxes."""
    candidates = soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])
    candidates += soup.find_all(attrs={"class": re.compile(r"message|alert|notice|error|warning|empty", re.I)})
    candidates += soup.find_all(attrs={"id": re.compile(r"message|lblMsg|lblResult|noresult", re.I)})
    for elem in candidates:
        text = elem.get_text(" ", strip=True)
        if TOO_MANY_PATTERN.search(text):
            return ParseStatus.TOO_MANY
        if NO_RESULTS_PATTERN.search(text):
            return ParseStatus.NO_RESULTS
    return None


# ----------------------------------------------------------------------
# Grid
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ColumnMap:
    """Which table column holds which attribute.

    Either ``full_name`` (one combined cell) or ``last_name``/``first_name``
    must be set. ``last_first`` reads a combined cell as "Smith, John CPA, CA";
    ``designation_in_name`` peels credentials that follow a comma in the
    name (or last-name) cell.
    """

    full_name: Optional[int] = None
    last_name: Optional[int] = None
    first_name: Optional[int] = None
    city: Optional[int] = None
    designation: Optional[int] = None
    firm: Optional[int] = None
    last_first: bool = False
    designation_in_name: bool = False
    min_cells: int = 2
    table_selector: str = "table"


class GridParser:
    """Parses an HTML results table using a declarative column map."""

    def __init__(self, columns: ColumnMap):
        if columns.full_name is None and columns.last_name is None:
            raise ValueError("ColumnMap needs full_name or last_name")
        self.columns = columns

    def find_table(self, soup: BeautifulSoup):
        return soup.select_one(self.columns.table_selector)

    def parse(self, html: str) -> ParseOutcome:
        soup = BeautifulSoup(html, "lxml")
        table = self.find_table(soup)
        if table is None:
            sentinel = _sentinel_status(soup)
            return ParseOutcome(sentinel or ParseStatus.UNRECOGNIZED)

        records = self.parse_rows(table)
        if not records:
            sentinel = _sentinel_status(soup)
            if sentinel is not None:
                return ParseOutcome(sentinel)
        return ParseOutcome.results(records)

    def parse_rows(self, table) -> list[ParsedPerson]:
        records = []
        # Rows of nested tables (GridView pagers) belong to those tables
        for row in table.find_all("tr"):
            if row.find_parent("table") is not table:
                continue
            person = self._parse_row(row)
            if person:
                records.append(person)
        return records

    def _parse_row(self, row) -> Optional[ParsedPerson]:
        if row.find("th"):
            return None
        if CHROME_ROW_CLASS.search(" ".join(row.get("class", []))):
            return None

        cells = row.find_all("td", recursive=False) or row.find_all("td")
        if len(cells) < self.columns.min_cells:
            return None
        if NO_RESULTS_PATTERN.search(row.get_text(" ", strip=True)):
            return None

        def cell(index: Optional[int]) -> str:
            if index is None or index >= len(cells):
                return ""
            return clean_text(cells[index].get_text(" ", strip=True))

        cols = self.columns
        if cols.full_name is not None:
            first, last, designation = _person_from_name_text(
                cell(cols.full_name), cols.last_first, cols.designation_in_name
            )
        else:
            last = cell(cols.last_name)
            first = cell(cols.first_name)
            designation = ""
            if cols.designation_in_name and "," in last:
                last, designation = (part.strip() for part in last.split(",", 1))

        if cols.designation is not None:
            designation = cell(cols.designation) or designation

        return _make_person(first, last, cell(cols.city), designation, cell(cols.firm))


# ----------------------------------------------------------------------
# Detail page
# ----------------------------------------------------------------------

DETAIL_LABELS = {
    "member name": "full_name",
    "name": "full_name",
    "full name": "full_name",
    "registrant name": "full_name",
    "first name": "first_name",
    "given name": "first_name",
    "last name": "last_name",
    "surname": "last_name",
    "city": "city",
    "location": "city",
    "municipality": "city",
    "designation": "designation",
    "designations": "designation",
    "credentials": "designation",
    "firm": "firm",
    "firm name": "firm",
    "employer": "firm",
    "company": "firm",
}


class DetailPageParser:
    """Single-member label/value pages, with "too many"/"no results" short-circuits.

    When a search matches several members the directory returns its grid
    instead; ``grid`` handles that case.
    """

    def __init__(self, grid: Optional[GridParser] = None, labels: Optional[dict[str, str]] = None):
        self.grid = grid
        self.labels = labels or DETAIL_LABELS

    def parse(self, html: str) -> ParseOutcome:
        soup = BeautifulSoup(html, "lxml")

        sentinel = _sentinel_status(soup)
        if sentinel is not None:
            return ParseOutcome(sentinel)

        if self.grid is not None:
            table = self.grid.find_table(soup)
            if table is not None:
                records = self.grid.parse_rows(table)
                if records:
                    return ParseOutcome.results(records)

        person = self._parse_labels(soup)
        if person:
            return ParseOutcome.results([person])
        return ParseOutcome(ParseStatus.UNRECOGNIZED)

    def _parse_labels(self, soup: BeautifulSoup) -> Optional[ParsedPerson]:
        values: dict[str, str] = {}
        for row in soup.find_all("tr"):
            cells = row.find_all(["th", "td"])
            if len(cells) < 2:
                continue
            label = clean_text(cells[0].get_text(" ", strip=True)).lower().rstrip(":").strip()
            key = self.labels.get(label)
            if key and key not in values:
                values[key] = clean_text(cells[1].get_text(" ", strip=True))

        if "full_name" in values:
            text = values["full_name"]
            first, last, designation = _person_from_name_text(text, "," in text and not _tail_is_designation(text), True)
        elif "last_name" in values:
            first, last, designation = values.get("first_name", ""), values["last_name"], ""
        else:
            return None

        designation = values.get("designation") or designation
        return _make_person(first, last, values.get("city", ""), designation, values.get("firm", ""))


def _tail_is_designation(text: str) -> bool:
    """True for "John Smith, CPA" (credentials after the comma) vs "Smith, John"."""
    if "," not in text:
        return False
    tokens = [t for t in re.split(r"[\s,]+", text.split(",", 1)[1]) if t]
    return bool(tokens) and all(is_designation_token(t) for t in tokens)


# ----------------------------------------------------------------------
# Embedded script array
# ----------------------------------------------------------------------

_ASSIGNMENT = re.compile(r"(?:\b(?:var|let|const)\s+|window\.)([A-Za-z_$][\w$]*)\s*=\s*(?=\[)")

SCRIPT_KEYS = {
    "first_name": ("firstname", "first_name", "givenname", "given_name"),
    "last_name": ("lastname", "last_name", "surname", "familyname", "family_name"),
    "full_name": ("fullname", "full_name", "membername", "member_name", "displayname", "name"),
    "city": ("city", "location", "municipality"),
    "designation": ("designation", "designations", "credentials"),
    "firm": ("firm", "firmname", "firm_name", "employer", "company"),
}

CARD_CLASS = re.compile(r"member|result|card|listing|directory-item|search-item", re.I)


class ScriptArrayParser:
    """HTML fragments that assign a JSON array literal to a script variable.

    Falls back to scanning card/row-like elements when no array is present.
    """

    def __init__(self, variable_names: tuple[str, ...] = ()):
        self.variable_names = variable_names
        self._decoder = json.JSONDecoder()

    def parse(self, html: str) -> ParseOutcome:
        items = self._find_array(html)
        if items is not None:
            return ParseOutcome.results(self._records_from_items(items))

        soup = BeautifulSoup(html, "lxml")
        sentinel = _sentinel_status(soup)
        if sentinel is not None:
            return ParseOutcome(sentinel)

        records = self._records_from_cards(soup)
        if records:
            return ParseOutcome.results(records)
        return ParseOutcome(ParseStatus.UNRECOGNIZED)

    def _find_array(self, html: str) -> Optional[list]:
        for match in _ASSIGNMENT.finditer(html):
            if self.variable_names and match.group(1) not in self.variable_names:
                continue
            try:
                value, _ = self._decoder.raw_decode(html, match.end())
            except json.JSONDecodeError:
                logger.debug("Script variable %s is not a JSON literal", match.group(1))
                continue
            if isinstance(value, list) and (not value or isinstance(value[0], dict)):
                return value
        return None

    def _records_from_items(self, items: list) -> list[ParsedPerson]:
        records = []
        for item in items:
            if not isinstance(item, dict):
                continue
            lowered = {str(k).lower(): v for k, v in item.items()}

            def pick(field_name: str) -> str:
                for key in SCRIPT_KEYS[field_name]:
                    value = lowered.get(key)
                    if value:
                        return str(value)
                return ""

            first, last = pick("first_name"), pick("last_name")
            designation = pick("designation")
            if not last:
                full = pick("full_name")
                if not full:
                    continue
                first, last, embedded = _person_from_name_text(full, False, True)
                designation = designation or embedded

            person = _make_person(first, last, pick("city"), designation, pick("firm"))
            if person:
                records.append(person)
        return records

    def _records_from_cards(self, soup: BeautifulSoup) -> list[ParsedPerson]:
        records = []
        seen = set()
        for card in soup.find_all(attrs={"class": CARD_CLASS}):
            name_elem = card.find(attrs={"class": re.compile(r"name", re.I)}) or card.find(["h2", "h3", "h4", "strong"])
            if name_elem is None:
                continue
            city_elem = card.find(attrs={"class": re.compile(r"city|location|address", re.I)})
            name_text = name_elem.get_text(" ", strip=True)
            city = city_elem.get_text(" ", strip=True) if city_elem else ""

            first, last, designation = _person_from_name_text(name_text, False, True)
            person = _make_person(first, last, city, designation)
            if person and (person.full_name, person.city) not in seen:
                seen.add((person.full_name, person.city))
                records.append(person)
        return records
