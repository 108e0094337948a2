"""
MS Project document parser.

Turns an uploaded MS Project export into typed in-memory records:

  - XML  (File → Save As → XML)           parse_msproject_xml
  - XLSX (File → Export → Excel workbook) parse_msproject_workbook
  - TXT  section check only               inspect_txt_sections

Normalization rules shared by every path:
  - every text value is trimmed; empty strings become None
  - integer / float fields that do not parse become None (leading-number
    semantics: "1.00" → 1 for integers, "50%" → 50.0 for floats)
  - ISO-8601 durations become interval phrases ("P2DT3H" → "2 days 3 hours")
    and a present-but-empty duration becomes "0 seconds"
  - wbs_parent is the WBS with its last dot-segment removed

Pure: reads only the bytes it is given, performs no store I/O.
"""

import io
import logging
import re
import zipfile
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from xml.etree import ElementTree as ET

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.core.exceptions import ParseError

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
# Records
# ═════════════════════════════════════════════════════════════════════════


@dataclass
class PredecessorLink:
    predecessor_uid: str | None
    predecessor_type: str | None

    def key(self) -> str:
        return f"{self.predecessor_uid or ''}|{self.predecessor_type or ''}"


@dataclass
class Task:
    uid: str | None
    task_name: str | None = None
    wbs: str | None = None
    wbs_parent: str | None = None
    outline_level: int | None = None
    start: str | None = None
    finish: str | None = None
    duration: str | None = None
    duration_raw: str | None = None
    percent_complete: float | None = None
    actual_start: str | None = None
    actual_finish: str | None = None
    fixed_cost: float | None = None
    notes: str | None = None
    predecessors: bool = False
    baseline_start: str | None = None
    baseline_finish: str | None = None
    predecessor_links: list[PredecessorLink] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Resource:
    uid: str | None
    row_id: str | None = None
    resource_name: str | None = None
    type: str | None = None
    max_units: int | None = None
    standard_rate: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Assignment:
    uid: str | None
    task_uid: str | None = None
    resource_uid: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ParsedProject:
    file_name: str | None
    size: int
    tasks: list[Task] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)

    @property
    def counts(self) -> dict:
        return {
            "tasks": len(self.tasks),
            "resources": len(self.resources),
            "assignments": len(self.assignments),
        }

    def to_dict(self, include_records: bool = True) -> dict:
        out = {"file_name": self.file_name, "size": self.size, "counts": self.counts}
        if include_records:
            out["tasks"] = [t.to_dict() for t in self.tasks]
            out["resources"] = [r.to_dict() for r in self.resources]
            out["assignments"] = [a.to_dict() for a in self.assignments]
        return out


# ═════════════════════════════════════════════════════════════════════════
# Value normalization
# ═════════════════════════════════════════════════════════════════════════

_LEADING_INT = re.compile(r"^[+-]?\d+")
_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_ISO_DURATION = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)


def to_null_if_empty(value) -> str | None:
    """Trimmed string, or None when absent / blank."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(microsecond=0).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    return s or None


def parse_int_or_none(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    s = to_null_if_empty(value)
    if s is None:
        return None
    m = _LEADING_INT.match(s)
    return int(m.group(0)) if m else None


def parse_float_or_none(value) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    s = to_null_if_empty(value)
    if s is None:
        return None
    m = _LEADING_FLOAT.match(s)
    return float(m.group(0)) if m else None


def compute_wbs_parent(wbs) -> str | None:
    """Parent WBS: "2.1.3" → "2.1"; "4" → None; None → None."""
    s = to_null_if_empty(wbs)
    if not s:
        return None
    parts = [p.strip() for p in s.split(".") if p.strip()]
    if len(parts) <= 1:
        return None
    return ".".join(parts[:-1])


def _fmt_number(text: str) -> str:
    v = float(text)
    return str(int(v)) if v.is_integer() else str(v)


def iso_duration_to_interval(iso) -> str | None:
    """Convert an ISO-8601 duration to an interval phrase.

    "PT240H0M0S" → "240 hours", "P2DT3H" → "2 days 3 hours",
    "PT0S" / "" → "0 seconds". Strings that are not ISO durations are
    returned trimmed and otherwise unchanged; None stays None.
    """
    if iso is None:
        return None
    s = str(iso).strip()
    if not s:
        return "0 seconds"
    m = _ISO_DURATION.match(s)
    if not m:
        return s

    parts = []
    for raw, unit in zip(m.groups(), ("days", "hours", "minutes", "seconds")):
        if raw and float(raw):
            parts.append(f"{_fmt_number(raw)} {unit}")
    if not parts:
        return "0 seconds"
    return " ".join(parts)


# ═════════════════════════════════════════════════════════════════════════
# XML
# ═════════════════════════════════════════════════════════════════════════


def _strip_namespaces(root) -> None:
    """MS Project writes a default namespace; match on local names only."""
    for el in root.iter():
        if isinstance(el.tag, str) and "}" in el.tag:
            el.tag = el.tag.rsplit("}", 1)[1]


def _first_text(parent, tag: str) -> str | None:
    """Text of the first descendant named ``tag`` (document order)."""
    if parent is None:
        return None
    for el in parent.iter(tag):
        if el is parent:
            continue
        return el.text if el.text is not None else ""
    return None


def _parse_task_element(task_el) -> Task:
    uid = to_null_if_empty(_first_text(task_el, "UID"))
    wbs = to_null_if_empty(_first_text(task_el, "WBS"))
    duration_text = _first_text(task_el, "Duration")

    baseline_start = None
    baseline_finish = None
    for b in task_el.iter("Baseline"):
        if to_null_if_empty(_first_text(b, "Number")) == "0":
            baseline_start = to_null_if_empty(_first_text(b, "Start"))
            baseline_finish = to_null_if_empty(_first_text(b, "Finish"))
            break

    links = []
    for link in task_el.iter("PredecessorLink"):
        pred_uid = to_null_if_empty(_first_text(link, "PredecessorUID"))
        pred_type = to_null_if_empty(_first_text(link, "Type"))
        if not pred_uid and not pred_type:
            continue
        links.append(PredecessorLink(predecessor_uid=pred_uid, predecessor_type=pred_type))

    return Task(
        uid=uid,
        task_name=to_null_if_empty(_first_text(task_el, "Name")),
        wbs=wbs,
        wbs_parent=compute_wbs_parent(wbs),
        outline_level=parse_int_or_none(_first_text(task_el, "OutlineLevel")),
        start=to_null_if_empty(_first_text(task_el, "Start")),
        finish=to_null_if_empty(_first_text(task_el, "Finish")),
        duration=iso_duration_to_interval(duration_text),
        duration_raw=to_null_if_empty(duration_text),
        percent_complete=parse_float_or_none(_first_text(task_el, "PercentComplete")),
        actual_start=to_null_if_empty(_first_text(task_el, "ActualStart")),
        actual_finish=to_null_if_empty(_first_text(task_el, "ActualFinish")),
        fixed_cost=parse_float_or_none(_first_text(task_el, "FixedCost")),
        notes=to_null_if_empty(_first_text(task_el, "Notes")),
        predecessors=len(links) > 0,
        baseline_start=baseline_start,
        baseline_finish=baseline_finish,
        predecessor_links=links,
    )


def _parse_resource_element(resource_el) -> Resource:
    return Resource(
        uid=to_null_if_empty(_first_text(resource_el, "UID")),
        row_id=to_null_if_empty(_first_text(resource_el, "ID")),
        resource_name=to_null_if_empty(_first_text(resource_el, "Name")),
        type=to_null_if_empty(_first_text(resource_el, "Type")),
        max_units=parse_int_or_none(_first_text(resource_el, "MaxUnits")),
        standard_rate=parse_float_or_none(_first_text(resource_el, "StandardRate")),
    )


def _parse_assignment_element(assignment_el) -> Assignment | None:
    uid = to_null_if_empty(_first_text(assignment_el, "UID"))
    task_uid = to_null_if_empty(_first_text(assignment_el, "TaskUID"))
    resource_uid = to_null_if_empty(_first_text(assignment_el, "ResourceUID"))
    if not uid and not task_uid and not resource_uid:
        return None
    return Assignment(uid=uid, task_uid=task_uid, resource_uid=resource_uid)


def parse_msproject_xml(content: str | bytes, file_name: str | None = None) -> ParsedProject:
    """Parse an MS Project XML export.

    Raises:
        ParseError: content is empty or not well-formed XML.
    """
    if content is None or (isinstance(content, (str, bytes)) and not content.strip()):
        raise ParseError("No file content provided.")
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ParseError(
            "Invalid XML. Please upload a valid MS Project XML file.",
            details={"reason": str(exc)},
        ) from exc
    _strip_namespaces(root)

    tasks = [_parse_task_element(el) for el in root.iter("Task")]
    resources = [_parse_resource_element(el) for el in root.iter("Resource")]
    assignments = [a for a in (_parse_assignment_element(el) for el in root.iter("Assignment")) if a]

    size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
    parsed = ParsedProject(
        file_name=file_name,
        size=size,
        tasks=tasks,
        resources=resources,
        assignments=assignments,
    )
    logger.info(
        "Parsed MS Project XML %s: %d tasks, %d resources, %d assignments",
        file_name or "<upload>", len(tasks), len(resources), len(assignments),
    )
    return parsed


# ═════════════════════════════════════════════════════════════════════════
# Excel workbook (tabular path)
# ═════════════════════════════════════════════════════════════════════════

TASK_SHEETS = ("tasks", "task table", "task_table")
RESOURCE_SHEETS = ("resources", "resource table", "resource_table")
ASSIGNMENT_SHEETS = ("assignments", "assignment table", "assignment_table")

TASK_REQUIRED_HEADERS = ("unique id", "name")
RESOURCE_REQUIRED_HEADERS = ("unique id", "name")
ASSIGNMENT_REQUIRED_HEADERS = ("task unique id", "resource unique id")

# MS Project link type codes as written in the XML export.
LINK_TYPE_CODES = {"FF": "0", "FS": "1", "SF": "2", "SS": "3"}
_PREDECESSOR_TOKEN = re.compile(r"^\s*(\d+)\s*(FF|FS|SF|SS)?", re.IGNORECASE)


def _normalize_header(value) -> str:
    s = str(value or "").strip().lower().replace("_", " ")
    return re.sub(r"\s+", " ", s)


def _find_sheet(workbook, names):
    for ws in workbook.worksheets:
        if _normalize_header(ws.title) in {_normalize_header(n) for n in names}:
            return ws
    return None


def _cell_value(cell):
    """Cell value with percent-formatted numbers scaled to the XML scale (0.5 → 50)."""
    value = cell.value
    number_format = getattr(cell, "number_format", None) or ""
    if "%" in number_format and isinstance(value, (int, float)) and not isinstance(value, bool):
        return round(value * 100, 10)
    return value


def _sheet_rows(ws, sheet_label: str, required: tuple) -> list[dict]:
    """Read a sheet whose first row is the header into header-keyed dicts."""
    rows = [tuple(_cell_value(c) for c in r) for r in ws.iter_rows()]
    if not rows:
        return []
    header = [_normalize_header(c) for c in rows[0]]
    missing = [h for h in required if h not in header]
    if missing:
        raise ParseError(
            f'Could not find required headers in the "{sheet_label}" sheet: '
            + ", ".join(f'"{h.title()}"' for h in missing)
            + ".",
            details={"sheet": sheet_label, "missing": missing},
        )
    out = []
    for row in rows[1:]:
        if row is None or all(to_null_if_empty(c) is None for c in row):
            continue
        out.append({h: row[i] if i < len(row) else None for i, h in enumerate(header) if h})
    return out


def _parse_predecessor_cell(value) -> list[PredecessorLink]:
    links = []
    s = to_null_if_empty(value)
    if not s:
        return links
    for token in re.split(r"[,;]", s):
        m = _PREDECESSOR_TOKEN.match(token)
        if not m:
            continue
        code = LINK_TYPE_CODES[(m.group(2) or "FS").upper()]
        links.append(PredecessorLink(predecessor_uid=m.group(1), predecessor_type=code))
    return links


def _task_from_row(row: dict) -> Task:
    wbs = to_null_if_empty(row.get("wbs"))
    # A Duration column with a blank cell is an empty duration; no column means none.
    duration_text = (row.get("duration") or "") if "duration" in row else None
    links = _parse_predecessor_cell(row.get("unique id predecessors"))
    return Task(
        uid=to_null_if_empty(row.get("unique id")),
        task_name=to_null_if_empty(row.get("name")),
        wbs=wbs,
        wbs_parent=compute_wbs_parent(wbs),
        outline_level=parse_int_or_none(row.get("outline level")),
        start=to_null_if_empty(row.get("start")),
        finish=to_null_if_empty(row.get("finish")),
        duration=iso_duration_to_interval(duration_text),
        duration_raw=to_null_if_empty(duration_text),
        percent_complete=parse_float_or_none(row.get("% complete", row.get("percent complete"))),
        actual_start=to_null_if_empty(row.get("actual start")),
        actual_finish=to_null_if_empty(row.get("actual finish")),
        fixed_cost=parse_float_or_none(row.get("fixed cost")),
        notes=to_null_if_empty(row.get("notes")),
        predecessors=len(links) > 0,
        baseline_start=to_null_if_empty(row.get("baseline start")),
        baseline_finish=to_null_if_empty(row.get("baseline finish")),
        predecessor_links=links,
    )


def _resource_from_row(row: dict) -> Resource:
    return Resource(
        uid=to_null_if_empty(row.get("unique id")),
        row_id=to_null_if_empty(row.get("id")),
        resource_name=to_null_if_empty(row.get("name")),
        type=to_null_if_empty(row.get("type")),
        max_units=parse_int_or_none(row.get("max units")),
        standard_rate=parse_float_or_none(row.get("standard rate")),
    )


def _assignment_from_row(row: dict) -> Assignment | None:
    uid = to_null_if_empty(row.get("unique id"))
    task_uid = to_null_if_empty(row.get("task unique id"))
    resource_uid = to_null_if_empty(row.get("resource unique id"))
    if not uid and not task_uid and not resource_uid:
        return None
    return Assignment(uid=uid, task_uid=task_uid, resource_uid=resource_uid)


def parse_msproject_workbook(content: bytes, file_name: str | None = None) -> ParsedProject:
    """Parse an MS Project Excel export (Tasks / Resources / Assignments sheets).

    Raises:
        ParseError: unreadable workbook, no recognised sheet, or a sheet
            missing its required headers.
    """
    if not content:
        raise ParseError("No file content provided.")
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ParseError(
            "Could not read the Excel workbook. Please upload a valid .xlsx export.",
            details={"reason": str(exc)},
        ) from exc

    try:
        task_ws = _find_sheet(wb, TASK_SHEETS)
        resource_ws = _find_sheet(wb, RESOURCE_SHEETS)
        assignment_ws = _find_sheet(wb, ASSIGNMENT_SHEETS)
        if task_ws is None and resource_ws is None and assignment_ws is None:
            raise ParseError(
                'The workbook has no "Tasks", "Resources" or "Assignments" sheet.',
                details={"sheets": list(wb.sheetnames)},
            )

        tasks = []
        if task_ws is not None:
            tasks = [_task_from_row(r) for r in _sheet_rows(task_ws, "Tasks", TASK_REQUIRED_HEADERS)]
        resources = []
        if resource_ws is not None:
            resources = [
                _resource_from_row(r)
                for r in _sheet_rows(resource_ws, "Resources", RESOURCE_REQUIRED_HEADERS)
            ]
        assignments = []
        if assignment_ws is not None:
            assignments = [
                a for a in (
                    _assignment_from_row(r)
                    for r in _sheet_rows(assignment_ws, "Assignments", ASSIGNMENT_REQUIRED_HEADERS)
                ) if a
            ]
    finally:
        wb.close()

    logger.info(
        "Parsed MS Project workbook %s: %d tasks, %d resources, %d assignments",
        file_name or "<upload>", len(tasks), len(resources), len(assignments),
    )
    return ParsedProject(
        file_name=file_name,
        size=len(content),
        tasks=tasks,
        resources=resources,
        assignments=assignments,
    )


# ═════════════════════════════════════════════════════════════════════════
# TXT export + dispatch
# ═════════════════════════════════════════════════════════════════════════

TXT_SECTIONS = ("Resources", "Tasks", "Assignments")


def inspect_txt_sections(content: str | bytes, file_name: str | None = None) -> dict:
    """Report which ``<Section>...</Section>`` blocks a TXT export contains.

    Missing sections are reported, never raised; the caller decides how to
    present them.
    """
    if isinstance(content, bytes):
        text = content.decode("utf-8-sig", errors="replace")
        size = len(content)
    else:
        text = content or ""
        size = len(text.encode("utf-8"))
    present = [s for s in TXT_SECTIONS if f"<{s}>" in text and f"</{s}>" in text]
    result = {
        "file_name": file_name,
        "size": size,
        "has_resources": "Resources" in present,
        "has_tasks": "Tasks" in present,
        "has_assignments": "Assignments" in present,
        "present_sections": present,
        "present_count": len(present),
    }
    logger.debug("TXT section summary for %s: %s", file_name or "<upload>", present)
    return result


def parse_msproject_file(content: str | bytes, file_name: str | None = None) -> ParsedProject:
    """Dispatch to the XML or workbook parser by extension, then by magic bytes."""
    name = (file_name or "").lower()
    if name.endswith((".xlsx", ".xlsm")):
        return parse_msproject_workbook(content, file_name)
    if name.endswith(".xml"):
        return parse_msproject_xml(content, file_name)
    if isinstance(content, bytes) and content[:2] == b"PK":
        return parse_msproject_workbook(content, file_name)
    return parse_msproject_xml(content, file_name)
