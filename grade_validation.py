"""
Grade sheet validation and grade arithmetic.

Works on plain row tuples (as produced by openpyxl ``iter_rows(values_only=True)``)
so it can be exercised without a workbook. Grades follow the Vietnamese
10-point scale: 0 to 10 with at most one decimal place.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any

STUDENT_ID_RE = re.compile(r"^[A-Za-z0-9]{3,20}$")

REGULAR_COMPONENTS = ("regular_1", "regular_2", "regular_3", "regular_4")
MAX_REGULAR = len(REGULAR_COMPONENTS)

# Lowercased header keywords, checked in this order.
HEADER_KEYWORDS = [
    ("number", ("stt", "số thứ tự", "no.")),
    ("student_id", ("mã học sinh", "mã hs", "student id")),
    ("student_name", ("họ và tên", "họ tên", "tên", "name")),
    ("regular", ("điểm thường xuyên", "tx", "regular")),
    ("midterm", ("giữa kì", "giữa kỳ", "midterm")),
    ("final", ("cuối kì", "cuối kỳ", "final")),
    ("summary", ("tổng kết", "summary")),
    ("notes", ("ghi chú", "notes")),
]
HEADER_SCAN_ROWS = 10


@dataclass
class RowError:
    row_number: int
    field: str
    value: Any
    message: str
    student_id: str = ""
    severity: str = "error"

    def to_dict(self) -> dict:
        d = asdict(self)
        d["value"] = "" if self.value is None else str(self.value)
        return d


@dataclass
class ColumnLayout:
    student_id: int = -1
    student_name: int = -1
    number: int = -1
    regular: list[int] = field(default_factory=list)
    midterm: int | None = None
    final: int | None = None
    summary: int | None = None
    notes: int | None = None


@dataclass
class ImportValidation:
    rows: list[dict] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    statistics: dict = field(default_factory=lambda: {
        "total_rows": 0, "valid_rows": 0, "invalid_rows": 0, "empty_rows": 0,
        "duplicate_students": 0, "valid_grades": 0, "invalid_grades": 0,
    })

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "rows": self.rows,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": self.warnings,
            "statistics": self.statistics,
        }


# ── Cell validators ────────────────────────────────────────


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() in ("", "-")


def parse_grade_value(value: Any, label: str = "Grade") -> float | None:
    """Parse a grade cell. Blank or '-' is None; raises ValueError otherwise invalid."""
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f'{label}: "{value}" is not a valid number')
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            raise ValueError(f'{label}: "{value}" is not a valid number') from None
    if number != number or number < 0 or number > 10:
        raise ValueError(f"{label}: {value} must be between 0 and 10")
    if abs(round(number, 1) - number) > 1e-9:
        raise ValueError(f"{label}: {value} may have at most one decimal place")
    return round(number, 1)


def validate_student_id(value: Any) -> str:
    if _is_blank(value):
        raise ValueError("Student ID is required")
    text = str(value).strip()
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    if not STUDENT_ID_RE.match(text):
        raise ValueError(f'Student ID "{text}" must be 3-20 letters or digits')
    return text


def validate_student_name(value: Any) -> str:
    if _is_blank(value):
        raise ValueError("Student name is required")
    name = str(value).strip()
    if not 2 <= len(name) <= 50:
        raise ValueError(f'Student name "{name}" must be 2-50 characters')
    return name


# ── Sheet structure ────────────────────────────────────────


def find_header_row(rows: list[tuple]) -> int:
    """Index of the first row that looks like a column header, or -1."""
    for i, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        cells = [str(c).strip().lower() for c in row if c is not None]
        joined = " ".join(cells)
        if "stt" in cells or "mã học sinh" in joined or "họ và tên" in joined or "student id" in joined:
            return i
    return -1


def detect_columns(header: tuple) -> tuple[ColumnLayout, list[str]]:
    layout = ColumnLayout()
    for index, cell in enumerate(header):
        text = str(cell or "").strip().lower()
        if not text:
            continue
        for name, keywords in HEADER_KEYWORDS:
            if any(k == text if k == "no." else k in text for k in keywords):
                if name == "regular":
                    layout.regular.append(index)
                elif getattr(layout, name) in (-1, None):
                    setattr(layout, name, index)
                break

    errors = []
    if layout.student_id == -1:
        errors.append('Column "Student ID" not found')
    if layout.student_name == -1:
        errors.append('Column "Full name" not found')
    if not layout.regular and layout.midterm is None and layout.final is None and layout.summary is None:
        errors.append("No grade columns found")
    if len(layout.regular) > MAX_REGULAR:
        errors.append(f"At most {MAX_REGULAR} regular grade columns are supported")
    return layout, errors


def _cell(row: tuple, index: int | None) -> Any:
    if index is None or index < 0 or index >= len(row):
        return None
    return row[index]


def validate_grade_rows(rows: list[tuple]) -> ImportValidation:
    """Validate a class grade sheet given as row tuples.

    Returns the valid rows shaped like GradeImportRow payloads (plus
    ``row_number``) and row-addressed errors for everything else.
    """
    result = ImportValidation()
    stats = result.statistics

    header_index = find_header_row(rows)
    if header_index == -1:
        result.errors.append(RowError(0, "header", None, "Header row not found; use the provided template"))
        return result

    layout, header_errors = detect_columns(rows[header_index])
    if header_errors:
        result.errors.extend(RowError(header_index + 1, "header", None, msg) for msg in header_errors)
        return result

    seen: set[str] = set()
    for offset, row in enumerate(rows[header_index + 1:], start=header_index + 2):
        if all(_is_blank(c) for c in row):
            stats["empty_rows"] += 1
            continue
        stats["total_rows"] += 1
        row_errors: list[RowError] = []

        student_id = ""
        try:
            student_id = validate_student_id(_cell(row, layout.student_id))
        except ValueError as e:
            row_errors.append(RowError(offset, "student_id", _cell(row, layout.student_id), str(e)))

        full_name = ""
        try:
            full_name = validate_student_name(_cell(row, layout.student_name))
        except ValueError as e:
            row_errors.append(RowError(offset, "student_name", _cell(row, layout.student_name), str(e), student_id))

        if student_id and student_id in seen:
            stats["duplicate_students"] += 1
            row_errors.append(RowError(offset, "student_id", student_id,
                                       f'Student ID "{student_id}" appears more than once', student_id))
        elif student_id:
            seen.add(student_id)

        record: dict[str, Any] = {"row_number": offset, "student_id": student_id, "full_name": full_name}
        columns = [(REGULAR_COMPONENTS[i], col, f"Regular {i + 1}") for i, col in enumerate(layout.regular)]
        columns += [("midterm", layout.midterm, "Midterm"), ("final", layout.final, "Final"),
                    ("summary", layout.summary, "Summary")]
        for component, col, label in columns:
            if col is None:
                continue
            raw = _cell(row, col)
            try:
                value = parse_grade_value(raw, label)
            except ValueError as e:
                stats["invalid_grades"] += 1
                row_errors.append(RowError(offset, component, raw, str(e), student_id))
                continue
            if value is not None:
                stats["valid_grades"] += 1
            record[component] = value
        if layout.notes is not None and not _is_blank(_cell(row, layout.notes)):
            record["notes"] = str(_cell(row, layout.notes)).strip()

        if row_errors:
            stats["invalid_rows"] += 1
            result.errors.extend(row_errors)
        else:
            stats["valid_rows"] += 1
            result.rows.append(record)

    if stats["total_rows"] == 0:
        result.warnings.append("The sheet contains no student rows")
    return result


# ── Averages ───────────────────────────────────────────────


def subject_average(components: dict[str, float | None]) -> float | None:
    """Weighted subject average: regular x1, midterm x2, final x3.

    A recorded summary grade takes precedence over the computed value.
    """
    if components.get("summary") is not None:
        return components["summary"]
    total = 0.0
    weight = 0
    for key in REGULAR_COMPONENTS:
        if components.get(key) is not None:
            total += components[key]
            weight += 1
    for key, factor in (("midterm", 2), ("final", 3)):
        if components.get(key) is not None:
            total += components[key] * factor
            weight += factor
    if not weight:
        return None
    return round(total / weight, 1)


def overall_average(averages: list[float | None]) -> float | None:
    values = [a for a in averages if a is not None]
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def competition_rank(values: list[float | None]) -> list[int | None]:
    """1224-style ranks, highest first. Missing values are unranked."""
    present = [v for v in values if v is not None]
    return [None if v is None else 1 + sum(1 for other in present if other > v) for v in values]
