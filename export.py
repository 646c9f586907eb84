"""PDF report generation using fpdf2."""

from __future__ import annotations

import unicodedata
from datetime import date

from fpdf import FPDF

REPORT_COLUMNS = [
    ("regular_1", "Reg 1"),
    ("regular_2", "Reg 2"),
    ("regular_3", "Reg 3"),
    ("regular_4", "Reg 4"),
    ("midterm", "Midterm"),
    ("final", "Final"),
    ("summary", "Summary"),
]


def _safe(text: str) -> str:
    """Fold text to latin-1 so core Helvetica can render it (Vietnamese loses its tone marks)."""
    text = (
        text
        .replace("—", "-")
        .replace("–", "-")
        .replace("‘", "'")
        .replace("’", "'")
        .replace("“", '"')
        .replace("”", '"')
        .replace("…", "...")
        .replace("đ", "d")
        .replace("Đ", "D")
    )
    try:
        text.encode("latin-1")
        return text
    except UnicodeEncodeError:
        folded = unicodedata.normalize("NFKD", text)
        stripped = "".join(ch for ch in folded if not unicodedata.combining(ch))
        return stripped.encode("latin-1", "replace").decode("latin-1")


def _fmt(value) -> str:
    if value is None:
        return "-"
    return f"{value:.1f}" if isinstance(value, float) else str(value)


def generate_student_report_pdf(report: dict, school_name: str = "") -> bytes:
    """Render one student's grades for a reporting period and return the PDF bytes.

    ``report`` is the dict built by ``actions.grades.student_report_data``.
    """
    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)

    _render_cover(pdf, report, school_name)
    _render_subjects(pdf, report)
    _render_footer(pdf)

    return bytes(pdf.output())


# ── Helpers ────────────────────────────────────────────────────


def _section_title(pdf: FPDF, text: str) -> None:
    pdf.set_font("Helvetica", "B", 12)
    pdf.set_text_color(79, 70, 229)
    pdf.cell(0, 8, _safe(text), new_x="LMARGIN", new_y="NEXT")
    pdf.set_text_color(0, 0, 0)
    pdf.ln(2)


def _cell(pdf: FPDF, w, h, text, **kwargs) -> None:
    """Safe cell that strips non-latin-1 chars."""
    pdf.cell(w, h, _safe(str(text)), **kwargs)


# ── Cover block ───────────────────────────────────────────────


def _render_cover(pdf: FPDF, report: dict, school_name: str) -> None:
    pdf.add_page()
    student = report["student"]
    period = report["period"]
    cls = report.get("class")

    pdf.set_fill_color(79, 70, 229)
    pdf.rect(0, 0, 210, 45, "F")
    pdf.set_text_color(255, 255, 255)
    pdf.set_font("Helvetica", "B", 20)
    pdf.set_xy(15, 10)
    _cell(pdf, 0, 10, school_name or "EduConnect")
    pdf.set_font("Helvetica", "", 13)
    pdf.set_xy(15, 22)
    _cell(pdf, 0, 8, "Student Grade Report")
    pdf.set_font("Helvetica", "", 9)
    pdf.set_xy(15, 32)
    pdf.cell(0, 6, f"Generated {date.today().strftime('%d %B %Y')}")
    pdf.set_text_color(0, 0, 0)
    pdf.set_y(55)

    _section_title(pdf, "Student Information")
    pdf.set_font("Helvetica", "", 10)
    lines = [
        f"Name: {student['full_name']}",
        f"Student ID: {student.get('student_id') or '-'}",
        f"Class: {cls['name'] if cls else '-'}",
        f"Period: {period['name']} ({period.get('semester_name', '')} {period.get('academic_year_name', '')})",
    ]
    for line in lines:
        _cell(pdf, 0, 6, line, new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)


# ── Subject table ─────────────────────────────────────────────


def _render_subjects(pdf: FPDF, report: dict) -> None:
    _section_title(pdf, "Subject Grades")

    col_w = [46] + [16] * len(REPORT_COLUMNS) + [18]
    headers = ["Subject"] + [label for _, label in REPORT_COLUMNS] + ["Average"]

    pdf.set_font("Helvetica", "B", 8)
    pdf.set_fill_color(241, 245, 249)
    for w, h in zip(col_w, headers):
        _cell(pdf, w, 7, h, border=1, fill=True, align="C")
    pdf.ln()

    pdf.set_font("Helvetica", "", 8)
    if not report["subjects"]:
        _cell(pdf, sum(col_w), 7, "No grades recorded for this period", border=1, align="C")
        pdf.ln()
    for entry in report["subjects"]:
        row = [entry["subject_name"][:28]]
        row += [_fmt(entry["components"].get(c)) for c, _ in REPORT_COLUMNS]
        row.append(_fmt(entry["average"]))
        for i, (w, val) in enumerate(zip(col_w, row)):
            _cell(pdf, w, 6, val, border=1, align="L" if i == 0 else "C")
        pdf.ln()

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 11)
    _cell(pdf, 0, 7, f"Overall average: {_fmt(report['overall_average'])}", new_x="LMARGIN", new_y="NEXT")


def _render_footer(pdf: FPDF) -> None:
    pdf.ln(8)
    pdf.set_font("Helvetica", "I", 8)
    pdf.set_text_color(150, 150, 150)
    pdf.cell(0, 5, "Generated by EduConnect", align="C")
    pdf.set_text_color(0, 0, 0)
