# backend/trainingdb/apps/attendance/exports.py
"""
CSV and PDF renderings of the attendance matrix.

Every figure comes from the matrix stats, so the two formats always agree
with each other and with the JSON matrix.
"""

from __future__ import annotations

import csv
import io
from typing import List, Union

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .models import AttendanceStatus

STATUS_CODES = {
    AttendanceStatus.PRESENT: "P",
    AttendanceStatus.ABSENT: "A",
    AttendanceStatus.ABSENT_JUSTIFIED: "G",
}

CSV_CONTENT_TYPE = "text/csv; charset=utf-8"
PDF_CONTENT_TYPE = "application/pdf"


def format_lesson_date(value) -> str:
    return value.strftime("%d/%m/%Y")


def format_hours(value: float) -> Union[int, float]:
    """8.0 -> 8, 1.5 -> 1.5."""
    value = float(value or 0)
    if value.is_integer():
        return int(value)
    return round(value, 2)


def status_code(matrix, lesson_id: str, employee_id: str) -> str:
    return STATUS_CODES[matrix.status_for(lesson_id, employee_id)]


def export_filename(edition_id: str, fmt: str) -> str:
    return f"attendance_{edition_id}.{fmt}"


def build_csv(matrix) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(
        ["Employee"]
        + [format_lesson_date(lesson.date) for lesson in matrix.lessons]
        + ["Present", "Absent", "Justified", "Percentage", "Total Hours", "Attended Hours"]
    )
    for employee in matrix.employees:
        stat = matrix.stats_for(employee.id)
        row: List = [employee.display_name]
        row.extend(status_code(matrix, lesson.id, employee.id) for lesson in matrix.lessons)
        row.extend(
            [
                stat.present,
                stat.absent,
                stat.justified,
                f"{stat.percentage}%",
                format_hours(stat.total_hours),
                format_hours(stat.attended_hours),
            ]
        )
        writer.writerow(row)
    return buffer.getvalue()


def pdf_rows(matrix) -> List[List[str]]:
    """Table rows of the PDF export, header first."""
    rows = [
        ["Employee"]
        + [format_lesson_date(lesson.date) for lesson in matrix.lessons]
        + ["%", "Hours"]
    ]
    for employee in matrix.employees:
        stat = matrix.stats_for(employee.id)
        rows.append(
            [employee.display_name]
            + [status_code(matrix, lesson.id, employee.id) for lesson in matrix.lessons]
            + [
                f"{stat.percentage}%",
                f"{format_hours(stat.attended_hours)}/{format_hours(stat.total_hours)}",
            ]
        )
    return rows


def build_pdf(matrix) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=10 * mm,
        bottomMargin=10 * mm,
        title="Attendance Register",
    )
    styles = getSampleStyleSheet()
    edition = matrix.edition

    elements = [
        Paragraph("Attendance Register", styles["Title"]),
        Paragraph(f"Course: {edition.course.title} (Ed. #{edition.edition_number})", styles["Normal"]),
    ]
    if matrix.lessons:
        first = format_lesson_date(matrix.lessons[0].date)
        last = format_lesson_date(matrix.lessons[-1].date)
        elements.append(Paragraph(f"Period: {first} - {last}", styles["Normal"]))
    elements.append(Paragraph(f"Total hours: {format_hours(matrix.total_hours)}", styles["Normal"]))
    elements.append(Spacer(1, 6 * mm))

    table = Table(pdf_rows(matrix), repeatRows=1)
    style = [
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e2e8f0")),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#94a3b8")),
        ("ALIGN", (1, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]
    for index, employee in enumerate(matrix.employees, start=1):
        stat = matrix.stats_for(employee.id)
        if stat is not None and stat.below_minimum:
            style.append(("TEXTCOLOR", (-2, index), (-2, index), colors.HexColor("#b91c1c")))
    table.setStyle(TableStyle(style))
    elements.append(table)

    doc.build(elements)
    return buffer.getvalue()
