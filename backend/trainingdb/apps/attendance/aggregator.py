"""
Per-employee attendance statistics for one edition.

Pure functions only: callers load lessons, employees and attendance rows
and pass a lookup; nothing here touches the database. The attendance matrix
endpoint and both export formats read their figures from these objects.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import AttendanceStatus

MINIMUM_ATTENDANCE_PERCENTAGE = 75

StatusLookup = Callable[[str, str], Optional[AttendanceStatus]]


@dataclass(frozen=True)
class EmployeeAttendanceStats:
    employee_id: str
    employee_name: str
    total_lessons: int
    present: int
    absent: int
    justified: int
    percentage: int
    total_hours: float
    attended_hours: float
    below_minimum: bool

    def as_dict(self) -> dict:
        return asdict(self)


def resolve_status(recorded: Optional[AttendanceStatus]) -> AttendanceStatus:
    """A lesson with no attendance row counts as an absence."""
    if recorded is None:
        return AttendanceStatus.ABSENT
    return recorded


def attendance_percentage(attended: int, total_lessons: int) -> int:
    if total_lessons <= 0:
        return 0
    # Integer half-up rounding: 12.5 -> 13.
    return (200 * attended + total_lessons) // (2 * total_lessons)


def lookup_from_records(
    records: Iterable[Tuple[str, str, AttendanceStatus]],
) -> StatusLookup:
    """Build a lookup from (lesson_id, employee_id, status) triples."""
    table: Dict[Tuple[str, str], AttendanceStatus] = {
        (lesson_id, employee_id): status for lesson_id, employee_id, status in records
    }

    def lookup(lesson_id: str, employee_id: str) -> Optional[AttendanceStatus]:
        return table.get((lesson_id, employee_id))

    return lookup


def compute_employee_stats(lessons: Sequence, employee, lookup: StatusLookup) -> EmployeeAttendanceStats:
    present = absent = justified = 0
    attended_hours = 0.0
    total_hours = 0.0

    for lesson in lessons:
        hours = float(lesson.duration_hours or 0)
        total_hours += hours
        status = resolve_status(lookup(lesson.id, employee.id))
        if status == AttendanceStatus.PRESENT:
            present += 1
            attended_hours += hours
        elif status == AttendanceStatus.ABSENT_JUSTIFIED:
            justified += 1
            attended_hours += hours
        elif status == AttendanceStatus.ABSENT:
            absent += 1
        else:
            raise ValueError(f"Unhandled attendance status {status!r}")

    total_lessons = len(lessons)
    percentage = attendance_percentage(present + justified, total_lessons)
    return EmployeeAttendanceStats(
        employee_id=employee.id,
        employee_name=employee.display_name,
        total_lessons=total_lessons,
        present=present,
        absent=absent,
        justified=justified,
        percentage=percentage,
        total_hours=total_hours,
        attended_hours=attended_hours,
        below_minimum=total_lessons > 0 and percentage < MINIMUM_ATTENDANCE_PERCENTAGE,
    )


def compute_attendance_stats(
    lessons: Sequence,
    employees: Sequence,
    lookup: StatusLookup,
) -> List[EmployeeAttendanceStats]:
    """
    One stats record per employee, in the order given.

    `lessons` need `id` and `duration_hours`; `employees` need `id` and
    `display_name`.
    """
    return [compute_employee_stats(lessons, employee, lookup) for employee in employees]
