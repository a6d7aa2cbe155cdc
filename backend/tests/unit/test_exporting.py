from __future__ import annotations

import csv
import io
from datetime import date

from conftest import course_payloads
from coursedesk.domain.exporting import export_filename, render_csv
from coursedesk.domain.kinds import COURSES, STUDENTS


def test_course_export_uses_column_titles() -> None:
    records = COURSES.parse_records(course_payloads())
    rows = list(csv.reader(io.StringIO(render_csv(COURSES, records))))

    assert rows[0] == [
        "Course ID",
        "Title",
        "Instructor",
        "Category",
        "Price",
        "Status",
        "Enrolled Students",
        "Rating",
        "Created At",
    ]
    assert rows[1][:6] == ["c1", "Python Foundations", "Grace Hopper", "programming", "49", "pending"]
    assert rows[1][8] == "2026-01-10T10:00:00+00:00"
    # missing metrics export as blanks, not zeros
    assert rows[3][6:8] == ["", ""]


def test_people_export_quotes_commas() -> None:
    records = STUDENTS.parse_records([{"id": "s1", "name": "Lovelace, Ada", "email": "ada@x.com", "status": "active"}])
    text = render_csv(STUDENTS, records)
    assert text.splitlines()[1] == 's1,"Lovelace, Ada",ada@x.com,active,'


def test_export_filename() -> None:
    assert export_filename(COURSES, date(2026, 3, 2)) == "courses_export_2026-03-02.csv"
