"""Unit tests for the search -> filter -> sort -> paginate pipeline."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import course_payloads, student_payloads
from coursedesk.domain.errors import ValidationError
from coursedesk.domain.kinds import COURSES, INSTRUCTORS, STUDENTS
from coursedesk.domain.view import (
    DateRange,
    ViewParameters,
    clamp_page,
    count_pages,
    derive,
    page_window,
    to_query,
)


@pytest.fixture
def students():
    return STUDENTS.parse_records(student_payloads())


@pytest.fixture
def courses():
    return COURSES.parse_records(course_payloads())


def test_banned_filter_pages_thirteen_records(students) -> None:
    params = ViewParameters(status_filter="banned", page_size=10)
    first = derive(students, params, STUDENTS)
    assert first.total_matching == 13
    assert first.total_pages == 2
    assert len(first.slice) == 10

    second = derive(students, params.with_changes(page=2), STUDENTS)
    assert len(second.slice) == 3
    assert all(record.status == "banned" for record in second.slice)


def test_paging_covers_every_match_exactly_once(students) -> None:
    params = ViewParameters(status_filter="active", sort_key="name_desc", page_size=5)
    seen: list[str] = []
    page = 1
    while True:
        view = derive(students, params.with_changes(page=page), STUDENTS)
        assert len(view.slice) <= params.page_size
        if not view.slice:
            break
        seen.extend(record.id for record in view.slice)
        page += 1
    expected = {record.id for record in students if record.status == "active"}
    assert sorted(seen) == sorted(expected)
    assert len(seen) == len(set(seen))


def test_empty_result_still_has_one_page(students) -> None:
    view = derive(students, ViewParameters(search_text="nobody-matches-this"), STUDENTS)
    assert view.slice == []
    assert view.total_matching == 0
    assert view.total_pages == 1


def test_page_past_the_end_returns_empty_slice(students) -> None:
    view = derive(students, ViewParameters(page=9, page_size=10), STUDENTS)
    assert view.slice == []
    assert view.total_pages == 3
    assert view.is_past_end


def test_metric_sort_is_stable_for_equal_ratings(courses) -> None:
    view = derive(courses, ViewParameters(sort_key="rating"), COURSES)
    # c1 and c2 share a 4.5 rating and keep their input order; c3 has none
    assert [record.id for record in view.slice] == ["c1", "c2", "c3"]

    reordered = derive(list(reversed(courses)), ViewParameters(sort_key="rating"), COURSES)
    assert [record.id for record in reordered.slice] == ["c2", "c1", "c3"]


def test_search_is_case_insensitive_across_fields(courses) -> None:
    by_instructor = derive(courses, ViewParameters(search_text="GRACE"), COURSES)
    assert {record.id for record in by_instructor.slice} == {"c1", "c3"}

    by_title = derive(courses, ViewParameters(search_text="brand"), COURSES)
    assert [record.id for record in by_title.slice] == ["c2"]


def test_newest_and_oldest_order_on_created_at(students) -> None:
    newest = derive(students, ViewParameters(page_size=3), STUDENTS)
    assert [record.id for record in newest.slice] == ["s25", "s24", "s23"]
    oldest = derive(students, ViewParameters(sort_key="oldest", page_size=3), STUDENTS)
    assert [record.id for record in oldest.slice] == ["s01", "s02", "s03"]


def test_title_sort_alias_and_price_sort(courses) -> None:
    titles = derive(courses, ViewParameters(sort_key="title_asc"), COURSES)
    assert [record.name for record in titles.slice] == ["Brand Strategy", "Interface Design", "Python Foundations"]
    cheapest = derive(courses, ViewParameters(sort_key="price_low"), COURSES)
    assert [record.id for record in cheapest.slice] == ["c3", "c1", "c2"]


def test_category_filter_applies_to_courses_only(courses, students) -> None:
    view = derive(courses, ViewParameters(category_filter="design"), COURSES)
    assert [record.id for record in view.slice] == ["c3"]
    assert derive(courses, ViewParameters(category_filter="all"), COURSES).total_matching == 3

    with pytest.raises(ValidationError) as exc:
        derive(students, ViewParameters(category_filter="design"), STUDENTS)
    assert exc.value.code == "view.category_unsupported"


def test_date_range_is_inclusive(courses) -> None:
    window = DateRange(
        start=datetime(2026, 1, 12, 10, 0, tzinfo=timezone.utc),
        end=datetime(2026, 1, 14, 10, 0, tzinfo=timezone.utc),
    )
    view = derive(courses, ViewParameters(date_range=window, sort_key="oldest"), COURSES)
    assert [record.id for record in view.slice] == ["c2", "c3"]


def test_unknown_sort_and_status_are_rejected(students) -> None:
    with pytest.raises(ValidationError) as sort_error:
        derive(students, ViewParameters(sort_key="rating"), STUDENTS)
    assert sort_error.value.code == "view.unknown_sort"

    with pytest.raises(ValidationError) as status_error:
        derive(students, ViewParameters(status_filter="suspended"), STUDENTS)
    assert status_error.value.code == "status.unknown"


def test_instructor_metric_sort_uses_aliased_fields() -> None:
    records = INSTRUCTORS.parse_records(
        [
            {"id": "a", "name": "A", "status": "active", "total_courses": 1},
            {"id": "b", "name": "B", "status": "active", "total_courses": 7},
            {"id": "c", "name": "C", "status": "active"},
        ]
    )
    view = derive(records, ViewParameters(sort_key="courses"), INSTRUCTORS)
    assert [record.id for record in view.slice] == ["b", "a", "c"]


def test_with_changes_validates_fields() -> None:
    params = ViewParameters()
    with pytest.raises(ValidationError) as unknown:
        params.with_changes(colour="blue")
    assert unknown.value.code == "view.unknown_parameter"
    with pytest.raises(ValidationError) as invalid:
        params.with_changes(page=0)
    assert invalid.value.code == "view.invalid"


def test_narrows_ignores_sort_and_page() -> None:
    params = ViewParameters()
    assert not params.narrows(params.with_changes(sort_key="oldest", page=3))
    assert params.narrows(params.with_changes(search_text="ada"))
    assert params.narrows(params.with_changes(page_size=50))


def test_page_helpers() -> None:
    assert count_pages(0, 10) == 1
    assert count_pages(21, 10) == 3
    assert clamp_page(7, 3) == 3
    assert clamp_page(0, 3) == 1
    assert page_window(10, 1) == [1, 2, 3, 4, 5]
    assert page_window(10, 6) == [4, 5, 6, 7, 8]
    assert page_window(10, 10) == [6, 7, 8, 9, 10]
    assert page_window(2, 2) == [1, 2]


def test_to_query_omits_unfiltered_values() -> None:
    assert to_query(ViewParameters(page=2, page_size=20)) == {"page": 2, "limit": 20, "sort": "newest"}
    query = to_query(ViewParameters(status_filter="banned", search_text="  ada ", category_filter="design"))
    assert query["status"] == "banned"
    assert query["search"] == "ada"
    assert query["category"] == "design"
