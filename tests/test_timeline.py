import pytest

from drafting.errors import InputValidationError
from utils.timeline import (
    build_milestones,
    calculate_project_dates,
    generate_timeline,
    parse_duration_to_days,
)


def test_parse_korean_durations():
    assert parse_duration_to_days("3개월") == 90
    assert parse_duration_to_days("2주") == 14
    assert parse_duration_to_days("10 일") == 10
    assert parse_duration_to_days("6월") == 180


def test_unparseable_duration_defaults_to_30_days():
    assert parse_duration_to_days(None) == 30
    assert parse_duration_to_days("") == 30
    assert parse_duration_to_days("협의 후 결정") == 30


def test_three_month_timeline_has_five_phases():
    timeline = generate_timeline("3개월", start_date="2026-01-01")

    assert timeline.duration_days == 90
    assert timeline.total_duration == "3개월"
    assert len(timeline.milestones) == 5
    assert "중간 검토" in [m.phase for m in timeline.milestones]
    assert timeline.start_date == "2026-01-01"
    assert timeline.end_date == "2026-04-01"


def test_milestone_plans_by_length():
    assert [m.phase for m in build_milestones(14)] == ["전체 작업"]
    assert len(build_milestones(30)) == 3
    assert len(build_milestones(31)) == 5


def test_missing_duration_uses_default_label():
    timeline = generate_timeline(None, start_date="2026-03-02")

    assert timeline.total_duration == "30일"
    assert timeline.duration_days == 30


def test_project_dates_are_iso_strings():
    dates = calculate_project_dates("2026-02-20T09:00:00", 10)

    assert dates == {"start_date": "2026-02-20", "end_date": "2026-03-02"}


def test_non_iso_start_date_is_an_input_error():
    with pytest.raises(InputValidationError) as exc_info:
        generate_timeline("30일", start_date="2026/01/05")

    assert "2026/01/05" in exc_info.value.errors[0]


def test_blank_start_date_means_today():
    timeline = generate_timeline("30일", start_date="  ")

    assert timeline.start_date is not None
