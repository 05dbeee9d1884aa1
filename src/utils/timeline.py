import re
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from drafting.errors import InputValidationError
from drafting.models import Milestone, ProjectTimeline

DEFAULT_DURATION = "30일"
DEFAULT_DURATION_DAYS = 30

_DURATION_PATTERN = re.compile(r"(\d+)\s*(일|주|개월|월)")

UNIT_DAYS = {
    "일": 1,
    "주": 7,
    "개월": 30,
    "월": 30,
}

SHORT_PLAN = [
    ("전체 작업", "전체 기간"),
]

THREE_PHASE_PLAN = [
    ("기획 및 설계", "1주"),
    ("개발/제작", "2-3주"),
    ("검토 및 수정", "마지막 주"),
]

FIVE_PHASE_PLAN = [
    ("기획 및 설계", "첫 2주"),
    ("1차 개발/제작", "3-6주"),
    ("중간 검토", "1주"),
    ("2차 개발/제작", "2-4주"),
    ("최종 검토 및 완성", "마지막 2주"),
]


def parse_duration_to_days(duration: Optional[str]) -> int:
    """
    Convert a Korean duration string into days.

    Example:
        >>> parse_duration_to_days("3개월")
        90
        >>> parse_duration_to_days("2 주")
        14
    """
    if not duration or not isinstance(duration, str):
        return DEFAULT_DURATION_DAYS

    match = _DURATION_PATTERN.search(duration)
    if not match:
        return DEFAULT_DURATION_DAYS

    number, unit = int(match.group(1)), match.group(2)
    return number * UNIT_DAYS[unit]


def build_milestones(duration_days: int) -> List[Milestone]:
    if duration_days <= 14:
        plan = SHORT_PLAN
    elif duration_days <= 30:
        plan = THREE_PHASE_PLAN
    else:
        plan = FIVE_PHASE_PLAN

    return [Milestone(phase=phase, duration=span) for phase, span in plan]


def _coerce_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Raises:
        InputValidationError for anything that is not an ISO date.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise InputValidationError(
            [f"시작일은 YYYY-MM-DD 형식이어야 합니다: {value!r}"]
        ) from exc


def calculate_project_dates(start_date, duration_days: int) -> dict:
    """
    Start/end dates as ISO strings; end = start + duration.
    """
    start = _coerce_date(start_date) or date.today()
    end = start + timedelta(days=duration_days)
    return {"start_date": start.isoformat(), "end_date": end.isoformat()}


def generate_timeline(
    duration: Optional[str],
    start_date: Union[str, date, datetime, None] = None,
) -> ProjectTimeline:
    """
    Build the project timeline for a duration string.

    ``start_date`` is injectable so results are reproducible; today's date
    is used otherwise.
    """
    total_duration = duration or DEFAULT_DURATION
    duration_days = parse_duration_to_days(total_duration)
    dates = calculate_project_dates(start_date, duration_days)

    return ProjectTimeline(
        duration_days=duration_days,
        total_duration=total_duration,
        milestones=build_milestones(duration_days),
        start_date=dates["start_date"],
        end_date=dates["end_date"],
    )
