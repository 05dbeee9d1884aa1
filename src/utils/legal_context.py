import re
from typing import List, Tuple

from drafting.models import (
    ContractData,
    PaymentSchedule,
    ProjectTimeline,
    QuoteInfo,
    StrictBaseModel,
)
from utils.payment_schedule import describe_payment_terms, round_half_up

DEFAULT_COURT = "서울중앙지방법원"

# Ordered: first keyword hit wins
JURISDICTION_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("서울",), "서울중앙지방법원"),
    (("부산",), "부산지방법원"),
    (("대구",), "대구지방법원"),
    (("인천",), "인천지방법원"),
    (("광주",), "광주지방법원"),
    (("대전",), "대전지방법원"),
    (("울산",), "울산지방법원"),
    (("수원", "경기"), "수원지방법원"),
]

# (minimum amount, notice period, late-payment penalty rate)
AMOUNT_BANDS = [
    (10_000_000, "30일", "15%"),
    (3_000_000, "14일", "12%"),
    (0, "7일", "10%"),
]

_CIRCLED_MARKERS = re.compile(r"(①|②|③|④|⑤|⑥|⑦|⑧|⑨|⑩)")

_DIGITS = ["", "일", "이", "삼", "사", "오", "육", "칠", "팔", "구"]
_GROUP_UNITS = ["", "만", "억", "조"]


class LegalContext(StrictBaseModel):
    """
    Contract-specific legal terms shared by the drafting prompt and the
    fallback clauses.
    """

    client_name: str
    provider_name: str
    total_amount: int
    total_amount_text: str
    payment_text: str
    payment_from_quote: bool
    jurisdiction: str
    notice_period: str
    penalty_rate: str
    delivery_info: str
    inspection_info: str
    duration: str
    start_date: str
    end_date: str


def get_jurisdiction(client_info: str) -> str:
    """
    Example:
        >>> get_jurisdiction("부산 해운대구 카페")
        '부산지방법원'
    """
    info = (client_info or "").lower()
    for keywords, court in JURISDICTION_KEYWORDS:
        if any(k in info for k in keywords):
            return court
    return DEFAULT_COURT


def _band(amount: float) -> Tuple[int, str, str]:
    for band in AMOUNT_BANDS:
        if amount >= band[0]:
            return band
    return AMOUNT_BANDS[-1]


def get_notice_period(amount: float) -> str:
    return _band(amount)[1]


def get_penalty_rate(amount: float) -> str:
    return _band(amount)[2]


def convert_to_korean_money(amount: int) -> str:
    """
    Spell an amount in Korean number words.

    Example:
        >>> convert_to_korean_money(1_000_000)
        '일백만원'
        >>> convert_to_korean_money(12_500_000)
        '일천이백오십만원'
    """
    amount = int(amount)
    if amount <= 0:
        return "영원"

    result = ""
    unit_index = 0
    while amount > 0 and unit_index < len(_GROUP_UNITS):
        segment = amount % 10000
        if segment:
            text = ""
            for value, suffix in (
                (segment // 1000, "천"),
                (segment % 1000 // 100, "백"),
                (segment % 100 // 10, "십"),
                (segment % 10, ""),
            ):
                if value:
                    text += _DIGITS[value] + suffix
            result = text + _GROUP_UNITS[unit_index] + result
        amount //= 10000
        unit_index += 1

    return result + "원"


def format_amount_with_korean(amount: float) -> str:
    """
    Example:
        >>> format_amount_with_korean(1_000_000)
        '1,000,000원(일백만원, 부가세별도)'
    """
    value = round_half_up(amount)
    return f"{value:,}원({convert_to_korean_money(value)}, 부가세별도)"


def format_clause_content(content: str) -> str:
    """
    Put every circled sub-point marker on its own line.
    """
    if not content:
        return ""
    formatted = _CIRCLED_MARKERS.sub(r"\n\1", content)
    formatted = re.sub(r"\n{2,}(?=[①-⑩])", "\n", formatted)
    return formatted.strip()


def _delivery_info(days: int) -> str:
    if days == 0:
        return "납품기한: 0일(당일)"
    if days == 1:
        return "납품기한: 1일(익일)"
    return f"납품기한: {days}일"


def _inspection_info(days: int) -> str:
    if days == 0:
        return "검수기간: 0일(즉시)"
    return f"검수기간: {days}일"


def build_legal_context(
    contract_data: ContractData,
    quote: QuoteInfo,
    schedule: PaymentSchedule,
    timeline: ProjectTimeline,
) -> LegalContext:
    amount = quote.final_amount
    client = quote.client if quote.client.name else contract_data.client

    return LegalContext(
        client_name=client.name or "발주자",
        provider_name=contract_data.provider.name or "수행자",
        total_amount=round_half_up(amount),
        total_amount_text=format_amount_with_korean(amount),
        payment_text=describe_payment_terms(schedule, amount),
        payment_from_quote=schedule.is_from_quote,
        jurisdiction=get_jurisdiction(client.company or client.name),
        notice_period=get_notice_period(amount),
        penalty_rate=get_penalty_rate(amount),
        delivery_info=_delivery_info(quote.delivery_days),
        inspection_info=_inspection_info(quote.inspection_days),
        duration=timeline.total_duration,
        start_date=timeline.start_date or "",
        end_date=timeline.end_date or "",
    )
