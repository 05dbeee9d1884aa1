import json

import pytest

from drafting.errors import InputValidationError
from drafting.models import ContractData, ServiceItem
from utils.quote_normalizer import (
    calculate_total_amount,
    normalize_quote,
    payment_terms_from_mapping,
    payment_terms_from_schedule,
    validate_input_data,
)

CONTRACT = ContractData.model_validate({
    "client": {"name": "홍길동"},
    "provider": {"name": "김개발"},
    "serviceName": "로고 디자인",
    "amount": 800_000,
})


def test_quote_record_with_json_fields():
    quote_data = {
        "id": 17,
        "title": "브랜딩 패키지",
        "amount": 3_300_000,
        "items": json.dumps([
            {"serviceName": "로고 디자인", "serviceDescription": "시안 3종", "totalPrice": 1_300_000},
            {"name": "명함 디자인", "price": 2_000_000},
        ], ensure_ascii=False),
        "metadata": json.dumps({
            "pricing": {"subtotal": 3_300_000, "total": 3_000_000},
            "paymentTerms": {"schedule": [
                {"order": 1, "percentage": 50},
                {"order": 3, "percentage": 50, "timing": "최종 납품 시"},
            ]},
            "options": {"deliveryDays": 0, "inspectionDays": None},
            "duration": "6주",
        }, ensure_ascii=False),
    }

    quote = normalize_quote(quote_data, CONTRACT, [])

    assert quote.id == 17
    assert quote.from_quote is True
    assert [s.name for s in quote.services] == ["로고 디자인", "명함 디자인"]
    assert quote.services[0].price == 1_300_000
    assert quote.final_amount == 3_000_000
    assert quote.original_amount == 3_300_000
    assert quote.discount_amount == 300_000
    assert quote.payment_terms.contract_percentage == 50
    assert quote.payment_terms.final_timing == "최종 납품 시"
    assert quote.delivery_days == 0
    assert quote.inspection_days == 3
    assert quote.duration == "6주"


def test_invalid_metadata_json_is_ignored():
    quote_data = {"amount": 1_000_000, "items": "[]", "metadata": "{not json"}

    quote = normalize_quote(quote_data, CONTRACT, [])

    assert quote.final_amount == 1_000_000
    assert quote.payment_terms is None
    assert quote.services[0].name == "로고 디자인"


def test_without_quote_services_drive_the_amount():
    services = [
        ServiceItem(name="로고 디자인", price=500_000),
        ServiceItem(name="명함 디자인", price=300_000),
    ]

    quote = normalize_quote(None, CONTRACT, services)

    assert quote.from_quote is False
    assert quote.final_amount == 800_000
    assert quote.delivery_days == 30
    assert len(quote.services) == 2


def test_total_amount_precedence():
    services = [ServiceItem(name="a", price=100)]

    assert calculate_total_amount(CONTRACT, services, {"discountedAmount": 90, "amount": 120}) == 90
    assert calculate_total_amount(CONTRACT, services, {"amount": 120}) == 120
    assert calculate_total_amount(CONTRACT, services, None) == 100
    assert calculate_total_amount(CONTRACT, [], None) == 800_000


def test_payment_terms_from_camel_case_mapping():
    terms = payment_terms_from_mapping({
        "contractPercentage": 30,
        "progressPercentage": "40",
        "finalPercentage": 30,
        "progressTiming": "중간 보고 시",
    })

    assert terms.progress_percentage == 40
    assert terms.progress_timing == "중간 보고 시"


def test_schedule_without_known_orders_is_ignored():
    assert payment_terms_from_schedule([{"order": 7, "percentage": 100}]) is None
    assert payment_terms_from_schedule("30/40/30") is None


def test_out_of_range_percentage_is_rejected():
    with pytest.raises(InputValidationError):
        payment_terms_from_schedule([{"order": 1, "percentage": 130}])


def test_input_validation_lists_every_problem():
    with pytest.raises(InputValidationError) as exc_info:
        validate_input_data(ContractData(), [])

    assert exc_info.value.errors == [
        "고객명이 필요합니다",
        "수행자명이 필요합니다",
        "서비스명이 필요합니다",
        "유효한 계약 금액이 필요합니다",
    ]


def test_services_replace_service_name_and_amount_requirements():
    data = ContractData.model_validate({"client": {"name": "a"}, "provider": {"name": "b"}})

    validate_input_data(data, [ServiceItem(name="번역")])
