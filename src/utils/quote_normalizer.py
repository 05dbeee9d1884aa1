import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from drafting.errors import InputValidationError
from drafting.models import (
    ContractData,
    PartyInfo,
    PaymentTerms,
    QuoteInfo,
    ServiceItem,
)
from tools.logger import setup_logger

logger = setup_logger("quote-normalizer")

DEFAULT_SERVICE_NAME = "서비스"
DEFAULT_DELIVERY_DAYS = 30
DEFAULT_INSPECTION_DAYS = 3

# schedule order -> (percentage field, timing field)
SCHEDULE_ORDER_FIELDS = {
    1: ("contract_percentage", "contract_timing"),
    2: ("progress_percentage", "progress_timing"),
    3: ("final_percentage", "final_timing"),
}


# -------------------------------------------------
# Raw field helpers
# -------------------------------------------------

def parse_json_field(value: Any, default: Any, label: str) -> Any:
    """
    Quote records store ``items`` / ``metadata`` either as JSON text or
    as already-decoded values.
    """
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as exc:
            logger.warning(f"Quote {label} is not valid JSON, ignoring it: {exc}")
            return default
    return value


def _number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first_number(*values: Any) -> Optional[float]:
    for value in values:
        number = _number(value)
        if number is not None and number > 0:
            return number
    return None


def _days(value: Any, default: int) -> int:
    number = _number(value)
    if number is None or number < 0:
        return default
    return int(number)


# -------------------------------------------------
# Input validation
# -------------------------------------------------

def validate_input_data(
    contract_data: ContractData,
    services: List[ServiceItem],
) -> None:
    """
    Reject contract input that cannot produce a contract.

    Raises:
        InputValidationError with every problem found.
    """
    errors: List[str] = []

    if not contract_data.client.name.strip():
        errors.append("고객명이 필요합니다")
    if not contract_data.provider.name.strip():
        errors.append("수행자명이 필요합니다")

    if not services:
        if not contract_data.service_name.strip():
            errors.append("서비스명이 필요합니다")
        if not contract_data.amount or contract_data.amount <= 0:
            errors.append("유효한 계약 금액이 필요합니다")

    if errors:
        raise InputValidationError(errors)


# -------------------------------------------------
# Payment terms
# -------------------------------------------------

def payment_terms_from_schedule(schedule: Any) -> Optional[PaymentTerms]:
    """
    Map ``paymentTerms.schedule`` entries ``{order, percentage[, timing]}``
    onto the three installments.

    Example:
        >>> payment_terms_from_schedule([
        ...     {"order": 1, "percentage": 30},
        ...     {"order": 2, "percentage": 40},
        ...     {"order": 3, "percentage": 30},
        ... ]).progress_percentage
        40.0
    """
    if not isinstance(schedule, list) or not schedule:
        return None

    values: Dict[str, Any] = {}
    for entry in schedule:
        if not isinstance(entry, dict):
            continue
        order = _number(entry.get("order"))
        fields = SCHEDULE_ORDER_FIELDS.get(int(order)) if order is not None else None
        if not fields:
            continue
        pct_field, timing_field = fields
        values[pct_field] = _number(entry.get("percentage")) or 0
        if entry.get("timing"):
            values[timing_field] = str(entry["timing"])

    if not values:
        return None
    return _build_payment_terms(values)


def payment_terms_from_mapping(raw: Any) -> Optional[PaymentTerms]:
    """
    Accept an already-normalised ``paymentTerms`` mapping
    (contractPercentage/progressPercentage/finalPercentage + timings).
    """
    if not isinstance(raw, dict):
        return None
    if isinstance(raw.get("schedule"), list):
        return payment_terms_from_schedule(raw["schedule"])

    values: Dict[str, Any] = {}
    for field_name, field in PaymentTerms.model_fields.items():
        for key in (field.alias, field_name):
            if key and raw.get(key) not in (None, ""):
                value = raw[key]
                values[field_name] = (
                    _number(value) or 0 if field_name.endswith("percentage") else str(value)
                )
                break

    if not values:
        return None
    return _build_payment_terms(values)


def _build_payment_terms(values: Dict[str, Any]) -> PaymentTerms:
    try:
        return PaymentTerms.model_validate(values)
    except ValidationError as exc:
        raise InputValidationError(
            [f"invalid payment terms: {err['loc']} {err['msg']}" for err in exc.errors()]
        ) from exc


# -------------------------------------------------
# Services
# -------------------------------------------------

def normalize_services(raw_items: Any) -> List[ServiceItem]:
    if not isinstance(raw_items, list):
        return []

    services: List[ServiceItem] = []
    for item in raw_items:
        if isinstance(item, ServiceItem):
            services.append(item)
            continue
        if not isinstance(item, dict):
            continue
        try:
            service = ServiceItem.model_validate(item)
        except ValidationError as exc:
            raise InputValidationError(
                [f"invalid service item: {err['loc']} {err['msg']}" for err in exc.errors()]
            ) from exc
        if not service.name:
            service = service.model_copy(update={"name": DEFAULT_SERVICE_NAME})
        services.append(service)
    return services


def services_from_contract_data(
    contract_data: ContractData,
    selected_services: List[ServiceItem],
) -> List[ServiceItem]:
    if selected_services:
        return list(selected_services)
    return [
        ServiceItem(
            name=contract_data.service_name or DEFAULT_SERVICE_NAME,
            description=contract_data.service_description,
            price=contract_data.amount or 0,
        )
    ]


def calculate_total_amount(
    contract_data: ContractData,
    selected_services: List[ServiceItem],
    quote_data: Optional[Dict[str, Any]],
) -> float:
    """
    Precedence: discounted quote amount, quote amount, sum of selected
    services, contract amount.
    """
    quote_data = quote_data or {}
    total = _first_number(quote_data.get("discountedAmount"), quote_data.get("amount"))
    if total is not None:
        return total

    if selected_services:
        service_total = sum(s.price for s in selected_services)
        if service_total > 0:
            return service_total

    return contract_data.amount or 0


# -------------------------------------------------
# Quote normalisation
# -------------------------------------------------

def _is_quote_record(quote_data: Optional[Dict[str, Any]]) -> bool:
    return bool(quote_data) and ("items" in quote_data or "metadata" in quote_data)


def normalize_quote(
    quote_data: Optional[Dict[str, Any]],
    contract_data: ContractData,
    selected_services: List[ServiceItem],
) -> QuoteInfo:
    """
    Build the ``QuoteInfo`` every stage works from.

    A persisted quote record (``items`` / ``metadata``) wins; otherwise the
    view is assembled from the contract data and the selected services.
    """
    if _is_quote_record(quote_data):
        return _from_quote_record(quote_data, contract_data, selected_services)
    return _from_contract_data(quote_data, contract_data, selected_services)


def _client_from(raw: Any, fallback: PartyInfo) -> PartyInfo:
    if isinstance(raw, PartyInfo):
        return raw
    if isinstance(raw, dict) and raw:
        return PartyInfo.model_validate(raw)
    return fallback


def _from_quote_record(
    quote_data: Dict[str, Any],
    contract_data: ContractData,
    selected_services: List[ServiceItem],
) -> QuoteInfo:
    items = parse_json_field(quote_data.get("items"), [], "items")
    metadata = parse_json_field(quote_data.get("metadata"), {}, "metadata")
    if not isinstance(metadata, dict):
        metadata = {}

    pricing = metadata.get("pricing") or {}
    options = metadata.get("options") or {}

    services = normalize_services(items) or services_from_contract_data(
        contract_data, selected_services
    )

    final_amount = _first_number(
        pricing.get("total"),
        quote_data.get("amount"),
        sum(s.price for s in services),
        contract_data.amount,
    ) or 0
    original_amount = _first_number(pricing.get("subtotal"), quote_data.get("amount")) or final_amount

    payment_terms = payment_terms_from_mapping(metadata.get("paymentTerms"))
    if payment_terms is None:
        payment_terms = payment_terms_from_mapping(quote_data.get("paymentTerms"))

    quote_id = _number(quote_data.get("id"))

    return QuoteInfo(
        id=int(quote_id) if quote_id is not None else None,
        title=str(quote_data.get("title") or contract_data.service_name or DEFAULT_SERVICE_NAME),
        services=services,
        client=_client_from(quote_data.get("client"), contract_data.client),
        payment_terms=payment_terms,
        delivery_days=_days(
            options.get("deliveryDays", contract_data.delivery_days), DEFAULT_DELIVERY_DAYS
        ),
        inspection_days=_days(
            options.get("inspectionDays", contract_data.inspection_days), DEFAULT_INSPECTION_DAYS
        ),
        duration=str(metadata.get("duration") or contract_data.duration or "30일"),
        original_amount=original_amount,
        discount_amount=original_amount - final_amount,
        final_amount=final_amount,
        from_quote=True,
    )


def _from_contract_data(
    quote_data: Optional[Dict[str, Any]],
    contract_data: ContractData,
    selected_services: List[ServiceItem],
) -> QuoteInfo:
    quote_data = quote_data or {}
    total = calculate_total_amount(contract_data, selected_services, quote_data)
    original = _first_number(quote_data.get("originalAmount")) or total
    services = services_from_contract_data(contract_data, selected_services)

    delivery = contract_data.delivery_days
    if delivery is None:
        delivery = quote_data.get("deliveryDays")
    inspection = contract_data.inspection_days
    if inspection is None:
        inspection = quote_data.get("inspectionDays")

    return QuoteInfo(
        id=None,
        title=contract_data.service_name or services[0].name or DEFAULT_SERVICE_NAME,
        services=services,
        client=contract_data.client,
        payment_terms=payment_terms_from_mapping(quote_data.get("paymentTerms")),
        delivery_days=_days(delivery, DEFAULT_DELIVERY_DAYS),
        inspection_days=_days(inspection, DEFAULT_INSPECTION_DAYS),
        duration=contract_data.duration or "30일",
        original_amount=original,
        discount_amount=original - total,
        final_amount=total,
        from_quote=bool(quote_data),
    )
