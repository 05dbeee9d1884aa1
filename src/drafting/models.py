from typing import Any, Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


RiskLevel = Literal["low", "medium", "high"]
ComplexityTier = Literal["simple", "standard", "detailed"]
GenerationMode = Literal["pipeline", "rules"]

RISK_ORDER = {"low": 0, "medium": 1, "high": 2}


# -------------------------------------------------------------------
# Base models
# -------------------------------------------------------------------

class StrictBaseModel(BaseModel):
    """
    Engine-owned structures. Unknown fields are rejected and everything
    serialises with camelCase aliases.
    """

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class InputModel(BaseModel):
    """
    Records handed over by the persistence layer or the caller.
    Unknown fields are ignored.
    """

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# -------------------------------------------------------------------
# Clauses & templates
# -------------------------------------------------------------------

class Clause(StrictBaseModel):
    """
    A titled unit of contract text.

    Catalog clauses and clauses attached to a contract are frozen; the
    assembler renumbers by producing copies.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content: str = ""
    category: str = "general"
    essential: bool = False
    risk_level: RiskLevel = "medium"
    order: int = Field(default=1, ge=1)

    triggers: FrozenSet[str] = frozenset()
    conflicts: FrozenSet[str] = frozenset()
    alternatives: FrozenSet[str] = frozenset()

    # Provenance for clauses that came from a template candidate
    template_id: Optional[str] = None


class ClauseStub(StrictBaseModel):
    """
    Candidate clause inside a template: title and category only, the
    legal text is synthesized per contract.
    """

    title: str
    category: str = "general"
    summary: Optional[str] = None
    essential: bool = False
    risk_level: RiskLevel = "medium"

    template_id: Optional[str] = None
    template_name: Optional[str] = None
    template_category: Optional[str] = None


class Template(StrictBaseModel):
    id: str
    name: str
    category: str
    industry: str = "general"
    complexity: ComplexityTier = "standard"
    description: str = ""
    clauses: List[ClauseStub] = Field(default_factory=list)
    popularity: int = Field(default=0, ge=0)

    @field_validator("id", mode="before")
    def coerce_id(cls, value):
        return str(value)


# -------------------------------------------------------------------
# Caller / quote input
# -------------------------------------------------------------------

class PartyInfo(InputModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    service_category: str = ""


class ServiceItem(InputModel):
    name: str = ""
    description: str = ""
    price: float = 0
    quantity: int = 1

    @model_validator(mode="before")
    @classmethod
    def accept_quote_item_keys(cls, data: Any) -> Any:
        # Quote items use serviceName/serviceDescription/totalPrice/unitPrice
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data.setdefault("name", data.get("serviceName") or "")
        data.setdefault("description", data.get("serviceDescription") or "")
        if data.get("price") in (None, ""):
            data["price"] = (
                data.get("totalPrice")
                or data.get("unitPrice")
                or 0
            )
        return data


class ContractData(InputModel):
    client: PartyInfo = Field(default_factory=PartyInfo)
    provider: PartyInfo = Field(default_factory=PartyInfo)
    service_name: str = ""
    service_description: str = ""
    amount: Optional[float] = None
    duration: Optional[str] = None
    start_date: Optional[str] = None
    delivery_days: Optional[int] = None
    inspection_days: Optional[int] = None


class PaymentTerms(StrictBaseModel):
    """
    Installment percentages taken from the originating quote.
    """

    contract_percentage: float = Field(default=0, ge=0, le=100)
    progress_percentage: float = Field(default=0, ge=0, le=100)
    final_percentage: float = Field(default=0, ge=0, le=100)

    contract_timing: str = "계약과 동시"
    progress_timing: str = "중간 납품 시"
    final_timing: str = "검수완료시"

    @property
    def total_percentage(self) -> float:
        return (
            self.contract_percentage
            + self.progress_percentage
            + self.final_percentage
        )

    @property
    def is_empty(self) -> bool:
        return self.total_percentage == 0


class QuoteInfo(StrictBaseModel):
    """
    Normalised view of a quote used by every stage of the engine.
    """

    id: Optional[int] = None
    title: str = "서비스"
    services: List[ServiceItem] = Field(default_factory=list)
    client: PartyInfo = Field(default_factory=PartyInfo)
    payment_terms: Optional[PaymentTerms] = None
    delivery_days: int = 30
    inspection_days: int = 3
    duration: str = "30일"

    original_amount: float = 0
    discount_amount: float = 0
    final_amount: float = 0

    from_quote: bool = False


class GenerationOptions(InputModel):
    complexity: Optional[ComplexityTier] = None
    save_to_database: bool = True
    mode: Optional[GenerationMode] = None
    project_type: str = "standard"
    custom_triggers: List[str] = Field(default_factory=list)


# -------------------------------------------------------------------
# Derived values
# -------------------------------------------------------------------

class SelectionCriteria(StrictBaseModel):
    """
    Ephemeral value object derived from quote + services. Never persisted.
    """

    service_type: str
    industry: str
    complexity_tier: ComplexityTier
    complexity_score: int
    amount: float
    duration_days: int


class PaymentSchedule(StrictBaseModel):
    down_rate: float
    middle_rate: float
    final_rate: float

    down_amount: int
    middle_amount: int
    final_amount: int

    is_from_quote: bool

    down_timing: str = "계약과 동시"
    middle_timing: str = "중간 납품 시"
    final_timing: str = "검수완료시"

    @property
    def total_amount(self) -> int:
        return self.down_amount + self.middle_amount + self.final_amount

    def installments(self) -> List[Dict[str, Any]]:
        """
        Non-zero installments in payment order.
        """
        rows = [
            ("계약금", self.down_rate, self.down_amount, self.down_timing),
            ("중도금", self.middle_rate, self.middle_amount, self.middle_timing),
            ("잔금", self.final_rate, self.final_amount, self.final_timing),
        ]
        return [
            {"label": label, "rate": rate, "amount": amount, "timing": timing}
            for label, rate, amount, timing in rows
            if rate > 0
        ]


class Milestone(StrictBaseModel):
    phase: str
    duration: str


class ProjectTimeline(StrictBaseModel):
    duration_days: int
    total_duration: str
    milestones: List[Milestone]
    start_date: Optional[str] = None
    end_date: Optional[str] = None
