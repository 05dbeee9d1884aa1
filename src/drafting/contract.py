from typing import Any, Dict, List, Optional

from pydantic import Field

from drafting.models import (
    Clause,
    PartyInfo,
    PaymentSchedule,
    ProjectTimeline,
    ServiceItem,
    StrictBaseModel,
)


class ProjectInfo(StrictBaseModel):
    title: str
    services: List[ServiceItem]
    total_amount: float
    original_amount: float
    discount_amount: float
    duration: str


class ContractInfo(StrictBaseModel):
    title: str
    client: PartyInfo
    provider: PartyInfo
    project: ProjectInfo


class PipelineStages(StrictBaseModel):
    """
    Stage counts stamped on every contract for debugging and audit.
    """

    templates_matched: int = 0
    clauses_selected: int = 0
    clauses_completed: int = 0


class ContractMetadata(StrictBaseModel):
    generated_by: str
    mode: str
    pipeline_stages: PipelineStages
    complexity: str
    recommended_complexity: str
    model: str
    service_count: int
    total_amount: float
    total_clauses: int
    risk_level: str = "medium"
    injected_essentials: List[str] = Field(default_factory=list)
    matched_template_ids: List[str] = Field(default_factory=list)
    selection_fallback_used: bool = False
    triggers: List[str] = Field(default_factory=list)
    quote_sync: bool = False
    processing_time_ms: Optional[int] = None


class Contract(StrictBaseModel):
    """
    Assembled contract aggregate.

    ``clauses`` order is the assembly order and ``order`` runs 1..N.
    """

    contract_info: ContractInfo
    clauses: List[Clause]
    payment_schedule: PaymentSchedule
    project_timeline: ProjectTimeline
    metadata: ContractMetadata

    @property
    def clause_titles(self) -> List[str]:
        return [c.title for c in self.clauses]


# -------------------------------------------------------------------
# Persistence records
# -------------------------------------------------------------------

class ClauseRow(StrictBaseModel):
    contract_id: int
    type: str
    title: str
    content: str
    order: int
    risk_level: str
    essential: bool


class ContractRecord(StrictBaseModel):
    content: Dict[str, Any]
    metadata: Dict[str, Any]
    clauses: List[Dict[str, Any]]
    status: str = "draft"


# -------------------------------------------------------------------
# Entry point result
# -------------------------------------------------------------------

class GenerationResult(StrictBaseModel):
    success: bool
    contract: Optional[Contract] = None
    error: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    saved_contract_id: Optional[int] = None
