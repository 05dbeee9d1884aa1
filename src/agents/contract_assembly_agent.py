from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from agents.clause_rules_engine import aggregate_risk
from drafting.contract import (
    Contract,
    ContractInfo,
    ContractMetadata,
    PipelineStages,
    ProjectInfo,
)
from drafting.errors import AssemblyError
from drafting.models import (
    Clause,
    ContractData,
    PaymentSchedule,
    ProjectTimeline,
    QuoteInfo,
)
from tools.logger import setup_logger
from utils.legal_context import LegalContext, format_clause_content

logger = setup_logger("contract-assembler")


# essential kind -> (categories, title keywords)
ESSENTIAL_RULES: Dict[str, tuple] = {
    "purpose": ({"purpose"}, ("목적",)),
    "payment": ({"payment"}, ("대금", "지급")),
    "termination": ({"termination"}, ("해지", "해제")),
}


def essential_kind(clause: Clause) -> Optional[str]:
    for kind, (categories, keywords) in ESSENTIAL_RULES.items():
        if clause.category in categories or any(k in clause.title for k in keywords):
            return kind
    return None


class ContractAssembler:
    """
    Builds the final contract from drafted clauses and the independently
    computed payment schedule and timeline.

    INVARIANTS:
    - clauses are numbered 1..N in assembly order
    - purpose, payment and termination clauses are always present
    - discountAmount = originalAmount - finalAmount
    - nothing is assembled from empty clauses or a non-positive amount
    """

    GENERATED_BY = "template-pipeline-system"

    # =========================================================
    # Public API
    # =========================================================

    def assemble(
        self,
        clauses: Sequence[Clause],
        schedule: PaymentSchedule,
        timeline: ProjectTimeline,
        quote: QuoteInfo,
        contract_data: ContractData,
        legal: LegalContext,
        *,
        stages: PipelineStages,
        mode: str,
        complexity: str,
        recommended_complexity: str,
        model: str,
        generated_by: Optional[str] = None,
        matched_template_ids: Sequence[str] = (),
        selection_fallback_used: bool = False,
        triggers: Sequence[str] = (),
        risk_level: Optional[str] = None,
    ) -> Contract:
        # -------------------------------------------------
        # Required upstream fields
        # -------------------------------------------------
        if not clauses:
            raise AssemblyError(
                "Cannot assemble a contract without clauses",
                details={"stages": stages.model_dump(by_alias=True)},
            )

        amount = quote.final_amount
        if amount is None or amount <= 0:
            raise AssemblyError(
                f"Cannot assemble a contract without a positive amount (got {amount!r})"
            )

        # -------------------------------------------------
        # Essentials, formatting, numbering
        # -------------------------------------------------
        ordered, injected = self.inject_essentials(list(clauses), legal, schedule, quote)
        final_clauses = self.renumber(ordered)

        # -------------------------------------------------
        # Contract info
        # -------------------------------------------------
        service_title = self._service_title(quote)
        original_amount = quote.original_amount or amount

        project = ProjectInfo(
            title=service_title,
            services=quote.services,
            total_amount=amount,
            original_amount=original_amount,
            discount_amount=original_amount - amount,
            duration=timeline.total_duration,
        )

        contract_info = ContractInfo(
            title=f"{service_title} 서비스 계약서",
            client=quote.client if quote.client.name else contract_data.client,
            provider=contract_data.provider,
            project=project,
        )

        metadata = ContractMetadata(
            generated_by=generated_by or self.GENERATED_BY,
            mode=mode,
            pipeline_stages=stages,
            complexity=complexity,
            recommended_complexity=recommended_complexity,
            model=model,
            service_count=len(quote.services) or 1,
            total_amount=amount,
            total_clauses=len(final_clauses),
            risk_level=risk_level or aggregate_risk(final_clauses),
            injected_essentials=injected,
            matched_template_ids=list(matched_template_ids),
            selection_fallback_used=selection_fallback_used,
            triggers=list(triggers),
            quote_sync=quote.from_quote,
        )

        if injected:
            logger.warning(f"Injected missing essential clauses: {injected}")
        logger.info(
            f"Assembled contract | clauses={len(final_clauses)} amount={int(amount):,} "
            f"stages={stages.model_dump()}"
        )

        return Contract(
            contract_info=contract_info,
            clauses=final_clauses,
            payment_schedule=schedule,
            project_timeline=timeline,
            metadata=metadata,
        )

    # =========================================================
    # Essentials
    # =========================================================

    def inject_essentials(
        self,
        clauses: List[Clause],
        legal: LegalContext,
        schedule: PaymentSchedule,
        quote: QuoteInfo,
    ):
        present = {essential_kind(c) for c in clauses}
        injected: List[str] = []
        builders: Dict[str, Callable[[], Clause]] = {
            "purpose": lambda: self._purpose_clause(legal, quote),
            "payment": lambda: self._payment_clause(legal, schedule),
            "termination": lambda: self._termination_clause(legal),
        }

        if "purpose" not in present:
            clauses.insert(0, builders["purpose"]())
            injected.append("purpose")

        if "payment" not in present:
            # Second position, right after the purpose clause
            clauses.insert(min(1, len(clauses)), builders["payment"]())
            injected.append("payment")

        if "termination" not in present:
            clauses.append(builders["termination"]())
            injected.append("termination")

        return clauses, injected

    def _purpose_clause(self, legal: LegalContext, quote: QuoteInfo) -> Clause:
        return Clause(
            id="essential_purpose",
            title="계약의 목적",
            category="purpose",
            essential=True,
            risk_level="low",
            content=(
                f"①본 계약은 {legal.client_name}(이하 \"발주자\")와 "
                f"{legal.provider_name}(이하 \"수행자\") 사이의 "
                f"{self._service_title(quote)} 서비스 제공에 관한 사항을 정함을 목적으로 한다."
            ),
        )

    def _payment_clause(self, legal: LegalContext, schedule: PaymentSchedule) -> Clause:
        lines = [f"①총 계약금액은 {legal.total_amount_text}으로 한다."]
        markers = "②③④"
        for marker, row in zip(markers, schedule.installments()):
            lines.append(
                f"{marker}{row['label']}: {row['rate']:g}% "
                f"({row['amount']:,}원) - {row['timing']}"
            )
        return Clause(
            id="essential_payment",
            title="대금 지급",
            category="payment",
            essential=True,
            risk_level="medium",
            content="\n".join(lines),
        )

    def _termination_clause(self, legal: LegalContext) -> Clause:
        return Clause(
            id="essential_termination",
            title="계약의 해지",
            category="termination",
            essential=True,
            risk_level="medium",
            content=(
                f"①당사자 일방이 계약을 위반한 경우 상대방은 {legal.notice_period} 이상의 "
                "기간을 정하여 시정을 요구하고, 시정되지 않으면 계약을 해지할 수 있다.\n"
                "②해지 시 이미 수행된 업무에 대한 대금은 정산한다."
            ),
        )

    # =========================================================
    # Numbering
    # =========================================================

    def renumber(self, clauses: List[Clause]) -> List[Clause]:
        """
        Copies with order 1..N; catalog and drafted clauses stay untouched.
        """
        return [
            clause.model_copy(update={
                "order": index,
                "essential": clause.essential or essential_kind(clause) is not None,
                "content": format_clause_content(clause.content),
            })
            for index, clause in enumerate(clauses, start=1)
        ]

    def _service_title(self, quote: QuoteInfo) -> str:
        if len(quote.services) > 1:
            return f"{len(quote.services)}개 서비스 통합 패키지"
        if quote.services and quote.services[0].name:
            return quote.services[0].name
        return quote.title or "서비스"
