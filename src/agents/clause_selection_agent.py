import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from agents.llm_facade import ContractLLMFacade
from drafting.errors import NoCandidatesError, TextGenerationError
from drafting.models import ClauseStub, QuoteInfo, Template
from drafting.schemas import ClauseSelectionSchema
from tools.logger import setup_logger
from tools.response_repair_parser import parse_generated_json
from utils.schema_factory import build_model

logger = setup_logger("clause-selector")

DEFAULT_TARGET_RANGES: Dict[str, Tuple[int, int]] = {
    "simple": (6, 8),
    "standard": (10, 12),
    "detailed": (15, 20),
}
DEFAULT_FALLBACK_COUNT = 10

SELECTION_GUIDES = {
    "simple": (
        "핵심 필수 조항만 선택. 과도한 세부사항 제외",
        "반드시 {high}개 이하로 제한하세요. 더 적어도 좋습니다.",
    ),
    "standard": (
        "표준적인 계약서 수준. 필수사항과 보호조항 균형",
        "{low}-{high}개 범위를 엄격히 지켜주세요.",
    ),
    "detailed": (
        "포괄적이고 상세한 보호 조항 포함. 리스크 관리 중시",
        "반드시 {low}개 이상 선택하세요. 상세한 보호를 위해 더 많은 조항이 필요합니다.",
    ),
}


@dataclass
class ClauseSelection:
    clauses: List[ClauseStub]
    candidate_count: int
    fallback_used: bool
    reason: Optional[str] = None


class PipelineClauseSelector:
    """
    Chooses a complexity-sized subset of the candidate clauses gathered
    from the matched templates.

    The result is never empty for a non-empty candidate pool.

    Example:
        >>> selector = PipelineClauseSelector(llm)
        >>> selection = selector.select(match.templates, quote, "simple")
        >>> 1 <= len(selection.clauses) <= 8
        True
    """

    def __init__(
        self,
        llm: Optional[ContractLLMFacade] = None,
        *,
        target_ranges: Optional[Dict[str, Tuple[int, int]]] = None,
        fallback_count: int = DEFAULT_FALLBACK_COUNT,
    ):
        self.llm = llm
        self.target_ranges = target_ranges or DEFAULT_TARGET_RANGES
        self.fallback_count = fallback_count

    # =========================================================
    # Public API
    # =========================================================

    def collect_candidates(self, templates: Sequence[Template]) -> List[ClauseStub]:
        """
        Template clauses in template order, tagged with their template.
        """
        candidates: List[ClauseStub] = []
        for template in templates:
            for stub in template.clauses:
                candidates.append(stub.model_copy(update={
                    "template_id": template.id,
                    "template_name": template.name,
                    "template_category": template.category,
                }))
        return candidates

    def select(
        self,
        templates: Sequence[Template],
        quote: QuoteInfo,
        complexity: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> ClauseSelection:
        candidates = self.collect_candidates(templates)
        if not candidates:
            raise NoCandidatesError("Matched templates contain no candidate clauses")

        low, high = self.target_ranges.get(complexity, self.target_ranges["standard"])

        if self.llm is None:
            return self._fallback(candidates, "no ranking generator configured")

        prompt = self.build_prompt(candidates, quote, complexity, low, high)
        try:
            raw = self.llm.rank(prompt, cancel_event)
        except TextGenerationError as exc:
            return self._fallback(candidates, f"ranking call failed: {exc}")

        parsed = parse_generated_json(raw)
        if not parsed.ok:
            return self._fallback(candidates, f"unparseable selection response: {parsed.error}")

        try:
            selection = build_model(ClauseSelectionSchema, parsed.value, strict=False)
        except ValidationError as exc:
            return self._fallback(candidates, f"invalid selection response: {exc}")

        chosen = self.map_numbers(selection.selected_numbers, candidates)
        if not chosen:
            return self._fallback(candidates, "selection contained no valid clause numbers")

        if len(chosen) > high:
            logger.info(f"Truncating {len(chosen)} selected clauses to {high}")
            chosen = chosen[:high]
        elif len(chosen) < low:
            logger.warning(
                f"Only {len(chosen)} clauses selected for '{complexity}' (target {low}-{high})"
            )

        logger.info(f"Selected {len(chosen)} of {len(candidates)} candidate clauses")
        return ClauseSelection(
            clauses=chosen,
            candidate_count=len(candidates),
            fallback_used=False,
        )

    # =========================================================
    # Helpers
    # =========================================================

    def map_numbers(
        self,
        numbers: Sequence[int],
        candidates: List[ClauseStub],
    ) -> List[ClauseStub]:
        """
        1-based numbers to candidates, in response order. Out-of-range and
        repeated numbers are dropped.
        """
        seen = set()
        chosen: List[ClauseStub] = []
        for number in numbers:
            if not 1 <= number <= len(candidates) or number in seen:
                continue
            seen.add(number)
            chosen.append(candidates[number - 1])
        return chosen

    def _fallback(self, candidates: List[ClauseStub], reason: str) -> ClauseSelection:
        chosen = candidates[: min(self.fallback_count, len(candidates))]
        logger.warning(
            f"Clause selection fallback ({reason}); using first {len(chosen)} candidates"
        )
        return ClauseSelection(
            clauses=chosen,
            candidate_count=len(candidates),
            fallback_used=True,
            reason=reason,
        )

    def build_prompt(
        self,
        candidates: List[ClauseStub],
        quote: QuoteInfo,
        complexity: str,
        low: int,
        high: int,
    ) -> str:
        service_text = "\n".join(
            f"{s.name}: {s.description}" for s in quote.services
        ) or "서비스"
        clause_list = "\n".join(
            f"{i}. {c.title} (출처: {c.template_name})"
            for i, c in enumerate(candidates, start=1)
        )
        criteria_text, mandatory = SELECTION_GUIDES.get(complexity, SELECTION_GUIDES["standard"])

        return f"""계약서에 포함할 조항들을 선택하세요.

### 서비스 정보
{service_text}
금액: {int(quote.final_amount):,}원
복잡도: {complexity}

### 사용 가능한 조항 목록
{clause_list}

### 선택 기준
1. 서비스 특성에 필수적인 조항 우선
2. **목표: {low}-{high}개 조항 선택**
3. {criteria_text}
4. 기본 필수: 계약 목적, 대금 지급, 납품/완료, 검수, 해지 조건

### 중요 지침
{mandatory.format(low=low, high=high)}
1부터 {len(candidates)} 사이의 번호만 사용하세요.

### 응답 형식
선택한 조항 번호만 JSON 배열로 응답하세요:
{{"selectedNumbers": [1, 3, 5, 7, 9, 12]}}"""
