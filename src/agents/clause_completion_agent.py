import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

from pydantic import ValidationError

from agents.llm_facade import ContractLLMFacade
from drafting.errors import TextGenerationError
from drafting.models import Clause, ClauseStub, QuoteInfo
from drafting.schemas import ClauseCompletionSchema, CompletedClauseSchema
from tools.logger import setup_logger
from tools.response_repair_parser import parse_generated_json
from utils.legal_context import LegalContext
from utils.schema_factory import build_model

logger = setup_logger("clause-completion")

ESCAPED_NEWLINE = "\\n"
DOUBLED_BACKSLASH = "\\\\"

WRITING_GUIDES = {
    "simple": """### 간단형 작성 지침
- 각 조항을 ①②③ 최대 3개 항목으로 간결하게 작성
- 핵심 내용만 포함, 부가 설명 최소화
- 명확하고 이해하기 쉬운 표현 사용""",
    "standard": """### 표준형 작성 지침
- 각 조항을 ①②③④ 4-5개 항목으로 적절히 작성
- 필요한 내용과 보호 조항 균형있게 포함
- 일반적인 계약서 수준의 상세도 유지""",
    "detailed": """### 상세형 작성 지침
- 각 조항을 ①②③④⑤⑥ 6-8개 항목으로 상세하게 작성
- 예외 상황과 세부 조건 구체적으로 명시
- 리스크 관리 요소 적극 포함""",
}


@dataclass
class CompletionResult:
    success: bool
    clauses: List[Clause]
    requested_count: int
    error: Optional[str] = None


def unescape_clause_content(content: str) -> str:
    """
    Turn the escaped newline marker into a line break and collapse doubled
    backslashes.

    Example:
        >>> unescape_clause_content("①가\\\\n②나")
        '①가\\n②나'
    """
    return (content or "").replace(ESCAPED_NEWLINE, "\n").replace(DOUBLED_BACKSLASH, "\\")


class ClauseCompletionSynthesizer:
    """
    Drafts the text of every selected clause in one generation call.

    A failed call or an unusable response yields
    ``CompletionResult(success=False, clauses=[])``; the assembler refuses
    to build a contract from it.
    """

    def __init__(self, llm: Optional[ContractLLMFacade] = None):
        self.llm = llm

    # =========================================================
    # Public API
    # =========================================================

    def complete(
        self,
        stubs: Sequence[ClauseStub],
        quote: QuoteInfo,
        legal: LegalContext,
        complexity: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> CompletionResult:
        requested = len(stubs)
        if not stubs:
            return self._failed(requested, "no clauses to complete")
        if self.llm is None:
            return self._failed(requested, "no drafting generator configured")

        prompt = self.build_prompt(stubs, quote, legal, complexity)
        try:
            raw = self.llm.draft(prompt, cancel_event)
        except TextGenerationError as exc:
            return self._failed(requested, f"drafting call failed: {exc}")

        parsed = parse_generated_json(raw)
        if not parsed.ok:
            return self._failed(requested, f"unparseable drafting response: {parsed.error}")

        try:
            envelope = build_model(ClauseCompletionSchema, parsed.value, strict=False)
        except ValidationError as exc:
            return self._failed(requested, f"invalid drafting response: {exc}")

        clauses = [
            self._to_clause(index, item, stubs)
            for index, item in enumerate(envelope.clauses, start=1)
            if item.title.strip() or item.content.strip()
        ]
        if not clauses:
            return self._failed(requested, "drafting response contained no clauses")

        if len(clauses) != requested:
            logger.warning(f"Requested {requested} clauses, drafted {len(clauses)}")

        logger.info(f"Completed {len(clauses)} clauses")
        return CompletionResult(success=True, clauses=clauses, requested_count=requested)

    # =========================================================
    # Conversion
    # =========================================================

    def _to_clause(
        self,
        index: int,
        item: CompletedClauseSchema,
        stubs: Sequence[ClauseStub],
    ) -> Clause:
        position = item.number if item.number and 1 <= item.number <= len(stubs) else index
        stub = stubs[position - 1] if position <= len(stubs) else None

        return Clause(
            id=f"template_clause_{index}",
            title=item.title.strip() or (stub.title if stub else f"제{index}조"),
            content=unescape_clause_content(item.content).strip(),
            category=item.category or (stub.category if stub else "general"),
            essential=item.essential or (stub.essential if stub else False),
            risk_level=stub.risk_level if stub else "medium",
            order=index,
            template_id=stub.template_id if stub else None,
        )

    def _failed(self, requested: int, reason: str) -> CompletionResult:
        logger.error(f"Clause completion failed: {reason}")
        return CompletionResult(
            success=False,
            clauses=[],
            requested_count=requested,
            error=reason,
        )

    # =========================================================
    # Prompt
    # =========================================================

    def build_prompt(
        self,
        stubs: Sequence[ClauseStub],
        quote: QuoteInfo,
        legal: LegalContext,
        complexity: str,
    ) -> str:
        service_text = "\n".join(
            f"{s.name}: {s.description}" for s in quote.services
        ) or "서비스"
        clause_list = "\n".join(
            f"{i}. {stub.title} ({stub.category})" for i, stub in enumerate(stubs, start=1)
        )
        guide = WRITING_GUIDES.get(complexity, WRITING_GUIDES["standard"])

        return f"""한국 계약서 전문가로서 다음 조항들을 완성하세요.

### 계약 정보
서비스: {service_text}
고객: {legal.client_name}
수행자: {legal.provider_name}
총 계약금액: {legal.total_amount_text}
{legal.payment_text}
{legal.delivery_info}
{legal.inspection_info}
계약기간: {legal.duration} ({legal.start_date} ~ {legal.end_date})
해지 통지기간: {legal.notice_period}
연체료율: 연 {legal.penalty_rate}
관할법원: {legal.jurisdiction}

{guide}

### 완성할 조항 목록 ({len(stubs)}개)
{clause_list}

### 중요 작성 규칙
1. **각 조항의 ①②③ 항목들을 반드시 줄바꿈(\\n)으로 구분**
2. 실제 서비스명과 **할인된 최종 금액**을 정확히 반영
3. 위 지급조건을 임의로 변경하지 말 것
4. 한국 계약서 표준 형식 준수
5. 법적 효력이 있는 명확한 표현 사용

### 줄바꿈 예시
"content": "①첫 번째 내용\\n②두 번째 내용\\n③세 번째 내용"

### 응답 형식 (JSON만)
{{
  "clauses": [
    {{
      "number": 1,
      "title": "계약의 목적",
      "content": "①첫 번째 내용\\n②두 번째 내용\\n③세 번째 내용",
      "category": "purpose"
    }}
  ]
}}

**JSON 형식만 출력하세요. 다른 설명은 포함하지 마세요.**"""
