import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

from pydantic import ValidationError

from agents.llm_facade import ContractLLMFacade
from audit.audit_logger import AuditLogger
from drafting.errors import NoCandidatesError, TextGenerationError
from drafting.models import SelectionCriteria, ServiceItem, Template
from drafting.schemas import TemplateRankingSchema
from storage.template_catalog import TemplateCatalog
from tools.logger import setup_logger
from tools.response_repair_parser import parse_generated_json
from utils.schema_factory import build_model

logger = setup_logger("template-matcher")

DEFAULT_TOP_K = 3


@dataclass
class TemplateMatch:
    templates: List[Template]
    fallback_used: bool
    reason: Optional[str] = None

    @property
    def template_ids(self) -> List[str]:
        return [t.id for t in self.templates]


class TemplateMatcher:
    """
    Picks the contract templates that best fit the criteria.

    Ranking is delegated to text generation; any failure falls back to the
    most popular templates. Matching itself never changes popularity.

    Example:
        >>> matcher = TemplateMatcher(catalog, llm)
        >>> matcher.match(criteria, services).template_ids
        ['1', '4', '2']
    """

    def __init__(
        self,
        catalog: TemplateCatalog,
        llm: Optional[ContractLLMFacade] = None,
        *,
        top_k: int = DEFAULT_TOP_K,
        audit: Optional[AuditLogger] = None,
    ):
        self.catalog = catalog
        self.llm = llm
        self.top_k = top_k
        self.audit = audit

    # =========================================================
    # Public API
    # =========================================================

    def match(
        self,
        criteria: SelectionCriteria,
        services: Sequence[ServiceItem],
        cancel_event: Optional[threading.Event] = None,
    ) -> TemplateMatch:
        templates = self.catalog.list_active()
        if not templates:
            raise NoCandidatesError("No active contract templates available")

        if self.llm is None:
            return self._fallback(templates, "no ranking generator configured")

        prompt = self.build_prompt(criteria, services, templates)
        try:
            raw = self.llm.rank(prompt, cancel_event)
        except TextGenerationError as exc:
            return self._fallback(templates, f"ranking call failed: {exc}")

        parsed = parse_generated_json(raw)
        if not parsed.ok:
            return self._fallback(templates, f"unparseable ranking response: {parsed.error}")

        try:
            ranking = build_model(TemplateRankingSchema, parsed.value, strict=False)
        except ValidationError as exc:
            return self._fallback(templates, f"invalid ranking response: {exc}")

        by_id = {t.id: t for t in templates}
        selected: List[Template] = []
        for template_id in ranking.selected_ids:
            template = by_id.get(template_id)
            if template is not None and template not in selected:
                selected.append(template)

        if not selected:
            return self._fallback(templates, "ranking returned no known template ids")

        logger.info(f"Matched templates: {[t.id for t in selected]}")
        return TemplateMatch(templates=selected, fallback_used=False)

    def log_template_usage(self, template_ids: Sequence[str]) -> List[int]:
        """
        Count one use of each template that ended up in a finished contract.

        Returns the new popularity values.
        """
        counts = [self.catalog.counter_store.increment(tid) for tid in dict.fromkeys(template_ids)]
        if self.audit is not None:
            self.audit.log("template_usage", {
                "template_ids": list(dict.fromkeys(template_ids)),
                "popularity": counts,
            })
        logger.info(f"Template usage logged for {list(template_ids)}")
        return counts

    # =========================================================
    # Fallback
    # =========================================================

    def top_by_popularity(self, templates: List[Template]) -> List[Template]:
        # sorted() is stable: ties keep catalog order
        return sorted(templates, key=lambda t: -t.popularity)[: self.top_k]

    def _fallback(self, templates: List[Template], reason: str) -> TemplateMatch:
        selected = self.top_by_popularity(templates)
        logger.warning(
            f"Template ranking fallback ({reason}); using top {len(selected)} by popularity"
        )
        return TemplateMatch(templates=selected, fallback_used=True, reason=reason)

    # =========================================================
    # Prompt
    # =========================================================

    def build_prompt(
        self,
        criteria: SelectionCriteria,
        services: Sequence[ServiceItem],
        templates: List[Template],
    ) -> str:
        service_text = "\n".join(f"{s.name}: {s.description}" for s in services) or "서비스"
        template_list = "\n".join(
            f'ID: {t.id}, 이름: "{t.name}", 카테고리: {t.category}' for t in templates
        )
        amount = f"{int(criteria.amount):,}" if criteria.amount else "미정"

        return f"""서비스 정보를 분석하여 가장 적합한 계약서 템플릿 {self.top_k}개를 선택하세요.

### 서비스 정보
{service_text}

금액: {amount}원
업종: {criteria.industry}
서비스타입: {criteria.service_type}
복잡도: {criteria.complexity_tier}

### 사용 가능한 템플릿 목록
{template_list}

### 선택 기준
1. 서비스 유형과 템플릿 이름의 유사성
2. 업종별 적합성
3. 금액 규모에 따른 복잡도

### 응답 형식
다음 JSON 형식으로만 응답하세요:
{{"selectedIds": [1, 5, 12]}}

{self.top_k}개 템플릿의 ID만 배열로 반환하세요."""
