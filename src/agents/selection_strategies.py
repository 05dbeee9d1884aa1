import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from agents.clause_completion_agent import ClauseCompletionSynthesizer
from agents.clause_rules_engine import RuleClauseSelector
from agents.clause_selection_agent import PipelineClauseSelector
from agents.template_matching_agent import TemplateMatcher
from drafting.contract import PipelineStages
from drafting.errors import PipelineCancelledError
from drafting.models import Clause, QuoteInfo, SelectionCriteria
from tools.logger import setup_logger
from utils.legal_context import LegalContext

logger = setup_logger("selection-strategy")

_PLACEHOLDER = re.compile(r"\{([a-z_]+)\}")


def check_cancelled(cancel_event: Optional[threading.Event], stage: str):
    """
    Raises:
        PipelineCancelledError when the caller has set the cancel token.
    """
    if cancel_event is not None and cancel_event.is_set():
        logger.warning(f"Generation cancelled before stage: {stage}")
        raise PipelineCancelledError(
            f"Contract generation cancelled before {stage}",
            details={"stage": stage},
        )


def render_clause_text(content: str, legal: LegalContext) -> str:
    """
    Fill ``{field}`` placeholders from the legal context. Unknown names are
    left as written.

    Example:
        >>> render_clause_text("관할: {jurisdiction}", legal)
        '관할: 서울중앙지방법원'
    """
    values = legal.model_dump()

    def replace(match):
        name = match.group(1)
        return str(values[name]) if name in values else match.group(0)

    return _PLACEHOLDER.sub(replace, content or "")


@dataclass
class SelectionContext:
    criteria: SelectionCriteria
    quote: QuoteInfo
    legal: LegalContext
    complexity: str
    project_type: str = "standard"
    custom_triggers: Sequence[str] = ()
    cancel_event: Optional[threading.Event] = None


@dataclass
class SelectionOutcome:
    clauses: List[Clause]
    stages: PipelineStages
    mode: str
    generated_by: str
    model: str
    matched_template_ids: List[str] = field(default_factory=list)
    fallback_used: bool = False
    triggers: List[str] = field(default_factory=list)
    risk_level: Optional[str] = None
    recommendations: List[Dict] = field(default_factory=list)


class ClauseSelectionStrategy(ABC):
    """
    Produces the drafted clause list handed to the assembler.
    """

    mode: str = ""

    @abstractmethod
    def select(self, context: SelectionContext) -> SelectionOutcome:
        raise NotImplementedError


# =========================================================
# Generation pipeline
# =========================================================

class LLMPipelineStrategy(ClauseSelectionStrategy):
    """
    Template matching -> clause selection -> clause completion.

    Every stage has a deterministic fallback except completion; an empty
    completion reaches the assembler, which refuses it.
    """

    mode = "pipeline"

    def __init__(
        self,
        matcher: TemplateMatcher,
        selector: PipelineClauseSelector,
        synthesizer: ClauseCompletionSynthesizer,
        model_label: str = "unknown",
    ):
        self.matcher = matcher
        self.selector = selector
        self.synthesizer = synthesizer
        self.model_label = model_label

    def select(self, context: SelectionContext) -> SelectionOutcome:
        # 1️⃣ Templates
        check_cancelled(context.cancel_event, "template matching")
        match = self.matcher.match(
            context.criteria, context.quote.services, context.cancel_event
        )

        # 2️⃣ Candidate clauses
        check_cancelled(context.cancel_event, "clause selection")
        selection = self.selector.select(
            match.templates, context.quote, context.complexity, context.cancel_event
        )

        # 3️⃣ Clause text
        check_cancelled(context.cancel_event, "clause completion")
        completion = self.synthesizer.complete(
            selection.clauses,
            context.quote,
            context.legal,
            context.complexity,
            context.cancel_event,
        )

        stages = PipelineStages(
            templates_matched=len(match.templates),
            clauses_selected=len(selection.clauses),
            clauses_completed=len(completion.clauses),
        )
        logger.info(f"Pipeline stages: {stages.model_dump()}")

        return SelectionOutcome(
            clauses=completion.clauses,
            stages=stages,
            mode=self.mode,
            generated_by="template-pipeline-system",
            model=self.model_label,
            matched_template_ids=match.template_ids,
            fallback_used=match.fallback_used or selection.fallback_used,
        )


# =========================================================
# Rule engine
# =========================================================

class RuleEngineStrategy(ClauseSelectionStrategy):
    """
    Trigger-based selection over the static clause catalog. No external
    calls; catalog text is filled from the legal context.
    """

    mode = "rules"

    def __init__(self, selector: RuleClauseSelector):
        self.selector = selector

    def select(self, context: SelectionContext) -> SelectionOutcome:
        check_cancelled(context.cancel_event, "rule selection")
        result = self.selector.select(
            context.criteria,
            project_type=context.project_type,
            custom_triggers=context.custom_triggers,
        )

        clauses = [
            clause.model_copy(update={"content": render_clause_text(clause.content, context.legal)})
            for clause in result.clauses
        ]

        return SelectionOutcome(
            clauses=clauses,
            stages=PipelineStages(
                templates_matched=0,
                clauses_selected=len(clauses),
                clauses_completed=len(clauses),
            ),
            mode=self.mode,
            generated_by="rule-engine",
            model="rule-engine",
            triggers=result.triggers,
            risk_level=result.risk_level,
            recommendations=result.recommendations,
        )
