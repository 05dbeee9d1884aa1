import argparse
import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import ValidationError

# -----------------------------
# Agents
# -----------------------------
from agents.clause_completion_agent import ClauseCompletionSynthesizer
from agents.clause_rules_engine import RuleClauseSelector
from agents.clause_selection_agent import PipelineClauseSelector
from agents.contract_assembly_agent import ContractAssembler
from agents.criteria_analyzer import CriteriaAnalyzer
from agents.llm_facade import ContractLLMFacade
from agents.selection_strategies import (
    ClauseSelectionStrategy,
    LLMPipelineStrategy,
    RuleEngineStrategy,
    SelectionContext,
    check_cancelled,
)
from agents.template_matching_agent import TemplateMatcher

# -----------------------------
# Domain models
# -----------------------------
from drafting.contract import GenerationResult
from drafting.errors import ContractEngineError, InputValidationError
from drafting.models import ContractData, GenerationOptions, ServiceItem

# -----------------------------
# Storage / audit
# -----------------------------
from audit.audit_logger import AuditLogger
from storage.contract_repository import (
    ContractRepository,
    InMemoryContractRepository,
    build_clause_rows,
    build_contract_record,
)
from storage.counter_store import PopularityCounterStore
from storage.template_catalog import TemplateCatalog

# -----------------------------
# Utils
# -----------------------------
from utils.legal_context import build_legal_context
from utils.payment_schedule import calculate_payment_schedule
from utils.quote_normalizer import normalize_quote, validate_input_data
from utils.timeline import generate_timeline

# -----------------------------
# Configs / tools
# -----------------------------
from configs.engine_config_loader import EngineConfig
from tools.checksum import contract_checksum
from tools.logger import setup_logger

logger = setup_logger("contract-generation-system")

load_dotenv()


# =========================================================
# System Orchestrator
# =========================================================

class ContractGenerationSystem:
    """
    End-to-end orchestrator for freelancer service contracts.

    quote -> criteria -> (schedule, timeline) -> clause strategy -> assembly
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        llm: Optional[ContractLLMFacade] = None,
        template_catalog: Optional[TemplateCatalog] = None,
        rule_selector: Optional[RuleClauseSelector] = None,
        repository: Optional[ContractRepository] = None,
        counter_store: Optional[PopularityCounterStore] = None,
        audit_dir: Optional[Path] = None,
    ):
        self.config = config or EngineConfig()

        audit_dir = audit_dir or os.getenv("CONTRACT_AUDIT_DIR")
        self.audit = AuditLogger(Path(audit_dir)) if audit_dir else None

        self.llm = llm or ContractLLMFacade.from_config(self.config)
        self.template_catalog = template_catalog or TemplateCatalog.from_yaml(
            self.config.catalog_path("templates"),
            counter_store=counter_store,
        )
        self.rule_selector = rule_selector or RuleClauseSelector.from_yaml(
            self.config.catalog_path("clauses")
        )
        self.repository = repository or InMemoryContractRepository()

        self.analyzer = CriteriaAnalyzer()
        self.assembler = ContractAssembler()
        self.matcher = TemplateMatcher(
            self.template_catalog,
            self.llm,
            top_k=self.config.fallback_template_count,
            audit=self.audit,
        )
        self.strategies: Dict[str, ClauseSelectionStrategy] = {
            "pipeline": LLMPipelineStrategy(
                self.matcher,
                PipelineClauseSelector(
                    self.llm,
                    target_ranges=self.config.target_ranges,
                    fallback_count=self.config.fallback_clause_count,
                ),
                ClauseCompletionSynthesizer(self.llm),
                model_label=self.llm.model_label,
            ),
            "rules": RuleEngineStrategy(self.rule_selector),
        }

    # -----------------------------------------------------

    def generate(
        self,
        contract_data: Union[ContractData, Dict[str, Any]],
        selected_services: Optional[List[Union[ServiceItem, Dict[str, Any]]]] = None,
        quote_data: Optional[Dict[str, Any]] = None,
        options: Union[GenerationOptions, Dict[str, Any], None] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> GenerationResult:
        """
        Generate one contract.

        Fatal errors come back as ``GenerationResult(success=False)`` with
        the error code; nothing is persisted in that case.
        """
        started = time.perf_counter()
        mode = None

        try:
            contract_data, services, options = self._coerce_inputs(
                contract_data, selected_services, options
            )
            mode = options.mode or self.config.default_mode
            strategy = self.strategies[mode]

            logger.info(f"Starting contract generation | mode={mode}")

            # 1️⃣ Validate and normalise input
            validate_input_data(contract_data, services)
            quote = normalize_quote(quote_data, contract_data, services)

            # 2️⃣ Credentials before any external call
            if mode == "pipeline":
                self.llm.ensure_credentials()

            # 3️⃣ Criteria and complexity
            check_cancelled(cancel_event, "criteria analysis")
            criteria = self.analyzer.analyze(
                quote.services, quote.final_amount, quote.duration, quote.client
            )
            recommended = criteria.complexity_tier
            complexity = options.complexity or recommended
            criteria = criteria.model_copy(update={"complexity_tier": complexity})

            # 4️⃣ Schedule, timeline and contract terms
            schedule = calculate_payment_schedule(quote.final_amount, quote.payment_terms)
            timeline = generate_timeline(quote.duration, contract_data.start_date)
            legal = build_legal_context(contract_data, quote, schedule, timeline)

            # 5️⃣ Clauses
            outcome = strategy.select(SelectionContext(
                criteria=criteria,
                quote=quote,
                legal=legal,
                complexity=complexity,
                project_type=options.project_type,
                custom_triggers=options.custom_triggers,
                cancel_event=cancel_event,
            ))

            # 6️⃣ Assembly
            check_cancelled(cancel_event, "assembly")
            contract = self.assembler.assemble(
                outcome.clauses,
                schedule,
                timeline,
                quote,
                contract_data,
                legal,
                stages=outcome.stages,
                mode=outcome.mode,
                complexity=complexity,
                recommended_complexity=recommended,
                model=outcome.model,
                generated_by=outcome.generated_by,
                matched_template_ids=outcome.matched_template_ids,
                selection_fallback_used=outcome.fallback_used,
                triggers=outcome.triggers,
                risk_level=outcome.risk_level,
            )

            elapsed_ms = int((time.perf_counter() - started) * 1000)
            contract = contract.model_copy(update={
                "metadata": contract.metadata.model_copy(update={"processing_time_ms": elapsed_ms})
            })

            # 7️⃣ Persistence
            check_cancelled(cancel_event, "persistence")
            saved_id = None
            if options.save_to_database:
                saved_id = self.repository.save(build_contract_record(contract))
                self.repository.insert_clauses(build_clause_rows(saved_id, contract))
                logger.info(f"Contract saved | id={saved_id}")

            if mode == "pipeline" and outcome.matched_template_ids:
                self.matcher.log_template_usage(outcome.matched_template_ids)

        except ContractEngineError as exc:
            return self._failure(exc, mode, started)

        metrics = self._metrics(contract, elapsed_ms)
        details = {"recommendations": outcome.recommendations} if outcome.recommendations else {}

        if self.audit is not None:
            self.audit.log("contract_generated", {
                "contract_id": saved_id,
                "mode": mode,
                "checksum": contract_checksum(contract),
                "metrics": metrics,
                "config": self.config.audit_metadata(),
            })

        logger.info(
            f"Contract generation completed | clauses={metrics['totalClauses']} "
            f"risk={metrics['riskLevel']} time={elapsed_ms}ms"
        )

        return GenerationResult(
            success=True,
            contract=contract,
            message="계약서가 성공적으로 생성되었습니다.",
            details=details,
            metrics=metrics,
            saved_contract_id=saved_id,
        )

    # -----------------------------------------------------

    def _coerce_inputs(self, contract_data, selected_services, options):
        try:
            if not isinstance(contract_data, ContractData):
                contract_data = ContractData.model_validate(contract_data or {})
            services = [
                s if isinstance(s, ServiceItem) else ServiceItem.model_validate(s)
                for s in (selected_services or [])
            ]
            if not isinstance(options, GenerationOptions):
                options = GenerationOptions.model_validate(options or {})
        except ValidationError as exc:
            raise InputValidationError(
                [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
            ) from exc
        return contract_data, services, options

    def _metrics(self, contract, elapsed_ms: int) -> Dict[str, Any]:
        return {
            "totalClauses": len(contract.clauses),
            "serviceCount": contract.metadata.service_count,
            "riskLevel": contract.metadata.risk_level,
            "contractLength": sum(len(c.content) for c in contract.clauses),
            "processingTime": elapsed_ms,
            "model": contract.metadata.model,
        }

    def _failure(self, exc: ContractEngineError, mode: Optional[str], started: float) -> GenerationResult:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.error(f"Contract generation failed [{exc.code}]: {exc.message}")

        if self.audit is not None:
            self.audit.log("contract_generation_failed", {"mode": mode, **exc.to_dict()})

        return GenerationResult(
            success=False,
            error=exc.code,
            message=exc.message,
            details=exc.details,
            metrics={"processingTime": elapsed_ms},
        )


# =========================================================
# CLI / Execution Entry
# =========================================================

def main(argv: Optional[List[str]] = None) -> dict:
    """
    Generate a contract from a JSON request file.

    The file holds ``contractData``, ``selectedServices``, ``quoteData``
    and ``options``; command-line flags override the options.

    Example:
        >>> # python src/main.py request.json --mode rules --no-save
    """
    parser = argparse.ArgumentParser(description="Freelancer contract generator")
    parser.add_argument("request", help="Path to a JSON generation request")
    parser.add_argument("--mode", choices=["pipeline", "rules"])
    parser.add_argument("--complexity", choices=["simple", "standard", "detailed"])
    parser.add_argument("--no-save", action="store_true")
    parser.add_argument("--output", help="Write the result JSON here instead of stdout")
    args = parser.parse_args(argv)

    request_path = Path(args.request)
    if not request_path.exists():
        raise FileNotFoundError(f"Request file not found: {request_path}")

    with open(request_path, "r", encoding="utf-8") as f:
        request = json.load(f)

    options = dict(request.get("options") or {})
    if args.mode:
        options["mode"] = args.mode
    if args.complexity:
        options["complexity"] = args.complexity
    if args.no_save:
        options["saveToDatabase"] = False

    system = ContractGenerationSystem()
    result = system.generate(
        request.get("contractData") or {},
        request.get("selectedServices") or [],
        request.get("quoteData"),
        options,
    )

    json_dump = result.model_dump(mode="json", by_alias=True)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(json_dump, f, ensure_ascii=False, indent=2)
        logger.info(f"Result written to {args.output}")
    else:
        print(json.dumps(json_dump, ensure_ascii=False, indent=2))

    return json_dump


# =========================================================
# Entrypoint
# =========================================================

if __name__ == "__main__":
    main()
