from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from agents.clause_rules_engine import RuleClauseSelector
from agents.criteria_analyzer import CriteriaAnalyzer
from configs.engine_config_loader import EngineConfig
from drafting.errors import ContractEngineError
from drafting.models import ServiceItem
from main import ContractGenerationSystem
from tools.logger import setup_logger

logger = setup_logger("mcp-server")
mcp = FastMCP("freelancer-contract-engine")

load_dotenv()


@lru_cache(maxsize=1)
def _build_system() -> ContractGenerationSystem:
    """
    Build and cache the generation system (config, catalogs, generators).
    """
    return ContractGenerationSystem(EngineConfig())


@lru_cache(maxsize=1)
def _build_rule_selector() -> RuleClauseSelector:
    config = EngineConfig()
    return RuleClauseSelector.from_yaml(config.catalog_path("clauses"))


@mcp.tool()
def generate_contract(
    contract_data: Dict,
    selected_services: Optional[List[Dict]] = None,
    quote_data: Optional[Dict] = None,
    options: Optional[Dict] = None,
) -> Dict:
    """
    Generate a service contract and return the result JSON.

    Example:
        >>> generate_contract(
        ...     {"client": {"name": "홍길동"}, "provider": {"name": "김개발"},
        ...      "serviceName": "로고 디자인", "amount": 800000},
        ...     options={"mode": "rules", "saveToDatabase": False},
        ... )
    """
    logger.info("Generating contract via MCP")
    result = _build_system().generate(
        contract_data,
        selected_services or [],
        quote_data,
        options or {},
    )
    return result.model_dump(mode="json", by_alias=True)


@mcp.tool()
def select_clauses_by_rules(
    budget: float,
    duration: str = "30일",
    project_type: str = "standard",
    custom_triggers: Optional[List[str]] = None,
    services: Optional[List[Dict]] = None,
) -> Dict:
    """
    Deterministic clause selection without text generation.

    Example:
        >>> select_clauses_by_rules(300000, "7일")["triggers"]
        ['budget_under_500', 'small_project', 'short_term', 'lump_sum']
    """
    logger.info(f"Rule selection via MCP | budget={budget} duration={duration}")
    service_items = [ServiceItem.model_validate(s) for s in services or []]
    criteria = CriteriaAnalyzer().analyze(service_items, budget, duration)

    try:
        selection = _build_rule_selector().select(
            criteria,
            project_type=project_type,
            custom_triggers=custom_triggers or [],
        )
    except ContractEngineError as exc:
        logger.warning(f"Rule selection failed: {exc.message}")
        return {"success": False, **exc.to_dict()}

    return {
        "success": True,
        "triggers": selection.triggers,
        "riskLevel": selection.risk_level,
        "clauses": [c.model_dump(mode="json", by_alias=True) for c in selection.clauses],
        "recommendations": selection.recommendations,
    }


@mcp.tool()
def recommend_complexity(
    services: List[Dict],
    amount: float,
    duration: str = "30일",
) -> Dict:
    """
    Suggest a contract length tier for a quote.

    Example:
        >>> recommend_complexity([{"name": "로고 디자인"}], 800000, "2주")
        {'complexity': 'simple', 'score': 1}
    """
    analyzer = CriteriaAnalyzer()
    service_items = [ServiceItem.model_validate(s) for s in services]
    criteria = analyzer.analyze(service_items, amount, duration)
    return {
        "complexity": criteria.complexity_tier,
        "score": criteria.complexity_score,
    }


if __name__ == "__main__":
    mcp.run()
