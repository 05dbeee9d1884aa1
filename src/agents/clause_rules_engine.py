from dataclasses import dataclass, field
from itertools import combinations
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

import yaml
from pydantic import ValidationError

from drafting.errors import ConfigurationError, ConflictError
from drafting.models import RISK_ORDER, Clause, SelectionCriteria
from tools.logger import setup_logger

logger = setup_logger("clause-rules-engine")

ALWAYS_TRIGGER = "always"

SMALL_BUDGET = 500_000
LARGE_BUDGET = 1_000_000
SHORT_TERM_DAYS = 14
LONG_TERM_DAYS = 60
LUMP_SUM_MAX_DAYS = 30


# =========================================================
# Conflict detection
# =========================================================

def conflict_reasons(a: Clause, b: Clause) -> Set[str]:
    """
    Why two clauses cannot coexist; empty when they can.

    Clauses conflict when their ``conflicts`` markers intersect, or when
    one lists the other's id or category.
    """
    reasons = set(a.conflicts & b.conflicts)
    reasons |= a.conflicts & {b.id, b.category}
    reasons |= b.conflicts & {a.id, a.category}
    return reasons


def find_conflicts(clauses: Sequence[Clause]) -> List[Dict]:
    conflicts = []
    for a, b in combinations(clauses, 2):
        reasons = conflict_reasons(a, b)
        if reasons:
            conflicts.append({
                "clause_a": a.id,
                "clause_b": b.id,
                "reasons": sorted(reasons),
                "alternatives": sorted((a.alternatives | b.alternatives) - {a.id, b.id}),
            })
    return conflicts


def aggregate_risk(clauses: Iterable[Clause]) -> str:
    risk = "low"
    for clause in clauses:
        if RISK_ORDER[clause.risk_level] > RISK_ORDER[risk]:
            risk = clause.risk_level
    return risk


# =========================================================
# Validated clause set
# =========================================================

@dataclass
class ClauseSetResult:
    success: bool
    clauses: List[Clause]
    error: Optional[str] = None
    conflicts: List[Dict] = field(default_factory=list)


class ClauseSet:
    """
    Conflict-free, order-sorted set of clauses.

    Every mutation is re-validated; a rejected mutation leaves the set as
    it was.

    Example:
        >>> clause_set = ClauseSet([purpose, lump_sum])
        >>> clause_set.add_clause(installment).success
        False
        >>> len(clause_set)
        2
    """

    def __init__(self, clauses: Iterable[Clause] = ()):
        ordered = self._sorted(clauses)
        conflicts = find_conflicts(ordered)
        if conflicts:
            raise ConflictError(conflicts)
        self._clauses: List[Clause] = ordered

    @staticmethod
    def _sorted(clauses: Iterable[Clause]) -> List[Clause]:
        return sorted(clauses, key=lambda c: (c.order, c.id))

    @property
    def clauses(self) -> List[Clause]:
        return list(self._clauses)

    @property
    def risk_level(self) -> str:
        return aggregate_risk(self._clauses)

    def ids(self) -> List[str]:
        return [c.id for c in self._clauses]

    def add_clause(self, clause: Clause) -> ClauseSetResult:
        if clause.id in self.ids():
            return ClauseSetResult(
                success=False,
                clauses=self.clauses,
                error=f"Clause already present: {clause.id}",
            )

        candidate = self._sorted(self._clauses + [clause])
        conflicts = find_conflicts(candidate)
        if conflicts:
            logger.warning(f"Rejected clause {clause.id}: {len(conflicts)} conflict(s)")
            return ClauseSetResult(
                success=False,
                clauses=self.clauses,
                error="Clause conflicts with existing clauses",
                conflicts=conflicts,
            )

        self._clauses = candidate
        return ClauseSetResult(success=True, clauses=self.clauses)

    def remove_clause(self, clause_id: str) -> ClauseSetResult:
        if clause_id not in self.ids():
            return ClauseSetResult(
                success=False,
                clauses=self.clauses,
                error=f"Clause not found: {clause_id}",
            )

        candidate = [c for c in self._clauses if c.id != clause_id]
        conflicts = find_conflicts(candidate)
        if conflicts:
            return ClauseSetResult(
                success=False,
                clauses=self.clauses,
                error="Removal would leave conflicting clauses",
                conflicts=conflicts,
            )

        self._clauses = candidate
        return ClauseSetResult(success=True, clauses=self.clauses)

    def __len__(self) -> int:
        return len(self._clauses)

    def __iter__(self):
        return iter(self.clauses)


# =========================================================
# Rule selector
# =========================================================

@dataclass
class RuleSelection:
    clause_set: ClauseSet
    triggers: List[str]
    recommendations: List[Dict]

    @property
    def clauses(self) -> List[Clause]:
        return self.clause_set.clauses

    @property
    def risk_level(self) -> str:
        return self.clause_set.risk_level


class RuleClauseSelector:
    """
    Deterministic clause selection over a statically tagged catalog.

    RESPONSIBILITY:
    - Derive triggers from budget, duration and project type
    - Select catalog clauses whose triggers are active
    - Refuse conflicting selections (ConflictError)
    - DO NOT call any external service
    """

    # =========================================================
    # Initialization
    # =========================================================

    def __init__(self, catalog: Iterable[Clause]):
        self.catalog: Dict[str, Clause] = {}
        for clause in catalog:
            if clause.id in self.catalog:
                raise ConfigurationError(f"Duplicate clause id in catalog: {clause.id}")
            self.catalog[clause.id] = clause

        if not self.catalog:
            raise ConfigurationError("Clause catalog is empty")

    @classmethod
    def from_yaml(cls, catalog_path: Path) -> "RuleClauseSelector":
        if not catalog_path.exists():
            raise ConfigurationError(f"Clause catalog not found: {catalog_path}")

        with open(catalog_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if not raw or not isinstance(raw.get("clauses"), list):
            raise ConfigurationError("Clause catalog YAML is empty or invalid")

        try:
            clauses = [Clause.model_validate(c) for c in raw["clauses"]]
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid clause catalog {catalog_path}: {exc}") from exc

        logger.info(f"Loaded {len(clauses)} catalog clauses from {catalog_path.name}")
        return cls(clauses)

    # =========================================================
    # Public API
    # =========================================================

    def select(
        self,
        criteria: SelectionCriteria,
        project_type: str = "standard",
        custom_triggers: Sequence[str] = (),
    ) -> RuleSelection:
        """
        Raises:
            ConflictError listing every conflicting pair and the suggested
            alternatives.
        """
        # -----------------------------------------------------
        # 1️⃣ Triggers
        # -----------------------------------------------------
        triggers = self.generate_triggers(
            budget=criteria.amount,
            duration_days=criteria.duration_days,
            project_type=project_type,
            custom_triggers=custom_triggers,
        )
        active = set(triggers) | {ALWAYS_TRIGGER}

        # -----------------------------------------------------
        # 2️⃣ Trigger filtering
        # -----------------------------------------------------
        matched = [c for c in self.catalog.values() if c.triggers & active]

        # -----------------------------------------------------
        # 3️⃣ Conflict validation
        # -----------------------------------------------------
        clause_set = ClauseSet(matched)

        # -----------------------------------------------------
        # 4️⃣ Recommendations
        # -----------------------------------------------------
        recommendations = self.generate_recommendations(
            triggers=triggers,
            industry=criteria.industry,
            service_type=criteria.service_type,
            risk_level=clause_set.risk_level,
        )

        logger.info(
            f"Rule selection | triggers={triggers} clauses={len(clause_set)} "
            f"risk={clause_set.risk_level}"
        )

        return RuleSelection(
            clause_set=clause_set,
            triggers=triggers,
            recommendations=recommendations,
        )

    def get_clause(self, clause_id: str) -> Optional[Clause]:
        return self.catalog.get(clause_id)

    def add_clause(self, clause_set: ClauseSet, clause_id: str) -> ClauseSetResult:
        """
        Add a catalog clause by id to an existing set.
        """
        clause = self.get_clause(clause_id)
        if clause is None:
            return ClauseSetResult(
                success=False,
                clauses=clause_set.clauses,
                error=f"Clause not found in catalog: {clause_id}",
            )
        return clause_set.add_clause(clause)

    # =========================================================
    # Trigger derivation
    # =========================================================

    def generate_triggers(
        self,
        budget: float,
        duration_days: int,
        project_type: str = "standard",
        custom_triggers: Sequence[str] = (),
    ) -> List[str]:
        triggers: List[str] = list(custom_triggers)

        # Budget bands
        if budget < SMALL_BUDGET:
            triggers += ["budget_under_500", "small_project"]
        elif budget > LARGE_BUDGET:
            triggers += ["budget_over_1000", "large_project"]

        # Duration bands
        if duration_days <= SHORT_TERM_DAYS:
            triggers.append("short_term")
        elif duration_days >= LONG_TERM_DAYS:
            triggers.append("long_term_project")

        # Project type
        if project_type == "custom":
            triggers += ["custom_development", "custom_requirements"]
        if project_type == "rush":
            triggers.append("urgent_delivery")

        # Payment style
        if budget > LARGE_BUDGET or duration_days > LUMP_SUM_MAX_DAYS:
            triggers.append("installment")
        else:
            triggers.append("lump_sum")

        return list(dict.fromkeys(triggers))

    # =========================================================
    # Recommendations
    # =========================================================

    def generate_recommendations(
        self,
        triggers: Sequence[str],
        industry: str,
        service_type: str,
        risk_level: str,
    ) -> List[Dict]:
        recommendations = []

        if risk_level == "high":
            recommendations.append({
                "type": "risk_mitigation",
                "title": "리스크 완화 조항 추가 권장",
                "description": (
                    "현재 계약 조건이 고위험으로 분류됩니다. "
                    "손해배상 제한 조항을 추가하는 것을 권장합니다."
                ),
                "suggested_clauses": ["liability_limit_kr_001", "force_majeure_kr_001"],
            })

        if "design" in (industry, service_type):
            recommendations.append({
                "type": "industry_specific",
                "title": "디자인 업종 특화 조항",
                "description": (
                    "디자인 프로젝트의 특성상 수정 횟수 제한과 "
                    "원본 파일 제공 조항을 권장합니다."
                ),
                "suggested_clauses": ["revision_limit_kr_001", "source_file_delivery_kr_001"],
            })

        if "long_term_project" in triggers:
            recommendations.append({
                "type": "project_specific",
                "title": "장기 프로젝트 보완 조항",
                "description": (
                    "장기 프로젝트의 경우 중간 점검 및 "
                    "범위 변경 대응 조항을 권장합니다."
                ),
                "suggested_clauses": ["milestone_kr_001", "scope_change_kr_001"],
            })

        return recommendations
