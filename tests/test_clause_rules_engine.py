import pytest

from agents.clause_rules_engine import (
    ClauseSet,
    RuleClauseSelector,
    conflict_reasons,
    find_conflicts,
)
from configs.engine_config_loader import EngineConfig
from drafting.errors import ConfigurationError, ConflictError
from drafting.models import Clause, SelectionCriteria


@pytest.fixture(scope="module")
def selector() -> RuleClauseSelector:
    return RuleClauseSelector.from_yaml(EngineConfig().catalog_path("clauses"))


def _criteria(amount, days, industry="general", service_type="general"):
    return SelectionCriteria(
        service_type=service_type,
        industry=industry,
        complexity_tier="simple",
        complexity_score=1,
        amount=amount,
        duration_days=days,
    )


def test_small_short_project_gets_lump_sum_payment(selector):
    selection = selector.select(_criteria(800_000, 14))

    assert selection.triggers == ["short_term", "lump_sum"]
    ids = selection.clause_set.ids()
    assert "payment_lump_sum_kr_001" in ids
    assert "payment_installment_kr_001" not in ids
    assert ids[0] == "purpose_kr_001"
    assert "termination_kr_001" in ids
    assert selection.risk_level == "medium"


def test_selected_clauses_are_sorted_by_order(selector):
    selection = selector.select(_criteria(5_000_000, 90))

    orders = [c.order for c in selection.clauses]
    assert orders == sorted(orders)
    assert "payment_installment_kr_001" in selection.clause_set.ids()
    assert "milestone_kr_001" in selection.clause_set.ids()


def test_low_budget_long_project_raises_conflict(selector):
    with pytest.raises(ConflictError) as exc_info:
        selector.select(_criteria(300_000, 60))

    conflicts = exc_info.value.conflicts
    pair = {conflicts[0]["clause_a"], conflicts[0]["clause_b"]}
    assert pair == {"payment_installment_kr_001", "payment_lump_sum_kr_001"}
    assert "payment_method_exclusive" in conflicts[0]["reasons"]
    assert exc_info.value.code == "clause_conflict"


def test_small_custom_project_conflicts_on_advance_payment(selector):
    with pytest.raises(ConflictError) as exc_info:
        selector.select(_criteria(300_000, 10), project_type="custom")

    pairs = [{c["clause_a"], c["clause_b"]} for c in exc_info.value.conflicts]
    assert {"payment_advance_kr_001", "payment_lump_sum_kr_001"} in pairs


def test_rush_project_is_high_risk_with_mitigation_advice(selector):
    selection = selector.select(_criteria(800_000, 14), project_type="rush")

    assert "urgent_delivery" in selection.triggers
    assert "urgent_delivery_kr_001" in selection.clause_set.ids()
    assert selection.risk_level == "high"
    assert selection.recommendations[0]["type"] == "risk_mitigation"


def test_custom_triggers_come_first_and_are_deduplicated(selector):
    triggers = selector.generate_triggers(
        budget=800_000,
        duration_days=20,
        custom_triggers=["lump_sum", "large_project"],
    )

    assert triggers == ["lump_sum", "large_project"]


def test_design_and_long_term_recommendations(selector):
    recommendations = selector.generate_recommendations(
        triggers=["long_term_project"],
        industry="creative",
        service_type="design",
        risk_level="medium",
    )

    assert [r["type"] for r in recommendations] == ["industry_specific", "project_specific"]


def test_conflict_reasons_cover_markers_ids_and_categories():
    a = Clause(id="a", title="A", category="x", conflicts=frozenset({"m"}))
    b = Clause(id="b", title="B", category="y", conflicts=frozenset({"m"}))
    c = Clause(id="c", title="C", category="z", conflicts=frozenset({"y"}))
    d = Clause(id="d", title="D", category="w", conflicts=frozenset({"a"}))

    assert conflict_reasons(a, b) == {"m"}
    assert conflict_reasons(b, c) == {"y"}
    assert conflict_reasons(a, d) == {"a"}
    assert find_conflicts([a, c]) == []


def test_clause_set_rejects_conflicting_addition_and_stays_unchanged(selector):
    purpose = selector.get_clause("purpose_kr_001")
    lump_sum = selector.get_clause("payment_lump_sum_kr_001")
    clause_set = ClauseSet([lump_sum, purpose])

    result = selector.add_clause(clause_set, "payment_installment_kr_001")

    assert result.success is False
    assert result.conflicts
    assert clause_set.ids() == ["purpose_kr_001", "payment_lump_sum_kr_001"]


def test_clause_set_swap_payment_method(selector):
    clause_set = ClauseSet([
        selector.get_clause("purpose_kr_001"),
        selector.get_clause("payment_lump_sum_kr_001"),
    ])

    assert clause_set.remove_clause("payment_lump_sum_kr_001").success
    result = selector.add_clause(clause_set, "payment_installment_kr_001")

    assert result.success
    assert clause_set.ids() == ["purpose_kr_001", "payment_installment_kr_001"]


def test_clause_set_duplicate_and_unknown_ids(selector):
    clause_set = ClauseSet([selector.get_clause("purpose_kr_001")])

    assert clause_set.add_clause(selector.get_clause("purpose_kr_001")).success is False
    assert clause_set.remove_clause("missing").success is False
    assert selector.add_clause(clause_set, "missing").error.startswith("Clause not found")
    assert len(clause_set) == 1


def test_clause_set_refuses_conflicting_construction(selector):
    with pytest.raises(ConflictError):
        ClauseSet([
            selector.get_clause("payment_lump_sum_kr_001"),
            selector.get_clause("payment_installment_kr_001"),
        ])


def test_catalog_validation():
    with pytest.raises(ConfigurationError):
        RuleClauseSelector([])

    clause = Clause(id="dup", title="중복")
    with pytest.raises(ConfigurationError):
        RuleClauseSelector([clause, clause])
