from pathlib import Path

import pytest

from mcp_server.mcp_server import recommend_complexity, select_clauses_by_rules


def test_rule_selection_tool_for_small_short_job():
    result = select_clauses_by_rules(300_000, "7일")

    assert result["success"] is True
    assert result["triggers"] == ["budget_under_500", "small_project", "short_term", "lump_sum"]
    ids = [c["id"] for c in result["clauses"]]
    assert "payment_lump_sum_kr_001" in ids
    assert "payment_installment_kr_001" not in ids
    # unrendered catalog text
    assert any("{" in c["content"] for c in result["clauses"])


def test_rule_selection_tool_reports_conflicts():
    result = select_clauses_by_rules(300_000, "60일")

    assert result["success"] is False
    assert result["error"] == "clause_conflict"
    conflict = result["details"]["conflicts"][0]
    assert {conflict["clause_a"], conflict["clause_b"]} == {
        "payment_installment_kr_001",
        "payment_lump_sum_kr_001",
    }


def test_complexity_tool():
    assert recommend_complexity([{"name": "로고 디자인"}], 800_000, "2주") == {
        "complexity": "simple",
        "score": 1,
    }
    assert recommend_complexity(
        [{"name": f"서비스 {i}", "description": "맞춤 개발"} for i in range(5)],
        55_000_000,
        "6개월",
    )["complexity"] == "detailed"


def test_mcp_dependency_stays_on_the_fastmcp_series():
    tomllib = pytest.importorskip("tomllib")
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"

    with open(pyproject, "rb") as f:
        dependencies = tomllib.load(f)["project"]["dependencies"]

    assert "mcp>=1.2,<2" in dependencies
