import pytest

from agents.contract_assembly_agent import ContractAssembler, essential_kind
from drafting.contract import PipelineStages
from drafting.errors import AssemblyError
from drafting.models import Clause, ServiceItem
from helpers import make_contract_data, make_legal, make_quote
from utils.payment_schedule import calculate_payment_schedule
from utils.timeline import generate_timeline


def _assemble(clauses, quote=None, **overrides):
    quote = quote or make_quote()
    legal = make_legal(quote)
    kwargs = dict(
        stages=PipelineStages(templates_matched=2, clauses_selected=len(clauses), clauses_completed=len(clauses)),
        mode="pipeline",
        complexity="simple",
        recommended_complexity="simple",
        model="fake-model",
    )
    kwargs.update(overrides)
    return ContractAssembler().assemble(
        clauses,
        calculate_payment_schedule(quote.final_amount),
        generate_timeline("30일", start_date="2026-01-05"),
        quote,
        make_contract_data(),
        legal,
        **kwargs,
    )


def test_missing_essentials_are_injected_in_place():
    clauses = [
        Clause(id="c1", title="업무 범위", category="scope", content="①범위 ②일정"),
        Clause(id="c2", title="비밀유지", category="confidentiality", content="①비밀"),
    ]

    contract = _assemble(clauses)

    titles = contract.clause_titles
    assert titles[0] == "계약의 목적"
    assert titles[1] == "대금 지급"
    assert titles[-1] == "계약의 해지"
    assert contract.metadata.injected_essentials == ["purpose", "payment", "termination"]
    assert [c.order for c in contract.clauses] == [1, 2, 3, 4, 5]
    assert all(c.essential for c in contract.clauses if essential_kind(c))


def test_present_essentials_are_not_duplicated():
    clauses = [
        Clause(id="a", title="계약의 목적", category="purpose"),
        Clause(id="b", title="대금 지급 방법", category="general"),
        Clause(id="c", title="계약의 해제", category="general"),
    ]

    contract = _assemble(clauses)

    assert contract.metadata.injected_essentials == []
    assert len(contract.clauses) == 3
    assert contract.clauses[1].essential is True


def test_injected_payment_clause_uses_schedule_amounts():
    contract = _assemble([Clause(id="x", title="계약의 목적", category="purpose")])

    payment = contract.clauses[1]
    assert "3,000,000원(삼백만원, 부가세별도)" in payment.content
    assert "계약금: 30% (900,000원) - 계약과 동시" in payment.content
    assert "잔금: 70% (2,100,000원) - 검수완료시" in payment.content


def test_content_gets_line_breaks_before_sub_points():
    contract = _assemble([Clause(id="x", title="계약의 목적", category="purpose", content="①가 ②나")])

    assert contract.clauses[0].content == "①가 \n②나"


def test_input_clauses_are_not_mutated():
    original = Clause(id="x", title="계약의 목적", category="purpose", order=7)

    contract = _assemble([original])

    assert original.order == 7
    assert contract.clauses[0].order == 1


def test_discount_and_stage_counts_are_stamped():
    quote = make_quote(amount=3_000_000, original=3_300_000)

    contract = _assemble([Clause(id="x", title="계약의 목적", category="purpose")], quote=quote)

    project = contract.contract_info.project
    assert project.original_amount == 3_300_000
    assert project.discount_amount == 300_000
    assert contract.metadata.pipeline_stages.templates_matched == 2
    assert contract.metadata.total_clauses == 3


def test_title_for_single_and_multiple_services():
    single = _assemble([Clause(id="x", title="계약의 목적")])
    multi_quote = make_quote(services=[
        ServiceItem(name="로고 디자인", price=1_000_000),
        ServiceItem(name="명함 디자인", price=2_000_000),
    ])
    multi = _assemble([Clause(id="x", title="계약의 목적")], quote=multi_quote)

    assert single.contract_info.title == "쇼핑몰 웹사이트 개발 서비스 계약서"
    assert multi.contract_info.title == "2개 서비스 통합 패키지 서비스 계약서"
    assert multi.metadata.service_count == 2


def test_risk_level_defaults_to_highest_clause_risk():
    contract = _assemble([
        Clause(id="x", title="계약의 목적", risk_level="low"),
        Clause(id="y", title="긴급 납품", risk_level="high"),
    ])

    assert contract.metadata.risk_level == "high"


def test_empty_clauses_are_refused():
    with pytest.raises(AssemblyError):
        _assemble([])


def test_non_positive_amount_is_refused():
    quote = make_quote(amount=3_000_000).model_copy(update={"final_amount": 0})

    with pytest.raises(AssemblyError) as exc_info:
        _assemble([Clause(id="x", title="계약의 목적")], quote=quote)

    assert exc_info.value.code == "assembly_error"
