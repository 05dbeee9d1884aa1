import pytest

from agents.clause_selection_agent import PipelineClauseSelector
from configs.engine_config_loader import EngineConfig
from drafting.errors import NoCandidatesError, TextGenerationError
from drafting.models import QuoteInfo, ServiceItem, Template
from storage.template_catalog import TemplateCatalog

QUOTE = QuoteInfo(
    services=[ServiceItem(name="쇼핑몰 웹사이트 개발", price=3_000_000)],
    final_amount=3_000_000,
    original_amount=3_000_000,
)


@pytest.fixture
def templates():
    catalog = TemplateCatalog.from_yaml(EngineConfig().catalog_path("templates"))
    # 10 + 8 candidates
    return [catalog.get("1"), catalog.get("4")]


def test_candidates_are_tagged_with_their_template(templates):
    candidates = PipelineClauseSelector().collect_candidates(templates)

    assert len(candidates) == 18
    assert candidates[0].template_id == "1"
    assert candidates[-1].template_id == "4"
    assert candidates[-1].template_name == "일반 프리랜서 용역 계약서"
    assert candidates[-1].template_category == "general"


def test_numbers_map_in_response_order(templates, make_facade):
    llm = make_facade(ranking=['{"selectedNumbers": [3, 1, 3, 40, "2", 0]}'])

    selection = PipelineClauseSelector(llm).select(templates, QUOTE, "simple")

    assert [c.title for c in selection.clauses] == [
        "대금 지급",
        "계약의 목적",
        "개발 범위 및 요구사항",
    ]
    assert selection.fallback_used is False
    assert selection.candidate_count == 18


def test_over_selection_is_truncated_to_tier_maximum(templates, make_facade):
    numbers = list(range(1, 16))
    llm = make_facade(ranking=[f'{{"selectedNumbers": {numbers}}}'])

    selection = PipelineClauseSelector(llm).select(templates, QUOTE, "simple")

    assert len(selection.clauses) == 8


def test_target_range_appears_in_prompt(templates, make_facade):
    llm = make_facade(ranking=['{"selectedNumbers": [1]}'])

    PipelineClauseSelector(llm).select(templates, QUOTE, "detailed")

    prompt = llm.ranker.prompts[0]
    assert "15-20개" in prompt
    assert "1부터 18 사이" in prompt


@pytest.mark.parametrize("response", [
    "번호를 선택할 수 없습니다",
    '{"selectedNumbers": [99, 100]}',
    '{"selectedNumbers": []}',
    TextGenerationError("timeout"),
])
def test_fallback_takes_first_candidates(templates, make_facade, response):
    llm = make_facade(ranking=[response])

    selection = PipelineClauseSelector(llm, fallback_count=10).select(templates, QUOTE, "standard")

    assert selection.fallback_used is True
    assert len(selection.clauses) == 10
    assert selection.clauses[0].title == "계약의 목적"


def test_fallback_is_capped_by_pool_size():
    template = Template(
        id="9",
        name="작은 템플릿",
        category="general",
        clauses=[{"title": "계약의 목적"}, {"title": "대금 지급"}],
    )

    selection = PipelineClauseSelector().select([template], QUOTE, "detailed")

    assert len(selection.clauses) == 2
    assert selection.fallback_used is True


def test_empty_pool_raises():
    template = Template(id="9", name="빈 템플릿", category="general")

    with pytest.raises(NoCandidatesError):
        PipelineClauseSelector().select([template], QUOTE, "simple")
