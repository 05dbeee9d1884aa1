import json
from typing import List, Optional, Union

from agents.llm_adapters import TextGenerator
from drafting.errors import TextGenerationError
from drafting.models import ContractData, PartyInfo, QuoteInfo, ServiceItem
from utils.legal_context import LegalContext, build_legal_context
from utils.payment_schedule import calculate_payment_schedule
from utils.timeline import generate_timeline


def make_quote(amount=3_000_000, services=None, original=None) -> QuoteInfo:
    services = services or [ServiceItem(name="쇼핑몰 웹사이트 개발", price=amount)]
    original = original or amount
    return QuoteInfo(
        title=services[0].name,
        services=services,
        client=PartyInfo(name="홍길동", company="부산 해운대 카페"),
        original_amount=original,
        discount_amount=original - amount,
        final_amount=amount,
    )


def make_contract_data() -> ContractData:
    return ContractData(
        client=PartyInfo(name="홍길동"),
        provider=PartyInfo(name="김개발"),
        service_name="쇼핑몰 웹사이트 개발",
    )


def make_legal(quote: QuoteInfo, duration="30일") -> LegalContext:
    schedule = calculate_payment_schedule(quote.final_amount, quote.payment_terms)
    timeline = generate_timeline(duration, start_date="2026-01-05")
    return build_legal_context(make_contract_data(), quote, schedule, timeline)


class FakeTextGenerator(TextGenerator):
    """
    Scripted generator: returns the queued responses in order and records
    every prompt. A queued exception is raised instead of returned.
    """

    def __init__(
        self,
        responses: Optional[List[Union[str, Exception]]] = None,
        *,
        model: str = "fake-model",
        retries: int = 0,
    ):
        super().__init__(timeout_seconds=1, retries=retries)
        self.model = model
        self.responses = list(responses or [])
        self.prompts: List[str] = []

    def _generate_once(self, prompt: str, *, max_tokens: int) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise TextGenerationError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def drafted_clauses(*titles_and_categories) -> str:
    """
    Drafting response in the escaped-newline form the model returns.
    """
    return json.dumps({
        "clauses": [
            {
                "number": i,
                "title": title,
                "content": f"①{title} 첫째 항\\n②{title} 둘째 항",
                "category": category,
            }
            for i, (title, category) in enumerate(titles_and_categories, start=1)
        ]
    }, ensure_ascii=False)
