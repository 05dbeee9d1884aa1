from typing import Callable

import pytest

from agents.llm_facade import ContractLLMFacade
from helpers import FakeTextGenerator


@pytest.fixture
def make_facade() -> Callable[..., ContractLLMFacade]:
    def build(ranking=None, drafting=None) -> ContractLLMFacade:
        return ContractLLMFacade(
            FakeTextGenerator(ranking, model="fake-ranker"),
            FakeTextGenerator(drafting, model="fake-drafter"),
        )
    return build


@pytest.fixture
def contract_data() -> dict:
    return {
        "client": {"name": "홍길동", "company": "서울 강남구 쇼핑몰"},
        "provider": {"name": "김개발"},
        "serviceName": "쇼핑몰 웹사이트 개발",
        "serviceDescription": "반응형 쇼핑몰 구축",
        "amount": 3_000_000,
        "duration": "30일",
        "startDate": "2026-01-05",
    }
