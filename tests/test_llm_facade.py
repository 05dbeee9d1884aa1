import subprocess
import threading

import pytest
import requests

from agents.llm_adapters import AnthropicTextGenerator, OllamaTextGenerator
from agents.llm_facade import ContractLLMFacade
from configs.engine_config_loader import EngineConfig
from drafting.errors import ConfigurationError, PipelineCancelledError, TextGenerationError
from helpers import FakeTextGenerator
from tools.llm_response_cache import LLMResponseCache


class _Response:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def test_retry_once_then_succeed():
    generator = FakeTextGenerator([TextGenerationError("timeout"), "ok"], retries=1)

    assert generator.generate("prompt") == "ok"
    assert len(generator.prompts) == 2


def test_empty_response_counts_as_failure():
    generator = FakeTextGenerator(["   ", ""], retries=1)

    with pytest.raises(TextGenerationError) as exc_info:
        generator.generate("prompt")

    assert exc_info.value.details == {"model": "fake-model"}


def test_anthropic_adapter_joins_text_blocks(monkeypatch):
    calls = []

    def fake_post(url, headers, json, timeout):
        calls.append((url, headers, json, timeout))
        return _Response(200, {"content": [
            {"type": "text", "text": '{"clauses": '},
            {"type": "tool_use", "id": "x"},
            {"type": "text", "text": "[]}"},
        ]})

    monkeypatch.setattr(requests, "post", fake_post)
    generator = AnthropicTextGenerator("key", "claude-test", timeout_seconds=5, retries=0)

    assert generator.generate("prompt", max_tokens=100) == '{"clauses": []}'
    url, headers, body, timeout = calls[0]
    assert headers["x-api-key"] == "key"
    assert body["max_tokens"] == 100
    assert timeout == 5


def test_anthropic_http_error_is_retried_then_raised(monkeypatch):
    responses = [_Response(529, text="overloaded"), _Response(500, text="boom")]
    monkeypatch.setattr(requests, "post", lambda *a, **k: responses.pop(0))

    generator = AnthropicTextGenerator("key", retries=1)

    with pytest.raises(TextGenerationError):
        generator.generate("prompt")
    assert responses == []


def test_anthropic_network_error_becomes_generation_error(monkeypatch):
    def fail(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(requests, "post", fail)

    with pytest.raises(TextGenerationError):
        AnthropicTextGenerator("key", retries=0).generate("prompt")


def test_ollama_timeout_becomes_generation_error(monkeypatch):
    def timeout(*args, **kwargs):
        raise subprocess.TimeoutExpired(cmd="ollama", timeout=1)

    monkeypatch.setattr(subprocess, "run", timeout)

    with pytest.raises(TextGenerationError):
        OllamaTextGenerator(retries=0).generate("prompt")


def test_missing_credentials_are_reported(monkeypatch):
    for key in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "CLAUDE_API_KEY", "LLM_CACHE_DIR"):
        monkeypatch.delenv(key, raising=False)

    facade = ContractLLMFacade.from_config(EngineConfig())

    with pytest.raises(ConfigurationError) as exc_info:
        facade.ensure_credentials()
    assert exc_info.value.details["missing"] == ["OPENAI_API_KEY", "ANTHROPIC_API_KEY"]


def test_hosted_generators_from_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("CLAUDE_API_KEY", "claude-test")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    facade = ContractLLMFacade.from_config(EngineConfig())

    facade.ensure_credentials()
    assert facade.model_label == "gpt-4o-mini + claude-sonnet-4-20250514"
    assert facade.drafter.timeout_seconds == 60


def test_local_provider_needs_no_credentials(tmp_path):
    override = tmp_path / "local.yaml"
    override.write_text("overrides:\n  llm:\n    provider: local\n", encoding="utf-8")

    facade = ContractLLMFacade.from_config(EngineConfig(override_path=override))

    facade.ensure_credentials()
    assert facade.model_label == "llama3.1:8b"


def test_ranking_responses_are_cached(tmp_path):
    ranker = FakeTextGenerator(['{"selectedIds": [1]}'])
    facade = ContractLLMFacade(ranker, None, cache=LLMResponseCache(tmp_path))

    first = facade.rank("같은 프롬프트")
    second = facade.rank("같은 프롬프트")

    assert first == second == '{"selectedIds": [1]}'
    assert len(ranker.prompts) == 1


def test_missing_role_raises_generation_error():
    facade = ContractLLMFacade(None, None)

    with pytest.raises(TextGenerationError):
        facade.rank("prompt")
    with pytest.raises(TextGenerationError):
        facade.draft("prompt")


def test_stale_cache_entries_are_ignored(tmp_path, monkeypatch):
    cache = LLMResponseCache(tmp_path, max_age_seconds=60)
    key = cache.build_cache_key("gpt-4o-mini", "prompt", 1500)

    monkeypatch.setattr("tools.llm_response_cache.time.time", lambda: 1_000.0)
    cache.set(key, {"text": "cached"})
    assert cache.get(key) == {"text": "cached"}

    monkeypatch.setattr("tools.llm_response_cache.time.time", lambda: 1_061.0)
    assert cache.get(key) is None
    assert cache.clear() == 1


def test_cancellation_stops_retries():
    cancel = threading.Event()

    class CancelledWhileWaiting(FakeTextGenerator):
        def _generate_once(self, prompt, *, max_tokens):
            cancel.set()
            return super()._generate_once(prompt, max_tokens=max_tokens)

    generator = CancelledWhileWaiting([TextGenerationError("timeout"), "ok"], retries=1)

    with pytest.raises(PipelineCancelledError) as exc_info:
        generator.generate("prompt", cancel_event=cancel)

    assert len(generator.prompts) == 1
    assert exc_info.value.details == {"stage": "text generation", "model": "fake-model"}


def test_late_response_is_discarded_after_cancellation():
    cancel = threading.Event()
    ranker = FakeTextGenerator(['{"selectedIds": [1]}'])
    facade = ContractLLMFacade(ranker, None)
    ranker._generate_once = lambda prompt, *, max_tokens: cancel.set() or '{"selectedIds": [1]}'

    with pytest.raises(PipelineCancelledError):
        facade.rank("prompt", cancel)
