import textwrap

import pytest

from configs.engine_config_loader import CONFIG_DIR, EngineConfig
from drafting.errors import ConfigurationError


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def test_default_config_loads():
    config = EngineConfig()

    assert config.target_range("simple") == (6, 8)
    assert config.target_ranges["detailed"] == (15, 20)
    assert config.fallback_template_count == 3
    assert config.fallback_clause_count == 10
    assert config.retries == 1
    assert config.catalog_path("clauses") == CONFIG_DIR / "clause_catalog.yaml"


def test_override_is_deep_merged(tmp_path):
    override = _write(tmp_path, "override.yaml", """
        overrides:
          selection:
            target_ranges:
              simple: [4, 6]
          llm:
            retries: 0
    """)

    config = EngineConfig(override_path=override)

    assert config.target_range("simple") == (4, 6)
    assert config.target_range("standard") == (10, 12)
    assert config.retries == 0
    assert config.audit_metadata()["override"] is True


def test_environment_switches(monkeypatch):
    monkeypatch.setenv("CONTRACT_ENGINE_MODE", "rules")
    monkeypatch.setenv("LLM_TIMEOUT_SECONDS", "15")

    config = EngineConfig()

    assert config.default_mode == "rules"
    assert config.timeout_seconds == 15.0


@pytest.mark.parametrize("env, value", [
    ("CONTRACT_ENGINE_MODE", "magic"),
    ("LLM_TIMEOUT_SECONDS", "soon"),
])
def test_invalid_environment_values_fail_fast(monkeypatch, env, value):
    monkeypatch.setenv(env, value)

    with pytest.raises(ConfigurationError):
        EngineConfig()


@pytest.mark.parametrize("overrides", [
    "selection:\n    target_ranges:\n      simple: [8, 6]",
    "selection:\n    fallback_clause_count: 0",
    "llm:\n    retries: 3",
    "llm:\n    provider: cloud",
    "llm:\n    ranking:\n      model: ''",
])
def test_invalid_overrides_are_rejected(tmp_path, overrides):
    override = tmp_path / "bad.yaml"
    override.write_text("overrides:\n  " + overrides + "\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        EngineConfig(override_path=override)


def test_missing_file_and_version(tmp_path):
    with pytest.raises(ConfigurationError):
        EngineConfig(config_path=tmp_path / "missing.yaml")

    no_version = _write(tmp_path, "engine.yaml", """
        default_mode: rules
    """)
    with pytest.raises(ConfigurationError):
        EngineConfig(config_path=no_version)
