import os
import threading
from pathlib import Path
from typing import List, Optional

from agents.llm_adapters import (
    AnthropicTextGenerator,
    OllamaTextGenerator,
    OpenAITextGenerator,
    TextGenerator,
)
from configs.engine_config_loader import EngineConfig
from drafting.errors import ConfigurationError, TextGenerationError
from tools.llm_response_cache import LLMResponseCache
from tools.logger import setup_logger

logger = setup_logger("contract-llm-facade")


class ContractLLMFacade:
    """
    Two-role text generation used by the pipeline.

    Ranking:  template and clause selection (short JSON answers, cacheable)
    Drafting: clause text for the whole contract in one call

    Example:
        >>> facade = ContractLLMFacade.from_config(EngineConfig())
        >>> facade.ensure_credentials()
        >>> facade.rank('... {"selectedIds": [...]}')
        '{"selectedIds": [1, 4, 2]}'
    """

    def __init__(
        self,
        ranker: Optional[TextGenerator],
        drafter: Optional[TextGenerator],
        *,
        ranking_max_tokens: int = 1500,
        drafting_max_tokens: int = 8000,
        cache: Optional[LLMResponseCache] = None,
        missing_credentials: Optional[List[str]] = None,
    ):
        self.ranker = ranker
        self.drafter = drafter
        self.ranking_max_tokens = ranking_max_tokens
        self.drafting_max_tokens = drafting_max_tokens
        self.cache = cache
        self.missing_credentials = list(missing_credentials or [])

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ContractLLMFacade":
        """
        Build generators from config and environment.

        Missing keys are recorded rather than raised so that rule-based
        generation keeps working without credentials.
        """
        llm = config.llm
        common = {
            "timeout_seconds": config.timeout_seconds,
            "retries": config.retries,
        }

        cache_dir = os.getenv("LLM_CACHE_DIR") or llm.get("cache_dir")
        cache = (
            LLMResponseCache(Path(cache_dir), max_age_seconds=llm.get("cache_max_age"))
            if cache_dir else None
        )

        if config.provider == "local":
            local_model = (llm.get("local") or {}).get("model")
            generator = OllamaTextGenerator(local_model, **common)
            return cls(
                generator,
                generator,
                ranking_max_tokens=llm["ranking"]["max_tokens"],
                drafting_max_tokens=llm["drafting"]["max_tokens"],
                cache=cache,
            )

        missing: List[str] = []
        openai_key = os.getenv("OPENAI_API_KEY")
        anthropic_key = os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUDE_API_KEY")

        ranker = None
        if openai_key:
            ranker = OpenAITextGenerator(
                openai_key,
                llm["ranking"]["model"],
                temperature=llm["ranking"].get("temperature", 0.1),
                **common,
            )
        else:
            missing.append("OPENAI_API_KEY")

        drafter = None
        if anthropic_key:
            drafter = AnthropicTextGenerator(
                anthropic_key,
                llm["drafting"]["model"],
                temperature=llm["drafting"].get("temperature", 0.1),
                api_url=llm.get("anthropic_api_url"),
                api_version=llm.get("anthropic_version"),
                **common,
            )
        else:
            missing.append("ANTHROPIC_API_KEY")

        return cls(
            ranker,
            drafter,
            ranking_max_tokens=llm["ranking"]["max_tokens"],
            drafting_max_tokens=llm["drafting"]["max_tokens"],
            cache=cache,
            missing_credentials=missing,
        )

    # -------------------------------------------------
    # Credentials
    # -------------------------------------------------

    def ensure_credentials(self):
        """
        Raises:
            ConfigurationError when any generator lacks its API key.
        """
        if self.missing_credentials or self.ranker is None or self.drafter is None:
            missing = self.missing_credentials or ["text generation backend"]
            raise ConfigurationError(
                f"Missing credentials for text generation: {', '.join(missing)}. "
                "Set them in .env or environment variables.",
                details={"missing": missing},
            )

    @property
    def model_label(self) -> str:
        ranker = self.ranker.model if self.ranker else "none"
        drafter = self.drafter.model if self.drafter else "none"
        if ranker == drafter:
            return ranker
        return f"{ranker} + {drafter}"

    # -------------------------------------------------
    # Calls
    # -------------------------------------------------

    def rank(self, prompt: str, cancel_event: Optional[threading.Event] = None) -> str:
        if self.ranker is None:
            raise TextGenerationError("No ranking generator configured")

        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.build_cache_key(
                self.ranker.model, prompt, self.ranking_max_tokens
            )
            cached = self.cache.get(cache_key)
            if cached and cached.get("text"):
                logger.info("LLM cache hit")
                return cached["text"]
            logger.info("LLM cache miss")

        text = self.ranker.generate(
            prompt, max_tokens=self.ranking_max_tokens, cancel_event=cancel_event
        )

        if cache_key is not None:
            self.cache.set(cache_key, {"model": self.ranker.model, "text": text})
        return text

    def draft(self, prompt: str, cancel_event: Optional[threading.Event] = None) -> str:
        if self.drafter is None:
            raise TextGenerationError("No drafting generator configured")
        return self.drafter.generate(
            prompt, max_tokens=self.drafting_max_tokens, cancel_event=cancel_event
        )
