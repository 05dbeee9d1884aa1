import subprocess
import threading
from abc import ABC, abstractmethod
from typing import Optional

import requests
from openai import OpenAI, OpenAIError

from drafting.errors import PipelineCancelledError, TextGenerationError
from tools.logger import setup_logger

logger = setup_logger("llm-adapters")


class TextGenerator(ABC):
    """
    One external text-generation backend.

    ``generate`` applies the retry policy and raises ``TextGenerationError``
    once attempts are exhausted; backends only implement one attempt.

    Example:
        >>> generator = OllamaTextGenerator()
        >>> generator.generate("Return {} only", max_tokens=50)
        '{}'
    """

    model: str = "unknown"

    def __init__(self, *, timeout_seconds: float = 60, retries: int = 1):
        self.timeout_seconds = timeout_seconds
        self.retries = retries

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int = 1500,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        A set ``cancel_event`` stops further attempts and discards a response
        that arrives after cancellation.
        """
        attempts = 1 + max(0, self.retries)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            self._check_cancelled(cancel_event)
            try:
                text = self._generate_once(prompt, max_tokens=max_tokens)
            except TextGenerationError as exc:
                last_error = exc
            except (OpenAIError, requests.RequestException, subprocess.SubprocessError, OSError) as exc:
                last_error = exc
            else:
                self._check_cancelled(cancel_event)
                if text and text.strip():
                    logger.debug(f"{self.model} raw response: {text[:500]!r}")
                    return text
                last_error = TextGenerationError(f"{self.model} returned an empty response")

            logger.warning(
                f"{self.model} call failed (attempt {attempt}/{attempts}): {last_error}"
            )

        raise TextGenerationError(
            f"{self.model} failed after {attempts} attempt(s): {last_error}",
            details={"model": self.model},
        )

    def _check_cancelled(self, cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning(f"{self.model} call cancelled")
            raise PipelineCancelledError(
                f"Contract generation cancelled during {self.model} call",
                details={"stage": "text generation", "model": self.model},
            )

    @abstractmethod
    def _generate_once(self, prompt: str, *, max_tokens: int) -> str:
        ...


# =========================================================
# Hosted backends
# =========================================================

class OpenAITextGenerator(TextGenerator):
    """
    Ranking calls through the OpenAI chat completions API.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        *,
        temperature: float = 0.1,
        timeout_seconds: float = 60,
        retries: int = 1,
    ):
        super().__init__(timeout_seconds=timeout_seconds, retries=retries)
        self.model = model
        self.temperature = temperature
        # Retries are handled by TextGenerator.generate
        self.client = OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    def _generate_once(self, prompt: str, *, max_tokens: int) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=self.temperature,
        )
        if not response.choices:
            raise TextGenerationError(f"{self.model} returned no choices")
        return response.choices[0].message.content or ""


class AnthropicTextGenerator(TextGenerator):
    """
    Drafting calls through the Anthropic Messages HTTP API.
    """

    API_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        *,
        temperature: float = 0.1,
        timeout_seconds: float = 60,
        retries: int = 1,
        api_url: Optional[str] = None,
        api_version: Optional[str] = None,
    ):
        super().__init__(timeout_seconds=timeout_seconds, retries=retries)
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.api_url = api_url or self.API_URL
        self.api_version = api_version or self.API_VERSION

    def _generate_once(self, prompt: str, *, max_tokens: int) -> str:
        response = requests.post(
            self.api_url,
            headers={
                "Content-Type": "application/json",
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
            },
            json={
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": self.temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
            timeout=self.timeout_seconds,
        )

        if response.status_code != 200:
            raise TextGenerationError(
                f"{self.model} HTTP {response.status_code}: {response.text[:300]}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TextGenerationError(f"{self.model} returned non-JSON body") from exc

        blocks = payload.get("content") or []
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )
        return text


# =========================================================
# Local backend
# =========================================================

class OllamaTextGenerator(TextGenerator):
    """
    Local model via the Ollama CLI. No credentials needed.
    """

    MODEL = "llama3.1:8b"

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        timeout_seconds: float = 60,
        retries: int = 1,
    ):
        super().__init__(timeout_seconds=timeout_seconds, retries=retries)
        self.model = model or self.MODEL

    def _generate_once(self, prompt: str, *, max_tokens: int) -> str:
        result = subprocess.run(
            ["ollama", "run", self.model],
            input=prompt,
            text=True,
            capture_output=True,
            timeout=self.timeout_seconds,
        )

        if result.returncode != 0:
            raise TextGenerationError(
                f"Local LLM error: {result.stderr.strip()}"
            )

        return result.stdout.strip()
