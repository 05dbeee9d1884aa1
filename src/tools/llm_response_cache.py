import json
import hashlib
import time
from pathlib import Path
from typing import Optional, Dict


class LLMResponseCache:
    """
    On-disk cache for ranking responses, keyed by model, token budget and
    prompt text.

    Drafting responses are never cached: clause text depends on the
    contract parties and amounts embedded in the prompt anyway.

    Example:
        >>> cache = LLMResponseCache(Path("data/llm_cache"), max_age_seconds=86400)
        >>> key = cache.build_cache_key("gpt-4o-mini", prompt, max_tokens=1500)
        >>> cache.set(key, {"text": '{"selectedIds": [1]}'})
        >>> cache.get(key)["text"]
        '{"selectedIds": [1]}'
    """

    def __init__(self, cache_dir: Path, max_age_seconds: Optional[int] = None):
        self.cache_dir = cache_dir
        self.max_age_seconds = max_age_seconds
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    # -------------------------------------------------
    # Public API
    # -------------------------------------------------

    def get(self, cache_key: str) -> Optional[Dict]:
        """
        Cached value, or None when missing or older than ``max_age_seconds``.
        """
        path = self._path_for_key(cache_key)
        if not path.exists():
            return None

        with open(path, "r", encoding="utf-8") as f:
            entry = json.load(f)

        stored_at = entry.get("stored_at", 0)
        if self.max_age_seconds is not None and time.time() - stored_at > self.max_age_seconds:
            return None
        return entry.get("value")

    def set(self, cache_key: str, value: Dict):
        path = self._path_for_key(cache_key)
        entry = {"stored_at": time.time(), "value": value}
        with open(path, "w", encoding="utf-8") as f:
            json.dump(entry, f, indent=2, ensure_ascii=False)

    def clear(self) -> int:
        """
        Remove every cached entry; returns how many were removed.
        """
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            path.unlink()
            removed += 1
        return removed

    # -------------------------------------------------
    # Helpers
    # -------------------------------------------------

    def build_cache_key(self, model: str, prompt: str, max_tokens: int) -> str:
        raw = f"{model}|{max_tokens}|{prompt.strip()}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def _path_for_key(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"
