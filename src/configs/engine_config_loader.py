import copy
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from drafting.errors import ConfigurationError


CONFIG_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "engine_config.yaml"

EXPECTED_TIERS = {"simple", "standard", "detailed"}
EXPECTED_MODES = {"pipeline", "rules"}
EXPECTED_PROVIDERS = {"hosted", "local"}


class EngineConfig:
    """
    Loads and validates the contract engine settings.

    Supports:
    - Central engine config (mandatory)
    - Optional override file (deep-merged)
    - Environment switches (CONTRACT_ENGINE_MODE, LLM_TIMEOUT_SECONDS)
    - Strict validation with fail-fast guarantees

    Example:
        >>> config = EngineConfig()
        >>> config.target_range("standard")
        (10, 12)
    """

    def __init__(
        self,
        config_path: Path = DEFAULT_CONFIG_PATH,
        override_path: Optional[Path] = None,
    ):
        # -------------------------------------------------
        # Load central config
        # -------------------------------------------------
        self.central_raw = self._load_yaml(config_path, "engine_config")

        # -------------------------------------------------
        # Load optional override
        # -------------------------------------------------
        self.override_raw = None
        if override_path:
            self.override_raw = self._load_yaml(override_path, "engine_override")

        # -------------------------------------------------
        # Merge (central + overrides)
        # -------------------------------------------------
        self.raw = self._merge_config(
            self.central_raw,
            self.override_raw.get("overrides") if self.override_raw else None,
        )

        # -------------------------------------------------
        # Mandatory metadata
        # -------------------------------------------------
        if "version" not in self.raw:
            raise ConfigurationError("engine_config.version is required")
        self.version = self.raw["version"]

        # -------------------------------------------------
        # Core sections
        # -------------------------------------------------
        self.selection = self.raw.get("selection", {})
        self.llm = self.raw.get("llm", {})
        self.catalogs = self.raw.get("catalogs", {})
        self.default_mode = os.getenv(
            "CONTRACT_ENGINE_MODE", self.raw.get("default_mode", "pipeline")
        )

        env_timeout = os.getenv("LLM_TIMEOUT_SECONDS")
        if env_timeout:
            try:
                self.llm["timeout_seconds"] = float(env_timeout)
            except ValueError as exc:
                raise ConfigurationError(
                    f"LLM_TIMEOUT_SECONDS must be numeric, got {env_timeout!r}"
                ) from exc

        # -------------------------------------------------
        # Validation
        # -------------------------------------------------
        self._validate_selection()
        self._validate_llm()
        self._validate_mode()

    # =========================================================
    # YAML loading
    # =========================================================

    def _load_yaml(self, path: Path, label: str) -> dict:
        if path is None:
            raise ConfigurationError(f"{label} path must be provided")

        if not path.exists():
            raise ConfigurationError(f"{label} file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if not isinstance(raw, dict):
            raise ConfigurationError(f"{label} file is empty or invalid YAML: {path}")

        return raw

    # =========================================================
    # Deep merge logic
    # =========================================================

    def _merge_config(self, base: dict, overrides: Optional[dict]) -> dict:
        """
        Deep merge with override priority.
        """
        merged = copy.deepcopy(base)

        if not overrides:
            return merged

        def deep_merge(dst: dict, src: dict):
            for key, value in src.items():
                if (
                    key in dst
                    and isinstance(dst[key], dict)
                    and isinstance(value, dict)
                ):
                    deep_merge(dst[key], value)
                else:
                    dst[key] = value

        deep_merge(merged, overrides)
        return merged

    # =========================================================
    # Validation
    # =========================================================

    def _validate_selection(self):
        ranges = self.selection.get("target_ranges")
        if not isinstance(ranges, dict) or set(ranges.keys()) != EXPECTED_TIERS:
            raise ConfigurationError(
                f"selection.target_ranges must define exactly {EXPECTED_TIERS}"
            )

        for tier, bounds in ranges.items():
            if (
                not isinstance(bounds, list)
                or len(bounds) != 2
                or not all(isinstance(b, int) and b > 0 for b in bounds)
                or bounds[0] > bounds[1]
            ):
                raise ConfigurationError(
                    f"selection.target_ranges.{tier} must be [min, max] positive integers"
                )

        for key in ("fallback_template_count", "fallback_clause_count"):
            value = self.selection.get(key)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"selection.{key} must be a positive integer")

    def _validate_llm(self):
        provider = self.llm.get("provider", "hosted")
        if provider not in EXPECTED_PROVIDERS:
            raise ConfigurationError(
                f"llm.provider must be one of {EXPECTED_PROVIDERS}"
            )

        timeout = self.llm.get("timeout_seconds")
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError("llm.timeout_seconds must be a positive number")

        retries = self.llm.get("retries")
        if not isinstance(retries, int) or not (0 <= retries <= 1):
            raise ConfigurationError("llm.retries must be 0 or 1")

        for section in ("ranking", "drafting"):
            cfg = self.llm.get(section)
            if not isinstance(cfg, dict) or not cfg.get("model"):
                raise ConfigurationError(f"llm.{section}.model is required")
            if not isinstance(cfg.get("max_tokens"), int) or cfg["max_tokens"] <= 0:
                raise ConfigurationError(f"llm.{section}.max_tokens must be a positive integer")

    def _validate_mode(self):
        if self.default_mode not in EXPECTED_MODES:
            raise ConfigurationError(
                f"default_mode must be one of {EXPECTED_MODES}, got {self.default_mode!r}"
            )

    # =========================================================
    # Accessors
    # =========================================================

    def target_range(self, tier: str) -> Tuple[int, int]:
        low, high = self.selection["target_ranges"][tier]
        return low, high

    @property
    def target_ranges(self) -> Dict[str, Tuple[int, int]]:
        return {tier: self.target_range(tier) for tier in EXPECTED_TIERS}

    @property
    def fallback_template_count(self) -> int:
        return self.selection["fallback_template_count"]

    @property
    def fallback_clause_count(self) -> int:
        return self.selection["fallback_clause_count"]

    @property
    def provider(self) -> str:
        return self.llm.get("provider", "hosted")

    @property
    def timeout_seconds(self) -> float:
        return float(self.llm["timeout_seconds"])

    @property
    def retries(self) -> int:
        return self.llm["retries"]

    def catalog_path(self, name: str) -> Path:
        relative = self.catalogs.get(name)
        if not relative:
            raise ConfigurationError(f"catalogs.{name} is not configured")
        path = Path(relative)
        return path if path.is_absolute() else CONFIG_DIR / path

    # =========================================================
    # Audit helpers
    # =========================================================

    def audit_metadata(self) -> dict:
        """
        Attach this to audit records for traceability.
        """
        return {
            "engine_config_version": self.version,
            "default_mode": self.default_mode,
            "provider": self.provider,
            "ranking_model": self.llm["ranking"]["model"],
            "drafting_model": self.llm["drafting"]["model"],
            "override": bool(self.override_raw),
        }
