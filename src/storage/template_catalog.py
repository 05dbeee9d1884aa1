from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from drafting.errors import ConfigurationError
from drafting.models import Template
from storage.counter_store import (
    InMemoryPopularityCounterStore,
    PopularityCounterStore,
)
from tools.logger import setup_logger

logger = setup_logger("template-catalog")


class TemplateCatalog:
    """
    Active contract templates.

    Template definitions are immutable; popularity is always read through
    the counter store so that increments are visible immediately.
    """

    def __init__(
        self,
        templates: Iterable[Template],
        counter_store: Optional[PopularityCounterStore] = None,
    ):
        self._templates: Dict[str, Template] = {}
        for template in templates:
            if template.id in self._templates:
                raise ConfigurationError(f"Duplicate template id: {template.id}")
            self._templates[template.id] = template

        self.counter_store = counter_store or InMemoryPopularityCounterStore(
            {t.id: t.popularity for t in self._templates.values()}
        )

    # -------------------------------------------------
    # Loading
    # -------------------------------------------------

    @classmethod
    def from_yaml(
        cls,
        path: Path,
        counter_store: Optional[PopularityCounterStore] = None,
    ) -> "TemplateCatalog":
        if not path.exists():
            raise ConfigurationError(f"Template catalog not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if not raw or not isinstance(raw.get("templates"), list):
            raise ConfigurationError(f"Template catalog is empty or invalid: {path}")

        try:
            templates = [Template.model_validate(t) for t in raw["templates"]]
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid template catalog {path}: {exc}") from exc

        logger.info(f"Loaded {len(templates)} templates from {path.name}")
        return cls(templates, counter_store=counter_store)

    # -------------------------------------------------
    # Public API
    # -------------------------------------------------

    def list_active(self) -> List[Template]:
        """
        Templates in catalog order with current popularity applied.
        """
        return [
            t.model_copy(update={"popularity": self.counter_store.get(t.id)})
            for t in self._templates.values()
        ]

    def get(self, template_id: str) -> Optional[Template]:
        template = self._templates.get(str(template_id))
        if template is None:
            return None
        return template.model_copy(
            update={"popularity": self.counter_store.get(template.id)}
        )

    def __len__(self) -> int:
        return len(self._templates)
