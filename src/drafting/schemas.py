from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GeneratedResponseSchema(BaseModel):
    """
    Base for objects coming back from text generation.
    Keys arrive in camelCase or snake_case.
    """

    model_config = ConfigDict(populate_by_name=True)


def _as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


class TemplateRankingSchema(GeneratedResponseSchema):
    """
    Example:
        >>> TemplateRankingSchema.model_validate({"selectedIds": [1, "5"]}).selected_ids
        ['1', '5']
    """
    selected_ids: List[str] = Field(default_factory=list, alias="selectedIds")

    @field_validator("selected_ids", mode="before")
    def normalize_ids(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            value = [value]
        return [str(v).strip() for v in value if v is not None and str(v).strip()]


class ClauseSelectionSchema(GeneratedResponseSchema):
    """
    1-based candidate numbers; entries that are not integers are dropped.
    """
    selected_numbers: List[int] = Field(default_factory=list, alias="selectedNumbers")

    @field_validator("selected_numbers", mode="before")
    def normalize_numbers(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            value = [value]
        numbers = [_as_int(v) for v in value]
        return [n for n in numbers if n is not None]


class CompletedClauseSchema(GeneratedResponseSchema):
    number: Optional[int] = None
    title: str = ""
    content: str = ""
    category: str = ""
    essential: bool = False

    @field_validator("number", mode="before")
    def normalize_number(cls, value):
        return _as_int(value)

    @field_validator("title", "content", "category", mode="before")
    def normalize_text(cls, value):
        return "" if value is None else str(value)


class ClauseCompletionSchema(GeneratedResponseSchema):
    clauses: List[CompletedClauseSchema] = Field(default_factory=list)

    @field_validator("clauses", mode="before")
    def drop_non_objects(cls, value):
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]
