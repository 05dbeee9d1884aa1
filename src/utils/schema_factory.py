from typing import Any, Callable, Dict, Type, TypeVar

from pydantic import BaseModel

from tools.logger import setup_logger

T = TypeVar("T", bound=BaseModel)

logger = setup_logger("schema-factory")


def log_schema_drift(message: str) -> None:
    logger.warning(message)


def _accepted_keys(model_cls: Type[BaseModel]) -> set:
    keys = set()
    for name, field in model_cls.model_fields.items():
        keys.add(name)
        if field.alias:
            keys.add(field.alias)
    return keys


def build_model(
    model_cls: Type[T],
    data: Dict[str, Any],
    *,
    strict: bool = True,
    log_fn: Callable[[str], None] = log_schema_drift
) -> T:
    """
    Schema-aware constructor for Pydantic models.

    - strict=True  -> crash on schema drift
    - strict=False -> drop unknown fields, log them

    Field names and their camelCase aliases are both accepted.
    """

    allowed = _accepted_keys(model_cls)
    incoming = set(data.keys())

    extras = incoming - allowed

    if extras:
        log_fn(
            f"[SCHEMA-DRIFT] {model_cls.__name__} received extra fields: "
            f"{sorted(extras)}"
        )

        if strict:
            raise ValueError(
                f"Schema drift in {model_cls.__name__}: {extras}"
            )

        # Drop unknown fields in non-strict mode
        data = {k: v for k, v in data.items() if k in allowed}

    return model_cls.model_validate(data)
