"""Shared request schema base and body parsing."""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from relay_server.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class WireModel(BaseModel):
    """Request body accepting camelCase or snake_case field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def parse_body(model: type[ModelT], data: dict[str, Any] | None) -> ModelT:
    """Validate a decoded JSON body against ``model``.

    Raises:
        ValidationError: With the pydantic error list as ``details``.
    """
    try:
        return model.model_validate(data or {})
    except PydanticValidationError as error:
        raise ValidationError(
            "Invalid payload",
            details={"errors": error.errors(include_url=False, include_context=False)},
        ) from error
