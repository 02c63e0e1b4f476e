"""
Turn pydantic validation failures into tinytask ValidationError.
"""
from typing import Any, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from tinytask.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model(model_cls: Type[ModelT], data: Union[ModelT, dict, None]) -> ModelT:
    """
    Validate ``data`` against ``model_cls``.

    Instances of the model pass through untouched. Only the first pydantic
    error is reported; its location becomes the ValidationError field.
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data or {})
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = first.get("msg", "Invalid input")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        value: Any = first.get("input")
        raise ValidationError(
            message,
            field=field,
            value=value if isinstance(value, (str, int, float, bool)) else None,
            original_error=e,
        ) from e
