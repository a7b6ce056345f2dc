"""Request validation: pydantic schemas plus aggregated-error helpers."""

from app.validation.helpers import (
    coerce_query_params,
    validate,
    validate_body,
    validate_params,
    validate_query,
)

__all__ = [
    "coerce_query_params",
    "validate",
    "validate_body",
    "validate_params",
    "validate_query",
]
