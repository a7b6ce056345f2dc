"""Validation entry points.

    validate(data, Schema)             → Schema instance, or ValidationError (400)
    await validate_body(request, Schema)
    validate_query(request, Schema)    → query strings coerced first
    validate_params({"id": ...}, IdParams)

Every violation is collected in one pass; the raised ValidationError lists
them all ("Validation failed: title: ..., certification_type: ...").
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, TypeVar

import pydantic
from fastapi import Request

from app.errors import ApiError, ValidationError, issues_from_pydantic

SchemaT = TypeVar("SchemaT", bound=pydantic.BaseModel)

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")


def validate(data: Any, schema: type[SchemaT]) -> SchemaT:
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(issues_from_pydantic(exc.errors())) from exc


async def validate_body(
    request: Request, schema: type[SchemaT], allow_empty: bool = False
) -> SchemaT:
    """Parse the JSON body and validate it.

    allow_empty treats a missing body as ``{}`` (endpoints whose fields are
    all optional).
    """
    raw = await request.body()
    if not raw.strip() and allow_empty:
        return validate({}, schema)
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiError("Invalid JSON body", status=400, code="invalid_json") from exc
    return validate(data, schema)


def coerce_query_value(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def coerce_query_params(params: Mapping[str, str]) -> dict[str, Any]:
    """Numeric-looking strings become numbers, "true"/"false" become booleans."""
    return {key: coerce_query_value(value) for key, value in params.items()}


def validate_query(request: Request, schema: type[SchemaT]) -> SchemaT:
    return validate(coerce_query_params(request.query_params), schema)


def validate_params(params: Mapping[str, Any], schema: type[SchemaT]) -> SchemaT:
    return validate(dict(params), schema)
