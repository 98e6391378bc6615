from __future__ import annotations

import json
from typing import Any

from monithq.models.schemas import ValidationOutcome, ValidationSpec

_MISSING = object()


def validate(body: Any, spec: ValidationSpec | None) -> ValidationOutcome:
    """Evaluate a response body against schema, required-field and field-value rules.

    Errors from all three modes accumulate; the outcome passes only when none fired.
    """
    if spec is None:
        return ValidationOutcome(passed=True, errors=[])

    errors: list[str] = []

    if spec.json_schema:
        errors.extend(_validate_schema(body, spec.json_schema, ""))

    for field in spec.required_fields:
        if _lookup(body, field) is _MISSING:
            errors.append(f"Missing required field: {field}")

    for field, expected in spec.field_values.items():
        actual = _lookup(body, field)
        if actual is _MISSING or not _strict_equal(actual, expected):
            errors.append(f"Field {field}: expected {_show(expected)}, got {_show(actual)}")

    return ValidationOutcome(passed=not errors, errors=errors)


def json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _type_matches(value: Any, expected: str) -> bool:
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    return json_type(value) == expected


def _validate_schema(data: Any, schema: dict, path: str) -> list[str]:
    prefix = f"{path}: " if path else ""
    expected_type = schema.get("type")

    if expected_type and not _type_matches(data, expected_type):
        # One error per node; children are not inspected
        return [f"{prefix}Expected type {expected_type}, got {json_type(data)}"]

    errors: list[str] = []

    if isinstance(data, dict):
        for key in schema.get("required", []):
            if key not in data:
                errors.append(f"Missing required property: {_join(path, key)}")
        for key, prop_schema in (schema.get("properties") or {}).items():
            if key in data:
                errors.extend(_validate_schema(data[key], prop_schema, _join(path, key)))

    if isinstance(data, list) and isinstance(schema.get("items"), dict):
        for index, item in enumerate(data):
            errors.extend(_validate_schema(item, schema["items"], f"{path}[{index}]"))

    return errors


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _lookup(obj: Any, path: str) -> Any:
    """Resolve a dotted path (`a.b.0.c`) or return _MISSING."""
    current = obj
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _strict_equal(actual: Any, expected: Any) -> bool:
    # Booleans never equal numbers, unlike Python's default 1 == True
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    if json_type(actual) != json_type(expected):
        return False
    return actual == expected


def _show(value: Any) -> str:
    if value is _MISSING:
        return "undefined"
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)
