"""
Payload validation for job submission.

Uses jsonschema. A payload is accepted when it is a JSON object that can be
serialized as-is and, if configured, matches an additional schema. Rejected
payloads never create a job.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import jsonschema
from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError

from .errors import InvalidPayloadError

BASE_PAYLOAD_SCHEMA: dict[str, Any] = {"type": "object"}


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    path: str | None = None

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def error(cls, error: str, path: str | None = None) -> ValidationResult:
        return cls(valid=False, errors=[error], path=path)


def validate_against_schema(data: Any, schema: dict[str, Any]) -> ValidationResult:
    """Validate data against a JSON schema."""
    try:
        jsonschema.validate(instance=data, schema=schema)
        return ValidationResult.ok()
    except JsonSchemaValidationError as e:
        # e.path is a deque of keys/indices
        path = ".".join(str(p) for p in e.path)
        if path:
            return ValidationResult.error(f"Validation failed at '{path}': {e.message}", path=path)
        return ValidationResult.error(f"Validation error: {e.message}")


class PayloadValidator:
    """
    Validates producer payloads before a job is created.

    Args:
        schema: Optional JSON schema the payload must also satisfy
    """

    def __init__(self, schema: dict[str, Any] | None = None):
        if schema is not None:
            try:
                Draft202012Validator.check_schema(schema)
            except SchemaError as e:
                raise ValueError(f"Invalid payload schema: {e.message}") from e
        self._schema = schema

    def check(self, payload: Any) -> ValidationResult:
        result = validate_against_schema(payload, BASE_PAYLOAD_SCHEMA)
        if not result.valid:
            return ValidationResult.error("Payload must be a JSON object")
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            return ValidationResult.error(f"Payload is not JSON-serializable: {e}")
        if self._schema is not None:
            return validate_against_schema(payload, self._schema)
        return ValidationResult.ok()

    def validate(self, payload: Any) -> dict[str, Any]:
        """Return ``payload`` unchanged, or raise InvalidPayloadError."""
        result = self.check(payload)
        if not result.valid:
            raise InvalidPayloadError("; ".join(result.errors), path=result.path)
        return payload


__all__ = [
    "BASE_PAYLOAD_SCHEMA",
    "ValidationResult",
    "validate_against_schema",
    "PayloadValidator",
]
