"""
Shared validation helpers for graph services.
"""

from __future__ import annotations

import json
from typing import Optional, Sequence

from memgraph.config import MAX_METADATA_BYTES
from memgraph.errors import ValidationIssue


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_id(value: int, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationIssue(f"{field} must be a positive integer", field=field, error_type="invalid_id")


def validate_id_list(values: Sequence[int], field: str, max_items: int) -> None:
    if not isinstance(values, (list, tuple)):
        raise ValidationIssue(f"{field} must be a list", field=field, error_type="invalid_type")
    if len(values) > max_items:
        raise ValidationIssue(f"{field} exceeds max items {max_items}", field=field, error_type="max_items")
    for value in values:
        validate_id(value, field)


def validate_list(values: Optional[Sequence], field: str, max_items: int) -> None:
    if values is None:
        return
    if not isinstance(values, (list, tuple)):
        raise ValidationIssue(f"{field} must be a list", field=field, error_type="invalid_type")
    if len(values) > max_items:
        raise ValidationIssue(f"{field} exceeds max items {max_items}", field=field, error_type="max_items")


def validate_metadata(metadata: Optional[dict], field: str) -> None:
    if metadata is None:
        return
    if not isinstance(metadata, dict):
        raise ValidationIssue(f"{field} must be an object", field=field, error_type="invalid_type")
    try:
        size = len(json.dumps(metadata, default=str).encode("utf-8"))
    except (TypeError, ValueError) as exc:
        raise ValidationIssue(f"{field} must be JSON-serializable", field=field, error_type="invalid_type") from exc
    if size > MAX_METADATA_BYTES:
        raise ValidationIssue(f"{field} exceeds max size {MAX_METADATA_BYTES} bytes", field=field, error_type="max_size")


def validate_embedding(vector: Sequence[float], dimension: int) -> None:
    if len(vector) != dimension:
        raise ValidationIssue(
            f"embedding must have {dimension} dimensions (got {len(vector)})",
            field="embedding",
            error_type="dimension_mismatch",
        )


def clamp_int(value: Optional[int], default: int, minimum: int, maximum: int) -> int:
    """Coerce an optional numeric parameter into [minimum, maximum]."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, min(number, maximum))
