"""
Shape and content validation for Jira issue fields.

``validate_issue_fields`` checks each field of an issue payload in order
and stops at the first violation, raising
:class:`~jiragate.core.exceptions.FieldValidationError` that names the
field.  Per field:

  1. reject fields outside the caller's allow-list
  2. known system fields are validated against a pydantic schema
  3. ``customfield_<n>`` fields go through :func:`validate_custom_field`
  4. anything else gets generic dangerous-pattern and size checks

Allow-lists are tiered (basic / extended / admin) by the privilege the
operation needs.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)

from jiragate.core.constants import (
    MAX_FIELD_ARRAY_LENGTH,
    MAX_FIELD_STRING_LENGTH,
    MAX_LABELS,
    MAX_SUMMARY_LENGTH,
)
from jiragate.core.exceptions import FieldValidationError
from jiragate.core.security.validator import (
    SCRIPT_PATTERNS,
    DangerPattern,
    first_match,
    regex_pattern,
)

_FIELD = "DANGEROUS_FIELD_VALUE"

# Generic field values: the script table plus HTML data URLs.
FIELD_PATTERNS: tuple[DangerPattern, ...] = (
    *(regex_pattern(name, pattern, _FIELD) for name, pattern in SCRIPT_PATTERNS),
    regex_pattern("html-data-url", r"data:text/html", _FIELD),
)

# Custom fields additionally reject code-execution idioms.
CUSTOM_FIELD_PATTERNS: tuple[DangerPattern, ...] = (
    *FIELD_PATTERNS,
    regex_pattern("eval-call", r"eval\s*\(", _FIELD),
    regex_pattern("function-constructor", r"Function\s*\(", _FIELD),
    regex_pattern("set-timeout", r"setTimeout\s*\(", _FIELD),
    regex_pattern("set-interval", r"setInterval\s*\(", _FIELD),
)

CUSTOM_FIELD_PREFIX = "customfield_"

# ---------------------------------------------------------------------------
# System field schemas
# ---------------------------------------------------------------------------

LongText = Annotated[str, StringConstraints(max_length=MAX_FIELD_STRING_LENGTH)]
DateString = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$")]


class _Ref(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AccountRef(_Ref):
    accountId: str  # noqa: N815


class IdRef(_Ref):
    id: str


class NameRef(_Ref):
    name: str


class KeyRef(_Ref):
    key: str


class TimeTracking(_Ref):
    originalEstimate: str | None = None  # noqa: N815
    remainingEstimate: str | None = None  # noqa: N815


class AdfDocument(BaseModel):
    """Atlassian Document Format root node."""

    model_config = ConfigDict(extra="allow")

    type: Literal["doc"]
    version: int = 1
    content: list[dict[str, Any]] = []


IdOrName = IdRef | NameRef

FIELD_SCHEMAS: dict[str, TypeAdapter[Any]] = {
    "summary": TypeAdapter(Annotated[str, StringConstraints(max_length=MAX_SUMMARY_LENGTH)]),
    "description": TypeAdapter(LongText | AdfDocument),
    "environment": TypeAdapter(LongText | AdfDocument),
    "assignee": TypeAdapter(AccountRef | None),
    "reporter": TypeAdapter(AccountRef),
    "priority": TypeAdapter(IdOrName),
    "issuetype": TypeAdapter(IdOrName),
    "security": TypeAdapter(IdOrName),
    "project": TypeAdapter(IdRef | KeyRef),
    "labels": TypeAdapter(list[Annotated[str, StringConstraints(max_length=255)]]),
    "components": TypeAdapter(list[IdOrName]),
    "fixVersions": TypeAdapter(list[IdOrName]),
    "duedate": TypeAdapter(DateString),
    "timetracking": TypeAdapter(TimeTracking),
}

# Array fields capped below the generic array limit.
_ARRAY_CAPS: dict[str, int] = {
    "labels": MAX_LABELS,
    "components": MAX_LABELS,
    "fixVersions": MAX_LABELS,
}

# ---------------------------------------------------------------------------
# Allow-list tiers
# ---------------------------------------------------------------------------


class FieldTier(StrEnum):
    BASIC = "basic"
    EXTENDED = "extended"
    ADMIN = "admin"


_BASIC_FIELDS: tuple[str, ...] = (
    "summary",
    "description",
    "labels",
    "priority",
    "assignee",
    "reporter",
    "environment",
    "duedate",
    "components",
    "fixVersions",
)

SAFE_FIELD_SETS: dict[FieldTier, frozenset[str]] = {
    FieldTier.BASIC: frozenset(_BASIC_FIELDS),
    FieldTier.EXTENDED: frozenset((*_BASIC_FIELDS, "timetracking", "security")),
    FieldTier.ADMIN: frozenset(
        (*_BASIC_FIELDS, "timetracking", "security", "issuetype", "project")
    ),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{err['msg']} (at {loc})" if loc else err["msg"]


def _strings(value: Any) -> Iterator[str]:
    """Yield every string leaf of a nested value."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for v in value.values():
            yield from _strings(v)
    elif isinstance(value, list | tuple):
        for v in value:
            yield from _strings(v)


def _check_patterns(
    value: Any, field: str, table: Sequence[DangerPattern], label: str = "Field value"
) -> None:
    for text in _strings(value):
        row = first_match(table, text)
        if row is not None:
            raise FieldValidationError(f"{label} contains dangerous pattern: {row.name}", field)


# ---------------------------------------------------------------------------
# Custom fields
# ---------------------------------------------------------------------------

_CUSTOM_TYPE_SCHEMAS: dict[str, TypeAdapter[Any]] = {
    "string": TypeAdapter(LongText),
    "text": TypeAdapter(LongText),
    "number": TypeAdapter(StrictInt | StrictFloat),
    "boolean": TypeAdapter(StrictBool),
    "date": TypeAdapter(DateString),
    "array": TypeAdapter(list[Any]),
    "object": TypeAdapter(dict[str, Any]),
}

_DATETIME: TypeAdapter[datetime] = TypeAdapter(datetime)


def validate_custom_field(
    value: Any, field_type: str | None = None, *, field: str = "custom_field"
) -> Any:
    """Validate a custom field value, optionally coercing it to *field_type*.

    Unknown field types pass through after the content checks.
    """
    _check_patterns(value, field, CUSTOM_FIELD_PATTERNS, "Custom field value")
    if isinstance(value, str) and len(value) > MAX_FIELD_STRING_LENGTH:
        raise FieldValidationError(
            f"Custom field value too long: {len(value)} characters "
            f"(max: {MAX_FIELD_STRING_LENGTH})",
            field,
        )

    if not field_type:
        return value

    kind = field_type.lower()
    try:
        if kind == "datetime":
            if not isinstance(value, str):
                raise FieldValidationError(
                    "Datetime custom field must be an ISO 8601 string", field
                )
            _DATETIME.validate_python(value)
            return value
        schema = _CUSTOM_TYPE_SCHEMAS.get(kind)
        if schema is None:
            return value
        result = schema.validate_python(value)
    except ValidationError as exc:
        raise FieldValidationError(
            f"Invalid {kind} value for custom field: {_first_error(exc)}", field
        ) from exc

    if kind == "array" and len(result) > MAX_FIELD_ARRAY_LENGTH:
        raise FieldValidationError(
            f"Array custom field too long: {len(result)} items (max: {MAX_FIELD_ARRAY_LENGTH})",
            field,
        )
    return result


# ---------------------------------------------------------------------------
# Issue payloads
# ---------------------------------------------------------------------------


def validate_issue_fields(
    fields: Mapping[str, Any],
    *,
    allowed_fields: Sequence[str] | frozenset[str] | None = None,
    max_string_length: int = MAX_FIELD_STRING_LENGTH,
    max_array_length: int = MAX_FIELD_ARRAY_LENGTH,
    block_dangerous_values: bool = True,
) -> dict[str, Any]:
    """Validate an issue field mapping and return the normalized payload."""
    allowed = frozenset(allowed_fields) if allowed_fields else None
    validated: dict[str, Any] = {}

    for name, value in fields.items():
        if allowed is not None and name not in allowed:
            raise FieldValidationError(
                f"Field not allowed: {name}. Allowed fields: {', '.join(sorted(allowed))}",
                name,
            )

        schema = FIELD_SCHEMAS.get(name)
        if schema is not None:
            try:
                parsed = schema.validate_python(value)
            except ValidationError as exc:
                raise FieldValidationError(
                    f"Invalid value for field '{name}': {_first_error(exc)}", name
                ) from exc
            cap = _ARRAY_CAPS.get(name)
            if cap is not None and len(parsed) > cap:
                raise FieldValidationError(
                    f"Too many values for field '{name}': {len(parsed)} (max: {cap})", name
                )
            if block_dangerous_values:
                _check_patterns(value, name, FIELD_PATTERNS)
            validated[name] = schema.dump_python(parsed, mode="json", exclude_none=True)
            continue

        if name.startswith(CUSTOM_FIELD_PREFIX):
            validated[name] = validate_custom_field(value, field=name)
            continue

        if block_dangerous_values:
            _check_patterns(value, name, FIELD_PATTERNS)
        if isinstance(value, str) and len(value) > max_string_length:
            raise FieldValidationError(
                f"Field value too long: {len(value)} characters (max: {max_string_length})",
                name,
            )
        if isinstance(value, list) and len(value) > max_array_length:
            raise FieldValidationError(
                f"Array field too long: {len(value)} items (max: {max_array_length})", name
            )
        validated[name] = value

    return validated


def allowed_fields_for(tier: FieldTier | str) -> frozenset[str]:
    return SAFE_FIELD_SETS[FieldTier(tier)]
