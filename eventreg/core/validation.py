"""Schema validation and document conversion helpers."""

from __future__ import annotations

import datetime
import re
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict

from eventreg.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordModel(BaseModel):
    """Base class for incoming record payloads."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


_TAGS = {"user", "familyMember", "external"}


def _field_name(loc: tuple[Any, ...]) -> str | None:
    """Join a pydantic error location, dropping discriminated union tags."""
    parts = []
    for i, p in enumerate(loc):
        if i and isinstance(loc[i - 1], int) and p in _TAGS:
            continue
        parts.append(str(p))
    return ".".join(parts) or None


def validate(model_cls: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``model_cls``.

    Raises:
        ValidationError: naming the first offending field.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = _field_name(tuple(first.get("loc", ())))
        message = first.get("msg", "Invalid value.")
        if field:
            message = f"{field}: {message}"
        raise ValidationError(message, field=field) from e


def validate_update(model_cls: type[ModelT], current: dict[str, Any], changes: Any) -> dict[str, Any]:
    """Validate ``changes`` merged over ``current`` and return only the changed fields.

    The full record is validated so cross-field rules still hold after a
    partial update.
    """
    if not isinstance(changes, dict):
        raise ValidationError("Request body must be a JSON object.")
    known = set(model_cls.model_fields)
    unknown = [k for k in changes if k not in known]
    if unknown:
        raise ValidationError(f"{unknown[0]}: Extra inputs are not permitted", field=unknown[0])
    merged = {k: v for k, v in current.items() if k in known}
    merged.update(changes)
    model = validate(model_cls, merged)
    document = to_document(model)
    return {k: document[k] for k in changes}


def _convert(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        return as_utc(value).astimezone(datetime.timezone.utc)
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _convert(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v) for v in value]
    return value


def to_document(model: BaseModel) -> dict[str, Any]:
    """Dump a model into a Firestore-safe dict.

    Firestore stores datetimes natively but rejects bare dates, so dates are
    kept as ISO strings.
    """
    return _convert(model.model_dump(mode="python"))


def slugify(value: str) -> str:
    """Return a lowercase, hyphen separated slug for ``value``."""
    value = re.sub(r"[*+~.()'\"!:@]", "", value.lower().strip())
    value = re.sub(r"[^a-z0-9]+", "-", value)
    return value.strip("-")


def parse_date(value: Any) -> datetime.date | None:
    """Parse a stored date, datetime or ISO string into a date."""
    if value is None or value == "":
        return None
    if hasattr(value, "to_datetime"):
        value = value.to_datetime()
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def age_on(date_of_birth: datetime.date, on: datetime.date) -> int:
    """Return the age in whole years of someone born on ``date_of_birth``."""
    age = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Treat a naive datetime as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value
