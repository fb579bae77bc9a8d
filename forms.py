"""
Form coercion helpers.

Payloads arrive either as HTML form fields (everything a string, blanks for
"not provided") or as JSON (native numbers, nulls). These helpers read one
field at a time, coerce it, and record problems in a FieldErrors collector
so that a single FormError can report every bad field at once.
"""

import math
import re
from datetime import date, datetime

from errors import FormError

_US_DATE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')


class FieldErrors:
    """Accumulates ``{field: [messages]}`` while a form is parsed."""

    def __init__(self):
        self.errors = {}

    def add(self, field, message):
        self.errors.setdefault(field, []).append(message)

    def __contains__(self, field):
        return field in self.errors

    def __bool__(self):
        return bool(self.errors)

    def raise_if_any(self, message='Validation failed'):
        if self.errors:
            raise FormError(message, self.errors)


def _label(field, label):
    return label or field.replace('_', ' ').capitalize()


def raw(data, field):
    """Return the raw value, treating blank strings as missing."""
    value = data.get(field) if data else None
    if isinstance(value, str):
        value = value.strip()
        if value == '':
            return None
    return value


def text(data, field, errors, required=False, max_length=None, label=None):
    value = raw(data, field)
    if value is None:
        if required:
            errors.add(field, f"{_label(field, label)} is required")
        return None
    value = str(value)
    if max_length is not None and len(value) > max_length:
        errors.add(field, f"{_label(field, label)} must be at most {max_length} characters")
    return value


def integer(data, field, errors, required=False, minimum=None, maximum=None, label=None):
    value = raw(data, field)
    name = _label(field, label)
    if value is None:
        if required:
            errors.add(field, f"{name} is required")
        return None
    if isinstance(value, bool):
        errors.add(field, f"{name} must be a whole number")
        return None
    try:
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(value)
            number_value = int(value)
        else:
            number_value = int(str(value))
    except (TypeError, ValueError):
        errors.add(field, f"{name} must be a whole number")
        return None
    if minimum is not None and number_value < minimum:
        errors.add(field, f"{name} must be {minimum} or greater")
    if maximum is not None and number_value > maximum:
        errors.add(field, f"{name} must be {maximum} or less")
    return number_value


def number(data, field, errors, required=False, minimum=None, maximum=None, label=None):
    value = raw(data, field)
    name = _label(field, label)
    if value is None:
        if required:
            errors.add(field, f"{name} is required")
        return None
    if isinstance(value, bool):
        errors.add(field, f"{name} must be a number")
        return None
    try:
        number_value = float(value)
    except (TypeError, ValueError):
        errors.add(field, f"{name} must be a number")
        return None
    if not math.isfinite(number_value):
        errors.add(field, f"{name} must be a finite number")
        return None
    too_low = minimum is not None and number_value < minimum
    too_high = maximum is not None and number_value > maximum
    if (too_low or too_high) and minimum is not None and maximum is not None:
        errors.add(field, f"{name} must be between {minimum} and {maximum}")
    elif too_low:
        errors.add(field, f"{name} must be {minimum} or greater")
    elif too_high:
        errors.add(field, f"{name} must be {maximum} or less")
    return number_value


def boolean(data, field):
    value = raw(data, field)
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).lower() in ('on', 'true', '1', 'yes')


def normalize_date(value, allow_us_format=False):
    """Return an ISO ``YYYY-MM-DD`` string or raise ValueError."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    value = str(value).strip()
    if allow_us_format:
        match = _US_DATE.match(value)
        if match:
            month, day, year = (int(part) for part in match.groups())
            return date(year, month, day).isoformat()
    return date.fromisoformat(value[:10]).isoformat()


def iso_date(data, field, errors, required=False, allow_us_format=False, label=None):
    value = raw(data, field)
    name = _label(field, label)
    if value is None:
        if required:
            errors.add(field, f"{name} is required")
        return None
    try:
        return normalize_date(value, allow_us_format=allow_us_format)
    except (TypeError, ValueError):
        errors.add(field, f"{name} must be a valid date")
        return None


def iso_datetime(data, field, errors, required=False, label=None):
    """Parse a datetime-local style value; a space separator becomes ``T``."""
    value = raw(data, field)
    name = _label(field, label)
    if value is None:
        if required:
            errors.add(field, f"{name} is required")
        return None
    value = str(value).replace(' ', 'T')
    try:
        datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        errors.add(field, f"{name} must be a valid date and time")
        return None
    return value


def id_list(value):
    """Parse ids from a CSV string or a list, dropping anything non-positive."""
    if value is None:
        return []
    parts = value.split(',') if isinstance(value, str) else list(value)
    ids = []
    for part in parts:
        try:
            parsed = int(str(part).strip())
        except ValueError:
            continue
        if parsed > 0 and parsed not in ids:
            ids.append(parsed)
    return ids
