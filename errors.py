"""
Error types shared by the farm modules, and the mapping from database
integrity violations to messages a grower can act on.
"""

import logging

from db import integrity_violation_kind

logger = logging.getLogger(__name__)


class FormError(ValueError):
    """A submitted form failed validation.

    Carries a top-level message plus per-field messages, e.g.
    ``{'latitude': ['Latitude must be between -90 and 90']}``.
    """

    status_code = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self):
        payload = {'message': self.message}
        if self.errors:
            payload['errors'] = self.errors
        return payload


class ConflictError(FormError):
    """The request is valid but collides with existing data or state."""

    status_code = 409


class NotFoundError(LookupError):
    status_code = 404

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'message': self.message}


class DatabaseError(FormError):
    """A database error translated for display.

    ``kind`` is ``'duplicate'``, ``'dependency'`` or ``'server'``.
    """

    def __init__(self, message, kind='server', errors=None):
        super().__init__(message, errors)
        self.kind = kind
        self.status_code = 409 if kind in ('duplicate', 'dependency') else 500

    def to_dict(self):
        payload = super().to_dict()
        payload['kind'] = self.kind
        return payload


DEFAULT_DEPENDENCY_MESSAGE = 'This record is still referenced by other records.'
DEFAULT_DUPLICATE_MESSAGE = 'A record with these values already exists.'


def map_db_error(exc, dependency_message=None, duplicate_message=None, field=None):
    """Translate a database exception into a DatabaseError.

    Foreign-key violations become ``dependency`` errors, unique violations
    ``duplicate`` errors, anything else a ``server`` error carrying the
    driver's message prefixed with ``Database Error:``.

    Args:
        exc: The exception raised by sqlite3 or psycopg2.
        dependency_message: Message to use for foreign-key violations.
        duplicate_message: Message to use for unique violations.
        field: Optional form field the error should be attached to.
    """
    kind = integrity_violation_kind(exc)
    if kind == 'foreign_key':
        mapped_kind, detail = 'dependency', dependency_message or DEFAULT_DEPENDENCY_MESSAGE
    elif kind == 'unique':
        mapped_kind, detail = 'duplicate', duplicate_message or DEFAULT_DUPLICATE_MESSAGE
    else:
        mapped_kind = 'server'
        detail = f"Database Error: {str(exc).strip() or exc.__class__.__name__}"
        logger.error(f"Unmapped database error: {exc}")

    errors = {field: [detail]} if field else None
    return DatabaseError(detail, kind=mapped_kind, errors=errors)
