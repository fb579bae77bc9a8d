"""
Nursery management for Happy Harvests.
Nurseries are seed-starting areas tied to a location; plantings live in a
nursery until they are transplanted into a bed.
"""

import logging

import forms
from cache import revalidate_path
from db import get_db, get_integrity_error
from errors import NotFoundError, map_db_error

logger = logging.getLogger(__name__)

FIX_FIELDS_MESSAGE = 'Please fix the highlighted fields.'
NURSERY_IN_USE_MESSAGE = 'Cannot delete nursery because it is currently associated with one or more plantings.'

# Plantings embed the nursery name; activities reference the nursery
NURSERY_PAGES = ('/nurseries', '/plantings', '/activities')


def init_nursery_tables():
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS nurseries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                location_id INTEGER NOT NULL REFERENCES locations(id),
                name TEXT NOT NULL,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_nurseries_location ON nurseries(location_id)')
    logger.info("Nursery tables initialized")


def _validate_nursery(data):
    errors = forms.FieldErrors()
    values = {
        'name': forms.text(data, 'name', errors, required=True),
        'location_id': forms.integer(data, 'location_id', errors, required=True, minimum=1),
        'notes': forms.text(data, 'notes', errors),
    }
    if 'name' in errors:
        errors.errors['name'] = ['Name is required']
    if 'location_id' in errors:
        errors.errors['location_id'] = ['Location is required']
    errors.raise_if_any(FIX_FIELDS_MESSAGE)
    return values


def create_nursery(data):
    values = _validate_nursery(data)
    try:
        with get_db() as conn:
            cursor = conn.execute(
                'INSERT INTO nurseries (location_id, name, notes) VALUES (?, ?, ?)',
                (values['location_id'], values['name'], values['notes'])
            )
            nursery_id = cursor.lastrowid
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message='The selected location does not exist.',
                           field='location_id')

    logger.info(f"Created nursery {nursery_id}: {values['name']}")
    revalidate_path('/nurseries')
    return nursery_id


def update_nursery(nursery_id, data):
    values = _validate_nursery(data)
    try:
        with get_db() as conn:
            cursor = conn.execute(
                'UPDATE nurseries SET location_id = ?, name = ?, notes = ? WHERE id = ?',
                (values['location_id'], values['name'], values['notes'], nursery_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError('Nursery not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message='The selected location does not exist.',
                           field='location_id')

    logger.info(f"Updated nursery {nursery_id}")
    revalidate_path(*NURSERY_PAGES)
    return get_nursery(nursery_id)


def delete_nursery(nursery_id):
    try:
        with get_db() as conn:
            cursor = conn.execute('DELETE FROM nurseries WHERE id = ?', (nursery_id,))
            if cursor.rowcount == 0:
                raise NotFoundError('Nursery not found.')
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=NURSERY_IN_USE_MESSAGE)

    logger.info(f"Deleted nursery {nursery_id}")
    revalidate_path(*NURSERY_PAGES)
    return True


def get_nursery(nursery_id):
    with get_db() as conn:
        row = conn.execute('SELECT * FROM nurseries WHERE id = ?', (nursery_id,)).fetchone()
    if row is None:
        raise NotFoundError('Nursery not found.')
    return dict(row)


def get_nurseries():
    with get_db() as conn:
        rows = conn.execute('''
            SELECT n.*, l.name AS location_name
            FROM nurseries n
            LEFT JOIN locations l ON l.id = n.location_id
            ORDER BY n.name
        ''').fetchall()
        return [dict(r) for r in rows]


def get_nursery_stats():
    """Active sowings per nursery.

    Returns ``{nursery_id: {'active_sows': int, 'last_sow_date': str | None}}``
    counting plantings still in the nursery stage.
    """
    with get_db() as conn:
        rows = conn.execute('''
            SELECT nursery_id, COUNT(*) AS active_sows, MAX(nursery_started_date) AS last_sow_date
            FROM plantings
            WHERE status = 'nursery' AND nursery_id IS NOT NULL
            GROUP BY nursery_id
        ''').fetchall()
    return {
        r['nursery_id']: {'active_sows': r['active_sows'], 'last_sow_date': r['last_sow_date']}
        for r in rows
    }
