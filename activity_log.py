"""
Farm activity log for Happy Harvests.
Records irrigation, soil amendments, pest management and asset maintenance
with labor, cost, the place it happened and a weather snapshot taken from
the location's coordinates when the activity is saved.
"""

import csv
import io
import json
import logging

import forms
from cache import revalidate_path
from db import get_db, get_integrity_error
from errors import FormError, NotFoundError, map_db_error
from weather_service import get_weather_snapshot

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ACTIVITY_TYPES = ['irrigation', 'soil_amendment', 'pest_management', 'asset_maintenance']

ACTIVITY_TYPE_LABELS = {
    'irrigation': 'Irrigation',
    'soil_amendment': 'Soil Amendment',
    'pest_management': 'Pest Management',
    'asset_maintenance': 'Asset Maintenance',
}

SORT_FIELDS = ['started_at', 'labor_hours', 'cost']

CSV_HEADERS = [
    'id', 'activity_type', 'started_at', 'ended_at', 'duration_minutes', 'labor_hours',
    'location_id', 'crop', 'asset_id', 'asset_name', 'quantity', 'unit', 'cost', 'notes',
]

_COLUMNS = [
    'activity_type', 'started_at', 'ended_at', 'duration_minutes', 'labor_hours',
    'location_id', 'plot_id', 'bed_id', 'nursery_id', 'crop', 'asset_id', 'asset_name',
    'quantity', 'unit', 'cost', 'notes',
]

FINITE_MESSAGE = 'Must be a valid finite number'
MISSING_PLACE_MESSAGE = 'The selected location, plot, bed or nursery does not exist.'


# ---------------------------------------------------------------------------
# Database Initialization
# ---------------------------------------------------------------------------

def init_activity_tables():
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS activities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                activity_type TEXT NOT NULL CHECK (activity_type IN (
                    'irrigation', 'soil_amendment', 'pest_management', 'asset_maintenance'
                )),
                started_at TEXT NOT NULL,
                ended_at TEXT,
                duration_minutes INTEGER CHECK (duration_minutes IS NULL OR duration_minutes >= 0),
                labor_hours REAL CHECK (labor_hours IS NULL OR labor_hours >= 0),
                location_id INTEGER REFERENCES locations(id) ON DELETE SET NULL,
                plot_id INTEGER REFERENCES plots(id) ON DELETE SET NULL,
                bed_id INTEGER REFERENCES beds(id) ON DELETE SET NULL,
                nursery_id INTEGER REFERENCES nurseries(id) ON DELETE SET NULL,
                crop TEXT,
                asset_id TEXT,
                asset_name TEXT,
                quantity REAL,
                unit TEXT,
                cost REAL,
                notes TEXT,
                weather TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS activities_soil_amendments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                activity_id INTEGER NOT NULL REFERENCES activities(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                quantity REAL,
                unit TEXT,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_activities_type_started ON activities(activity_type, started_at)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_activities_location ON activities(location_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_asa_activity_id ON activities_soil_amendments(activity_id)')
    logger.info("Activity tables initialized")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _parse_amendments(data, errors):
    """Amendments come as a list (JSON bodies) or an ``amendments_json`` string.

    An unparseable ``amendments_json`` is treated as "not supplied".
    """
    amendments = data.get('amendments')
    if amendments is None:
        raw_json = forms.raw(data, 'amendments_json')
        if isinstance(raw_json, str):
            try:
                amendments = json.loads(raw_json)
            except ValueError:
                amendments = None
    if not isinstance(amendments, list):
        return None

    parsed = []
    for amendment in amendments:
        if not isinstance(amendment, dict):
            errors.add('amendments', 'Each amendment must be an object')
            continue
        name = amendment.get('name')
        if not isinstance(name, str) or not name:
            errors.add('amendments', 'Amendment name is required')
            continue
        scratch = forms.FieldErrors()
        quantity = forms.number(amendment, 'quantity', scratch)
        if scratch:
            errors.add('amendments', 'Amendment quantity must be a valid finite number')
            continue
        parsed.append({
            'name': name,
            'quantity': quantity,
            'unit': forms.raw(amendment, 'unit'),
            'notes': forms.raw(amendment, 'notes'),
        })
    return parsed


def _finite(data, field, errors, integer=False, minimum=None):
    scratch = forms.FieldErrors()
    if integer:
        value = forms.integer(data, field, scratch, minimum=minimum)
    else:
        value = forms.number(data, field, scratch, minimum=minimum)
    for message in scratch.errors.get(field, []):
        errors.add(field, message if 'or greater' in message else FINITE_MESSAGE)
    return value


def validate_activity(data):
    """Coerce an activity form into column values.

    Returns ``(values, amendments)`` where amendments is None when the form
    did not supply any. Raises FormError('Validation failed') otherwise.
    """
    errors = forms.FieldErrors()
    activity_type = forms.raw(data, 'activity_type')
    if activity_type is None:
        errors.add('activity_type', 'Activity type is required')
    elif activity_type not in ACTIVITY_TYPES:
        errors.add('activity_type', f"Invalid activity type. Must be one of {ACTIVITY_TYPES}")

    started_at = forms.iso_datetime(data, 'started_at', errors)
    if started_at is None and 'started_at' not in errors:
        errors.add('started_at', 'Start time is required')

    values = {
        'activity_type': activity_type,
        'started_at': started_at,
        'ended_at': forms.iso_datetime(data, 'ended_at', errors),
        'duration_minutes': _finite(data, 'duration_minutes', errors, integer=True, minimum=0),
        'labor_hours': _finite(data, 'labor_hours', errors, minimum=0),
        'location_id': _finite(data, 'location_id', errors, integer=True),
        'plot_id': _finite(data, 'plot_id', errors, integer=True),
        'bed_id': _finite(data, 'bed_id', errors, integer=True),
        'nursery_id': _finite(data, 'nursery_id', errors, integer=True),
        'crop': forms.text(data, 'crop', errors),
        'asset_id': forms.text(data, 'asset_id', errors),
        'asset_name': forms.text(data, 'asset_name', errors),
        'quantity': _finite(data, 'quantity', errors, minimum=0),
        'unit': forms.text(data, 'unit', errors),
        'cost': _finite(data, 'cost', errors, minimum=0),
        'notes': forms.text(data, 'notes', errors),
    }
    amendments = _parse_amendments(data, errors)
    errors.raise_if_any('Validation failed')
    return values, amendments


# ---------------------------------------------------------------------------
# Weather and amendments
# ---------------------------------------------------------------------------

def _activity_weather(location_id):
    """Weather snapshot for the location's coordinates, or None."""
    if not location_id:
        return None
    with get_db() as conn:
        loc = conn.execute(
            'SELECT latitude, longitude FROM locations WHERE id = ?', (location_id,)
        ).fetchone()
    if loc is None or loc['latitude'] is None or loc['longitude'] is None:
        return None
    return get_weather_snapshot(loc['latitude'], loc['longitude'])


def _insert_amendments(conn, activity_id, activity_type, amendments):
    if activity_type != 'soil_amendment' or not amendments:
        return 0
    rows = [a for a in amendments if a['name'].strip()]
    for a in rows:
        conn.execute('''
            INSERT INTO activities_soil_amendments (activity_id, name, quantity, unit, notes)
            VALUES (?, ?, ?, ?, ?)
        ''', (activity_id, a['name'], a['quantity'], a['unit'], a['notes']))
    return len(rows)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_activity(data):
    values, amendments = validate_activity(data)
    weather = _activity_weather(values['location_id'])

    placeholders = ', '.join('?' for _ in range(len(_COLUMNS) + 1))
    try:
        with get_db() as conn:
            cursor = conn.execute(
                f"INSERT INTO activities ({', '.join(_COLUMNS)}, weather) VALUES ({placeholders})",
                [values[c] for c in _COLUMNS] + [json.dumps(weather) if weather else None]
            )
            activity_id = cursor.lastrowid
            stored = _insert_amendments(conn, activity_id, values['activity_type'], amendments)
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=MISSING_PLACE_MESSAGE)

    logger.info(f"Created {values['activity_type']} activity {activity_id}"
                + (f" with {stored} amendments" if stored else ''))
    revalidate_path('/activities')
    return {'message': 'Activity created successfully', 'activity_id': activity_id}


def _activity_id(value):
    try:
        activity_id = int(value)
    except (TypeError, ValueError):
        activity_id = 0
    if activity_id <= 0:
        raise FormError('Invalid activity id', {'id': ['Invalid activity id']})
    return activity_id


def update_activity(activity_id, data):
    """Update an activity.

    The weather snapshot is recomputed from the (possibly new) location and
    cleared when there is none. Amendments are replaced only when supplied,
    and dropped once the activity is no longer a soil amendment.
    """
    activity_id = _activity_id(activity_id)
    values, amendments = validate_activity(data)
    weather = _activity_weather(values['location_id'])

    set_clause = ', '.join(f"{c} = ?" for c in _COLUMNS)
    try:
        with get_db() as conn:
            cursor = conn.execute(
                f"UPDATE activities SET {set_clause}, weather = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                [values[c] for c in _COLUMNS] + [json.dumps(weather) if weather else None, activity_id]
            )
            if cursor.rowcount == 0:
                raise NotFoundError('Activity not found.')
            if amendments is not None or values['activity_type'] != 'soil_amendment':
                conn.execute('DELETE FROM activities_soil_amendments WHERE activity_id = ?', (activity_id,))
                _insert_amendments(conn, activity_id, values['activity_type'], amendments or [])
    except get_integrity_error() as e:
        raise map_db_error(e, dependency_message=MISSING_PLACE_MESSAGE)

    logger.info(f"Updated activity {activity_id}")
    revalidate_path('/activities')
    return {'message': 'Activity updated successfully'}


def delete_activity(activity_id):
    activity_id = _activity_id(activity_id)
    with get_db() as conn:
        cursor = conn.execute('DELETE FROM activities WHERE id = ?', (activity_id,))
        if cursor.rowcount == 0:
            raise NotFoundError('Activity not found.')
    logger.info(f"Deleted activity {activity_id}")
    revalidate_path('/activities')
    return {'message': 'Activity deleted successfully'}


def delete_activities_bulk(ids):
    """Delete several activities given a CSV string or list of ids."""
    activity_ids = forms.id_list(ids)
    if not activity_ids:
        raise FormError('No valid activity ids provided', {'ids': ['No valid ids']})

    placeholders = ', '.join('?' for _ in activity_ids)
    with get_db() as conn:
        cursor = conn.execute(f"DELETE FROM activities WHERE id IN ({placeholders})", activity_ids)
        deleted = cursor.rowcount
    logger.info(f"Bulk deleted {deleted} activities")
    revalidate_path('/activities')
    return {'message': 'Activities deleted successfully', 'deleted': deleted}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _row_to_activity(row):
    activity = dict(row)
    if isinstance(activity.get('weather'), str):
        try:
            activity['weather'] = json.loads(activity['weather'])
        except ValueError:
            activity['weather'] = None
    return activity


def get_activity(activity_id):
    activity_id = _activity_id(activity_id)
    with get_db() as conn:
        row = conn.execute('''
            SELECT a.*, l.name AS location_name
            FROM activities a LEFT JOIN locations l ON l.id = a.location_id
            WHERE a.id = ?
        ''', (activity_id,)).fetchone()
        if row is None:
            raise NotFoundError('Activity not found.')
        amendments = conn.execute('''
            SELECT id, name, quantity, unit, notes FROM activities_soil_amendments
            WHERE activity_id = ? ORDER BY id
        ''', (activity_id,)).fetchall()

    activity = _row_to_activity(row)
    activity['amendments'] = [dict(a) for a in amendments]
    return activity


def _filtered_query(filters):
    """Build the WHERE clause for the type / from / to / location filters."""
    filters = filters or {}
    clauses = []
    params = []
    activity_type = filters.get('type')
    if activity_type:
        if activity_type not in ACTIVITY_TYPES:
            raise ValueError(f"Invalid activity type '{activity_type}'. Must be one of {ACTIVITY_TYPES}")
        clauses.append('a.activity_type = ?')
        params.append(activity_type)
    if filters.get('from'):
        clauses.append('a.started_at >= ?')
        params.append(filters['from'])
    if filters.get('to'):
        clauses.append('a.started_at <= ?')
        params.append(filters['to'])
    if filters.get('location_id'):
        clauses.append('a.location_id = ?')
        params.append(int(filters['location_id']))

    query = '''
        SELECT a.*, l.name AS location_name
        FROM activities a LEFT JOIN locations l ON l.id = a.location_id
    '''
    if clauses:
        query += ' WHERE ' + ' AND '.join(clauses)
    return query, params


def get_activities_grouped(filters=None):
    """Activities grouped by type, each group newest first."""
    query, params = _filtered_query(filters)
    with get_db() as conn:
        rows = conn.execute(query + ' ORDER BY a.started_at DESC, a.id DESC', params).fetchall()

    grouped = {}
    for row in rows:
        activity = _row_to_activity(row)
        key = (activity.get('activity_type') or '').strip() or 'unknown'
        grouped.setdefault(key, []).append(activity)
    return grouped


def get_activities_flat(filters=None, sort='started_at', direction='desc'):
    """Activities as one list sorted by started_at, labor_hours or cost."""
    sort = sort or 'started_at'
    direction = (direction or 'desc').lower()
    if sort not in SORT_FIELDS:
        raise ValueError(f"Invalid sort '{sort}'. Must be one of {SORT_FIELDS}")
    if direction not in ('asc', 'desc'):
        raise ValueError("Invalid sort direction. Must be 'asc' or 'desc'")

    query, params = _filtered_query(filters)
    query += f" ORDER BY a.{sort} {direction.upper()}, a.id {direction.upper()}"
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_activity(r) for r in rows]


def export_activities_csv(filters=None):
    """Export filtered activities, oldest first, as CSV text."""
    query, params = _filtered_query(filters)
    with get_db() as conn:
        rows = conn.execute(query + ' ORDER BY a.started_at ASC, a.id ASC', params).fetchall()

    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(CSV_HEADERS)
    for row in rows:
        writer.writerow(['' if row[h] is None else row[h] for h in CSV_HEADERS])
    logger.info(f"Activities CSV exported: {len(rows)} records")
    return output.getvalue()


def get_activity_form_options():
    """Locations, plots, beds and nurseries for the activity form pickers."""
    with get_db() as conn:
        return {
            'activity_types': [{'value': t, 'label': ACTIVITY_TYPE_LABELS[t]} for t in ACTIVITY_TYPES],
            'locations': [dict(r) for r in conn.execute(
                'SELECT id, name FROM locations ORDER BY name').fetchall()],
            'plots': [dict(r) for r in conn.execute(
                'SELECT id, name, location_id FROM plots ORDER BY name').fetchall()],
            'beds': [dict(r) for r in conn.execute(
                'SELECT id, plot_id, name FROM beds ORDER BY id').fetchall()],
            'nurseries': [dict(r) for r in conn.execute(
                'SELECT id, name, location_id FROM nurseries ORDER BY name').fetchall()],
        }
