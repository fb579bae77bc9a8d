"""
Planting lifecycle tracking for Happy Harvests.

A planting moves through

    nursery ──transplant──▶ planted ──harvest──▶ harvested
       │                      │  ▲
       │                      └──┘ move
       └──────remove──────────┴──────▶ removed

and every transition appends a row to ``planting_events``. The lifecycle
functions (create_nursery_planting, transplant_planting, ...) each run in a
single transaction; the schema backs them with CHECK constraints and partial
unique indexes (one initial and one terminal event per planting).

The form actions (sow_in_nursery, direct_seed, ...) validate submitted forms,
run the duplicate / capacity pre-checks, call a lifecycle function, map
database errors and revalidate the cached pages.
"""

import json
import logging
from datetime import date

import forms
from cache import revalidate_path
from config import Config
from db import get_db, get_integrity_error
from errors import ConflictError, FormError, NotFoundError, map_db_error

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_STATUSES = ['nursery', 'planted', 'harvested', 'removed']
VALID_EVENT_TYPES = ['nursery_seeded', 'direct_seeded', 'transplanted', 'moved', 'harvested', 'removed']
INITIAL_EVENT_TYPES = ('nursery_seeded', 'direct_seeded')
TERMINAL_EVENT_TYPES = ('harvested', 'removed')
ACTIVE_STATUSES = ('nursery', 'planted')

FIX_FIELDS_MESSAGE = 'Please fix the highlighted fields.'
HARVEST_METRIC_MESSAGE = 'At least one harvest metric (quantity or weight) is required.'
DUPLICATE_SOWING_MESSAGE = 'A sowing for this variety already exists on this date.'
NURSERY_FULL_MESSAGE = 'Nursery capacity reached for this date. Choose another date or update existing sowings.'
BED_FULL_MESSAGE = 'This bed already has plantings on that date.'
DELETE_REASON = 'deleted via UI'

PLANTING_PAGES = ('/plantings',)


# ---------------------------------------------------------------------------
# Database Initialization
# ---------------------------------------------------------------------------

def init_planting_tables():
    """Create plantings and planting_events with their lifecycle guardrails."""
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS plantings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                crop_variety_id INTEGER NOT NULL REFERENCES crop_varieties(id),
                status TEXT NOT NULL
                    CHECK (status IN ('nursery', 'planted', 'harvested', 'removed')),
                nursery_id INTEGER REFERENCES nurseries(id),
                bed_id INTEGER REFERENCES beds(id),
                nursery_started_date TEXT,
                planted_date TEXT,
                ended_date TEXT,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                CONSTRAINT plantings_nursery_stage CHECK (
                    status <> 'nursery'
                    OR (bed_id IS NULL AND planted_date IS NULL AND nursery_id IS NOT NULL)
                ),
                CONSTRAINT plantings_in_ground CHECK (
                    status NOT IN ('planted', 'harvested')
                    OR (bed_id IS NOT NULL AND planted_date IS NOT NULL)
                ),
                CONSTRAINT plantings_terminal_has_end CHECK (
                    status NOT IN ('harvested', 'removed') OR ended_date IS NOT NULL
                ),
                CONSTRAINT plantings_active_has_no_end CHECK (
                    status NOT IN ('nursery', 'planted') OR ended_date IS NULL
                )
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS planting_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                planting_id INTEGER NOT NULL REFERENCES plantings(id) ON DELETE CASCADE,
                event_type TEXT NOT NULL CHECK (event_type IN (
                    'nursery_seeded', 'direct_seeded', 'transplanted', 'moved', 'harvested', 'removed'
                )),
                event_date TEXT NOT NULL,
                bed_id INTEGER REFERENCES beds(id),
                nursery_id INTEGER REFERENCES nurseries(id),
                qty INTEGER CHECK (qty IS NULL OR qty >= 0),
                weight_grams INTEGER CHECK (weight_grams IS NULL OR weight_grams >= 0),
                payload TEXT,
                created_by INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                CONSTRAINT nursery_seeded_has_nursery CHECK (
                    event_type <> 'nursery_seeded' OR nursery_id IS NOT NULL
                ),
                CONSTRAINT bed_events_have_bed CHECK (
                    event_type NOT IN ('direct_seeded', 'transplanted', 'moved') OR bed_id IS NOT NULL
                ),
                CONSTRAINT harvested_requires_measure CHECK (
                    event_type <> 'harvested'
                    OR COALESCE(qty, 0) > 0 OR COALESCE(weight_grams, 0) > 0
                ),
                CONSTRAINT removed_has_one_context CHECK (
                    event_type <> 'removed' OR ((bed_id IS NULL) <> (nursery_id IS NULL))
                )
            )
        ''')
        conn.execute('''
            CREATE UNIQUE INDEX IF NOT EXISTS uq_planting_events_initial
            ON planting_events(planting_id)
            WHERE event_type IN ('nursery_seeded', 'direct_seeded')
        ''')
        conn.execute('''
            CREATE UNIQUE INDEX IF NOT EXISTS uq_planting_events_terminal
            ON planting_events(planting_id)
            WHERE event_type IN ('harvested', 'removed')
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_planting_events_planting ON planting_events(planting_id, event_date)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_plantings_status ON plantings(status)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_plantings_nursery_day ON plantings(nursery_id, nursery_started_date)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_plantings_bed_day ON plantings(bed_id, planted_date)')
    logger.info("Planting tables initialized")


# ---------------------------------------------------------------------------
# Lifecycle functions (one transaction each)
# ---------------------------------------------------------------------------

def _load_planting(conn, planting_id):
    row = conn.execute('SELECT * FROM plantings WHERE id = ?', (planting_id,)).fetchone()
    if row is None:
        raise NotFoundError('Planting not found.')
    return dict(row)


def _record_event(conn, planting_id, event_type, event_date, bed_id=None, nursery_id=None,
                  qty=None, weight_grams=None, payload=None, user_id=None):
    cursor = conn.execute('''
        INSERT INTO planting_events (planting_id, event_type, event_date, bed_id, nursery_id,
                                     qty, weight_grams, payload, created_by)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    ''', (
        planting_id, event_type, event_date, bed_id, nursery_id, qty, weight_grams,
        json.dumps(payload) if payload is not None else None, user_id,
    ))
    return cursor.lastrowid


def create_nursery_planting(crop_variety_id, qty, nursery_id, event_date, notes=None,
                            weight_grams=None, user_id=None):
    """Start a planting in a nursery. Returns the planting id."""
    with get_db() as conn:
        cursor = conn.execute('''
            INSERT INTO plantings (crop_variety_id, status, nursery_id, nursery_started_date, notes)
            VALUES (?, 'nursery', ?, ?, ?)
        ''', (crop_variety_id, nursery_id, event_date, notes))
        planting_id = cursor.lastrowid
        _record_event(conn, planting_id, 'nursery_seeded', event_date, nursery_id=nursery_id,
                      qty=qty, weight_grams=weight_grams, user_id=user_id)

    logger.info(f"Planting {planting_id} sown in nursery {nursery_id} on {event_date}")
    return planting_id


def create_direct_seed_planting(crop_variety_id, qty, bed_id, event_date, notes=None,
                                weight_grams=None, user_id=None):
    """Start a planting directly in a bed. Returns the planting id."""
    with get_db() as conn:
        cursor = conn.execute('''
            INSERT INTO plantings (crop_variety_id, status, bed_id, planted_date, notes)
            VALUES (?, 'planted', ?, ?, ?)
        ''', (crop_variety_id, bed_id, event_date, notes))
        planting_id = cursor.lastrowid
        _record_event(conn, planting_id, 'direct_seeded', event_date, bed_id=bed_id,
                      qty=qty, weight_grams=weight_grams, user_id=user_id)

    logger.info(f"Planting {planting_id} direct seeded in bed {bed_id} on {event_date}")
    return planting_id


def transplant_planting(planting_id, bed_id, event_date, user_id=None):
    """Move a nursery planting into a bed.

    The planted date keeps any earlier value; the nursery link is cleared.
    """
    with get_db() as conn:
        planting = _load_planting(conn, planting_id)
        if planting['status'] != 'nursery':
            raise ConflictError('Only plantings in the nursery can be transplanted.',
                                {'planting_id': [f"Planting is {planting['status']}"]})
        _record_event(conn, planting_id, 'transplanted', event_date, bed_id=bed_id, user_id=user_id)
        conn.execute('''
            UPDATE plantings
            SET status = 'planted', planted_date = COALESCE(planted_date, ?), bed_id = ?,
                nursery_id = NULL, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND ended_date IS NULL
        ''', (event_date, bed_id, planting_id))

    logger.info(f"Planting {planting_id} transplanted to bed {bed_id} on {event_date}")


def move_planting(planting_id, bed_id, event_date, user_id=None):
    """Move a planted planting to another bed."""
    with get_db() as conn:
        planting = _load_planting(conn, planting_id)
        if planting['status'] != 'planted':
            raise ConflictError('Only planted plantings can be moved.',
                                {'planting_id': [f"Planting is {planting['status']}"]})
        _record_event(conn, planting_id, 'moved', event_date, bed_id=bed_id, user_id=user_id)
        conn.execute('''
            UPDATE plantings SET bed_id = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = 'planted' AND ended_date IS NULL
        ''', (bed_id, planting_id))

    logger.info(f"Planting {planting_id} moved to bed {bed_id} on {event_date}")


def harvest_planting(planting_id, event_date, qty_harvested=None, weight_grams=None, user_id=None):
    """Record the harvest that ends a planting."""
    if (qty_harvested or 0) <= 0 and (weight_grams or 0) <= 0:
        raise FormError(HARVEST_METRIC_MESSAGE, {'qty_harvested': ['Provide quantity or weight']})

    with get_db() as conn:
        planting = _load_planting(conn, planting_id)
        if planting['status'] != 'planted':
            raise ConflictError('Only planted plantings can be harvested.',
                                {'planting_id': [f"Planting is {planting['status']}"]})
        _record_event(conn, planting_id, 'harvested', event_date, bed_id=planting['bed_id'],
                      qty=qty_harvested, weight_grams=weight_grams, user_id=user_id)
        conn.execute('''
            UPDATE plantings SET status = 'harvested', ended_date = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND ended_date IS NULL
        ''', (event_date, planting_id))

    logger.info(f"Planting {planting_id} harvested on {event_date}")


def remove_planting(planting_id, event_date, reason=None, user_id=None):
    """End a planting without a harvest.

    The removal event points at the nursery when the planting never reached
    a bed, otherwise at its bed.
    """
    with get_db() as conn:
        planting = _load_planting(conn, planting_id)
        if planting['status'] not in ACTIVE_STATUSES:
            raise ConflictError('Planting has already ended.',
                                {'planting_id': [f"Planting is {planting['status']}"]})
        if planting['planted_date'] is None:
            context = {'nursery_id': planting['nursery_id']}
        else:
            context = {'bed_id': planting['bed_id']}
        _record_event(conn, planting_id, 'removed', event_date,
                      payload={'reason': reason} if reason else None, user_id=user_id, **context)
        conn.execute('''
            UPDATE plantings SET status = 'removed', ended_date = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND ended_date IS NULL
        ''', (event_date, planting_id))

    logger.info(f"Planting {planting_id} removed on {event_date}"
                + (f" ({reason})" if reason else ''))


# ---------------------------------------------------------------------------
# Form parsing
# ---------------------------------------------------------------------------

def _require(errors, field, value, message):
    """Replace any coercion message for ``field`` with the form's own message."""
    if value is None or field in errors:
        errors.errors[field] = [message]


def _parse_initial_form(data, location_field):
    errors = forms.FieldErrors()
    values = {
        'crop_variety_id': forms.integer(data, 'crop_variety_id', errors, minimum=1),
        location_field: forms.integer(data, location_field, errors, minimum=1),
        'event_date': forms.iso_date(data, 'event_date', errors),
        'notes': forms.text(data, 'notes', errors),
        'weight_grams': forms.integer(data, 'weight_grams', errors, minimum=0, label='Weight'),
    }
    qty_field = 'qty' if forms.raw(data, 'qty') is not None else 'qty_initial'
    values['qty'] = forms.integer(data, qty_field, errors, minimum=1, label='Quantity')
    if qty_field in errors or values['qty'] is None:
        errors.errors.pop(qty_field, None)
        errors.errors['qty'] = ['Quantity is required']

    _require(errors, 'crop_variety_id', values['crop_variety_id'], 'Variety is required')
    _require(errors, location_field, values[location_field],
             'Nursery is required' if location_field == 'nursery_id' else 'Bed is required')
    _require(errors, 'event_date', values['event_date'], 'Date is required')
    errors.raise_if_any(FIX_FIELDS_MESSAGE)
    return values


def _parse_planting_id(data, errors):
    planting_id = forms.integer(data, 'planting_id', errors, minimum=1)
    _require(errors, 'planting_id', planting_id, 'Planting is required')
    return planting_id


def _map_lifecycle_error(exc):
    return map_db_error(
        exc,
        dependency_message='The selected bed, nursery or variety does not exist.',
        duplicate_message='This planting already has that lifecycle event.',
    )


# ---------------------------------------------------------------------------
# Form actions
# ---------------------------------------------------------------------------

def sow_in_nursery(data, user_id=None):
    """Start a nursery sowing after the duplicate and daily capacity checks."""
    values = _parse_initial_form(data, 'nursery_id')

    with get_db() as conn:
        same_day = conn.execute('''
            SELECT id, crop_variety_id FROM plantings
            WHERE nursery_id = ? AND status = 'nursery' AND nursery_started_date = ?
        ''', (values['nursery_id'], values['event_date'])).fetchall()

    if any(row['crop_variety_id'] == values['crop_variety_id'] for row in same_day):
        raise ConflictError(DUPLICATE_SOWING_MESSAGE,
                            {'crop_variety_id': ['Duplicate sowing for this date']})
    if len(same_day) >= Config.DAILY_NURSERY_SOW_LIMIT:
        raise ConflictError(NURSERY_FULL_MESSAGE,
                            {'event_date': ['Capacity reached for selected date']})

    try:
        planting_id = create_nursery_planting(
            values['crop_variety_id'], values['qty'], values['nursery_id'], values['event_date'],
            notes=values['notes'], weight_grams=values['weight_grams'], user_id=user_id,
        )
    except get_integrity_error() as e:
        raise _map_lifecycle_error(e)

    revalidate_path('/plantings', '/nurseries')
    return {'message': 'Nursery planting created.', 'planting_id': planting_id}


def _bed_plantings_on(bed_id, planted_date):
    with get_db() as conn:
        row = conn.execute('''
            SELECT COUNT(*) AS n FROM plantings
            WHERE bed_id = ? AND planted_date = ? AND status <> 'removed'
        ''', (bed_id, planted_date)).fetchone()
    return row['n']


def direct_seed(data, user_id=None):
    """Direct seed a bed, refusing once the bed's daily planting limit is hit."""
    values = _parse_initial_form(data, 'bed_id')

    if _bed_plantings_on(values['bed_id'], values['event_date']) >= Config.DAILY_BED_PLANT_LIMIT:
        raise ConflictError(BED_FULL_MESSAGE, {'bed_id': ['Bed is already scheduled for that date']})

    try:
        planting_id = create_direct_seed_planting(
            values['crop_variety_id'], values['qty'], values['bed_id'], values['event_date'],
            notes=values['notes'], weight_grams=values['weight_grams'], user_id=user_id,
        )
    except get_integrity_error() as e:
        raise _map_lifecycle_error(e)

    revalidate_path(*PLANTING_PAGES)
    return {'message': 'Direct-seeded planting created.', 'planting_id': planting_id}


def bulk_direct_seed(data, user_id=None):
    """Direct seed the same variety into several beds.

    Beds are de-duplicated and processed independently; each bed either
    succeeds or contributes a failure with its error message.

    Returns:
        {'message', 'successes': [{'bed_id', 'planting_id'}], 'failures': [{'bed_id', 'error'}]}
    """
    bed_ids = forms.id_list(data.get('bed_ids'))
    if not bed_ids:
        raise FormError(FIX_FIELDS_MESSAGE, {'bed_ids': ['Select at least one bed']})
    values = _parse_initial_form(dict(data, bed_id=bed_ids[0]), 'bed_id')

    successes = []
    failures = []
    for bed_id in bed_ids:
        if _bed_plantings_on(bed_id, values['event_date']) >= Config.DAILY_BED_PLANT_LIMIT:
            failures.append({'bed_id': bed_id, 'error': BED_FULL_MESSAGE})
            continue
        try:
            planting_id = create_direct_seed_planting(
                values['crop_variety_id'], values['qty'], bed_id, values['event_date'],
                notes=values['notes'], weight_grams=values['weight_grams'], user_id=user_id,
            )
        except get_integrity_error() as e:
            failures.append({'bed_id': bed_id, 'error': _map_lifecycle_error(e).message})
            continue
        successes.append({'bed_id': bed_id, 'planting_id': planting_id})

    if successes:
        revalidate_path(*PLANTING_PAGES)

    if not failures:
        message = f"Created {len(successes)} plantings."
    elif not successes:
        message = 'No plantings created. See errors.'
    else:
        message = f"Created {len(successes)} plantings. {len(failures)} failed."
    logger.info(f"Bulk direct seed: {len(successes)} created, {len(failures)} failed")
    return {'message': message, 'successes': successes, 'failures': failures}


def _parse_bed_move(data):
    errors = forms.FieldErrors()
    planting_id = _parse_planting_id(data, errors)
    bed_id = forms.integer(data, 'bed_id', errors, minimum=1)
    _require(errors, 'bed_id', bed_id, 'Bed is required')
    event_date = forms.iso_date(data, 'event_date', errors)
    _require(errors, 'event_date', event_date, 'Date is required')
    errors.raise_if_any(FIX_FIELDS_MESSAGE)
    return planting_id, bed_id, event_date


def transplant(data, user_id=None):
    planting_id, bed_id, event_date = _parse_bed_move(data)
    try:
        transplant_planting(planting_id, bed_id, event_date, user_id=user_id)
    except get_integrity_error() as e:
        raise _map_lifecycle_error(e)
    revalidate_path('/plantings', '/nurseries')
    return {'message': 'Transplant recorded.'}


def move(data, user_id=None):
    planting_id, bed_id, event_date = _parse_bed_move(data)
    try:
        move_planting(planting_id, bed_id, event_date, user_id=user_id)
    except get_integrity_error() as e:
        raise _map_lifecycle_error(e)
    revalidate_path(*PLANTING_PAGES)
    return {'message': 'Move recorded.'}


def harvest(data, user_id=None):
    errors = forms.FieldErrors()
    planting_id = _parse_planting_id(data, errors)
    event_date = forms.iso_date(data, 'event_date', errors)
    _require(errors, 'event_date', event_date, 'Date is required (YYYY-MM-DD)')
    qty_harvested = forms.integer(data, 'qty_harvested', errors, minimum=1, label='Quantity')
    weight_grams = forms.integer(data, 'weight_grams', errors, minimum=1, label='Weight')
    if qty_harvested is None and weight_grams is None and not errors:
        raise FormError(HARVEST_METRIC_MESSAGE, {'qty_harvested': ['Provide quantity or weight']})
    errors.raise_if_any(FIX_FIELDS_MESSAGE)

    try:
        harvest_planting(planting_id, event_date, qty_harvested=qty_harvested,
                         weight_grams=weight_grams, user_id=user_id)
    except get_integrity_error() as e:
        raise _map_lifecycle_error(e)
    revalidate_path(*PLANTING_PAGES)
    return {'message': 'Harvest recorded.'}


def remove(data, user_id=None):
    errors = forms.FieldErrors()
    planting_id = _parse_planting_id(data, errors)
    event_date = forms.iso_date(data, 'event_date', errors)
    _require(errors, 'event_date', event_date, 'Date is required (YYYY-MM-DD)')
    reason = forms.text(data, 'reason', errors)
    errors.raise_if_any(FIX_FIELDS_MESSAGE)

    try:
        remove_planting(planting_id, event_date, reason=reason, user_id=user_id)
    except get_integrity_error() as e:
        raise _map_lifecycle_error(e)
    revalidate_path('/plantings', '/nurseries')
    return {'message': 'Planting removed.', 'undo_id': planting_id}


def delete_planting(planting_id, user_id=None):
    """Soft delete: remove the planting as of today so it can be undone."""
    try:
        remove_planting(planting_id, date.today().isoformat(), reason=DELETE_REASON, user_id=user_id)
    except get_integrity_error() as e:
        raise _map_lifecycle_error(e)
    revalidate_path('/plantings', '/nurseries')
    return {'message': 'Planting removed successfully.', 'undo_id': planting_id}


def undo_remove_planting(planting_id):
    """Reverse a removal.

    The planting returns to the stage it was removed from (planted when it
    had reached a bed, nursery otherwise) and its removal event is dropped.
    """
    with get_db() as conn:
        planting = _load_planting(conn, planting_id)
        if planting['status'] != 'removed':
            raise ConflictError('Only removed plantings can be restored.')
        restored = 'planted' if planting['planted_date'] else 'nursery'
        conn.execute(
            "DELETE FROM planting_events WHERE planting_id = ? AND event_type = 'removed'",
            (planting_id,)
        )
        conn.execute('''
            UPDATE plantings SET status = ?, ended_date = NULL, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        ''', (restored, planting_id))

    logger.info(f"Planting {planting_id} removal undone (now {restored})")
    revalidate_path('/plantings', '/nurseries')
    return {'message': 'Removal undone.', 'status': restored}


def mark_planting_as_planted(planting_id):
    """Correct a planting that was harvested or removed by mistake."""
    with get_db() as conn:
        planting = _load_planting(conn, planting_id)
        if planting['status'] not in TERMINAL_EVENT_TYPES or not planting['bed_id'] \
                or not planting['planted_date']:
            raise ConflictError('Only harvested or removed plantings that reached a bed '
                                'can be marked as planted.')
        conn.execute(
            "DELETE FROM planting_events WHERE planting_id = ? AND event_type IN ('harvested', 'removed')",
            (planting_id,)
        )
        conn.execute('''
            UPDATE plantings SET status = 'planted', ended_date = NULL, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        ''', (planting_id,))

    logger.info(f"Planting {planting_id} marked as planted")
    revalidate_path(*PLANTING_PAGES)
    return {'message': 'Planting marked as planted.'}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

_DETAILS_SQL = '''
    SELECT p.*,
           cv.name AS variety_name, cv.latin_name,
           cv.dtm_direct_seed_min, cv.dtm_direct_seed_max,
           cv.dtm_transplant_min, cv.dtm_transplant_max,
           c.name AS crop_name,
           b.name AS bed_name, b.length_inches AS bed_length_inches, b.width_inches AS bed_width_inches,
           pl.id AS plot_id, pl.name AS plot_name,
           l.id AS location_id, l.name AS location_name,
           n.name AS nursery_name,
           ie.qty AS planted_qty, ie.weight_grams AS planted_weight_grams,
           he.qty AS harvest_qty, he.weight_grams AS harvest_weight_grams
    FROM plantings p
    JOIN crop_varieties cv ON cv.id = p.crop_variety_id
    LEFT JOIN crops c ON c.id = cv.crop_id
    LEFT JOIN beds b ON b.id = p.bed_id
    LEFT JOIN plots pl ON pl.id = b.plot_id
    LEFT JOIN locations l ON l.id = pl.location_id
    LEFT JOIN nurseries n ON n.id = p.nursery_id
    LEFT JOIN planting_events ie
           ON ie.planting_id = p.id AND ie.event_type IN ('nursery_seeded', 'direct_seeded')
    LEFT JOIN planting_events he
           ON he.planting_id = p.id AND he.event_type = 'harvested'
'''


def get_plantings_with_details(status=None):
    """Plantings (newest first) with variety, bed/location, nursery and
    planted / harvest metrics."""
    if status is not None and status not in VALID_STATUSES:
        raise ValueError(f"Invalid status '{status}'. Must be one of {VALID_STATUSES}")
    query = _DETAILS_SQL
    params = []
    if status:
        query += ' WHERE p.status = ?'
        params.append(status)
    query += ' ORDER BY p.created_at DESC, p.id DESC'
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return [dict(r) for r in rows]


def get_planting(planting_id):
    with get_db() as conn:
        row = conn.execute(_DETAILS_SQL + ' WHERE p.id = ?', (planting_id,)).fetchone()
    if row is None:
        raise NotFoundError('Planting not found.')
    return dict(row)


def get_planting_events(planting_id):
    """Event history for one planting, newest first."""
    with get_db() as conn:
        _load_planting(conn, planting_id)
        rows = conn.execute('''
            SELECT e.*, b.name AS bed_name, b.length_inches AS bed_length_inches,
                   b.width_inches AS bed_width_inches, l.name AS location_name,
                   n.name AS nursery_name
            FROM planting_events e
            LEFT JOIN beds b ON b.id = e.bed_id
            LEFT JOIN plots pl ON pl.id = b.plot_id
            LEFT JOIN locations l ON l.id = pl.location_id
            LEFT JOIN nurseries n ON n.id = e.nursery_id
            WHERE e.planting_id = ?
            ORDER BY e.event_date DESC, e.created_at DESC, e.id DESC
        ''', (planting_id,)).fetchall()

    events = []
    for row in rows:
        event = dict(row)
        if isinstance(event.get('payload'), str):
            try:
                event['payload'] = json.loads(event['payload'])
            except json.JSONDecodeError:
                # Legacy free-text payloads are returned as stored
                logger.debug(f"Event {event['id']} payload is not JSON")
        events.append(event)
    return events


def get_planting_options():
    """Everything the planting forms need to populate their pickers."""
    with get_db() as conn:
        def fetch(sql):
            return [dict(r) for r in conn.execute(sql).fetchall()]

        return {
            'locations': fetch('SELECT id, name FROM locations ORDER BY name'),
            'plots': fetch('SELECT id, name, location_id FROM plots ORDER BY name'),
            'beds': fetch('''
                SELECT b.id, b.name, b.plot_id, b.length_inches, b.width_inches, p.location_id
                FROM beds b JOIN plots p ON p.id = b.plot_id
                ORDER BY b.name, b.id
            '''),
            'nurseries': fetch('SELECT id, name, location_id FROM nurseries ORDER BY name'),
            'varieties': fetch('''
                SELECT cv.id, cv.name, cv.latin_name, c.name AS crop_name,
                       cv.dtm_direct_seed_min, cv.dtm_direct_seed_max,
                       cv.dtm_transplant_min, cv.dtm_transplant_max
                FROM crop_varieties cv LEFT JOIN crops c ON c.id = cv.crop_id
                ORDER BY cv.name
            '''),
        }
